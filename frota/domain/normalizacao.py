"""
Normalização de texto usada na detecção de recorrência.

O resultado independe do locale do processo: a decomposição Unicode
(NFD) é feita pela tabela do próprio interpretador.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Optional

_NAO_ALFANUM_RE = re.compile(r"[^a-z0-9]+")


def normalizar_texto(valor: Optional[str]) -> str:
    """Remove acentos, passa para minúsculas e colapsa não-alfanuméricos.

    Exemplos:
        "Vazamento de óleo"   → "vazamento de oleo"
        "  Freio/ABS -- falha" → "freio abs falha"

    A função é total (``None`` vira ``""``) e idempotente.
    """
    if valor is None:
        return ""
    decomposto = unicodedata.normalize("NFD", str(valor))
    sem_acentos = "".join(ch for ch in decomposto if not unicodedata.combining(ch))
    return _NAO_ALFANUM_RE.sub(" ", sem_acentos.lower()).strip()


def chave_ordenacao(valor: Optional[str]) -> str:
    """Chave para ordenação alfabética insensível a acentos e caixa."""
    if not valor:
        return ""
    decomposto = unicodedata.normalize("NFD", str(valor))
    return "".join(ch for ch in decomposto if not unicodedata.combining(ch)).casefold()
