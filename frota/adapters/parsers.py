"""
Utilidades de parsing para entradas brutas dos adapters.

Instantes e booleanos são convertidos por ``frota.domain.valores``; este
módulo reexporta essas funções para os adapters e acrescenta o que é só
de entrada (texto aparado).
"""

from __future__ import annotations

from typing import Any, Optional

from frota.domain.valores import formatar_instante, parse_bool, parse_instante, vazio

__all__ = ["formatar_instante", "normalize_str", "parse_bool", "parse_instante"]


def normalize_str(x: Any) -> Optional[str]:
    if vazio(x):
        return None
    s = str(x).strip()
    return s or None
