"""
Conversão de valores brutos (instantes e booleanos) usados pelo domínio.

Os checklists chegam do formulário de inspeção (JSON) ou de planilhas
exportadas, com datas em ISO-8601 (``2025-09-29T16:04:15.201Z``) ou no
formato brasileiro (``29/09/2025 16:04``) e booleanos escritos de várias
formas (``sim``, ``1``, ``true``). As funções abaixo devolvem ``None``
quando o valor não pode ser interpretado, nunca levantam exceção.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Any, Optional

_FORMATOS_BR = ("%d/%m/%Y %H:%M:%S", "%d/%m/%Y %H:%M", "%d/%m/%Y", "%d-%m-%Y", "%d/%m/%y")


def vazio(val: Any) -> bool:
    if val is None:
        return True
    if isinstance(val, float) and math.isnan(val):
        return True
    # NaT do pandas é subclasse de datetime e diferente de si mesmo
    try:
        if val != val:
            return True
    except Exception:
        return False
    return False


def parse_instante(val: Any) -> Optional[datetime]:
    """Interpreta um instante e o devolve com fuso (UTC quando ausente).

    Exemplos:
        "2025-09-29T16:04:15.201Z" → 2025-09-29 16:04:15.201000+00:00
        "29/09/2025 13:00"         → 2025-09-29 13:00:00+00:00
        "ontem"                    → None
    """
    if vazio(val):
        return None
    if isinstance(val, datetime):
        return val if val.tzinfo is not None else val.replace(tzinfo=timezone.utc)
    if isinstance(val, date):
        return datetime(val.year, val.month, val.day, tzinfo=timezone.utc)
    s = str(val).strip()
    if not s:
        return None
    iso = s[:-1] + "+00:00" if s.endswith(("Z", "z")) else s
    try:
        dt = datetime.fromisoformat(iso)
    except ValueError:
        dt = None
        for fmt in _FORMATOS_BR:
            try:
                dt = datetime.strptime(s, fmt)
                break
            except ValueError:
                continue
    if dt is None:
        return None
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def formatar_instante(dt: Optional[datetime]) -> Optional[str]:
    """Serializa em UTC com milissegundos e sufixo ``Z`` (ordenável como texto)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_bool(val: Any) -> Optional[bool]:
    """Converte valores variados em True/False (ou None)."""
    if vazio(val):
        return None
    if isinstance(val, bool):
        return val
    s = str(val).strip().lower()
    if s in {"1", "true", "t", "sim", "s", "y", "yes"}:
        return True
    if s in {"0", "false", "f", "nao", "não", "n", "no"}:
        return False
    try:
        i = int(float(s))
        if i in (0, 1):
            return bool(i)
    except ValueError:
        pass
    return None
