# frota/infra/db.py
"""
Utilidades de conexão SQLite.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional


@contextmanager
def connect(db_path: str) -> Iterator[sqlite3.Connection]:
    """
    Context manager para abrir conexão SQLite com:
    - diretório do arquivo criado se faltar
    - foreign_keys ON
    - row_factory = sqlite3.Row
    - commit ao sair (rollback em caso de exceção)
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def to_json(value: Any) -> Optional[str]:
    """Serializa colunas JSON (payload, diff, listas)."""
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def from_json(text: Optional[str], default: Any = None) -> Any:
    if text is None or text == "":
        return default
    return json.loads(text)


@contextmanager
def connect_or_reuse(db_path: str, conn: Optional[sqlite3.Connection] = None) -> Iterator[sqlite3.Connection]:
    """Usa a conexão do chamador (que controla commit/rollback) ou abre uma nova."""
    if conn is not None:
        yield conn
        return
    with connect(db_path) as c:
        yield c
