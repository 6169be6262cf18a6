# frota/infra/migrations.py
"""
Migrações de schema usando PRAGMA user_version.

V1: tabelas base (máquinas, templates, submissões, NCs, auditoria)
V2: controle de processamento das submissões (processado_em, ncs_geradas)
V3: variável das perguntas (JSON com nome, tipo, alerta e periodicidade)
"""

from __future__ import annotations

from typing import List
from .db import connect


SCHEMA_V1: List[str] = [
    # Cadastro de máquinas
    """
    CREATE TABLE IF NOT EXISTS maquina (
        id TEXT PRIMARY KEY,
        tag TEXT,
        modelo TEXT,
        tipo TEXT,
        setor TEXT,
        checklists TEXT            -- JSON: lista de template_id vinculados
    );
    """,
    # Templates de checklist
    """
    CREATE TABLE IF NOT EXISTS template (
        id TEXT PRIMARY KEY,
        titulo TEXT,
        periodicidade TEXT         -- JSON: {quantidade, unidade, ativa, ancora}
    );
    """,
    # Perguntas de cada template (ordem preservada)
    """
    CREATE TABLE IF NOT EXISTS template_questao (
        template_id TEXT NOT NULL,
        questao_id TEXT NOT NULL,
        ordem INTEGER,
        texto TEXT,
        categoria_sistema TEXT,
        regra_foto TEXT,
        PRIMARY KEY (template_id, questao_id),
        FOREIGN KEY (template_id) REFERENCES template(id) ON DELETE CASCADE
    );
    """,
    # Submissões de checklist (imutáveis)
    """
    CREATE TABLE IF NOT EXISTS checklist_resposta (
        id TEXT PRIMARY KEY,
        template_id TEXT,
        maquina_id TEXT,
        usuario_id TEXT,
        criado_em TEXT,            -- ISO UTC; NULL quando a origem não trouxe data válida
        payload TEXT NOT NULL
    );
    """,
    # Não-conformidades: colunas indexáveis + payload completo
    """
    CREATE TABLE IF NOT EXISTS nao_conformidade (
        id TEXT PRIMARY KEY,
        ativo_id TEXT,
        ativo_tag TEXT,
        template_id TEXT,
        resposta_origem_id TEXT,
        titulo TEXT,
        titulo_normalizado TEXT,
        categoria_sistema TEXT,
        severidade TEXT,
        severidade_rank INTEGER,
        status TEXT,
        criado_em TEXT NOT NULL,
        prazo TEXT,
        ano_mes TEXT,
        recorrencia_de_id TEXT,
        atualizado_em TEXT,
        payload TEXT NOT NULL
    );
    """,
    # Trilha de auditoria por NC
    """
    CREATE TABLE IF NOT EXISTS nc_auditoria (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        nc_id TEXT NOT NULL,
        ator_id TEXT,
        ator_nome TEXT,
        em TEXT NOT NULL,
        diff TEXT NOT NULL,
        FOREIGN KEY (nc_id) REFERENCES nao_conformidade(id)
    );
    """,
]


def _ensure_column(conn, table: str, column: str, ddl: str) -> None:
    """Adiciona coluna se não existir."""
    cur = conn.execute(f"PRAGMA table_info({table});")
    cols = [r[1] for r in cur.fetchall()]  # r[1] é o nome da coluna
    if column not in cols:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {ddl};")


def _apply_v1(conn) -> None:
    for sql in SCHEMA_V1:
        conn.executescript(sql)


def _apply_v2(conn) -> None:
    _ensure_column(conn, "checklist_resposta", "processado_em", "processado_em TEXT")
    _ensure_column(conn, "checklist_resposta", "ncs_geradas", "ncs_geradas INTEGER")


def _apply_v3(conn) -> None:
    _ensure_column(conn, "template_questao", "variavel", "variavel TEXT")


def apply_migrations(db_path: str) -> None:
    """Aplica migrações incrementais de acordo com PRAGMA user_version."""
    with connect(db_path) as conn:
        ver = conn.execute("PRAGMA user_version;").fetchone()[0] or 0

        if ver < 1:
            _apply_v1(conn)
            conn.execute("PRAGMA user_version = 1;")
            ver = 1

        if ver < 2:
            _apply_v2(conn)
            conn.execute("PRAGMA user_version = 2;")
            ver = 2

        if ver < 3:
            _apply_v3(conn)
            conn.execute("PRAGMA user_version = 3;")
            ver = 3
