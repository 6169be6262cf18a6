# frota/infra/views.py
"""
Views auxiliares e índices para as consultas frequentes.

Views criadas:
- vw_nc_abertas:        NCs fora de ``resolvida`` (painel de pendências).
- vw_ultima_submissao:  submissão mais recente por (template, máquina).

Obs.: as views assumem que as migrações V1→V2 já foram aplicadas.
"""

from __future__ import annotations

from .db import connect


def create_views(db_path: str) -> None:
    with connect(db_path) as c:
        c.executescript(
            """
            ---------------------------
            -- NCs em aberto
            ---------------------------
            DROP VIEW IF EXISTS vw_nc_abertas;
            CREATE VIEW vw_nc_abertas AS
            SELECT
                id,
                ativo_id,
                ativo_tag,
                titulo,
                severidade,
                severidade_rank,
                status,
                criado_em,
                prazo,
                recorrencia_de_id
            FROM nao_conformidade
            WHERE status <> 'resolvida';

            ---------------------------
            -- Última submissão por par (template, máquina)
            -- criado_em é ISO UTC com sufixo Z: MAX lexical = mais recente
            ---------------------------
            DROP VIEW IF EXISTS vw_ultima_submissao;
            CREATE VIEW vw_ultima_submissao AS
            SELECT
                template_id,
                maquina_id,
                MAX(criado_em) AS ultima_submissao,
                COUNT(*)       AS total_submissoes
            FROM checklist_resposta
            WHERE criado_em IS NOT NULL
            GROUP BY template_id, maquina_id;
            """
        )

        c.executescript(
            """
            CREATE INDEX IF NOT EXISTS idx_nc_ativo_criado   ON nao_conformidade(ativo_id, criado_em);
            CREATE INDEX IF NOT EXISTS idx_nc_status         ON nao_conformidade(status);
            CREATE INDEX IF NOT EXISTS idx_nc_criado         ON nao_conformidade(criado_em);
            CREATE INDEX IF NOT EXISTS idx_nc_resposta       ON nao_conformidade(resposta_origem_id);
            CREATE INDEX IF NOT EXISTS idx_resposta_par      ON checklist_resposta(template_id, maquina_id, criado_em);
            CREATE INDEX IF NOT EXISTS idx_auditoria_nc      ON nc_auditoria(nc_id, em);
            """
        )
