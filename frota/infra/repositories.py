# frota/infra/repositories.py
"""
Repositórios (DAO) para acesso e manipulação de dados no SQLite.

Classes:
- MaquinaRepo
- TemplateRepo
- ChecklistRepo
- NaoConformidadeRepo
- AuditoriaRepo

Instantes são gravados como texto ISO UTC com sufixo ``Z`` (ver
``formatar_instante``), de modo que comparação e ordenação lexical no SQL
equivalem à cronológica.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .db import connect, connect_or_reuse, from_json, to_json
from frota.domain.valores import formatar_instante, parse_instante
from frota.config import DEFAULTS
from frota.domain.filtros import FiltrosNC
from frota.domain.models import (
    EntradaAuditoria,
    Maquina,
    NaoConformidade,
    NcExistente,
    Periodicidade,
    QuestaoTemplate,
    RespostaChecklist,
    TemplateChecklist,
    VariavelQuestao,
)

logger = logging.getLogger(__name__)


# -------------------------
# Máquinas
# -------------------------

class MaquinaRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def upsert(self, maquina: Maquina) -> None:
        with connect(self.db_path) as c:
            c.execute(
                """
                INSERT INTO maquina (id, tag, modelo, tipo, setor, checklists)
                VALUES (:id, :tag, :modelo, :tipo, :setor, :checklists)
                ON CONFLICT(id) DO UPDATE SET
                    tag=excluded.tag,
                    modelo=excluded.modelo,
                    tipo=excluded.tipo,
                    setor=excluded.setor,
                    checklists=excluded.checklists
                """,
                {
                    "id": maquina.id,
                    "tag": maquina.tag,
                    "modelo": maquina.modelo,
                    "tipo": maquina.tipo,
                    "setor": maquina.setor,
                    "checklists": to_json(list(maquina.checklists)),
                },
            )

    @staticmethod
    def _from_row(row) -> Maquina:
        return Maquina(
            id=row["id"],
            tag=row["tag"] or "",
            modelo=row["modelo"],
            tipo=row["tipo"],
            setor=row["setor"],
            checklists=[str(t) for t in from_json(row["checklists"], [])],
        )

    def get(self, maquina_id: str) -> Optional[Maquina]:
        with connect(self.db_path) as c:
            row = c.execute("SELECT * FROM maquina WHERE id = ?", (maquina_id,)).fetchone()
        return self._from_row(row) if row else None

    def list_all(self) -> List[Maquina]:
        with connect(self.db_path) as c:
            rows = c.execute("SELECT * FROM maquina ORDER BY id").fetchall()
        return [self._from_row(r) for r in rows]


# -------------------------
# Templates
# -------------------------

class TemplateRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def upsert(self, template: TemplateChecklist) -> None:
        """Grava o template e substitui sua lista de perguntas."""
        with connect(self.db_path) as c:
            c.execute(
                """
                INSERT INTO template (id, titulo, periodicidade)
                VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    titulo=excluded.titulo,
                    periodicidade=excluded.periodicidade
                """,
                (
                    template.id,
                    template.titulo,
                    to_json(template.periodicidade.para_dict()) if template.periodicidade else None,
                ),
            )
            c.execute("DELETE FROM template_questao WHERE template_id = ?", (template.id,))
            c.executemany(
                """
                INSERT INTO template_questao
                    (template_id, questao_id, ordem, texto, categoria_sistema, regra_foto, variavel)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        template.id, q.id, i, q.texto, q.categoria_sistema, q.regra_foto,
                        to_json(q.variavel.para_dict()) if q.variavel else None,
                    )
                    for i, q in enumerate(template.questoes)
                ],
            )

    def set_periodicidade(self, template_id: str, periodicidade: Periodicidade) -> int:
        with connect(self.db_path) as c:
            cur = c.execute(
                "UPDATE template SET periodicidade = ? WHERE id = ?",
                (to_json(periodicidade.para_dict()), template_id),
            )
            return cur.rowcount

    def _montar(self, c, row) -> TemplateChecklist:
        questoes = c.execute(
            """SELECT questao_id, texto, categoria_sistema, regra_foto, variavel
               FROM template_questao WHERE template_id = ? ORDER BY ordem""",
            (row["id"],),
        ).fetchall()
        periodicidade = None
        raw = from_json(row["periodicidade"])
        if raw:
            try:
                periodicidade = Periodicidade.de_dict(raw)
            except (TypeError, ValueError):
                logger.warning("Periodicidade ilegível no template %s: %r", row["id"], raw)
        return TemplateChecklist(
            id=row["id"],
            titulo=row["titulo"] or "",
            questoes=[
                QuestaoTemplate(
                    id=q["questao_id"],
                    texto=q["texto"] or "",
                    categoria_sistema=q["categoria_sistema"],
                    regra_foto=q["regra_foto"] or "none",
                    variavel=VariavelQuestao.de_dict(from_json(q["variavel"])),
                )
                for q in questoes
            ],
            periodicidade=periodicidade,
        )

    def get(self, template_id: str) -> Optional[TemplateChecklist]:
        with connect(self.db_path) as c:
            row = c.execute("SELECT * FROM template WHERE id = ?", (template_id,)).fetchone()
            return self._montar(c, row) if row else None

    def list_all(self) -> List[TemplateChecklist]:
        with connect(self.db_path) as c:
            rows = c.execute("SELECT * FROM template ORDER BY id").fetchall()
            return [self._montar(c, r) for r in rows]


# -------------------------
# Submissões de checklist
# -------------------------

class ChecklistRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def insert(self, resposta: RespostaChecklist) -> bool:
        """Grava a submissão; devolve False se o id já existia (imutável)."""
        criado = parse_instante(resposta.criado_em)
        with connect(self.db_path) as c:
            cur = c.execute(
                """
                INSERT INTO checklist_resposta
                    (id, template_id, maquina_id, usuario_id, criado_em, payload)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO NOTHING
                """,
                (
                    resposta.id,
                    resposta.template_id,
                    resposta.maquina_id,
                    resposta.usuario_id,
                    formatar_instante(criado),
                    to_json(resposta.para_dict()),
                ),
            )
            return cur.rowcount > 0

    def get(self, resposta_id: str) -> Optional[RespostaChecklist]:
        with connect(self.db_path) as c:
            row = c.execute("SELECT payload FROM checklist_resposta WHERE id = ?", (resposta_id,)).fetchone()
        if not row:
            return None
        return RespostaChecklist.de_dict(from_json(row["payload"], {}), id=resposta_id)

    def listar(
        self,
        desde: Optional[datetime] = None,
        ate: Optional[datetime] = None,
        limite: Optional[int] = None,
    ) -> List[RespostaChecklist]:
        """Submissões com instante conhecido em ``[desde, ate]``, mais recentes primeiro."""
        where, params = ["criado_em IS NOT NULL"], []
        if desde is not None:
            where.append("criado_em >= ?")
            params.append(formatar_instante(desde))
        if ate is not None:
            where.append("criado_em <= ?")
            params.append(formatar_instante(ate))
        sql = (
            "SELECT id, criado_em, payload FROM checklist_resposta WHERE "
            + " AND ".join(where)
            + " ORDER BY criado_em DESC, id"
        )
        if limite:
            sql += " LIMIT ?"
            params.append(limite)
        with connect(self.db_path) as c:
            rows = c.execute(sql, params).fetchall()
        return [
            replace(RespostaChecklist.de_dict(from_json(r["payload"], {}), id=r["id"]), criado_em=r["criado_em"])
            for r in rows
        ]

    def marcar_processado(self, resposta_id: str, em: datetime, ncs_geradas: int) -> None:
        with connect(self.db_path) as c:
            c.execute(
                "UPDATE checklist_resposta SET processado_em = ?, ncs_geradas = ? WHERE id = ?",
                (formatar_instante(em), ncs_geradas, resposta_id),
            )

    def ultima_submissao(self, template_id: str, maquina_id: str, ate: datetime) -> Optional[datetime]:
        """Submissão mais recente do par com ``criado_em <= ate``."""
        with connect(self.db_path) as c:
            row = c.execute(
                """
                SELECT criado_em FROM checklist_resposta
                WHERE template_id = ? AND maquina_id = ?
                  AND criado_em IS NOT NULL AND criado_em <= ?
                ORDER BY criado_em DESC
                LIMIT 1
                """,
                (template_id, maquina_id, formatar_instante(ate)),
            ).fetchone()
        return parse_instante(row["criado_em"]) if row else None

    def ultimas_submissoes(self, ate: datetime) -> Dict[Tuple[str, str], datetime]:
        """Mapa (template_id, maquina_id) → última submissão até ``ate``."""
        with connect(self.db_path) as c:
            rows = c.execute(
                """
                SELECT template_id, maquina_id, MAX(criado_em) AS ultima
                FROM checklist_resposta
                WHERE criado_em IS NOT NULL AND criado_em <= ?
                GROUP BY template_id, maquina_id
                """,
                (formatar_instante(ate),),
            ).fetchall()
        out: Dict[Tuple[str, str], datetime] = {}
        for r in rows:
            dt = parse_instante(r["ultima"])
            if dt is not None:
                out[(r["template_id"], r["maquina_id"])] = dt
        return out


# -------------------------
# Não-conformidades
# -------------------------

def _colunas_nc(nc: NaoConformidade) -> Dict[str, Any]:
    return {
        "id": nc.id,
        "ativo_id": nc.ativo.id,
        "ativo_tag": nc.ativo.tag,
        "template_id": nc.template_id,
        "resposta_origem_id": nc.resposta_origem_id,
        "titulo": nc.titulo,
        "titulo_normalizado": nc.titulo_normalizado,
        "categoria_sistema": nc.categoria_sistema,
        "severidade": nc.severidade,
        "severidade_rank": nc.severidade_rank,
        "status": nc.status,
        "criado_em": formatar_instante(nc.criado_em),
        "prazo": formatar_instante(nc.prazo),
        "ano_mes": nc.ano_mes,
        "recorrencia_de_id": nc.recorrencia_de_id,
        "atualizado_em": formatar_instante(nc.atualizado_em),
        "payload": to_json(nc.para_dict()),
    }


class NaoConformidadeRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def insert_many(self, ncs: Iterable[NaoConformidade]) -> int:
        """Insere NCs novas; ids já gravados são ignorados. Devolve quantas entraram."""
        rows = [_colunas_nc(nc) for nc in ncs]
        if not rows:
            return 0
        cols = list(rows[0].keys())
        sql = (
            f"INSERT INTO nao_conformidade ({','.join(cols)}) "
            f"VALUES ({','.join(':' + k for k in cols)}) "
            "ON CONFLICT(id) DO NOTHING"
        )
        inseridas = 0
        with connect(self.db_path) as c:
            for r in rows:
                inseridas += c.execute(sql, r).rowcount
        return inseridas

    def update_fields(self, nc: NaoConformidade, conn: Optional[sqlite3.Connection] = None) -> int:
        """Regrava os campos mutáveis (último a gravar vence)."""
        r = _colunas_nc(nc)
        with connect_or_reuse(self.db_path, conn) as c:
            cur = c.execute(
                """
                UPDATE nao_conformidade SET
                    severidade=:severidade,
                    severidade_rank=:severidade_rank,
                    status=:status,
                    prazo=:prazo,
                    atualizado_em=:atualizado_em,
                    payload=:payload
                WHERE id=:id
                """,
                r,
            )
            return cur.rowcount

    @staticmethod
    def _from_rows(rows) -> List[NaoConformidade]:
        out = []
        for row in rows:
            try:
                out.append(NaoConformidade.de_dict(from_json(row["payload"], {})))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("NC %s ilegível, ignorada: %s", row["id"], e)
        return out

    def get(self, nc_id: str) -> Optional[NaoConformidade]:
        with connect(self.db_path) as c:
            row = c.execute("SELECT id, payload FROM nao_conformidade WHERE id = ?", (nc_id,)).fetchone()
        if not row:
            return None
        return NaoConformidade.de_dict(from_json(row["payload"], {}))

    def recentes_do_ativo(self, ativo_id: str, desde: datetime, ate: datetime) -> List[NcExistente]:
        """Projeções das NCs do ativo criadas em ``[desde, ate]``, mais recentes primeiro."""
        with connect(self.db_path) as c:
            rows = c.execute(
                """
                SELECT id, criado_em, titulo_normalizado, categoria_sistema
                FROM nao_conformidade
                WHERE ativo_id = ? AND criado_em >= ? AND criado_em <= ?
                ORDER BY criado_em DESC, id
                """,
                (ativo_id, formatar_instante(desde), formatar_instante(ate)),
            ).fetchall()
        out = []
        for r in rows:
            criado = parse_instante(r["criado_em"])
            if criado is None:
                continue
            out.append(
                NcExistente(
                    id=r["id"],
                    criado_em=criado,
                    titulo_normalizado=r["titulo_normalizado"] or "",
                    categoria_sistema=r["categoria_sistema"],
                )
            )
        return out

    def listar(self, filtros: Optional[FiltrosNC] = None, limite: Optional[int] = None) -> List[NaoConformidade]:
        """NCs mais recentes primeiro; status/severidade/período filtrados no SQL."""
        filtros = filtros or FiltrosNC()
        where, params = [], []
        if filtros.status:
            where.append(f"status IN ({','.join('?' for _ in filtros.status)})")
            params.extend(filtros.status)
        if filtros.severidades:
            where.append(f"severidade IN ({','.join('?' for _ in filtros.severidades)})")
            params.extend(filtros.severidades)
        if filtros.de:
            where.append("criado_em >= ?")
            params.append(formatar_instante(filtros.de))
        if filtros.ate:
            where.append("criado_em <= ?")
            params.append(formatar_instante(filtros.ate))
        sql = "SELECT id, payload FROM nao_conformidade"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY criado_em DESC, id"
        with connect(self.db_path) as c:
            rows = c.execute(sql, params).fetchall()
        ncs = [nc for nc in self._from_rows(rows) if filtros.corresponde(nc)]
        return ncs[:limite] if limite else ncs

    def recentes(self, limite: Optional[int] = None) -> List[NaoConformidade]:
        limite = limite or DEFAULTS.max_registros_kpi
        with connect(self.db_path) as c:
            rows = c.execute(
                "SELECT id, payload FROM nao_conformidade ORDER BY criado_em DESC, id LIMIT ?",
                (limite,),
            ).fetchall()
        return self._from_rows(rows)


# -------------------------
# Auditoria
# -------------------------

class AuditoriaRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def append(self, nc_id: str, entrada: EntradaAuditoria, conn: Optional[sqlite3.Connection] = None) -> int:
        with connect_or_reuse(self.db_path, conn) as c:
            cur = c.execute(
                "INSERT INTO nc_auditoria (nc_id, ator_id, ator_nome, em, diff) VALUES (?, ?, ?, ?, ?)",
                (nc_id, entrada.ator_id, entrada.ator_nome, formatar_instante(entrada.em), to_json(entrada.diff)),
            )
            return int(cur.lastrowid)

    def list_for(self, nc_id: str, limit: Optional[int] = None) -> List[EntradaAuditoria]:
        """Entradas da NC, mais recentes primeiro, limitadas à página (50)."""
        limit = limit or DEFAULTS.limite_auditoria
        with connect(self.db_path) as c:
            rows = c.execute(
                """
                SELECT id, ator_id, ator_nome, em, diff FROM nc_auditoria
                WHERE nc_id = ?
                ORDER BY em DESC, id DESC
                LIMIT ?
                """,
                (nc_id, limit),
            ).fetchall()
        return [
            EntradaAuditoria(
                id=r["id"],
                ator_id=r["ator_id"],
                ator_nome=r["ator_nome"],
                em=parse_instante(r["em"]),
                diff=from_json(r["diff"], {}),
            )
            for r in rows
        ]
