"""
Explosão de um checklist submetido em registros de não-conformidade.

Cada resposta ``nc`` vira uma NC (severidade fixa ``media``: falha de
pergunta não é graduada pelo operador) e cada NC extra com título vira
outra, com a severidade e as flags informadas pelo operador. Todas recebem
prazo, vínculo de recorrência e os campos comuns da submissão.

A função é pura: quem chama busca máquina, template, janela de NCs
recentes e telemetria, e grava o resultado.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, List, Mapping, Optional, Sequence

from frota.domain.valores import parse_instante
from frota.domain.models import (
    AtivoVinculado,
    Criador,
    Maquina,
    NaoConformidade,
    NcExistente,
    QuestaoTemplate,
    RespostaChecklist,
)
from frota.domain.normalizacao import normalizar_texto
from frota.domain.policies import SEVERIDADE_PADRAO, calcular_prazo, resolver_severidade
from frota.domain.recorrencia import ESTRATEGIA_PADRAO, EstrategiaRecorrencia

logger = logging.getLogger(__name__)


def instante_da_submissao(resposta: RespostaChecklist, agora: Optional[datetime] = None) -> datetime:
    """`criado_em` da submissão; ausente ou inválido → agora."""
    criado = parse_instante(resposta.criado_em)
    if criado is not None:
        return criado.astimezone(timezone.utc)
    return agora or datetime.now(timezone.utc)


def _criador(resposta: RespostaChecklist) -> Criador:
    return Criador(
        id=resposta.usuario_id,
        matricula=resposta.operador_matricula or resposta.usuario_id,
        nome=resposta.operador_nome,
    )


def explodir_checklist(
    resposta: RespostaChecklist,
    maquina: Optional[Maquina],
    questoes: Mapping[str, QuestaoTemplate],
    recentes: Sequence[NcExistente],
    telemetria: Optional[Dict[str, Any]] = None,
    agora: Optional[datetime] = None,
    estrategia: EstrategiaRecorrencia = ESTRATEGIA_PADRAO,
    fuso: Optional[tzinfo] = None,
) -> List[NaoConformidade]:
    """Gera as NCs de uma submissão, na ordem: perguntas, depois extras.

    Args:
        resposta: Submissão do checklist.
        maquina: Máquina resolvida (None → retrato só com o id).
        questoes: Mapa questao_id → QuestaoTemplate do template.
        recentes: NCs do mesmo ativo já filtradas pela janela de recorrência.
        telemetria: Retrato opaco de telemetria, ou None.
        agora: Instante usado quando a submissão não traz `criado_em` válido.
        estrategia: Regra de recorrência.

    Returns:
        Lista (possivelmente vazia) de NCs prontas para gravação.
    """
    criado_em = instante_da_submissao(resposta, agora)
    ativo = maquina.retrato() if maquina else AtivoVinculado(id=resposta.maquina_id)
    criador = _criador(resposta)
    ids_usados: set = set()

    def _novo_id(sufixo: str) -> str:
        base = f"nc::{resposta.id}::{sufixo}"
        candidato, n = base, 1
        while candidato in ids_usados:
            n += 1
            candidato = f"{base}-{n}"
        ids_usados.add(candidato)
        return candidato

    def _montar(
        sufixo: str,
        titulo: str,
        descricao: Optional[str],
        severidade: Optional[str],
        fonte: str,
        questao_origem_id: Optional[str] = None,
        categoria_sistema: Optional[str] = None,
        risco_seguranca: Optional[bool] = None,
        impacto_disponibilidade: Optional[bool] = None,
    ) -> NaoConformidade:
        severidade = resolver_severidade(severidade)
        recorrencia = estrategia.encontrar(normalizar_texto(titulo), categoria_sistema, recentes)
        return NaoConformidade(
            id=_novo_id(sufixo),
            titulo=titulo,
            descricao=descricao,
            severidade=severidade,
            status="aberta",
            risco_seguranca=bool(risco_seguranca),
            impacto_disponibilidade=bool(impacto_disponibilidade),
            prazo=calcular_prazo(criado_em, severidade, fuso),
            criado_em=criado_em,
            criado_por=criador,
            ativo=ativo,
            template_id=resposta.template_id,
            fonte=fonte,
            resposta_origem_id=resposta.id,
            questao_origem_id=questao_origem_id,
            causa_raiz=None,
            acoes=[],
            recorrencia_de_id=recorrencia,
            telemetria=telemetria,
            categoria_sistema=categoria_sistema,
        )

    ncs: List[NaoConformidade] = []

    for item in resposta.respostas:
        if item.resposta != "nc":
            continue
        questao = questoes.get(item.questao_id)
        if questao is None:
            logger.warning(
                "Pergunta %s não encontrada no template %s (resposta %s)",
                item.questao_id, resposta.template_id, resposta.id,
            )
        ncs.append(
            _montar(
                sufixo=item.questao_id,
                titulo=questao.texto if questao and questao.texto else f"Pergunta {item.questao_id}",
                descricao=item.observacao,
                severidade=SEVERIDADE_PADRAO,
                fonte="checklist_question",
                questao_origem_id=item.questao_id,
                categoria_sistema=questao.categoria_sistema if questao else None,
            )
        )

    for n, extra in enumerate(resposta.extras, start=1):
        titulo = (extra.titulo or "").strip() if isinstance(extra.titulo, str) else ""
        if not titulo:
            continue
        ncs.append(
            _montar(
                sufixo=f"extra-{n}",
                titulo=titulo,
                descricao=extra.descricao,
                severidade=extra.severidade,
                fonte="checklist_extra",
                risco_seguranca=extra.risco_seguranca,
                impacto_disponibilidade=extra.impacto_disponibilidade,
            )
        )

    return ncs
