"""
Máquina de estados da não-conformidade.

Os quatro estados em aberto (aberta, em_execucao, aguardando_peca,
bloqueada) transitam livremente entre si. Só a entrada em ``resolvida``
é controlada (regra CAPA):

- exige ao menos uma ação corretiva concluída;
- se a NC é recorrência de outra, exige também causa raiz preenchida e
  ao menos uma ação preventiva marcada como eficaz.

Não há saída de ``resolvida``: reabrir uma NC não é suportado.

A lista de ações pedida substitui a anterior por inteiro (não há merge);
lista ausente ou vazia mantém as ações atuais.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, List, Mapping, Optional

from frota.domain.valores import formatar_instante, parse_bool
from frota.domain.erros import ErroValidacao
from frota.domain.models import (
    STATUS_NC,
    STATUS_RESOLVIDA,
    Acao,
    Ator,
    EntradaAuditoria,
    NaoConformidade,
    sanitizar_telemetria,
)
from frota.domain.policies import rank_severidade, resolver_prazo_solicitado, resolver_severidade

ATOR_SISTEMA = "system"


class _Inalterado:
    def __repr__(self) -> str:
        return "INALTERADO"


# marca "campo não informado" onde None tem significado (limpar)
INALTERADO: Any = _Inalterado()


@dataclass
class PatchNC:
    """Pedido de alteração de uma NC; campos None não foram pedidos."""
    status: Optional[str] = None
    severidade: Optional[str] = None
    prazo: Any = None
    causa_raiz: Any = INALTERADO            # str → aparada; None → limpa
    acoes: Optional[List[Acao]] = None
    risco_seguranca: Optional[bool] = None
    impacto_disponibilidade: Optional[bool] = None
    telemetria: Optional[Dict[str, Any]] = None

    @classmethod
    def de_dict(cls, raw: Mapping[str, Any]) -> "PatchNC":
        def pega(*chaves):
            for k in chaves:
                if k in raw:
                    return True, raw[k]
            return False, None

        _, status = pega("status")
        _, severidade = pega("severidade", "severity")
        _, prazo = pega("prazo", "dueAt")
        tem_causa, causa = pega("causa_raiz", "rootCause")
        tem_acoes, acoes_raw = pega("acoes", "actions")
        _, risco = pega("risco_seguranca", "safetyRisk")
        _, impacto = pega("impacto_disponibilidade", "impactAvailability")
        _, telemetria = pega("telemetria", "telemetryRef", "telemetry")

        acoes = None
        if tem_acoes and isinstance(acoes_raw, list):
            acoes = [a for a in (Acao.de_dict(x) for x in acoes_raw) if a]

        return cls(
            status=str(status).strip() if status is not None else None,
            severidade=severidade,
            prazo=prazo,
            causa_raiz=(causa if causa is None or isinstance(causa, str) else str(causa)) if tem_causa else INALTERADO,
            acoes=acoes,
            risco_seguranca=parse_bool(risco),
            impacto_disponibilidade=parse_bool(impacto),
            telemetria=sanitizar_telemetria(telemetria),
        )


@dataclass
class ResultadoTransicao:
    nc: NaoConformidade
    diff: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    auditoria: Optional[EntradaAuditoria] = None

    @property
    def alterou(self) -> bool:
        return bool(self.diff)


def tem_corretiva_concluida(acoes: List[Acao]) -> bool:
    return any(a.tipo == "corretiva" and a.concluida_em is not None for a in acoes)


def tem_preventiva_eficaz(acoes: List[Acao]) -> bool:
    return any(a.tipo == "preventiva" and a.eficaz is True for a in acoes)


def validar_capa(status: str, acoes: List[Acao], causa_raiz: Optional[str], recorrente: bool) -> None:
    """Levanta ErroValidacao quando a NC não pode ficar ``resolvida``."""
    if status != STATUS_RESOLVIDA:
        return
    if not tem_corretiva_concluida(acoes):
        raise ErroValidacao(
            "corretiva_nao_concluida",
            "Finalize ao menos uma ação corretiva antes de encerrar a NC.",
        )
    if recorrente:
        if not causa_raiz or not causa_raiz.strip():
            raise ErroValidacao(
                "causa_raiz_ausente",
                "Preencha a causa raiz para encerrar uma NC recorrente.",
            )
        if not tem_preventiva_eficaz(acoes):
            raise ErroValidacao(
                "preventiva_eficaz_ausente",
                "Marque pelo menos uma ação preventiva como eficaz.",
            )


def _resolver_causa_raiz(existente: NaoConformidade, pedida: Any) -> Optional[str]:
    if pedida is INALTERADO:
        return existente.causa_raiz
    if pedida is None:
        return None
    return str(pedida).strip() or None


def _resolver_prazo(existente: NaoConformidade, severidade: str, pedido: Any, fuso: Optional[tzinfo]) -> datetime:
    if pedido is not None and pedido != "":
        return resolver_prazo_solicitado(existente.criado_em, severidade, pedido, fuso)
    if severidade == existente.severidade and existente.prazo is not None:
        # mesma severidade: o prazo atual vale, sujeito às mesmas regras
        return resolver_prazo_solicitado(existente.criado_em, severidade, existente.prazo, fuso)
    return resolver_prazo_solicitado(existente.criado_em, severidade, None, fuso)


def _snapshot(nc_campos: Dict[str, Any]) -> Dict[str, Any]:
    """Representação comparável/serializável dos campos auditados."""
    return {
        "status": nc_campos["status"],
        "severidade": nc_campos["severidade"],
        "severidade_rank": rank_severidade(nc_campos["severidade"]),
        "prazo": formatar_instante(nc_campos["prazo"]),
        "causa_raiz": nc_campos["causa_raiz"],
        "risco_seguranca": nc_campos["risco_seguranca"],
        "impacto_disponibilidade": nc_campos["impacto_disponibilidade"],
        "acoes": [a.para_dict() for a in nc_campos["acoes"]],
        "telemetria": nc_campos["telemetria"],
    }


def aplicar_transicao(
    existente: NaoConformidade,
    patch: PatchNC,
    ator: Optional[Ator] = None,
    agora: Optional[datetime] = None,
    fuso: Optional[tzinfo] = None,
) -> ResultadoTransicao:
    """Valida e aplica uma alteração sobre a NC.

    Returns:
        ResultadoTransicao com a NC atualizada, o diff por campo
        ({campo: {before, after}}) e a entrada de auditoria. Diff vazio
        significa no-op: a NC volta inalterada e sem auditoria.

    Raises:
        ErroValidacao: status inválido, reabertura, ou regra CAPA violada.
    """
    severidade = resolver_severidade(patch.severidade if patch.severidade is not None else existente.severidade)
    status = patch.status if patch.status is not None else existente.status
    if status not in STATUS_NC:
        raise ErroValidacao("status_invalido", f"Status inválido: {status!r}")
    if existente.status == STATUS_RESOLVIDA and status != STATUS_RESOLVIDA:
        raise ErroValidacao("reabertura_nao_suportada", "NC resolvida não pode ser reaberta.")

    proximo = {
        "status": status,
        "severidade": severidade,
        "prazo": _resolver_prazo(existente, severidade, patch.prazo, fuso),
        "causa_raiz": _resolver_causa_raiz(existente, patch.causa_raiz),
        "acoes": list(patch.acoes) if patch.acoes else list(existente.acoes),
        "risco_seguranca": existente.risco_seguranca if patch.risco_seguranca is None else patch.risco_seguranca,
        "impacto_disponibilidade": (
            existente.impacto_disponibilidade
            if patch.impacto_disponibilidade is None
            else patch.impacto_disponibilidade
        ),
        "telemetria": existente.telemetria if patch.telemetria is None else patch.telemetria,
    }

    validar_capa(status, proximo["acoes"], proximo["causa_raiz"], bool(existente.recorrencia_de_id))

    antes = _snapshot({
        "status": existente.status,
        "severidade": existente.severidade,
        "prazo": existente.prazo,
        "causa_raiz": existente.causa_raiz,
        "risco_seguranca": existente.risco_seguranca,
        "impacto_disponibilidade": existente.impacto_disponibilidade,
        "acoes": existente.acoes,
        "telemetria": existente.telemetria,
    })
    depois = _snapshot(proximo)
    diff = {
        campo: {"before": antes[campo], "after": depois[campo]}
        for campo in depois
        if antes[campo] != depois[campo]
    }
    if not diff:
        return ResultadoTransicao(nc=existente)

    agora = agora or datetime.now(timezone.utc)
    diff["atualizado_em"] = {
        "before": formatar_instante(existente.atualizado_em),
        "after": formatar_instante(agora),
    }
    atualizada = replace(existente, atualizado_em=agora, **proximo)
    auditoria = EntradaAuditoria(
        ator_id=(ator.id if ator and ator.id else ATOR_SISTEMA),
        ator_nome=ator.nome if ator else None,
        em=agora,
        diff=diff,
    )
    return ResultadoTransicao(nc=atualizada, diff=diff, auditoria=auditoria)
