"""
Conformidade de periodicidade (template x máquina).

Um template com periodicidade ativa exige que cada máquina vinculada a ele
receba ao menos uma submissão dentro da janela. A janela é aproximada em
dias: semana = 7, mês = 30 (não acompanha o calendário real).

Tudo aqui é puro: quem chama fornece templates, máquinas e o mapa de
últimas submissões por par.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from frota.domain.valores import formatar_instante
from frota.domain.erros import ErroValidacao
from frota.domain.models import (
    ANCORAS_PERIODICIDADE,
    UNIDADES_PERIODICIDADE,
    Maquina,
    Periodicidade,
    TemplateChecklist,
)
from frota.domain.normalizacao import chave_ordenacao

logger = logging.getLogger(__name__)

CONFORME = "compliant"
NAO_CONFORME = "non_compliant"

Par = Tuple[str, str]   # (template_id, maquina_id)


@dataclass
class ParPeriodicidade:
    template: TemplateChecklist
    maquina: Maquina

    @property
    def chave(self) -> Par:
        return (self.template.id, self.maquina.id)


@dataclass
class RegistroConformidade:
    template_id: str
    template_nome: str
    maquina_id: str
    maquina_nome: str
    ultima_submissao: Optional[datetime]
    quantidade: int
    unidade: str
    janela_dias: int
    ancora: str
    status: str

    @property
    def conforme(self) -> bool:
        return self.status == CONFORME

    def para_dict(self) -> Dict[str, Any]:
        return {
            "template_id": self.template_id,
            "template_nome": self.template_nome,
            "maquina_id": self.maquina_id,
            "maquina_nome": self.maquina_nome,
            "ultima_submissao": formatar_instante(self.ultima_submissao),
            "quantidade": self.quantidade,
            "unidade": self.unidade,
            "janela_dias": self.janela_dias,
            "ancora": self.ancora,
            "status": self.status,
        }


@dataclass
class ResultadoConformidade:
    referencia: datetime
    registros: List[RegistroConformidade] = field(default_factory=list)
    ignorados: List[Dict[str, str]] = field(default_factory=list)

    @property
    def resumo(self) -> Dict[str, int]:
        return resumir_conformidade(self.registros)


def periodicidade_valida(p: Optional[Periodicidade]) -> Optional[str]:
    """None quando a periodicidade pode ser avaliada; senão o motivo."""
    if p is None:
        return "sem_periodicidade"
    if p.unidade not in UNIDADES_PERIODICIDADE:
        return "unidade_invalida"
    if not isinstance(p.quantidade, int) or p.quantidade < 1:
        return "quantidade_invalida"
    return None


def montar_pares(
    templates: Iterable[TemplateChecklist],
    maquinas: Iterable[Maquina],
    template_id: Optional[str] = None,
    maquina_id: Optional[str] = None,
) -> List[ParPeriodicidade]:
    """Pares (template ativo, máquina) a avaliar.

    Um par entra quando a máquina lista o template em ``checklists`` ou
    quando o par foi pedido explicitamente (template_id e maquina_id).
    """
    ativos = [
        t for t in templates
        if t.periodicidade is not None and t.periodicidade.ativa
        and (template_id is None or t.id == template_id)
    ]
    pares: List[ParPeriodicidade] = []
    for maquina in maquinas:
        if maquina_id is not None and maquina.id != maquina_id:
            continue
        vinculados = set(maquina.checklists or [])
        for template in ativos:
            explicito = template.id == template_id and maquina.id == maquina_id
            if template.id in vinculados or explicito:
                pares.append(ParPeriodicidade(template=template, maquina=maquina))
    return pares


def ultimas_por_par(
    submissoes: Iterable[Tuple[str, str, datetime]],
    referencia: datetime,
) -> Dict[Par, datetime]:
    """Reduz (template_id, maquina_id, criado_em) à submissão mais recente ≤ referência."""
    ultimas: Dict[Par, datetime] = {}
    for template_id, maquina_id, criado_em in submissoes:
        if criado_em is None or criado_em > referencia:
            continue
        chave = (template_id, maquina_id)
        if chave not in ultimas or criado_em > ultimas[chave]:
            ultimas[chave] = criado_em
    return ultimas


def status_conformidade(ultima: Optional[datetime], referencia: datetime, janela_dias: int) -> str:
    if ultima is None or ultima > referencia:
        return NAO_CONFORME
    return CONFORME if referencia - ultima <= timedelta(days=janela_dias) else NAO_CONFORME


def _ordenar(registros: List[RegistroConformidade]) -> List[RegistroConformidade]:
    return sorted(
        registros,
        key=lambda r: (
            0 if r.status == NAO_CONFORME else 1,
            chave_ordenacao(r.template_nome),
            chave_ordenacao(r.maquina_nome),
        ),
    )


def calcular_conformidade(
    pares: Sequence[ParPeriodicidade],
    ultimas: Mapping[Par, Optional[datetime]],
    referencia: Optional[datetime] = None,
) -> ResultadoConformidade:
    """Avalia cada par contra sua janela e aplica a ordenação de exibição.

    Ordem final: não conformes primeiro, depois nome do template, depois
    nome da máquina. Pares com periodicidade mal configurada são pulados
    e listados em ``ignorados`` sem abortar o lote.
    """
    referencia = referencia or datetime.now(timezone.utc)
    resultado = ResultadoConformidade(referencia=referencia)

    for par in pares:
        periodicidade = par.template.periodicidade
        motivo = periodicidade_valida(periodicidade)
        if motivo:
            logger.warning(
                "Par ignorado (template=%s, maquina=%s): %s",
                par.template.id, par.maquina.id, motivo,
            )
            resultado.ignorados.append(
                {"template_id": par.template.id, "maquina_id": par.maquina.id, "motivo": motivo}
            )
            continue

        ultima = ultimas.get(par.chave)
        resultado.registros.append(
            RegistroConformidade(
                template_id=par.template.id,
                template_nome=par.template.titulo or par.template.id,
                maquina_id=par.maquina.id,
                maquina_nome=par.maquina.nome_exibicao,
                ultima_submissao=ultima,
                quantidade=periodicidade.quantidade,
                unidade=periodicidade.unidade,
                janela_dias=periodicidade.janela_dias,
                ancora=periodicidade.ancora,
                status=status_conformidade(ultima, referencia, periodicidade.janela_dias),
            )
        )

    resultado.registros = _ordenar(resultado.registros)
    return resultado


def resumir_conformidade(registros: Iterable[RegistroConformidade]) -> Dict[str, int]:
    registros = list(registros)
    conformes = sum(1 for r in registros if r.status == CONFORME)
    return {
        "total": len(registros),
        "conformes": conformes,
        "nao_conformes": len(registros) - conformes,
    }


AUSENTE: Any = object()


def configurar_periodicidade(
    atual: Optional[Periodicidade],
    ativa: Any,
    unidade: Any = AUSENTE,
    quantidade: Any = AUSENTE,
    ancora: Any = AUSENTE,
    estrito: bool = False,
) -> Periodicidade:
    """Valida e normaliza uma nova configuração de periodicidade.

    Campos não informados herdam da configuração atual (ou dos padrões
    ``day``/1/``last_submission``). Com a periodicidade desativada valores
    ruins de unidade/quantidade são ignorados; ativa (ou com ``estrito``,
    usado no cadastro de templates), eles são rejeitados.

    Raises:
        ErroValidacao: ``ativa`` não booleano, unidade/quantidade/âncora
            inválidas, ou âncora ``calendar`` numa periodicidade ativa.
    """
    if not isinstance(ativa, bool):
        raise ErroValidacao("ativa_invalida", "Campo ativa deve ser booleano")

    nova_unidade = atual.unidade if atual else "day"
    nova_quantidade = atual.quantidade if atual else 1
    nova_ancora = atual.ancora if atual else "last_submission"

    if unidade in UNIDADES_PERIODICIDADE:
        nova_unidade = unidade
    elif (ativa or estrito) and unidade is not AUSENTE and unidade is not None:
        raise ErroValidacao("unidade_invalida", "Unidade de periodicidade inválida")

    if isinstance(quantidade, (int, float)) and not isinstance(quantidade, bool) and math.isfinite(quantidade):
        nova_quantidade = max(1, int(math.floor(quantidade)))
    elif (ativa or estrito) and quantidade is not AUSENTE and quantidade is not None:
        raise ErroValidacao("quantidade_invalida", "Quantidade inválida")

    if ancora in ANCORAS_PERIODICIDADE:
        nova_ancora = ancora
    elif ancora is not AUSENTE and ancora is not None:
        raise ErroValidacao("ancora_invalida", "Âncora inválida")

    if ativa and nova_ancora != "last_submission":
        raise ErroValidacao("ancora_nao_suportada", "Âncora calendar ainda não suportada")
    if ativa and nova_unidade not in UNIDADES_PERIODICIDADE:
        raise ErroValidacao("unidade_invalida", "Unidade de periodicidade obrigatória")
    if ativa and nova_quantidade < 1:
        raise ErroValidacao("quantidade_invalida", "Quantidade deve ser >= 1")

    return Periodicidade(quantidade=nova_quantidade, unidade=nova_unidade, ativa=ativa, ancora=nova_ancora)
