"""
Variáveis de perguntas: alertas da tela inicial e periodicidade própria.

Uma pergunta pode pedir um valor extra ao operador (a "variável"). Dois
relatórios derivam disso:

- alertas: respostas recentes cuja resposta casa com o gatilho da regra
  de alerta da variável; fica só o mais recente por
  (variável, máquina, template, pergunta);
- periodicidade: para cada máquina e cada template vinculado, as
  variáveis com periodicidade ativa precisam ter recebido valor dentro
  da janela.

Funções puras: quem chama fornece submissões, templates e máquinas.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from frota.domain.models import ItemResposta, Maquina, RegraAlerta, RespostaChecklist, TemplateChecklist
from frota.domain.normalizacao import chave_ordenacao
from frota.domain.periodicidade import (
    NAO_CONFORME,
    periodicidade_valida,
    resumir_conformidade,
    status_conformidade,
)
from frota.domain.valores import formatar_instante, parse_instante

logger = logging.getLogger(__name__)

ChaveVariavel = Tuple[str, str, str]    # (template_id, maquina_id, questao_id)


def alerta_dispara(regra: RegraAlerta, item: ItemResposta) -> bool:
    if not regra.exibir_inicio:
        return False
    if regra.gatilho == "always":
        return True
    return regra.gatilho == item.resposta


@dataclass
class AlertaVariavel:
    variavel_nome: str
    template_id: str
    template_nome: str
    questao_id: str
    questao_texto: str
    maquina_id: str
    maquina_nome: str
    maquina_tag: str
    resposta_id: str
    resposta_em: datetime
    regra: RegraAlerta

    @property
    def chave(self) -> Tuple[str, str, str, str]:
        return (self.variavel_nome, self.maquina_id, self.template_id, self.questao_id)

    def para_dict(self) -> Dict[str, Any]:
        return {
            "variavel_nome": self.variavel_nome,
            "template_id": self.template_id,
            "template_nome": self.template_nome,
            "questao_id": self.questao_id,
            "questao_texto": self.questao_texto,
            "maquina_id": self.maquina_id,
            "maquina_nome": self.maquina_nome,
            "maquina_tag": self.maquina_tag,
            "resposta_id": self.resposta_id,
            "resposta_em": formatar_instante(self.resposta_em),
            "alerta": self.regra.para_dict(),
        }


def calcular_alertas(
    submissoes: Iterable[RespostaChecklist],
    templates: Mapping[str, TemplateChecklist],
    maquinas: Mapping[str, Maquina],
) -> List[AlertaVariavel]:
    """Alertas ativos, um por (variável, máquina, template, pergunta), mais recentes primeiro.

    Submissões de template ou máquina não cadastrados, ou sem instante
    válido, são ignoradas.
    """
    unicos: Dict[Tuple[str, str, str, str], AlertaVariavel] = {}
    for resposta in submissoes:
        template = templates.get(resposta.template_id)
        maquina = maquinas.get(resposta.maquina_id)
        em = parse_instante(resposta.criado_em)
        if template is None or maquina is None or em is None:
            continue
        questoes = template.mapa_questoes()
        for item in resposta.respostas:
            questao = questoes.get(item.questao_id)
            if questao is None or questao.variavel is None or questao.variavel.alerta is None:
                continue
            regra = questao.variavel.alerta
            if not alerta_dispara(regra, item):
                continue
            alerta = AlertaVariavel(
                variavel_nome=questao.variavel.nome,
                template_id=template.id,
                template_nome=template.titulo or template.id,
                questao_id=questao.id,
                questao_texto=questao.texto,
                maquina_id=maquina.id,
                maquina_nome=maquina.nome_exibicao,
                maquina_tag=maquina.tag or "",
                resposta_id=resposta.id,
                resposta_em=em,
                regra=regra,
            )
            atual = unicos.get(alerta.chave)
            if atual is None or alerta.resposta_em > atual.resposta_em:
                unicos[alerta.chave] = alerta

    return sorted(unicos.values(), key=lambda a: (-a.resposta_em.timestamp(), a.resposta_id, a.questao_id))


def ultimas_por_variavel(
    submissoes: Iterable[RespostaChecklist],
    referencia: datetime,
) -> Dict[ChaveVariavel, datetime]:
    """Última submissão ≤ referência em que a pergunta recebeu valor de variável."""
    ultimas: Dict[ChaveVariavel, datetime] = {}
    for resposta in submissoes:
        em = parse_instante(resposta.criado_em)
        if em is None or em > referencia:
            continue
        for item in resposta.respostas:
            if item.valor_variavel is None:
                continue
            chave = (resposta.template_id, resposta.maquina_id, item.questao_id)
            if chave not in ultimas or em > ultimas[chave]:
                ultimas[chave] = em
    return ultimas


@dataclass
class RegistroVariavel:
    variavel_nome: str
    template_id: str
    template_nome: str
    questao_id: str
    questao_texto: str
    maquina_id: str
    maquina_nome: str
    maquina_tag: str
    ultima_submissao: Optional[datetime]
    quantidade: int
    unidade: str
    janela_dias: int
    ancora: str
    status: str

    def para_dict(self) -> Dict[str, Any]:
        return {
            "variavel_nome": self.variavel_nome,
            "template_id": self.template_id,
            "template_nome": self.template_nome,
            "questao_id": self.questao_id,
            "questao_texto": self.questao_texto,
            "maquina_id": self.maquina_id,
            "maquina_nome": self.maquina_nome,
            "maquina_tag": self.maquina_tag,
            "ultima_submissao": formatar_instante(self.ultima_submissao),
            "quantidade": self.quantidade,
            "unidade": self.unidade,
            "janela_dias": self.janela_dias,
            "ancora": self.ancora,
            "status": self.status,
        }


@dataclass
class ResultadoVariaveis:
    referencia: datetime
    registros: List[RegistroVariavel] = field(default_factory=list)
    ignorados: List[Dict[str, str]] = field(default_factory=list)

    @property
    def resumo(self) -> Dict[str, int]:
        return resumir_conformidade(self.registros)


def calcular_periodicidade_variaveis(
    templates: Iterable[TemplateChecklist],
    maquinas: Iterable[Maquina],
    ultimas: Mapping[ChaveVariavel, Optional[datetime]],
    referencia: Optional[datetime] = None,
) -> ResultadoVariaveis:
    """Status de cada variável com periodicidade ativa, por máquina vinculada ao template.

    Ordem final: não conformes primeiro, depois nome da variável, depois
    nome da máquina.
    """
    referencia = referencia or datetime.now(timezone.utc)
    resultado = ResultadoVariaveis(referencia=referencia)
    por_id = {t.id: t for t in templates}

    for maquina in maquinas:
        for template_id in dict.fromkeys(maquina.checklists or []):
            template = por_id.get(template_id)
            if template is None:
                continue
            for questao in template.questoes:
                variavel = questao.variavel
                if variavel is None or variavel.periodicidade is None or not variavel.periodicidade.ativa:
                    continue
                periodicidade = variavel.periodicidade
                motivo = periodicidade_valida(periodicidade)
                if motivo:
                    logger.warning(
                        "Variável ignorada (template=%s, questao=%s, maquina=%s): %s",
                        template.id, questao.id, maquina.id, motivo,
                    )
                    resultado.ignorados.append(
                        {"template_id": template.id, "questao_id": questao.id, "maquina_id": maquina.id, "motivo": motivo}
                    )
                    continue
                ultima = ultimas.get((template.id, maquina.id, questao.id))
                resultado.registros.append(
                    RegistroVariavel(
                        variavel_nome=variavel.nome,
                        template_id=template.id,
                        template_nome=template.titulo or template.id,
                        questao_id=questao.id,
                        questao_texto=questao.texto,
                        maquina_id=maquina.id,
                        maquina_nome=maquina.nome_exibicao,
                        maquina_tag=maquina.tag or "",
                        ultima_submissao=ultima,
                        quantidade=periodicidade.quantidade,
                        unidade=periodicidade.unidade,
                        janela_dias=periodicidade.janela_dias,
                        ancora=periodicidade.ancora,
                        status=status_conformidade(ultima, referencia, periodicidade.janela_dias),
                    )
                )

    resultado.registros.sort(
        key=lambda r: (
            0 if r.status == NAO_CONFORME else 1,
            chave_ordenacao(r.variavel_nome),
            chave_ordenacao(r.maquina_nome),
            chave_ordenacao(r.template_nome),
            r.questao_id,
        )
    )
    return resultado
