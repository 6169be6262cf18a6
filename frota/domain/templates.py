"""
Validação do cadastro de templates de checklist.

Os ``de_dict`` dos modelos são tolerantes (leem o que já está gravado);
aqui o template recebido no cadastro é conferido campo a campo e
qualquer valor inválido vira ErroValidacao com motivo específico.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Set

from frota.domain.erros import ErroValidacao
from frota.domain.models import (
    CONDICOES_VARIAVEL,
    TIPOS_VARIAVEL,
    Periodicidade,
    QuestaoTemplate,
    RegraAlerta,
    TemplateChecklist,
    VariavelQuestao,
)
from frota.domain.periodicidade import AUSENTE, configurar_periodicidade

REGRAS_FOTO = ("none", "optional", "required_nc")


def _campo(raw: Mapping[str, Any], *chaves: str, default: Any = AUSENTE) -> Any:
    for k in chaves:
        if raw.get(k) is not None:
            return raw[k]
    return default


def _texto(val: Any) -> Optional[str]:
    if val is AUSENTE or val is None:
        return None
    s = str(val).strip()
    return s or None


def validar_periodicidade(raw: Any, onde: str = "template") -> Optional[Periodicidade]:
    """Periodicidade do cadastro; valores ruins são rejeitados mesmo se inativa."""
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise ErroValidacao("periodicidade_invalida", f"Periodicidade de {onde} deve ser um objeto")
    try:
        return configurar_periodicidade(
            None,
            _campo(raw, "ativa", "active", default=False),
            unidade=_campo(raw, "unidade", "unit"),
            quantidade=_campo(raw, "quantidade", "quantity"),
            ancora=_campo(raw, "ancora", "anchor"),
            estrito=True,
        )
    except ErroValidacao as e:
        raise ErroValidacao(e.motivo, f"{e.mensagem} ({onde})") from e


def validar_alerta(raw: Any, onde: str) -> Optional[RegraAlerta]:
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise ErroValidacao("alerta_invalido", f"Regra de alerta de {onde} deve ser um objeto")
    mensagem = _texto(_campo(raw, "mensagem", "message"))
    if not mensagem:
        raise ErroValidacao("alerta_invalido", f"Regra de alerta de {onde} sem mensagem")
    gatilho = _campo(raw, "gatilho", "triggerCondition", default="nc")
    if gatilho not in CONDICOES_VARIAVEL:
        raise ErroValidacao("gatilho_invalido", f"Gatilho de alerta inválido em {onde}: {gatilho!r}")
    exibir = _campo(raw, "exibir_inicio", "showOnHomePage", default=True)
    if not isinstance(exibir, bool):
        raise ErroValidacao("alerta_invalido", f"exibir_inicio deve ser booleano em {onde}")
    return RegraAlerta(
        mensagem=mensagem,
        cor=_texto(_campo(raw, "cor", "color")) or "red",
        gatilho=gatilho,
        exibir_inicio=exibir,
    )


def validar_variavel(raw: Any, questao_id: str) -> Optional[VariavelQuestao]:
    if raw is None:
        return None
    onde = f"pergunta {questao_id}"
    if not isinstance(raw, Mapping):
        raise ErroValidacao("variavel_invalida", f"Variável da {onde} deve ser um objeto")
    nome = _texto(_campo(raw, "nome", "name"))
    if not nome:
        raise ErroValidacao("variavel_invalida", f"Variável da {onde} sem nome")
    tipo = _campo(raw, "tipo", "type", default="text")
    if tipo not in TIPOS_VARIAVEL:
        raise ErroValidacao("tipo_variavel_invalido", f"Tipo de variável inválido na {onde}: {tipo!r}")
    condicao = _campo(raw, "condicao", "condition", default="always")
    if condicao not in CONDICOES_VARIAVEL:
        raise ErroValidacao("condicao_invalida", f"Condição de variável inválida na {onde}: {condicao!r}")
    return VariavelQuestao(
        nome=nome,
        tipo=tipo,
        condicao=condicao,
        alerta=validar_alerta(_campo(raw, "alerta", "alertRule", default=None), onde),
        periodicidade=validar_periodicidade(_campo(raw, "periodicidade", "periodicity", default=None), onde),
    )


def validar_template(raw: Any) -> TemplateChecklist:
    """Monta o template do cadastro.

    Raises:
        ErroValidacao: id ausente, pergunta sem id ou repetida, regra de
            foto desconhecida, variável ou periodicidade inválidas.
    """
    if not isinstance(raw, Mapping):
        raise ErroValidacao("template_invalido", "Template deve ser um objeto JSON")
    template_id = _texto(_campo(raw, "id"))
    if not template_id:
        raise ErroValidacao("template_invalido", "Template sem id")

    questoes: List[QuestaoTemplate] = []
    vistos: Set[str] = set()
    brutas = _campo(raw, "questoes", "questions", default=[])
    if not isinstance(brutas, list):
        raise ErroValidacao("template_invalido", "Perguntas devem vir numa lista")
    for i, q in enumerate(brutas, start=1):
        questao_id = _texto(_campo(q, "id")) if isinstance(q, Mapping) else None
        if not questao_id:
            raise ErroValidacao("questao_invalida", f"Pergunta {i} sem id")
        if questao_id in vistos:
            raise ErroValidacao("questao_duplicada", f"Pergunta repetida: {questao_id}")
        vistos.add(questao_id)
        regra_foto = _campo(q, "regra_foto", "photoRule", default="none")
        if regra_foto not in REGRAS_FOTO:
            raise ErroValidacao("regra_foto_invalida", f"Regra de foto inválida na pergunta {questao_id}: {regra_foto!r}")
        base = QuestaoTemplate.de_dict({**q, "id": questao_id, "variavel": None, "variable": None})
        base.variavel = validar_variavel(_campo(q, "variavel", "variable", default=None), questao_id)
        questoes.append(base)

    return TemplateChecklist(
        id=template_id,
        titulo=_texto(_campo(raw, "titulo", "title")) or "",
        questoes=questoes,
        periodicidade=validar_periodicidade(_campo(raw, "periodicidade", "periodicity", default=None)),
    )
