# frota/domain/models.py
"""
Modelos (dataclasses) do domínio.

Observação importante:
- Os repositórios gravam dicionários; as dataclasses trafegam entre os
  casos de uso e as regras puras. `para_dict`/`de_dict` fazem a ponte.
- `de_dict` aceita as chaves snake_case deste projeto e também as chaves
  camelCase do formulário de inspeção (ex.: `startedAt`, `systemCategory`).
- Campos derivados da NC (rank, ano-mês, título normalizado) são
  propriedades, nunca armazenados de forma independente no objeto.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from frota.domain.valores import formatar_instante, parse_bool, parse_instante
from frota.domain.normalizacao import normalizar_texto
from frota.domain.policies import ano_mes, rank_severidade, resolver_severidade

STATUS_NC = ("aberta", "em_execucao", "aguardando_peca", "bloqueada", "resolvida")
STATUS_RESOLVIDA = "resolvida"
TIPOS_ACAO = ("corretiva", "preventiva")
FONTES_NC = ("checklist_question", "checklist_extra")
UNIDADES_PERIODICIDADE = {"day": 1, "week": 7, "month": 30}
ANCORAS_PERIODICIDADE = ("last_submission", "calendar")
TIPOS_VARIAVEL = ("int", "decimal", "text", "long_text", "date", "time", "boolean")
CONDICOES_VARIAVEL = ("ok", "nc", "always")


def _pick(raw: Mapping[str, Any], *chaves: str, default: Any = None) -> Any:
    """Primeiro valor presente (não-None) entre as chaves informadas."""
    for k in chaves:
        if k in raw and raw[k] is not None:
            return raw[k]
    return default


def _texto(val: Any) -> Optional[str]:
    if val is None:
        return None
    s = str(val).strip()
    return s or None


_TELEMETRIA_NUMERICOS = {
    "horas": ("horas", "hours"),
    "odometro_km": ("odometro_km", "odometerKm"),
    "combustivel_l": ("combustivel_l", "fuelUsedL"),
    "tempo_ocioso_h": ("tempo_ocioso_h", "idleTimeH"),
}
_TELEMETRIA_TEXTO = {
    "janela_inicio": ("janela_inicio", "windowStart"),
    "janela_fim": ("janela_fim", "windowEnd"),
}


def sanitizar_telemetria(raw: Any) -> Optional[Dict[str, Any]]:
    """Mantém só os campos conhecidos do retrato de telemetria; vazio → None."""
    if not isinstance(raw, Mapping):
        return None
    out: Dict[str, Any] = {}
    for chave, aliases in _TELEMETRIA_NUMERICOS.items():
        val = _pick(raw, *aliases)
        if isinstance(val, (int, float)) and not isinstance(val, bool):
            out[chave] = val
    codigos = _pick(raw, "codigos_falha", "faultCodes")
    if isinstance(codigos, (list, tuple)):
        out["codigos_falha"] = [c for c in codigos if isinstance(c, str)]
    for chave, aliases in _TELEMETRIA_TEXTO.items():
        val = _pick(raw, *aliases)
        if isinstance(val, str):
            out[chave] = val
    return out or None


@dataclass
class Ator:
    """Identidade de quem executa uma mutação (usada só na auditoria)."""
    id: str
    nome: Optional[str] = None

    def para_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "nome": self.nome}

    @classmethod
    def de_dict(cls, raw: Optional[Mapping[str, Any]]) -> Optional["Ator"]:
        if not raw:
            return None
        ator_id = _texto(_pick(raw, "id", "uid"))
        if not ator_id:
            return None
        return cls(id=ator_id, nome=_texto(_pick(raw, "nome", "name")))


@dataclass
class Criador:
    id: str
    matricula: str
    nome: Optional[str] = None


@dataclass
class AtivoVinculado:
    """Retrato da máquina congelado na criação da NC."""
    id: str
    tag: str = ""
    modelo: Optional[str] = None
    tipo: Optional[str] = None
    setor: Optional[str] = None


@dataclass
class Acao:
    id: str
    tipo: str                               # 'corretiva' | 'preventiva'
    descricao: str
    responsavel: Optional[Ator] = None
    iniciada_em: Optional[datetime] = None
    concluida_em: Optional[datetime] = None
    eficaz: Optional[bool] = None           # só tem sentido para preventiva

    def para_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tipo": self.tipo,
            "descricao": self.descricao,
            "responsavel": self.responsavel.para_dict() if self.responsavel else None,
            "iniciada_em": formatar_instante(self.iniciada_em),
            "concluida_em": formatar_instante(self.concluida_em),
            "eficaz": self.eficaz,
        }

    @classmethod
    def de_dict(cls, raw: Any) -> Optional["Acao"]:
        """Cria a ação a partir de um payload; sem descrição → None."""
        if not isinstance(raw, Mapping):
            return None
        descricao = _texto(_pick(raw, "descricao", "description"))
        if not descricao:
            return None
        tipo = _pick(raw, "tipo", "type")
        eficaz = _pick(raw, "eficaz", "effective")
        return cls(
            id=_texto(raw.get("id")) or uuid.uuid4().hex,
            tipo="preventiva" if tipo == "preventiva" else "corretiva",
            descricao=descricao,
            responsavel=Ator.de_dict(_pick(raw, "responsavel", "owner")),
            iniciada_em=parse_instante(_pick(raw, "iniciada_em", "startedAt")),
            concluida_em=parse_instante(_pick(raw, "concluida_em", "completedAt")),
            eficaz=eficaz if isinstance(eficaz, bool) else None,
        )


@dataclass(frozen=True)
class ItemResposta:
    questao_id: str
    resposta: str                           # 'ok' | 'nc' | 'na'
    observacao: Optional[str] = None
    fotos: Tuple[str, ...] = ()
    valor_variavel: Any = None              # valor informado para a variável da pergunta


@dataclass(frozen=True)
class NcExtra:
    """Não-conformidade livre informada pelo operador no checklist."""
    titulo: Optional[str] = None
    descricao: Optional[str] = None
    severidade: Optional[str] = None
    risco_seguranca: Optional[bool] = None
    impacto_disponibilidade: Optional[bool] = None


@dataclass(frozen=True)
class RespostaChecklist:
    """Submissão de checklist; imutável depois de criada."""
    id: str
    maquina_id: str
    usuario_id: str
    template_id: str
    criado_em: Any = None                   # bruto: pode faltar ou ser inválido
    operador_matricula: Optional[str] = None
    operador_nome: Optional[str] = None
    respostas: Tuple[ItemResposta, ...] = ()
    extras: Tuple[NcExtra, ...] = ()
    km: Optional[float] = None
    horimetro: Optional[float] = None

    @classmethod
    def de_dict(cls, raw: Mapping[str, Any], id: Optional[str] = None) -> "RespostaChecklist":
        respostas = []
        for item in _pick(raw, "respostas", "answers", default=[]) or []:
            if not isinstance(item, Mapping):
                continue
            questao_id = _texto(_pick(item, "questao_id", "questionId"))
            if not questao_id:
                continue
            fotos = _pick(item, "fotos", "photoUrls", default=[]) or []
            respostas.append(
                ItemResposta(
                    questao_id=questao_id,
                    resposta=str(_pick(item, "resposta", "response", default="")).strip().lower(),
                    observacao=_texto(_pick(item, "observacao", "observation")),
                    fotos=tuple(str(f) for f in fotos),
                    valor_variavel=_pick(item, "valor_variavel", "variableValue"),
                )
            )
        extras = []
        for item in _pick(raw, "extras", "extraNonConformities", default=[]) or []:
            if not isinstance(item, Mapping):
                continue
            extras.append(
                NcExtra(
                    titulo=_pick(item, "titulo", "title"),
                    descricao=_texto(_pick(item, "descricao", "description")),
                    severidade=_pick(item, "severidade", "severity"),
                    risco_seguranca=parse_bool(_pick(item, "risco_seguranca", "safetyRisk")),
                    impacto_disponibilidade=parse_bool(
                        _pick(item, "impacto_disponibilidade", "impactAvailability")
                    ),
                )
            )
        return cls(
            id=str(id or _pick(raw, "id", default="") or uuid.uuid4().hex),
            maquina_id=str(_pick(raw, "maquina_id", "machineId", default="")),
            usuario_id=str(_pick(raw, "usuario_id", "userId", default="")),
            template_id=str(_pick(raw, "template_id", "templateId", default="")),
            criado_em=_pick(raw, "criado_em", "createdAt"),
            operador_matricula=_texto(_pick(raw, "operador_matricula", "operatorMatricula")),
            operador_nome=_texto(_pick(raw, "operador_nome", "operatorNome")),
            respostas=tuple(respostas),
            extras=tuple(extras),
            km=_pick(raw, "km"),
            horimetro=_pick(raw, "horimetro"),
        )

    def para_dict(self) -> Dict[str, Any]:
        criado = parse_instante(self.criado_em)
        return {
            "id": self.id,
            "maquina_id": self.maquina_id,
            "usuario_id": self.usuario_id,
            "template_id": self.template_id,
            "criado_em": formatar_instante(criado) if criado else self.criado_em,
            "operador_matricula": self.operador_matricula,
            "operador_nome": self.operador_nome,
            "respostas": [
                {
                    "questao_id": r.questao_id,
                    "resposta": r.resposta,
                    "observacao": r.observacao,
                    "fotos": list(r.fotos),
                    "valor_variavel": r.valor_variavel,
                }
                for r in self.respostas
            ],
            "extras": [
                {
                    "titulo": e.titulo,
                    "descricao": e.descricao,
                    "severidade": e.severidade,
                    "risco_seguranca": e.risco_seguranca,
                    "impacto_disponibilidade": e.impacto_disponibilidade,
                }
                for e in self.extras
            ],
            "km": self.km,
            "horimetro": self.horimetro,
        }


@dataclass
class Periodicidade:
    """Frequência mínima de submissão de um template (ou variável) por máquina."""
    quantidade: int
    unidade: str                            # 'day' | 'week' | 'month'
    ativa: bool = True
    ancora: str = "last_submission"

    @property
    def janela_dias(self) -> int:
        # aproximação: semana = 7 dias, mês = 30 dias
        return int(self.quantidade) * UNIDADES_PERIODICIDADE[self.unidade]

    def para_dict(self) -> Dict[str, Any]:
        avaliavel = self.unidade in UNIDADES_PERIODICIDADE and isinstance(self.quantidade, int)
        return {
            "quantidade": self.quantidade,
            "unidade": self.unidade,
            "ativa": self.ativa,
            "ancora": self.ancora,
            "janela_dias": self.janela_dias if avaliavel else None,
        }

    @classmethod
    def de_dict(cls, raw: Optional[Mapping[str, Any]]) -> Optional["Periodicidade"]:
        """Leitura tolerante: quantidade não numérica é mantida como veio.

        Quem avalia a periodicidade (``periodicidade_valida``) trata o
        valor ruim como configuração inválida.
        """
        if not raw:
            return None
        quantidade = _pick(raw, "quantidade", "quantity", default=1)
        try:
            quantidade = int(quantidade)
        except (TypeError, ValueError):
            pass
        return cls(
            quantidade=quantidade,
            unidade=str(_pick(raw, "unidade", "unit", default="day")),
            ativa=bool(_pick(raw, "ativa", "active", default=False)),
            ancora=str(_pick(raw, "ancora", "anchor", default="last_submission")),
        )


@dataclass
class RegraAlerta:
    """Alerta exibido na tela inicial quando a resposta da pergunta casa com o gatilho."""
    mensagem: str
    cor: str = "red"
    gatilho: str = "nc"                     # 'ok' | 'nc' | 'always'
    exibir_inicio: bool = True

    def para_dict(self) -> Dict[str, Any]:
        return {
            "mensagem": self.mensagem,
            "cor": self.cor,
            "gatilho": self.gatilho,
            "exibir_inicio": self.exibir_inicio,
        }

    @classmethod
    def de_dict(cls, raw: Any) -> Optional["RegraAlerta"]:
        if not isinstance(raw, Mapping):
            return None
        exibir = _pick(raw, "exibir_inicio", "showOnHomePage", default=True)
        return cls(
            mensagem=str(_pick(raw, "mensagem", "message", default="")),
            cor=str(_pick(raw, "cor", "color", default="red")),
            gatilho=str(_pick(raw, "gatilho", "triggerCondition", default="nc")),
            exibir_inicio=exibir is not False,
        )


@dataclass
class VariavelQuestao:
    """Valor extra pedido ao operador junto com a resposta (ex.: litros de graxa)."""
    nome: str
    tipo: str = "text"
    condicao: str = "always"                # quando o campo aparece: 'ok' | 'nc' | 'always'
    alerta: Optional[RegraAlerta] = None
    periodicidade: Optional[Periodicidade] = None

    def para_dict(self) -> Dict[str, Any]:
        return {
            "nome": self.nome,
            "tipo": self.tipo,
            "condicao": self.condicao,
            "alerta": self.alerta.para_dict() if self.alerta else None,
            "periodicidade": self.periodicidade.para_dict() if self.periodicidade else None,
        }

    @classmethod
    def de_dict(cls, raw: Any) -> Optional["VariavelQuestao"]:
        if not isinstance(raw, Mapping):
            return None
        nome = _texto(_pick(raw, "nome", "name"))
        if not nome:
            return None
        return cls(
            nome=nome,
            tipo=str(_pick(raw, "tipo", "type", default="text")),
            condicao=str(_pick(raw, "condicao", "condition", default="always")),
            alerta=RegraAlerta.de_dict(_pick(raw, "alerta", "alertRule")),
            periodicidade=Periodicidade.de_dict(_pick(raw, "periodicidade", "periodicity")),
        )


@dataclass
class QuestaoTemplate:
    id: str
    texto: str
    categoria_sistema: Optional[str] = None
    regra_foto: str = "none"                # 'none' | 'optional' | 'required_nc'
    variavel: Optional[VariavelQuestao] = None

    @classmethod
    def de_dict(cls, raw: Mapping[str, Any]) -> "QuestaoTemplate":
        return cls(
            id=str(raw["id"]),
            texto=str(_pick(raw, "texto", "text", default="")),
            categoria_sistema=_texto(
                _pick(raw, "categoria_sistema", "systemCategory", "system", "category", "group", "section")
            ),
            regra_foto=str(_pick(raw, "regra_foto", "photoRule", default="none")),
            variavel=VariavelQuestao.de_dict(_pick(raw, "variavel", "variable")),
        )


@dataclass
class TemplateChecklist:
    id: str
    titulo: str
    questoes: List[QuestaoTemplate] = field(default_factory=list)
    periodicidade: Optional[Periodicidade] = None

    def mapa_questoes(self) -> Dict[str, QuestaoTemplate]:
        return {q.id: q for q in self.questoes}


@dataclass
class Maquina:
    id: str
    tag: str = ""
    modelo: Optional[str] = None
    tipo: Optional[str] = None
    setor: Optional[str] = None
    checklists: List[str] = field(default_factory=list)

    @property
    def nome_exibicao(self) -> str:
        if self.modelo and self.modelo.strip():
            return self.modelo
        if self.tag and self.tag.strip():
            return self.tag
        return self.id

    def retrato(self) -> AtivoVinculado:
        return AtivoVinculado(id=self.id, tag=self.tag or "", modelo=self.modelo, tipo=self.tipo, setor=self.setor)


@dataclass(frozen=True)
class NcExistente:
    """Projeção mínima de uma NC usada na detecção de recorrência."""
    id: str
    criado_em: datetime
    titulo_normalizado: str
    categoria_sistema: Optional[str] = None


@dataclass
class EntradaAuditoria:
    ator_id: str
    ator_nome: Optional[str]
    em: datetime
    diff: Dict[str, Dict[str, Any]]
    id: Optional[int] = None


@dataclass
class NaoConformidade:
    id: str
    titulo: str
    criado_em: datetime
    criado_por: Criador
    ativo: AtivoVinculado
    template_id: Optional[str] = None
    descricao: Optional[str] = None
    severidade: str = "media"
    status: str = "aberta"
    risco_seguranca: bool = False
    impacto_disponibilidade: bool = False
    prazo: Optional[datetime] = None
    fonte: str = "checklist_question"
    resposta_origem_id: str = ""
    questao_origem_id: Optional[str] = None
    causa_raiz: Optional[str] = None
    acoes: List[Acao] = field(default_factory=list)
    recorrencia_de_id: Optional[str] = None
    telemetria: Optional[Dict[str, Any]] = None
    categoria_sistema: Optional[str] = None
    atualizado_em: Optional[datetime] = None

    def __post_init__(self):
        self.severidade = resolver_severidade(self.severidade)

    @property
    def severidade_rank(self) -> int:
        return rank_severidade(self.severidade)

    @property
    def ano_mes(self) -> str:
        return ano_mes(self.criado_em)

    @property
    def titulo_normalizado(self) -> str:
        return normalizar_texto(self.titulo)

    @property
    def resolvida(self) -> bool:
        return self.status == STATUS_RESOLVIDA

    def para_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "titulo": self.titulo,
            "descricao": self.descricao,
            "severidade": self.severidade,
            "severidade_rank": self.severidade_rank,
            "status": self.status,
            "risco_seguranca": self.risco_seguranca,
            "impacto_disponibilidade": self.impacto_disponibilidade,
            "prazo": formatar_instante(self.prazo),
            "criado_em": formatar_instante(self.criado_em),
            "atualizado_em": formatar_instante(self.atualizado_em),
            "criado_por": {
                "id": self.criado_por.id,
                "matricula": self.criado_por.matricula,
                "nome": self.criado_por.nome,
            },
            "ativo": {
                "id": self.ativo.id,
                "tag": self.ativo.tag,
                "modelo": self.ativo.modelo,
                "tipo": self.ativo.tipo,
                "setor": self.ativo.setor,
            },
            "template_id": self.template_id,
            "fonte": self.fonte,
            "resposta_origem_id": self.resposta_origem_id,
            "questao_origem_id": self.questao_origem_id,
            "causa_raiz": self.causa_raiz,
            "acoes": [a.para_dict() for a in self.acoes],
            "recorrencia_de_id": self.recorrencia_de_id,
            "telemetria": self.telemetria,
            "ano_mes": self.ano_mes,
            "categoria_sistema": self.categoria_sistema,
            "titulo_normalizado": self.titulo_normalizado,
        }

    @classmethod
    def de_dict(cls, raw: Mapping[str, Any]) -> "NaoConformidade":
        """Reconstrói a NC; sem `criado_em` válido levanta ValueError."""
        criado_em = parse_instante(_pick(raw, "criado_em", "createdAt"))
        if criado_em is None:
            raise ValueError(f"NC {raw.get('id')!r} sem criado_em válido")
        criador = _pick(raw, "criado_por", "createdBy", default={}) or {}
        ativo = _pick(raw, "ativo", "linkedAsset", default={}) or {}
        acoes = [a for a in (Acao.de_dict(x) for x in (_pick(raw, "acoes", "actions", default=[]) or [])) if a]
        status = _pick(raw, "status", default="aberta")
        fonte = _pick(raw, "fonte", "source")
        return cls(
            id=str(raw["id"]),
            titulo=str(_pick(raw, "titulo", "title", default="")),
            descricao=_pick(raw, "descricao", "description"),
            severidade=resolver_severidade(_pick(raw, "severidade", "severity")),
            status=status if status in STATUS_NC else "aberta",
            risco_seguranca=bool(_pick(raw, "risco_seguranca", "safetyRisk", default=False)),
            impacto_disponibilidade=bool(_pick(raw, "impacto_disponibilidade", "impactAvailability", default=False)),
            prazo=parse_instante(_pick(raw, "prazo", "dueAt")),
            criado_em=criado_em,
            atualizado_em=parse_instante(_pick(raw, "atualizado_em", "updatedAt")),
            criado_por=Criador(
                id=str(criador.get("id") or ""),
                matricula=str(criador.get("matricula") or ""),
                nome=criador.get("nome"),
            ),
            ativo=AtivoVinculado(
                id=str(ativo.get("id") or ""),
                tag=str(ativo.get("tag") or ""),
                modelo=ativo.get("modelo"),
                tipo=ativo.get("tipo"),
                setor=ativo.get("setor"),
            ),
            template_id=_pick(raw, "template_id", "linkedTemplateId"),
            fonte="checklist_extra" if fonte == "checklist_extra" else "checklist_question",
            resposta_origem_id=str(_pick(raw, "resposta_origem_id", "originChecklistResponseId", default="")),
            questao_origem_id=_pick(raw, "questao_origem_id", "originQuestionId"),
            causa_raiz=_pick(raw, "causa_raiz", "rootCause"),
            acoes=acoes,
            recorrencia_de_id=_pick(raw, "recorrencia_de_id", "recurrenceOfId"),
            telemetria=_pick(raw, "telemetria", "telemetryRef"),
            categoria_sistema=_pick(raw, "categoria_sistema", "systemCategory"),
        )
