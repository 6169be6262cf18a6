"""
Fleet-wide non-conformity indicators.

These functions reduce an in-memory batch of NC records to the numbers
shown on the maintenance dashboard: open counts, on-time closure rate,
recurrence rate, containment and resolution times, Pareto groupings and
opened/closed time series.

All functions are pure. A record whose timestamps are missing or
inconsistent for a given metric (for instance an action completed before
the NC was created) is left out of both the numerator and the denominator
of that metric only.
"""

from __future__ import annotations

import math
from collections import Counter
from datetime import date, datetime, timedelta, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from frota.config import DEFAULTS
from frota.domain.models import Acao, NaoConformidade
from frota.domain.policies import SEVERIDADE_RANK, fuso_frota, resolver_severidade

SEM_CAUSA = "Sem causa definida"
SISTEMA_NAO_CLASSIFICADO = "Nao classificado"


def arredondar(valor: float) -> float:
    """Round half away from zero to one decimal place (``12.25 -> 12.3``)."""
    return float(Decimal(valor).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _percentual(parte: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return arredondar(parte / total * 100)


def _media(valores: Sequence[float]) -> float:
    if not valores:
        return 0.0
    return arredondar(sum(valores) / len(valores))


def primeira_corretiva(acoes: Iterable[Acao]) -> Optional[Acao]:
    return next((a for a in acoes if a.tipo == "corretiva"), None)


def primeira_corretiva_concluida(acoes: Iterable[Acao]) -> Optional[Acao]:
    return next((a for a in acoes if a.tipo == "corretiva" and a.concluida_em is not None), None)


def concluida_em(nc: NaoConformidade) -> Optional[datetime]:
    """Completion instant of the NC: first completed corrective action."""
    acao = primeira_corretiva_concluida(nc.acoes)
    return acao.concluida_em if acao else None


def horas_entre(inicio: Optional[datetime], fim: Optional[datetime]) -> Optional[float]:
    """Elapsed hours, or None when either end is missing or ``fim < inicio``."""
    if inicio is None or fim is None or fim < inicio:
        return None
    return (fim - inicio).total_seconds() / 3600


# ----------------------
# contagens e taxas
# ----------------------

def contar_abertas_por_severidade(registros: Iterable[NaoConformidade]) -> Dict[str, int]:
    contagem = {sev: 0 for sev in sorted(SEVERIDADE_RANK, key=SEVERIDADE_RANK.get, reverse=True)}
    for nc in registros:
        if not nc.resolvida:
            contagem[resolver_severidade(nc.severidade)] += 1
    return contagem


def percentual_no_prazo(registros: Iterable[NaoConformidade]) -> float:
    """Percentage of closed records completed on or before their due date.

    Parameters
    ----------
    registros:
        Batch of NCs. Only records with a completed corrective action and a
        due date take part; the rest are excluded from both sides.

    Returns
    -------
    float
        Percentage in ``[0, 100]`` rounded to one decimal, 0 for an empty
        population.
    """
    fechadas = 0
    no_prazo = 0
    for nc in registros:
        fim = concluida_em(nc)
        if fim is None or nc.prazo is None:
            continue
        fechadas += 1
        if fim <= nc.prazo:
            no_prazo += 1
    return _percentual(no_prazo, fechadas)


def taxa_recorrencia(registros: Iterable[NaoConformidade]) -> float:
    registros = list(registros)
    recorrentes = sum(1 for nc in registros if nc.recorrencia_de_id)
    return _percentual(recorrentes, len(registros))


def media_horas_contencao(registros: Iterable[NaoConformidade]) -> float:
    """Mean hours from creation to the start of the first corrective action."""
    duracoes = []
    for nc in registros:
        acao = primeira_corretiva(nc.acoes)
        horas = horas_entre(nc.criado_em, acao.iniciada_em if acao else None)
        if horas is not None:
            duracoes.append(horas)
    return _media(duracoes)


def media_horas_resolucao(registros: Iterable[NaoConformidade]) -> float:
    """Mean hours from creation to the first completed corrective action."""
    duracoes = []
    for nc in registros:
        horas = horas_entre(nc.criado_em, concluida_em(nc))
        if horas is not None:
            duracoes.append(horas)
    return _media(duracoes)


# ----------------------
# agrupamentos (pareto)
# ----------------------

def agrupar_por_causa_raiz(registros: Iterable[NaoConformidade]) -> Dict[str, int]:
    contagem: Counter = Counter()
    for nc in registros:
        contagem[(nc.causa_raiz or "").strip() or SEM_CAUSA] += 1
    return dict(contagem)


def agrupar_por_sistema(registros: Iterable[NaoConformidade]) -> Dict[str, int]:
    contagem: Counter = Counter()
    for nc in registros:
        contagem[nc.categoria_sistema or SISTEMA_NAO_CLASSIFICADO] += 1
    return dict(contagem)


def pareto(contagem: Dict[str, int], limite: Optional[int] = None) -> List[Dict[str, object]]:
    """Sort groups by count descending (ties keep first-seen order)."""
    itens = sorted(contagem.items(), key=lambda kv: kv[1], reverse=True)
    if limite is not None:
        itens = itens[:limite]
    return [{"chave": chave, "total": total} for chave, total in itens]


def severidade_por_sistema(registros: Iterable[NaoConformidade]) -> List[Dict[str, object]]:
    matriz: Dict[str, Dict[str, int]] = {}
    for nc in registros:
        chave = nc.categoria_sistema or SISTEMA_NAO_CLASSIFICADO
        linha = matriz.setdefault(chave, {"alta": 0, "media": 0, "baixa": 0})
        linha[resolver_severidade(nc.severidade)] += 1
    return [{"sistema": sistema, **contagem} for sistema, contagem in matriz.items()]


# ----------------------
# séries temporais
# ----------------------

def numero_semana(dia: date) -> int:
    """Week of the year anchored at January 1st (not ISO-8601).

    ``ceil((days_since_jan1 + jan1_weekday + 1) / 7)`` where the weekday
    counts Sunday as 0.
    """
    jan1 = date(dia.year, 1, 1)
    dias_passados = (dia - jan1).days
    dia_semana_jan1 = (jan1.weekday() + 1) % 7
    return math.ceil((dias_passados + dia_semana_jan1 + 1) / 7)


def periodo(instante: datetime, granularidade: str = "day", fuso: Optional[tzinfo] = None) -> str:
    """Bucket label: ``YYYY-MM-DD`` for days, ``YYYY-Www`` for weeks (fleet time zone)."""
    local = instante.astimezone(fuso or fuso_frota())
    if granularidade == "week":
        return f"{local.year}-W{numero_semana(local.date()):02d}"
    return local.date().isoformat()


def serie_abertas_fechadas(
    registros: Iterable[NaoConformidade],
    granularidade: str = "day",
    fuso: Optional[tzinfo] = None,
) -> List[Dict[str, object]]:
    """Opened/closed counts per bucket, sorted by bucket label."""
    if granularidade not in ("day", "week"):
        raise ValueError(f"granularidade inválida: {granularidade!r}")
    fuso = fuso or fuso_frota()
    abertas: Counter = Counter()
    fechadas: Counter = Counter()
    for nc in registros:
        abertas[periodo(nc.criado_em, granularidade, fuso)] += 1
        fim = concluida_em(nc)
        if fim is not None:
            fechadas[periodo(fim, granularidade, fuso)] += 1
    periodos = sorted(set(abertas) | set(fechadas))
    return [{"periodo": p, "abertas": abertas[p], "fechadas": fechadas[p]} for p in periodos]


# ----------------------
# janelas e painel
# ----------------------

def filtrar_fechadas_no_mes(
    registros: Iterable[NaoConformidade],
    referencia: datetime,
    fuso: Optional[tzinfo] = None,
) -> List[NaoConformidade]:
    """Records whose first completed corrective action falls in the reference month."""
    fuso = fuso or fuso_frota()
    ref_local = referencia.astimezone(fuso)
    saida = []
    for nc in registros:
        fim = concluida_em(nc)
        if fim is None:
            continue
        local = fim.astimezone(fuso)
        if (local.year, local.month) == (ref_local.year, ref_local.month):
            saida.append(nc)
    return saida


def filtrar_recentes(
    registros: Iterable[NaoConformidade],
    referencia: datetime,
    dias: Optional[int] = None,
) -> List[NaoConformidade]:
    dias = DEFAULTS.janela_kpi_recorrencia_dias if dias is None else dias
    corte = referencia - timedelta(days=dias)
    return [nc for nc in registros if nc.criado_em >= corte]


def reduzir_indicadores(
    registros: Sequence[NaoConformidade],
    referencia: Optional[datetime] = None,
    fuso: Optional[tzinfo] = None,
) -> Dict[str, object]:
    """Assemble the full dashboard for a batch of records.

    Parameters
    ----------
    registros:
        NC batch (the caller decides how many; the use case caps it at
        ``DEFAULTS.max_registros_kpi``).
    referencia:
        Instant defining "this month" and the recent recurrence window.
        Defaults to now.

    Returns
    -------
    dict
        Plain mapping ready for display or JSON serialization.
    """
    referencia = referencia or datetime.now(timezone.utc)
    fuso = fuso or fuso_frota()
    registros = list(registros)

    abertas = [nc for nc in registros if not nc.resolvida]
    com_causa = [nc for nc in registros if nc.causa_raiz and nc.causa_raiz.strip()]

    return {
        "total_registros": len(registros),
        "abertas_total": len(abertas),
        "abertas_por_severidade": contar_abertas_por_severidade(abertas),
        "percentual_no_prazo": percentual_no_prazo(filtrar_fechadas_no_mes(registros, referencia, fuso)),
        "taxa_recorrencia_30d": taxa_recorrencia(filtrar_recentes(registros, referencia)),
        "media_horas_contencao": media_horas_contencao(registros),
        "media_horas_resolucao": media_horas_resolucao(registros),
        "serie_diaria": serie_abertas_fechadas(registros, "day", fuso),
        "serie_semanal": serie_abertas_fechadas(registros, "week", fuso),
        "pareto_causa_raiz": pareto(agrupar_por_causa_raiz(com_causa), DEFAULTS.top_pareto),
        "pareto_sistema": pareto(agrupar_por_sistema(registros)),
        "severidade_por_sistema": severidade_por_sistema(registros),
    }
