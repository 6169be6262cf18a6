"""
Políticas de severidade e prazo de tratamento das não-conformidades.

Este módulo concentra a única tabela de severidades do sistema. Todo
componente que lê severidade (explosão, máquina de estados, indicadores)
passa por :func:`resolver_severidade`, de modo que a severidade padrão
(``media``) nunca diverge entre eles.

Prazos são somados em dias de calendário no fuso horário da frota: uma
NC criada às 09:00 de um dia vence às 09:00 do dia alvo, mesmo que haja
mudança de horário de verão ou de mês no intervalo.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo

from frota.domain.valores import parse_instante
from frota.config import DEFAULTS

SEVERIDADE_PADRAO = "media"

SEVERIDADE_RANK = {
    "baixa": 1,
    "media": 2,
    "alta": 3,
}

PRAZO_DIAS = {
    "alta": 2,
    "media": 5,
    "baixa": 10,
}


def fuso_frota(nome: Optional[str] = None) -> tzinfo:
    """Fuso usado na aritmética de calendário (``DEFAULTS.fuso_horario``)."""
    nome = nome or DEFAULTS.fuso_horario
    if nome.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(nome)


def resolver_severidade(severidade: Optional[str]) -> str:
    """Retorna a severidade canônica; desconhecida ou ausente vira ``media``."""
    if severidade is None:
        return SEVERIDADE_PADRAO
    s = str(severidade).strip().lower()
    return s if s in SEVERIDADE_RANK else SEVERIDADE_PADRAO


def rank_severidade(severidade: Optional[str]) -> int:
    """Rank numérico: baixa=1, media=2, alta=3."""
    return SEVERIDADE_RANK[resolver_severidade(severidade)]


def somar_dias_calendario(instante: datetime, dias: int, fuso: Optional[tzinfo] = None) -> datetime:
    """Soma ``dias`` de calendário preservando o horário de parede local."""
    fuso = fuso or fuso_frota()
    if instante.tzinfo is None:
        instante = instante.replace(tzinfo=timezone.utc)
    local = instante.astimezone(fuso)
    alvo = (local.replace(tzinfo=None) + timedelta(days=dias)).replace(tzinfo=fuso)
    return alvo.astimezone(timezone.utc)


def calcular_prazo(criado_em: datetime, severidade: Optional[str], fuso: Optional[tzinfo] = None) -> datetime:
    """Prazo padrão: criado_em + {alta: 2, media: 5, baixa: 10} dias."""
    return somar_dias_calendario(criado_em, PRAZO_DIAS[resolver_severidade(severidade)], fuso)


def resolver_prazo_solicitado(
    criado_em: datetime,
    severidade: Optional[str],
    solicitado: Any,
    fuso: Optional[tzinfo] = None,
) -> datetime:
    """Aplica as regras de prazo pedido numa atualização.

    Regras:
        - vazio ou não interpretável → prazo padrão da severidade;
        - anterior a ``criado_em`` → prazo padrão;
        - severidade ``alta``: nunca além de ``criado_em + 2 dias``;
        - caso contrário o valor pedido é aceito.
    """
    padrao = calcular_prazo(criado_em, severidade, fuso)
    pedido = parse_instante(solicitado)
    if pedido is None or pedido < criado_em:
        return padrao
    if resolver_severidade(severidade) == "alta":
        limite = somar_dias_calendario(criado_em, PRAZO_DIAS["alta"], fuso)
        if pedido > limite:
            return limite
    return pedido


def ano_mes(instante: datetime) -> str:
    """Bucket ``YYYY-MM`` (UTC, como o carimbo ISO armazenado)."""
    if instante.tzinfo is not None:
        instante = instante.astimezone(timezone.utc)
    return instante.strftime("%Y-%m")
