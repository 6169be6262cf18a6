from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from frota.domain.policies import (
    calcular_prazo,
    rank_severidade,
    resolver_prazo_solicitado,
    resolver_severidade,
    somar_dias_calendario,
)

UTC = timezone.utc
CRIADO = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    "sev,esperado",
    [("alta", "alta"), ("BAIXA", "baixa"), (" media ", "media"), ("critica", "media"), (None, "media")],
)
def test_resolver_severidade(sev, esperado):
    assert resolver_severidade(sev) == esperado


def test_rank_severidade():
    assert rank_severidade("baixa") == 1
    assert rank_severidade("media") == 2
    assert rank_severidade("alta") == 3
    assert rank_severidade("qualquer") == 2


@pytest.mark.parametrize("sev,dias", [("alta", 2), ("media", 5), ("baixa", 10), (None, 5)])
def test_calcular_prazo_por_severidade(sev, dias):
    prazo = calcular_prazo(CRIADO, sev, UTC)
    assert prazo == datetime(2025, 3, 10 + dias, 12, 0, tzinfo=UTC)


def test_somar_dias_preserva_horario_local_na_virada_de_horario():
    # Nova York entra no horário de verão em 2025-03-09
    ny = ZoneInfo("America/New_York")
    inicio = datetime(2025, 3, 8, 9, 0, tzinfo=ny)
    fim = somar_dias_calendario(inicio, 2, ny)
    assert fim.astimezone(ny).hour == 9
    assert fim.astimezone(ny).day == 10
    # 47h reais entre os dois instantes
    assert (fim - inicio).total_seconds() == 47 * 3600


def test_prazo_solicitado_vazio_ou_invalido_usa_padrao():
    padrao = calcular_prazo(CRIADO, "media", UTC)
    assert resolver_prazo_solicitado(CRIADO, "media", None, UTC) == padrao
    assert resolver_prazo_solicitado(CRIADO, "media", "amanhã", UTC) == padrao


def test_prazo_solicitado_antes_da_criacao_usa_padrao():
    pedido = "2025-03-01T00:00:00Z"
    assert resolver_prazo_solicitado(CRIADO, "baixa", pedido, UTC) == calcular_prazo(CRIADO, "baixa", UTC)


def test_prazo_alta_limitado_a_dois_dias():
    pedido = "2025-03-20T12:00:00Z"
    assert resolver_prazo_solicitado(CRIADO, "alta", pedido, UTC) == datetime(2025, 3, 12, 12, 0, tzinfo=UTC)


def test_prazo_alta_dentro_do_limite_aceito():
    pedido = datetime(2025, 3, 11, 8, 0, tzinfo=UTC)
    assert resolver_prazo_solicitado(CRIADO, "alta", pedido, UTC) == pedido


def test_prazo_media_aceita_valor_longo():
    pedido = datetime(2025, 6, 1, tzinfo=UTC)
    assert resolver_prazo_solicitado(CRIADO, "media", pedido, UTC) == pedido
