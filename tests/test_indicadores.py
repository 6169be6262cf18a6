from datetime import date, datetime, timedelta, timezone

import pytest

from frota.domain.indicadores import (
    SEM_CAUSA,
    SISTEMA_NAO_CLASSIFICADO,
    agrupar_por_causa_raiz,
    arredondar,
    contar_abertas_por_severidade,
    media_horas_contencao,
    media_horas_resolucao,
    numero_semana,
    pareto,
    percentual_no_prazo,
    reduzir_indicadores,
    serie_abertas_fechadas,
    severidade_por_sistema,
    taxa_recorrencia,
)
from frota.domain.models import Acao, AtivoVinculado, Criador, NaoConformidade

UTC = timezone.utc
REF = datetime(2025, 8, 20, 12, 0, tzinfo=UTC)


def _nc(id, criado_em, severidade="media", status="aberta", acoes=(), prazo=None, **kw):
    return NaoConformidade(
        id=id,
        titulo=f"NC {id}",
        criado_em=criado_em,
        criado_por=Criador(id="u1", matricula="1"),
        ativo=AtivoVinculado(id="m1"),
        severidade=severidade,
        status=status,
        acoes=list(acoes),
        prazo=prazo,
        **kw,
    )


def _corretiva(iniciada=None, concluida=None):
    return Acao(id="c", tipo="corretiva", descricao="reparo", iniciada_em=iniciada, concluida_em=concluida)


def test_arredondar_meio_para_cima():
    assert arredondar(12.25) == 12.3
    assert arredondar(66.66666) == 66.7
    assert arredondar(0) == 0.0


def test_abertas_por_severidade_ignora_resolvidas():
    registros = [
        _nc("1", REF, "alta"),
        _nc("2", REF, "alta", status="resolvida"),
        _nc("3", REF, "baixa", status="bloqueada"),
        _nc("4", REF, "media", status="em_execucao"),
    ]
    assert contar_abertas_por_severidade(registros) == {"alta": 1, "media": 1, "baixa": 1}


def test_percentual_no_prazo_so_conta_fechadas_com_prazo():
    criado = REF - timedelta(days=10)
    registros = [
        _nc("1", criado, acoes=[_corretiva(concluida=criado + timedelta(days=1))], prazo=criado + timedelta(days=5)),
        _nc("2", criado, acoes=[_corretiva(concluida=criado + timedelta(days=8))], prazo=criado + timedelta(days=5)),
        _nc("3", criado, acoes=[_corretiva(concluida=criado + timedelta(days=5))], prazo=criado + timedelta(days=5)),
        _nc("4", criado, acoes=[_corretiva()], prazo=criado + timedelta(days=5)),
        _nc("5", criado, acoes=[_corretiva(concluida=criado + timedelta(days=1))]),
    ]
    assert percentual_no_prazo(registros) == 66.7
    assert percentual_no_prazo([]) == 0.0


def test_taxa_recorrencia():
    registros = [_nc("1", REF, recorrencia_de_id="0"), _nc("2", REF), _nc("3", REF), _nc("4", REF)]
    assert taxa_recorrencia(registros) == 25.0
    assert taxa_recorrencia([]) == 0.0


def test_tempos_medios_ignoram_inconsistentes():
    criado = REF - timedelta(days=2)
    registros = [
        _nc("1", criado, acoes=[_corretiva(iniciada=criado + timedelta(hours=2), concluida=criado + timedelta(hours=10))]),
        _nc("2", criado, acoes=[_corretiva(iniciada=criado + timedelta(hours=4), concluida=criado + timedelta(hours=20))]),
        _nc("3", criado, acoes=[_corretiva(iniciada=criado - timedelta(hours=1), concluida=criado - timedelta(hours=1))]),
        _nc("4", criado),
    ]
    assert media_horas_contencao(registros) == 3.0
    assert media_horas_resolucao(registros) == 15.0


def test_pareto_causa_raiz_e_sistema():
    registros = [
        _nc("1", REF, causa_raiz="Desgaste"),
        _nc("2", REF, causa_raiz="Desgaste"),
        _nc("3", REF, causa_raiz="Operação"),
        _nc("4", REF, causa_raiz=" "),
    ]
    contagem = agrupar_por_causa_raiz(registros)
    assert contagem[SEM_CAUSA] == 1
    assert pareto(contagem, 2) == [{"chave": "Desgaste", "total": 2}, {"chave": "Operação", "total": 1}]


def test_severidade_por_sistema():
    registros = [
        _nc("1", REF, "alta", categoria_sistema="freios"),
        _nc("2", REF, "baixa", categoria_sistema="freios"),
        _nc("3", REF, "media"),
    ]
    assert severidade_por_sistema(registros) == [
        {"sistema": "freios", "alta": 1, "media": 0, "baixa": 1},
        {"sistema": SISTEMA_NAO_CLASSIFICADO, "alta": 0, "media": 1, "baixa": 0},
    ]


@pytest.mark.parametrize(
    "dia,semana",
    [
        (date(2025, 1, 1), 1),    # quarta-feira
        (date(2025, 1, 4), 1),    # sábado
        (date(2025, 1, 5), 2),    # domingo abre a semana
        (date(2023, 1, 1), 1),    # 1º de janeiro num domingo
        (date(2023, 1, 8), 2),
    ],
)
def test_numero_semana(dia, semana):
    assert numero_semana(dia) == semana


def test_serie_diaria_e_semanal():
    registros = [
        _nc("1", datetime(2025, 1, 3, 10, tzinfo=UTC), acoes=[_corretiva(concluida=datetime(2025, 1, 6, 9, tzinfo=UTC))]),
        _nc("2", datetime(2025, 1, 3, 15, tzinfo=UTC)),
    ]
    diaria = serie_abertas_fechadas(registros, "day", UTC)
    assert diaria == [
        {"periodo": "2025-01-03", "abertas": 2, "fechadas": 0},
        {"periodo": "2025-01-06", "abertas": 0, "fechadas": 1},
    ]
    semanal = serie_abertas_fechadas(registros, "week", UTC)
    assert semanal == [
        {"periodo": "2025-W01", "abertas": 2, "fechadas": 0},
        {"periodo": "2025-W02", "abertas": 0, "fechadas": 1},
    ]
    with pytest.raises(ValueError):
        serie_abertas_fechadas(registros, "month", UTC)


def test_reduzir_indicadores_painel_completo():
    registros = [
        _nc(
            "1",
            REF - timedelta(days=3),
            "alta",
            status="resolvida",
            acoes=[_corretiva(iniciada=REF - timedelta(days=3) + timedelta(hours=1), concluida=REF - timedelta(days=2))],
            prazo=REF - timedelta(days=1),
            causa_raiz="Desgaste",
        ),
        _nc("2", REF - timedelta(days=40), "baixa", recorrencia_de_id="x"),
        _nc("3", REF - timedelta(days=1), "media", recorrencia_de_id="1"),
    ]
    painel = reduzir_indicadores(registros, REF, UTC)
    assert painel["total_registros"] == 3
    assert painel["abertas_total"] == 2
    assert painel["abertas_por_severidade"] == {"alta": 0, "media": 1, "baixa": 1}
    assert painel["percentual_no_prazo"] == 100.0
    assert painel["taxa_recorrencia_30d"] == 50.0
    assert painel["media_horas_contencao"] == 1.0
    assert painel["media_horas_resolucao"] == 24.0
    assert painel["pareto_causa_raiz"] == [{"chave": "Desgaste", "total": 1}]


def test_painel_vazio():
    painel = reduzir_indicadores([], REF, UTC)
    assert painel["total_registros"] == 0
    assert painel["percentual_no_prazo"] == 0.0
    assert painel["serie_diaria"] == []


def test_no_prazo_metade_do_lote():
    criado = REF - timedelta(days=5)
    prazo = criado + timedelta(hours=48)
    registros = [
        _nc("1", criado, acoes=[_corretiva(concluida=criado + timedelta(hours=3))], prazo=prazo),
        _nc("2", criado, acoes=[_corretiva(concluida=criado + timedelta(hours=50))], prazo=prazo),
    ]
    assert percentual_no_prazo(registros) == 50.0
