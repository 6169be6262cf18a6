from datetime import datetime, timedelta, timezone

import pytest

from frota.domain.erros import ErroValidacao
from frota.domain.models import Maquina, Periodicidade, TemplateChecklist
from frota.domain.periodicidade import (
    CONFORME,
    NAO_CONFORME,
    calcular_conformidade,
    configurar_periodicidade,
    montar_pares,
    status_conformidade,
    ultimas_por_par,
)

REF = datetime(2025, 7, 15, 12, 0, tzinfo=timezone.utc)


def _template(id, titulo, quantidade=1, unidade="week", ativa=True):
    return TemplateChecklist(
        id=id, titulo=titulo, periodicidade=Periodicidade(quantidade=quantidade, unidade=unidade, ativa=ativa)
    )


@pytest.mark.parametrize(
    "unidade,quantidade,dias",
    [("day", 3, 3), ("week", 2, 14), ("month", 1, 30)],
)
def test_janela_em_dias(unidade, quantidade, dias):
    assert Periodicidade(quantidade=quantidade, unidade=unidade).janela_dias == dias


def test_status_no_limite_da_janela_e_conforme():
    assert status_conformidade(REF - timedelta(days=7), REF, 7) == CONFORME
    assert status_conformidade(REF - timedelta(days=7, seconds=1), REF, 7) == NAO_CONFORME
    assert status_conformidade(None, REF, 7) == NAO_CONFORME


def test_montar_pares_so_templates_ativos_vinculados():
    templates = [_template("t1", "Diário"), _template("t2", "Inativo", ativa=False), _template("t3", "Sem vínculo")]
    maquinas = [Maquina(id="m1", checklists=["t1", "t2"]), Maquina(id="m2", checklists=[])]
    pares = montar_pares(templates, maquinas)
    assert [p.chave for p in pares] == [("t1", "m1")]


def test_par_explicito_entra_sem_vinculo():
    pares = montar_pares([_template("t3", "Semanal")], [Maquina(id="m2")], template_id="t3", maquina_id="m2")
    assert [p.chave for p in pares] == [("t3", "m2")]


def test_ultimas_por_par_ignora_futuras():
    subs = [
        ("t1", "m1", REF - timedelta(days=3)),
        ("t1", "m1", REF - timedelta(days=1)),
        ("t1", "m1", REF + timedelta(days=1)),
    ]
    assert ultimas_por_par(subs, REF) == {("t1", "m1"): REF - timedelta(days=1)}


def test_calcular_conformidade_ordena_nao_conformes_primeiro():
    t_a = _template("ta", "Álcool e drogas", quantidade=1, unidade="day")
    t_b = _template("tb", "Báscula", quantidade=1, unidade="week")
    m1 = Maquina(id="m1", modelo="Escavadeira", checklists=["ta", "tb"])
    m2 = Maquina(id="m2", tag="CAM-02", checklists=["ta", "tb"])
    pares = montar_pares([t_b, t_a], [m1, m2])
    ultimas = {
        ("ta", "m1"): REF - timedelta(hours=5),
        ("tb", "m1"): REF - timedelta(days=10),
        ("tb", "m2"): REF - timedelta(days=2),
    }
    resultado = calcular_conformidade(pares, ultimas, REF)
    linhas = [(r.template_id, r.maquina_nome, r.status) for r in resultado.registros]
    assert linhas == [
        ("ta", "CAM-02", NAO_CONFORME),
        ("tb", "Escavadeira", NAO_CONFORME),
        ("ta", "Escavadeira", CONFORME),
        ("tb", "CAM-02", CONFORME),
    ]
    assert resultado.resumo == {"total": 4, "conformes": 2, "nao_conformes": 2}


def test_par_mal_configurado_e_ignorado():
    ruim = _template("tx", "Quebrado", unidade="fortnight")
    bom = _template("t1", "Ok")
    maquina = Maquina(id="m1", checklists=["tx", "t1"])
    resultado = calcular_conformidade(montar_pares([ruim, bom], [maquina]), {}, REF)
    assert [r.template_id for r in resultado.registros] == ["t1"]
    assert resultado.ignorados == [{"template_id": "tx", "maquina_id": "m1", "motivo": "unidade_invalida"}]


def test_configurar_periodicidade_normaliza_quantidade():
    p = configurar_periodicidade(None, True, "week", 2.7)
    assert (p.quantidade, p.unidade, p.ativa, p.ancora) == (2, "week", True, "last_submission")
    assert configurar_periodicidade(None, True, "day", 0).quantidade == 1


def test_configurar_herda_valores_atuais():
    atual = Periodicidade(quantidade=3, unidade="month", ativa=True)
    p = configurar_periodicidade(atual, False)
    assert (p.quantidade, p.unidade, p.ativa) == (3, "month", False)


@pytest.mark.parametrize(
    "kwargs,motivo",
    [
        ({"ativa": "sim"}, "ativa_invalida"),
        ({"ativa": True, "unidade": "year"}, "unidade_invalida"),
        ({"ativa": True, "unidade": "day", "quantidade": "muitos"}, "quantidade_invalida"),
        ({"ativa": True, "ancora": "lunar"}, "ancora_invalida"),
        ({"ativa": True, "ancora": "calendar"}, "ancora_nao_suportada"),
    ],
)
def test_configurar_rejeicoes(kwargs, motivo):
    with pytest.raises(ErroValidacao) as exc:
        configurar_periodicidade(None, **kwargs)
    assert exc.value.motivo == motivo


def test_desativada_aceita_ancora_calendar():
    p = configurar_periodicidade(None, False, ancora="calendar")
    assert p.ancora == "calendar"
    assert p.ativa is False


@pytest.mark.parametrize("dias_atras,status", [(10, NAO_CONFORME), (5, CONFORME)])
def test_semanal_conforme_ate_sete_dias(dias_atras, status):
    template = _template("t1", "Semanal", quantidade=1, unidade="week")
    maquina = Maquina(id="m1", checklists=["t1"])
    ultimas = {("t1", "m1"): REF - timedelta(days=dias_atras)}
    resultado = calcular_conformidade(montar_pares([template], [maquina]), ultimas, REF)
    assert resultado.registros[0].status == status


def test_estrito_rejeita_valores_ruins_mesmo_inativa():
    assert configurar_periodicidade(None, False, quantidade="semanal").quantidade == 1
    with pytest.raises(ErroValidacao) as exc:
        configurar_periodicidade(None, False, quantidade="semanal", estrito=True)
    assert exc.value.motivo == "quantidade_invalida"
    with pytest.raises(ErroValidacao) as exc:
        configurar_periodicidade(None, False, unidade="year", estrito=True)
    assert exc.value.motivo == "unidade_invalida"


def test_periodicidade_gravada_com_quantidade_texto_e_ignorada():
    template = TemplateChecklist(
        id="t9", titulo="Lubrificação", periodicidade=Periodicidade.de_dict({"quantity": "semanal", "unit": "week", "active": True})
    )
    maquina = Maquina(id="m1", tag="CAM-01", checklists=["t9"])
    res = calcular_conformidade(montar_pares([template], [maquina]), {}, REF)
    assert res.registros == []
    assert res.ignorados == [{"template_id": "t9", "maquina_id": "m1", "motivo": "quantidade_invalida"}]
