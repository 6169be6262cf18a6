from datetime import datetime, timedelta, timezone

import pytest

from frota.domain.erros import ErroValidacao
from frota.domain.models import Acao, AtivoVinculado, Ator, Criador, NaoConformidade
from frota.domain.transicoes import PatchNC, aplicar_transicao, validar_capa

UTC = timezone.utc
CRIADO = datetime(2025, 6, 2, 9, 0, tzinfo=UTC)
AGORA = datetime(2025, 6, 3, 15, 0, tzinfo=UTC)


def _nc(**kw):
    base = dict(
        id="nc-1",
        titulo="Vazamento de óleo",
        criado_em=CRIADO,
        criado_por=Criador(id="u1", matricula="1234"),
        ativo=AtivoVinculado(id="m1", tag="CAM-01"),
        severidade="media",
        prazo=CRIADO + timedelta(days=5),
    )
    base.update(kw)
    return NaoConformidade(**base)


def _corretiva(concluida=True):
    return Acao(
        id="a1",
        tipo="corretiva",
        descricao="Trocar retentor",
        iniciada_em=CRIADO + timedelta(hours=2),
        concluida_em=CRIADO + timedelta(hours=20) if concluida else None,
    )


def _preventiva(eficaz=True):
    return Acao(id="a2", tipo="preventiva", descricao="Inspeção semanal", eficaz=eficaz)


def _aplicar(nc, payload, ator=None):
    return aplicar_transicao(nc, PatchNC.de_dict(payload), ator, AGORA, UTC)


def test_estados_abertos_transitam_livremente():
    nc = _nc()
    for status in ("em_execucao", "aguardando_peca", "bloqueada", "aberta"):
        res = _aplicar(nc, {"status": status})
        nc = res.nc
        assert nc.status == status


def test_status_invalido_rejeitado():
    with pytest.raises(ErroValidacao) as exc:
        _aplicar(_nc(), {"status": "cancelada"})
    assert exc.value.motivo == "status_invalido"


def test_resolver_sem_corretiva_concluida_rejeitado():
    with pytest.raises(ErroValidacao) as exc:
        _aplicar(_nc(acoes=[_corretiva(concluida=False)]), {"status": "resolvida"})
    assert exc.value.motivo == "corretiva_nao_concluida"
    assert exc.value.mensagem == "Finalize ao menos uma ação corretiva antes de encerrar a NC."


def test_resolver_com_corretiva_concluida():
    res = _aplicar(_nc(acoes=[_corretiva()]), {"status": "resolvida"})
    assert res.nc.status == "resolvida"
    assert res.diff["status"] == {"before": "aberta", "after": "resolvida"}


def test_acoes_do_pedido_contam_para_capa():
    payload = {
        "status": "resolvida",
        "acoes": [{"tipo": "corretiva", "descricao": "Reaperto", "concluida_em": "2025-06-03T10:00:00Z"}],
    }
    res = _aplicar(_nc(), payload)
    assert res.nc.status == "resolvida"
    assert len(res.nc.acoes) == 1


def test_recorrente_exige_causa_raiz():
    nc = _nc(recorrencia_de_id="nc-0", acoes=[_corretiva(), _preventiva()])
    with pytest.raises(ErroValidacao) as exc:
        _aplicar(nc, {"status": "resolvida", "causa_raiz": "   "})
    assert exc.value.motivo == "causa_raiz_ausente"


def test_recorrente_exige_preventiva_eficaz():
    nc = _nc(recorrencia_de_id="nc-0", acoes=[_corretiva(), _preventiva(eficaz=False)])
    with pytest.raises(ErroValidacao) as exc:
        _aplicar(nc, {"status": "resolvida", "causa_raiz": "Retentor ressecado"})
    assert exc.value.motivo == "preventiva_eficaz_ausente"


def test_recorrente_completa_resolve():
    nc = _nc(recorrencia_de_id="nc-0", acoes=[_corretiva(), _preventiva()])
    res = _aplicar(nc, {"status": "resolvida", "causa_raiz": "  Retentor ressecado "})
    assert res.nc.status == "resolvida"
    assert res.nc.causa_raiz == "Retentor ressecado"


def test_validar_capa_ignora_status_em_aberto():
    validar_capa("bloqueada", [], None, True)


def test_reabertura_nao_suportada():
    nc = _nc(status="resolvida", acoes=[_corretiva()])
    with pytest.raises(ErroValidacao) as exc:
        _aplicar(nc, {"status": "aberta"})
    assert exc.value.motivo == "reabertura_nao_suportada"


def test_mudanca_de_severidade_recalcula_prazo():
    res = _aplicar(_nc(), {"severidade": "alta"})
    assert res.nc.severidade == "alta"
    assert res.nc.prazo == CRIADO + timedelta(days=2)
    assert res.diff["severidade_rank"] == {"before": 2, "after": 3}
    assert "prazo" in res.diff


def test_prazo_pedido_alta_e_limitado():
    res = _aplicar(_nc(severidade="alta", prazo=CRIADO + timedelta(days=2)), {"prazo": "2025-06-30T00:00:00Z"})
    assert res.nc.prazo == CRIADO + timedelta(days=2)
    assert not res.alterou


def test_prazo_pedido_antes_da_criacao_volta_ao_padrao():
    nc = _nc(prazo=CRIADO + timedelta(days=1))
    res = _aplicar(nc, {"prazo": "2025-01-01T00:00:00Z"})
    assert res.nc.prazo == CRIADO + timedelta(days=5)


def test_causa_raiz_none_limpa_e_ausente_mantem():
    nc = _nc(causa_raiz="Desgaste")
    assert _aplicar(nc, {"status": "em_execucao"}).nc.causa_raiz == "Desgaste"
    assert _aplicar(nc, {"causa_raiz": None}).nc.causa_raiz is None


def test_lista_de_acoes_vazia_mantem_atuais():
    nc = _nc(acoes=[_corretiva(concluida=False)])
    res = _aplicar(nc, {"acoes": []})
    assert not res.alterou
    assert res.nc.acoes == nc.acoes


def test_noop_sem_auditoria_e_sem_atualizado_em():
    nc = _nc()
    res = _aplicar(nc, {"status": "aberta", "severidade": "media"})
    assert not res.alterou
    assert res.auditoria is None
    assert res.nc is nc


def test_auditoria_registra_ator_e_atualizado_em():
    res = _aplicar(_nc(), {"status": "em_execucao"}, Ator(id="u9", nome="Ana"))
    assert res.auditoria.ator_id == "u9"
    assert res.auditoria.ator_nome == "Ana"
    assert res.auditoria.em == AGORA
    assert res.nc.atualizado_em == AGORA
    assert set(res.diff) == {"status", "atualizado_em"}


def test_auditoria_sem_ator_usa_sistema():
    res = _aplicar(_nc(), {"status": "bloqueada"})
    assert res.auditoria.ator_id == "system"


def test_patch_aceita_chaves_camel_case():
    patch = PatchNC.de_dict({"rootCause": "x", "safetyRisk": "sim", "dueAt": "2025-06-05T00:00:00Z"})
    assert patch.causa_raiz == "x"
    assert patch.risco_seguranca is True
    assert patch.prazo == "2025-06-05T00:00:00Z"
