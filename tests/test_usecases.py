from datetime import datetime, timedelta, timezone

import pytest

from frota.domain.erros import ErroInterno, ErroValidacao, NaoEncontrado
from frota.domain.filtros import FiltrosNC
from frota.domain.models import Ator, Maquina, Periodicidade, QuestaoTemplate, TemplateChecklist
from frota.infra.repositories import AuditoriaRepo, ChecklistRepo, MaquinaRepo, NaoConformidadeRepo, TemplateRepo
from frota.usecases.atualizar_nc import run_atualizar_nc, run_listar_ncs, run_obter_nc
from frota.usecases.comum import preparar_banco
from frota.usecases.conformidade import run_configurar_periodicidade, run_conformidade
from frota.usecases.indicadores import run_indicadores
from frota.usecases.processar_checklist import run_processar_checklist, run_registrar_checklist

UTC = timezone.utc
AGORA = datetime(2025, 9, 10, 12, 0, tzinfo=UTC)


def _sem_telemetria(ativo_id, instante):
    return None


def _seed(db_path):
    preparar_banco(db_path)
    MaquinaRepo(db_path).upsert(
        Maquina(id="m1", tag="CAM-01", modelo="Caminhão 8x4", setor="mina", checklists=["t1"])
    )
    TemplateRepo(db_path).upsert(
        TemplateChecklist(
            id="t1",
            titulo="Pré-uso",
            questoes=[
                QuestaoTemplate(id="q1", texto="Vazamento de óleo", categoria_sistema="motor"),
                QuestaoTemplate(id="q2", texto="Freio de estacionamento", categoria_sistema="freios"),
            ],
            periodicidade=Periodicidade(quantidade=1, unidade="day", ativa=True),
        )
    )


def _payload(id, criado_em, respostas=None, extras=None):
    return {
        "id": id,
        "maquina_id": "m1",
        "template_id": "t1",
        "usuario_id": "u1",
        "operador_matricula": "9876",
        "criado_em": criado_em,
        "respostas": respostas if respostas is not None else [{"questao_id": "q1", "resposta": "nc"}],
        "extras": extras or [],
    }


def _registrar(db_path, payload):
    return run_registrar_checklist(payload, db_path, agora=AGORA, provedor_telemetria=_sem_telemetria)


def test_registrar_gera_ncs_e_reprocessar_nao_duplica(tmp_path):
    db = str(tmp_path / "frota.db")
    _seed(db)
    res = _registrar(db, _payload("r1", "2025-09-09T08:00:00Z", extras=[{"titulo": "Farol queimado", "severidade": "baixa"}]))
    assert res["nova"] is True
    assert res["ncs_geradas"] == 2
    assert res["ncs_inseridas"] == 2

    de_novo = run_processar_checklist("r1", db, agora=AGORA, provedor_telemetria=_sem_telemetria)
    assert de_novo["ncs_geradas"] == 2
    assert de_novo["ncs_inseridas"] == 0
    assert len(NaoConformidadeRepo(db).recentes()) == 2


def test_registrar_mesmo_id_nao_sobrescreve(tmp_path):
    db = str(tmp_path / "frota.db")
    _seed(db)
    _registrar(db, _payload("r1", "2025-09-09T08:00:00Z"))
    res = _registrar(db, _payload("r1", "2025-09-09T08:00:00Z", respostas=[]))
    assert res["nova"] is False
    assert res["ncs_geradas"] == 1


def test_recorrencia_entre_submissoes(tmp_path):
    db = str(tmp_path / "frota.db")
    _seed(db)
    primeira = _registrar(db, _payload("r1", "2025-09-01T08:00:00Z"))
    segunda = _registrar(db, _payload("r2", "2025-09-08T08:00:00Z"))
    assert segunda["recorrentes"] == segunda["ncs"]
    nc = NaoConformidadeRepo(db).get(segunda["ncs"][0])
    assert nc.recorrencia_de_id == primeira["ncs"][0]


def test_recorrencia_fora_da_janela_nao_liga(tmp_path):
    db = str(tmp_path / "frota.db")
    _seed(db)
    _registrar(db, _payload("r1", "2025-07-01T08:00:00Z"))
    segunda = _registrar(db, _payload("r2", "2025-09-08T08:00:00Z"))
    assert segunda["recorrentes"] == []


def test_submissao_sem_maquina_rejeitada(tmp_path):
    db = str(tmp_path / "frota.db")
    payload = _payload("r1", "2025-09-09T08:00:00Z")
    payload["maquina_id"] = ""
    with pytest.raises(ErroValidacao) as exc:
        _registrar(db, payload)
    assert exc.value.motivo == "submissao_invalida"


def test_processar_submissao_inexistente(tmp_path):
    with pytest.raises(NaoEncontrado):
        run_processar_checklist("nao-existe", str(tmp_path / "frota.db"))


def test_telemetria_com_falha_nao_impede_ncs(tmp_path):
    db = str(tmp_path / "frota.db")
    _seed(db)

    def _quebrado(ativo_id, instante):
        raise ConnectionError("rastreador fora do ar")

    res = run_registrar_checklist(_payload("r1", "2025-09-09T08:00:00Z"), db, agora=AGORA, provedor_telemetria=_quebrado)
    nc = NaoConformidadeRepo(db).get(res["ncs"][0])
    assert nc.telemetria is None


def test_telemetria_padrao_deterministica(tmp_path):
    db = str(tmp_path / "frota.db")
    _seed(db)
    res = run_registrar_checklist(_payload("r1", "2025-09-09T08:00:00Z"), db, agora=AGORA)
    nc = NaoConformidadeRepo(db).get(res["ncs"][0])
    assert set(nc.telemetria) >= {"horas", "odometro_km", "codigos_falha", "janela_inicio", "janela_fim"}
    assert nc.telemetria["janela_inicio"] == "2025-09-08T08:00:00.000Z"


def _nc_criada(db):
    _seed(db)
    return _registrar(db, _payload("r1", "2025-09-09T08:00:00Z"))["ncs"][0]


def test_atualizar_grava_auditoria(tmp_path):
    db = str(tmp_path / "frota.db")
    nc_id = _nc_criada(db)
    res = run_atualizar_nc(nc_id, {"status": "em_execucao"}, Ator(id="u7", nome="Bia"), db, agora=AGORA)
    assert res["alterou"] is True
    assert res["nc"]["status"] == "em_execucao"
    assert res["auditoria_id"] is not None

    obtida = run_obter_nc(nc_id, db)
    assert obtida["nc"]["status"] == "em_execucao"
    assert obtida["auditoria"][0]["ator_id"] == "u7"
    assert obtida["auditoria"][0]["diff"]["status"] == {"before": "aberta", "after": "em_execucao"}


def test_atualizar_noop_nao_grava_auditoria(tmp_path):
    db = str(tmp_path / "frota.db")
    nc_id = _nc_criada(db)
    res = run_atualizar_nc(nc_id, {"status": "aberta"}, db_path=db, agora=AGORA)
    assert res["alterou"] is False
    assert AuditoriaRepo(db).list_for(nc_id) == []


def test_atualizar_rejeitado_nao_altera_registro(tmp_path):
    db = str(tmp_path / "frota.db")
    nc_id = _nc_criada(db)
    with pytest.raises(ErroValidacao) as exc:
        run_atualizar_nc(nc_id, {"status": "resolvida"}, db_path=db, agora=AGORA)
    assert exc.value.motivo == "corretiva_nao_concluida"
    assert NaoConformidadeRepo(db).get(nc_id).status == "aberta"
    assert AuditoriaRepo(db).list_for(nc_id) == []


def test_ciclo_capa_completo(tmp_path):
    db = str(tmp_path / "frota.db")
    nc_id = _nc_criada(db)
    acoes = [
        {
            "id": "a1",
            "tipo": "corretiva",
            "descricao": "Troca do retentor",
            "iniciada_em": "2025-09-09T10:00:00Z",
            "concluida_em": "2025-09-10T09:00:00Z",
        }
    ]
    run_atualizar_nc(nc_id, {"acoes": acoes}, db_path=db, agora=AGORA)
    res = run_atualizar_nc(nc_id, {"status": "resolvida"}, db_path=db, agora=AGORA + timedelta(hours=1))
    assert res["nc"]["status"] == "resolvida"
    auditoria = run_obter_nc(nc_id, db)["auditoria"]
    assert len(auditoria) == 2
    assert "status" in auditoria[0]["diff"]
    assert "acoes" in auditoria[1]["diff"]


def test_atualizar_nc_inexistente(tmp_path):
    db = str(tmp_path / "frota.db")
    preparar_banco(db)
    with pytest.raises(NaoEncontrado):
        run_atualizar_nc("nc::x", {"status": "bloqueada"}, db_path=db)


def test_listar_com_filtros(tmp_path):
    db = str(tmp_path / "frota.db")
    _seed(db)
    _registrar(db, _payload("r1", "2025-09-01T08:00:00Z", extras=[{"titulo": "Pneu careca", "severidade": "alta"}]))
    _registrar(db, _payload("r2", "2025-09-05T08:00:00Z", respostas=[{"questao_id": "q2", "resposta": "nc"}]))

    todas = run_listar_ncs(db_path=db)
    assert [nc["criado_em"] for nc in todas] == sorted((nc["criado_em"] for nc in todas), reverse=True)
    assert len(todas) == 3

    altas = run_listar_ncs(FiltrosNC.criar(severidades=["alta"]), db)
    assert [nc["titulo"] for nc in altas] == ["Pneu careca"]

    busca = run_listar_ncs(FiltrosNC.criar(busca="FREIO"), db)
    assert [nc["titulo"] for nc in busca] == ["Freio de estacionamento"]

    por_data = run_listar_ncs(FiltrosNC.criar(de="2025-09-02", ate="2025-09-05"), db)
    assert len(por_data) == 1

    por_tag = run_listar_ncs(FiltrosNC.criar(ativo="CAM-01"), db, limite=2)
    assert len(por_tag) == 2


def test_conformidade_e_periodicidade(tmp_path):
    db = str(tmp_path / "frota.db")
    _seed(db)
    _registrar(db, _payload("r1", "2025-09-09T08:00:00Z", respostas=[]))

    res = run_conformidade(AGORA, db_path=db, agora=AGORA)
    assert res["resumo"] == {"total": 1, "conformes": 0, "nao_conformes": 1}
    item = res["itens"][0]
    assert item["maquina_nome"] == "Caminhão 8x4"
    assert item["ultima_submissao"] == "2025-09-09T08:00:00.000Z"

    cfg = run_configurar_periodicidade("t1", True, "week", 1, db_path=db)
    assert cfg["periodicidade"]["janela_dias"] == 7
    res = run_conformidade(AGORA, db_path=db, agora=AGORA)
    assert res["resumo"]["conformes"] == 1

    run_configurar_periodicidade("t1", False, db_path=db)
    assert run_conformidade(AGORA, db_path=db, agora=AGORA)["itens"] == []


def test_conformidade_filtro_inexistente(tmp_path):
    db = str(tmp_path / "frota.db")
    _seed(db)
    with pytest.raises(NaoEncontrado):
        run_conformidade(AGORA, template_id="t9", db_path=db)
    with pytest.raises(NaoEncontrado):
        run_configurar_periodicidade("t9", True, db_path=db)


def test_indicadores(tmp_path):
    db = str(tmp_path / "frota.db")
    _seed(db)
    _registrar(db, _payload("r1", "2025-09-01T08:00:00Z", extras=[{"titulo": "Pneu careca", "severidade": "alta"}]))
    painel = run_indicadores(AGORA, db)
    assert painel["total_registros"] == 2
    assert painel["abertas_por_severidade"] == {"alta": 1, "media": 1, "baixa": 0}
    assert painel["referencia"] == "2025-09-10T12:00:00.000Z"


def test_falha_inesperada_vira_erro_interno(tmp_path, monkeypatch):
    db = str(tmp_path / "frota.db")
    preparar_banco(db)

    def _explode(self, limite=None):
        raise RuntimeError("disco corrompido")

    monkeypatch.setattr(NaoConformidadeRepo, "recentes", _explode)
    with pytest.raises(ErroInterno) as exc:
        run_indicadores(AGORA, db)
    assert exc.value.referencia
    assert "disco corrompido" not in str(exc.value)


def test_submissao_antiga_processada_depois_nao_liga_a_nc_futura(tmp_path):
    db = str(tmp_path / "frota.db")
    _seed(db)
    nova = _registrar(db, _payload("s-nova", "2025-09-09T08:00:00Z"))
    antiga = _registrar(db, _payload("s-antiga", "2025-09-01T08:00:00Z"))
    assert antiga["recorrentes"] == []
    assert NaoConformidadeRepo(db).get(antiga["ncs"][0]).recorrencia_de_id is None
    assert NaoConformidadeRepo(db).get(nova["ncs"][0]).recorrencia_de_id is None


def test_falha_na_auditoria_desfaz_atualizacao(tmp_path, monkeypatch):
    db = str(tmp_path / "frota.db")
    nc_id = _nc_criada(db)

    def _falha(self, nc_id, entrada, conn=None):
        raise RuntimeError("disco cheio")

    monkeypatch.setattr(AuditoriaRepo, "append", _falha)
    with pytest.raises(ErroInterno):
        run_atualizar_nc(nc_id, {"status": "em_execucao"}, db_path=db, agora=AGORA)
    monkeypatch.undo()
    assert NaoConformidadeRepo(db).get(nc_id).status == "aberta"
    assert AuditoriaRepo(db).list_for(nc_id) == []


def test_criado_em_invalido_fixado_no_registro(tmp_path):
    db = str(tmp_path / "frota.db")
    _seed(db)
    res = _registrar(db, _payload("r1", "ontem"))
    assert ChecklistRepo(db).get("r1").criado_em == "2025-09-10T12:00:00.000Z"
    assert ChecklistRepo(db).ultima_submissao("t1", "m1", AGORA) == AGORA

    depois = AGORA + timedelta(days=2)
    run_processar_checklist("r1", db, agora=depois, provedor_telemetria=_sem_telemetria)
    assert ChecklistRepo(db).get("r1").criado_em == "2025-09-10T12:00:00.000Z"
    assert NaoConformidadeRepo(db).get(res["ncs"][0]).criado_em == AGORA
