from datetime import datetime, timedelta, timezone

from frota.domain.models import NcExistente
from frota.domain.recorrencia import CorrespondenciaPorCategoria, filtrar_janela

REF = datetime(2025, 5, 31, 12, 0, tzinfo=timezone.utc)


def _nc(id, dias_atras, titulo="vazamento de oleo", categoria=None):
    return NcExistente(id=id, criado_em=REF - timedelta(days=dias_atras), titulo_normalizado=titulo, categoria_sistema=categoria)


def test_filtrar_janela_corta_em_30_dias_e_ordena():
    janela = filtrar_janela([_nc("a", 40), _nc("b", 10), _nc("c", 2), _nc("d", 30)], REF)
    assert [nc.id for nc in janela] == ["c", "b", "d"]


def test_casa_por_titulo_normalizado():
    estrategia = CorrespondenciaPorCategoria()
    janela = [_nc("x", 1, titulo="pneu furado"), _nc("y", 3)]
    assert estrategia.encontrar("vazamento de oleo", None, janela) == "y"


def test_casa_por_categoria_mesmo_com_titulo_diferente():
    estrategia = CorrespondenciaPorCategoria()
    janela = [_nc("x", 1, titulo="ruido no motor", categoria="motor")]
    assert estrategia.encontrar("vazamento de oleo", "motor", janela) == "x"


def test_categoria_vazia_nao_casa_com_vazia():
    estrategia = CorrespondenciaPorCategoria()
    janela = [_nc("x", 1, titulo="ruido", categoria=None)]
    assert estrategia.encontrar("vazamento", None, janela) is None
    assert estrategia.encontrar("vazamento", "", janela) is None


def test_primeira_da_janela_vence():
    estrategia = CorrespondenciaPorCategoria()
    janela = filtrar_janela([_nc("antiga", 20), _nc("recente", 1)], REF)
    assert estrategia.encontrar("vazamento de oleo", None, janela) == "recente"


def test_falha_do_mesmo_sistema_com_outro_texto_e_recorrencia():
    existente = _nc("nc-oleo", 5, titulo="vazamento de oleo", categoria="Motor")
    janela = filtrar_janela([existente], REF)
    assert CorrespondenciaPorCategoria().encontrar("motor falhando ao ligar", "Motor", janela) == "nc-oleo"


def test_filtrar_janela_ignora_ncs_posteriores_a_referencia():
    futura = NcExistente(id="futura", criado_em=REF + timedelta(days=8), titulo_normalizado="vazamento de oleo", categoria_sistema=None)
    janela = filtrar_janela([futura, _nc("passada", 3)], REF)
    assert [nc.id for nc in janela] == ["passada"]
