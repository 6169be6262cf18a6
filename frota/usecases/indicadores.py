# frota/usecases/indicadores.py
"""
UC: Painel de indicadores de não-conformidades.

Lê as NCs mais recentes (até DEFAULTS.max_registros_kpi) e reduz o lote.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from frota.domain.valores import formatar_instante
from frota.config import DB_PATH, DEFAULTS
from frota.domain.erros import ErroFrota
from frota.domain.indicadores import reduzir_indicadores
from frota.infra.logger import log_database_operation, log_system_event, log_transaction, system_logger
from frota.infra.repositories import NaoConformidadeRepo
from frota.usecases.comum import falha_interna, preparar_banco


def run_indicadores(
    referencia: Optional[datetime] = None,
    db_path: str = DB_PATH,
    limite: Optional[int] = None,
) -> Dict[str, Any]:
    referencia = referencia or datetime.now(timezone.utc)
    limite = limite or DEFAULTS.max_registros_kpi
    dados = {"referencia": formatar_instante(referencia), "limite": limite}
    log_system_event("indicadores_start", dados)
    try:
        preparar_banco(db_path)
        registros = NaoConformidadeRepo(db_path).recentes(limite)
        log_database_operation("nao_conformidade", "SELECT", len(registros))
        if len(registros) >= limite:
            system_logger.info(f"KPI: lote truncado em {limite} registros")

        painel = reduzir_indicadores(registros, referencia)
        painel["referencia"] = formatar_instante(referencia)
        log_transaction("indicadores", dados, result={"total_registros": painel["total_registros"]})
        return painel
    except ErroFrota as e:
        log_transaction("indicadores", dados, error=str(e))
        raise
    except Exception as e:
        raise falha_interna("indicadores", dados, e) from e
