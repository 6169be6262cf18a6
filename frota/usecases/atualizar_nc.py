# frota/usecases/atualizar_nc.py
"""
UC: Consultar e atualizar não-conformidades.

A atualização lê a versão atual, aplica a máquina de estados e grava o
resultado junto com uma entrada de auditoria. Rejeições de regra (CAPA,
status inválido) sobem como ErroValidacao com o motivo específico.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from frota.domain.valores import formatar_instante
from frota.config import DB_PATH
from frota.domain.erros import ErroFrota, ErroValidacao, NaoEncontrado
from frota.domain.filtros import FiltrosNC
from frota.domain.models import Ator, EntradaAuditoria
from frota.domain.transicoes import PatchNC, aplicar_transicao
from frota.infra.db import connect
from frota.infra.logger import log_database_operation, log_nc, log_system_event, log_transaction
from frota.infra.repositories import AuditoriaRepo, NaoConformidadeRepo
from frota.usecases.comum import falha_interna, preparar_banco


def auditoria_para_dict(entrada: EntradaAuditoria) -> Dict[str, Any]:
    return {
        "id": entrada.id,
        "ator_id": entrada.ator_id,
        "ator_nome": entrada.ator_nome,
        "em": formatar_instante(entrada.em),
        "diff": entrada.diff,
    }


def run_atualizar_nc(
    nc_id: str,
    payload: Mapping[str, Any],
    ator: Optional[Ator] = None,
    db_path: str = DB_PATH,
    agora: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Aplica um pedido de alteração (payload solto) sobre a NC.

    Returns:
        {"nc": dict, "diff": dict, "alterou": bool, "auditoria_id": int | None}
    """
    dados = {"nc_id": nc_id, "campos": sorted(payload.keys()), "ator": ator.id if ator else None}
    log_system_event("atualizar_nc_start", dados)
    try:
        preparar_banco(db_path)
        repo = NaoConformidadeRepo(db_path)
        existente = repo.get(nc_id)
        if existente is None:
            raise NaoEncontrado("NC", nc_id)

        try:
            resultado = aplicar_transicao(existente, PatchNC.de_dict(payload), ator, agora)
        except ErroValidacao as e:
            log_nc("rejeitada", nc_id, motivo=e.motivo)
            raise

        auditoria_id = None
        if resultado.alterou:
            with connect(db_path) as c:
                repo.update_fields(resultado.nc, conn=c)
                auditoria_id = AuditoriaRepo(db_path).append(nc_id, resultado.auditoria, conn=c)
            log_database_operation("nao_conformidade", "UPDATE", 1, nc_id=nc_id)
            log_database_operation("nc_auditoria", "INSERT", 1, nc_id=nc_id)
            log_nc("atualizada", nc_id, campos=sorted(resultado.diff.keys()), status=resultado.nc.status)

        result = {
            "nc": resultado.nc.para_dict(),
            "diff": resultado.diff,
            "alterou": resultado.alterou,
            "auditoria_id": auditoria_id,
        }
        log_transaction("atualizar_nc", dados, result={"alterou": resultado.alterou})
        return result
    except ErroFrota as e:
        log_transaction("atualizar_nc", dados, error=str(e))
        raise
    except Exception as e:
        raise falha_interna("atualizar_nc", dados, e) from e


def run_obter_nc(nc_id: str, db_path: str = DB_PATH) -> Dict[str, Any]:
    """NC e sua página de auditoria (mais recentes primeiro)."""
    dados = {"nc_id": nc_id}
    try:
        preparar_banco(db_path)
        nc = NaoConformidadeRepo(db_path).get(nc_id)
        if nc is None:
            raise NaoEncontrado("NC", nc_id)
        auditoria = AuditoriaRepo(db_path).list_for(nc_id)
        return {"nc": nc.para_dict(), "auditoria": [auditoria_para_dict(a) for a in auditoria]}
    except ErroFrota as e:
        log_transaction("obter_nc", dados, error=str(e))
        raise
    except Exception as e:
        raise falha_interna("obter_nc", dados, e) from e


def run_listar_ncs(
    filtros: Optional[FiltrosNC] = None,
    db_path: str = DB_PATH,
    limite: Optional[int] = None,
) -> List[Dict[str, Any]]:
    dados = {"filtros": filtros, "limite": limite}
    try:
        preparar_banco(db_path)
        ncs = NaoConformidadeRepo(db_path).listar(filtros, limite)
        log_database_operation("nao_conformidade", "SELECT", len(ncs))
        return [nc.para_dict() for nc in ncs]
    except ErroFrota as e:
        log_transaction("listar_ncs", dados, error=str(e))
        raise
    except Exception as e:
        raise falha_interna("listar_ncs", dados, e) from e
