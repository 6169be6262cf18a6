# frota/usecases/comum.py
"""
Apoio compartilhado pelos casos de uso: preparo do banco e tradução de
falhas inesperadas em ErroInterno com referência para o log.
"""

from __future__ import annotations

from typing import Any, Dict

from frota.domain.erros import ErroInterno
from frota.infra.logger import log_database_operation, log_transaction, system_logger
from frota.infra.migrations import apply_migrations
from frota.infra.views import create_views


def preparar_banco(db_path: str) -> None:
    apply_migrations(db_path)
    create_views(db_path)
    log_database_operation("schema", "PREPARE", 0, db_path=db_path)


def falha_interna(operacao: str, dados: Dict[str, Any], erro: BaseException) -> ErroInterno:
    """Registra a falha com uma referência opaca e devolve o ErroInterno correspondente."""
    interno = ErroInterno()
    # gravado mesmo com ENABLE_LOGGING desligado
    system_logger.error(
        f"INTERNAL_ERROR [{interno.referencia}] {operacao}: {erro!r} - Data: {dados}",
        exc_info=(type(erro), erro, erro.__traceback__),
    )
    log_transaction(operacao, dados, error=f"internal:{interno.referencia}")
    return interno
