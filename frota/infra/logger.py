# frota/infra/logger.py
"""
Logging das operações da frota.

Um logger de arquivo por assunto: transações dos casos de uso, ciclo de
vida das NCs, banco de dados e eventos do sistema. A gravação é ligada
por ``ENABLE_LOGGING`` (ou pela variável de ambiente ``FROTA_LOG``).
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


def _env_flag(nome: str) -> bool:
    return os.environ.get(nome, "").strip().lower() in {"1", "true", "sim", "yes"}


# Flag global para habilitar/desabilitar logging
ENABLE_LOGGING = _env_flag("FROTA_LOG")
# Flag global para habilitar/desabilitar prints/output
ENABLE_OUTPUT = False


def print_system(*args, **kwargs):
    """Print controlado pelo ENABLE_OUTPUT."""
    if ENABLE_OUTPUT:
        print(*args, **kwargs)


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logger(name: str, log_file: str, level: int = logging.INFO) -> logging.Logger:
    """
    Configura um logger com saída exclusiva em arquivo.

    Args:
        name: Nome do logger
        log_file: Caminho do arquivo de log
        level: Nível de logging

    Returns:
        Logger configurado
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    while logger.handlers:
        logger.removeHandler(logger.handlers[0])

    file_handler = logging.FileHandler(log_file, encoding='utf-8', delay=True)
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(file_handler)

    return logger


BASE_DIR = Path(__file__).parent.parent
LOGS_DIR = Path(os.environ.get("FROTA_LOGS_DIR") or BASE_DIR / "logs")

LOG_FILES = {
    "transactions": LOGS_DIR / "transactions.log",
    "nc": LOGS_DIR / "nc.log",
    "database": LOGS_DIR / "database.log",
    "system": LOGS_DIR / "system.log",
}

transaction_logger = setup_logger('frota.transactions', str(LOG_FILES["transactions"]))
nc_logger = setup_logger('frota.nc', str(LOG_FILES["nc"]))
database_logger = setup_logger('frota.database', str(LOG_FILES["database"]))
system_logger = setup_logger('frota.system', str(LOG_FILES["system"]))


def log_transaction(operation: str, data: Dict[str, Any], result: Optional[Any] = None, error: Optional[str] = None) -> None:
    """
    Registra uma transação de caso de uso.

    Args:
        operation: Nome do caso de uso (processar_checklist, atualizar_nc, ...)
        data: Parâmetros da chamada
        result: Resultado resumido (opcional)
        error: Mensagem de erro (opcional)
    """
    if not ENABLE_LOGGING:
        return
    if error:
        transaction_logger.error(f"TRANSACTION_FAILED: {operation} - {error} - Data: {data}")
    else:
        transaction_logger.info(f"TRANSACTION_SUCCESS: {operation} - Result: {result} - Data: {data}")


def log_nc(action: str, nc_id: str, **kwargs) -> None:
    """Evento do ciclo de vida de uma NC (criada, atualizada, rejeitada)."""
    if not ENABLE_LOGGING:
        return
    log_data = {"action": action, "nc_id": nc_id, **kwargs}
    nc_logger.info(f"NC_{action.upper()}: {log_data}")


def log_database_operation(table: str, operation: str, affected_rows: int = 0, **kwargs) -> None:
    if not ENABLE_LOGGING:
        return
    log_data = {
        "table": table,
        "operation": operation,
        "affected_rows": affected_rows,
        **kwargs
    }
    database_logger.info(f"DB_{operation}: {log_data}")


def log_system_event(event: str, details: Dict[str, Any] = None, level: str = "info") -> None:
    """
    Log para eventos do sistema.

    Args:
        event: Descrição do evento
        details: Detalhes adicionais (opcional)
        level: Nível do log (info, warning, error)
    """
    if not ENABLE_LOGGING:
        return
    log_data = {
        "event": event,
        "details": details or {},
        "at": datetime.now().isoformat(timespec="seconds"),
    }
    log_method = getattr(system_logger, level.lower(), system_logger.info)
    log_method(f"SYSTEM_EVENT: {event} - {log_data}")


def log_file_operation(operation: str, file_path: str, rows_processed: int = 0, **kwargs) -> None:
    if not ENABLE_LOGGING:
        return
    log_data = {
        "operation": operation,
        "file_path": file_path,
        "rows_processed": rows_processed,
        **kwargs
    }
    system_logger.info(f"FILE_{operation.upper()}: {log_data}")


def get_log_summary(log_type: str = "transactions", lines: int = 100) -> str:
    """
    Devolve as últimas linhas de um log.

    Args:
        log_type: transactions, nc, database ou system
        lines: Número de linhas a retornar
    """
    log_file = LOG_FILES.get(log_type)
    if not log_file or not log_file.exists():
        return f"Log {log_type} não encontrado."

    try:
        with open(log_file, 'r', encoding='utf-8') as f:
            all_lines = f.readlines()
    except OSError as e:
        return f"Erro ao ler log {log_type}: {e}"
    return ''.join(all_lines[-lines:])
