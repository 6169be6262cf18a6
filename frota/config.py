# frota/config.py
"""
Configurações globais e valores padrão do motor de não-conformidades.
"""

import os
from dataclasses import dataclass, field


# Caminho padrão do banco de dados SQLite
DB_PATH = os.environ.get("FROTA_DB") or os.path.join(os.getcwd(), "frota.db")


@dataclass
class DefaultConfig:
    """Valores padrão para parâmetros do sistema."""
    janela_recorrencia_dias: int = 30  # janela de busca de NCs recorrentes por ativo
    limite_auditoria: int = 50  # página de auditoria de uma NC
    max_registros_kpi: int = 500  # lote máximo lido para os indicadores
    janela_kpi_recorrencia_dias: int = 30
    top_pareto: int = 5
    janela_alertas_dias: int = 30  # submissões consideradas nos alertas de variáveis
    max_submissoes_alerta: int = 1000
    fuso_horario: str = field(default_factory=lambda: os.environ.get("FROTA_TZ", "America/Sao_Paulo"))
    telemetria_habilitada: bool = True


# Instância global dos valores padrão
DEFAULTS = DefaultConfig()
