# frota/infra/telemetria.py
"""
Provedor de telemetria (stub determinístico).

Enquanto a integração com o rastreador não existe, o retrato é derivado
de um hash de ``<ativo>-<instante ISO>``: o mesmo par sempre devolve os
mesmos números, o que mantém o reprocessamento de checklists estável.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from frota.domain.valores import formatar_instante
from frota.config import DEFAULTS

logger = logging.getLogger(__name__)

ProvedorTelemetria = Callable[[str, datetime], Optional[Dict[str, Any]]]


def _pseudo_aleatorio(semente: str) -> int:
    h = 0
    dados = semente.encode("utf-16-le")
    for i in range(0, len(dados), 2):
        unidade = dados[i] | (dados[i + 1] << 8)
        h = (h * 31 + unidade) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def buscar_telemetria(ativo_id: str, instante: datetime) -> Dict[str, Any]:
    """Retrato de telemetria do ativo no instante (janela de -24h a +6h)."""
    em_iso = formatar_instante(instante)
    r = _pseudo_aleatorio(f"{ativo_id}-{em_iso}")
    return {
        "horas": round((r % 8000) / 10, 1),
        "odometro_km": round((r % 500000) / 10, 1),
        "combustivel_l": round((r % 9000) / 100, 1),
        "tempo_ocioso_h": round(((r / 3) % 2000) / 10, 1),
        "codigos_falha": ["E123", "P2047"] if r % 5 == 0 else (["C880"] if r % 7 == 0 else []),
        "janela_inicio": formatar_instante(instante - timedelta(hours=24)),
        "janela_fim": formatar_instante(instante + timedelta(hours=6)),
    }


def telemetria_segura(
    ativo_id: str,
    instante: datetime,
    provedor: Optional[ProvedorTelemetria] = None,
) -> Optional[Dict[str, Any]]:
    """Chama o provedor; falha ou telemetria desabilitada vira None."""
    if not DEFAULTS.telemetria_habilitada:
        return None
    provedor = provedor or buscar_telemetria
    try:
        return provedor(ativo_id, instante)
    except Exception as e:
        logger.warning("Telemetria indisponível para %s em %s: %s", ativo_id, formatar_instante(instante), e)
        return None
