"""
Detecção de recorrência de não-conformidades.

A regra atual é uma heurística: duas falhas do mesmo sistema/categoria
no mesmo ativo, dentro da janela, são tratadas como recorrência mesmo que
o texto seja diferente. Por isso a regra fica num objeto de estratégia,
trocável sem mexer na explosão de checklists.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Protocol, Sequence

from frota.config import DEFAULTS
from frota.domain.models import NcExistente


class EstrategiaRecorrencia(Protocol):
    def encontrar(
        self,
        titulo_normalizado: str,
        categoria_sistema: Optional[str],
        janela: Sequence[NcExistente],
    ) -> Optional[str]:
        ...


class CorrespondenciaPorCategoria:
    """Categoria igual (ambas não vazias) casa; senão compara títulos normalizados.

    A primeira NC da janela que casar vence, na ordem recebida do chamador
    (normalmente da mais recente para a mais antiga).
    """

    def encontrar(
        self,
        titulo_normalizado: str,
        categoria_sistema: Optional[str],
        janela: Sequence[NcExistente],
    ) -> Optional[str]:
        for item in janela:
            if categoria_sistema and item.categoria_sistema and item.categoria_sistema == categoria_sistema:
                return item.id
            if item.titulo_normalizado == titulo_normalizado:
                return item.id
        return None


ESTRATEGIA_PADRAO = CorrespondenciaPorCategoria()


def filtrar_janela(
    existentes: Iterable[NcExistente],
    referencia: datetime,
    dias: Optional[int] = None,
) -> List[NcExistente]:
    """Mantém as NCs criadas nos `dias` anteriores à referência, mais recentes primeiro.

    NCs posteriores à referência ficam de fora: uma submissão antiga
    processada depois de uma nova não pode apontar para o futuro.
    """
    dias = DEFAULTS.janela_recorrencia_dias if dias is None else dias
    corte = referencia - timedelta(days=dias)
    janela = [nc for nc in existentes if corte <= nc.criado_em <= referencia]
    janela.sort(key=lambda nc: nc.criado_em, reverse=True)
    return janela
