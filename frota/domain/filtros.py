"""
Filtros da listagem de não-conformidades.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from typing import Any, List, Optional

from frota.domain.valores import parse_instante
from frota.domain.models import STATUS_NC, NaoConformidade
from frota.domain.policies import SEVERIDADE_RANK


def _limite(valor: Any, fim_do_dia: bool = False) -> Optional[datetime]:
    """Data ``YYYY-MM-DD`` vira início (ou fim) do dia em UTC."""
    if isinstance(valor, str) and len(valor.strip()) == 10 and valor.strip()[4] == "-":
        dt = parse_instante(valor.strip())
        if dt is not None and fim_do_dia:
            dt = datetime.combine(dt.date(), time(23, 59, 59, 999000), tzinfo=timezone.utc)
        return dt
    return parse_instante(valor)


@dataclass
class FiltrosNC:
    status: List[str] = field(default_factory=list)
    severidades: List[str] = field(default_factory=list)
    ativo: Optional[str] = None             # id ou tag
    de: Optional[datetime] = None
    ate: Optional[datetime] = None
    busca: Optional[str] = None

    @classmethod
    def criar(
        cls,
        status: Optional[List[str]] = None,
        severidades: Optional[List[str]] = None,
        ativo: Optional[str] = None,
        de: Any = None,
        ate: Any = None,
        busca: Optional[str] = None,
    ) -> "FiltrosNC":
        return cls(
            status=[s for s in (status or []) if s in STATUS_NC],
            severidades=[s for s in (severidades or []) if s in SEVERIDADE_RANK],
            ativo=(ativo or "").strip() or None,
            de=_limite(de),
            ate=_limite(ate, fim_do_dia=True),
            busca=(busca or "").strip() or None,
        )

    def corresponde(self, nc: NaoConformidade) -> bool:
        if self.status and nc.status not in self.status:
            return False
        if self.severidades and nc.severidade not in self.severidades:
            return False
        if self.ativo and self.ativo not in (nc.ativo.id, nc.ativo.tag):
            return False
        if self.de and nc.criado_em < self.de:
            return False
        if self.ate and nc.criado_em > self.ate:
            return False
        if self.busca:
            alvo = self.busca.lower()
            palheiro = " ".join(
                (v or "").lower()
                for v in (
                    nc.titulo,
                    nc.descricao,
                    nc.ativo.tag,
                    nc.ativo.modelo,
                    nc.criado_por.matricula,
                    nc.causa_raiz,
                )
            )
            if alvo not in palheiro:
                return False
        return True
