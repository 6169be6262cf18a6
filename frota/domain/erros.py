"""
Exceções do domínio.

- ErroValidacao: pedido bem-formado que viola uma regra de negócio.
- NaoEncontrado: entidade referenciada não existe no repositório.
- ErroInterno: falha inesperada, exposta ao chamador apenas pela referência.
"""

from __future__ import annotations

import uuid
from typing import Optional


class ErroFrota(Exception):
    """Base das exceções do motor de não-conformidades."""


class ErroValidacao(ErroFrota, ValueError):
    """Rejeição de regra de negócio com motivo específico."""

    def __init__(self, motivo: str, mensagem: str):
        super().__init__(mensagem)
        self.motivo = motivo
        self.mensagem = mensagem


class NaoEncontrado(ErroFrota, LookupError):
    def __init__(self, entidade: str, id: str):
        super().__init__(f"Não encontrado: {entidade} {id}")
        self.entidade = entidade
        self.id = id


class ErroInterno(ErroFrota):
    """Falha interna; `referencia` correlaciona com o log do sistema."""

    def __init__(self, referencia: Optional[str] = None):
        self.referencia = referencia or uuid.uuid4().hex
        super().__init__(f"Falha interna (referência {self.referencia})")
