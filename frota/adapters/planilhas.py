# frota/adapters/planilhas.py
"""
Loader de planilhas (XLSX ou CSV) com submissões de checklist.

Formato esperado: uma linha por resposta de pergunta. As linhas de uma
mesma submissão compartilham ``resposta_id``, máquina, template, usuário e
data. NCs extras vêm em linhas com ``extra titulo`` preenchido (a pergunta
pode ficar vazia nessas linhas).

A função:
- lê a planilha com pandas (tudo como string, preservando formatos);
- normaliza cabeçalhos (acentos, variações, sinônimos);
- agrupa as linhas por submissão, na ordem em que aparecem;
- devolve payloads aceitos por ``RespostaChecklist.de_dict``.
"""

from __future__ import annotations

import re
import unicodedata
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from frota.adapters.parsers import formatar_instante, normalize_str, parse_bool, parse_instante
from frota.domain.erros import ErroValidacao, NaoEncontrado


# ---------------------------
# utilitários de normalização
# ---------------------------

def _slug(s: Any) -> str:
    """Normaliza cabeçalhos: minúsculas, sem acentos, sem não-alfanumérico."""
    if s is None:
        return ""
    s = unicodedata.normalize("NFD", str(s).strip().lower())
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    return re.sub(r"[^a-z0-9]+", " ", s).strip()


def _safe_get(row, key):
    val = row.get(key)
    if val is None or pd.isna(val):
        return None
    return normalize_str(val)


_ALIASES = {
    "resposta id": "resposta_id",
    "id resposta": "resposta_id",
    "submissao": "resposta_id",
    "submissao id": "resposta_id",
    "checklist": "resposta_id",

    "maquina": "maquina_id",
    "maquina id": "maquina_id",
    "machine id": "maquina_id",
    "ativo": "maquina_id",

    "template": "template_id",
    "template id": "template_id",
    "modelo checklist": "template_id",

    "usuario": "usuario_id",
    "usuario id": "usuario_id",
    "user id": "usuario_id",

    "matricula": "operador_matricula",
    "operador matricula": "operador_matricula",

    "operador": "operador_nome",
    "nome operador": "operador_nome",
    "operador nome": "operador_nome",

    "data": "criado_em",
    "criado em": "criado_em",
    "data hora": "criado_em",
    "created at": "criado_em",

    "pergunta": "questao_id",
    "questao": "questao_id",
    "questao id": "questao_id",
    "question id": "questao_id",

    "resposta": "resposta",
    "resultado": "resposta",

    "observacao": "observacao",
    "obs": "observacao",

    "valor": "valor_variavel",
    "valor variavel": "valor_variavel",
    "variavel": "valor_variavel",

    "extra titulo": "extra_titulo",
    "nc extra": "extra_titulo",
    "extra descricao": "extra_descricao",
    "extra severidade": "extra_severidade",
    "severidade": "extra_severidade",
    "risco seguranca": "extra_risco_seguranca",
    "impacto disponibilidade": "extra_impacto_disponibilidade",

    "km": "km",
    "horimetro": "horimetro",
}

_RESPOSTAS = {
    "ok": "ok", "conforme": "ok", "c": "ok", "sim": "ok",
    "nc": "nc", "nao conforme": "nc", "nao": "nc",
    "na": "na", "n a": "na", "nao se aplica": "na",
}

_OBRIGATORIAS = ("resposta_id", "maquina_id", "template_id")


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Renomeia colunas com base em sinônimos/variações."""
    new_cols = {}
    for col in df.columns:
        key = _slug(col)
        new_cols[col] = _ALIASES.get(key, key.replace(" ", "_"))
    return df.rename(columns=new_cols)


def _normalizar_resposta(val: Optional[str]) -> Optional[str]:
    if val is None:
        return None
    return _RESPOSTAS.get(_slug(val))


def _numero(val: Optional[str]) -> Optional[float]:
    if val is None:
        return None
    try:
        return float(str(val).replace(",", "."))
    except ValueError:
        return None


def _ler(path: Path) -> pd.DataFrame:
    if path.suffix.lower() in (".xlsx", ".xlsm", ".xls"):
        return pd.read_excel(path, dtype=str)
    # CSV: separador detectado (vírgula ou ponto e vírgula)
    return pd.read_csv(path, dtype=str, sep=None, engine="python", encoding="utf-8-sig")


# ---------------------------
# loader público
# ---------------------------

def load_respostas_from_planilha(path: str) -> List[Dict[str, Any]]:
    """Lê a planilha e devolve um payload por submissão.

    Raises:
        NaoEncontrado: arquivo inexistente.
        ErroValidacao: colunas obrigatórias ausentes.
    """
    p = Path(path)
    if not p.exists():
        raise NaoEncontrado("planilha", str(path))

    df = _normalize_columns(_ler(p))
    faltando = [c for c in _OBRIGATORIAS if c not in df.columns]
    if faltando:
        raise ErroValidacao("planilha_invalida", f"Colunas obrigatórias ausentes: {', '.join(faltando)}")

    submissoes: Dict[str, Dict[str, Any]] = {}
    for _, row in df.iterrows():
        rid = _safe_get(row, "resposta_id")
        if not rid:
            continue
        sub = submissoes.get(rid)
        if sub is None:
            criado = parse_instante(_safe_get(row, "criado_em"))
            sub = {
                "id": rid,
                "maquina_id": _safe_get(row, "maquina_id"),
                "template_id": _safe_get(row, "template_id"),
                "usuario_id": _safe_get(row, "usuario_id") or "",
                "operador_matricula": _safe_get(row, "operador_matricula"),
                "operador_nome": _safe_get(row, "operador_nome"),
                "criado_em": formatar_instante(criado) if criado else None,
                "km": _numero(_safe_get(row, "km")),
                "horimetro": _numero(_safe_get(row, "horimetro")),
                "respostas": [],
                "extras": [],
            }
            submissoes[rid] = sub

        questao = _safe_get(row, "questao_id")
        resposta = _normalizar_resposta(_safe_get(row, "resposta"))
        if questao and resposta:
            sub["respostas"].append(
                {
                    "questao_id": questao,
                    "resposta": resposta,
                    "observacao": _safe_get(row, "observacao"),
                    "valor_variavel": _safe_get(row, "valor_variavel"),
                }
            )

        extra = _safe_get(row, "extra_titulo")
        if extra:
            sub["extras"].append(
                {
                    "titulo": extra,
                    "descricao": _safe_get(row, "extra_descricao"),
                    "severidade": _safe_get(row, "extra_severidade"),
                    "risco_seguranca": parse_bool(_safe_get(row, "extra_risco_seguranca")),
                    "impacto_disponibilidade": parse_bool(_safe_get(row, "extra_impacto_disponibilidade")),
                }
            )

    return list(submissoes.values())
