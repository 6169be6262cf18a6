# frota/usecases/variaveis.py
"""
UC: Relatórios das variáveis de perguntas (alertas e periodicidade).
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from frota.config import DB_PATH, DEFAULTS
from frota.domain.erros import ErroFrota, NaoEncontrado
from frota.domain.valores import formatar_instante
from frota.domain.variaveis import calcular_alertas, calcular_periodicidade_variaveis, ultimas_por_variavel
from frota.infra.logger import log_database_operation, log_system_event, log_transaction
from frota.infra.repositories import ChecklistRepo, MaquinaRepo, TemplateRepo
from frota.usecases.comum import falha_interna, preparar_banco


def run_alertas_variaveis(
    db_path: str = DB_PATH,
    agora: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Alertas de variáveis para a tela inicial.

    Considera as submissões dos últimos ``janela_alertas_dias`` até
    ``agora`` (no máximo ``max_submissoes_alerta``, mais recentes).
    """
    agora = agora or datetime.now(timezone.utc)
    dados = {"agora": formatar_instante(agora)}
    log_system_event("alertas_variaveis_start", dados)
    try:
        preparar_banco(db_path)
        desde = agora - timedelta(days=DEFAULTS.janela_alertas_dias)
        submissoes = ChecklistRepo(db_path).listar(desde, agora, DEFAULTS.max_submissoes_alerta)
        log_database_operation("checklist_resposta", "SELECT", len(submissoes), consulta="alertas_variaveis")

        templates = {t.id: t for t in TemplateRepo(db_path).list_all()}
        maquinas = {m.id: m for m in MaquinaRepo(db_path).list_all()}
        alertas = calcular_alertas(submissoes, templates, maquinas)

        result = {"gerado_em": formatar_instante(agora), "itens": [a.para_dict() for a in alertas]}
        log_transaction("alertas_variaveis", dados, result={"itens": len(alertas)})
        return result
    except ErroFrota as e:
        log_transaction("alertas_variaveis", dados, error=str(e))
        raise
    except Exception as e:
        raise falha_interna("alertas_variaveis", dados, e) from e


def run_periodicidade_variaveis(
    referencia: Optional[datetime] = None,
    maquina_id: Optional[str] = None,
    db_path: str = DB_PATH,
    agora: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Conformidade das variáveis com periodicidade ativa, por máquina."""
    agora = agora or datetime.now(timezone.utc)
    referencia = referencia or agora
    dados = {"referencia": formatar_instante(referencia), "maquina_id": maquina_id}
    log_system_event("periodicidade_variaveis_start", dados)
    try:
        preparar_banco(db_path)
        m_repo = MaquinaRepo(db_path)
        if maquina_id:
            maquina = m_repo.get(maquina_id)
            if maquina is None:
                raise NaoEncontrado("máquina", maquina_id)
            maquinas = [maquina]
        else:
            maquinas = m_repo.list_all()

        submissoes = ChecklistRepo(db_path).listar(ate=referencia)
        log_database_operation("checklist_resposta", "SELECT", len(submissoes), consulta="periodicidade_variaveis")
        ultimas = ultimas_por_variavel(submissoes, referencia)

        resultado = calcular_periodicidade_variaveis(TemplateRepo(db_path).list_all(), maquinas, ultimas, referencia)
        result = {
            "gerado_em": formatar_instante(agora),
            "referencia": formatar_instante(referencia),
            "resumo": resultado.resumo,
            "itens": [r.para_dict() for r in resultado.registros],
            "ignorados": resultado.ignorados,
        }
        log_transaction("periodicidade_variaveis", dados, result=result["resumo"])
        return result
    except ErroFrota as e:
        log_transaction("periodicidade_variaveis", dados, error=str(e))
        raise
    except Exception as e:
        raise falha_interna("periodicidade_variaveis", dados, e) from e
