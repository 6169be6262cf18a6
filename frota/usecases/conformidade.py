# frota/usecases/conformidade.py
"""
UC: Conformidade de periodicidade e configuração da periodicidade dos templates.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from frota.domain.valores import formatar_instante
from frota.config import DB_PATH
from frota.domain.erros import ErroFrota, NaoEncontrado
from frota.domain.periodicidade import AUSENTE, calcular_conformidade, configurar_periodicidade, montar_pares
from frota.infra.logger import log_database_operation, log_system_event, log_transaction
from frota.infra.repositories import ChecklistRepo, MaquinaRepo, TemplateRepo
from frota.usecases.comum import falha_interna, preparar_banco


def run_conformidade(
    referencia: Optional[datetime] = None,
    maquina_id: Optional[str] = None,
    template_id: Optional[str] = None,
    db_path: str = DB_PATH,
    agora: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Relatório de conformidade dos pares (template, máquina) com periodicidade ativa.

    ``referencia`` é o limite "até" da consulta; sem ele vale o instante atual.
    """
    agora = agora or datetime.now(timezone.utc)
    referencia = referencia or agora
    dados = {"referencia": formatar_instante(referencia), "maquina_id": maquina_id, "template_id": template_id}
    log_system_event("conformidade_start", dados)
    try:
        preparar_banco(db_path)
        t_repo, m_repo = TemplateRepo(db_path), MaquinaRepo(db_path)

        if template_id:
            template = t_repo.get(template_id)
            if template is None:
                raise NaoEncontrado("template", template_id)
            templates = [template]
        else:
            templates = t_repo.list_all()

        if maquina_id:
            maquina = m_repo.get(maquina_id)
            if maquina is None:
                raise NaoEncontrado("máquina", maquina_id)
            maquinas = [maquina]
        else:
            maquinas = m_repo.list_all()

        pares = montar_pares(templates, maquinas, template_id, maquina_id)
        c_repo = ChecklistRepo(db_path)
        ultimas = {par.chave: c_repo.ultima_submissao(par.template.id, par.maquina.id, referencia) for par in pares}
        log_database_operation("checklist_resposta", "SELECT", len(pares), consulta="ultima_submissao")

        resultado = calcular_conformidade(pares, ultimas, referencia)
        result = {
            "gerado_em": formatar_instante(agora),
            "referencia": formatar_instante(referencia),
            "resumo": resultado.resumo,
            "itens": [r.para_dict() for r in resultado.registros],
            "ignorados": resultado.ignorados,
        }
        log_transaction("conformidade", dados, result=result["resumo"])
        return result
    except ErroFrota as e:
        log_transaction("conformidade", dados, error=str(e))
        raise
    except Exception as e:
        raise falha_interna("conformidade", dados, e) from e


def run_configurar_periodicidade(
    template_id: str,
    ativa: Any,
    unidade: Any = AUSENTE,
    quantidade: Any = AUSENTE,
    ancora: Any = AUSENTE,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Valida e grava a periodicidade do template; devolve a configuração normalizada."""
    dados = {"template_id": template_id, "ativa": ativa, "unidade": unidade, "quantidade": quantidade}
    try:
        preparar_banco(db_path)
        repo = TemplateRepo(db_path)
        template = repo.get(template_id)
        if template is None:
            raise NaoEncontrado("template", template_id)

        periodicidade = configurar_periodicidade(template.periodicidade, ativa, unidade, quantidade, ancora)
        repo.set_periodicidade(template_id, periodicidade)
        log_database_operation("template", "UPDATE", 1, template_id=template_id, periodicidade=periodicidade.para_dict())

        result = {"template_id": template_id, "periodicidade": periodicidade.para_dict()}
        log_transaction("configurar_periodicidade", dados, result=result)
        return result
    except ErroFrota as e:
        log_transaction("configurar_periodicidade", dados, error=str(e))
        raise
    except Exception as e:
        raise falha_interna("configurar_periodicidade", dados, e) from e
