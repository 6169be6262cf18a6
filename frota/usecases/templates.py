# frota/usecases/templates.py
"""
UC: Cadastrar template de checklist (perguntas, variáveis e periodicidade).
"""
from __future__ import annotations

from typing import Any, Dict

from frota.config import DB_PATH
from frota.domain.erros import ErroFrota
from frota.domain.templates import validar_template
from frota.infra.logger import log_database_operation, log_system_event, log_transaction
from frota.infra.repositories import TemplateRepo
from frota.usecases.comum import falha_interna, preparar_banco


def run_registrar_template(raw: Any, db_path: str = DB_PATH) -> Dict[str, Any]:
    """Valida e grava (cria ou substitui) o template.

    Raises:
        ErroValidacao: template malformado (ver ``validar_template``).
    """
    dados = {"id": raw.get("id") if isinstance(raw, dict) else None, "db_path": db_path}
    log_system_event("registrar_template_start", dados)
    try:
        template = validar_template(raw)
        preparar_banco(db_path)
        TemplateRepo(db_path).upsert(template)
        log_database_operation("template", "UPSERT", 1, template_id=template.id, questoes=len(template.questoes))

        result = {
            "template_id": template.id,
            "titulo": template.titulo,
            "questoes": len(template.questoes),
            "variaveis": [q.variavel.nome for q in template.questoes if q.variavel],
            "periodicidade": template.periodicidade.para_dict() if template.periodicidade else None,
        }
        log_transaction("registrar_template", dados, result=result)
        return result
    except ErroFrota as e:
        log_transaction("registrar_template", dados, error=str(e))
        raise
    except Exception as e:
        raise falha_interna("registrar_template", dados, e) from e
