# frota/usecases/processar_checklist.py
"""
UC: Registrar e processar submissões de checklist.

Processar = explodir a submissão em NCs e gravá-las. Os ids das NCs são
derivados da submissão, então reprocessar não duplica registros.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from frota.config import DB_PATH, DEFAULTS
from frota.adapters.planilhas import load_respostas_from_planilha
from frota.domain.erros import ErroFrota, ErroValidacao, NaoEncontrado
from frota.domain.explosao import explodir_checklist, instante_da_submissao
from frota.domain.models import RespostaChecklist
from frota.domain.recorrencia import ESTRATEGIA_PADRAO, EstrategiaRecorrencia, filtrar_janela
from frota.domain.valores import formatar_instante
from frota.infra.logger import (
    log_database_operation, log_file_operation, log_nc, log_system_event, log_transaction
)
from frota.infra.repositories import ChecklistRepo, MaquinaRepo, NaoConformidadeRepo, TemplateRepo
from frota.infra.telemetria import ProvedorTelemetria, telemetria_segura
from frota.usecases.comum import falha_interna, preparar_banco


def _validar_submissao(resposta: RespostaChecklist) -> None:
    if not resposta.maquina_id:
        raise ErroValidacao("submissao_invalida", "Submissão sem máquina (maquina_id).")
    if not resposta.template_id:
        raise ErroValidacao("submissao_invalida", "Submissão sem template (template_id).")


def run_processar_checklist(
    resposta_id: str,
    db_path: str = DB_PATH,
    agora: Optional[datetime] = None,
    estrategia: EstrategiaRecorrencia = ESTRATEGIA_PADRAO,
    provedor_telemetria: Optional[ProvedorTelemetria] = None,
) -> Dict[str, Any]:
    """Explode uma submissão já gravada e persiste as NCs resultantes."""
    dados = {"resposta_id": resposta_id, "db_path": db_path}
    log_system_event("processar_checklist_start", dados)
    try:
        preparar_banco(db_path)
        resposta = ChecklistRepo(db_path).get(resposta_id)
        if resposta is None:
            raise NaoEncontrado("submissão", resposta_id)

        template = TemplateRepo(db_path).get(resposta.template_id)
        if template is None:
            log_system_event("template_ausente", {"template_id": resposta.template_id}, level="warning")
        maquina = MaquinaRepo(db_path).get(resposta.maquina_id)
        if maquina is None:
            log_system_event("maquina_ausente", {"maquina_id": resposta.maquina_id}, level="warning")

        criado_em = instante_da_submissao(resposta, agora)
        nc_repo = NaoConformidadeRepo(db_path)
        desde = criado_em - timedelta(days=DEFAULTS.janela_recorrencia_dias)
        proprias = f"nc::{resposta.id}::"
        recentes = filtrar_janela(
            (nc for nc in nc_repo.recentes_do_ativo(resposta.maquina_id, desde, criado_em) if not nc.id.startswith(proprias)),
            criado_em,
        )

        ncs = explodir_checklist(
            resposta,
            maquina,
            template.mapa_questoes() if template else {},
            recentes,
            telemetria=telemetria_segura(resposta.maquina_id, criado_em, provedor_telemetria),
            agora=agora,
            estrategia=estrategia,
        )

        inseridas = nc_repo.insert_many(ncs)
        log_database_operation("nao_conformidade", "INSERT", inseridas, resposta_id=resposta.id)
        for nc in ncs:
            log_nc("criada", nc.id, severidade=nc.severidade, recorrencia_de_id=nc.recorrencia_de_id)
        ChecklistRepo(db_path).marcar_processado(resposta.id, agora or datetime.now(timezone.utc), len(ncs))

        result = {
            "resposta_id": resposta.id,
            "ncs_geradas": len(ncs),
            "ncs_inseridas": inseridas,
            "ncs": [nc.id for nc in ncs],
            "recorrentes": [nc.id for nc in ncs if nc.recorrencia_de_id],
        }
        log_transaction("processar_checklist", dados, result=result)
        return result
    except ErroFrota as e:
        log_transaction("processar_checklist", dados, error=str(e))
        raise
    except Exception as e:
        raise falha_interna("processar_checklist", dados, e) from e


def run_registrar_checklist(
    payload: Mapping[str, Any],
    db_path: str = DB_PATH,
    processar: bool = True,
    agora: Optional[datetime] = None,
    provedor_telemetria: Optional[ProvedorTelemetria] = None,
) -> Dict[str, Any]:
    """Grava uma submissão (formulário ou JSON) e, por padrão, a processa."""
    dados = {"id": payload.get("id"), "db_path": db_path}
    log_system_event("registrar_checklist_start", dados)
    try:
        resposta = RespostaChecklist.de_dict(payload)
        _validar_submissao(resposta)
        # instante resolvido uma vez: reprocessar usa sempre o mesmo
        resposta = replace(resposta, criado_em=formatar_instante(instante_da_submissao(resposta, agora)))
        preparar_banco(db_path)
        nova = ChecklistRepo(db_path).insert(resposta)
        log_database_operation("checklist_resposta", "INSERT", 1 if nova else 0, id=resposta.id)

        result: Dict[str, Any] = {"resposta_id": resposta.id, "nova": nova}
        if processar:
            result.update(
                run_processar_checklist(resposta.id, db_path, agora=agora, provedor_telemetria=provedor_telemetria)
            )
        log_transaction("registrar_checklist", dados, result=result)
        return result
    except ErroFrota as e:
        log_transaction("registrar_checklist", dados, error=str(e))
        raise
    except Exception as e:
        raise falha_interna("registrar_checklist", dados, e) from e


def run_importar_checklists(
    path: str,
    db_path: str = DB_PATH,
    processar: bool = True,
    provedor_telemetria: Optional[ProvedorTelemetria] = None,
) -> Dict[str, Any]:
    """Importa submissões de uma planilha (XLSX/CSV); submissões inválidas são puladas."""
    dados = {"path": path, "db_path": db_path}
    log_system_event("importar_checklists_start", dados)
    try:
        payloads = load_respostas_from_planilha(path)
        log_file_operation("import", path, len(payloads))

        registradas = 0
        ncs = 0
        rejeitadas: List[Dict[str, str]] = []
        for payload in payloads:
            try:
                r = run_registrar_checklist(payload, db_path, processar=processar, provedor_telemetria=provedor_telemetria)
            except ErroValidacao as e:
                rejeitadas.append({"id": str(payload.get("id")), "motivo": e.motivo, "mensagem": e.mensagem})
                continue
            registradas += 1 if r.get("nova") else 0
            ncs += int(r.get("ncs_inseridas", 0))

        result = {
            "submissoes": len(payloads),
            "registradas": registradas,
            "ncs_inseridas": ncs,
            "rejeitadas": rejeitadas,
        }
        log_transaction("importar_checklists", dados, result=result)
        return result
    except ErroFrota as e:
        log_transaction("importar_checklists", dados, error=str(e))
        raise
    except Exception as e:
        raise falha_interna("importar_checklists", dados, e) from e
