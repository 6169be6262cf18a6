# frota/adapters/cli.py
"""
CLI do motor de não-conformidades da frota (Typer).

Comandos principais:
- migrate                          -> aplica migrações e cria views
- logs                             -> final dos arquivos de log
- maquina add/listar               -> cadastro de máquinas
- template add <json>              -> cadastra template com perguntas
- template periodicidade <id>      -> configura a periodicidade mínima
- checklist registrar <json>       -> grava e processa uma submissão
- checklist processar <id>         -> (re)processa uma submissão gravada
- checklist importar <planilha>    -> importa submissões de XLSX/CSV
- nc listar/mostrar/atualizar      -> consulta e ciclo de vida das NCs
- rel conformidade / rel kpis      -> relatórios
- rel alertas                      -> alertas de variáveis (tela inicial)
- rel periodicidade-variaveis      -> periodicidade própria das variáveis

Códigos de saída: 1 = rejeição de validação, 2 = não encontrado,
3 = falha interna (a mensagem traz só a referência do log).
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from frota.adapters.parsers import parse_instante
from frota.config import DB_PATH
from frota.domain.erros import ErroInterno, ErroValidacao, NaoEncontrado
from frota.domain.filtros import FiltrosNC
from frota.domain.models import Ator, Maquina
from frota.domain.periodicidade import AUSENTE
from frota.infra.logger import get_log_summary
from frota.infra.migrations import apply_migrations
from frota.infra.repositories import MaquinaRepo
from frota.infra.views import create_views
from frota.usecases.atualizar_nc import run_atualizar_nc, run_listar_ncs, run_obter_nc
from frota.usecases.conformidade import run_conformidade, run_configurar_periodicidade
from frota.usecases.indicadores import run_indicadores
from frota.usecases.processar_checklist import (
    run_importar_checklists,
    run_processar_checklist,
    run_registrar_checklist,
)
from frota.usecases.templates import run_registrar_template
from frota.usecases.variaveis import run_alertas_variaveis, run_periodicidade_variaveis


app = typer.Typer(help="Frota — Não-conformidades, CAPA e periodicidade de checklists")
console = Console()

EXIT_VALIDACAO = 1
EXIT_NAO_ENCONTRADO = 2
EXIT_INTERNO = 3


# -----------------------
# util
# -----------------------

def _print_json(obj) -> None:
    typer.echo(json.dumps(obj, ensure_ascii=False, indent=2, default=str))


def _fmt(val: Any) -> str:
    if val is None:
        return "-"
    if isinstance(val, bool):
        return "sim" if val else "não"
    if isinstance(val, float):
        return f"{val:,.1f}".replace(",", "X").replace(".", ",").replace("X", ".")
    if isinstance(val, (list, dict)):
        return json.dumps(val, ensure_ascii=False)
    return str(val)


_CORES_STATUS = {
    "non_compliant": "bold red",
    "compliant": "bold green",
    "aberta": "bold yellow",
    "bloqueada": "bold red",
    "resolvida": "bold green",
    "alta": "bold red",
    "media": "yellow",
    "baixa": "green",
}


def _display_table(data: List[Dict[str, Any]] | Dict[str, Any], title: str = "Resultado", colunas: Optional[List[str]] = None) -> None:
    """Exibe lista de registros (tabela) ou dicionário (chave/valor) com Rich."""
    if not data:
        console.print(Panel("Nenhum dado encontrado", title=title, border_style="yellow"))
        return

    if isinstance(data, list):
        colunas = colunas or list(data[0].keys())
        table = Table(title=title, box=box.ROUNDED)
        for col in colunas:
            justify = "right" if isinstance(data[0].get(col), (int, float)) and not isinstance(data[0].get(col), bool) else "left"
            table.add_column(col, justify=justify)
        for row in data:
            valores = []
            for col in colunas:
                texto = _fmt(row.get(col))
                cor = _CORES_STATUS.get(str(row.get(col)))
                valores.append(f"[{cor}]{texto}[/]" if cor else texto)
            table.add_row(*valores)
        console.print(table)
        return

    table = Table(title=title, box=box.SIMPLE, show_header=False)
    table.add_column("campo", style="bold")
    table.add_column("valor")
    for k, v in data.items():
        table.add_row(str(k), _fmt(v))
    console.print(table)


def _executar(fn: Callable[[], Any]) -> Any:
    """Roda o caso de uso traduzindo as exceções do domínio em códigos de saída."""
    try:
        return fn()
    except ErroValidacao as e:
        console.print(Panel(f"{e.mensagem}\n[dim]motivo: {e.motivo}[/dim]", title="Rejeitado", border_style="red"))
        raise typer.Exit(code=EXIT_VALIDACAO)
    except NaoEncontrado as e:
        console.print(Panel(str(e), title="Não encontrado", border_style="yellow"))
        raise typer.Exit(code=EXIT_NAO_ENCONTRADO)
    except ErroInterno as e:
        console.print(Panel(str(e), title="Erro interno", border_style="red"))
        raise typer.Exit(code=EXIT_INTERNO)


def _ler_json(path: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        raise NaoEncontrado("arquivo", path)
    except json.JSONDecodeError as e:
        raise ErroValidacao("json_invalido", f"JSON inválido em {path}: {e}")


def _instante(valor: Optional[str], campo: str) -> Optional[datetime]:
    if valor is None:
        return None
    dt = parse_instante(valor)
    if dt is None:
        raise ErroValidacao("data_invalida", f"{campo}: data inválida {valor!r}")
    return dt


def _ator(ator_id: Optional[str], ator_nome: Optional[str]) -> Optional[Ator]:
    return Ator(id=ator_id, nome=ator_nome) if ator_id else None


# -----------------------
# comandos de infra
# -----------------------

@app.command("migrate")
def cmd_migrate(db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite")):
    """Aplica migrações e recria as views auxiliares."""
    apply_migrations(db_path)
    create_views(db_path)
    typer.echo(f">> Migrações aplicadas e views criadas em: {db_path}")


@app.command("logs")
def cmd_logs(
    tipo: str = typer.Option("transactions", help="transactions | nc | database | system"),
    linhas: int = typer.Option(50, help="Quantidade de linhas finais"),
):
    """Mostra o final de um arquivo de log."""
    typer.echo(get_log_summary(tipo, linhas))


# -----------------------
# cadastros
# -----------------------

maquina_app = typer.Typer(help="Cadastro de máquinas")
app.add_typer(maquina_app, name="maquina")


@maquina_app.command("add")
def cmd_maquina_add(
    maquina_id: str = typer.Argument(..., help="Id da máquina"),
    tag: str = typer.Option("", help="Tag/placa"),
    modelo: Optional[str] = typer.Option(None, help="Modelo"),
    tipo: Optional[str] = typer.Option(None, help="Tipo de equipamento"),
    setor: Optional[str] = typer.Option(None, help="Setor"),
    checklist: List[str] = typer.Option([], "--checklist", "-c", help="Template vinculado (repetível)"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Cadastra ou atualiza uma máquina."""
    apply_migrations(db_path)
    MaquinaRepo(db_path).upsert(
        Maquina(id=maquina_id, tag=tag, modelo=modelo, tipo=tipo, setor=setor, checklists=list(checklist))
    )
    typer.echo(f">> Máquina {maquina_id} gravada.")


@maquina_app.command("listar")
def cmd_maquina_listar(db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite")):
    """Lista as máquinas cadastradas."""
    apply_migrations(db_path)
    linhas = [
        {"id": m.id, "nome": m.nome_exibicao, "tag": m.tag, "setor": m.setor, "checklists": ", ".join(m.checklists)}
        for m in MaquinaRepo(db_path).list_all()
    ]
    _display_table(linhas, title="Máquinas")


template_app = typer.Typer(help="Templates de checklist")
app.add_typer(template_app, name="template")


@template_app.command("add")
def cmd_template_add(
    path: str = typer.Argument(..., help="JSON com id, titulo, questoes[] (variavel opcional) e periodicidade"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Cadastra ou substitui um template a partir de um JSON."""
    res = _executar(lambda: run_registrar_template(_ler_json(path), db_path=db_path))
    typer.echo(f">> Template {res['template_id']} gravado com {res['questoes']} pergunta(s).")
    if res["variaveis"]:
        typer.echo(f">> Variáveis: {', '.join(res['variaveis'])}")


@template_app.command("periodicidade")
def cmd_template_periodicidade(
    template_id: str = typer.Argument(..., help="Id do template"),
    ativa: bool = typer.Option(True, "--ativa/--inativa", help="Liga ou desliga a exigência"),
    unidade: Optional[str] = typer.Option(None, help="day | week | month"),
    quantidade: Optional[int] = typer.Option(None, help="Quantidade de unidades (>= 1)"),
    ancora: Optional[str] = typer.Option(None, help="last_submission | calendar"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Configura a periodicidade mínima de submissão do template."""
    res = _executar(lambda: run_configurar_periodicidade(
        template_id,
        ativa,
        unidade if unidade is not None else AUSENTE,
        quantidade if quantidade is not None else AUSENTE,
        ancora if ancora is not None else AUSENTE,
        db_path=db_path,
    ))
    _display_table(res["periodicidade"], title=f"Periodicidade — {template_id}")


# -----------------------
# checklists
# -----------------------

checklist_app = typer.Typer(help="Submissões de checklist")
app.add_typer(checklist_app, name="checklist")


@checklist_app.command("registrar")
def cmd_checklist_registrar(
    path: str = typer.Argument(..., help="JSON da submissão"),
    processar: bool = typer.Option(True, "--processar/--sem-processar", help="Gerar as NCs em seguida"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Grava uma submissão de checklist e gera suas NCs."""
    res = _executar(lambda: run_registrar_checklist(_ler_json(path), db_path=db_path, processar=processar))
    _display_table(res, title="Submissão registrada")


@checklist_app.command("processar")
def cmd_checklist_processar(
    resposta_id: str = typer.Argument(..., help="Id da submissão"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """(Re)processa uma submissão já gravada; NCs existentes não são duplicadas."""
    res = _executar(lambda: run_processar_checklist(resposta_id, db_path=db_path))
    _display_table(res, title="Processamento")


@checklist_app.command("importar")
def cmd_checklist_importar(
    path: str = typer.Argument(..., help="Planilha XLSX ou CSV (uma linha por resposta)"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Importa submissões em lote de uma planilha."""
    res = _executar(lambda: run_importar_checklists(path, db_path=db_path))
    rejeitadas = res.pop("rejeitadas", [])
    _display_table(res, title="Importação de checklists")
    if rejeitadas:
        _display_table(rejeitadas, title="Submissões rejeitadas")


# -----------------------
# não-conformidades
# -----------------------

nc_app = typer.Typer(help="Não-conformidades")
app.add_typer(nc_app, name="nc")

_COLUNAS_NC = ["id", "titulo", "severidade", "status", "prazo", "criado_em", "recorrencia_de_id"]


@nc_app.command("listar")
def cmd_nc_listar(
    status: List[str] = typer.Option([], "--status", "-s", help="Filtra por status (repetível)"),
    severidade: List[str] = typer.Option([], "--severidade", help="Filtra por severidade (repetível)"),
    ativo: Optional[str] = typer.Option(None, help="Id ou tag da máquina"),
    de: Optional[str] = typer.Option(None, help="Criadas a partir de (YYYY-MM-DD ou ISO)"),
    ate: Optional[str] = typer.Option(None, help="Criadas até (YYYY-MM-DD ou ISO)"),
    busca: Optional[str] = typer.Option(None, "--busca", "-q", help="Texto livre"),
    limite: Optional[int] = typer.Option(None, help="Máximo de linhas"),
    como_json: bool = typer.Option(False, "--json", help="Saída em JSON"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Lista NCs, mais recentes primeiro."""
    def _run():
        _instante(de, "de")
        _instante(ate, "ate")
        filtros = FiltrosNC.criar(status=status, severidades=severidade, ativo=ativo, de=de, ate=ate, busca=busca)
        return run_listar_ncs(filtros, db_path=db_path, limite=limite)

    ncs = _executar(_run)
    if como_json:
        _print_json(ncs)
    else:
        _display_table(ncs, title=f"Não-conformidades ({len(ncs)})", colunas=_COLUNAS_NC)


@nc_app.command("mostrar")
def cmd_nc_mostrar(
    nc_id: str = typer.Argument(..., help="Id da NC"),
    como_json: bool = typer.Option(False, "--json", help="Saída em JSON"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Mostra a NC e sua trilha de auditoria (mais recentes primeiro)."""
    res = _executar(lambda: run_obter_nc(nc_id, db_path=db_path))
    if como_json:
        _print_json(res)
        return
    nc = dict(res["nc"])
    acoes = nc.pop("acoes", [])
    _display_table(nc, title=f"NC {nc_id}")
    if acoes:
        _display_table(acoes, title="Ações", colunas=["id", "tipo", "descricao", "iniciada_em", "concluida_em", "eficaz"])
    if res["auditoria"]:
        _display_table(
            [{"em": a["em"], "ator": a["ator_nome"] or a["ator_id"], "campos": ", ".join(a["diff"].keys())} for a in res["auditoria"]],
            title="Auditoria",
        )


@nc_app.command("atualizar")
def cmd_nc_atualizar(
    nc_id: str = typer.Argument(..., help="Id da NC"),
    status: Optional[str] = typer.Option(None, help="aberta | em_execucao | aguardando_peca | bloqueada | resolvida"),
    severidade: Optional[str] = typer.Option(None, help="baixa | media | alta"),
    prazo: Optional[str] = typer.Option(None, help="Prazo pedido (ISO)"),
    causa_raiz: Optional[str] = typer.Option(None, "--causa-raiz", help="Causa raiz"),
    limpar_causa: bool = typer.Option(False, "--limpar-causa", help="Remove a causa raiz"),
    acoes: Optional[str] = typer.Option(None, help="JSON com a lista completa de ações (substitui a atual)"),
    risco_seguranca: Optional[bool] = typer.Option(None, "--risco-seguranca/--sem-risco-seguranca"),
    impacto_disponibilidade: Optional[bool] = typer.Option(None, "--impacto-disponibilidade/--sem-impacto-disponibilidade"),
    ator_id: Optional[str] = typer.Option(None, "--ator-id", help="Quem executa (auditoria)"),
    ator_nome: Optional[str] = typer.Option(None, "--ator-nome"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Atualiza status, severidade, prazo, causa raiz ou ações de uma NC."""
    def _run():
        payload: Dict[str, Any] = {}
        if status is not None:
            payload["status"] = status
        if severidade is not None:
            payload["severidade"] = severidade
        if prazo is not None:
            payload["prazo"] = prazo
        if limpar_causa:
            payload["causa_raiz"] = None
        elif causa_raiz is not None:
            payload["causa_raiz"] = causa_raiz
        if acoes is not None:
            lista = _ler_json(acoes)
            if not isinstance(lista, list):
                raise ErroValidacao("acoes_invalidas", "O arquivo de ações deve conter uma lista.")
            payload["acoes"] = lista
        if risco_seguranca is not None:
            payload["risco_seguranca"] = risco_seguranca
        if impacto_disponibilidade is not None:
            payload["impacto_disponibilidade"] = impacto_disponibilidade
        return run_atualizar_nc(nc_id, payload, _ator(ator_id, ator_nome), db_path=db_path)

    res = _executar(_run)
    if not res["alterou"]:
        console.print(Panel("Nada mudou; nenhuma auditoria registrada.", title=f"NC {nc_id}", border_style="yellow"))
        return
    _display_table(
        [{"campo": k, "antes": v["before"], "depois": v["after"]} for k, v in res["diff"].items()],
        title=f"NC {nc_id} atualizada",
    )


# -----------------------
# relatórios
# -----------------------

rel_app = typer.Typer(help="Relatórios")
app.add_typer(rel_app, name="rel")


@rel_app.command("conformidade")
def rel_conformidade(
    ate: Optional[str] = typer.Option(None, help="Instante de referência (padrão: agora)"),
    maquina: Optional[str] = typer.Option(None, help="Id da máquina"),
    template: Optional[str] = typer.Option(None, help="Id do template"),
    como_json: bool = typer.Option(False, "--json", help="Saída em JSON"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Conformidade de periodicidade por (template, máquina)."""
    res = _executar(lambda: run_conformidade(_instante(ate, "ate"), maquina, template, db_path=db_path))
    if como_json:
        _print_json(res)
        return
    _display_table(
        res["itens"],
        title=f"Conformidade de periodicidade (ref. {res['referencia']})",
        colunas=["status", "template_nome", "maquina_nome", "ultima_submissao", "janela_dias"],
    )
    _display_table(res["resumo"], title="Resumo")
    if res["ignorados"]:
        _display_table(res["ignorados"], title="Pares ignorados")


@rel_app.command("kpis")
def rel_kpis(
    referencia: Optional[str] = typer.Option(None, help="Instante de referência (padrão: agora)"),
    como_json: bool = typer.Option(False, "--json", help="Saída em JSON"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Indicadores de NCs: abertas, prazo, recorrência, tempos e Pareto."""
    res = _executar(lambda: run_indicadores(_instante(referencia, "referencia"), db_path=db_path))
    if como_json:
        _print_json(res)
        return
    _display_table(
        {
            "NCs analisadas": res["total_registros"],
            "Abertas": res["abertas_total"],
            "No prazo (mês) %": res["percentual_no_prazo"],
            "Recorrência 30d %": res["taxa_recorrencia_30d"],
            "Contenção média (h)": res["media_horas_contencao"],
            "Resolução média (h)": res["media_horas_resolucao"],
        },
        title=f"Indicadores (ref. {res['referencia']})",
    )
    _display_table([{"severidade": k, "abertas": v} for k, v in res["abertas_por_severidade"].items()], title="Abertas por severidade")
    _display_table(res["pareto_causa_raiz"], title="Pareto — causa raiz")
    _display_table(res["severidade_por_sistema"], title="Severidade por sistema")
    _display_table(res["serie_semanal"], title="Série semanal")


@rel_app.command("alertas")
def rel_alertas(
    agora: Optional[str] = typer.Option(None, help="Instante de referência (padrão: agora)"),
    como_json: bool = typer.Option(False, "--json", help="Saída em JSON"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Alertas de variáveis das submissões recentes (tela inicial)."""
    res = _executar(lambda: run_alertas_variaveis(db_path=db_path, agora=_instante(agora, "agora")))
    if como_json:
        _print_json(res)
        return
    linhas = [
        {
            "variavel": a["variavel_nome"],
            "maquina": a["maquina_nome"],
            "template": a["template_nome"],
            "pergunta": a["questao_texto"],
            "mensagem": a["alerta"]["mensagem"],
            "cor": a["alerta"]["cor"],
            "em": a["resposta_em"],
        }
        for a in res["itens"]
    ]
    _display_table(linhas, title=f"Alertas de variáveis (gerado em {res['gerado_em']})")


@rel_app.command("periodicidade-variaveis")
def rel_periodicidade_variaveis(
    ate: Optional[str] = typer.Option(None, help="Instante de referência (padrão: agora)"),
    maquina: Optional[str] = typer.Option(None, help="Id da máquina"),
    como_json: bool = typer.Option(False, "--json", help="Saída em JSON"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Caminho do SQLite"),
):
    """Conformidade das variáveis com periodicidade própria, por máquina."""
    res = _executar(lambda: run_periodicidade_variaveis(_instante(ate, "ate"), maquina, db_path=db_path))
    if como_json:
        _print_json(res)
        return
    _display_table(
        res["itens"],
        title=f"Periodicidade de variáveis (ref. {res['referencia']})",
        colunas=["status", "variavel_nome", "maquina_nome", "template_nome", "ultima_submissao", "janela_dias"],
    )
    _display_table(res["resumo"], title="Resumo")
    if res["ignorados"]:
        _display_table(res["ignorados"], title="Variáveis ignoradas")


def main():
    app()


if __name__ == "__main__":
    main()
