# compensi/adapters/cli.py
"""
CLI del sistema compensi medici (Typer).

Comandi principali:
- calcola <trattamento> <importo>   -> calcola il compenso per una riga di fattura
- scenari <trattamento> <importo>   -> what-if sulla percentuale della regola base
- valida                            -> validazione di coerenza della configurazione
- eccezioni list/add/update/remove/merge -> gestione delle eccezioni
- costi list/import                 -> costi prodotto e import da foglio XLSX/CSV
- log <tipo>                        -> ultime righe di un log (calcoli, configurazione, import, system)

Tutti i comandi leggono/scrivono la configurazione JSON indicata con --config.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from compensi.config import CONFIG_PATH, DEFAULTS
from compensi.domain.errors import CompensiError
from compensi.domain.models import (
    SEVERITY_ERROR,
    SEVERITY_WARNING,
    CalculationResult,
    ValidationWarning,
    exception_to_dict,
    product_cost_to_dict,
    rule_to_dict,
)
from compensi.infra.logger import LOG_FILES, get_log_summary
from compensi.infra.repositories import ExceptionRepository, ProductCostRepository
from compensi.infra.storage import load_configurazione
from compensi.usecases.calcola_compenso import run_calcolo, run_scenari
from compensi.usecases.gestisci_eccezioni import (
    run_aggiungi_eccezione,
    run_merge_eccezioni,
    run_modifica_eccezione,
    run_rimuovi_eccezione,
)
from compensi.usecases.importa_costi import run_import_costi
from compensi.usecases.valida_configurazione import run_validazione


app = typer.Typer(help="Compensi Medici: CLI")
console = Console()


# -----------------------
# util
# -----------------------

def _print_json(obj) -> None:
    typer.echo(json.dumps(obj, ensure_ascii=False, indent=2))


def _eur(val: float) -> str:
    return f"€{val:,.2f}"


def _fail(err: Exception) -> None:
    console.print(f"[bold red]Errore:[/] {err}")
    raise typer.Exit(code=1)


def _describe_rule(rule) -> str:
    d = rule_to_dict(rule)
    parts = [d.pop("kind")]
    parts += [f"{k}={v}" for k, v in d.items()]
    return " ".join(parts)


def _severity_style(severity: str) -> str:
    if severity == SEVERITY_ERROR:
        return "bold red"
    if severity == SEVERITY_WARNING:
        return "bold yellow"
    return "cyan"


def _display_warnings(warnings: List[ValidationWarning], title: str = "Segnalazioni") -> None:
    if not warnings:
        console.print(Panel("Nessuna segnalazione", title=title, border_style="green"))
        return
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Gravità")
    table.add_column("Tipo")
    table.add_column("Messaggio")
    for w in warnings:
        style = _severity_style(w.severity)
        table.add_row(f"[{style}]{w.severity}[/]", w.kind, w.message)
    console.print(table)


def _display_result(res: CalculationResult) -> None:
    table = Table(title="Compenso", box=box.ROUNDED)
    table.add_column("Voce")
    table.add_column("Valore", justify="right")
    table.add_row("Importo lordo", _eur(res.gross_amount))
    table.add_row("Importo netto", _eur(res.net_amount))
    table.add_row("Regola", res.rule_source_description)
    table.add_row("Formula", res.formula_description)
    table.add_row("Compenso base", _eur(res.base_compensation))
    if res.deducted_cost:
        table.add_row("Costo detratto", f"{_eur(res.deducted_cost)} ({res.cost_details})")
    style = "bold red" if res.net_compensation < 0 else "bold green"
    table.add_row("Compenso netto", f"[{style}]{_eur(res.net_compensation)}[/]")
    console.print(table)
    console.print(f"[dim]{res.explanation}[/dim]")


def _rule_options(
    tipo: str,
    valore: Optional[float],
    soglia_x: Optional[float],
    soglia_y: Optional[float],
    base: Optional[str],
    detrai: Optional[bool],
) -> Dict[str, Any]:
    """Costruisce il dizionario regola dalle opzioni; le opzioni assenti non vengono incluse."""
    rule: Dict[str, Any] = {"kind": tipo}
    if valore is not None:
        rule["value"] = valore
    if soglia_x is not None:
        rule["thresholdX"] = soglia_x
    if soglia_y is not None:
        rule["thresholdY"] = soglia_y
    if base is not None:
        rule["base"] = base
    if detrai is not None:
        rule["deductProductCost"] = detrai
    return rule


# -----------------------
# calcolo
# -----------------------

@app.command("calcola")
def cmd_calcola(
    trattamento: str = typer.Argument(..., help="Nome del trattamento"),
    importo: float = typer.Argument(..., help="Importo della riga di fattura"),
    prodotto: Optional[str] = typer.Option(None, "--prodotto", "-p", help="Prodotto usato"),
    quantita: Optional[float] = typer.Option(None, "--quantita", "-q", help="Quantità di prodotto"),
    iva_inclusa: bool = typer.Option(True, "--iva-inclusa/--senza-iva", help="L'importo comprende l'IVA?"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
    config_path: str = typer.Option(CONFIG_PATH, "--config", help="Configurazione JSON del medico"),
):
    """Calcola il compenso del medico per una riga di fattura."""
    try:
        res = run_calcolo(trattamento, importo, product=prodotto, quantity=quantita,
                          vat_included=iva_inclusa, config_path=config_path)
    except CompensiError as e:
        _fail(e)
    if as_json:
        _print_json(res.to_dict())
    else:
        _display_result(res)


@app.command("scenari")
def cmd_scenari(
    trattamento: str = typer.Argument(..., help="Nome del trattamento"),
    importo: float = typer.Argument(..., help="Importo della riga di fattura"),
    percentuale: List[float] = typer.Option(..., "--percentuale", help="Percentuale da simulare (ripetibile)"),
    prodotto: Optional[str] = typer.Option(None, "--prodotto", "-p"),
    quantita: Optional[float] = typer.Option(None, "--quantita", "-q"),
    iva_inclusa: bool = typer.Option(True, "--iva-inclusa/--senza-iva"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
    config_path: str = typer.Option(CONFIG_PATH, "--config", help="Configurazione JSON del medico"),
):
    """Simula il compenso con diverse percentuali della regola base."""
    try:
        results = run_scenari(trattamento, importo, percentuale, product=prodotto, quantity=quantita,
                              vat_included=iva_inclusa, config_path=config_path)
    except CompensiError as e:
        _fail(e)
    if as_json:
        _print_json([{"value": s.value.value, "result": s.result.to_dict()} for s in results])
        return
    table = Table(title=f"Scenari: {trattamento}", box=box.ROUNDED)
    table.add_column("Percentuale", justify="right")
    table.add_column("Regola")
    table.add_column("Compenso base", justify="right")
    table.add_column("Compenso netto", justify="right")
    for s in results:
        table.add_row(
            f"{s.value.value:g}%",
            s.result.rule_source_description,
            _eur(s.result.base_compensation),
            _eur(s.result.net_compensation),
        )
    console.print(table)


# -----------------------
# validazione
# -----------------------

@app.command("valida")
def cmd_valida(
    strict: bool = typer.Option(False, "--strict", help="Exit code 1 se ci sono errori bloccanti"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
    config_path: str = typer.Option(CONFIG_PATH, "--config", help="Configurazione JSON del medico"),
):
    """Controlla regola base, eccezioni e costi prodotto."""
    try:
        out = run_validazione(config_path=config_path)
    except CompensiError as e:
        _fail(e)

    if as_json:
        _print_json({**out, "warnings": [w.to_dict() for w in out["warnings"]]})
    else:
        titolo = f"Validazione: {out['medico']}" if out["medico"] else "Validazione"
        if not out["regola_base_valida"]:
            console.print(Panel("La regola base non è valida", title=titolo, border_style="red"))
        _display_warnings(out["warnings"], title=titolo)
        for s in out["suggerimenti"]:
            console.print(f"[cyan]Suggerimento:[/] {s}")
        for p in out["coerenza_prezzi"]:
            console.print(f"[yellow]Prezzo:[/] {p['product']}: {p['message']}")
        c = out["conteggio"]
        console.print(f"[dim]errori={c['error']} avvisi={c['warning']} info={c['info']}[/dim]")

    if strict and out["bloccante"]:
        raise typer.Exit(code=1)


# -----------------------
# eccezioni
# -----------------------

ecc_app = typer.Typer(help="Gestire le eccezioni per trattamento/prodotto.")
app.add_typer(ecc_app, name="eccezioni")


@ecc_app.command("list")
def cmd_eccezioni_list(
    trattamento: Optional[str] = typer.Option(None, "--trattamento", "-t", help="Filtra per trattamento"),
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
    config_path: str = typer.Option(CONFIG_PATH, "--config", help="Configurazione JSON del medico"),
):
    """Elenca le eccezioni configurate."""
    try:
        repo = ExceptionRepository(load_configurazione(config_path).exceptions)
    except CompensiError as e:
        _fail(e)
    items = repo.get_by_treatment(trattamento) if trattamento else repo.get_all()
    if as_json:
        _print_json([exception_to_dict(e) for e in items])
        return
    if not items:
        console.print(Panel("Nessuna eccezione configurata", title="Eccezioni", border_style="yellow"))
        return
    table = Table(title="Eccezioni", box=box.ROUNDED)
    table.add_column("ID", justify="right")
    table.add_column("Trattamento")
    table.add_column("Prodotto")
    table.add_column("Regola")
    for e in items:
        table.add_row(str(e.id), e.treatment, e.product or "(tutti)", _describe_rule(e.rule))
    console.print(table)


@ecc_app.command("add")
def cmd_eccezioni_add(
    trattamento: str = typer.Argument(..., help="Nome del trattamento"),
    tipo: str = typer.Option(..., "--tipo", help="percentage | tiered | fixed"),
    prodotto: Optional[str] = typer.Option(None, "--prodotto", "-p", help="Limita l'eccezione a un prodotto"),
    valore: Optional[float] = typer.Option(None, "--valore", help="Percentuale (regola percentage)"),
    soglia_x: Optional[float] = typer.Option(None, "--x", help="Soglia/importo X"),
    soglia_y: Optional[float] = typer.Option(None, "--y", help="Soglia/percentuale Y"),
    base: str = typer.Option(DEFAULTS.default_rule_base, "--base", help="net | gross"),
    detrai: bool = typer.Option(False, "--detrai/--no-detrai", help="Detrarre il costo prodotto"),
    config_path: str = typer.Option(CONFIG_PATH, "--config", help="Configurazione JSON del medico"),
):
    """Aggiunge un'eccezione."""
    rule = _rule_options(tipo, valore, soglia_x, soglia_y, base, detrai)
    try:
        out = run_aggiungi_eccezione(trattamento, rule, product=prodotto, config_path=config_path)
    except CompensiError as e:
        _fail(e)
    exc = out["eccezione"]
    console.print(f">> Eccezione #{exc.id} aggiunta: {exc.label}")
    if out["warnings"]:
        _display_warnings(out["warnings"])


@ecc_app.command("update")
def cmd_eccezioni_update(
    id: int = typer.Argument(..., help="ID dell'eccezione"),
    trattamento: Optional[str] = typer.Option(None, "--trattamento", "-t"),
    prodotto: Optional[str] = typer.Option(None, "--prodotto", "-p", help="Stringa vuota per tutti i prodotti"),
    tipo: Optional[str] = typer.Option(None, "--tipo", help="percentage | tiered | fixed"),
    valore: Optional[float] = typer.Option(None, "--valore"),
    soglia_x: Optional[float] = typer.Option(None, "--x"),
    soglia_y: Optional[float] = typer.Option(None, "--y"),
    base: Optional[str] = typer.Option(None, "--base"),
    detrai: Optional[bool] = typer.Option(None, "--detrai/--no-detrai"),
    config_path: str = typer.Option(CONFIG_PATH, "--config", help="Configurazione JSON del medico"),
):
    """Modifica un'eccezione (solo i campi indicati)."""
    patch: Dict[str, Any] = {}
    if trattamento is not None:
        patch["treatment"] = trattamento
    if prodotto is not None:
        patch["product"] = prodotto or None
    rule = _rule_options(tipo, valore, soglia_x, soglia_y, base, detrai)
    if tipo is None:
        rule.pop("kind")
    if rule:
        patch["rule"] = rule
    if not patch:
        typer.echo("Nulla da modificare. Indica almeno un campo.")
        raise typer.Exit(code=1)
    try:
        out = run_modifica_eccezione(id, patch, config_path=config_path)
    except CompensiError as e:
        _fail(e)
    console.print(f">> Eccezione #{id} aggiornata: {out['eccezione'].label}")
    if out["warnings"]:
        _display_warnings(out["warnings"])


@ecc_app.command("remove")
def cmd_eccezioni_remove(
    id: int = typer.Argument(..., help="ID dell'eccezione"),
    config_path: str = typer.Option(CONFIG_PATH, "--config", help="Configurazione JSON del medico"),
):
    """Rimuove un'eccezione."""
    try:
        run_rimuovi_eccezione(id, config_path=config_path)
    except CompensiError as e:
        _fail(e)
    console.print(f">> Eccezione #{id} rimossa")


@ecc_app.command("merge")
def cmd_eccezioni_merge(
    sorgente: str = typer.Argument(..., help="JSON con eccezioni o configurazione di un altro medico"),
    strategia: str = typer.Option(DEFAULTS.default_merge_strategy, "--strategia", help="replace | skip | error"),
    config_path: str = typer.Option(CONFIG_PATH, "--config", help="Configurazione JSON del medico"),
):
    """Unisce le eccezioni di un altro file a quelle del medico."""
    try:
        out = run_merge_eccezioni(sorgente, strategy=strategia, config_path=config_path)
    except (CompensiError, ValueError) as e:
        _fail(e)
    c = out["conteggio"]
    console.print(Panel(
        f"Aggiunte: {c['added']}\nSostituite: {c['replaced']}\nIgnorate: {c['skipped']}",
        title="Merge eccezioni",
    ))
    if out["warnings"]:
        _display_warnings(out["warnings"])


# -----------------------
# costi prodotto
# -----------------------

costi_app = typer.Typer(help="Costi prodotto del medico.")
app.add_typer(costi_app, name="costi")


@costi_app.command("list")
def cmd_costi_list(
    as_json: bool = typer.Option(False, "--json", help="Output JSON"),
    config_path: str = typer.Option(CONFIG_PATH, "--config", help="Configurazione JSON del medico"),
):
    """Elenca i costi prodotto con le statistiche."""
    try:
        repo = ProductCostRepository(load_configurazione(config_path).product_costs)
    except CompensiError as e:
        _fail(e)
    if as_json:
        _print_json({
            "productCosts": [product_cost_to_dict(p) for p in repo.get_all()],
            "statistics": repo.statistics(),
        })
        return
    if not len(repo):
        console.print(Panel("Nessun costo prodotto", title="Costi prodotto", border_style="yellow"))
        return
    table = Table(title="Costi prodotto", box=box.ROUNDED)
    table.add_column("ID", justify="right")
    table.add_column("Prodotto")
    table.add_column("Costo", justify="right")
    table.add_column("Unità")
    table.add_column("Detraibile", justify="center")
    for p in repo.get_all():
        detr = "[green]sì[/]" if p.deductible else "[dim]no[/]"
        table.add_row(str(p.id), p.name, _eur(p.cost), p.unit, detr)
    console.print(table)
    st = repo.statistics()
    console.print(
        f"[dim]totale={st['total']} con costo={st['with_cost']} "
        f"media={_eur(st['average'])} min={_eur(st['minimum'])} max={_eur(st['maximum'])}[/dim]"
    )


@costi_app.command("import")
def cmd_costi_import(
    path: str = typer.Argument(..., help="Foglio costi XLSX/CSV (colonne nome, costo)"),
    catalogo: Optional[str] = typer.Option(None, "--catalogo", help="Catalogo prodotti XLSX/CSV (default: catalogo_prodotti.xlsx se presente)"),
    conferma: bool = typer.Option(False, "--conferma", help="Applica le modifiche (altrimenti solo anteprima)"),
    config_path: str = typer.Option(CONFIG_PATH, "--config", help="Configurazione JSON del medico"),
):
    """Importa i costi da un foglio: anteprima, e applicazione con --conferma."""
    try:
        out = run_import_costi(path, catalog_path=catalogo, confirm=conferma, config_path=config_path)
    except CompensiError as e:
        _fail(e)
    res = out["risultato"]

    if res.modifications:
        table = Table(title="Modifiche di costo", box=box.ROUNDED)
        table.add_column("Prodotto")
        table.add_column("Costo attuale", justify="right")
        table.add_column("Nuovo costo", justify="right")
        for m in res.modifications:
            table.add_row(m.name, _eur(m.old_cost), _eur(m.new_cost))
        console.print(table)
    if res.new_products:
        table = Table(title="Nuovi prodotti", box=box.ROUNDED)
        table.add_column("Prodotto")
        table.add_column("Costo", justify="right")
        table.add_column("Unità")
        for n in res.new_products:
            table.add_row(n.name, _eur(n.cost), n.unit)
        console.print(table)
    if res.invalid:
        console.print(Panel("\n".join(res.invalid), title="Prodotti non riconosciuti", border_style="red"))
    if res.is_empty:
        console.print(Panel("Nessuna differenza rispetto ai costi attuali", title="Import costi"))
    elif out["applicato"]:
        console.print(">> Costi aggiornati.")
    elif res.modifications or res.new_products:
        console.print("[dim]Anteprima: usa --conferma per applicare.[/dim]")


# -----------------------
# log
# -----------------------

@app.command("log")
def cmd_log(
    tipo: str = typer.Argument("calcoli", help="Tipo di log: " + ", ".join(LOG_FILES)),
    righe: int = typer.Option(50, "--righe", "-n", help="Numero di righe"),
):
    """Mostra le ultime righe di un log."""
    if tipo not in LOG_FILES:
        _fail(ValueError(f"Unknown log type: {tipo}"))
    content = get_log_summary(tipo, lines=righe)
    if content is None:
        console.print("[yellow]Logging disabilitato (COMPENSI_ENABLE_LOGGING).[/]")
        return
    console.print(Panel(Text(content.rstrip() or "(vuoto)"), title=f"Log {tipo}", border_style="cyan"))


# Entry point opzionale:
def main():
    app()


if __name__ == "__main__":
    main()
