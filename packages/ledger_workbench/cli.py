# ruff: noqa: I001
"""CLI for the ``ledger_workbench`` package.

Typer commands over the engine. Environment variables (notably
``OPENAI_API_KEY`` and the ``LW_*`` settings) are loaded from a local ``.env``
with ``python-dotenv`` before any command runs. Output tables use ``rich``.
"""

from __future__ import annotations

import datetime as dt
import json
from collections.abc import Sequence
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from typer.models import OptionInfo

from .config import EngineSettings, load_settings
from .errors import LedgerWorkbenchError
from .logging_setup import configure_logging
from .models import CompanyContext, ExportArtifact, Transaction, money

console = Console()
err_console = Console(stderr=True)


# ---- Small module-level helpers used by CLI commands -------------------------


def _fail(message: str) -> typer.Exit:
    err_console.print(f"[red]Error:[/red] {message}")
    return typer.Exit(1)


def _settings() -> EngineSettings:
    try:
        return load_settings()
    except ValueError as e:
        raise _fail(str(e)) from e


def load_transactions(path: Path) -> list[Transaction]:
    """Read a JSON array of transactions (camelCase keys as exported by the oracle).

    Records without an ``id`` get ``<file-stem>-<position>``.
    """

    from pydantic import ValidationError as PydanticValidationError

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise _fail(f"File not found: {path}") from e
    except json.JSONDecodeError as e:
        raise _fail(f"Invalid JSON in {path}: {e}") from e
    if isinstance(raw, dict):
        raw = raw.get("transactions", raw.get("transacoes"))
    if not isinstance(raw, list):
        raise _fail(f"{path} must contain a JSON array of transactions")
    out: list[Transaction] = []
    for pos, rec in enumerate(raw):
        if not isinstance(rec, dict):
            raise _fail(f"record {pos} in {path} is not an object")
        try:
            out.append(Transaction.model_validate({"id": f"{path.stem}-{pos}", **rec}))
        except PydanticValidationError as e:
            raise _fail(f"record {pos} in {path} is invalid: {e}") from e
    return out


def _dump_transactions(path: Path, transactions: Sequence[Transaction]) -> None:
    payload = [tx.to_record() for tx in transactions]
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")


def _write_artifacts(out_dir: Path, artifacts: Sequence[ExportArtifact]) -> list[Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for art in artifacts:
        target = out_dir / art.filename
        target.write_bytes(art.content)
        written.append(target)
    return written


def _print_trial_balance(transactions: Sequence[Transaction], settings: EngineSettings) -> None:
    from .statements import compute_balance_sheet
    from .trial_balance import compute_trial_balance

    tb = compute_trial_balance(transactions, tolerance=settings.balance_tolerance)
    table = Table(title="Balancete de Verificação")
    table.add_column("Conta")
    table.add_column("Débito", justify="right")
    table.add_column("Crédito", justify="right")
    for row in tb.rows:
        table.add_row(row.account, f"{money(row.debit):.2f}", f"{money(row.credit):.2f}")
    table.add_row("TOTAL", f"{money(tb.total_debit):.2f}", f"{money(tb.total_credit):.2f}")
    console.print(table)
    if tb.is_balanced:
        console.print("[green]Balanced[/green]")
    else:
        console.print(f"[yellow]Unbalanced[/yellow] difference={money(tb.difference):.2f}")

    sheet = compute_balance_sheet(transactions, settings=settings)
    mark = "=" if sheet.identity_holds else "≠"
    console.print(
        f"Ativo {money(sheet.total_assets):.2f} {mark} "
        f"Passivo + PL {money(sheet.total_liabilities_and_equity):.2f}"
    )


def _print_findings(findings: Sequence[Any]) -> None:
    if not findings:
        console.print("[green]Audit found no issues.[/green]")
        return
    table = Table(title="Audit findings")
    table.add_column("Type")
    table.add_column("Transaction")
    table.add_column("Message")
    colors = {"error": "red", "warning": "yellow", "suggestion": "cyan"}
    for f in findings:
        table.add_row(
            f"[{colors.get(f.type, 'white')}]{f.type}[/]", f.transaction_id or "-", f.message
        )
    console.print(table)


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Ledger reconciliation and financial statements from classified bank statements. "
        "Loads OPENAI_API_KEY and LW_* settings from a local .env before running."
    ),
)


# Module-level option object shared by the commands that read a transactions file.
TRANSACTIONS_OPTION: OptionInfo = typer.Option(
    ...,
    "--transactions",
    help="JSON file with an array of classified transactions",
    dir_okay=False,
    file_okay=True,
)


@app.command("trial-balance")
def trial_balance_cmd(transactions: Annotated[Path, TRANSACTIONS_OPTION]) -> None:
    """Print the trial balance and the balance-sheet identity check."""

    settings = _settings()
    _print_trial_balance(load_transactions(transactions), settings)


@app.command("report")
def report_cmd(
    transactions: Annotated[Path, TRANSACTIONS_OPTION],
    out: Annotated[
        Path, typer.Option("--out", help="Directory for report files", file_okay=False)
    ] = Path("reports"),
) -> None:
    """Write every report (DRE, balance sheet, ledgers, SPED files) without an oracle."""

    from .reports import ReportInputs, ReportPipeline

    settings = _settings()
    txs = load_transactions(transactions)
    inputs = ReportInputs.build(txs, settings=settings, today=dt.date.today())
    artifacts = ReportPipeline(inputs).run()
    for path in _write_artifacts(out, artifacts):
        console.print(f"[cyan]wrote[/cyan] {path}")


@app.command("add-entry")
def add_entry_cmd(
    transactions: Annotated[Path, TRANSACTIONS_OPTION],
    date: Annotated[str, typer.Option(help="Entry date (YYYY-MM-DD)")],
    description: Annotated[str, typer.Option(help="Entry description")],
    amount: Annotated[str, typer.Option(help="Positive amount")],
    classification: Annotated[str, typer.Option(help="Account name")],
    credit: Annotated[bool, typer.Option("--credit/--debit", help="Inflow or outflow")] = False,
    entry_id: Annotated[
        str | None, typer.Option("--id", help="Replace the entry with this id instead")
    ] = None,
) -> None:
    """Add (or replace) a manual entry in a transactions file."""

    from .ledger import LedgerStore, manual_entry

    try:
        day = dt.date.fromisoformat(date)
    except ValueError as e:
        raise _fail(f"invalid date: {date}") from e
    txs = load_transactions(transactions) if transactions.exists() else []
    ledger = LedgerStore(txs)
    try:
        tx = manual_entry(
            day,
            description,
            amount,
            is_credit=credit,
            classification=classification,
            tx_id=entry_id,
        )
    except LedgerWorkbenchError as e:
        raise _fail(str(e)) from e
    ledger.upsert(tx)
    _dump_transactions(transactions, ledger.all())
    console.print(f"[cyan]saved[/cyan] {tx.id} {money(tx.value):.2f} {tx.classification}")


@app.command("reconcile-invoice")
def reconcile_invoice_cmd(
    transactions: Annotated[Path, TRANSACTIONS_OPTION],
    invoice: Annotated[Path, typer.Option(help="Invoice header JSON file", dir_okay=False)],
    window_days: Annotated[int, typer.Option(help="Date tolerance in days")] = 3,
) -> None:
    """Match an invoice against the transactions and estimate CBS/IBS."""

    from pydantic import ValidationError as PydanticValidationError

    from .invoices import Invoice, reconcile_invoice

    settings = _settings()
    txs = load_transactions(transactions)
    try:
        inv = Invoice.model_validate_json(invoice.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise _fail(f"File not found: {invoice}") from e
    except PydanticValidationError as e:
        raise _fail(f"invalid invoice: {e}") from e
    result = reconcile_invoice(inv, txs, window_days=window_days, settings=settings)
    console.print(f"Conciliação: {result.status}. {result.message}")
    console.print(
        f"CBS {result.tax.cbs_value:.2f} + IBS {result.tax.ibs_value:.2f} = "
        f"{result.tax.total_tax:.2f} ({result.tax.combined_rate * 100:.1f}%)"
    )
    console.print(f"Status: {result.compliance_status}")


@app.command("close")
def close_cmd(
    statement: Annotated[
        list[Path], typer.Option(help="Bank statement file (repeatable)", dir_okay=False)
    ],
    out: Annotated[
        Path, typer.Option("--out", help="Directory for report files", file_okay=False)
    ] = Path("reports"),
    cnpj: Annotated[str | None, typer.Option(help="Principal tax id (CNPJ)")] = None,
    account: Annotated[
        list[str] | None, typer.Option(help="Known account/alias (repeatable)")
    ] = None,
    yes: Annotated[bool, typer.Option("--yes", help="Apply every proposal without asking")] = False,
) -> None:
    """Ingest statements, audit, review corrections and write the reports."""

    import os

    from .ingest import ingest_statements, load_document
    from .ledger import LedgerStore
    from .oracle import OpenAIOracle
    from .term_ui import select_corrections
    from .workflow import AuditWorkflow

    if not os.getenv("OPENAI_API_KEY"):
        raise _fail("OPENAI_API_KEY is not set in the environment.")
    settings = _settings()
    context = CompanyContext(cnpj=cnpj, known_accounts=tuple(account or ()))
    oracle = OpenAIOracle(settings=settings)

    try:
        documents = [load_document(p) for p in statement]
    except OSError as e:
        raise _fail(f"cannot read statement: {e}") from e

    try:
        ingested = ingest_statements(documents, oracle, context)
    except LedgerWorkbenchError as e:
        raise _fail(str(e)) from e
    for failure in ingested.failures:
        err_console.print(f"[yellow]Skipped[/yellow] {failure.document}: {failure.error}")
    console.print(
        f"[cyan]{ingested.bank_label}[/cyan]: {len(ingested.transactions)} transactions"
    )

    ledger = LedgerStore(ingested.transactions)
    _print_trial_balance(ledger.all(), settings)

    with AuditWorkflow(ledger, oracle, context, settings=settings) as wf:
        findings = wf.audit() or []
        _print_findings(findings)

        if wf.actionable_findings:
            proposals = wf.propose_corrections()
            if wf.last_error:
                err_console.print(f"[yellow]{wf.last_error}[/yellow]")
            elif proposals:
                chosen = set(wf.selected)
                if not yes:
                    by_id = {tx.id: tx for tx in ledger.all()}
                    picked = select_corrections(proposals, by_id, selected=chosen)
                    chosen = picked if picked is not None else set()
                for p in proposals:
                    if (p.transaction_id in wf.selected) != (p.transaction_id in chosen):
                        wf.toggle(p.transaction_id)
                applied = wf.apply_selected()
                console.print(f"[green]Applied {len(applied)} correction(s).[/green]")
                if applied:
                    _print_trial_balance(ledger.all(), settings)
                    _print_findings(wf.audit() or [])

        artifacts = wf.generate_reports()

    for path in _write_artifacts(out, artifacts):
        console.print(f"[cyan]wrote[/cyan] {path}")


@app.callback(invoke_without_command=True)
def _root(ctx: typer.Context) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding
    already-set variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover - `python -m ledger_workbench.cli`
    main()
