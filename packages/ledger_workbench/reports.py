"""Report catalogue and the step-by-step generation pipeline.

Each catalogue entry turns the current transaction set into one or more
:class:`ExportArtifact` files. :class:`ReportPipeline` runs the entries in
order, reports progress as a percentage and checks for cancellation between
steps.
"""

from __future__ import annotations

import datetime as dt
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeAlias

from .config import EngineSettings
from .errors import OperationCancelledError
from .exports import SPED_KINDS, SpedKind, csv_artifact, html_artifact, sped_artifact
from .general_ledger import build_general_ledger, general_ledger_rows, transaction_rows
from .logging_setup import get_logger
from .models import ExportArtifact, Transaction
from .statements import (
    BalanceSheet,
    IncomeStatement,
    compute_balance_sheet,
    compute_income_statement,
)
from .taxonomy import DEFAULT_TAXONOMY, Taxonomy
from .trial_balance import TrialBalance, compute_trial_balance

_logger = get_logger("ledger_workbench.reports")

ProgressCallback: TypeAlias = Callable[[str, int], None]


@dataclass(frozen=True, slots=True)
class ReportInputs:
    transactions: tuple[Transaction, ...]
    trial_balance: TrialBalance
    income_statement: IncomeStatement
    balance_sheet: BalanceSheet
    today: dt.date

    @classmethod
    def build(
        cls,
        transactions: Sequence[Transaction],
        *,
        taxonomy: Taxonomy = DEFAULT_TAXONOMY,
        settings: EngineSettings | None = None,
        today: dt.date,
    ) -> ReportInputs:
        cfg = settings or EngineSettings()
        txs = tuple(transactions)
        return cls(
            transactions=txs,
            trial_balance=compute_trial_balance(txs, tolerance=cfg.balance_tolerance),
            income_statement=compute_income_statement(txs, taxonomy=taxonomy),
            balance_sheet=compute_balance_sheet(txs, taxonomy=taxonomy, settings=cfg),
            today=today,
        )


@dataclass(frozen=True, slots=True)
class ReportSpec:
    key: str
    title: str
    description: str
    build: Callable[[ReportSpec, ReportInputs], list[ExportArtifact]]

    def basename(self, today: dt.date) -> str:
        return f"{self.key}_{today.isoformat()}"


def _table_report(data_of: Callable[[ReportInputs], Any]) -> Callable[..., list[ExportArtifact]]:
    """CSV plus HTML for a records-shaped report; no CSV when there are no rows."""

    def _build(spec: ReportSpec, inputs: ReportInputs) -> list[ExportArtifact]:
        data = data_of(inputs)
        out: list[ExportArtifact] = []
        csv_file = csv_artifact(spec.basename(inputs.today), data)
        if csv_file is not None:
            out.append(csv_file)
        out.append(
            html_artifact(
                spec.basename(inputs.today),
                spec.title,
                data,
                generated_on=inputs.today,
                description=spec.description,
            )
        )
        return out

    return _build


def _balance_sheet_rows(sheet: BalanceSheet) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for section, groups in (
        ("ATIVO", sheet.assets),
        ("PASSIVO", sheet.liabilities),
        ("PATRIMÔNIO LÍQUIDO", (sheet.equity,)),
    ):
        for g in groups:
            for it in g.items:
                rows.append(
                    {"secao": section, "grupo": g.title, "item": it.label, "valor": it.amount}
                )
    return rows


def _build_balance_sheet(spec: ReportSpec, inputs: ReportInputs) -> list[ExportArtifact]:
    name = spec.basename(inputs.today)
    out = [
        html_artifact(
            name,
            spec.title,
            inputs.balance_sheet,
            generated_on=inputs.today,
            description=spec.description,
        )
    ]
    csv_file = csv_artifact(name, _balance_sheet_rows(inputs.balance_sheet))
    if csv_file is not None:
        out.insert(0, csv_file)
    return out


def _sped_builder(kind: SpedKind) -> Callable[[ReportSpec, ReportInputs], list[ExportArtifact]]:
    def _build(spec: ReportSpec, inputs: ReportInputs) -> list[ExportArtifact]:
        return [sped_artifact(kind, inputs.transactions, today=inputs.today)]

    return _build


REPORT_CATALOGUE: tuple[ReportSpec, ...] = (
    ReportSpec(
        "dre",
        "Demonstração do Resultado do Exercício (DRE)",
        "Receitas, despesas e resultado líquido do período.",
        _table_report(lambda i: i.income_statement),
    ),
    ReportSpec(
        "balanco_patrimonial",
        "Balanço Patrimonial",
        "Ativo, passivo e patrimônio líquido ao final do período.",
        _build_balance_sheet,
    ),
    ReportSpec(
        "balancete",
        "Balancete de Verificação",
        "Débitos e créditos por conta.",
        _table_report(lambda i: i.trial_balance),
    ),
    ReportSpec(
        "livro_razao",
        "Livro Razão",
        "Lançamentos agrupados por conta.",
        _table_report(lambda i: general_ledger_rows(build_general_ledger(i.transactions))),
    ),
    ReportSpec(
        "transacoes",
        "Transações",
        "Lista de transações classificadas.",
        _table_report(lambda i: transaction_rows(i.transactions)),
    ),
    *(
        ReportSpec(
            f"sped_{kind.lower()}",
            f"SPED {kind}",
            f"Arquivo ilustrativo no leiaute SPED {kind}.",
            _sped_builder(kind),
        )
        for kind in SPED_KINDS
    ),
)


class ReportPipeline:
    """Run report steps in order with progress and cooperative cancellation.

    ``cancel()`` may be called from any thread (or from the progress
    callback); the pipeline stops before the next step and raises
    :class:`OperationCancelledError`.
    """

    def __init__(
        self,
        inputs: ReportInputs,
        *,
        specs: Sequence[ReportSpec] = REPORT_CATALOGUE,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._inputs = inputs
        self._specs = tuple(specs)
        self._on_progress = on_progress
        self._cancelled = threading.Event()
        self.progress = 0

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _check(self) -> None:
        if self._cancelled.is_set():
            _logger.info("reports:cancelled progress=%d", self.progress)
            raise OperationCancelledError("report generation was cancelled")

    def run(self) -> list[ExportArtifact]:
        artifacts: list[ExportArtifact] = []
        total = len(self._specs)
        self._report("start", 0)
        for n, spec in enumerate(self._specs, start=1):
            self._check()
            artifacts.extend(spec.build(spec, self._inputs))
            self._report(spec.key, (n * 100) // total if total else 100)
        self._check()
        _logger.info("reports:done artifacts=%d", len(artifacts))
        return artifacts

    def _report(self, step: str, pct: int) -> None:
        self.progress = pct
        if self._on_progress is not None:
            self._on_progress(step, pct)


__all__ = [
    "REPORT_CATALOGUE",
    "ProgressCallback",
    "ReportInputs",
    "ReportPipeline",
    "ReportSpec",
]
