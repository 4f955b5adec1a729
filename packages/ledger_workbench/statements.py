"""Income statement (DRE) and balance sheet generators.

Both generators are pure functions of the transaction set, the injected
:class:`~ledger_workbench.taxonomy.Taxonomy` and, for the balance sheet, the
placeholder figures from :class:`~ledger_workbench.config.EngineSettings`.
:class:`StatementService` caches the derived values per ledger version and is
invalidated through the ledger's change hook.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from .config import EngineSettings
from .ledger import LedgerChange, LedgerStore
from .logging_setup import get_logger
from .models import Transaction, money
from .taxonomy import DEFAULT_TAXONOMY, AccountKind, Taxonomy
from .trial_balance import TrialBalance, compute_trial_balance

_logger = get_logger("ledger_workbench.statements")

_ZERO = Decimal("0")


def format_brl(value: Decimal, *, parenthesize: bool = False) -> str:
    """``R$ 1234.50``; with ``parenthesize`` the magnitude is wrapped: ``R$ (1234.50)``."""

    amount = money(value)
    if parenthesize:
        return f"R$ ({abs(amount):.2f})"
    return f"R$ {amount:.2f}"


# ---- Income statement ----------------------------------------------------------


@dataclass(frozen=True, slots=True)
class IncomeStatement:
    total_revenue: Decimal
    total_expenses: Decimal

    @property
    def net_income(self) -> Decimal:
        return self.total_revenue - self.total_expenses

    @property
    def data(self) -> list[dict[str, Any]]:
        """The three presentation lines (``item``/``valor``)."""

        return [
            {"item": "Receita Operacional Bruta", "valor": format_brl(self.total_revenue)},
            {
                "item": "(-) Despesas Totais",
                "valor": format_brl(self.total_expenses, parenthesize=True),
            },
            {"item": "(=) Resultado Líquido do Período", "valor": format_brl(self.net_income)},
        ]


def compute_income_statement(
    transactions: Iterable[Transaction],
    *,
    taxonomy: Taxonomy = DEFAULT_TAXONOMY,
) -> IncomeStatement:
    """Revenue is positive values on revenue accounts; expenses are the
    magnitudes of negative values on expense accounts. Everything else
    (transit, unknown, wrong-signed entries) is excluded."""

    revenue = _ZERO
    expenses = _ZERO
    for tx in transactions:
        kind = taxonomy.classify(tx.classification)
        if kind is AccountKind.REVENUE and tx.value > 0:
            revenue += tx.value
        elif kind is AccountKind.EXPENSE and tx.value < 0:
            expenses += -tx.value
    return IncomeStatement(total_revenue=revenue, total_expenses=expenses)


# ---- Balance sheet ---------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BalanceSheetItem:
    label: str
    amount: Decimal


@dataclass(frozen=True, slots=True)
class BalanceSheetGroup:
    title: str
    items: tuple[BalanceSheetItem, ...]

    @property
    def total(self) -> Decimal:
        return sum((i.amount for i in self.items), _ZERO)


@dataclass(frozen=True, slots=True)
class BalanceSheet:
    assets: tuple[BalanceSheetGroup, ...]
    liabilities: tuple[BalanceSheetGroup, ...]
    equity: BalanceSheetGroup
    tolerance: Decimal = Decimal("0.01")

    @property
    def total_assets(self) -> Decimal:
        return sum((g.total for g in self.assets), _ZERO)

    @property
    def total_liabilities(self) -> Decimal:
        return sum((g.total for g in self.liabilities), _ZERO)

    @property
    def total_equity(self) -> Decimal:
        return self.equity.total

    @property
    def total_liabilities_and_equity(self) -> Decimal:
        return self.total_liabilities + self.total_equity

    @property
    def identity_gap(self) -> Decimal:
        return self.total_assets - self.total_liabilities_and_equity

    @property
    def identity_holds(self) -> bool:
        return abs(self.identity_gap) < self.tolerance

    def item(self, label: str) -> Decimal:
        """Amount of the first item named ``label`` across all groups."""

        for group in (*self.assets, *self.liabilities, self.equity):
            for it in group.items:
                if it.label == label:
                    return it.amount
        raise KeyError(label)


def compute_balance_sheet(
    transactions: Iterable[Transaction],
    *,
    taxonomy: Taxonomy = DEFAULT_TAXONOMY,
    settings: EngineSettings | None = None,
) -> BalanceSheet:
    """Derive the simplified balance sheet.

    Cash is the net of all transactions; a negative net becomes an overdraft
    liability. Fixed assets, supplier payables and long-term financing are
    configured placeholders. Share capital is the plug that closes
    ``assets == liabilities + equity``.
    """

    cfg = settings or EngineSettings()
    txs = list(transactions)
    cash = sum((t.value for t in txs), _ZERO)
    net_income = compute_income_statement(txs, taxonomy=taxonomy).net_income

    assets = (
        BalanceSheetGroup(
            "ATIVO CIRCULANTE",
            (BalanceSheetItem("Caixa e Equivalentes", max(cash, _ZERO)),),
        ),
        BalanceSheetGroup(
            "ATIVO NÃO CIRCULANTE",
            (BalanceSheetItem("Imobilizado", cfg.fixed_assets),),
        ),
    )
    liabilities = (
        BalanceSheetGroup(
            "PASSIVO CIRCULANTE",
            (
                BalanceSheetItem("Fornecedores e Obrigações", cfg.supplier_payables),
                BalanceSheetItem("Saldo Bancário Devedor", max(-cash, _ZERO)),
            ),
        ),
        BalanceSheetGroup(
            "PASSIVO NÃO CIRCULANTE",
            (BalanceSheetItem("Financiamentos", cfg.long_term_financing),),
        ),
    )
    total_assets = sum((g.total for g in assets), _ZERO)
    total_liabilities = sum((g.total for g in liabilities), _ZERO)
    capital = total_assets - total_liabilities - net_income
    equity = BalanceSheetGroup(
        "PATRIMÔNIO LÍQUIDO",
        (
            BalanceSheetItem("Capital Social", capital),
            BalanceSheetItem("Resultado do Período", net_income),
        ),
    )
    return BalanceSheet(
        assets=assets,
        liabilities=liabilities,
        equity=equity,
        tolerance=cfg.balance_tolerance,
    )


# ---- Cached aggregates -----------------------------------------------------------


class StatementService:
    """Ledger-bound cache of the trial balance and statements.

    Values are computed on first read after a mutation and reused until the
    next ``on_ledger_changed`` notification.
    """

    def __init__(
        self,
        ledger: LedgerStore,
        *,
        taxonomy: Taxonomy = DEFAULT_TAXONOMY,
        settings: EngineSettings | None = None,
    ) -> None:
        self._ledger = ledger
        self.taxonomy = taxonomy
        self.settings = settings or EngineSettings()
        self._cache: dict[str, Any] = {}
        self._unsubscribe = ledger.on_ledger_changed(self._invalidate)

    def _invalidate(self, change: LedgerChange) -> None:
        if self._cache:
            _logger.debug("statements:invalidate version=%d op=%s", change.version, change.op)
        self._cache.clear()

    def close(self) -> None:
        self._unsubscribe()

    def _cached(self, key: str, build: Callable[[], Any]) -> Any:
        if key not in self._cache:
            self._cache[key] = build()
        return self._cache[key]

    def trial_balance(self) -> TrialBalance:
        return self._cached(
            "trial_balance",
            lambda: compute_trial_balance(
                self._ledger.all(), tolerance=self.settings.balance_tolerance
            ),
        )

    def income_statement(self) -> IncomeStatement:
        return self._cached(
            "income_statement",
            lambda: compute_income_statement(self._ledger.all(), taxonomy=self.taxonomy),
        )

    def balance_sheet(self) -> BalanceSheet:
        return self._cached(
            "balance_sheet",
            lambda: compute_balance_sheet(
                self._ledger.all(), taxonomy=self.taxonomy, settings=self.settings
            ),
        )


__all__ = [
    "BalanceSheet",
    "BalanceSheetGroup",
    "BalanceSheetItem",
    "IncomeStatement",
    "StatementService",
    "compute_balance_sheet",
    "compute_income_statement",
    "format_brl",
]
