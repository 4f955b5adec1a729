"""Trial balance ("Balancete de Verificação") aggregation.

Debits are the absolute values of negative transactions, credits the
positive values, one row per distinct classification. Imbalance is reported,
never raised.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from .models import Transaction

BALANCE_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class TrialBalanceRow:
    account: str
    debit: Decimal
    credit: Decimal

    @property
    def balance(self) -> Decimal:
        return self.credit - self.debit


@dataclass(frozen=True, slots=True)
class TrialBalance:
    rows: tuple[TrialBalanceRow, ...]
    total_debit: Decimal
    total_credit: Decimal
    tolerance: Decimal = BALANCE_TOLERANCE

    @property
    def difference(self) -> Decimal:
        """``total_debit - total_credit``; always equals ``-sum(values)``."""

        return self.total_debit - self.total_credit

    @property
    def imbalance(self) -> Decimal:
        return abs(self.difference)

    @property
    def is_balanced(self) -> bool:
        return self.imbalance < self.tolerance

    @property
    def data(self) -> list[dict[str, Any]]:
        """Rows as export records (``conta``/``debito``/``credito``)."""

        return [
            {"conta": r.account, "debito": r.debit, "credito": r.credit} for r in self.rows
        ]


def compute_trial_balance(
    transactions: Iterable[Transaction],
    *,
    tolerance: Decimal = BALANCE_TOLERANCE,
) -> TrialBalance:
    debits: dict[str, Decimal] = {}
    credits: dict[str, Decimal] = {}
    for tx in transactions:
        account = tx.classification
        debits.setdefault(account, Decimal("0"))
        credits.setdefault(account, Decimal("0"))
        if tx.value < 0:
            debits[account] += -tx.value
        else:
            credits[account] += tx.value

    rows = tuple(
        TrialBalanceRow(account=name, debit=debits[name], credit=credits[name])
        for name in sorted(debits)
    )
    return TrialBalance(
        rows=rows,
        total_debit=sum((r.debit for r in rows), Decimal("0")),
        total_credit=sum((r.credit for r in rows), Decimal("0")),
        tolerance=tolerance,
    )


__all__ = ["BALANCE_TOLERANCE", "TrialBalance", "TrialBalanceRow", "compute_trial_balance"]
