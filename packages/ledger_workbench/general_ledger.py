"""General ledger ("Livro Razão") and flat transaction listings."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from .models import Transaction, money


@dataclass(frozen=True, slots=True)
class LedgerAccount:
    account: str
    entries: tuple[Transaction, ...]

    @property
    def total_debit(self) -> Decimal:
        return sum((-t.value for t in self.entries if t.value < 0), Decimal("0"))

    @property
    def total_credit(self) -> Decimal:
        return sum((t.value for t in self.entries if t.value > 0), Decimal("0"))

    @property
    def balance(self) -> Decimal:
        return self.total_credit - self.total_debit


def build_general_ledger(transactions: Iterable[Transaction]) -> list[LedgerAccount]:
    """Group by classification (accounts sorted by name, entries by date).

    Date ties keep the input order.
    """

    grouped: dict[str, list[Transaction]] = {}
    for tx in transactions:
        grouped.setdefault(tx.classification, []).append(tx)
    return [
        LedgerAccount(account=name, entries=tuple(sorted(grouped[name], key=lambda t: t.date)))
        for name in sorted(grouped)
    ]


def general_ledger_rows(accounts: Iterable[LedgerAccount]) -> list[dict[str, Any]]:
    """One export record per entry, debit/credit split into two columns."""

    rows: list[dict[str, Any]] = []
    for acc in accounts:
        for tx in acc.entries:
            rows.append(
                {
                    "conta": acc.account,
                    "data": tx.date.isoformat(),
                    "descricao": tx.description,
                    "debito": money(-tx.value) if tx.value < 0 else "",
                    "credito": money(tx.value) if tx.value > 0 else "",
                }
            )
    return rows


def transaction_rows(transactions: Iterable[Transaction]) -> list[dict[str, Any]]:
    """Flat listing for export; review metadata and ids are left out."""

    return [
        {
            "date": tx.date.isoformat(),
            "description": tx.description,
            "value": tx.value,
            "classification": tx.classification,
        }
        for tx in sorted(transactions, key=lambda t: t.date)
    ]


__all__ = ["LedgerAccount", "build_general_ledger", "general_ledger_rows", "transaction_rows"]
