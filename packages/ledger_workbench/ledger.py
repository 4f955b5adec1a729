"""In-memory transaction store for a single working session.

The store owns the transaction list. Every effective mutation bumps a
monotonic ``version`` and then calls the registered ``on_ledger_changed``
listeners synchronously, in registration order, on the mutating thread.
Operations that change nothing (unknown id on ``update``/``remove``) neither
bump the version nor notify.
"""

from __future__ import annotations

import datetime as dt
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, TypeAlias

from .errors import ValidationError
from .logging_setup import get_logger
from .models import Transaction, TransactionPatch, to_decimal

_logger = get_logger("ledger_workbench.ledger")


@dataclass(frozen=True, slots=True)
class LedgerChange:
    """Payload delivered to ``on_ledger_changed`` listeners."""

    op: str
    version: int
    ids: tuple[str, ...]


LedgerListener: TypeAlias = Callable[[LedgerChange], None]


class LedgerStore:
    def __init__(self, transactions: Iterable[Transaction] = ()) -> None:
        self._items: list[Transaction] = []
        self._index: dict[str, int] = {}
        self._version = 0
        self._listeners: list[LedgerListener] = []
        for tx in transactions:
            self._append(tx)

    # ---- Listeners -----------------------------------------------------------

    def on_ledger_changed(self, listener: LedgerListener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unregisters it."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self, op: str, ids: Iterable[str]) -> None:
        self._version += 1
        change = LedgerChange(op=op, version=self._version, ids=tuple(ids))
        _logger.debug(
            "ledger:mutation op=%s version=%d ids=%d size=%d",
            op,
            change.version,
            len(change.ids),
            len(self._items),
        )
        for listener in list(self._listeners):
            listener(change)

    # ---- Queries -------------------------------------------------------------

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, tx_id: object) -> bool:
        return tx_id in self._index

    def all(self) -> list[Transaction]:
        """Snapshot of the transactions in insertion order."""

        return list(self._items)

    def get(self, tx_id: str) -> Transaction | None:
        pos = self._index.get(tx_id)
        return None if pos is None else self._items[pos]

    def sorted_by_date(self) -> list[Transaction]:
        """Display order: ascending date, ties keep insertion order."""

        return sorted(self._items, key=lambda t: t.date)

    # ---- Mutations -----------------------------------------------------------

    def _append(self, tx: Transaction) -> None:
        if tx.id in self._index:
            raise ValidationError(f"duplicate transaction id: {tx.id!r}")
        self._index[tx.id] = len(self._items)
        self._items.append(tx)

    def _reindex(self) -> None:
        self._index = {tx.id: pos for pos, tx in enumerate(self._items)}

    def add(self, tx: Transaction) -> None:
        self._append(tx)
        self._commit("add", [tx.id])

    def extend(self, txs: Iterable[Transaction]) -> None:
        added = list(txs)
        if not added:
            return
        seen = set(self._index)
        for tx in added:
            if tx.id in seen:
                raise ValidationError(f"duplicate transaction id: {tx.id!r}")
            seen.add(tx.id)
        for tx in added:
            self._append(tx)
        self._commit("extend", [tx.id for tx in added])

    def replace_all(self, txs: Iterable[Transaction]) -> None:
        items = list(txs)
        ids = [tx.id for tx in items]
        if len(set(ids)) != len(ids):
            raise ValidationError("replace_all received duplicate transaction ids")
        self._items = items
        self._reindex()
        self._commit("replace_all", ids)

    def update(self, tx_id: str, patch: TransactionPatch | Mapping[str, Any]) -> bool:
        """Merge ``patch`` into the transaction ``tx_id``.

        Returns ``False`` (and leaves the store untouched) when the id is
        unknown. Invalid patches raise ``pydantic.ValidationError`` before any
        change is made.
        """

        pos = self._index.get(tx_id)
        if pos is None:
            return False
        self._items[pos] = self._items[pos].with_updates(patch)
        self._commit("update", [tx_id])
        return True

    def update_many(self, patches: Mapping[str, TransactionPatch]) -> list[str]:
        """Apply several patches as one mutation; unknown ids are ignored.

        All merged records are validated before the store is touched.
        """

        staged: dict[int, Transaction] = {}
        for tx_id, patch in patches.items():
            pos = self._index.get(tx_id)
            if pos is None:
                continue
            staged[pos] = self._items[pos].with_updates(patch)
        if not staged:
            return []
        for pos, tx in staged.items():
            self._items[pos] = tx
        applied = [self._items[pos].id for pos in sorted(staged)]
        self._commit("update", applied)
        return applied

    def upsert(self, tx: Transaction) -> None:
        """Replace the transaction with the same id in place, or append it."""

        pos = self._index.get(tx.id)
        if pos is None:
            self._append(tx)
            self._commit("add", [tx.id])
            return
        self._items[pos] = tx
        self._commit("update", [tx.id])

    def remove(self, tx_id: str) -> bool:
        pos = self._index.get(tx_id)
        if pos is None:
            return False
        del self._items[pos]
        self._reindex()
        self._commit("remove", [tx_id])
        return True


def manual_entry(
    date: dt.date,
    description: str,
    amount: Decimal | float | int | str,
    *,
    is_credit: bool,
    classification: str,
    tx_id: str | None = None,
) -> Transaction:
    """Build a manually entered transaction.

    ``amount`` must be strictly positive; ``is_credit`` decides the sign
    (credit/inflow positive, debit/outflow negative).
    """

    try:
        amt = to_decimal(amount)
    except (ValueError, ArithmeticError) as e:
        raise ValidationError(f"invalid amount: {amount!r}") from e
    if not amt.is_finite() or amt <= 0:
        raise ValidationError("amount must be greater than zero")
    if not description or not description.strip():
        raise ValidationError("description is required")
    if not classification or not classification.strip():
        raise ValidationError("classification is required")
    return Transaction(
        id=tx_id or f"manual-{uuid.uuid4().hex[:12]}",
        date=date,
        description=description,
        value=amt if is_credit else -amt,
        classification=classification,
        confidence_score=1.0,
        needs_review=False,
    )


__all__ = ["LedgerChange", "LedgerListener", "LedgerStore", "manual_entry"]
