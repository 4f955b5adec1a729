"""Fake oracles for engine tests.

``ScriptedOracle`` answers from per-call scripts: each script entry is either
a value to return or an exception instance to raise. ``BlockingOracle`` holds
every call until the test releases it, which makes in-flight and staleness
behavior observable.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from ledger_workbench.models import (
    AuditFinding,
    CompanyContext,
    ProposedChange,
    StatementDocument,
    StatementExtraction,
    Transaction,
)


def _next(script: list[Any]) -> Any:
    # The last entry repeats once the script is exhausted.
    item = script.pop(0) if len(script) > 1 else script[0]
    if isinstance(item, BaseException):
        raise item
    return item


class ScriptedOracle:
    def __init__(
        self,
        *,
        statements: Mapping[str, Any] | None = None,
        audits: Sequence[Any] = ([],),
        corrections: Sequence[Any] = ([],),
    ) -> None:
        self._statements = dict(statements or {})
        self._audits = list(audits)
        self._corrections = list(corrections)
        self.calls: list[tuple[str, Any]] = []

    def classify_statement(
        self, document: StatementDocument, context: CompanyContext
    ) -> StatementExtraction:
        self.calls.append(("classify_statement", document.name))
        item = self._statements[document.name]
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, StatementExtraction):
            return item
        return StatementExtraction.model_validate(item)

    def audit(
        self, transactions: Sequence[Transaction], context: CompanyContext
    ) -> list[AuditFinding]:
        self.calls.append(("audit", [t.id for t in transactions]))
        return [
            f if isinstance(f, AuditFinding) else AuditFinding.model_validate(f)
            for f in _next(self._audits)
        ]

    def propose_corrections(
        self,
        transactions: Sequence[Transaction],
        findings: Sequence[AuditFinding],
        context: CompanyContext,
    ) -> list[ProposedChange]:
        self.calls.append(("propose_corrections", [f.transaction_id for f in findings]))
        return [
            p if isinstance(p, ProposedChange) else ProposedChange.model_validate(p)
            for p in _next(self._corrections)
        ]


class BlockingOracle(ScriptedOracle):
    """Like :class:`ScriptedOracle`, but each call waits for :meth:`release`."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._gate = threading.Event()
        self.entered = threading.Event()

    def release(self) -> None:
        self._gate.set()

    def _wait(self, fn: Callable[[], Any]) -> Any:
        self.entered.set()
        if not self._gate.wait(timeout=5):
            raise TimeoutError("BlockingOracle was never released")
        return fn()

    def audit(self, transactions, context):  # type: ignore[override]
        return self._wait(lambda: super(BlockingOracle, self).audit(transactions, context))

    def propose_corrections(self, transactions, findings, context):  # type: ignore[override]
        return self._wait(
            lambda: super(BlockingOracle, self).propose_corrections(transactions, findings, context)
        )
