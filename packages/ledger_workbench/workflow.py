"""Audit → propose → apply workflow over a :class:`LedgerStore`.

States::

    IDLE ──start_audit──▶ AUDITING ──finish_audit──▶ AUDIT_COMPLETE
    AUDIT_COMPLETE ──start_corrections──▶ PROPOSING_CORRECTIONS ──apply──▶ IDLE
    AUDIT_COMPLETE ──generate_reports──▶ GENERATING ──▶ REPORTS_READY

Oracle calls run on a small executor and are resolved on the caller's
thread through ``finish_*``. Only one call may be pending; a second request
raises :class:`RequestInFlightError`. Every ledger mutation returns the
workflow to ``IDLE``, drops findings and proposals and detaches any pending
call; a response whose captured ledger version no longer matches is
discarded.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Callable, Sequence
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from pydantic import ValidationError as PydanticValidationError

from .config import EngineSettings
from .errors import (
    OperationCancelledError,
    OracleError,
    RequestInFlightError,
    ValidationError,
    WorkflowStateError,
)
from .ledger import LedgerChange, LedgerStore
from .logging_setup import get_logger
from .models import AuditFinding, CompanyContext, ExportArtifact, ProposedChange
from .oracle import Oracle
from .reports import ProgressCallback, ReportInputs, ReportPipeline
from .taxonomy import DEFAULT_TAXONOMY, Taxonomy

_logger = get_logger("ledger_workbench.workflow")

AUDIT_FAILURE_MESSAGE = (
    "A auditoria da IA falhou. Verifique os dados das transações ou tente novamente."
)
CORRECTIONS_FAILURE_MESSAGE = (
    "Não foi possível gerar as propostas de correção. Tente novamente."
)


class WorkflowState(str, Enum):
    IDLE = "idle"
    AUDITING = "auditing"
    AUDIT_COMPLETE = "audit_complete"
    PROPOSING_CORRECTIONS = "proposing_corrections"
    GENERATING = "generating"
    REPORTS_READY = "reports_ready"


@dataclass(frozen=True, slots=True)
class PendingCall:
    """Handle for an in-flight oracle request."""

    kind: Literal["audit", "corrections"]
    version: int
    future: Future[Any]

    def done(self) -> bool:
        return self.future.done()


class AuditWorkflow:
    def __init__(
        self,
        ledger: LedgerStore,
        oracle: Oracle,
        context: CompanyContext | None = None,
        *,
        taxonomy: Taxonomy = DEFAULT_TAXONOMY,
        settings: EngineSettings | None = None,
        executor: Executor | None = None,
        today: Callable[[], dt.date] = dt.date.today,
    ) -> None:
        self._ledger = ledger
        self._oracle = oracle
        self.context = context or CompanyContext()
        self.taxonomy = taxonomy
        self.settings = settings or EngineSettings()
        self._owns_executor = executor is None
        self._executor: Executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="ledger-oracle"
        )
        self._today = today

        self.state = WorkflowState.IDLE
        self.findings: list[AuditFinding] = []
        self.proposals: list[ProposedChange] = []
        self.selected: set[str] = set()
        self.artifacts: list[ExportArtifact] = []
        self.last_error: str | None = None
        self._pending: PendingCall | None = None
        self._pipeline: ReportPipeline | None = None

        self._unsubscribe = ledger.on_ledger_changed(self._on_ledger_changed)

    # ---- Lifecycle ---------------------------------------------------------------

    def close(self) -> None:
        self._unsubscribe()
        self._detach_pending()
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> AuditWorkflow:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def pending(self) -> PendingCall | None:
        return self._pending

    def _set_state(self, new: WorkflowState) -> None:
        if new is not self.state:
            _logger.info("workflow:transition from=%s to=%s", self.state.value, new.value)
        self.state = new

    def _detach_pending(self) -> None:
        if self._pending is not None:
            self._pending.future.cancel()
            self._pending = None

    def _clear_results(self) -> None:
        self.findings = []
        self.proposals = []
        self.selected = set()
        self.artifacts = []

    def _on_ledger_changed(self, change: LedgerChange) -> None:
        if self._pending is not None:
            _logger.info(
                "workflow:pending_detached kind=%s captured_version=%d version=%d",
                self._pending.kind,
                self._pending.version,
                change.version,
            )
        self._detach_pending()
        if self._pipeline is not None:
            self._pipeline.cancel()
        self._clear_results()
        self.last_error = None
        self._set_state(WorkflowState.IDLE)

    def _require_no_pending(self) -> None:
        if self._pending is not None:
            raise RequestInFlightError(f"a {self._pending.kind} request is already in flight")

    def _is_current(self, call: PendingCall) -> bool:
        return call is self._pending and call.version == self._ledger.version

    # ---- Audit -------------------------------------------------------------------

    def start_audit(self) -> PendingCall:
        """Submit the whole transaction set for audit."""

        self._require_no_pending()
        if self.state not in (
            WorkflowState.IDLE,
            WorkflowState.AUDIT_COMPLETE,
            WorkflowState.REPORTS_READY,
        ):
            raise WorkflowStateError(f"cannot start an audit while {self.state.value}")
        transactions = self._ledger.all()
        if not transactions:
            raise ValidationError("there are no transactions to audit")

        version = self._ledger.version
        future = self._executor.submit(self._oracle.audit, transactions, self.context)
        self._pending = PendingCall(kind="audit", version=version, future=future)
        self._clear_results()
        self.last_error = None
        _logger.info("audit:start version=%d n=%d", version, len(transactions))
        self._set_state(WorkflowState.AUDITING)
        return self._pending

    def finish_audit(
        self, call: PendingCall, *, timeout: float | None = None
    ) -> list[AuditFinding] | None:
        """Wait for ``call`` and store its findings.

        Returns ``None`` when the call is stale (the ledger changed or the
        call was cancelled). An oracle failure is stored as one synthetic
        ``error`` finding.
        """

        if call.kind != "audit":
            raise WorkflowStateError("finish_audit expects an audit call")
        if not self._is_current(call):
            _logger.info("audit:stale_discarded captured_version=%d", call.version)
            return None
        try:
            findings = list(call.future.result(timeout=timeout))
        except OracleError as e:
            _logger.error("audit:failed error=%s", e.__class__.__name__)
            findings = [AuditFinding(type="error", message=AUDIT_FAILURE_MESSAGE)]
            self.last_error = str(e)
        except Exception:
            if self._pending is call and call.future.done():
                self._pending = None
                self._set_state(WorkflowState.IDLE)
            raise
        # The ledger may have changed while we were waiting.
        if not self._is_current(call):
            _logger.info("audit:stale_discarded captured_version=%d", call.version)
            return None
        self._pending = None
        self.findings = findings
        _logger.info("audit:done findings=%d", len(findings))
        self._set_state(WorkflowState.AUDIT_COMPLETE)
        return findings

    def audit(self, *, timeout: float | None = None) -> list[AuditFinding] | None:
        return self.finish_audit(self.start_audit(), timeout=timeout)

    @property
    def actionable_findings(self) -> list[AuditFinding]:
        return [f for f in self.findings if f.transaction_id]

    # ---- Corrections -----------------------------------------------------------

    def start_corrections(self) -> PendingCall:
        """Ask the oracle for corrections to the findings that name a transaction."""

        self._require_no_pending()
        if self.state is not WorkflowState.AUDIT_COMPLETE:
            raise WorkflowStateError(f"cannot propose corrections while {self.state.value}")
        actionable = self.actionable_findings
        if not actionable:
            raise WorkflowStateError("no audit finding references a transaction")

        version = self._ledger.version
        future = self._executor.submit(
            self._oracle.propose_corrections, self._ledger.all(), actionable, self.context
        )
        self._pending = PendingCall(kind="corrections", version=version, future=future)
        self.last_error = None
        _logger.info("corrections:start version=%d findings=%d", version, len(actionable))
        self._set_state(WorkflowState.PROPOSING_CORRECTIONS)
        return self._pending

    def finish_corrections(
        self, call: PendingCall, *, timeout: float | None = None
    ) -> list[ProposedChange] | None:
        """Wait for ``call`` and store the proposals, all of them selected.

        Returns ``None`` when the call is stale or the oracle failed; on
        failure the workflow is back in ``AUDIT_COMPLETE`` with
        :attr:`last_error` set. When no proposal survives filtering (unknown or
        duplicate ids) the workflow also returns to ``AUDIT_COMPLETE``.
        """

        if call.kind != "corrections":
            raise WorkflowStateError("finish_corrections expects a corrections call")
        if not self._is_current(call):
            _logger.info("corrections:stale_discarded captured_version=%d", call.version)
            return None
        try:
            proposals = list(call.future.result(timeout=timeout))
        except OracleError as e:
            _logger.error("corrections:failed error=%s", e.__class__.__name__)
            if self._pending is call:
                self._pending = None
                self.last_error = CORRECTIONS_FAILURE_MESSAGE
                self._set_state(WorkflowState.AUDIT_COMPLETE)
            return None
        except Exception:
            if self._pending is call and call.future.done():
                self._pending = None
                self._set_state(WorkflowState.AUDIT_COMPLETE)
            raise
        if not self._is_current(call):
            _logger.info("corrections:stale_discarded captured_version=%d", call.version)
            return None
        self._pending = None
        self.proposals = self._usable_proposals(proposals)
        self.selected = {p.transaction_id for p in self.proposals}
        _logger.info(
            "corrections:done proposals=%d received=%d", len(self.proposals), len(proposals)
        )
        if not self.proposals:
            self._set_state(WorkflowState.AUDIT_COMPLETE)
        return list(self.proposals)

    def propose_corrections(self, *, timeout: float | None = None) -> list[ProposedChange] | None:
        return self.finish_corrections(self.start_corrections(), timeout=timeout)

    def _usable_proposals(self, proposals: Sequence[ProposedChange]) -> list[ProposedChange]:
        # One proposal per known transaction; the first one wins.
        out: list[ProposedChange] = []
        seen: set[str] = set()
        for p in proposals:
            if p.transaction_id not in self._ledger:
                _logger.warning("corrections:unknown_transaction id=%s", p.transaction_id)
                continue
            if p.transaction_id in seen:
                _logger.warning("corrections:duplicate_proposal id=%s", p.transaction_id)
                continue
            seen.add(p.transaction_id)
            out.append(p)
        return out

    # ---- Selection & apply -------------------------------------------------------

    def _require_proposals(self) -> None:
        if self.state is not WorkflowState.PROPOSING_CORRECTIONS or self._pending is not None:
            raise WorkflowStateError("no correction proposals are ready")

    def toggle(self, transaction_id: str) -> bool:
        """Flip the selection of one proposal; returns the new selected state."""

        self._require_proposals()
        if transaction_id not in {p.transaction_id for p in self.proposals}:
            raise KeyError(transaction_id)
        if transaction_id in self.selected:
            self.selected.discard(transaction_id)
            return False
        self.selected.add(transaction_id)
        return True

    def toggle_all(self) -> None:
        """Clear the selection when everything is selected, otherwise select all."""

        self._require_proposals()
        ids = {p.transaction_id for p in self.proposals}
        self.selected = set() if ids and ids <= self.selected else ids

    def apply_selected(self) -> list[str]:
        """Merge the selected proposals into the ledger as one mutation.

        Unselected transactions are untouched. With nothing to apply the
        workflow returns to ``AUDIT_COMPLETE`` and the ledger is unchanged.
        """

        self._require_proposals()
        patches = {
            p.transaction_id: p.updates
            for p in self.proposals
            if p.transaction_id in self.selected and not p.updates.is_empty()
        }
        if not patches:
            self.proposals = []
            self.selected = set()
            self._set_state(WorkflowState.AUDIT_COMPLETE)
            return []
        try:
            applied = self._ledger.update_many(patches)
        except PydanticValidationError as e:
            raise ValidationError(
                f"a selected correction produces an invalid transaction: {e}"
            ) from e
        if not applied:
            self.proposals = []
            self.selected = set()
            self._set_state(WorkflowState.AUDIT_COMPLETE)
            return []
        _logger.info("corrections:applied n=%d", len(applied))
        return applied

    # ---- Reports -----------------------------------------------------------------

    def generate_reports(
        self, *, on_progress: ProgressCallback | None = None
    ) -> list[ExportArtifact]:
        """Build every report from the current ledger.

        Allowed from ``AUDIT_COMPLETE`` (findings may still be open) and to
        regenerate from ``REPORTS_READY``. Cancellation returns the workflow
        to ``AUDIT_COMPLETE`` and raises :class:`OperationCancelledError`.
        """

        self._require_no_pending()
        if self.state not in (WorkflowState.AUDIT_COMPLETE, WorkflowState.REPORTS_READY):
            raise WorkflowStateError(f"cannot generate reports while {self.state.value}")
        inputs = ReportInputs.build(
            self._ledger.all(),
            taxonomy=self.taxonomy,
            settings=self.settings,
            today=self._today(),
        )
        self._pipeline = ReportPipeline(inputs, on_progress=on_progress)
        self.artifacts = []
        self._set_state(WorkflowState.GENERATING)
        try:
            artifacts = self._pipeline.run()
        except OperationCancelledError:
            if self.state is WorkflowState.GENERATING:
                self._set_state(WorkflowState.AUDIT_COMPLETE)
            raise
        finally:
            self._pipeline = None
        self.artifacts = artifacts
        self._set_state(WorkflowState.REPORTS_READY)
        return artifacts

    # ---- Cancellation ------------------------------------------------------------

    def cancel(self) -> None:
        """Abandon the current step.

        Auditing goes back to ``IDLE``; proposing corrections (pending or
        under review) goes back to ``AUDIT_COMPLETE``; report generation is
        asked to stop. Other states are left as they are.
        """

        if self.state is WorkflowState.AUDITING:
            self._detach_pending()
            self._set_state(WorkflowState.IDLE)
        elif self.state is WorkflowState.PROPOSING_CORRECTIONS:
            self._detach_pending()
            self.proposals = []
            self.selected = set()
            self._set_state(WorkflowState.AUDIT_COMPLETE)
        elif self.state is WorkflowState.GENERATING and self._pipeline is not None:
            self._pipeline.cancel()


__all__ = [
    "AUDIT_FAILURE_MESSAGE",
    "CORRECTIONS_FAILURE_MESSAGE",
    "AuditWorkflow",
    "PendingCall",
    "WorkflowState",
]
