"""Exception hierarchy for the ledger engine.

Balance checks never raise; they report booleans and magnitudes. Exceptions
are reserved for oracle failures, rejected input and illegal workflow
transitions.
"""

from __future__ import annotations


class LedgerWorkbenchError(Exception):
    """Base class for all errors raised by ``ledger_workbench``."""


class OracleError(LedgerWorkbenchError):
    """An external oracle call did not produce a usable result."""


class OracleTransportError(OracleError):
    """Network, authentication, rate-limit or server failure talking to the oracle."""


class OracleResponseError(OracleError):
    """The oracle answered, but the payload was malformed or failed validation."""


class EmptyResultError(LedgerWorkbenchError):
    """Ingestion finished without extracting a single transaction."""


class ValidationError(LedgerWorkbenchError, ValueError):
    """User-supplied data was rejected (e.g. a non-positive manual amount)."""


class WorkflowStateError(LedgerWorkbenchError):
    """An operation was attempted from a state that does not allow it."""


class RequestInFlightError(WorkflowStateError):
    """An oracle request is already pending for this session."""


class OperationCancelledError(LedgerWorkbenchError):
    """A long-running step (report generation) was cancelled by the user."""


__all__ = [
    "EmptyResultError",
    "LedgerWorkbenchError",
    "OperationCancelledError",
    "OracleError",
    "OracleResponseError",
    "OracleTransportError",
    "RequestInFlightError",
    "ValidationError",
    "WorkflowStateError",
]
