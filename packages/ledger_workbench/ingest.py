"""Statement ingestion: oracle classification into ledger transactions.

Documents are classified concurrently (bounded thread pool, input order
preserved). A failing document is recorded and skipped; unusable rows are
dropped with a warning. Ingestion fails with :class:`EmptyResultError` only
when no document yields a single transaction.
"""

from __future__ import annotations

import datetime as dt
import mimetypes
import uuid
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .errors import EmptyResultError, OracleError
from .logging_setup import get_logger
from .models import CompanyContext, StatementDocument, StatementExtraction, Transaction
from .oracle import Oracle
from .taxonomy import BANK_MOVEMENT_ACCOUNT

_logger = get_logger("ledger_workbench.ingest")

_CONCURRENCY: int = 4
UNKNOWN_BANK = "Banco não identificado"
MULTIPLE_BANKS = "Múltiplos Bancos"


@dataclass(frozen=True, slots=True)
class DocumentFailure:
    document: str
    error: str


@dataclass(frozen=True, slots=True)
class StatementSummary:
    document: str
    bank_name: str | None
    final_balance: Decimal
    transactions: tuple[Transaction, ...]
    skipped_rows: int = 0


@dataclass(slots=True)
class IngestResult:
    transactions: list[Transaction] = field(default_factory=list)
    statements: list[StatementSummary] = field(default_factory=list)
    failures: list[DocumentFailure] = field(default_factory=list)
    adjustments: list[Transaction] = field(default_factory=list)
    bank_label: str = UNKNOWN_BANK

    @property
    def skipped_rows(self) -> int:
        return sum(s.skipped_rows for s in self.statements)


# ---- Documents ---------------------------------------------------------------


def load_document(path: str | Path) -> StatementDocument:
    """Read a statement file; images and PDFs stay binary, everything else is text."""

    p = Path(path)
    mime, _ = mimetypes.guess_type(p.name)
    mime = mime or "text/plain"
    if mime.startswith("image/") or mime == "application/pdf":
        return StatementDocument(name=p.name, content=p.read_bytes(), mime_type=mime)
    return StatementDocument(
        name=p.name,
        content=p.read_text(encoding="utf-8", errors="replace"),
        mime_type="text/plain",
    )


# ---- Rows --------------------------------------------------------------------


def _new_id(prefix: str, index: int | None = None) -> str:
    suffix = uuid.uuid4().hex[:8]
    return f"{prefix}-{index}-{suffix}" if index is not None else f"{prefix}-{suffix}"


def _rows_to_transactions(
    document: str, rows: Sequence[Mapping[str, Any]]
) -> tuple[list[Transaction], int]:
    out: list[Transaction] = []
    skipped = 0
    for index, row in enumerate(rows):
        payload = {k: v for k, v in row.items() if k != "id"}
        try:
            out.append(Transaction.model_validate({**payload, "id": _new_id(document, index)}))
        except PydanticValidationError as e:
            skipped += 1
            _logger.warning(
                "ingest:row_skipped document=%s index=%d errors=%d",
                document,
                index,
                e.error_count(),
            )
    return out, skipped


def closing_balance_adjustment(
    final_balance: Decimal,
    *,
    bank_name: str | None,
    transactions: Sequence[Transaction],
    today: dt.date,
) -> Transaction | None:
    """Synthesize the entry that zeroes the bank account in the trial balance.

    A positive statement balance is an asset and is booked as a debit
    (negative value); a negative balance is booked as a credit. Zero yields
    nothing. The entry is dated at the statement's last transaction date.
    """

    if final_balance == 0:
        return None
    value = -abs(final_balance) if final_balance > 0 else abs(final_balance)
    date = max((t.date for t in transactions), default=today)
    return Transaction(
        id=_new_id("balance"),
        date=date,
        description=f"Ajuste de Saldo Final - {bank_name or UNKNOWN_BANK}",
        value=value,
        classification=BANK_MOVEMENT_ACCOUNT,
        confidence_score=1.0,
        needs_review=False,
    )


def _bank_label(statements: Sequence[StatementSummary], n_documents: int) -> str:
    names = list(dict.fromkeys(s.bank_name for s in statements if s.bank_name))
    if len(names) == 1:
        return names[0]
    if names or n_documents > 1:
        return MULTIPLE_BANKS
    return UNKNOWN_BANK


# ---- Public API ----------------------------------------------------------------


def ingest_statements(
    documents: Sequence[StatementDocument],
    oracle: Oracle,
    context: CompanyContext,
    *,
    today: dt.date | None = None,
    closing_adjustments: bool = True,
    concurrency: int = _CONCURRENCY,
) -> IngestResult:
    """Classify ``documents`` and assemble the session's transaction set.

    Returned transactions are sorted by date (stable), with one closing
    balance adjustment per statement that produced transactions and reported
    a non-zero final balance (unless ``closing_adjustments`` is False).
    Raises :class:`EmptyResultError` when nothing could be extracted; the
    message lists the per-document failures.
    """

    if not documents:
        raise EmptyResultError("no statements were provided")
    day = today or dt.date.today()

    def _classify(doc: StatementDocument) -> StatementExtraction | DocumentFailure:
        try:
            return oracle.classify_statement(doc, context)
        except OracleError as e:
            _logger.error(
                "ingest:document_failed document=%s error=%s", doc.name, e.__class__.__name__
            )
            return DocumentFailure(document=doc.name, error=str(e))

    with ThreadPoolExecutor(max_workers=max(1, min(concurrency, len(documents)))) as pool:
        outcomes = list(pool.map(_classify, documents))

    result = IngestResult()
    for doc, outcome in zip(documents, outcomes, strict=True):
        if isinstance(outcome, DocumentFailure):
            result.failures.append(outcome)
            continue
        txs, skipped = _rows_to_transactions(doc.name, outcome.transactions)
        result.statements.append(
            StatementSummary(
                document=doc.name,
                bank_name=outcome.bank_name,
                final_balance=outcome.final_balance,
                transactions=tuple(txs),
                skipped_rows=skipped,
            )
        )
        _logger.info(
            "ingest:document_done document=%s transactions=%d skipped=%d",
            doc.name,
            len(txs),
            skipped,
        )

    extracted = [tx for s in result.statements for tx in s.transactions]
    if not extracted:
        detail = "; ".join(f"{f.document}: {f.error}" for f in result.failures)
        raise EmptyResultError(
            "no transactions could be extracted from the provided statements"
            + (f" ({detail})" if detail else "")
        )

    if closing_adjustments:
        for s in result.statements:
            if not s.transactions:
                continue
            adj = closing_balance_adjustment(
                s.final_balance, bank_name=s.bank_name, transactions=s.transactions, today=day
            )
            if adj is not None:
                result.adjustments.append(adj)

    result.transactions = sorted(extracted + result.adjustments, key=lambda t: t.date)
    result.bank_label = _bank_label(result.statements, len(documents))
    _logger.info(
        "ingest:done documents=%d failed=%d transactions=%d adjustments=%d",
        len(documents),
        len(result.failures),
        len(result.transactions),
        len(result.adjustments),
    )
    return result


__all__ = [
    "DocumentFailure",
    "IngestResult",
    "StatementSummary",
    "closing_balance_adjustment",
    "ingest_statements",
    "load_document",
]
