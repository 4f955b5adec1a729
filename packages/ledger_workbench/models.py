"""Domain records for the ledger engine.

Transactions, findings and proposals are ``pydantic`` models so the oracle's
JSON (camelCase keys) and user input go through the same validation. Values
are ``Decimal``; floats are converted through ``str`` so ``0.1`` stays
``Decimal("0.1")``.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Convert ``int``/``float``/``str``/``Decimal`` to ``Decimal`` without float noise."""

    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("boolean is not a monetary value")
    if isinstance(value, (int, float, str)):
        return Decimal(str(value).strip())
    raise ValueError(f"unsupported monetary value: {value!r}")


def money(value: Decimal) -> Decimal:
    """Quantize to cents, half-up."""

    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _coerce_decimal(v: Any) -> Any:
    if isinstance(v, float):
        return Decimal(str(v))
    return v


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class Transaction(BaseModel):
    """A single ledger line.

    ``value`` is signed: negative is a debit (outflow), positive a credit
    (inflow). Zero is rejected.
    """

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="forbid", str_strip_whitespace=True
    )

    id: str = Field(min_length=1)
    date: dt.date
    description: str
    value: Decimal
    classification: str
    confidence_score: float | None = Field(default=None, alias="confidenceScore")
    needs_review: bool | None = Field(default=None, alias="needsReview")

    @field_validator("value", mode="before")
    @classmethod
    def _value_from_float(cls, v: Any) -> Any:
        return _coerce_decimal(v)

    @field_validator("value")
    @classmethod
    def _value_non_zero(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("value must be non-zero")
        return v

    @field_validator("confidence_score")
    @classmethod
    def _score_in_unit_interval(cls, v: float | None) -> float | None:
        if v is None:
            return None
        fv = float(v)
        if 0.0 <= fv <= 1.0:
            return fv
        raise ValueError("confidenceScore must be within [0,1]")

    def with_updates(self, patch: TransactionPatch | Mapping[str, Any]) -> Transaction:
        """Return a copy with ``patch`` shallow-merged over this transaction.

        The id never changes. The merged record is validated again, so a
        patch cannot introduce a zero value or an out-of-range score.
        """

        if not isinstance(patch, TransactionPatch):
            patch = TransactionPatch.model_validate(patch)
        merged = self.model_dump() | patch.model_dump(exclude_unset=True)
        merged["id"] = self.id
        return Transaction.model_validate(merged)

    def to_record(self) -> dict[str, Any]:
        """Plain JSON-friendly mapping with the camelCase keys the oracle uses."""

        out: dict[str, Any] = {
            "id": self.id,
            "date": self.date.isoformat(),
            "description": self.description,
            "value": float(self.value),
            "classification": self.classification,
        }
        if self.confidence_score is not None:
            out["confidenceScore"] = self.confidence_score
        if self.needs_review is not None:
            out["needsReview"] = self.needs_review
        return out


class TransactionPatch(BaseModel):
    """Partial transaction used by edits and correction proposals.

    ``id`` is not accepted. ``None`` values are dropped, meaning "leave as
    is", which lets the oracle answer every key of a strict schema.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    date: dt.date | None = None
    description: str | None = None
    value: Decimal | None = None
    classification: str | None = None
    confidence_score: float | None = Field(default=None, alias="confidenceScore")
    needs_review: bool | None = Field(default=None, alias="needsReview")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            return {k: v for k, v in data.items() if v is not None}
        return data

    @field_validator("value", mode="before")
    @classmethod
    def _value_from_float(cls, v: Any) -> Any:
        return _coerce_decimal(v)

    def is_empty(self) -> bool:
        return not self.model_fields_set


# ---------------------------------------------------------------------------
# Audit artefacts
# ---------------------------------------------------------------------------


FindingType = Literal["error", "warning", "suggestion"]


class AuditFinding(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    type: FindingType
    message: str
    transaction_id: str | None = Field(default=None, alias="transactionId")

    @field_validator("transaction_id")
    @classmethod
    def _blank_id_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()


class ProposedChange(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    transaction_id: str = Field(alias="transactionId", min_length=1)
    reason: str
    updates: TransactionPatch


# ---------------------------------------------------------------------------
# Oracle inputs and outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CompanyContext:
    """Company facts handed to every oracle call.

    ``cnpj`` is the principal tax id; ``known_accounts`` are account
    names/aliases the company uses (free text, passed through verbatim).
    """

    cnpj: str | None = None
    known_accounts: tuple[str, ...] = ()

    def describe(self) -> str:
        parts: list[str] = []
        if self.cnpj:
            parts.append(f"CNPJ principal: {self.cnpj}")
        if self.known_accounts:
            parts.append("Contas conhecidas: " + "; ".join(self.known_accounts))
        return "\n".join(parts) if parts else "Nenhum contexto adicional da empresa."


@dataclass(frozen=True, slots=True)
class StatementDocument:
    """One uploaded statement: text content, or bytes plus a MIME type."""

    name: str
    content: str | bytes
    mime_type: str = "text/plain"

    @property
    def is_text(self) -> bool:
        return isinstance(self.content, str)


class StatementExtraction(BaseModel):
    """Classification oracle output for one statement.

    Rows stay as raw mappings; ingestion validates them one by one so a
    single bad row does not discard the document.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bank_name: str | None = Field(default=None, alias="banco")
    final_balance: Decimal = Field(default=Decimal("0"), alias="saldoFinal")
    transactions: list[dict[str, Any]] = Field(default_factory=list, alias="transacoes")

    @field_validator("final_balance", mode="before")
    @classmethod
    def _balance_from_float(cls, v: Any) -> Any:
        if v is None:
            return Decimal("0")
        return _coerce_decimal(v)

    @field_validator("bank_name")
    @classmethod
    def _blank_bank_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()


@dataclass(frozen=True, slots=True)
class ExportArtifact:
    filename: str
    content: bytes
    content_type: str

    def text(self) -> str:
        return self.content.decode("utf-8-sig")


__all__ = [
    "CENT",
    "AuditFinding",
    "CompanyContext",
    "ExportArtifact",
    "FindingType",
    "ProposedChange",
    "StatementDocument",
    "StatementExtraction",
    "Transaction",
    "TransactionPatch",
    "money",
    "to_decimal",
]
