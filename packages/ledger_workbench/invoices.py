"""Invoice-to-statement reconciliation and the illustrative reform-tax estimate.

Matching is deterministic: same amount to the cent, sign implied by the
invoice direction, posted within a date window around the issue date. The
CBS/IBS figures only illustrate the reform's combined-rate mechanics and are
not a tax computation.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import EngineSettings
from .models import Transaction, money

FOUND = "Encontrado"
NOT_FOUND = "Não Encontrado"
COMPLIANT = "Regular"
NON_COMPLIANT = "Irregular com pendências"


class Invoice(BaseModel):
    """Invoice header. ``kind='saida'`` is issued by the company (money in),
    ``kind='entrada'`` is received from a supplier (money out)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    cnpj: str = Field(alias="cnpjEmitente")
    issue_date: dt.date = Field(alias="dataEmissao")
    total: Decimal = Field(alias="valorTotal")
    kind: Literal["entrada", "saida"] = Field(alias="tipo")
    description: str = Field(default="", alias="descricao")

    @field_validator("total", mode="before")
    @classmethod
    def _total_from_float(cls, v: Any) -> Any:
        return Decimal(str(v)) if isinstance(v, float) else v

    @field_validator("total")
    @classmethod
    def _total_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("valorTotal must be positive")
        return v

    @property
    def expected_value(self) -> Decimal:
        return self.total if self.kind == "saida" else -self.total


@dataclass(frozen=True, slots=True)
class ReformTaxEstimate:
    base_value: Decimal
    cbs_rate: Decimal
    ibs_rate: Decimal
    cbs_value: Decimal
    ibs_value: Decimal

    @property
    def combined_rate(self) -> Decimal:
        return self.cbs_rate + self.ibs_rate

    @property
    def total_tax(self) -> Decimal:
        return self.cbs_value + self.ibs_value


@dataclass(frozen=True, slots=True)
class InvoiceReconciliation:
    invoice: Invoice
    match: Transaction | None
    tax: ReformTaxEstimate

    @property
    def status(self) -> str:
        return FOUND if self.match is not None else NOT_FOUND

    @property
    def compliance_status(self) -> str:
        return COMPLIANT if self.match is not None else NON_COMPLIANT

    @property
    def message(self) -> str:
        if self.match is None:
            return (
                f"Nenhuma transação de {money(self.invoice.total):.2f} encontrada próxima a "
                f"{self.invoice.issue_date.isoformat()}."
            )
        return (
            f"Transação '{self.match.description}' em {self.match.date.isoformat()} "
            "corresponde à nota fiscal."
        )


def estimate_reform_tax(
    value: Decimal,
    *,
    cbs_rate: Decimal | None = None,
    ibs_rate: Decimal | None = None,
) -> ReformTaxEstimate:
    """Split ``value`` into CBS and IBS at the configured rates (26.5% combined)."""

    defaults = EngineSettings()
    cbs = defaults.cbs_rate if cbs_rate is None else cbs_rate
    ibs = defaults.ibs_rate if ibs_rate is None else ibs_rate
    base = abs(value)
    return ReformTaxEstimate(
        base_value=base,
        cbs_rate=cbs,
        ibs_rate=ibs,
        cbs_value=money(base * cbs),
        ibs_value=money(base * ibs),
    )


def find_invoice_match(
    invoice: Invoice,
    transactions: Iterable[Transaction],
    *,
    window_days: int = 3,
) -> Transaction | None:
    """Closest-dated transaction with the invoice's signed amount, or ``None``."""

    if window_days < 0:
        raise ValueError("window_days must be >= 0")
    expected = money(invoice.expected_value)
    best: Transaction | None = None
    best_gap: int | None = None
    for tx in transactions:
        if money(tx.value) != expected:
            continue
        gap = abs((tx.date - invoice.issue_date).days)
        if gap > window_days:
            continue
        if best_gap is None or gap < best_gap:
            best, best_gap = tx, gap
    return best


def reconcile_invoice(
    invoice: Invoice,
    transactions: Iterable[Transaction],
    *,
    window_days: int = 3,
    settings: EngineSettings | None = None,
) -> InvoiceReconciliation:
    cfg = settings or EngineSettings()
    return InvoiceReconciliation(
        invoice=invoice,
        match=find_invoice_match(invoice, transactions, window_days=window_days),
        tax=estimate_reform_tax(invoice.total, cbs_rate=cfg.cbs_rate, ibs_rate=cfg.ibs_rate),
    )


__all__ = [
    "Invoice",
    "InvoiceReconciliation",
    "ReformTaxEstimate",
    "estimate_reform_tax",
    "find_invoice_match",
    "reconcile_invoice",
]
