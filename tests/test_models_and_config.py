# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from pathlib import Path

# Make sure the workspace `packages/` dir is on sys.path so `ledger_workbench` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

import datetime as dt
from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from ledger_workbench.config import EngineSettings, load_settings
from ledger_workbench.models import AuditFinding, ProposedChange, Transaction, TransactionPatch


def _tx(**overrides) -> Transaction:
    base = {
        "id": "t1",
        "date": "2024-03-01",
        "description": "Venda",
        "value": 100,
        "classification": "Vendas de Produtos",
    }
    return Transaction.model_validate(base | overrides)


def test_float_values_become_exact_decimals():
    tx = _tx(value=0.1)
    assert tx.value == Decimal("0.1")
    assert tx.date == dt.date(2024, 3, 1)


def test_zero_value_is_rejected():
    with pytest.raises(PydanticValidationError):
        _tx(value=0)


def test_confidence_score_must_be_in_unit_interval():
    assert _tx(confidenceScore=0.9, needsReview=False).confidence_score == 0.9
    with pytest.raises(PydanticValidationError):
        _tx(confidenceScore=1.5)


def test_with_updates_merges_and_keeps_id():
    tx = _tx(confidenceScore=0.5, needsReview=True)
    updated = tx.with_updates({"classification": "Transferência Interna", "description": None})
    assert updated.id == "t1"
    assert updated.classification == "Transferência Interna"
    assert updated.description == "Venda"
    assert updated.confidence_score == 0.5


def test_patch_rejects_id_and_drops_nulls():
    with pytest.raises(PydanticValidationError):
        TransactionPatch.model_validate({"id": "other"})
    patch = TransactionPatch.model_validate({"value": None, "classification": "Aluguel"})
    assert patch.model_dump(exclude_unset=True) == {"classification": "Aluguel"}
    assert TransactionPatch.model_validate({"value": None}).is_empty()


def test_findings_and_proposals_accept_oracle_keys():
    f = AuditFinding.model_validate({"type": "warning", "message": "dup", "transactionId": " "})
    assert f.transaction_id is None
    p = ProposedChange.model_validate(
        {"transactionId": "t1", "reason": "r", "updates": {"classification": "Aluguel"}}
    )
    assert p.transaction_id == "t1"
    assert p.updates.classification == "Aluguel"
    with pytest.raises(PydanticValidationError):
        AuditFinding.model_validate({"type": "fatal", "message": "x"})


def test_to_record_uses_camel_case_keys():
    rec = _tx(confidenceScore=1.0, needsReview=False).to_record()
    assert rec == {
        "id": "t1",
        "date": "2024-03-01",
        "description": "Venda",
        "value": 100.0,
        "classification": "Vendas de Produtos",
        "confidenceScore": 1.0,
        "needsReview": False,
    }


def test_settings_defaults_and_overrides():
    defaults = load_settings({})
    assert defaults == EngineSettings()
    assert defaults.fixed_assets == Decimal("50000")
    assert defaults.review_confidence_threshold == 0.85

    custom = load_settings(
        {"LW_FIXED_ASSETS": "1000.50", "LW_ORACLE_MAX_ATTEMPTS": "5", "LW_OPENAI_MODEL": " "}
    )
    assert custom.fixed_assets == Decimal("1000.50")
    assert custom.oracle_max_attempts == 5
    assert custom.openai_model == "gpt-5"


def test_settings_report_the_offending_variable():
    with pytest.raises(ValueError, match="LW_SUPPLIER_PAYABLES"):
        load_settings({"LW_SUPPLIER_PAYABLES": "lots"})
    with pytest.raises(ValueError, match="review_confidence_threshold"):
        load_settings({"LW_REVIEW_CONFIDENCE_THRESHOLD": "2"})
