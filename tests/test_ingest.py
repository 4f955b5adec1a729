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

from ledger_workbench.errors import EmptyResultError, OracleResponseError
from ledger_workbench.ingest import (
    closing_balance_adjustment,
    ingest_statements,
    load_document,
)
from ledger_workbench.models import CompanyContext, StatementDocument, Transaction
from ledger_workbench.taxonomy import BANK_MOVEMENT_ACCOUNT
from tests.helpers.oracle_stub import ScriptedOracle

TODAY = dt.date(2024, 8, 15)
CONTEXT = CompanyContext(cnpj="12.345.678/0001-90")


def _row(date: str, value: float, classification: str = "Vendas de Produtos") -> dict:
    return {
        "date": date,
        "description": f"linha {date}",
        "value": value,
        "classification": classification,
        "confidenceScore": 0.9,
        "needsReview": False,
    }


def _doc(name: str) -> StatementDocument:
    return StatementDocument(name=name, content=f"conteúdo de {name}")


@pytest.mark.parametrize(
    ("balance", "expected"),
    [(Decimal("1500"), Decimal("-1500")), (Decimal("-200"), Decimal("200"))],
)
def test_closing_adjustment_offsets_the_bank_balance(balance, expected):
    txs = [
        Transaction(
            id=f"x{d}",
            date=dt.date(2024, 8, d),
            description="x",
            value=Decimal("1"),
            classification="Outras Receitas",
        )
        for d in (3, 10, 7)
    ]
    adj = closing_balance_adjustment(balance, bank_name="Itaú", transactions=txs, today=TODAY)
    assert adj is not None
    assert adj.value == expected
    assert adj.date == dt.date(2024, 8, 10)
    assert adj.classification == BANK_MOVEMENT_ACCOUNT
    assert adj.description == "Ajuste de Saldo Final - Itaú"
    assert adj.id.startswith("balance-")
    assert adj.needs_review is False


def test_zero_balance_has_no_adjustment():
    assert (
        closing_balance_adjustment(Decimal("0"), bank_name=None, transactions=[], today=TODAY)
        is None
    )


def test_single_statement_ingestion():
    oracle = ScriptedOracle(
        statements={
            "itau.txt": {
                "banco": "Itaú",
                "saldoFinal": 1500,
                "transacoes": [_row("2024-08-05", -300, "Aluguel"), _row("2024-08-02", 1800)],
            }
        }
    )
    result = ingest_statements([_doc("itau.txt")], oracle, CONTEXT, today=TODAY)

    assert [t.date.day for t in result.transactions] == [2, 5, 5]
    assert len(result.adjustments) == 1
    adj = result.adjustments[0]
    assert adj.value == Decimal("-1500")
    assert adj.date == dt.date(2024, 8, 5)
    assert result.bank_label == "Itaú"
    assert result.failures == []
    assert sum(t.value for t in result.transactions) == 0
    ids = [t.id for t in result.transactions]
    assert len(set(ids)) == len(ids)
    assert all(i.startswith(("itau.txt-", "balance-")) for i in ids)


def test_partial_failure_keeps_other_documents():
    oracle = ScriptedOracle(
        statements={
            "ok.txt": {"banco": "Nubank", "saldoFinal": 0, "transacoes": [_row("2024-08-01", 10)]},
            "broken.pdf": OracleResponseError("unreadable"),
        }
    )
    result = ingest_statements([_doc("broken.pdf"), _doc("ok.txt")], oracle, CONTEXT, today=TODAY)

    assert len(result.transactions) == 1
    assert result.adjustments == []
    assert [f.document for f in result.failures] == ["broken.pdf"]
    assert "unreadable" in result.failures[0].error
    assert result.bank_label == "Nubank"


def test_multiple_statements_get_one_adjustment_each():
    oracle = ScriptedOracle(
        statements={
            "a.txt": {"banco": "Itaú", "saldoFinal": 100, "transacoes": [_row("2024-08-01", 100)]},
            "b.txt": {"banco": "Inter", "saldoFinal": -50, "transacoes": [_row("2024-08-03", -50)]},
        }
    )
    result = ingest_statements([_doc("a.txt"), _doc("b.txt")], oracle, CONTEXT, today=TODAY)

    assert sorted(a.value for a in result.adjustments) == [Decimal("-100"), Decimal("50")]
    assert result.bank_label == "Múltiplos Bancos"
    assert {call for call, _ in oracle.calls} == {"classify_statement"}


def test_invalid_rows_are_skipped():
    oracle = ScriptedOracle(
        statements={
            "x.txt": {
                "banco": None,
                "saldoFinal": 0,
                "transacoes": [
                    _row("2024-08-01", 10),
                    _row("not-a-date", 10),
                    _row("2024-08-02", 0),
                ],
            }
        }
    )
    result = ingest_statements([_doc("x.txt")], oracle, CONTEXT, today=TODAY)

    assert len(result.transactions) == 1
    assert result.skipped_rows == 2
    assert result.bank_label == "Banco não identificado"


def test_nothing_extracted_raises_with_failure_detail():
    oracle = ScriptedOracle(
        statements={
            "empty.txt": {"banco": "Itaú", "saldoFinal": 999, "transacoes": []},
            "bad.txt": OracleResponseError("garbled"),
        }
    )
    with pytest.raises(EmptyResultError, match="garbled"):
        ingest_statements([_doc("empty.txt"), _doc("bad.txt")], oracle, CONTEXT, today=TODAY)

    with pytest.raises(EmptyResultError):
        ingest_statements([], oracle, CONTEXT, today=TODAY)


def test_adjustments_can_be_disabled():
    oracle = ScriptedOracle(
        statements={
            "a.txt": {"banco": "Itaú", "saldoFinal": 100, "transacoes": [_row("2024-08-01", 100)]}
        }
    )
    result = ingest_statements(
        [_doc("a.txt")], oracle, CONTEXT, today=TODAY, closing_adjustments=False
    )
    assert result.adjustments == []
    assert len(result.transactions) == 1


def test_load_document_keeps_binaries_as_bytes(tmp_path: Path):
    text = tmp_path / "extrato.csv"
    text.write_text("data;valor\n01/08;10,00\n", encoding="utf-8")
    pdf = tmp_path / "extrato.pdf"
    pdf.write_bytes(b"%PDF-1.7")

    text_doc = load_document(text)
    pdf_doc = load_document(pdf)

    assert text_doc.is_text and text_doc.mime_type == "text/plain"
    assert text_doc.name == "extrato.csv"
    assert not pdf_doc.is_text
    assert pdf_doc.mime_type == "application/pdf"
    assert pdf_doc.content == b"%PDF-1.7"
