# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from pathlib import Path

# Make sure the workspace `packages/` dir is on sys.path so `ledger_workbench` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

import csv
import datetime as dt
import io
from decimal import Decimal

import pytest

from ledger_workbench.exports import (
    CSV_CONTENT_TYPE,
    csv_artifact,
    format_currency,
    header_label,
    sped_artifact,
    to_csv,
    to_html,
    to_sped,
)
from ledger_workbench.models import Transaction
from ledger_workbench.statements import compute_balance_sheet, compute_income_statement

TODAY = dt.date(2024, 6, 30)


def _tx(tx_id: str, description: str, value: str = "-10") -> Transaction:
    return Transaction(
        id=tx_id,
        date=dt.date(2024, 6, 1),
        description=description,
        value=Decimal(value),
        classification="Aluguel",
    )


def test_csv_quotes_only_when_needed_and_has_no_trailing_newline():
    text = to_csv([{"a": 'a,b"c', "b": "plain"}, {"a": "line\nbreak", "b": None}])
    assert text == 'a,b\r\n"a,b""c",plain\r\n"line\nbreak",'

    rows = list(csv.reader(io.StringIO(text, newline="")))
    assert rows == [["a", "b"], ['a,b"c', "plain"], ["line\nbreak", ""]]


def test_csv_single_column_empty_cell_is_an_empty_line():
    assert to_csv([{"a": ""}, {"a": "x"}]) == "a\r\n\r\nx"
    assert to_csv([{"a": None}, {"a": "x"}]) == "a\r\n\r\nx"


def test_csv_of_empty_records_is_empty():
    assert to_csv([]) == ""
    assert csv_artifact("vazio", []) is None


def test_csv_artifact_prefixes_bom():
    art = csv_artifact("dre_2024-06-30", compute_income_statement([_tx("a", "x", "100")]))
    assert art is not None
    assert art.filename == "dre_2024-06-30.csv"
    assert art.content_type == CSV_CONTENT_TYPE
    assert art.content.startswith("\ufeff".encode("utf-8"))
    assert art.text().splitlines()[0] == "item,valor"


def test_sped_ecd_has_one_record_pair_per_transaction():
    txs = [_tx("a", "Pagamento|aluguel"), _tx("b", "Tarifa\nbancária")]
    text = to_sped("ECD", txs, today=TODAY)
    lines = text.splitlines()
    assert text.endswith("\n")
    assert lines[0] == "|0000|LEECD|30/06/2024|...|1|"
    assert lines[-1] == "|9999|Encerramento do Arquivo Digital|"
    assert sum(1 for line in lines if line.startswith("|I200|")) == 2
    assert "|I250|Partida do Lançamento: Pagamento aluguel|" in lines
    assert "|I250|Partida do Lançamento: Tarifa bancária|" in lines
    assert len(lines) == 4 + 1 + 2 * len(txs) + 1 + 2


@pytest.mark.parametrize("kind", ["EFD", "ECF"])
def test_sped_without_bookkeeping_block(kind):
    lines = to_sped(kind, [_tx("a", "x")], today=TODAY).splitlines()
    assert lines[0] == f"|0000|LE{kind}|30/06/2024|...|1|"
    assert not any(line.startswith("|I") for line in lines)
    assert len(lines) == 6


def test_sped_rejects_unknown_kind():
    with pytest.raises(ValueError):
        to_sped("XYZ", [], today=TODAY)  # type: ignore[arg-type]


def test_sped_artifact_name():
    art = sped_artifact("ECF", [], today=TODAY)
    assert art.filename == "SPED_ECF_2024-06-30.txt"


def test_format_currency_uses_brazilian_separators():
    assert format_currency(Decimal("1234.5")) == "R$ 1.234,50"
    assert format_currency(Decimal("-10")) == "-R$ 10,00"
    assert format_currency(Decimal("0.005")) == "R$ 0,01"


def test_header_label():
    assert header_label("saldo_final") == "Saldo Final"
    assert header_label("conta") == "Conta"


def test_html_escapes_cells_and_titles():
    page = to_html(
        "Relatório <teste>",
        [{"descricao": "<script>alert(1)</script>", "valor": 1}],
        generated_on=TODAY,
        description="A & B",
    )
    assert "&lt;script&gt;" in page
    assert "<script>" not in page
    assert "Relatório &lt;teste&gt;" in page
    assert "A &amp; B" in page
    assert "<th>Descricao</th>" in page
    assert "Data de Geração: 30/06/2024" in page


def test_html_for_empty_report():
    assert to_html("Vazio", [], generated_on=TODAY) == (
        "<h1>Relatório Vazio</h1><p>Não há dados para exibir.</p>"
    )


def test_html_balance_sheet_shows_verification_line():
    page = to_html("Balanço", compute_balance_sheet([]), generated_on=TODAY)
    assert "TOTAL DO ATIVO" in page
    assert "TOTAL PASSIVO + PL" in page
    assert "Verificação: Ativo (R$ 50.000,00) = Passivo + PL (R$ 50.000,00)" in page
