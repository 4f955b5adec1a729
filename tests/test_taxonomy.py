# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from pathlib import Path

# Make sure the workspace `packages/` dir is on sys.path so `ledger_workbench` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

import pytest

from ledger_workbench.taxonomy import (
    BANK_MOVEMENT_ACCOUNT,
    DEFAULT_TAXONOMY,
    AccountKind,
    Taxonomy,
    load_taxonomy,
)


def test_default_chart_partitions_known_names():
    assert DEFAULT_TAXONOMY.classify("Vendas de Produtos") is AccountKind.REVENUE
    assert DEFAULT_TAXONOMY.classify("Aluguel") is AccountKind.EXPENSE
    assert DEFAULT_TAXONOMY.classify("Ajustes e Estornos") is AccountKind.EQUITY_TRANSIT
    assert DEFAULT_TAXONOMY.classify(BANK_MOVEMENT_ACCOUNT) is AccountKind.EQUITY_TRANSIT


def test_unknown_names_are_not_errors():
    assert DEFAULT_TAXONOMY.classify("Conta Inventada") is AccountKind.UNKNOWN
    assert DEFAULT_TAXONOMY.classify("") is AccountKind.UNKNOWN


def test_all_accounts_is_sorted_union():
    names = DEFAULT_TAXONOMY.all_accounts()
    assert names == sorted(names)
    assert len(names) == 6 + 14 + 8


def test_overlapping_sets_are_rejected():
    with pytest.raises(ValueError, match="Aluguel"):
        Taxonomy.from_names(revenue=["Aluguel"], expense=["Aluguel"], equity_transit=[])


def test_load_taxonomy_from_json_seed(tmp_path: Path):
    seed = tmp_path / "chart.json"
    seed.write_text(
        '{"revenue": ["Sales"], "expense": ["Rent", " "], "equity_transit": ["Transfer"]}',
        encoding="utf-8",
    )
    tax = load_taxonomy(seed)
    assert tax.classify("Sales") is AccountKind.REVENUE
    assert tax.classify("Rent") is AccountKind.EXPENSE
    assert tax.all_accounts() == ["Rent", "Sales", "Transfer"]


def test_load_taxonomy_rejects_bad_shapes(tmp_path: Path):
    seed = tmp_path / "chart.json"
    seed.write_text('{"revenue": "Sales"}', encoding="utf-8")
    with pytest.raises(ValueError, match="revenue"):
        load_taxonomy(seed)
