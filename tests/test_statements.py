# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from pathlib import Path

# Make sure the workspace `packages/` dir is on sys.path so `ledger_workbench` is importable
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

import datetime as dt
import random
from decimal import Decimal

import pytest

from ledger_workbench.config import EngineSettings
from ledger_workbench.general_ledger import (
    build_general_ledger,
    general_ledger_rows,
    transaction_rows,
)
from ledger_workbench.ledger import LedgerStore
from ledger_workbench.models import Transaction
from ledger_workbench.statements import (
    StatementService,
    compute_balance_sheet,
    compute_income_statement,
    format_brl,
)
from ledger_workbench.taxonomy import Taxonomy
from ledger_workbench.trial_balance import compute_trial_balance


def _tx(tx_id: str, value: str, classification: str, day: int = 1) -> Transaction:
    return Transaction(
        id=tx_id,
        date=dt.date(2024, 5, day),
        description=f"mov {tx_id}",
        value=Decimal(value),
        classification=classification,
    )


def _scenario() -> list[Transaction]:
    return [
        _tx("s1", "5000", "Vendas de Mercadorias"),
        _tx("s2", "-1200", "Aluguel"),
        _tx("s3", "-800", "Ajustes e Estornos"),
    ]


def test_income_statement_ignores_transit_accounts():
    dre = compute_income_statement(_scenario())
    assert dre.total_revenue == Decimal("5000")
    assert dre.total_expenses == Decimal("1200")
    assert dre.net_income == Decimal("3800")
    assert [line["valor"] for line in dre.data] == [
        "R$ 5000.00",
        "R$ (1200.00)",
        "R$ 3800.00",
    ]


def test_income_statement_skips_wrong_signed_and_unknown_entries():
    dre = compute_income_statement(
        [
            _tx("r", "-50", "Vendas de Produtos"),
            _tx("e", "30", "Aluguel"),
            _tx("u", "999", "Conta Desconhecida"),
        ]
    )
    assert dre.total_revenue == 0
    assert dre.total_expenses == 0


def test_income_statement_uses_injected_taxonomy():
    tax = Taxonomy.from_names(revenue=["Sales"], expense=["Rent"], equity_transit=[])
    dre = compute_income_statement(
        [_tx("a", "10", "Sales"), _tx("b", "-4", "Rent"), _tx("c", "7", "Vendas de Produtos")],
        taxonomy=tax,
    )
    assert dre.net_income == Decimal("6")


def test_trial_balance_reports_imbalance():
    tb = compute_trial_balance(_scenario())
    assert [r.account for r in tb.rows] == [
        "Ajustes e Estornos",
        "Aluguel",
        "Vendas de Mercadorias",
    ]
    assert tb.total_debit == Decimal("2000")
    assert tb.total_credit == Decimal("5000")
    assert tb.difference == Decimal("-3000")
    assert tb.imbalance == Decimal("3000")
    assert tb.is_balanced is False
    assert tb.data[1] == {"conta": "Aluguel", "debito": Decimal("1200"), "credito": Decimal("0")}


def test_trial_balance_difference_matches_negated_sum():
    txs = _scenario() + [_tx("x", "-3000", "Transferência Interna")]
    tb = compute_trial_balance(txs)
    assert tb.difference == -sum(t.value for t in txs)
    assert tb.is_balanced is True


_SWEEP_ACCOUNTS = (
    "Vendas de Mercadorias",
    "Prestação de Serviços",
    "Aluguel",
    "Salários e Ordenados",
    "Transferência Interna",
    "Ajustes e Estornos",
    "Conta Desconhecida",
)


def _random_ledger(seed: int) -> list[Transaction]:
    rng = random.Random(seed)
    # Every third seed is all outflows, which drives cash into overdraft.
    outflows_only = seed % 3 == 0
    txs = []
    for n in range(rng.randint(1, 25)):
        cents = rng.randint(1, 2_000_000)
        sign = -1 if outflows_only or rng.random() < 0.5 else 1
        value = Decimal(sign * cents) / 100
        txs.append(_tx(f"r{n}", str(value), rng.choice(_SWEEP_ACCOUNTS), day=rng.randint(1, 28)))
    return txs


@pytest.mark.parametrize("seed", range(12))
def test_statement_identities_hold_for_mixed_ledgers(seed):
    txs = _random_ledger(seed)

    tb = compute_trial_balance(txs)
    assert tb.difference == -sum(t.value for t in txs)
    assert tb.total_debit - tb.total_credit == tb.difference

    sheet = compute_balance_sheet(txs)
    assert sheet.identity_holds is True
    assert sheet.total_assets == sheet.total_liabilities_and_equity
    if seed % 3 == 0:
        assert sheet.item("Caixa e Equivalentes") == 0
        assert sheet.item("Saldo Bancário Devedor") == -sum(t.value for t in txs)


def test_empty_trial_balance_is_balanced():
    tb = compute_trial_balance([])
    assert tb.rows == ()
    assert tb.is_balanced is True


def test_balance_sheet_capital_closes_the_identity():
    sheet = compute_balance_sheet(_scenario())
    assert sheet.item("Caixa e Equivalentes") == Decimal("3000")
    assert sheet.total_assets == Decimal("53000")
    assert sheet.total_liabilities == Decimal("35000")
    assert sheet.item("Resultado do Período") == Decimal("3800")
    assert sheet.item("Capital Social") == Decimal("14200")
    assert sheet.identity_holds is True


def test_balance_sheet_for_empty_ledger():
    sheet = compute_balance_sheet([])
    assert sheet.total_assets == Decimal("50000")
    assert sheet.item("Capital Social") == Decimal("15000")
    assert sheet.identity_holds is True


def test_negative_cash_becomes_overdraft_liability():
    sheet = compute_balance_sheet([_tx("a", "-4000", "Aluguel")])
    assert sheet.item("Caixa e Equivalentes") == 0
    assert sheet.item("Saldo Bancário Devedor") == Decimal("4000")
    assert sheet.total_liabilities == Decimal("39000")
    assert sheet.item("Capital Social") == Decimal("15000")
    assert sheet.identity_holds is True


def test_balance_sheet_placeholders_come_from_settings():
    settings = EngineSettings(
        fixed_assets=Decimal("100"),
        supplier_payables=Decimal("10"),
        long_term_financing=Decimal("0"),
    )
    sheet = compute_balance_sheet([], settings=settings)
    assert sheet.item("Imobilizado") == Decimal("100")
    assert sheet.item("Capital Social") == Decimal("90")


def test_statement_service_recomputes_after_mutation():
    store = LedgerStore(_scenario())
    service = StatementService(store)
    first = service.income_statement()
    assert service.income_statement() is first

    store.add(_tx("s4", "1000", "Prestação de Serviços", day=2))
    assert service.income_statement().total_revenue == Decimal("6000")
    assert service.trial_balance().total_credit == Decimal("6000")
    assert service.balance_sheet().identity_holds is True

    service.close()
    cached = service.trial_balance()
    store.remove("s4")
    assert service.trial_balance() is cached


def test_format_brl_rounds_half_up():
    assert format_brl(Decimal("2.345")) == "R$ 2.35"
    assert format_brl(Decimal("-7"), parenthesize=True) == "R$ (7.00)"


def test_general_ledger_groups_by_account():
    txs = [
        _tx("b", "-10", "Aluguel", day=3),
        _tx("a", "50", "Vendas de Produtos", day=1),
        _tx("c", "-5", "Aluguel", day=2),
        _tx("d", "20", "Aluguel", day=2),
    ]
    accounts = build_general_ledger(txs)
    assert [a.account for a in accounts] == ["Aluguel", "Vendas de Produtos"]
    rent = accounts[0]
    assert [t.id for t in rent.entries] == ["c", "d", "b"]
    assert rent.total_debit == Decimal("15")
    assert rent.total_credit == Decimal("20")
    assert rent.balance == Decimal("5")

    rows = general_ledger_rows(accounts)
    assert rows[0] == {
        "conta": "Aluguel",
        "data": "2024-05-02",
        "descricao": "mov c",
        "debito": Decimal("5.00"),
        "credito": "",
    }

    listing = transaction_rows(txs)
    assert [r["description"] for r in listing] == ["mov a", "mov c", "mov d", "mov b"]
    assert set(listing[0]) == {"date", "description", "value", "classification"}
