"""Chart-of-accounts partition used by every statement generator.

The taxonomy is an immutable value. Generators receive it explicitly
(``taxonomy=...``) and fall back to :data:`DEFAULT_TAXONOMY` when omitted, so
tests and alternative charts can be injected without global state.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class AccountKind(str, Enum):
    REVENUE = "revenue"
    EXPENSE = "expense"
    EQUITY_TRANSIT = "equity_transit"
    UNKNOWN = "unknown"


# ---- Default chart -----------------------------------------------------------

REVENUE_ACCOUNTS: tuple[str, ...] = (
    "Vendas de Produtos",
    "Vendas de Mercadorias",
    "Prestação de Serviços",
    "Receita de Assinaturas",
    "Juros Ativos (Rendimentos)",
    "Outras Receitas",
)

EXPENSE_ACCOUNTS: tuple[str, ...] = (
    "Custo das Mercadorias Vendidas (CMV)",
    "Salários e Ordenados",
    "Encargos Sociais",
    "Aluguel",
    "Energia Elétrica / Água",
    "Telefonia / Internet",
    "Propaganda e Marketing",
    "Material de Escritório",
    "Honorários Contábeis",
    "Impostos e Tributos",
    "Despesas Bancárias / IOF",
    "Juros Passivos (Empréstimos)",
    "Frete sobre Vendas",
    "Outras Despesas Operacionais",
)

EQUITY_TRANSIT_ACCOUNTS: tuple[str, ...] = (
    "Bancos Conta Movimento",
    "Transferência Interna",
    "Compra de Ativo Imobilizado",
    "Pagamento de Fornecedores",
    "Pagamento de Empréstimos",
    "Aporte de Capital / Adiantamento",
    "Distribuição de Lucros / Retirada",
    "Ajustes e Estornos",
)

# Account used for the synthetic closing-balance adjustment.
BANK_MOVEMENT_ACCOUNT = "Bancos Conta Movimento"


@dataclass(frozen=True, slots=True)
class Taxonomy:
    """Three disjoint sets of classification names.

    Names outside all three sets are :attr:`AccountKind.UNKNOWN`; they are
    valid classifications that simply never feed the income statement.
    """

    revenue: frozenset[str]
    expense: frozenset[str]
    equity_transit: frozenset[str]

    def __post_init__(self) -> None:
        overlaps = (
            (self.revenue & self.expense)
            | (self.revenue & self.equity_transit)
            | (self.expense & self.equity_transit)
        )
        if overlaps:
            raise ValueError(
                "taxonomy sets must be disjoint; shared names: " + ", ".join(sorted(overlaps))
            )

    @classmethod
    def from_names(
        cls,
        *,
        revenue: Iterable[str],
        expense: Iterable[str],
        equity_transit: Iterable[str],
    ) -> Taxonomy:
        def _clean(names: Iterable[str]) -> frozenset[str]:
            return frozenset(n.strip() for n in names if isinstance(n, str) and n.strip())

        return cls(
            revenue=_clean(revenue),
            expense=_clean(expense),
            equity_transit=_clean(equity_transit),
        )

    def classify(self, name: str) -> AccountKind:
        if name in self.revenue:
            return AccountKind.REVENUE
        if name in self.expense:
            return AccountKind.EXPENSE
        if name in self.equity_transit:
            return AccountKind.EQUITY_TRANSIT
        return AccountKind.UNKNOWN

    def all_accounts(self) -> list[str]:
        return sorted(self.revenue | self.expense | self.equity_transit)


DEFAULT_TAXONOMY = Taxonomy.from_names(
    revenue=REVENUE_ACCOUNTS,
    expense=EXPENSE_ACCOUNTS,
    equity_transit=EQUITY_TRANSIT_ACCOUNTS,
)


def load_taxonomy(path: str | Path) -> Taxonomy:
    """Load a taxonomy from a JSON seed file.

    Expected shape::

        {"revenue": [...], "expense": [...], "equity_transit": [...]}

    Missing keys are treated as empty lists. Raises ``ValueError`` when the
    document is not an object, a key is not a list of strings, or the sets
    overlap.
    """

    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"taxonomy seed must be a JSON object: {path}")
    parts: dict[str, list[str]] = {}
    for key in ("revenue", "expense", "equity_transit"):
        value = data.get(key, [])
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValueError(f"taxonomy seed key {key!r} must be a list of strings")
        parts[key] = value
    return Taxonomy.from_names(**parts)


__all__ = [
    "BANK_MOVEMENT_ACCOUNT",
    "DEFAULT_TAXONOMY",
    "AccountKind",
    "Taxonomy",
    "load_taxonomy",
]
