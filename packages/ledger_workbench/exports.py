"""Export encoders: CSV, SPED-style fixed-record text and HTML tables.

Encoders are pure: they take records or statements and return text. The
``*_artifact`` helpers wrap the text into :class:`ExportArtifact` triples
(file name, bytes, content type) ready to be written or downloaded.
"""

from __future__ import annotations

import csv
import datetime as dt
import html
import io
import re
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Any, Literal, TypeAlias

from .models import ExportArtifact, Transaction, money
from .statements import BalanceSheet, BalanceSheetGroup

CSV_CONTENT_TYPE = "text/csv;charset=utf-8"
HTML_CONTENT_TYPE = "text/html;charset=utf-8"
TEXT_CONTENT_TYPE = "text/plain;charset=utf-8"
UTF8_BOM = "\ufeff"

SpedKind: TypeAlias = Literal["ECD", "EFD", "ECF"]
SPED_KINDS: tuple[SpedKind, ...] = ("ECD", "EFD", "ECF")


# ---- Record helpers ------------------------------------------------------------


def report_records(data: Any) -> list[Mapping[str, Any]]:
    """Normalize report input into a list of records.

    Accepts a sequence of mappings, a mapping with a ``"data"`` list, or any
    object exposing a ``data`` attribute (e.g. ``IncomeStatement``).
    """

    if data is None:
        return []
    if isinstance(data, Mapping):
        data = data.get("data") or []
    elif not isinstance(data, Sequence) and hasattr(data, "data"):
        data = data.data
    if isinstance(data, (str, bytes)) or not isinstance(data, Iterable):
        raise TypeError(f"unsupported report data: {type(data).__name__}")
    records = list(data)
    for rec in records:
        if not isinstance(rec, Mapping):
            raise TypeError("report records must be mappings")
    return records


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    return str(value)


# ---- CSV -----------------------------------------------------------------------


def to_csv(data: Any) -> str:
    """Encode records as CSV.

    The header comes from the first record's keys. Fields containing a comma,
    quote or line break are quoted with inner quotes doubled. Rows are joined
    with CRLF and there is no trailing line break. Empty input gives ``""``.
    """

    records = report_records(data)
    if not records:
        return ""
    headers = list(records[0].keys())
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    writer.writerow(headers)
    for rec in records:
        row = [_cell(rec.get(h)) for h in headers]
        if row == [""]:
            # csv.writer emits '""' for a lone empty field; an empty cell stays empty.
            buf.write("\r\n")
            continue
        writer.writerow(row)
    out = buf.getvalue()
    return out[:-2] if out.endswith("\r\n") else out


def csv_artifact(basename: str, data: Any) -> ExportArtifact | None:
    """CSV artifact with a UTF-8 BOM; ``None`` when there are no rows."""

    text = to_csv(data)
    if not text:
        return None
    return ExportArtifact(
        filename=f"{basename}.csv",
        content=(UTF8_BOM + text).encode("utf-8"),
        content_type=CSV_CONTENT_TYPE,
    )


# ---- SPED-style fixed records ----------------------------------------------------


_FIELD_UNSAFE = re.compile(r"[|\r\n]+")


def _sped_field(text: str) -> str:
    # A pipe or line break inside a field would split the record.
    return _FIELD_UNSAFE.sub(" ", text).strip()


def to_sped(kind: SpedKind, transactions: Sequence[Transaction], *, today: dt.date) -> str:
    """Render an illustrative SPED file (``ECD``, ``EFD`` or ``ECF``).

    Block 0 (opening) and block 9 (closing) are always present. Only ECD
    carries the bookkeeping block I, with one ``I200``/``I250`` pair per
    transaction in the given order.
    """

    if kind not in SPED_KINDS:
        raise ValueError(f"unknown SPED kind: {kind!r}")
    lines = [
        f"|0000|LE{kind}|{today.strftime('%d/%m/%Y')}|...|1|",
        "|0001|0|",
        "|0005|Dados Complementares do Estabelecimento|",
        "|0990|Encerramento do Bloco 0|",
    ]
    if kind == "ECD":
        lines.append("|I001|0|")
        for n, tx in enumerate(transactions, start=1):
            lines.append(f"|I200|Lançamento Contábil {n}|")
            lines.append(f"|I250|Partida do Lançamento: {_sped_field(tx.description)}|")
        lines.append("|I990|Encerramento do Bloco I|")
    lines.append("|9001|0|")
    lines.append("|9999|Encerramento do Arquivo Digital|")
    return "\n".join(lines) + "\n"


def sped_artifact(
    kind: SpedKind, transactions: Sequence[Transaction], *, today: dt.date
) -> ExportArtifact:
    return ExportArtifact(
        filename=f"SPED_{kind}_{today.isoformat()}.txt",
        content=to_sped(kind, transactions, today=today).encode("utf-8"),
        content_type=TEXT_CONTENT_TYPE,
    )


# ---- HTML tables -----------------------------------------------------------------


def format_currency(value: Decimal) -> str:
    """pt-BR currency: ``R$ 1.234,56`` / ``-R$ 10,00``."""

    q = money(value)
    body = f"{abs(q):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"-R$ {body}" if q < 0 else f"R$ {body}"


def header_label(key: str) -> str:
    """``saldo_final`` -> ``Saldo Final``."""

    return re.sub(r"\b\w", lambda m: m.group(0).upper(), key.replace("_", " "))


def _esc(value: Any) -> str:
    return html.escape(_cell(value))


def _group_rows(groups: Iterable[BalanceSheetGroup], *, spaced: bool = False) -> list[str]:
    rows: list[str] = []
    for g in groups:
        style = ' style="padding-top: 1.5em;"' if spaced else ""
        rows.append(f'<tr><th colspan="2"{style}>{_esc(g.title)}</th></tr>')
        for it in g.items:
            rows.append(
                f'<tr><td>{_esc(it.label)}</td>'
                f'<td class="currency">{format_currency(it.amount)}</td></tr>'
            )
    return rows


def _total_row(label: str, amount: Decimal, css: str = "total-row") -> str:
    return (
        f'<tr class="{css}"><td>{label}</td>'
        f'<td class="currency">{format_currency(amount)}</td></tr>'
    )


def balance_sheet_table(sheet: BalanceSheet) -> str:
    """Two-column layout: assets on the left, liabilities plus equity on the right."""

    left = [
        '<table class="balance-sheet">',
        *_group_rows(sheet.assets),
        _total_row("TOTAL DO ATIVO", sheet.total_assets),
        "</table>",
    ]
    right = [
        '<table class="balance-sheet">',
        *_group_rows(sheet.liabilities),
        _total_row("TOTAL DO PASSIVO", sheet.total_liabilities),
        *_group_rows([sheet.equity], spaced=True),
        _total_row("TOTAL DO PATRIMÔNIO LÍQUIDO", sheet.total_equity),
        _total_row("TOTAL PASSIVO + PL", sheet.total_liabilities_and_equity, "grand-total-row"),
        "</table>",
    ]
    ok = sheet.identity_holds
    total_right = format_currency(sheet.total_liabilities_and_equity)
    check = (
        f'<p class="verification {"ok" if ok else "fail"}">'
        f"Verificação: Ativo ({format_currency(sheet.total_assets)}) "
        f"{'=' if ok else '≠'} Passivo + PL ({total_right})"
        "</p>"
    )
    return (
        '<div class="two-columns">'
        f'<div class="column">{"".join(left)}</div>'
        f'<div class="column">{"".join(right)}</div>'
        "</div>"
        f"{check}"
    )


def records_table(data: Any) -> str | None:
    """Single table with headers derived from the record keys; ``None`` when empty."""

    records = report_records(data)
    if not records:
        return None
    headers = list(records[0].keys())
    head = "".join(f"<th>{html.escape(header_label(h))}</th>" for h in headers)
    body = "".join(
        "<tr>" + "".join(f"<td>{_esc(rec.get(h))}</td>" for h in headers) + "</tr>"
        for rec in records
    )
    return f"<table><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>"


_STYLE = (
    "body{font-family:Arial,sans-serif;margin:0;padding:2.5em;color:#333}"
    "table{width:100%;border-collapse:collapse;font-size:.9em}"
    "th,td{border:1px solid #e2e8f0;padding:.75em;text-align:left}"
    "th{background-color:#f7fafc}"
    ".currency{text-align:right}"
    ".two-columns{display:flex;justify-content:space-between;gap:2em}"
    ".column{width:48%}"
    ".total-row td{font-weight:bold;border-top:2px solid #cbd5e0}"
    ".grand-total-row td{font-weight:bold;font-size:1.1em;border-top:2px solid #a0aec0}"
    ".verification{text-align:center;font-weight:bold}"
    ".verification.ok{color:green}.verification.fail{color:red}"
)


def to_html(title: str, data: Any, *, generated_on: dt.date, description: str = "") -> str:
    """Render a printable HTML document for a report.

    A :class:`BalanceSheet` gets the two-column layout; anything else is
    rendered as a generic records table. Empty reports render a short
    "empty report" page.
    """

    if isinstance(data, BalanceSheet):
        table: str | None = balance_sheet_table(data)
    else:
        table = records_table(data)
    if table is None:
        return "<h1>Relatório Vazio</h1><p>Não há dados para exibir.</p>"
    subtitle = f"<p>{html.escape(description)}</p>" if description else ""
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{html.escape(title)}</title><style>{_STYLE}</style></head><body>"
        f'<div class="report-title"><h2>{html.escape(title)}</h2>{subtitle}'
        f"<p>Data de Geração: {generated_on.strftime('%d/%m/%Y')}</p></div>"
        f"{table}"
        "</body></html>"
    )


def html_artifact(
    basename: str, title: str, data: Any, *, generated_on: dt.date, description: str = ""
) -> ExportArtifact:
    return ExportArtifact(
        filename=f"{basename}.html",
        content=to_html(title, data, generated_on=generated_on, description=description).encode(
            "utf-8"
        ),
        content_type=HTML_CONTENT_TYPE,
    )


__all__ = [
    "CSV_CONTENT_TYPE",
    "HTML_CONTENT_TYPE",
    "SPED_KINDS",
    "TEXT_CONTENT_TYPE",
    "SpedKind",
    "balance_sheet_table",
    "csv_artifact",
    "format_currency",
    "header_label",
    "html_artifact",
    "records_table",
    "report_records",
    "sped_artifact",
    "to_csv",
    "to_html",
    "to_sped",
]
