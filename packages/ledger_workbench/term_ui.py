"""Terminal selector for correction proposals (prompt_toolkit-based).

Kept apart from the workflow so it can be driven headlessly in tests with a
pipe input and ``DummyOutput``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from prompt_toolkit import PromptSession, print_formatted_text
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.validation import ValidationError, Validator

from .models import ProposedChange, Transaction

ACCEPT_WORDS = frozenset({"ok", "y", "s", "sim"})
CANCEL_WORDS = frozenset({"q", "quit", "sair"})
TOGGLE_ALL_WORDS = frozenset({"a", "all", "todos"})

_HELP = "Número alterna, 'a' alterna todos, Enter ou 'ok' aplica, 'q' cancela: "


def _parse_commands(text: str, n: int) -> list[str | int]:
    """Tokens of one input line: 1-based proposal numbers or command words.

    Raises ``ValueError`` naming the first invalid token.
    """

    out: list[str | int] = []
    for raw in text.replace(",", " ").split():
        token = raw.strip().lower()
        if token.isdigit():
            k = int(token)
            if not 1 <= k <= n:
                raise ValueError(f"número fora do intervalo: {k}")
            out.append(k)
        elif token in ACCEPT_WORDS or token in CANCEL_WORDS or token in TOGGLE_ALL_WORDS:
            out.append(token)
        else:
            raise ValueError(f"comando desconhecido: {raw}")
    return out


def format_proposal_lines(
    proposals: Sequence[ProposedChange],
    transactions: Mapping[str, Transaction],
    selected: set[str],
) -> list[str]:
    lines: list[str] = []
    for k, p in enumerate(proposals, start=1):
        mark = "x" if p.transaction_id in selected else " "
        tx = transactions.get(p.transaction_id)
        changes = p.updates.model_dump(exclude_unset=True)
        parts: list[str] = []
        for field_name, new in changes.items():
            old = getattr(tx, field_name, None) if tx is not None else None
            parts.append(f"{field_name}: {old} -> {new}")
        head = tx.description if tx is not None else p.transaction_id
        lines.append(f"[{mark}] {k}. {head} | {'; '.join(parts) or '(sem alterações)'}")
        lines.append(f"      {p.reason}")
    return lines


def select_corrections(
    proposals: Sequence[ProposedChange],
    transactions: Mapping[str, Transaction],
    *,
    selected: set[str] | None = None,
    session: PromptSession | None = None,
) -> set[str] | None:
    """Let the user toggle proposals; returns the chosen ids or ``None`` on cancel.

    Starts from ``selected`` (default: everything selected). Each input line
    may hold several commands, e.g. ``"2 3 ok"``. An empty line accepts.
    """

    current = set(selected) if selected is not None else {p.transaction_id for p in proposals}
    if not proposals:
        return current
    n = len(proposals)
    all_ids = {p.transaction_id for p in proposals}

    class _CommandValidator(Validator):
        def validate(self, document) -> None:
            try:
                _parse_commands(document.text, n)
            except ValueError as e:
                raise ValidationError(message=str(e), cursor_position=len(document.text)) from e

    sess = session or PromptSession()
    completer = WordCompleter(
        sorted(ACCEPT_WORDS | CANCEL_WORDS | TOGGLE_ALL_WORDS), ignore_case=True
    )

    while True:
        lines = format_proposal_lines(proposals, transactions, current)
        print_formatted_text(
            FormattedText([("", line + "\n") for line in lines]), output=sess.output
        )
        text = sess.prompt(_HELP, validator=_CommandValidator(), completer=completer)
        commands = _parse_commands(text, n)
        if not commands:
            return current
        for cmd in commands:
            if isinstance(cmd, int):
                tid = proposals[cmd - 1].transaction_id
                if tid in current:
                    current.discard(tid)
                else:
                    current.add(tid)
            elif cmd in TOGGLE_ALL_WORDS:
                current = set() if all_ids <= current else set(all_ids)
            elif cmd in CANCEL_WORDS:
                return None
            elif cmd in ACCEPT_WORDS:
                return current


__all__ = ["format_proposal_lines", "select_corrections"]
