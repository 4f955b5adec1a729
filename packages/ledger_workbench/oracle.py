"""Oracle interface and the OpenAI Responses API implementation.

The engine only depends on the :class:`Oracle` protocol; tests inject fakes.
:class:`OpenAIOracle` owns prompts, strict response schemas, retries and the
mapping of SDK/parsing failures onto :mod:`ledger_workbench.errors`.

No side effects happen at import time (no client creation, no env reads).
"""

from __future__ import annotations

import base64
import json
import random
import time
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from openai import OpenAI
from openai.types.responses import ResponseTextConfigParam
from pydantic import ValidationError as PydanticValidationError

from . import prompting
from .config import EngineSettings
from .errors import OracleResponseError, OracleTransportError
from .logging_setup import get_logger
from .models import (
    AuditFinding,
    CompanyContext,
    ProposedChange,
    StatementDocument,
    StatementExtraction,
    Transaction,
)
from .taxonomy import DEFAULT_TAXONOMY, Taxonomy


class Oracle(Protocol):
    def classify_statement(
        self, document: StatementDocument, context: CompanyContext
    ) -> StatementExtraction: ...

    def audit(
        self, transactions: Sequence[Transaction], context: CompanyContext
    ) -> list[AuditFinding]: ...

    def propose_corrections(
        self,
        transactions: Sequence[Transaction],
        findings: Sequence[AuditFinding],
        context: CompanyContext,
    ) -> list[ProposedChange]: ...


# ---- Tunables (private) ------------------------------------------------------

_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20

_logger = get_logger("ledger_workbench.oracle")


# ---- Internal helpers --------------------------------------------------------


def _extract_response_json_mapping(resp: Any) -> Mapping[str, Any]:
    """Decode the JSON object from a Responses API result.

    Prefers ``resp.output_text`` and falls back to
    ``resp.output[0].content[0].text``. Raises ``ValueError`` when no text is
    found or the text is not a JSON object.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        output = getattr(resp, "output", None)
        content = getattr(output[0], "content", None) if output else None
        if content:
            txt_obj = getattr(content[0], "text", None)
            if isinstance(txt_obj, str):
                text = txt_obj
            else:
                # Some SDK versions wrap text in an object with ``value``.
                maybe_val = getattr(txt_obj, "value", None)
                if isinstance(maybe_val, str):
                    text = maybe_val
    if not text or not isinstance(text, str):
        raise ValueError("Unexpected Responses API shape; unable to locate text output")

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError("Model output was not valid JSON per the requested schema") from e
    if not isinstance(decoded, Mapping):
        raise ValueError("Model output must be a JSON object")
    return decoded


def _create_client() -> OpenAI:
    return OpenAI()


def _is_retryable(exc: BaseException) -> bool:
    """True only for HTTP 429 and 5xx."""

    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def _sleep_backoff(attempt_no: int) -> None:
    if attempt_no - 1 < len(_BACKOFF_SCHEDULE_SEC):
        base = _BACKOFF_SCHEDULE_SEC[attempt_no - 1]
    else:
        base = _BACKOFF_SCHEDULE_SEC[-1]
    jitter = base * _JITTER_PCT
    time.sleep(max(0.0, base + random.uniform(-jitter, jitter)))


def _document_input(document: StatementDocument, instructions_text: str) -> Any:
    """Responses API ``input`` for a statement: plain text or an inline file."""

    if isinstance(document.content, str):
        return prompting.build_statement_text_input(document.content)
    encoded = base64.b64encode(document.content).decode("ascii")
    data_url = f"data:{document.mime_type};base64,{encoded}"
    if document.mime_type.startswith("image/"):
        part: dict[str, Any] = {"type": "input_image", "image_url": data_url}
    else:
        part = {"type": "input_file", "filename": document.name, "file_data": data_url}
    return [
        {
            "role": "user",
            "content": [{"type": "input_text", "text": instructions_text}, part],
        }
    ]


class OpenAIOracle:
    """:class:`Oracle` backed by the OpenAI Responses API.

    ``client`` may be injected; otherwise one is created lazily on the first
    call (``OPENAI_API_KEY`` must then be set).
    """

    def __init__(
        self,
        *,
        settings: EngineSettings | None = None,
        taxonomy: Taxonomy = DEFAULT_TAXONOMY,
        client: Any | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.taxonomy = taxonomy
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = _create_client()
        return self._client

    def _call(
        self,
        op: str,
        *,
        instructions: str,
        input: Any,
        text_cfg: ResponseTextConfigParam,
    ) -> Mapping[str, Any]:
        client = self._get_client()
        max_attempts = self.settings.oracle_max_attempts
        attempt = 1
        while True:
            t0 = time.perf_counter()
            try:
                resp = client.responses.create(
                    model=self.settings.openai_model,
                    instructions=instructions,
                    input=input,
                    text=text_cfg,
                )
            except Exception as e:  # noqa: BLE001 - SDK and transport failures
                dt_ms = (time.perf_counter() - t0) * 1000.0
                if attempt >= max_attempts or not _is_retryable(e):
                    _logger.error(
                        "oracle:failed_terminal op=%s attempt=%d latency_ms=%.2f error=%s",
                        op,
                        attempt,
                        dt_ms,
                        e.__class__.__name__,
                    )
                    raise OracleTransportError(f"{op} request failed: {e}") from e
                _logger.warning(
                    "oracle:retry op=%s attempt=%d latency_ms=%.2f error=%s",
                    op,
                    attempt,
                    dt_ms,
                    e.__class__.__name__,
                )
                _sleep_backoff(attempt)
                attempt += 1
                continue

            dt_ms = (time.perf_counter() - t0) * 1000.0
            try:
                decoded = _extract_response_json_mapping(resp)
            except ValueError as e:
                _logger.error("oracle:bad_response op=%s error=%s", op, e)
                raise OracleResponseError(f"{op}: {e}") from e
            _logger.info("oracle:done op=%s attempt=%d latency_ms=%.2f", op, attempt, dt_ms)
            return decoded

    # ---- Oracle protocol -------------------------------------------------------

    def classify_statement(
        self, document: StatementDocument, context: CompanyContext
    ) -> StatementExtraction:
        instructions = prompting.build_classification_instructions(
            self.taxonomy,
            context,
            review_threshold=self.settings.review_confidence_threshold,
        )
        text_cfg: ResponseTextConfigParam = {
            "format": prompting.build_classification_format(self.taxonomy)
        }
        _logger.info(
            "oracle:classify document=%s mime=%s", document.name, document.mime_type
        )
        decoded = self._call(
            "classify_statement",
            instructions=instructions,
            input=_document_input(document, "Extrato anexo."),
            text_cfg=text_cfg,
        )
        try:
            return StatementExtraction.model_validate(decoded)
        except PydanticValidationError as e:
            raise OracleResponseError(f"classify_statement: invalid payload: {e}") from e

    def audit(
        self, transactions: Sequence[Transaction], context: CompanyContext
    ) -> list[AuditFinding]:
        text_cfg: ResponseTextConfigParam = {"format": prompting.build_audit_format()}
        decoded = self._call(
            "audit",
            instructions=prompting.build_audit_instructions(self.taxonomy, context),
            input=prompting.build_audit_input(transactions),
            text_cfg=text_cfg,
        )
        raw = decoded.get("findings")
        if not isinstance(raw, list):
            raise OracleResponseError("audit: 'findings' must be a list")
        try:
            return [AuditFinding.model_validate(item) for item in raw]
        except PydanticValidationError as e:
            raise OracleResponseError(f"audit: invalid finding: {e}") from e

    def propose_corrections(
        self,
        transactions: Sequence[Transaction],
        findings: Sequence[AuditFinding],
        context: CompanyContext,
    ) -> list[ProposedChange]:
        text_cfg: ResponseTextConfigParam = {
            "format": prompting.build_corrections_format(self.taxonomy)
        }
        decoded = self._call(
            "propose_corrections",
            instructions=prompting.build_corrections_instructions(self.taxonomy, context),
            input=prompting.build_corrections_input(transactions, findings),
            text_cfg=text_cfg,
        )
        raw = decoded.get("corrections")
        if not isinstance(raw, list):
            raise OracleResponseError("propose_corrections: 'corrections' must be a list")
        out: list[ProposedChange] = []
        try:
            for item in raw:
                if isinstance(item, Mapping) and isinstance(item.get("updates"), Mapping):
                    # The id is never patchable.
                    updates = {k: v for k, v in item["updates"].items() if k != "id"}
                    item = {**item, "updates": updates}
                out.append(ProposedChange.model_validate(item))
        except PydanticValidationError as e:
            raise OracleResponseError(f"propose_corrections: invalid proposal: {e}") from e
        return out


__all__ = ["OpenAIOracle", "Oracle"]
