"""Engine settings loaded from the environment.

Every value has a default so the engine runs without any configuration; the
CLI loads a local ``.env`` (``python-dotenv``) before calling
:func:`load_settings`.

Environment variables
---------------------
``LW_OPENAI_MODEL``                  Responses API model name (``gpt-5``).
``LW_ORACLE_MAX_ATTEMPTS``           attempts per oracle call, 429/5xx only (3).
``LW_REVIEW_CONFIDENCE_THRESHOLD``   review policy handed to the oracle (0.85).
``LW_FIXED_ASSETS``                  balance-sheet placeholder (50000).
``LW_SUPPLIER_PAYABLES``             balance-sheet placeholder (15000).
``LW_LONG_TERM_FINANCING``           balance-sheet placeholder (20000).
``LW_BALANCE_TOLERANCE``             balanced/identity tolerance (0.01).
``LW_CBS_RATE`` / ``LW_IBS_RATE``    illustrative reform-tax rates (0.088 / 0.177).
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation


@dataclass(frozen=True, slots=True)
class EngineSettings:
    openai_model: str = "gpt-5"
    oracle_max_attempts: int = 3
    review_confidence_threshold: float = 0.85
    fixed_assets: Decimal = Decimal("50000")
    supplier_payables: Decimal = Decimal("15000")
    long_term_financing: Decimal = Decimal("20000")
    balance_tolerance: Decimal = Decimal("0.01")
    cbs_rate: Decimal = Decimal("0.088")
    ibs_rate: Decimal = Decimal("0.177")

    def __post_init__(self) -> None:
        if self.oracle_max_attempts < 1:
            raise ValueError("oracle_max_attempts must be >= 1")
        if not 0.0 <= self.review_confidence_threshold <= 1.0:
            raise ValueError("review_confidence_threshold must be within [0,1]")
        if self.balance_tolerance <= 0:
            raise ValueError("balance_tolerance must be positive")


def _env_decimal(env: Mapping[str, str], name: str, default: Decimal) -> Decimal:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return Decimal(raw.strip())
    except InvalidOperation as e:
        raise ValueError(f"{name} must be a decimal number, got {raw!r}") from e


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def load_settings(env: Mapping[str, str] | None = None) -> EngineSettings:
    """Build :class:`EngineSettings` from ``env`` (defaults to ``os.environ``)."""

    source: Mapping[str, str] = os.environ if env is None else env
    defaults = EngineSettings()
    model = (source.get("LW_OPENAI_MODEL") or "").strip() or defaults.openai_model
    return EngineSettings(
        openai_model=model,
        oracle_max_attempts=_env_int(
            source, "LW_ORACLE_MAX_ATTEMPTS", defaults.oracle_max_attempts
        ),
        review_confidence_threshold=_env_float(
            source, "LW_REVIEW_CONFIDENCE_THRESHOLD", defaults.review_confidence_threshold
        ),
        fixed_assets=_env_decimal(source, "LW_FIXED_ASSETS", defaults.fixed_assets),
        supplier_payables=_env_decimal(
            source, "LW_SUPPLIER_PAYABLES", defaults.supplier_payables
        ),
        long_term_financing=_env_decimal(
            source, "LW_LONG_TERM_FINANCING", defaults.long_term_financing
        ),
        balance_tolerance=_env_decimal(
            source, "LW_BALANCE_TOLERANCE", defaults.balance_tolerance
        ),
        cbs_rate=_env_decimal(source, "LW_CBS_RATE", defaults.cbs_rate),
        ibs_rate=_env_decimal(source, "LW_IBS_RATE", defaults.ibs_rate),
    )


__all__ = ["EngineSettings", "load_settings"]
