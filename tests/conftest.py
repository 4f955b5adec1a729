"""Pytest configuration for test isolation.

Engine settings and the log level are read from ``LW_*`` /
``LEDGER_WORKBENCH_LOG_LEVEL`` environment variables, and the CLI loads a
``.env`` from the working directory. Each test runs with those variables
cleared and inside its own temporary working directory so a developer's local
configuration cannot leak into assertions.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

_ENV_PREFIXES = ("LW_", "LEDGER_WORKBENCH_")


@pytest.fixture(autouse=True)
def _isolate_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith(_ENV_PREFIXES):
            monkeypatch.delenv(name, raising=False)
    workdir = tmp_path / "work"
    workdir.mkdir(parents=True, exist_ok=True)
    monkeypatch.chdir(workdir)
