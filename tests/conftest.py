"""Pytest configuration shared by all test modules.

Puts the workspace ``packages/`` directory first on ``sys.path`` so the local
``banks2ledger`` package resolves even without an editable install, and keeps
tests hermetic: the process-wide hook registry is emptied around every test and
each test runs in its own temporary working directory (debug runs write
``acc_maps_dump.txt`` there).
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
if str(_PKG_DIR) not in sys.path:
    sys.path.insert(0, str(_PKG_DIR))

import logging  # noqa: E402

from banks2ledger import logging_setup  # noqa: E402
from banks2ledger.hooks import default_registry  # noqa: E402

DATA_DIR = Path(__file__).resolve().parent / "data"


@pytest.fixture(autouse=True)
def _reset_default_hooks():
    default_registry().clear()
    yield
    default_registry().clear()


@pytest.fixture(autouse=True)
def _isolate_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("BANKS2LEDGER_MAX_WORKERS", raising=False)
    monkeypatch.delenv("BANKS2LEDGER_LOG_LEVEL", raising=False)


@pytest.fixture
def data_dir() -> Path:
    return DATA_DIR


@pytest.fixture(autouse=True)
def _reset_logging(monkeypatch: pytest.MonkeyPatch):
    # CLI runs configure logging against a per-invocation stderr.
    monkeypatch.setattr(logging_setup, "_CONFIGURED", False)
    yield
    pkg_logger = logging.getLogger("banks2ledger")
    for h in list(pkg_logger.handlers):
        pkg_logger.removeHandler(h)
    pkg_logger.propagate = True
    pkg_logger.setLevel(logging.NOTSET)
