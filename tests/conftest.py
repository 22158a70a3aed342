from __future__ import annotations

import pytest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
EXAMPLES = ROOT / "examples"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's QEDCFG_* variables out of the tests."""
    for name in ("QEDCFG_LOG_LEVEL", "QEDCFG_TRACE_DIR", "QEDCFG_UNITS"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def examples_dir() -> Path:
    return EXAMPLES


@pytest.fixture
def minimal_tree() -> dict:
    """Smallest complete document: laser and beam with the required fields."""
    return {
        "laser": {"a0": 1.0, "wavelength": "0.8 * micro", "n_cycles": 10},
        "beam": {"n": 100, "gamma": 1000.0},
    }
