"""
pytest configuration for rangefetch tests.

Adds src directory to Python path for imports and isolates tests from the
caller's RANGEFETCH_* environment.
"""

import os
import sys
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))


@pytest.fixture(autouse=True)
def clean_rangefetch_env(monkeypatch):
    """Remove RANGEFETCH_* variables so config defaults are predictable."""
    for key in list(os.environ):
        if key.startswith("RANGEFETCH_"):
            monkeypatch.delenv(key, raising=False)
