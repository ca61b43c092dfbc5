import sys
from pathlib import Path

import pytest

backend_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_root))


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    """No real backoff sleeps in tests."""
    monkeypatch.setenv("NODEFLOW_RETRY_MIN_DELAY_SECONDS", "0")
    monkeypatch.setenv("NODEFLOW_RETRY_MAX_DELAY_SECONDS", "0")
    monkeypatch.setenv("NODEFLOW_RETRY_MAX_ATTEMPTS", "3")
