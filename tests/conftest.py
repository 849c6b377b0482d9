import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def temp_db(monkeypatch, tmp_path):
    import db

    db_path = tmp_path / "test.db"
    monkeypatch.setattr(db, "DB_PATH", str(db_path))
    # Fresh pool on the temporary file for each test
    db.reset_pool()
    db.init()
    yield str(db_path)
    db.close()


@pytest.fixture
def gemini_env(monkeypatch):
    """A configured Gemini key plus a transport recording outbound requests."""
    import httpx

    import gemini

    calls = []
    state = {"status": 200, "payload": {"candidates": [{"content": {"parts": [{"text": "4"}]}}]}}

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(state["status"], json=state["payload"])

    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.delenv("GEMINI_TIMEOUT", raising=False)
    monkeypatch.delenv("GEMINI_API_URL", raising=False)
    monkeypatch.delenv("GEMINI_MODEL", raising=False)
    monkeypatch.setattr(gemini, "_TRANSPORT", httpx.MockTransport(handler))
    return {"calls": calls, "state": state}
