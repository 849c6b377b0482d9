import asyncio
import json

import httpx
import pytest

import db
import gemini
from errors import ConfigurationError, UpstreamError


def test_build_request_without_schema():
    payload = gemini.build_request("2+2")
    assert payload == {"contents": [{"role": "user", "parts": [{"text": "2+2"}]}]}


def test_build_request_with_schema_asks_for_json():
    schema = {"type": "OBJECT", "properties": {"answer": {"type": "STRING"}}}
    payload = gemini.build_request("2+2", schema)
    assert payload["generationConfig"] == {
        "responseMimeType": "application/json",
        "responseSchema": schema,
    }


def test_extract_text_joins_parts():
    data = {"candidates": [{"content": {"parts": [{"text": "Hello "}, {"text": "world"}]}}]}
    assert gemini.extract_text(data) == "Hello world"


def test_extract_text_reports_blocked_prompt():
    with pytest.raises(UpstreamError) as info:
        gemini.extract_text({"promptFeedback": {"blockReason": "SAFETY"}})
    assert "SAFETY" in info.value.message


def test_extract_text_without_candidates():
    with pytest.raises(UpstreamError):
        gemini.extract_text({"candidates": []})


@pytest.mark.parametrize(
    "data",
    [
        {"candidates": ["oops"]},
        {"candidates": [{"content": "oops"}]},
        {"candidates": [{"content": {"parts": "oops"}}]},
        {"candidates": {"content": {}}},
        ["not", "an", "object"],
    ],
)
def test_extract_text_rejects_malformed_candidates(data):
    with pytest.raises(UpstreamError) as info:
        gemini.extract_text(data)
    assert info.value.message == "Gemini response contained no text."


def test_malformed_response_is_upstream_error(gemini_env):
    gemini_env["state"]["payload"] = {"candidates": ["oops"]}

    with pytest.raises(UpstreamError) as info:
        asyncio.run(gemini.generate_content("2+2"))
    assert info.value.status_code == 500
    assert info.value.message == "Gemini response contained no text."


def test_missing_key_raises_configuration_error(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    with pytest.raises(ConfigurationError) as info:
        asyncio.run(gemini.generate_content("2+2"))
    assert info.value.message.startswith("Gemini API key is missing")
    assert info.value.status_code == 400


def test_generate_content_posts_to_model_endpoint(gemini_env, monkeypatch):
    monkeypatch.setenv("GEMINI_MODEL", "gemini-test")
    text = asyncio.run(gemini.generate_content("2+2", {"type": "STRING"}))

    assert text == "4"
    (request,) = gemini_env["calls"]
    assert request.method == "POST"
    assert str(request.url) == (
        "https://generativelanguage.googleapis.com/v1beta/models/gemini-test:generateContent"
    )
    assert request.headers["x-goog-api-key"] == "test-key"
    body = json.loads(request.content)
    assert body["contents"][0]["parts"][0]["text"] == "2+2"
    assert body["generationConfig"]["responseSchema"] == {"type": "STRING"}


def test_upstream_error_message_is_forwarded(gemini_env):
    gemini_env["state"]["status"] = 429
    gemini_env["state"]["payload"] = {"error": {"code": 429, "message": "Quota exceeded"}}

    with pytest.raises(UpstreamError) as info:
        asyncio.run(gemini.generate_content("2+2"))
    assert info.value.message == "Quota exceeded"
    assert info.value.status_code == 500
    # Single attempt, no retry
    assert len(gemini_env["calls"]) == 1


def test_network_failure_is_upstream_error(monkeypatch):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.setattr(gemini, "_TRANSPORT", httpx.MockTransport(handler))

    with pytest.raises(UpstreamError) as info:
        asyncio.run(gemini.generate_content("2+2"))
    assert "connection refused" in info.value.message


def test_call_model_persists_exchange(temp_db, gemini_env):
    async def _call():
        text = await gemini.call_model("2+2", {"type": "STRING"})
        await gemini.drain_pending()
        return text

    assert asyncio.run(_call()) == "4"
    rows = db.list_submitted_content()
    assert len(rows) == 1
    assert rows[0]["prompt"] == "2+2"
    assert rows[0]["schema"] == {"type": "STRING"}
    assert rows[0]["ai_response"] == "4"


def test_persist_failure_does_not_change_answer(temp_db, gemini_env, monkeypatch, caplog):
    def broken_insert(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(db, "insert_submitted_content", broken_insert)

    async def _call():
        text = await gemini.call_model("2+2")
        await gemini.drain_pending()
        return text

    with caplog.at_level("ERROR", logger="gemini"):
        assert asyncio.run(_call()) == "4"
    assert "Error saving AI interaction" in caplog.text
    assert not gemini._PENDING
