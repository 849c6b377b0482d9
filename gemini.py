"""Gemini proxy: forward a prompt to the generateContent API and record the exchange."""

from __future__ import annotations

import asyncio
import logging
import os
from time import perf_counter
from typing import Any, Dict, Optional, Set

import httpx

import db
from env_validation import DEFAULT_GEMINI_API_URL, DEFAULT_GEMINI_MODEL, gemini_api_key, get_env_float
from errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "Gemini API key is missing. Please ensure it's provided in your .env file."

# Outbound transport override; None means httpx's default network transport.
_TRANSPORT: Optional[httpx.AsyncBaseTransport] = None

# Strong references to in-flight persistence tasks so they are not collected early.
_PENDING: Set[asyncio.Task] = set()


def model_id() -> str:
    return os.getenv("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL


def endpoint_url() -> str:
    base = (os.getenv("GEMINI_API_URL") or DEFAULT_GEMINI_API_URL).rstrip("/")
    return f"{base}/models/{model_id()}:generateContent"


def build_request(prompt: Optional[str], schema: Any = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "contents": [{"role": "user", "parts": [{"text": prompt}]}],
    }
    if schema:
        payload["generationConfig"] = {
            "responseMimeType": "application/json",
            "responseSchema": schema,
        }
    return payload


def extract_text(data: Any) -> str:
    """Concatenate the text parts of the first candidate."""
    candidates = data.get("candidates") if isinstance(data, dict) else None
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        content = candidates[0].get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if isinstance(parts, list):
            texts = [
                part["text"]
                for part in parts
                if isinstance(part, dict) and isinstance(part.get("text"), str)
            ]
            if texts:
                return "".join(texts)
    feedback = data.get("promptFeedback") if isinstance(data, dict) else None
    if isinstance(feedback, dict) and feedback.get("blockReason"):
        raise UpstreamError(f"Prompt was blocked: {feedback['blockReason']}")
    raise UpstreamError("Gemini response contained no text.")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        message = body["error"].get("message")
        if message:
            return message
    return f"Gemini HTTP {response.status_code}: {response.text[:300]}"


async def generate_content(prompt: Optional[str], schema: Any = None) -> str:
    """Single generateContent round trip. No retry; no timeout unless GEMINI_TIMEOUT is set."""
    api_key = gemini_api_key()
    if not api_key:
        raise ConfigurationError(MISSING_KEY_MESSAGE)

    start = perf_counter()
    client = httpx.AsyncClient(timeout=get_env_float("GEMINI_TIMEOUT"), transport=_TRANSPORT)
    try:
        response = await client.post(
            endpoint_url(),
            json=build_request(prompt, schema),
            headers={"x-goog-api-key": api_key},
        )
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPStatusError as exc:
        message = _error_message(exc.response)
        logger.error("Gemini HTTP error %s: %s", exc.response.status_code, message)
        raise UpstreamError(message) from exc
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("Gemini request failed: %s", exc)
        raise UpstreamError(str(exc) or exc.__class__.__name__) from exc
    finally:
        await client.aclose()

    text = extract_text(data)
    logger.info(
        "Gemini answered in %d ms using model %s",
        int((perf_counter() - start) * 1000),
        model_id(),
    )
    return text


async def _persist_exchange(prompt: Optional[str], schema: Any, text: str) -> None:
    await asyncio.to_thread(db.insert_submitted_content, prompt, schema, text)


def _log_persist_result(task: asyncio.Task) -> None:
    _PENDING.discard(task)
    if task.cancelled():
        logger.warning("Saving AI interaction was cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Error saving AI interaction: %s", exc, exc_info=exc)


def schedule_persist(prompt: Optional[str], schema: Any, text: str) -> asyncio.Task:
    """Record the exchange in the background; failures are logged, never raised."""
    task = asyncio.get_running_loop().create_task(_persist_exchange(prompt, schema, text))
    _PENDING.add(task)
    task.add_done_callback(_log_persist_result)
    return task


async def call_model(prompt: Optional[str], schema: Any = None) -> str:
    """Ask Gemini for ``prompt`` and return its text; the exchange is saved afterwards."""
    text = await generate_content(prompt, schema)
    schedule_persist(prompt, schema, text)
    return text


async def drain_pending() -> None:
    """Wait for outstanding persistence tasks (shutdown and tests)."""
    if _PENDING:
        await asyncio.gather(*list(_PENDING), return_exceptions=True)
