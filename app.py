# app.py: formula vault backend
# - Serves client configuration, proxies Gemini, stores content/formulas/problems
# - Every response uses the {success, ...} envelope

import asyncio
import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

import db
import gemini
from env_validation import DEFAULT_MAX_BODY_BYTES, DEFAULT_PORT, client_config, get_env_int, validate_environment
from errors import ProxyError
from schemas import CallGeminiBody, SaveContentBody, SaveFormulaBody, SaveProblemBody

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(_: FastAPI):
    try:
        validate_environment()
        db.init()
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise
    yield
    await gemini.drain_pending()
    db.close()


app = FastAPI(title="Formula Vault", version="1.0.0", lifespan=_lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _body_too_large() -> Response:
    return Response(
        status_code=413,
        content=json.dumps({"success": False, "error": "Request body too large."}),
        media_type="application/json",
    )


@app.middleware("http")
async def _limit_body_size(request: Request, call_next):
    limit = get_env_int("MAX_BODY_BYTES", DEFAULT_MAX_BODY_BYTES)
    length = request.headers.get("content-length")
    if length and length.isdigit():
        if int(length) > limit:
            return _body_too_large()
    elif request.method in ("POST", "PUT", "PATCH"):
        # Chunked bodies carry no length; read (and cache) them before routing
        if len(await request.body()) > limit:
            return _body_too_large()
    return await call_next(request)


@app.exception_handler(ProxyError)
async def _proxy_error_handler(_: Request, exc: ProxyError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(_: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    else:
        message = "Invalid request body."
    return JSONResponse(status_code=400, content={"success": False, "error": message})


@app.exception_handler(Exception)
async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error in %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error."})


# ---------- Config ----------
@app.get("/api/config")
def get_config():
    try:
        config = client_config()
    except Exception as exc:
        logger.exception("Error serving config: %s", exc)
        raise ProxyError("Failed to load configuration.") from exc
    logger.info("Sending config to frontend...")
    return {"success": True, "data": config}


# ---------- Gemini ----------
@app.post("/api/call-gemini")
async def call_gemini(body: Optional[CallGeminiBody] = None):
    body = body or CallGeminiBody()
    text = await gemini.call_model(body.prompt, body.schema_)
    return {"success": True, "data": text}


# ---------- Submitted content ----------
@app.post("/api/save-content")
async def save_content(body: Optional[SaveContentBody] = None):
    body = body or SaveContentBody()
    content_id = await asyncio.to_thread(
        db.insert_submitted_content, body.prompt, body.schema_, body.ai_response
    )
    return {"success": True, "message": "Content saved successfully.", "id": content_id}


@app.get("/api/get-saved-content")
async def get_saved_content():
    content = await asyncio.to_thread(db.list_submitted_content)
    return {"success": True, "data": content}


# ---------- Formulas ----------
@app.post("/api/save-formula")
async def save_formula(body: Optional[SaveFormulaBody] = None):
    body = body or SaveFormulaBody()
    formula_id, created = await asyncio.to_thread(
        lambda: db.upsert_formula(
            body.key,
            body.formula,
            category=body.category,
            subject=body.subject,
            topic=body.topic,
            sub_topic=body.sub_topic,
            description=body.description,
            variables=body.variables,
            connections=body.connections,
            examples=body.examples,
            verified_by_ai=body.verified_by_ai,
            custom_user=body.custom_user,
        )
    )
    return {
        "success": True,
        "message": "Formula saved successfully.",
        "id": formula_id,
        "created": created,
    }


@app.get("/api/get-formulas")
async def get_formulas():
    formulas = await asyncio.to_thread(db.list_formulas)
    return {"success": True, "formulas": formulas}


# ---------- Problems ----------
@app.post("/api/save-problem")
async def save_problem(body: Optional[SaveProblemBody] = None):
    body = body or SaveProblemBody()
    problem_id = await asyncio.to_thread(
        lambda: db.insert_problem(
            body.text,
            body.answer,
            formula_keys=body.formulaKeys,
            difficulty=body.difficulty,
            subject=body.subject,
            topic=body.topic,
            analysis=body.analysis,
            hint=body.hint,
            custom_user=body.custom_user,
        )
    )
    return {"success": True, "message": "Problem saved successfully.", "id": problem_id}


@app.get("/api/get-problems")
async def get_problems():
    problems = await asyncio.to_thread(db.list_problems)
    return {"success": True, "problems": problems}


def main() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    validate_environment()
    host = os.getenv("HOST", "0.0.0.0")
    port = get_env_int("PORT", DEFAULT_PORT)
    logger.info("Server is running on http://localhost:%s", port)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
