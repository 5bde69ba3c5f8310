"""FastAPI application exposing the conversation orchestrator over HTTP."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import AliasChoices, BaseModel, Field, field_validator
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import load_config
from .errors import BuddyError, ConfigurationFailure, RequestMalformed
from .llm import ModelGateway, create_from_config
from .memory import JsonlTranscriptStore, TranscriptStore
from .orchestrator import ConversationOrchestrator

logger = logging.getLogger(__name__)


# -----------------------------
# Pydantic request/response
# -----------------------------
class ChatRequest(BaseModel):
    user_id: str = Field(validation_alias=AliasChoices("userId", "userID"))
    query: str
    conversation_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("conversationId", "conversationID")
    )

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("query cannot be empty")
        return v


class ChatResponse(BaseModel):
    conversation_id: str = Field(serialization_alias="conversationId")
    response: str


# -----------------------------
# Utilities
# -----------------------------
def _validation_detail(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "malformed body"


def _make_store(cfg: Dict[str, Any]) -> JsonlTranscriptStore:
    return JsonlTranscriptStore(cfg.get("memory", {}).get("data_dir") or "data")


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    model: Optional[ModelGateway] = None,
    store: Optional[TranscriptStore] = None,
) -> FastAPI:
    cfg = load_config(config_path)

    cors_origins = cfg.get("server", {}).get("cors_origins", ["*"])
    model_cfg = cfg.get("model", {})
    mem_cfg = cfg.get("memory", {})

    # A model that fails to load must not take the app down; chat requests
    # answer with the configuration error instead.
    config_error: Optional[ConfigurationFailure] = None
    if model is None:
        try:
            model = create_from_config(cfg)
        except ConfigurationFailure as e:
            logger.error("Model gateway unavailable: %s", e)
            config_error = e

    store = store or _make_store(cfg)
    orchestrator = None
    if model is not None:
        orchestrator = ConversationOrchestrator(
            store,
            model,
            system_prompt=str(cfg.get("assistant", {}).get("system_prompt", "")).strip(),
            temperature=float(model_cfg.get("temperature", 0.5)),
            history_limit=int(mem_cfg.get("history_limit", 0) or 0),
        )

    app = FastAPI(title="Buddy CLI Assistant", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def _on_invalid_request(request: Request, exc: RequestValidationError) -> PlainTextResponse:
        err = RequestMalformed(_validation_detail(exc))
        return PlainTextResponse(err.diagnostic(), status_code=err.status_code)

    # Raised by the framework itself, e.g. for a body that is not valid UTF-8.
    @app.exception_handler(StarletteHTTPException)
    async def _on_http_error(request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
        err = RequestMalformed(str(exc.detail))
        return PlainTextResponse(
            err.diagnostic(),
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(BuddyError)
    async def _on_service_error(request: Request, exc: BuddyError) -> PlainTextResponse:
        return PlainTextResponse(exc.diagnostic(), status_code=exc.status_code)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {
            "ok": True,
            "model_loaded": orchestrator is not None,
            "data_dir": getattr(store, "root", None) and str(store.root),
        }

    @app.post("/chat", response_model=ChatResponse)
    def chat(req: ChatRequest) -> JSONResponse:
        if orchestrator is None:
            raise config_error or ConfigurationFailure("model gateway not configured")
        try:
            result = orchestrator.handle(req.user_id, req.query, req.conversation_id or "")
        except BuddyError as e:
            logger.error("Chat request for user %s failed: %s", req.user_id, e)
            raise
        body = ChatResponse(conversation_id=result.conversation_id, response=result.response)
        return JSONResponse(
            body.model_dump(by_alias=True),
            headers={"Access-Control-Allow-Origin": "*"},
        )

    return app
