from __future__ import annotations

from datetime import datetime, timezone
from dotenv import load_dotenv
import logging
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .routers.auth import router as auth_router
from .routers.chat import router as chat_router
from .routers.document import router as document_router
from .routers.history import router as history_router
from ..errors import ChatError
from ..observability.metrics import metrics_middleware_factory

load_dotenv()  # Load environment variables from .env if present (JWT_SECRET, OPENAI_API_KEY, etc.)

logger = logging.getLogger(__name__)

APP_NAME = "Nexus Chat API"
APP_VERSION = "0.1.0"

app = FastAPI(title=APP_NAME, version=APP_VERSION)

# Observability: request latency histogram
app.middleware("http")(metrics_middleware_factory())

# Routers
app.include_router(auth_router)
app.include_router(chat_router)
app.include_router(document_router)
app.include_router(history_router)

# Also expose the same routers under /api
app.include_router(auth_router, prefix="/api")
app.include_router(chat_router, prefix="/api")
app.include_router(document_router, prefix="/api")
app.include_router(history_router, prefix="/api")

# CORS (for the web client dev server on localhost:3000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> Response:
    if exc.status_code >= 500:
        logger.warning("%s %s -> %s", request.method, request.url.path, exc.code)
    return exc.to_response()


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
    errors = exc.errors()
    # Malformed bodies are invalid data; bad query or path parameters are bad requests
    in_body = any(err.get("loc", ())[:1] == ("body",) for err in errors)
    cause = None
    if errors:
        loc = ".".join(str(p) for p in errors[0].get("loc", ()))
        cause = f"{loc}: {errors[0].get('msg', 'invalid')}"
    code = "invalid_data:api" if in_body else "bad_request:api"
    return ChatError(code, cause=cause).to_response()


def _health() -> dict:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
            "chats": "in-memory",
            "documents": "in-memory",
        },
    }


@app.get("/")
def root():
    return {"name": APP_NAME, "version": APP_VERSION}


@app.get("/health")
def health():
    return _health()


@app.get("/metrics")
def metrics() -> Response:
    # Expose Prometheus metrics
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


# API-prefixed convenience routes (kept alongside non-prefixed routes)
@app.get("/api")
def api_root():
    return {"name": APP_NAME, "version": APP_VERSION}


@app.get("/api/health")
def api_health():
    return _health()


@app.get("/api/metrics")
def api_metrics() -> Response:
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
