"""FastAPI server for the Agent Chat service.

Run with:
    uvicorn agentchat.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import traceback
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agentchat.api.routes import router
from agentchat.api.schemas import error_body
from agentchat.config import CORS_ORIGINS, IS_PRODUCTION, SERVER_HOST, SERVER_PORT
from agentchat.db.database import Database
from agentchat.db.repository import ChatRepository
from agentchat.errors import ChatServiceError
from agentchat.orchestrator import ChatOrchestrator
from agentchat.services.embeddings import EmbeddingClient
from agentchat.services.knowledge_search import KnowledgeSearch
from agentchat.services.metrics import metrics
from agentchat.services.vector_store import SupabaseVectorStore
from agentchat.tools.knowledge_base import ToolInvoker

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the database, knowledge search and orchestrator once per process."""
    database = Database()
    await database.create_all()
    vector_store = SupabaseVectorStore()

    repository = ChatRepository(database)
    knowledge_search = KnowledgeSearch(EmbeddingClient(), vector_store)
    application.state.repository = repository
    application.state.orchestrator = ChatOrchestrator(repository, ToolInvoker(knowledge_search))
    logger.info("Chat orchestrator ready.")
    yield

    await vector_store.aclose()
    await database.dispose()
    metrics.flush()
    logger.info("Shutdown complete.")


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Agent Chat API",
    description="Chat with configurable AI agents backed by a product knowledge base.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a unique request ID to every request for log correlation.

    The ID is echoed in the ``X-Request-ID`` response header.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info(
        "[%s] %s %s", request_id, request.method, request.url.path,
    )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Error envelopes ──────────────────────────────────────────────────
def _stack(exc: BaseException) -> str | None:
    if IS_PRODUCTION:
        return None
    return "".join(traceback.format_exception(exc))


@app.exception_handler(ChatServiceError)
async def handle_service_error(request: Request, exc: ChatServiceError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "?")
    if exc.status_code >= 500:
        logger.error("[%s] %s: %s", request_id, type(exc).__name__, exc.message)
    else:
        logger.info("[%s] %s: %s", request_id, type(exc).__name__, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, _stack(exc)))


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return JSONResponse(status_code=400, content=error_body(f"Invalid request: {details}"))


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    # Full traceback stays in the server log
    logger.exception("[%s] Unhandled error", getattr(request.state, "request_id", "?"))
    return JSONResponse(status_code=500, content=error_body("Internal Server Error", _stack(exc)))


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Agent Chat API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("Starting Agent Chat API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "agentchat.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
