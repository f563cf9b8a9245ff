"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from zeto.api import router as api_router
from zeto.core.completion_gateway import CompletionGateway
from zeto.core.config import get_settings
from zeto.core.errors import ZetoError
from zeto.core.logging import get_logger
from zeto.db.supabase_client import SupabaseDatabase

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Build the app-scoped clients on startup and release them on shutdown.

    Missing credentials do not prevent startup: requests that need the
    missing client fail with a configuration error instead.
    """
    settings = get_settings()
    app.state.gateway = None
    app.state.database = None

    if settings.OPENAI_API_KEY:
        app.state.gateway = CompletionGateway.from_settings(settings)
    else:
        logger.warning("OPENAI_API_KEY not set; chat requests will be rejected")

    if settings.SUPABASE_URL and settings.SUPABASE_SERVICE_ROLE_KEY:
        database = SupabaseDatabase.from_settings(settings)
        database.connect()
        app.state.database = database
    else:
        logger.warning("Supabase not configured; document and history endpoints are disabled")

    try:
        yield
    finally:
        if app.state.gateway is not None:
            await app.state.gateway.aclose()
        if app.state.database is not None:
            app.state.database.close()
        logger.info("Application shutdown complete")


app = FastAPI(
    title="ZÉTO Workspace API",
    description="Document-grounded chat relay for ZÉTO Workspace projects",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ZetoError)
async def zeto_error_handler(request: Request, exc: ZetoError) -> JSONResponse:
    """Render relay errors as ``{error, details}`` with their status code."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(content=exc.to_payload(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render malformed requests as ``{error, details}`` with status 400."""
    logger.info(f"Invalid request on {request.url.path}: {len(exc.errors())} errors")
    return JSONResponse(
        content={"error": "Invalid request.", "details": jsonable_encoder(exc.errors())},
        status_code=400,
    )


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


# Include v1 API router
app.include_router(api_router, prefix="/v1", tags=["v1"])
