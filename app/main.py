"""
Main FastAPI application for the Draftwright backend.
Handles CORS, request logging middleware, lifespan events, and router registration.
"""
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import close_db, init_db
from app.exceptions import DraftwrightError, NotFoundError, TemplateValidationError, TreeConsistencyError
from app.routers import content, drafts, exports, health, templates
from app.utils.helpers import utc_now

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Startup / shutdown helpers
# ---------------------------------------------------------------------------

async def _check_database() -> bool:
    """Initialise DB tables and verify the connection.  Returns True on success."""
    try:
        await init_db()
        logger.info("Database connection OK")
        return True
    except Exception as exc:
        logger.error("Database connection failed: %s", exc)
        raise


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting Draftwright backend …")
    logger.info("=" * 60)

    await _check_database()

    logger.info("  Draftwright backend ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("  Health     : http://%s:%d/api/health", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("Shutting down Draftwright backend …")
    await close_db()
    logger.info("Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Draftwright API",
    description=(
        "**Draftwright**: template-driven research document drafting.\n\n"
        "Upload a DOCX template, store screened generated text section by "
        "section, edit the draft tree, and export a formatted DOCX.\n\n"
        "Key endpoints:\n"
        "- `POST /api/templates/` upload a template\n"
        "- `POST /api/drafts/` create a draft for a template\n"
        "- `PUT  /api/drafts/{id}/sections/{section_id}` store generated text\n"
        "- `PATCH /api/drafts/{id}` save an edited tree\n"
        "- `POST /api/exports/drafts/{id}` download as DOCX\n"
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    # Skip noisy health-check polling from the frontend
    if request.url.path not in ("/api/health", "/api/health/", "/"):
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

def _status_for(exc: DraftwrightError) -> int:
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, TreeConsistencyError):
        return 422
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(DraftwrightError)
async def draftwright_exception_handler(request: Request, exc: DraftwrightError):
    """Map domain errors that escaped a router to a JSON error response."""
    code = _status_for(exc)
    logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    content = {"detail": str(exc), "path": str(request.url.path)}
    if isinstance(exc, TemplateValidationError):
        content["errors"] = exc.errors
    return JSONResponse(status_code=code, content=content)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error": str(exc),
            "path": str(request.url.path),
            "timestamp": utc_now().isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,    prefix="/api/health",    tags=["Health"])
app.include_router(templates.router, prefix="/api/templates", tags=["Templates"])
app.include_router(content.router,   prefix="/api/content",   tags=["Content"])
app.include_router(drafts.router,    prefix="/api/drafts",    tags=["Drafts"])
app.include_router(exports.router,   prefix="/api/exports",   tags=["Exports"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root: basic service info."""
    return {
        "name": "Draftwright API",
        "version": "0.1.0",
        "description": "Template-driven research document drafting backend",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "templates": "/api/templates",
            "content": "/api/content",
            "drafts": "/api/drafts",
            "exports": "/api/exports",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )
