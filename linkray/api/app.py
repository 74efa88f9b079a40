"""FastAPI application factory.

Lifespan
--------
On startup the app opens a single SQLite connection, initialises the schema
and builds the classifier gateway once from ``settings``.  The store and
gateway are shared across requests via ``request.app.state``.  On shutdown
the connection is closed.

Errors
------
Every response uses the ``{success, data?, error?}`` envelope.  Request
validation failures (unparsable body, unknown depth, bad query values) are
answered with a 400 in that envelope instead of FastAPI's default 422.

Routers
-------
    /api/analyze         — scan a URL (page / quick / deep)
    /api/analyze/quick   — quick multi-page scan
    /api/recent          — the caller's recent scans
    /health              — liveness
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from linkray.api.routers import analyze as analyze_router
from linkray.api.routers import recent as recent_router
from linkray.classifier import ClassifierConfig, ClassifierGateway
from linkray.config import configure_logging
from linkray.db import ScanStore, get_connection, init_db
from linkray.errors import InvalidUrl

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the DB and build the gateway on startup; close the DB on shutdown."""
    configure_logging()
    conn = get_connection()
    init_db(conn)
    app.state.db = conn
    app.state.store = ScanStore(conn)
    app.state.gateway = ClassifierGateway.from_config(ClassifierConfig.from_settings())
    try:
        yield
    finally:
        conn.close()


def _validation_message(exc: RequestValidationError) -> str:
    locs = [tuple(err.get("loc", ())) for err in exc.errors()]
    if locs and all(loc[:1] == ("query",) for loc in locs):
        return "Invalid request parameters"
    if any(loc[-1:] == ("depth",) for loc in locs):
        return "Invalid scan depth"
    # Unparsable or non-object bodies carry no usable URL.
    return InvalidUrl.default_message


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Answer malformed requests with the standard error envelope."""
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(
        {"success": False, "error": _validation_message(exc)},
        status_code=400,
    )


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    app = FastAPI(
        title="LinkRay API",
        description=(
            "Website risk scanner: fetches or crawls a site, extracts its "
            "readable text and asks a chain of language-model backends for a "
            "structured safety assessment.  Results are cached per user."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Allow browser frontends on any origin (tighten for production).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(analyze_router.router, prefix="/api", tags=["analyze"])
    app.include_router(recent_router.router, prefix="/api", tags=["recent"])

    @app.get("/health", tags=["health"])
    def health(request: Request) -> dict:
        return {
            "status": "ok",
            "backends": request.app.state.gateway.backend_names,
        }

    return app


# Module-level instance used by uvicorn:
#   uvicorn linkray.api.app:app --reload
app = create_app()
