"""Scan endpoints.

Routes
------
POST /api/analyze          Body: {"url": "...", "depth": "page"}   → full pipeline
POST /api/analyze/quick    Body: {"url": "..."}                    → depth="quick"

Both answer with the envelope ``{"success": bool, "data"?: {...}, "error"?: str}``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from linkray.api.dependencies import get_gateway, get_owner_id, get_store
from linkray.classifier.gateway import ClassifierGateway
from linkray.db.scans import ScanStore
from linkray.errors import InternalError, ScanError
from linkray.pipeline import ScanDepth, ScanPipeline

logger = logging.getLogger(__name__)

router = APIRouter()

DISCONNECT_POLL_SECONDS = 0.25


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class AnalyzeRequest(BaseModel):
    # Left untyped so malformed values reach the normaliser and become a 400.
    url: Any = None
    depth: ScanDepth = ScanDepth.PAGE


class QuickAnalyzeRequest(BaseModel):
    url: Any = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


async def _watch_disconnect(request: Request, cancel: threading.Event) -> None:
    """Set *cancel* as soon as the client goes away."""
    while not cancel.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected; cancelling scan of %s", request.url.path)
            cancel.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


async def _scan(
    request: Request,
    url: Any,
    depth: ScanDepth,
    user_id: Optional[str],
    store: ScanStore,
    gateway: ClassifierGateway,
) -> JSONResponse:
    """Run the pipeline off the event loop and shape the envelope.

    While the pipeline runs, a watcher polls the connection; if the client
    disconnects, ``cancel`` is set and the crawler stops before its next page.
    """
    pipeline = ScanPipeline(store, gateway)
    cancel = threading.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancel))
    try:
        outcome = await run_in_threadpool(
            pipeline.run, url, user_id=user_id, depth=depth, cancel_event=cancel
        )
    except ScanError as exc:
        return _error(exc.status_code, exc.user_message)
    except Exception:
        logger.exception("Server error while scanning %r", url)
        return _error(500, InternalError.default_message)
    finally:
        cancel.set()
        watcher.cancel()

    return JSONResponse({"success": True, "data": outcome.to_dict()})


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/analyze")
async def analyze(
    body: AnalyzeRequest,
    request: Request,
    user_id: Optional[str] = Depends(get_owner_id),
    store: ScanStore = Depends(get_store),
    gateway: ClassifierGateway = Depends(get_gateway),
) -> JSONResponse:
    """Assess the risk of a website.

    Authenticated owners (``X-User-Id``) are served a cached result when one
    younger than the freshness window exists; fresh results are saved.
    """
    return await _scan(request, body.url, body.depth, user_id, store, gateway)


@router.post("/analyze/quick")
async def analyze_quick(
    body: QuickAnalyzeRequest,
    request: Request,
    user_id: Optional[str] = Depends(get_owner_id),
    store: ScanStore = Depends(get_store),
    gateway: ClassifierGateway = Depends(get_gateway),
) -> JSONResponse:
    """Crawl up to ``settings.quick_scan_max_pages`` pages and assess the site."""
    return await _scan(request, body.url, ScanDepth.QUICK, user_id, store, gateway)
