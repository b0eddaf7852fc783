"""
FastAPI app for the preview service.

Responsibilities:
- GET  /api/preview/{identifier}: discover the preview pages at the origin
  (or serve them from the cache) and return their URLs + title.
- POST /api/make-pdf: stream a PDF built from selected cached pages, or from
  an explicit list of image URLs (stateless form).
- POST /api/clear-cache, DELETE /api/preview/{identifier}: cache invalidation.
- GET  /health: readiness.

State (cache, origin client, discoverer) lives on app.state and is reached
through small dependency functions, so tests can build an isolated app with
create_app() and a mock transport.
"""

import asyncio
import logging
from typing import Any, List, Optional
from urllib.parse import quote

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from common.config import Settings, settings as default_settings
from .assembler import build_document, iter_chunks
from .cache import PreviewCache
from .discovery import PreviewNotFound, SequenceDiscoverer
from .housekeeping import weekly_clear
from .models import HealthResponse, MakePdfRequest, PreviewResponse
from .origin import Found, OriginClient, is_transient
from .retry import RetryPolicy, retry_transient

logger = logging.getLogger("preview")

# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def pdf_filename(identifier: str, title: str = "") -> str:
    """'{identifier}.pdf' or '{identifier} - {title}.pdf'"""
    return f"{identifier}{' - ' + title if title else ''}.pdf"

def content_disposition(filename: str) -> str:
    """
    Attachment header. Non-ASCII names get an ASCII fallback plus an RFC 5987
    filename* parameter (headers must be latin-1 encodable).
    """
    safe = filename.replace('"', "'")
    try:
        safe.encode("ascii")
        return f'attachment; filename="{safe}"'
    except UnicodeEncodeError:
        fallback = safe.encode("ascii", "replace").decode("ascii")
        return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"

def get_cache(request: Request) -> PreviewCache:
    return request.app.state.cache

def get_discoverer(request: Request) -> SequenceDiscoverer:
    return request.app.state.discoverer

def get_origin(request: Request) -> OriginClient:
    return request.app.state.origin

async def _stream_pdf(buffers: List[bytes], filename: str) -> StreamingResponse:
    # reportlab + Pillow are CPU bound: keep them off the event loop
    fh = await run_in_threadpool(build_document, buffers)
    return StreamingResponse(
        iter_chunks(fh),
        media_type="application/pdf",
        headers={"Content-Disposition": content_disposition(filename)},
    )

# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------
def create_app(
    cfg: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    cache: Optional[PreviewCache] = None,
) -> FastAPI:
    cfg = cfg or default_settings
    app = FastAPI(title="Preview Service", version="2.0.0")
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    app.state.settings = cfg
    app.state.cache = cache if cache is not None else PreviewCache(single_use=cfg.cache_single_use)
    app.state.retry = RetryPolicy(max_attempts=cfg.retry_attempts, delay=cfg.retry_delay)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    # -------------------------------------------------------------------------
    # Lifecycle: shared HTTP client + optional housekeeping timer
    # -------------------------------------------------------------------------
    @app.on_event("startup")
    async def startup():
        app.state.http = httpx.AsyncClient(transport=transport, timeout=cfg.origin_timeout)
        app.state.origin = OriginClient(app.state.http, cfg.origin_base_url)
        app.state.discoverer = SequenceDiscoverer(
            app.state.origin,
            concurrency=cfg.discovery_concurrency,
            retry=app.state.retry,
            max_pages=cfg.max_pages,
        )
        app.state.housekeeping = None
        if cfg.cache_clear_weekday >= 0:
            app.state.housekeeping = asyncio.create_task(
                weekly_clear(app.state.cache, cfg.cache_clear_weekday % 7, cfg.cache_clear_hour)
            )
        logger.info("Preview service ready (origin=%s)", cfg.origin_base_url)

    @app.on_event("shutdown")
    async def shutdown():
        task = getattr(app.state, "housekeeping", None)
        if task is not None:
            task.cancel()
        await app.state.http.aclose()

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------
    @app.get("/health", response_model=HealthResponse)
    def health(cache: PreviewCache = Depends(get_cache)):
        return HealthResponse(status="ok", service=cfg.service_name, cached=len(cache))

    @app.get("/api/preview/{identifier}", response_model=PreviewResponse)
    async def preview(
        identifier: str,
        cache: PreviewCache = Depends(get_cache),
        discoverer: SequenceDiscoverer = Depends(get_discoverer),
    ):
        """
        Cached entries are returned as-is without touching the origin.
        Two concurrent first requests for one identifier both run discovery;
        the later put() wins.
        """
        entry = cache.get(identifier)
        if entry is not None:
            logger.info("Serving %s from cache", identifier)
            return PreviewResponse(images=entry.urls, title=entry.title)

        try:
            entry = await discoverer.discover(identifier)
        except PreviewNotFound:
            raise HTTPException(404, "No images found")
        except Exception:
            logger.exception("Error fetching previews for %s", identifier)
            raise HTTPException(500, "Failed to fetch preview images")

        cache.put(identifier, entry)
        return PreviewResponse(images=entry.urls, title=entry.title)

    @app.delete("/api/preview/{identifier}", status_code=204)
    def invalidate(identifier: str, cache: PreviewCache = Depends(get_cache)):
        if not cache.invalidate(identifier):
            raise HTTPException(404, "Not cached")

    @app.post("/api/make-pdf")
    async def make_pdf(
        request: Request,
        cache: PreviewCache = Depends(get_cache),
        origin: OriginClient = Depends(get_origin),
    ):
        """
        Cache-backed form: {identifier, selectedIndexes}. Out-of-range indexes
        are skipped, so [5] on a 3-page entry yields an empty (valid) PDF.
        Stateless form: {images: [url, ...]}, each URL fetched again.
        """
        try:
            body: Any = await request.json()
        except ValueError:
            raise HTTPException(400, "Invalid request")
        if not isinstance(body, dict):
            raise HTTPException(400, "Invalid request")
        try:
            req = MakePdfRequest.model_validate(body)
        except ValidationError:
            raise HTTPException(400, "Invalid request")

        if req.is_stateless:
            return await _make_pdf_from_urls(req, origin)

        if not req.identifier or req.selected_indexes is None:
            raise HTTPException(400, "Invalid request")

        entry = cache.get(req.identifier)
        if entry is None:
            raise HTTPException(404, "Images not cached. Reload previews first.")

        buffers = entry.select(req.selected_indexes)
        response = await _stream_pdf(buffers, pdf_filename(req.identifier, entry.title))
        cache.consumed(req.identifier)
        return response

    async def _make_pdf_from_urls(req: MakePdfRequest, origin: OriginClient) -> StreamingResponse:
        outcomes = await asyncio.gather(*(
            retry_transient(origin.fetch_url, app.state.retry, is_transient, url)
            for url in req.images
        ))
        buffers = [o.data for o in outcomes if isinstance(o, Found)]
        if len(buffers) < len(outcomes):
            logger.warning("Stateless PDF: %s of %s images could not be fetched",
                           len(outcomes) - len(buffers), len(outcomes))
        name = pdf_filename(req.identifier or "preview", req.title or "")
        return await _stream_pdf(buffers, name)

    @app.post("/api/clear-cache")
    def clear_cache(cache: PreviewCache = Depends(get_cache)):
        dropped = cache.clear_all()
        return {"cleared": dropped}

    return app

app = create_app()

# -----------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=default_settings.service_port)
