"""FastAPI surface exposing compiled option-chain analytics as JSON."""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, AsyncIterator, Dict

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from .client import NSE
from .errors import InsufficientDataError, InvalidArgumentError, NoDataError, NSEError
from .logging_setup import REQUEST_ID_CONTEXT, setup_logging
from .telemetry import prometheus_response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

_ERROR_STATUS: tuple[tuple[type[NSEError], int], ...] = (
    (NoDataError, 404),
    (InsufficientDataError, 422),
    (InvalidArgumentError, 400),
)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Echo or mint an ``X-Request-ID`` and expose it to the logging filter."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = REQUEST_ID_CONTEXT.set(request_id)
        try:
            response = await call_next(request)
        finally:
            REQUEST_ID_CONTEXT.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def get_nse(request: Request) -> NSE:
    return request.app.state.nse


router = APIRouter(prefix="/api/v1", tags=["nse"])


@router.get("/market-status")
async def market_status(nse: NSE = Depends(get_nse)) -> Any:
    """Return NSE's market state per segment."""
    return await nse.status()


@router.get("/option-chain/{symbol}")
async def option_chain(symbol: str, expiry: date = Query(...), nse: NSE = Depends(get_nse)) -> Dict[str, Any]:
    compiled = await nse.compile_option_chain(symbol, expiry)
    return compiled.to_payload()


@router.get("/option-chain/{symbol}/max-pain")
async def option_chain_max_pain(symbol: str, expiry: date = Query(...), nse: NSE = Depends(get_nse)) -> Dict[str, Any]:
    compiled = await nse.compile_option_chain(symbol, expiry)
    return {"symbol": symbol.upper(), "expiry": compiled.expiry, "maxpain": compiled.maxpain}


async def _nse_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status = 502
    for error_type, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            status = code
            break
    kind = getattr(exc, "kind", "nse_error")
    if status >= 500:
        logger.warning("Upstream failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=status, content={"error": kind, "detail": str(exc)})


def create_app(nse: NSE | None = None) -> FastAPI:
    """Build the app; an injected ``nse`` client is left open on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging()
        client = nse or NSE()
        app.state.nse = client
        logger.info("NSE client ready")
        try:
            yield
        finally:
            if nse is None:
                await client.aclose()

    app = FastAPI(
        title="NSE Option Chain Service",
        description="Session-aware NSE client with compiled option-chain analytics.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(NSEError, _nse_error_handler)
    app.include_router(router)

    @app.get("/healthz", summary="Readiness probe")
    async def healthz() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/metrics", include_in_schema=False)
    async def metrics_endpoint() -> Response:
        payload, content_type = prometheus_response()
        return Response(content=payload, media_type=content_type)

    return app


app = create_app()


__all__ = ["RequestIdMiddleware", "app", "create_app"]
