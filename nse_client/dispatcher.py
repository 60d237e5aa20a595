"""Authenticated GET dispatcher for NSE endpoints."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Mapping, Optional

import httpx

from .errors import DecodeError, TransportError, UpstreamHttpError
from .session import SessionCookieCache
from .telemetry import record_upstream_failure, record_upstream_latency

logger = logging.getLogger(__name__)

_AUTH_STATUSES = frozenset({401, 403})


def _clean_params(params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if not params:
        return {}
    return {key: value for key, value in params.items() if value is not None}


def _endpoint_label(url: str) -> str:
    path = httpx.URL(url).path
    return path.rsplit("/", 1)[-1] or path


class RequestDispatcher:
    """Issue GETs carrying the current session cookies and classify failures.

    No retries happen here and response bodies are never cached.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        cookies: SessionCookieCache,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> None:
        self._client = client
        self._cookies = cookies
        self._headers = dict(headers or {})
        self._timeout = timeout

    @property
    def timeout(self) -> float | None:
        return self._timeout

    async def request(self, url: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """GET ``url`` and return the decoded JSON body."""

        response = await self._get(url, params)
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            record_upstream_failure("decode")
            logger.warning("Undecodable JSON from %s: %s", url, exc)
            raise DecodeError(f"Invalid JSON from {url}: {exc}", url=url) from exc

    async def request_text(self, url: str, params: Optional[Mapping[str, Any]] = None) -> str:
        """GET ``url`` and return the body as text (CSV archives)."""

        response = await self._get(url, params)
        try:
            return response.content.decode(response.charset_encoding or "utf-8")
        except (UnicodeDecodeError, LookupError) as exc:
            record_upstream_failure("decode")
            raise DecodeError(f"Undecodable body from {url}: {exc}", url=url) from exc

    async def _get(self, url: str, params: Optional[Mapping[str, Any]]) -> httpx.Response:
        credential = await self._cookies.acquire()
        headers = {**self._headers, "Cookie": credential.cookie_header()}
        started = time.perf_counter()
        try:
            response = await self._client.get(
                url,
                params=_clean_params(params),
                headers=headers,
                timeout=self._timeout,
            )
        except httpx.DecodingError as exc:
            record_upstream_failure("decode")
            raise DecodeError(f"Undecodable body from {url}: {exc}", url=url) from exc
        except httpx.HTTPError as exc:
            # TimeoutException and ConnectError both derive from httpx.TransportError.
            record_upstream_failure("transport")
            logger.warning("NSE request to %s failed: %s", url, exc)
            raise TransportError(exc, url=url) from exc
        finally:
            record_upstream_latency(_endpoint_label(url), (time.perf_counter() - started) * 1000.0)

        if not response.is_success:
            if response.status_code in _AUTH_STATUSES:
                self._cookies.invalidate(credential)
            record_upstream_failure("status")
            logger.warning("NSE request to %s returned %s", url, response.status_code)
            raise UpstreamHttpError(response.status_code, url=url)
        return response


__all__ = ["RequestDispatcher"]
