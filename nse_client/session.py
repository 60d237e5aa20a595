"""Session cookie cache gating every request to NSE.

NSE only answers API calls that carry the cookies it hands out when a browser
loads one of its HTML pages.  ``SessionCookieCache`` performs that warm-up
round-trip, keeps the resulting cookies for a fixed time-to-live, and makes
sure that callers racing while no valid credential exists share a single
in-flight round-trip instead of each starting their own.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Mapping, Optional

import httpx

from .errors import AuthenticationError
from .telemetry import record_cookie_refresh, record_cookie_wait

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True, slots=True)
class SessionCredential:
    values: Mapping[str, str]
    expires_at: float  # clock seconds
    issued_at: float = field(default=0.0, compare=False)

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at

    def cookie_header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self.values.items())


class SessionCookieCache:
    """Owns the current session credential and refreshes it on demand."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        warmup_url: str,
        *,
        headers: Mapping[str, str] | None = None,
        ttl_seconds: float = 1800.0,
        timeout: float | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._client = client
        self._warmup_url = warmup_url
        self._headers = dict(headers or {})
        self._ttl = float(ttl_seconds)
        self._timeout = timeout
        self._clock = clock
        self._credential: Optional[SessionCredential] = None
        self._inflight: Optional[asyncio.Task[SessionCredential]] = None

    @property
    def credential(self) -> Optional[SessionCredential]:
        return self._credential

    async def acquire(self) -> SessionCredential:
        """Return a valid credential, refreshing it at most once concurrently."""

        credential = self._credential
        if credential is not None and credential.is_valid(self._clock()):
            return credential

        task = self._inflight
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(self._refresh(), name="nse-cookie-refresh")
            task.add_done_callback(self._refresh_done)
            self._inflight = task
        else:
            record_cookie_wait()
            logger.debug("Joining in-flight NSE cookie refresh")

        # Shielded so one waiter's cancellation leaves the shared refresh running.
        return await asyncio.shield(task)

    def invalidate(self, credential: SessionCredential | None = None) -> None:
        """Drop the cached credential, or only ``credential`` if it is still current."""

        if credential is None or self._credential is credential:
            self._credential = None
            self._client.cookies.clear()

    def _refresh_done(self, task: asyncio.Task[SessionCredential]) -> None:
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled():
            # Marks the exception retrieved when every waiter has gone away.
            task.exception()

    async def _refresh(self) -> SessionCredential:
        logger.info("Refreshing NSE session cookies from %s", self._warmup_url)
        # The warm-up must not replay cookies from an earlier session.
        self._client.cookies.clear()
        try:
            response = await self._client.get(
                self._warmup_url,
                headers=self._headers,
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            record_cookie_refresh("error")
            logger.warning("NSE cookie refresh failed: %s", exc)
            raise AuthenticationError(f"Failed to fetch cookies: {exc}") from exc

        if response.status_code != 200:
            record_cookie_refresh("rejected")
            logger.warning("NSE cookie refresh returned status %s", response.status_code)
            raise AuthenticationError(
                f"Failed to fetch cookies: status {response.status_code}",
                status=response.status_code,
            )

        values = {cookie.name: cookie.value or "" for cookie in response.cookies.jar}
        self._client.cookies.clear()
        if not values:
            record_cookie_refresh("empty")
            raise AuthenticationError("Failed to fetch cookies: no Set-Cookie headers", status=response.status_code)

        now = self._clock()
        credential = SessionCredential(
            values=MappingProxyType(values),
            expires_at=now + self._ttl,
            issued_at=now,
        )
        self._credential = credential
        record_cookie_refresh("ok")
        logger.info("NSE session cookies refreshed", extra={"cookie_names": sorted(values)})
        return credential


__all__ = ["SessionCookieCache", "SessionCredential"]
