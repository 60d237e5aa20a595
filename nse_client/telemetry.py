"""Prometheus metrics helpers for the NSE client."""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest


COOKIE_REFRESH_TOTAL = Counter(
    "nse_cookie_refresh_total",
    "Authentication round-trips made to obtain session cookies.",
    labelnames=("outcome",),
)

COOKIE_WAIT_TOTAL = Counter(
    "nse_cookie_coalesced_waits_total",
    "Callers that joined an authentication round-trip already in flight.",
)

UPSTREAM_LATENCY_MS = Histogram(
    "nse_upstream_latency_ms",
    "Latency of upstream NSE data requests in milliseconds.",
    labelnames=("endpoint",),
    buckets=(25, 50, 100, 200, 400, 800, 1600, 3200, 6400),
)

UPSTREAM_FAILURES_TOTAL = Counter(
    "nse_upstream_failures_total",
    "Upstream request failures broken out by kind.",
    labelnames=("kind",),
)

CHAINS_COMPILED_TOTAL = Counter(
    "nse_option_chains_compiled_total",
    "Option chains compiled into per-strike analytics.",
    labelnames=("segment",),
)


def record_cookie_refresh(outcome: str) -> None:
    COOKIE_REFRESH_TOTAL.labels(outcome=outcome or "unknown").inc()


def record_cookie_wait() -> None:
    COOKIE_WAIT_TOTAL.inc()


def record_upstream_latency(endpoint: str, duration_ms: float) -> None:
    """Record latency for an upstream data request."""

    UPSTREAM_LATENCY_MS.labels(endpoint or "unknown").observe(max(0.0, float(duration_ms)))


def record_upstream_failure(kind: str) -> None:
    UPSTREAM_FAILURES_TOTAL.labels(kind=kind or "unknown").inc()


def record_chain_compiled(segment: str) -> None:
    CHAINS_COMPILED_TOTAL.labels(segment=segment or "unknown").inc()


def prometheus_response() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST


__all__ = [
    "CHAINS_COMPILED_TOTAL",
    "COOKIE_REFRESH_TOTAL",
    "COOKIE_WAIT_TOTAL",
    "UPSTREAM_FAILURES_TOTAL",
    "UPSTREAM_LATENCY_MS",
    "prometheus_response",
    "record_chain_compiled",
    "record_cookie_refresh",
    "record_cookie_wait",
    "record_upstream_failure",
    "record_upstream_latency",
]
