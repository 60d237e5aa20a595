"""Typed exceptions raised by the NSE client."""

from __future__ import annotations


class NSEError(Exception):
    """Base class for every failure surfaced by this package."""

    kind = "nse_error"


class AuthenticationError(NSEError):
    """The cookie warm-up round-trip failed or returned a non-success status."""

    kind = "authentication"

    def __init__(self, message: str, *, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class UpstreamHttpError(NSEError):
    """NSE answered a data request with a non-success status."""

    kind = "upstream_http"

    def __init__(self, status: int, url: str = "") -> None:
        self.status = status
        self.url = url
        super().__init__(f"Request failed: {status} ({url})" if url else f"Request failed: {status}")


class TransportError(NSEError):
    """Network-level failure: connection refused, DNS, timeout."""

    kind = "transport"

    def __init__(self, cause: BaseException, url: str = "") -> None:
        self.cause = cause
        self.url = url
        detail = str(cause) or type(cause).__name__
        super().__init__(f"Request failed: {detail}")


class DecodeError(NSEError):
    """The upstream body could not be interpreted."""

    kind = "decode"

    def __init__(self, message: str, *, url: str = "") -> None:
        self.url = url
        super().__init__(message)


class InsufficientDataError(NSEError):
    """The option chain does not carry enough strikes to derive spacing."""

    kind = "insufficient_data"

    def __init__(self, symbol: str, message: str) -> None:
        self.symbol = symbol
        super().__init__(f"{symbol}: {message}")


class NoDataError(NSEError):
    """No strike entries exist for the requested expiry."""

    kind = "no_data"

    def __init__(self, symbol: str, expiry: str) -> None:
        self.symbol = symbol
        self.expiry = expiry
        super().__init__(f"{symbol}: no option chain entries for expiry {expiry}")


class InvalidArgumentError(NSEError, ValueError):
    """A caller-supplied argument is out of range."""

    kind = "invalid_argument"


def is_retryable(exc: BaseException) -> bool:
    """Whether a caller-level retry could plausibly succeed."""

    if isinstance(exc, (TransportError, AuthenticationError)):
        return True
    if isinstance(exc, UpstreamHttpError):
        return exc.status >= 500 or exc.status in (401, 403)
    return False


__all__ = [
    "AuthenticationError",
    "DecodeError",
    "InsufficientDataError",
    "InvalidArgumentError",
    "NSEError",
    "NoDataError",
    "TransportError",
    "UpstreamHttpError",
    "is_retryable",
]
