"""Async NSE client.

``NSE`` wires one ``httpx.AsyncClient`` to a ``SessionCookieCache`` and a
``RequestDispatcher`` and exposes the exchange's JSON endpoints.  Most calls
return the upstream JSON untouched; the option chain is additionally compiled
into per-strike analytics by ``compile_option_chain``.
"""

from __future__ import annotations

import asyncio
import io
import logging
import time
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional

import httpx
import pandas as pd

from .config import Settings, default_headers, get_settings
from .dispatcher import RequestDispatcher
from .errors import DecodeError, InvalidArgumentError
from .models import CompiledChain
from .option_chain import OptionChainCompiler, is_index_symbol, max_pain
from .session import Clock, SessionCookieCache

logger = logging.getLogger(__name__)

ADVANCE_DECLINE_URL = "https://www1.nseindia.com/common/json/indicesAdvanceDeclines.json"
FNO_LOTS_PATH = "/content/fo/fo_mktlots.csv"


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def format_date(value: date | datetime) -> str:
    """Render a date the way NSE query strings expect it (DD/MM/YYYY)."""

    return _as_date(value).strftime("%d/%m/%Y")


def _check_range(from_date: date | datetime, to_date: date | datetime) -> None:
    if _as_date(to_date) < _as_date(from_date):
        raise InvalidArgumentError("Argument `to_date` cannot be less than `from_date`")


def _resolve_window(
    from_date: date | datetime | None,
    to_date: date | datetime | None,
    *,
    lookback_days: int,
) -> Dict[str, str]:
    to_date = to_date or date.today()
    from_date = from_date or (to_date - timedelta(days=lookback_days))
    _check_range(from_date, to_date)
    return {"from_date": format_date(from_date), "to_date": format_date(to_date)}


def _optional_window(from_date: date | datetime | None, to_date: date | datetime | None) -> Dict[str, str]:
    if not (from_date and to_date):
        return {}
    _check_range(from_date, to_date)
    return {"from_date": format_date(from_date), "to_date": format_date(to_date)}


def _movers(data: Mapping[str, Any] | None, count: int | None, *, gainers: bool) -> List[Dict[str, Any]]:
    rows = list((data or {}).get("data") or [])
    if not rows:
        return []
    frame = pd.DataFrame.from_records(rows)
    if "pChange" not in frame.columns:
        return []
    change = pd.to_numeric(frame["pChange"], errors="coerce")
    selected = change[change > 0] if gainers else change[change < 0]
    order = selected.sort_values(ascending=not gainers, kind="stable").index
    if count is not None:
        order = order[: max(0, count)]
    return [rows[i] for i in order]


def parse_fno_lots(text: str) -> Dict[str, int]:
    """Map F&O symbols to their current-month lot size from ``fo_mktlots.csv``."""

    try:
        frame = pd.read_csv(io.StringIO(text), header=None, usecols=[1, 3], dtype=str, skipinitialspace=True)
    except (ValueError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise DecodeError(f"Unreadable F&O lot file: {exc}") from exc
    frame.columns = ["symbol", "lot"]
    frame["symbol"] = frame["symbol"].str.strip()
    frame["lot"] = pd.to_numeric(frame["lot"].str.strip(), errors="coerce")
    frame = frame.dropna(subset=["symbol", "lot"])
    frame = frame[frame["symbol"] != ""]
    return {str(symbol): int(lot) for symbol, lot in zip(frame["symbol"], frame["lot"])}


class NSE:
    """Client for NSE's website API with transparent session cookie handling."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._settings = settings or get_settings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()
        headers = default_headers(self._settings)
        timeout = self._settings.request_timeout_seconds
        self.cookies = SessionCookieCache(
            self._client,
            self._settings.warmup_url,
            headers=headers,
            ttl_seconds=self._settings.cookie_ttl_seconds,
            timeout=timeout,
            clock=clock,
        )
        self.dispatcher = RequestDispatcher(self._client, self.cookies, headers=headers, timeout=timeout)
        self._compiler = OptionChainCompiler(self.option_chain)
        self.base_url = self._settings.api_base_url
        self.archive_url = self._settings.nse_archive_url

    async def __aenter__(self) -> "NSE":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    async def _api(self, endpoint: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self.dispatcher.request(f"{self.base_url}/{endpoint}", params)

    # ------------------------------------------------------------------ #
    # Market
    # ------------------------------------------------------------------ #

    async def status(self) -> List[Dict[str, Any]]:
        """Current market state per segment."""
        data = await self._api("marketStatus")
        state = data.get("marketState") if isinstance(data, dict) else None
        if not isinstance(state, list):
            raise DecodeError("marketStatus: unexpected payload (missing marketState)")
        return state

    async def circulars(
        self,
        dept_code: str | None = None,
        from_date: date | datetime | None = None,
        to_date: date | datetime | None = None,
    ) -> Any:
        """Exchange circulars; defaults to the last seven days."""
        params: Dict[str, Any] = _resolve_window(from_date, to_date, lookback_days=7)
        if dept_code:
            params["dept"] = dept_code.upper()
        return await self._api("circulars", params)

    async def block_deals(self) -> Any:
        return await self._api("block-deal")

    async def fno_lots(self) -> Dict[str, int]:
        text = await self.dispatcher.request_text(f"{self.archive_url}{FNO_LOTS_PATH}")
        return parse_fno_lots(text)

    async def advance_decline(self) -> Any:
        return await self.dispatcher.request(ADVANCE_DECLINE_URL)

    async def holidays(self, type: str = "trading") -> Any:  # noqa: A002 - NSE parameter name
        """Trading or clearing holidays."""
        return await self._api("holiday-master", {"type": type})

    # ------------------------------------------------------------------ #
    # Options
    # ------------------------------------------------------------------ #

    async def option_chain(self, symbol: str) -> Any:
        """Raw option chain for an index (NIFTY, BANKNIFTY, ...) or an F&O stock."""
        endpoint = "option-chain-indices" if is_index_symbol(symbol) else "option-chain-equities"
        return await self._api(endpoint, {"symbol": symbol.strip().upper()})

    async def max_pain(self, option_chain: Any, expiry: date | datetime | str) -> float:
        return max_pain(option_chain, expiry)

    async def compile_option_chain(self, symbol: str, expiry: date | datetime | str) -> CompiledChain:
        return await self._compiler.compile(symbol, expiry)

    # ------------------------------------------------------------------ #
    # Quotes
    # ------------------------------------------------------------------ #

    async def equity_meta_info(self, symbol: str) -> Any:
        return await self._api("equity-meta-info", {"symbol": symbol.upper()})

    async def quote(self, symbol: str, type: str = "equity", section: str | None = None) -> Any:  # noqa: A002
        endpoint = "quote-equity" if type == "equity" else "quote-derivative"
        return await self._api(endpoint, {"symbol": symbol.upper(), "section": section})

    async def equity_quote(self, symbol: str) -> Dict[str, Any]:
        """OHLC plus traded volume for an equity."""
        quote, trade_info = await asyncio.gather(
            self.quote(symbol),
            self.quote(symbol, "equity", "trade_info"),
        )
        try:
            price_info = quote["priceInfo"]
            return {
                "date": quote["metadata"]["lastUpdateTime"],
                "open": price_info["open"],
                "high": price_info["intraDayHighLow"]["max"],
                "low": price_info["intraDayHighLow"]["min"],
                "close": price_info.get("close") or price_info.get("lastPrice"),
                "volume": trade_info["securityWiseDP"]["quantityTraded"],
            }
        except (KeyError, TypeError) as exc:
            raise DecodeError(f"{symbol.upper()}: unexpected quote payload (missing {exc})") from exc

    @staticmethod
    def gainers(data: Mapping[str, Any] | None, count: int | None = None) -> List[Dict[str, Any]]:
        """Rows with positive ``pChange``, best first."""
        return _movers(data, count, gainers=True)

    @staticmethod
    def losers(data: Mapping[str, Any] | None, count: int | None = None) -> List[Dict[str, Any]]:
        """Rows with negative ``pChange``, worst first."""
        return _movers(data, count, gainers=False)

    # ------------------------------------------------------------------ #
    # Listings
    # ------------------------------------------------------------------ #

    async def list_fno_stocks(self) -> Any:
        return await self._api("equity-stockIndices", {"index": "SECURITIES IN F&O"})

    async def list_indices(self) -> Any:
        return await self._api("allIndices")

    async def list_index_stocks(self, index: str) -> Any:
        return await self._api("equity-stockIndices", {"index": index.upper()})

    async def list_etf(self) -> Any:
        return await self._api("etf")

    async def list_sme(self) -> Any:
        return await self._api("live-analysis-emerge")

    async def list_sgb(self) -> Any:
        return await self._api("sovereign-gold-bonds")

    async def list_current_ipo(self) -> Any:
        return await self._api("ipo-current-issue")

    async def list_upcoming_ipo(self) -> Any:
        return await self._api("all-upcoming-issues", {"category": "ipo"})

    async def list_past_ipo(
        self,
        from_date: date | datetime | None = None,
        to_date: date | datetime | None = None,
    ) -> Any:
        """Past issues; defaults to the last 90 days."""
        return await self._api("public-past-issues", _resolve_window(from_date, to_date, lookback_days=90))

    # ------------------------------------------------------------------ #
    # Corporate filings
    # ------------------------------------------------------------------ #

    async def actions(
        self,
        segment: str = "equities",
        symbol: str | None = None,
        from_date: date | datetime | None = None,
        to_date: date | datetime | None = None,
    ) -> Any:
        params: Dict[str, Any] = {"index": segment}
        if symbol:
            params["symbol"] = symbol.upper()
        params.update(_optional_window(from_date, to_date))
        return await self._api("corporates-corporateActions", params)

    async def announcements(
        self,
        index: str = "equities",
        symbol: str | None = None,
        fno: bool = False,
        from_date: date | datetime | None = None,
        to_date: date | datetime | None = None,
    ) -> Any:
        return await self._api("corporate-announcements", self._filing_params(index, symbol, fno, from_date, to_date))

    async def board_meetings(
        self,
        index: str = "equities",
        symbol: str | None = None,
        fno: bool = False,
        from_date: date | datetime | None = None,
        to_date: date | datetime | None = None,
    ) -> Any:
        return await self._api("corporate-board-meetings", self._filing_params(index, symbol, fno, from_date, to_date))

    @staticmethod
    def _filing_params(
        index: str,
        symbol: str | None,
        fno: bool,
        from_date: date | datetime | None,
        to_date: date | datetime | None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"index": index}
        if symbol:
            params["symbol"] = symbol.upper()
        if fno:
            params["fo_sec"] = "true"
        params.update(_optional_window(from_date, to_date))
        return params


__all__ = ["NSE", "format_date", "parse_fno_lots"]
