"""Option-chain compiler.

Turns NSE's raw ``option-chain-indices`` / ``option-chain-equities`` payload
into per-strike analytics for one expiry: call/put snapshots, put/call ratio,
the at-the-money strike and the max-pain strike.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, Mapping, Sequence

from pydantic import ValidationError

from .config import INDEX_SYMBOLS
from .errors import DecodeError, InsufficientDataError, NoDataError
from .models import CompiledChain, OptionChainDocument, SideAnalytics, StrikeAnalytics, StrikeEntry
from .telemetry import record_chain_compiled

logger = logging.getLogger(__name__)

# NSE writes expiries as e.g. "28-Dec-2023".
EXPIRY_FORMAT = "%d-%b-%Y"

ChainFetcher = Callable[[str], Awaitable[Any]]


def is_index_symbol(symbol: str) -> bool:
    return (symbol or "").strip().lower() in INDEX_SYMBOLS


def format_expiry(expiry: date | datetime | str) -> str:
    if isinstance(expiry, str):
        return expiry.strip()
    if isinstance(expiry, datetime):
        expiry = expiry.date()
    return expiry.strftime(EXPIRY_FORMAT)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def round2(value: float) -> float:
    return math.floor(value * 100 + 0.5) / 100


def parse_document(raw: Any, *, symbol: str = "") -> OptionChainDocument:
    if isinstance(raw, OptionChainDocument):
        return raw
    if not isinstance(raw, Mapping) or "records" not in raw:
        raise DecodeError(f"{symbol or 'option chain'}: payload has no 'records' section")
    try:
        return OptionChainDocument.model_validate(raw)
    except ValidationError as exc:
        raise DecodeError(f"{symbol or 'option chain'}: malformed option chain: {exc.error_count()} errors") from exc


def strike_increment(entries: Sequence[StrikeEntry], *, symbol: str = "") -> float:
    """Spacing between the first two distinct strikes, in raw order."""

    first = None
    for entry in entries:
        if first is None:
            first = entry.strike_price
        elif entry.strike_price != first:
            return abs(first - entry.strike_price)
    raise InsufficientDataError(symbol, "need at least two distinct strikes to derive strike spacing")


def atm_strike(underlying: float, increment: float) -> float:
    atm = increment * round_half_up(underlying / increment)
    return int(atm) if float(atm).is_integer() else atm


def strike_pcr(ce_oi: float, pe_oi: float) -> float | None:
    if ce_oi == 0 or pe_oi == 0:
        return None
    return round2(pe_oi / ce_oi)


def max_pain(raw: Any, expiry: date | datetime | str, *, symbol: str = "") -> float:
    """Strike that maximizes the signed writer payout sum at ``expiry``.

    For each candidate strike S, every other strike T of the same expiry adds
    ``-(S - T) * T.call_oi`` when S > T and ``-(T - S) * T.put_oi`` when S < T.
    The strike with the largest (least negative) total wins; ties keep the
    earliest strike in raw order.
    """

    document = parse_document(raw, symbol=symbol)
    expiry_str = format_expiry(expiry)
    entries = document.entries_for(expiry_str)
    if not entries:
        raise NoDataError(symbol, expiry_str)
    return _max_pain(entries)


def _max_pain(entries: Sequence[StrikeEntry]) -> float:
    best_strike = entries[0].strike_price
    best_pain = -math.inf
    for candidate in entries:
        strike = candidate.strike_price
        pain = 0.0
        for other in entries:
            diff = strike - other.strike_price
            if diff > 0:
                pain += -diff * other.call.open_interest
            elif diff < 0:
                pain += diff * other.put.open_interest
        if pain > best_pain:
            best_pain = pain
            best_strike = strike
    return best_strike


def compile_document(raw: Any, expiry: date | datetime | str, *, symbol: str = "") -> CompiledChain:
    """Compile an already-fetched option chain for one expiry."""

    document = parse_document(raw, symbol=symbol)
    records = document.records
    expiry_str = format_expiry(expiry)

    increment = strike_increment(records.data, symbol=symbol)
    atm = atm_strike(records.underlying_value, increment)

    entries = document.entries_for(expiry_str)
    if not entries:
        raise NoDataError(symbol, expiry_str)

    chain: Dict[float, StrikeAnalytics] = {}
    coi_total: float = 0
    poi_total: float = 0
    for entry in entries:
        ce = SideAnalytics.from_leg(entry.call)
        pe = SideAnalytics.from_leg(entry.put)
        coi_total += ce.oi
        poi_total += pe.oi
        chain[entry.strike_price] = StrikeAnalytics(ce=ce, pe=pe, pcr=strike_pcr(ce.oi, pe.oi))

    compiled = CompiledChain(
        expiry=expiry_str,
        timestamp=records.timestamp,
        underlying=records.underlying_value,
        atm=atm,
        maxpain=_max_pain(entries),
        max_coi=max(item.ce.oi for item in chain.values()),
        max_poi=max(item.pe.oi for item in chain.values()),
        coi_total=coi_total,
        poi_total=poi_total,
        pcr=round2(poi_total / coi_total) if coi_total else None,
        chain=chain,
    )
    logger.info(
        "Compiled option chain",
        extra={
            "symbol": symbol,
            "expiry": expiry_str,
            "strikes": len(chain),
            "atm": compiled.atm,
            "maxpain": compiled.maxpain,
        },
    )
    return compiled


class OptionChainCompiler:
    """Fetch a raw option chain and compile it; keeps no state between calls."""

    def __init__(self, fetch_chain: ChainFetcher) -> None:
        self._fetch_chain = fetch_chain

    async def compile(self, symbol: str, expiry: date | datetime | str) -> CompiledChain:
        raw = await self._fetch_chain(symbol)
        compiled = compile_document(raw, expiry, symbol=symbol.strip().upper())
        record_chain_compiled("index" if is_index_symbol(symbol) else "equity")
        return compiled


__all__ = [
    "EXPIRY_FORMAT",
    "OptionChainCompiler",
    "atm_strike",
    "compile_document",
    "format_expiry",
    "is_index_symbol",
    "max_pain",
    "parse_document",
    "round2",
    "round_half_up",
    "strike_increment",
    "strike_pcr",
]
