from datetime import date, datetime

import pytest

from nse_client.errors import DecodeError, InsufficientDataError, NoDataError
from nse_client.models import OptionChainDocument
from nse_client.option_chain import (
    atm_strike,
    compile_document,
    format_expiry,
    is_index_symbol,
    max_pain,
    round2,
    strike_increment,
    strike_pcr,
)

EXPIRY = "28-Dec-2023"
OTHER_EXPIRY = "04-Jan-2024"


def leg(oi, last=0.0, change=0.0, iv=0.0):
    return {"lastPrice": last, "openInterest": oi, "change": change, "impliedVolatility": iv}


def row(strike, expiry=EXPIRY, ce=None, pe=None):
    entry = {"strikePrice": strike, "expiryDate": expiry}
    if ce is not None:
        entry["CE"] = ce
    if pe is not None:
        entry["PE"] = pe
    return entry


def payload(underlying, rows):
    return {"records": {"timestamp": "27-Dec-2023 15:30:00", "underlyingValue": underlying, "data": rows}}


def test_format_expiry_matches_nse_expiry_strings():
    assert format_expiry(date(2023, 12, 28)) == EXPIRY
    assert format_expiry(datetime(2024, 1, 4, 15, 30)) == OTHER_EXPIRY
    assert format_expiry(" 28-Dec-2023 ") == EXPIRY


@pytest.mark.parametrize("symbol", ["nifty", "NIFTY", "BankNifty", "finnifty", "NIFTYIT"])
def test_index_symbols_are_case_insensitive(symbol):
    assert is_index_symbol(symbol)


def test_equities_are_not_index_symbols():
    assert not is_index_symbol("RELIANCE")
    assert not is_index_symbol("")


def test_round2_rounds_half_up():
    assert round2(1.005 + 1e-12) == 1.01
    assert round2(2 / 3) == 0.67
    assert round2(1.5) == 1.5


@pytest.mark.parametrize(
    "underlying, expected",
    [(18124, 18100), (18130, 18150), (18125, 18150), (18074.9, 18050)],
)
def test_atm_rounds_to_nearest_strike(underlying, expected):
    document = OptionChainDocument.model_validate(payload(underlying, [row(18100), row(18050)]))
    increment = strike_increment(document.records.data)

    assert increment == 50
    assert atm_strike(underlying, increment) == expected


def test_increment_skips_repeated_strikes_across_expiries():
    document = OptionChainDocument.model_validate(
        payload(18000, [row(18000), row(18000, OTHER_EXPIRY), row(18100), row(18200)])
    )
    assert strike_increment(document.records.data) == 100


def test_single_strike_is_insufficient():
    with pytest.raises(InsufficientDataError):
        compile_document(payload(18000, [row(18000, ce=leg(10), pe=leg(10))]), EXPIRY, symbol="NIFTY")


def test_strike_pcr_null_guard():
    assert strike_pcr(0, 50) is None
    assert strike_pcr(50, 0) is None
    assert strike_pcr(0, 0) is None
    assert strike_pcr(80, 120) == 1.5
    assert strike_pcr(300, 100) == 0.33


def test_max_pain_picks_largest_signed_sum():
    # S=17900: -(18000-17900) * PE(18000)=120 -> -12000
    # S=18000: -(18000-17900) * CE(17900)=100 -> -10000
    raw = payload(
        17950,
        [
            row(17900, ce=leg(100), pe=leg(50)),
            row(18000, ce=leg(80), pe=leg(120)),
        ],
    )
    assert max_pain(raw, EXPIRY) == 18000


def test_max_pain_ignores_other_expiries():
    raw = payload(
        17950,
        [
            row(17900, ce=leg(100), pe=leg(50)),
            row(18000, ce=leg(80), pe=leg(120)),
            row(18100, OTHER_EXPIRY, ce=leg(1), pe=leg(1_000_000)),
        ],
    )
    assert max_pain(raw, EXPIRY) == 18000


def test_max_pain_three_strikes():
    # 100: -(100*40) - (200*10) = -6000
    # 200: -(100*30) - (100*10) = -4000
    # 300: -(200*30) - (100*20) = -8000
    raw = payload(
        200,
        [
            row(100, ce=leg(30), pe=leg(5)),
            row(200, ce=leg(20), pe=leg(40)),
            row(300, ce=leg(7), pe=leg(10)),
        ],
    )
    assert max_pain(raw, EXPIRY) == 200


def test_max_pain_without_entries_for_expiry():
    with pytest.raises(NoDataError):
        max_pain(payload(100, [row(100, OTHER_EXPIRY), row(200, OTHER_EXPIRY)]), EXPIRY)


def test_compile_builds_per_strike_analytics():
    raw = payload(
        18124,
        [
            row(18100, ce=leg(100, last=120.5, change=-3.2, iv=12.1), pe=leg(50, last=90.0, change=4.0, iv=13.4)),
            row(18050, ce=leg(80, last=150.0), pe=leg(120, last=70.0)),
            row(18150, ce=leg(40, last=95.0)),
            row(18100, OTHER_EXPIRY, ce=leg(9999), pe=leg(9999)),
        ],
    )

    compiled = compile_document(raw, date(2023, 12, 28), symbol="NIFTY")

    assert compiled.expiry == EXPIRY
    assert compiled.timestamp == "27-Dec-2023 15:30:00"
    assert compiled.underlying == 18124
    assert compiled.atm == 18100
    assert sorted(compiled.chain) == [18050, 18100, 18150]

    strike = compiled.chain[18100]
    assert (strike.ce.last, strike.ce.oi, strike.ce.chg, strike.ce.iv) == (120.5, 100, -3.2, 12.1)
    assert (strike.pe.last, strike.pe.oi, strike.pe.chg, strike.pe.iv) == (90.0, 50, 4.0, 13.4)
    assert strike.pcr == 0.5
    assert compiled.chain[18050].pcr == 1.5

    assert compiled.coi_total == 220
    assert compiled.poi_total == 170
    assert compiled.max_coi == 100
    assert compiled.max_poi == 120
    assert compiled.pcr == 0.77
    assert compiled.maxpain == max_pain(raw, EXPIRY)


def test_missing_side_defaults_to_zero():
    raw = payload(18000, [row(18000, ce=leg(100, last=12.0)), row(18050, pe=leg(30))])

    compiled = compile_document(raw, EXPIRY)

    only_call = compiled.chain[18000]
    assert only_call.pe.model_dump() == {"last": 0, "oi": 0, "chg": 0, "iv": 0}
    assert only_call.pcr is None
    only_put = compiled.chain[18050]
    assert only_put.ce.model_dump() == {"last": 0, "oi": 0, "chg": 0, "iv": 0}
    assert only_put.pcr is None


def test_aggregate_pcr_is_null_without_call_interest():
    raw = payload(100, [row(100, pe=leg(10)), row(200, pe=leg(20))])

    compiled = compile_document(raw, EXPIRY)

    assert compiled.coi_total == 0
    assert compiled.pcr is None


def test_no_entries_for_expiry_raises_no_data():
    raw = payload(100, [row(100, OTHER_EXPIRY), row(200, OTHER_EXPIRY)])
    with pytest.raises(NoDataError) as excinfo:
        compile_document(raw, EXPIRY, symbol="RELIANCE")
    assert excinfo.value.expiry == EXPIRY
    assert excinfo.value.symbol == "RELIANCE"


@pytest.mark.parametrize("raw", [{}, {"records": {"data": []}}, {"records": {"underlyingValue": "x"}}, []])
def test_malformed_document_raises_decode_error(raw):
    with pytest.raises(DecodeError):
        compile_document(raw, EXPIRY)


def test_payload_uses_camel_case_and_string_strikes():
    raw = payload(18000, [row(18000, ce=leg(10), pe=leg(20)), row(18050, ce=leg(5), pe=leg(5))])

    body = compile_document(raw, EXPIRY).to_payload()

    assert set(body) == {
        "expiry",
        "timestamp",
        "underlying",
        "atm",
        "maxpain",
        "maxCoi",
        "maxPoi",
        "coiTotal",
        "poiTotal",
        "pcr",
        "chain",
    }
    assert body["chain"]["18000"] == {
        "ce": {"last": 0.0, "oi": 10, "chg": 0.0, "iv": 0.0},
        "pe": {"last": 0.0, "oi": 20, "chg": 0.0, "iv": 0.0},
        "pcr": 2.0,
    }


def test_compiled_chain_is_read_only():
    raw = payload(18000, [row(18000, ce=leg(10), pe=leg(20)), row(18050, ce=leg(5), pe=leg(5))])

    compiled = compile_document(raw, EXPIRY)

    with pytest.raises(TypeError):
        compiled.chain[18100] = compiled.chain[18000]
    with pytest.raises(TypeError):
        del compiled.chain[18000]
    assert sorted(compiled.chain) == [18000, 18050]
    assert set(compiled.to_payload()["chain"]) == {"18000", "18050"}
