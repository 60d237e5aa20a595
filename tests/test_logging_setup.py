import json
import logging

from nse_client.logging_setup import REQUEST_ID_CONTEXT, JsonFormatter, RequestIdFilter


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("nse_client.session", logging.INFO, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_request_id_and_extra():
    token = REQUEST_ID_CONTEXT.set("req-42")
    try:
        record = _record("NSE session cookies refreshed", cookie_names=["nsit"])
        RequestIdFilter().filter(record)
        payload = json.loads(JsonFormatter().format(record))
    finally:
        REQUEST_ID_CONTEXT.reset(token)

    assert payload["level"] == "INFO"
    assert payload["logger"] == "nse_client.session"
    assert payload["message"] == "NSE session cookies refreshed"
    assert payload["request_id"] == "req-42"
    assert payload["extra"] == {"cookie_names": ["nsit"]}


def test_json_formatter_without_context():
    record = _record("plain")
    RequestIdFilter().filter(record)
    payload = json.loads(JsonFormatter().format(record))

    assert "request_id" not in payload
    assert "extra" not in payload
