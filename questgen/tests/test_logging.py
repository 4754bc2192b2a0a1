"""
Tests for the log formatters and log_event.
"""
import json
import logging

from questgen.core.logging import (
    FIELD_LIMIT,
    JsonFormatter,
    PrettyFormatter,
    RequestIdFilter,
    latency_bucket_ms,
    log_event,
    request_id_ctx_var,
)


def _record(**extra):
    record = logging.LogRecord("questgen.billing", logging.INFO, __file__, 1, "[billing] approved", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extra_and_request_id():
    token = request_id_ctx_var.set("rid-1")
    try:
        record = _record(tx_id="tx_1", plan="yearly")
        RequestIdFilter().filter(record)
        payload = json.loads(JsonFormatter().format(record))
    finally:
        request_id_ctx_var.reset(token)

    assert payload["message"] == "[billing] approved"
    assert payload["logger"] == "questgen.billing"
    assert payload["request_id"] == "rid-1"
    assert payload["tx_id"] == "tx_1"
    assert payload["plan"] == "yearly"


def test_pretty_formatter_prints_fields_sorted():
    line = PrettyFormatter().format(_record(plan="yearly", tx_id="tx_1"))
    assert "[questgen.billing]" in line
    assert line.endswith("[billing] approved plan=yearly tx_id=tx_1")


def test_latency_buckets():
    assert latency_bucket_ms(None) == "unknown"
    assert latency_bucket_ms(3) == "<10ms"
    assert latency_bucket_ms(250) == "100-500ms"
    assert latency_bucket_ms(5000) == ">=1000ms"


def test_log_event_truncates_long_values(caplog):
    with caplog.at_level(logging.INFO, logger="questgen"):
        log_event("info", "[notifications] sent", user_ref="id:u1", kind="EXPIRED", extra={"body": "x" * 2000})

    record = caplog.records[-1]
    assert record.user_ref == "id:u1"
    assert record.kind == "EXPIRED"
    assert record.body.endswith("...<truncated>")
    assert len(record.body) == FIELD_LIMIT + len("...<truncated>")
