"""Tests for structured logging and the default activity sink."""
import json
import logging

from twofactor.core.logging import JsonLineFormatter
from twofactor.services.activity_events import ActivityEventType, LoggingActivitySink, make_event


def make_record(message, context=None):
    record = logging.LogRecord("twofactor.test", logging.WARNING, __file__, 1, message, None, None)
    if context is not None:
        record.context = context
    return record


def test_formatter_emits_json_line():
    line = JsonLineFormatter().format(make_record('code "rejected"', {"account_id": "acct-1"}))
    payload = json.loads(line)
    assert payload["level"] == "WARNING"
    assert payload["message"] == 'code "rejected"'
    assert payload["context"] == {"account_id": "acct-1"}


def test_formatter_omits_empty_context():
    payload = json.loads(JsonLineFormatter().format(make_record("plain", {})))
    assert "context" not in payload


def test_logging_sink_writes_security_event(caplog, now):
    caplog.set_level(logging.INFO, logger="twofactor.services.activity_events")
    event = make_event(ActivityEventType.ACCOUNT_LOCKED, "acct-1", now, until=now.isoformat())

    LoggingActivitySink().emit(event)

    record = [r for r in caplog.records if r.name == "twofactor.services.activity_events"][-1]
    assert record.levelno == logging.WARNING
    assert record.context["event_type"] == "account_locked"
    assert record.context["account_id"] == "acct-1"
    assert record.context["until"] == now.isoformat()
