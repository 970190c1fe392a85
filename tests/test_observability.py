"""Tests for logging, correlation and redaction utilities."""

import json
import logging

from wadesk.observability.correlation import correlation_scope, get_correlation_id
from wadesk.observability.logging import ROOT_LOGGER, JsonFormatter, configure_logging, get_logger
from wadesk.observability.redaction import (
    hash_identifier,
    redact_string,
    redact_value,
    safe_log_context,
)


class TestRedaction:
    def test_redact_chat_id_number(self):
        result = redact_string("peer 15551234567@c.us")
        assert "15551234567" not in result
        assert "[REDACTED]" in result

    def test_redact_email(self):
        result = redact_string("Email: user@example.com")
        assert "user@example.com" not in result

    def test_redact_value_dict_only_keys(self):
        result = redact_value({"body": "private", "to": "15551234567@c.us"})
        assert "private" not in result
        assert "body" in result

    def test_redact_value_list_only_len(self):
        assert redact_value(["a", "b", "c"]) == "list(len=3)"

    def test_scalars(self):
        assert redact_value(None) == "null"
        assert redact_value(True) == "true"
        assert redact_value(3) == "3"

    def test_long_strings_only_report_length(self):
        payload = "A" * 5000
        assert redact_value(payload) == "str(len=5000)"

    def test_bytes_only_report_length(self):
        assert redact_value(b"\x00\x01\x02") == "bytes(len=3)"

    def test_group_ids_are_masked(self):
        result = redact_string("group 120363040000000000@g.us")
        assert "120363040000000000" not in result

    def test_safe_log_context(self):
        ctx = safe_log_context(number="+1 555 123 4567", count=42)
        assert "[REDACTED]" in ctx["number"]
        assert ctx["count"] == "42"

    def test_hash_identifier_stable_and_short(self):
        assert hash_identifier("15551234567@c.us") == hash_identifier("15551234567@c.us")
        assert len(hash_identifier("15551234567@c.us")) == 12
        assert hash_identifier("a@c.us") != hash_identifier("b@c.us")


class TestCorrelation:
    def test_scope_binds_and_restores(self):
        assert get_correlation_id() == ""
        with correlation_scope("cid-1") as cid:
            assert cid == "cid-1"
            assert get_correlation_id() == "cid-1"
        assert get_correlation_id() == ""

    def test_scope_generates_when_missing(self):
        with correlation_scope() as cid:
            assert cid
            assert get_correlation_id() == cid


class TestJsonFormatter:
    def _record(self, **extra):
        record = logging.LogRecord("wadesk.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_fields(self):
        with correlation_scope("cid-9"):
            line = json.loads(JsonFormatter().format(self._record(extra_fields={"chat_hash": "abc"})))
        assert line["message"] == "hello world"
        assert line["level"] == "INFO"
        assert line["logger"] == "wadesk.test"
        assert line["correlationId"] == "cid-9"
        assert line["chat_hash"] == "abc"

    def test_no_correlation_outside_scope(self):
        line = json.loads(JsonFormatter().format(self._record()))
        assert "correlationId" not in line

    @staticmethod
    def _json_handlers(logger):
        return [h for h in logger.handlers if isinstance(h.formatter, JsonFormatter)]

    def test_get_logger_configures_once(self):
        logger = get_logger("wadesk.test.once")
        get_logger("wadesk.test.once")
        root = logging.getLogger(ROOT_LOGGER)
        assert self._json_handlers(logger) == []
        assert len(self._json_handlers(root)) == 1
        assert root.propagate is False

    def test_foreign_handler_does_not_block_install(self):
        root = logging.getLogger(ROOT_LOGGER)
        ours = self._json_handlers(root)
        for handler in ours:
            root.removeHandler(handler)
        foreign = logging.NullHandler()
        root.addHandler(foreign)
        try:
            get_logger("wadesk.test.foreign")
            assert len(self._json_handlers(root)) == 1
            assert foreign in root.handlers
        finally:
            root.removeHandler(foreign)
            for handler in self._json_handlers(root):
                root.removeHandler(handler)
            for handler in ours:
                root.addHandler(handler)

    def test_get_logger_namespaces_foreign_names(self):
        assert get_logger("tests.elsewhere").name == "wadesk.tests.elsewhere"
        assert get_logger("wadesk").name == "wadesk"

    def test_configure_logging_sets_level(self):
        root = configure_logging("debug")
        try:
            configure_logging("debug")
            assert root.level == logging.DEBUG
            assert len(self._json_handlers(root)) == 1
        finally:
            configure_logging(logging.INFO)
