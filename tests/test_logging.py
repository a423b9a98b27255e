"""Tests for the structured logging system (muster_kernel/logging_config.py)."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from muster_kernel.exceptions import AccessDeniedError, MarkValidationError
from muster_kernel.domain.access_policy import DenyReason, Entity, Operation
from muster_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite config."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "muster_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("invite_claimed", extra={"assigned_role": "officer"})

        record = _parse_log(stream)
        assert record["assigned_role"] == "officer"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="req-1", actor_id="idp|captain", section="junior")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "req-1"
        assert record["actor_id"] == "idp|captain"
        assert record["section"] == "junior"

    def test_revert_data_never_rendered(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info(
            "careless",
            extra={"revert_data": {"member": {"name": "Alex Carter"}}},
        )

        record = _parse_log(stream)
        assert "revert_data" not in record
        assert "Alex Carter" not in stream.getvalue()

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_and_kind_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise MarkValidationError(
                member_name="Alex Carter",
                mark_date="2025-01-10",
                rule="score_range",
                message="out of range",
                field="score",
            )
        except MarkValidationError:
            get_logger("test").warning("mark_rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "MARK_VALIDATION_FAILED"
        assert record["exc_kind"] == "validation_failed"
        assert record["exc_rule"] == "score_range"
        assert record["exc_mark_date"] == "2025-01-10"

    def test_enum_attributes_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise AccessDeniedError(
                DenyReason.SELF_ACTION, Entity.ROLE_ASSIGNMENT, Operation.DELETE
            )
        except AccessDeniedError:
            get_logger("test").warning("denied", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_reason"] == "self_action"
        assert record["exc_entity"] == "role_assignment"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "actor_id" not in record

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_uuid", extra={"audit_log_id": uid})

        assert _parse_log(stream)["audit_log_id"] == str(uid)

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # default level is INFO, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_set_and_get(self):
        LogContext.set(correlation_id="x", entity_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "entity_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(section="company")
        with LogContext.bind(section="junior"):
            assert LogContext.get_all()["section"] == "junior"
        assert LogContext.get_all()["section"] == "company"

    def test_bind_restores_none(self):
        assert "entity_id" not in LogContext.get_all()
        with LogContext.bind(entity_id="temp"):
            assert LogContext.get_all()["entity_id"] == "temp"
        assert "entity_id" not in LogContext.get_all()

    def test_bind_rejects_unknown_field(self):
        with pytest.raises(TypeError):
            LogContext.bind(event_id="nope")


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        assert len(logging.getLogger("muster_kernel").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("services.invites").name == "muster_kernel.services.invites"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["logger"] == "muster_kernel.deep.nested.module"
