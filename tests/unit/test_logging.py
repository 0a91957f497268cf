#  Project Scaffolder - Structured Logging Tests
#
#  Tests for JSON formatter, context variable propagation and request metadata.
#
#  Depends on: scaffolder/logging_config.py
#  Used by:    pytest

import json
import logging

from scaffolder.logging_config import (
    JSONFormatter,
    get_request_meta,
    project_id_var,
    request_id_var,
    set_request_id,
    set_request_meta,
    setup_logging,
)


def _record(msg="hello world"):
    return logging.LogRecord(
        name="test", level=logging.INFO, pathname="", lineno=0,
        msg=msg, args=(), exc_info=None,
    )


class TestJSONFormatter:
    def test_output_is_valid_json(self):
        data = json.loads(JSONFormatter().format(_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "hello world"
        assert data["timestamp"].endswith("Z")

    def test_request_id_included_when_set(self):
        token = request_id_var.set("req-abc123")
        try:
            data = json.loads(JSONFormatter().format(_record("with request")))
            assert data["request_id"] == "req-abc123"
        finally:
            request_id_var.reset(token)

    def test_project_id_included_when_set(self):
        token = project_id_var.set("proj-xyz")
        try:
            data = json.loads(JSONFormatter().format(_record("with project")))
            assert data["project_id"] == "proj-xyz"
        finally:
            project_id_var.reset(token)

    def test_context_omitted_when_unset(self):
        data = json.loads(JSONFormatter().format(_record()))
        assert "request_id" not in data
        assert "project_id" not in data

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            import sys
            record = logging.LogRecord(
                name="test", level=logging.ERROR, pathname="", lineno=0,
                msg="failed", args=(), exc_info=sys.exc_info(),
            )
        data = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: boom" in data["exception"]


class TestRequestMeta:
    def test_defaults(self):
        set_request_id(None)
        set_request_meta(None, None)
        meta = get_request_meta()
        assert meta == {"ip_address": "unknown", "user_agent": None, "request_id": None}

    def test_values_propagate(self):
        set_request_id("rid-1")
        set_request_meta("10.0.0.1", "pytest-agent")
        try:
            meta = get_request_meta()
            assert meta["ip_address"] == "10.0.0.1"
            assert meta["user_agent"] == "pytest-agent"
            assert meta["request_id"] == "rid-1"
        finally:
            set_request_id(None)
            set_request_meta(None, None)


class TestSetupLogging:
    def test_configures_scaffolder_logger(self):
        logger = logging.getLogger("scaffolder")
        saved = list(logger.handlers)
        logger.handlers.clear()
        try:
            setup_logging(level="DEBUG", fmt="json")
            assert logger.level == logging.DEBUG
            assert isinstance(logger.handlers[0].formatter, JSONFormatter)
        finally:
            logger.handlers[:] = saved
            logger.setLevel(logging.NOTSET)
