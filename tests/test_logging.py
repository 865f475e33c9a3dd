"""
Tests for reviewflow/utils/logging.py - structured JSON log lines with correlation IDs.
"""
import json
import logging
import sys
import uuid
from types import SimpleNamespace

from reviewflow.utils.logging import (
    StructuredJsonFormatter,
    generate_correlation_id,
    get_correlation_id,
    new_correlation_id,
    request_log_context,
    set_correlation_id,
)


def _record(msg="Review initial sent", level=logging.INFO, **extra):
    record = logging.LogRecord("reviewflow.workers.review_scheduler", level, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestCorrelationId:
    def test_generate(self):
        cid = generate_correlation_id()
        assert len(cid) == 32
        assert cid != generate_correlation_id()

    def test_set_and_get(self):
        set_correlation_id("pass-1")
        assert get_correlation_id() == "pass-1"


class TestStructuredJsonFormatter:
    def test_basic_fields(self):
        set_correlation_id("pass-2")
        entry = json.loads(StructuredJsonFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["module"] == "reviewflow.workers.review_scheduler"
        assert entry["message"] == "Review initial sent"
        assert entry["correlation_id"] == "pass-2"
        assert entry["timestamp"].endswith("Z")

    def test_extra_fields(self):
        entry = json.loads(StructuredJsonFormatter().format(
            _record(company_id=42, request_status_id="abc", stage="initial", unrelated="x")
        ))
        assert entry["company_id"] == 42
        assert entry["request_status_id"] == "abc"
        assert entry["stage"] == "initial"
        assert "unrelated" not in entry

    def test_exception_included(self):
        try:
            raise ValueError("bad settings")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        entry = json.loads(StructuredJsonFormatter().format(record))
        assert "bad settings" in entry["exception"]


class TestRequestLogContext:
    def test_row_fields(self):
        row_id = uuid.uuid4()
        status = SimpleNamespace(company_id=42, id=row_id)
        assert request_log_context(status) == {"company_id": 42, "request_status_id": str(row_id)}

    def test_stage_and_channel(self):
        status = SimpleNamespace(company_id=42, id=uuid.uuid4())
        context = request_log_context(status, stage="initial", channel="email,sms")
        assert context["stage"] == "initial"
        assert context["channel"] == "email,sms"


def test_new_correlation_id_binds_context():
    cid = new_correlation_id()
    assert get_correlation_id() == cid
