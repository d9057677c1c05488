"""Unit tests for structured logging helpers."""

import contextvars
import json
import logging

from zitadel_access_operator.observability.logging import (
    CorrelationIDFilter,
    HealthProbeFilter,
    StructuredFormatter,
    get_correlation_id,
    set_correlation_id,
)


def make_record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "zitadel_access_operator.test", logging.INFO, __file__, 1, message, None, None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_emits_structured_fields():
    record = make_record(
        "Created Zitadel OIDC application",
        resource_name="grafana",
        namespace="monitoring",
        step="oidc_app",
        correlation_id="abc123",
    )

    data = json.loads(StructuredFormatter().format(record))

    assert data["message"] == "Created Zitadel OIDC application"
    assert data["level"] == "INFO"
    assert data["step"] == "oidc_app"
    assert data["resource_name"] == "grafana"
    assert data["correlation_id"] == "abc123"
    assert "reason" not in data


def test_correlation_filter_reuses_current_id():
    set_correlation_id("pass-1")
    record = make_record("hello")

    assert CorrelationIDFilter().filter(record)
    assert record.correlation_id == "pass-1"
    assert get_correlation_id() == "pass-1"


def test_correlation_filter_starts_an_id_when_unset():
    record = make_record("hello")

    assert contextvars.Context().run(CorrelationIDFilter().filter, record)
    assert len(record.correlation_id) == 8


def test_health_probe_filter():
    probe_filter = HealthProbeFilter()

    assert not probe_filter.filter(make_record('"GET /healthz HTTP/1.1" 200'))
    assert not probe_filter.filter(make_record('"GET /metrics HTTP/1.1" 200'))
    assert probe_filter.filter(make_record("Reconciliation completed"))
    assert HealthProbeFilter(suppress_health_logs=False).filter(
        make_record("GET /healthz")
    )
