"""
Unit tests for MetricsServer HTTP endpoints and the metrics collector.

Uses ``aiohttp.test_utils`` to drive the server's aiohttp application
without binding the configured port.
"""

from unittest.mock import patch

import pytest
from aiohttp.test_utils import TestClient, TestServer

from zitadel_access_operator.observability.metrics import (
    MetricsServer,
    get_metrics_registry,
    metrics_collector,
    status_class,
)


@pytest.fixture
def metrics_server():
    """Create a fresh MetricsServer instance per test."""
    return MetricsServer(port=0)


@pytest.fixture
async def client(metrics_server):
    """Create an aiohttp TestClient from the MetricsServer app."""
    server = TestServer(metrics_server.app)
    async with TestClient(server) as cli:
        yield cli


def sample(name: str, labels: dict) -> float | None:
    return get_metrics_registry().get_sample_value(name, labels)


class TestMetricsEndpoint:
    """Tests for ``GET /metrics``."""

    @pytest.mark.asyncio
    async def test_metrics_exposes_operator_metrics(self, client):
        metrics_collector.set_ready("monitoring", "scraped", True)

        resp = await client.get("/metrics")

        assert resp.status == 200
        body = await resp.text()
        assert "zitadel_access_operator_resource_ready" in body

    @pytest.mark.asyncio
    async def test_metrics_error_returns_500(self, client):
        """When generate_latest raises, the handler returns 500."""
        with patch(
            "zitadel_access_operator.observability.metrics.generate_latest",
            side_effect=RuntimeError("boom"),
        ):
            resp = await client.get("/metrics")
        assert resp.status == 500
        assert "RuntimeError" in await resp.text()


class TestHealthzEndpoint:
    @pytest.mark.asyncio
    async def test_healthz_returns_200_ok(self, client):
        resp = await client.get("/healthz")
        assert resp.status == 200
        assert await resp.text() == "ok"


class TestMetricsCollector:
    @pytest.mark.asyncio
    async def test_track_reconciliation_counts_success(self):
        labels = {
            "resource_type": "securedapplication",
            "namespace": "metrics-ns",
            "name": "tracked",
            "result": "success",
        }
        before = sample("zitadel_access_operator_reconciliation_total", labels) or 0

        async with metrics_collector.track_reconciliation(
            "securedapplication", "metrics-ns", "tracked"
        ):
            pass

        after = sample("zitadel_access_operator_reconciliation_total", labels)
        assert after == before + 1

    @pytest.mark.asyncio
    async def test_track_reconciliation_counts_errors(self):
        labels = {
            "resource_type": "securedapplication",
            "namespace": "metrics-ns",
            "name": "broken",
            "result": "error",
        }

        with pytest.raises(ValueError):
            async with metrics_collector.track_reconciliation(
                "securedapplication", "metrics-ns", "broken"
            ):
                raise ValueError("boom")

        assert sample("zitadel_access_operator_reconciliation_total", labels) >= 1

    def test_forget_resource_drops_ready_series(self):
        labels = {"namespace": "metrics-ns", "name": "deleted"}
        metrics_collector.set_ready("metrics-ns", "deleted", False)
        assert sample("zitadel_access_operator_resource_ready", labels) == 0

        metrics_collector.forget_resource("metrics-ns", "deleted")
        metrics_collector.forget_resource("metrics-ns", "deleted")

        assert sample("zitadel_access_operator_resource_ready", labels) is None

    def test_record_failure_labels_retryability(self):
        labels = {
            "resource_type": "securedapplication",
            "namespace": "metrics-ns",
            "reason": "RoleNotFound",
            "retryable": "false",
        }
        before = sample("zitadel_access_operator_reconciliation_errors_total", labels)

        metrics_collector.record_failure(
            "securedapplication", "metrics-ns", "RoleNotFound", False
        )

        after = sample("zitadel_access_operator_reconciliation_errors_total", labels)
        assert after == (before or 0) + 1


@pytest.mark.parametrize(
    "code, expected", [(200, "2xx"), (404, "4xx"), (503, "5xx"), (None, "error")]
)
def test_status_class(code, expected):
    assert status_class(code) == expected
