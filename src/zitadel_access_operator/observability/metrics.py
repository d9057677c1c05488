"""
Prometheus metrics for the Zitadel access operator.

This module provides metrics collection for monitoring reconciliation
throughput, external API health and resource readiness.
"""

import logging
import time
from contextlib import asynccontextmanager

# aiohttp is provided transitively by kopf; the server mirrors kopf's own usage.
from aiohttp.web import (
    Application,
    AppRunner,
    Request,
    Response,
    TCPSite,
)
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

# Global metrics registry
_metrics_registry: CollectorRegistry | None = None

RECONCILIATION_TOTAL = Counter(
    "zitadel_access_operator_reconciliation_total",
    "Total number of reconciliation attempts",
    ["resource_type", "namespace", "name", "result"],
    registry=None,  # Will be set during initialization
)

RECONCILIATION_DURATION = Histogram(
    "zitadel_access_operator_reconciliation_duration_seconds",
    "Time spent on reconciliation operations",
    ["resource_type", "namespace", "operation"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
    registry=None,
)

RECONCILIATION_ERRORS = Counter(
    "zitadel_access_operator_reconciliation_errors_total",
    "Total number of failed reconciliation passes by failure reason",
    ["resource_type", "namespace", "reason", "retryable"],
    registry=None,
)

RESOURCE_READY = Gauge(
    "zitadel_access_operator_resource_ready",
    "Readiness of a SecuredApplication (1=ready, 0=not ready)",
    ["namespace", "name"],
    registry=None,
)

EXTERNAL_API_REQUESTS = Counter(
    "zitadel_access_operator_external_api_requests_total",
    "Requests sent to external APIs by outcome",
    ["service", "method", "status_class"],
    registry=None,
)

CREDENTIAL_SECRET_WRITES = Counter(
    "zitadel_access_operator_credential_secret_writes_total",
    "OIDC client credentials written to Kubernetes Secrets",
    ["namespace"],
    registry=None,
)


def get_metrics_registry() -> CollectorRegistry:
    """Get or create the global metrics registry."""
    global _metrics_registry

    if _metrics_registry is None:
        _metrics_registry = CollectorRegistry()
        for metric in [
            RECONCILIATION_TOTAL,
            RECONCILIATION_DURATION,
            RECONCILIATION_ERRORS,
            RESOURCE_READY,
            EXTERNAL_API_REQUESTS,
            CREDENTIAL_SECRET_WRITES,
        ]:
            _metrics_registry.register(metric)

    return _metrics_registry


def status_class(status_code: int | None) -> str:
    """Collapse an HTTP status code into 2xx/4xx/5xx, or 'error' without one."""
    if status_code is None:
        return "error"
    return f"{status_code // 100}xx"


class MetricsCollector:
    """Collects and manages metrics for the Zitadel access operator."""

    def __init__(self):
        self.registry = get_metrics_registry()

    @asynccontextmanager
    async def track_reconciliation(
        self,
        resource_type: str,
        namespace: str,
        name: str,
        operation: str = "reconcile",
    ):
        """
        Context manager to track reconciliation operations.

        Args:
            resource_type: Type of resource being reconciled
            namespace: Namespace of the resource
            name: Name of the resource
            operation: Type of operation being performed
        """
        start_time = time.time()
        result = "unknown"

        try:
            yield
            result = "success"
        except Exception:
            result = "error"
            raise
        finally:
            duration = time.time() - start_time

            RECONCILIATION_TOTAL.labels(
                resource_type=resource_type,
                namespace=namespace,
                name=name,
                result=result,
            ).inc()

            RECONCILIATION_DURATION.labels(
                resource_type=resource_type, namespace=namespace, operation=operation
            ).observe(duration)

    def record_failure(
        self, resource_type: str, namespace: str, reason: str, retryable: bool
    ) -> None:
        """Count a pass that ended with a failure condition."""
        RECONCILIATION_ERRORS.labels(
            resource_type=resource_type,
            namespace=namespace,
            reason=reason,
            retryable="true" if retryable else "false",
        ).inc()

    def set_ready(self, namespace: str, name: str, ready: bool) -> None:
        RESOURCE_READY.labels(namespace=namespace, name=name).set(1 if ready else 0)

    def forget_resource(self, namespace: str, name: str) -> None:
        """Drop the readiness series of a deleted resource."""
        try:
            RESOURCE_READY.remove(namespace, name)
        except KeyError:
            pass

    def record_api_request(
        self, service: str, method: str, status_code: int | None
    ) -> None:
        EXTERNAL_API_REQUESTS.labels(
            service=service, method=method, status_class=status_class(status_code)
        ).inc()

    def record_secret_write(self, namespace: str) -> None:
        CREDENTIAL_SECRET_WRITES.labels(namespace=namespace).inc()


class MetricsServer:
    """HTTP server for exposing Prometheus metrics."""

    def __init__(self, port: int = 8081, host: str = "0.0.0.0"):
        """
        Initialize metrics server.

        Args:
            port: Port to serve metrics on
            host: Host interface to bind to
        """
        self.port = port
        self.host = host
        self.app = Application()
        self.runner: AppRunner | None = None
        self.site: TCPSite | None = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        self.app.router.add_get("/metrics", self._metrics_handler)
        self.app.router.add_get("/healthz", self._healthz_handler)

    async def _metrics_handler(self, request: Request) -> Response:
        """Handle /metrics endpoint for Prometheus scraping."""
        try:
            metrics_data = generate_latest(get_metrics_registry())
            return Response(body=metrics_data, content_type=CONTENT_TYPE_LATEST)
        except Exception as e:
            logger.error(f"Failed to generate metrics: {e}")
            return Response(
                text=f"Error generating metrics: {type(e).__name__}. Check logs for details.",
                status=500,
            )

    async def _healthz_handler(self, request: Request) -> Response:
        """Liveness endpoint; returns 200 while the server runs."""
        return Response(text="ok")

    async def start(self) -> None:
        """Start the metrics server."""
        try:
            self.runner = AppRunner(self.app)
            await self.runner.setup()

            self.site = TCPSite(self.runner, self.host, self.port)
            await self.site.start()

            logger.info(f"Metrics server started on {self.host}:{self.port}")
        except Exception as e:
            logger.error(f"Failed to start metrics server: {e}")
            raise

    async def stop(self) -> None:
        """Stop the metrics server."""
        try:
            if self.site:
                await self.site.stop()
                self.site = None

            if self.runner:
                await self.runner.cleanup()
                self.runner = None

            logger.info("Metrics server stopped")
        except Exception as e:
            logger.error(f"Error stopping metrics server: {e}")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()


# Global metrics collector instance
metrics_collector = MetricsCollector()
