"""
Structured logging utilities for the Zitadel access operator.

This module provides correlation ID tracking and structured log formatting
so that every step of a convergence pass can be followed in production logs.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime

# Context variable for tracking correlation IDs across async operations
correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

# Paths that should be filtered from access logs (health probes)
HEALTH_PROBE_PATHS = frozenset({"/healthz", "/metrics"})

# Extra record attributes copied into the JSON document
STRUCTURED_FIELDS = (
    "resource_type",
    "resource_name",
    "namespace",
    "operation",
    "step",
    "reason",
    "delay",
    "duration",
    "error_type",
    "service",
    "http_method",
    "http_status",
    "response_body",
)


class HealthProbeFilter(logging.Filter):
    """
    Logging filter that suppresses health probe and metrics endpoint logs.

    These endpoints are hit frequently by Kubernetes probes and Prometheus.
    """

    def __init__(self, suppress_health_logs: bool = True):
        """
        Initialize the filter.

        Args:
            suppress_health_logs: Drop records for probe and scrape requests
        """
        super().__init__()
        self.suppress_health_logs = suppress_health_logs

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Decide whether a record is emitted.

        Args:
            record: The log record to check

        Returns:
            False when the message mentions /healthz or /metrics
        """
        if not self.suppress_health_logs:
            return True

        message = record.getMessage()
        return all(path not in message for path in HEALTH_PROBE_PATHS)


class CorrelationIDFilter(logging.Filter):
    """Logging filter that adds correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Attach the current correlation ID, starting a new one if none is set.

        Args:
            record: The log record to annotate

        Returns:
            Always True; the record is never dropped
        """
        current_correlation_id = correlation_id.get()
        if not current_correlation_id:
            current_correlation_id = generate_correlation_id()
            correlation_id.set(current_correlation_id)

        record.correlation_id = current_correlation_id
        return True


class StructuredFormatter(logging.Formatter):
    """
    Structured JSON formatter for logs with correlation ID support.

    Formats log records as one JSON document per line for log aggregation.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format the log record as structured JSON.

        Args:
            record: The log record to format

        Returns:
            JSON-formatted log message
        """
        log_data = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", ""),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        return json.dumps(log_data, default=str)


def generate_correlation_id() -> str:
    """Generate a short correlation ID."""
    return str(uuid.uuid4())[:8]


def set_correlation_id(corr_id: str) -> str:
    """
    Bind a correlation ID to the current async context.

    Args:
        corr_id: Correlation ID shared by every record of one pass

    Returns:
        The correlation ID that was set
    """
    correlation_id.set(corr_id)
    return corr_id


def get_correlation_id() -> str:
    """Return the correlation ID of the current context, or an empty string."""
    return correlation_id.get("")


def setup_structured_logging(
    log_level: str = "INFO",
    enable_json_formatting: bool = True,
    correlation_id_enabled: bool = True,
    log_health_probes: bool = False,
) -> None:
    """
    Set up structured logging for the operator.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_json_formatting: Whether to use JSON formatting
        correlation_id_enabled: Whether to enable correlation ID tracking
        log_health_probes: Whether to log health probe requests (default: False)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()

    if enable_json_formatting:
        formatter = StructuredFormatter()
    elif correlation_id_enabled:
        formatter = logging.Formatter(
            "%(asctime)s - %(correlation_id)s - %(name)s - %(levelname)s - %(message)s"
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler.setFormatter(formatter)

    if correlation_id_enabled:
        handler.addFilter(CorrelationIDFilter())

    if not log_health_probes:
        handler.addFilter(HealthProbeFilter(suppress_health_logs=True))

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Third-party loggers
    logging.getLogger("kopf").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.server").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.web").setLevel(logging.WARNING)


class OperatorLogger:
    """
    Logger for convergence passes with structured fields.

    Provides helpers for the events every pass emits: start, each step
    outcome, success and failure.
    """

    def __init__(self, name: str):
        """
        Args:
            name: Logger name, usually the reconciler class name
        """
        self.logger = logging.getLogger(name)

    def log_reconciliation_start(
        self,
        resource_type: str,
        resource_name: str,
        namespace: str,
        correlation_id: str | None = None,
    ) -> str:
        """
        Log the start of a reconciliation operation.

        Args:
            resource_type: Type of resource being reconciled
            resource_name: Name of the resource
            namespace: Namespace of the resource
            correlation_id: Optional correlation ID (will generate if not provided)

        Returns:
            The correlation ID used for this operation
        """
        if correlation_id is None:
            correlation_id = generate_correlation_id()

        set_correlation_id(correlation_id)

        self.logger.info(
            f"Starting reconciliation for {resource_type} {resource_name}",
            extra={
                "resource_type": resource_type,
                "resource_name": resource_name,
                "namespace": namespace,
                "operation": "reconcile_start",
            },
        )

        return correlation_id

    def log_step(
        self, step: str, resource_name: str, namespace: str, message: str
    ) -> None:
        """
        Log the outcome of one convergence step.

        Args:
            step: Step name, e.g. oidc_app or access_policy
            resource_name: Name of the resource
            namespace: Namespace of the resource
            message: What the step did
        """
        self.logger.info(
            message,
            extra={
                "resource_name": resource_name,
                "namespace": namespace,
                "operation": "reconcile_step",
                "step": step,
            },
        )

    def log_reconciliation_success(
        self, resource_type: str, resource_name: str, namespace: str, duration: float
    ) -> None:
        """Log a pass that left the resource Ready."""
        self.logger.info(
            f"Reconciliation completed successfully for {resource_type} {resource_name}",
            extra={
                "resource_type": resource_type,
                "resource_name": resource_name,
                "namespace": namespace,
                "operation": "reconcile_success",
                "duration": duration,
            },
        )

    def log_reconciliation_failure(
        self,
        resource_type: str,
        resource_name: str,
        namespace: str,
        reason: str,
        message: str,
        delay: int,
        duration: float,
    ) -> None:
        """
        Log a pass that recorded a failure condition.

        Args:
            resource_type: Type of resource
            resource_name: Name of the resource
            namespace: Namespace of the resource
            reason: Condition reason recorded on the status
            message: Failure message recorded on the status
            delay: Seconds until the pass is retried
            duration: Reconciliation duration in seconds
        """
        self.logger.warning(
            f"Reconciliation failed for {resource_type} {resource_name}: "
            f"{reason}: {message}",
            extra={
                "resource_type": resource_type,
                "resource_name": resource_name,
                "namespace": namespace,
                "operation": "reconcile_failure",
                "reason": reason,
                "delay": delay,
                "duration": duration,
            },
        )

    def log_reconciliation_error(
        self,
        resource_type: str,
        resource_name: str,
        namespace: str,
        error: Exception,
        duration: float,
    ) -> None:
        """Log an unexpected error with its traceback."""
        self.logger.error(
            f"Reconciliation error for {resource_type} {resource_name}: {error}",
            extra={
                "resource_type": resource_type,
                "resource_name": resource_name,
                "namespace": namespace,
                "operation": "reconcile_error",
                "error_type": type(error).__name__,
                "duration": duration,
            },
            exc_info=True,
        )

    def debug(self, message: str, **kwargs) -> None:
        self.logger.debug(message, extra=kwargs)

    def info(self, message: str, **kwargs) -> None:
        self.logger.info(message, extra=kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self.logger.warning(message, extra=kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs) -> None:
        self.logger.error(message, exc_info=exc_info, extra=kwargs)
