"""
Operator error hierarchy with categorization and retry logic.

This module defines the error types used throughout the Zitadel access
operator, providing clear categorization and integration with kopf's retry
mechanisms.
"""

import kopf


class OperatorError(Exception):
    """
    Base error class for all operator-related exceptions.

    Provides categorization, retry behavior, and user guidance for resolution.
    """

    def __init__(
        self,
        message: str,
        category: str,
        retryable: bool = True,
        delay: int = 30,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        """
        Initialize operator error.

        Args:
            message: Human-readable error description
            category: Error category (validation, external, configuration, ...)
            retryable: Whether kopf should retry this operation
            delay: Suggested retry delay in seconds
            user_action: What user should do to resolve the issue
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.category = category
        self.retryable = retryable
        self.delay = delay
        self.user_action = user_action
        self.cause = cause

    def as_kopf_error(self):
        """Convert to appropriate kopf exception type."""
        if self.retryable:
            return kopf.TemporaryError(str(self), delay=self.delay)
        else:
            return kopf.PermanentError(str(self))

    def __str__(self) -> str:
        """Enhanced string representation with user guidance."""
        base_msg = super().__str__()
        if self.user_action:
            return f"{base_msg}\nAction required: {self.user_action}"
        return base_msg


class ExternalServiceError(OperatorError):
    """Error communicating with external services."""

    def __init__(
        self,
        service: str,
        message: str,
        retryable: bool = True,
        delay: int = 60,
        user_action: str | None = None,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        action = user_action or f"Check {service} connectivity and credentials"
        super().__init__(
            message=f"{service} error: {message}",
            category="external",
            retryable=retryable,
            delay=delay,
            user_action=action,
        )
        self.service = service
        self.status_code = status_code
        self.response_body = response_body

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    def body_preview(self, limit: int = 2048) -> str | None:
        """Return a truncated preview of the response body for logging."""

        if self.response_body is None:
            return None

        if len(self.response_body) <= limit:
            return self.response_body

        return f"{self.response_body[:limit]}...<truncated>"


class ZitadelAPIError(ExternalServiceError):
    """Error communicating with the Zitadel Management API."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        if status_code:
            message = f"HTTP {status_code}: {message}"

        super().__init__(
            service="Zitadel API",
            message=message,
            retryable=True,
            user_action="Check Zitadel instance status and the personal access token",
            status_code=status_code,
            response_body=response_body,
        )


class CloudflareAPIError(ExternalServiceError):
    """Error communicating with the Cloudflare API."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        if status_code:
            message = f"HTTP {status_code}: {message}"

        super().__init__(
            service="Cloudflare API",
            message=message,
            retryable=True,
            user_action="Check the Cloudflare API token and account ID",
            status_code=status_code,
            response_body=response_body,
        )


class KubernetesAPIError(ExternalServiceError):
    """Error communicating with Kubernetes API."""

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        retryable: bool = True,
        status_code: int | None = None,
    ):
        if reason:
            message = f"{message} (reason: {reason})"

        # Some K8s errors are not retryable
        non_retryable_reasons = {"Forbidden", "Unauthorized", "Invalid"}
        if reason in non_retryable_reasons:
            retryable = False

        super().__init__(
            service="Kubernetes API",
            message=message,
            retryable=retryable,
            user_action="Check RBAC permissions and cluster connectivity",
            status_code=status_code,
        )


class ConfigurationError(OperatorError):
    """Error in operator or resource configuration."""

    def __init__(
        self, message: str, retryable: bool = False, user_action: str | None = None
    ):
        super().__init__(
            message=message,
            category="configuration",
            retryable=retryable,
            user_action=user_action or "Review and correct configuration",
        )


class ReconciliationError(OperatorError):
    """
    A pipeline step failed.

    Carries the condition reason recorded on the resource status. The
    convergence engine converts it into a failure status and a retry
    schedule; it never reaches kopf.
    """

    def __init__(
        self,
        reason: str,
        message: str,
        retryable: bool = True,
        delay: int = 30,
        cause: Exception | None = None,
    ):
        super().__init__(
            message=message,
            category="reconciliation",
            retryable=retryable,
            delay=delay,
            cause=cause,
        )
        self.reason = reason
