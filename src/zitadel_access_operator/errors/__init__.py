"""
Error handling module for the Zitadel access operator.

This module provides an error hierarchy that integrates with kopf
and provides clear categorization for different types of failures.
"""

from .operator_errors import (
    CloudflareAPIError,
    ConfigurationError,
    ExternalServiceError,
    KubernetesAPIError,
    OperatorError,
    ReconciliationError,
    ZitadelAPIError,
)

__all__ = [
    "OperatorError",
    "ExternalServiceError",
    "ZitadelAPIError",
    "CloudflareAPIError",
    "KubernetesAPIError",
    "ConfigurationError",
    "ReconciliationError",
]
