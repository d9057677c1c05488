"""
Service layer for the Zitadel access operator.

This module provides the reconciler services that hold the convergence logic,
separated from the kopf handler layer.
"""

from .base_reconciler import BaseReconciler, ReconcileResult, ScheduleDecision
from .secured_application_reconciler import (
    ReconcilerConfig,
    SecuredApplicationReconciler,
)

__all__ = [
    "BaseReconciler",
    "ReconcileResult",
    "ReconcilerConfig",
    "ScheduleDecision",
    "SecuredApplicationReconciler",
]
