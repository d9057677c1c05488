"""
Base reconciler class providing common patterns for resource reconciliation.

This module defines the BaseReconciler class that implements the standard
pass lifecycle: correlation-ID logging, metrics tracking, status writes for
success and failure, and the scheduling decision handed back to the host.
"""

import time
from abc import ABC, abstractmethod
from typing import Literal

from pydantic import BaseModel, ConfigDict

from ..constants import REASON_UNEXPECTED_ERROR
from ..errors import OperatorError, ReconciliationError
from ..models.secured_application import Descriptor, SecuredApplicationStatus
from ..observability.logging import OperatorLogger
from ..observability.metrics import metrics_collector
from ..utils.conditions import set_ready_condition
from ..utils.kubernetes import SecuredApplicationStore


class ScheduleDecision(BaseModel):
    """When the host should run the next pass for a descriptor."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["never", "now", "after"]
    delay: int = 0

    @classmethod
    def never(cls) -> "ScheduleDecision":
        return cls(kind="never")

    @classmethod
    def now(cls) -> "ScheduleDecision":
        return cls(kind="now")

    @classmethod
    def after(cls, seconds: int) -> "ScheduleDecision":
        return cls(kind="after", delay=seconds)


class ReconcileResult(BaseModel):
    """
    Outcome of one pass.

    status is the status that was written, or None when the pass wrote no
    status (teardown).
    """

    model_config = ConfigDict(frozen=True)

    status: SecuredApplicationStatus | None
    schedule: ScheduleDecision


class BaseReconciler(ABC):
    """
    Base class for resource reconcilers.

    Provides common patterns for:
    - Pass lifecycle logging and metrics
    - Status management with the Ready condition
    - Translating step failures into a retry schedule
    """

    resource_type = "resource"

    def __init__(
        self, store: SecuredApplicationStore, transient_retry_seconds: int = 30
    ):
        """
        Initialize base reconciler.

        Args:
            store: Descriptor store used for status writes
            transient_retry_seconds: Retry delay when a status write fails
        """
        self.store = store
        self.transient_retry_seconds = transient_retry_seconds
        self.logger = OperatorLogger(self.__class__.__name__)

    async def reconcile(self, descriptor: Descriptor) -> ReconcileResult:
        """
        Run one pass with logging and metrics tracking.

        Args:
            descriptor: Desired state and lifecycle flags of one resource

        Returns:
            The status written and when to run again
        """
        start_time = time.time()
        self.logger.log_reconciliation_start(
            resource_type=self.resource_type,
            resource_name=descriptor.name,
            namespace=descriptor.namespace,
        )

        async with metrics_collector.track_reconciliation(
            resource_type=self.resource_type,
            namespace=descriptor.namespace,
            name=descriptor.name,
            operation="delete" if descriptor.pending_deletion else "reconcile",
        ):
            try:
                result = await self.do_reconcile(descriptor)
            except Exception as e:
                # Step failures never get here; this is a defect in the pass
                self.logger.log_reconciliation_error(
                    resource_type=self.resource_type,
                    resource_name=descriptor.name,
                    namespace=descriptor.namespace,
                    error=e,
                    duration=time.time() - start_time,
                )
                result = await self._fail(
                    descriptor,
                    descriptor.status,
                    ReconciliationError(
                        REASON_UNEXPECTED_ERROR,
                        f"Unexpected error during reconciliation: {e}",
                        delay=self.transient_retry_seconds,
                        cause=e,
                    ),
                    start_time,
                )

        duration = time.time() - start_time
        if result.status is not None and result.status.ready:
            self.logger.log_reconciliation_success(
                resource_type=self.resource_type,
                resource_name=descriptor.name,
                namespace=descriptor.namespace,
                duration=duration,
            )
        return result

    @abstractmethod
    async def do_reconcile(self, descriptor: Descriptor) -> ReconcileResult:
        """
        Resource-specific pass.

        Implementations must not raise for step failures; they return the
        result of _fail or _succeed instead.
        """

    async def _persist(
        self, descriptor: Descriptor, status: SecuredApplicationStatus
    ) -> bool:
        try:
            await self.store.write_status(
                descriptor.namespace, descriptor.name, status
            )
            return True
        except Exception as e:
            self.logger.error(
                f"Failed to write status for {descriptor.namespace}/{descriptor.name}: {e}",
                exc_info=not isinstance(e, OperatorError),
                resource_name=descriptor.name,
                namespace=descriptor.namespace,
                operation="status_write",
                error_type=type(e).__name__,
            )
            return False

    async def _fail(
        self,
        descriptor: Descriptor,
        progress: SecuredApplicationStatus,
        error: ReconciliationError,
        started: float | None = None,
    ) -> ReconcileResult:
        """
        Record a failed step and schedule a retry.

        Args:
            descriptor: Resource being reconciled
            progress: Identifiers resolved by the steps that completed
            error: The failed step
            started: Pass start time, for the logged duration

        Returns:
            Failure status and a retry after error.delay seconds
        """
        status = set_ready_condition(
            progress,
            False,
            error.reason,
            str(error),
            generation=descriptor.generation or None,
        )
        self.logger.log_reconciliation_failure(
            resource_type=self.resource_type,
            resource_name=descriptor.name,
            namespace=descriptor.namespace,
            reason=error.reason,
            message=str(error),
            delay=error.delay,
            duration=time.time() - started if started else 0.0,
        )
        metrics_collector.record_failure(
            self.resource_type, descriptor.namespace, error.reason, error.retryable
        )
        metrics_collector.set_ready(descriptor.namespace, descriptor.name, False)

        delay = error.delay
        if not await self._persist(descriptor, status):
            delay = self.transient_retry_seconds
        return ReconcileResult(status=status, schedule=ScheduleDecision.after(delay))

    async def _succeed(
        self,
        descriptor: Descriptor,
        progress: SecuredApplicationStatus,
        reason: str,
        message: str,
    ) -> ReconcileResult:
        status = set_ready_condition(
            progress, True, reason, message, generation=descriptor.generation or None
        )
        metrics_collector.set_ready(descriptor.namespace, descriptor.name, True)

        if not await self._persist(descriptor, status):
            return ReconcileResult(
                status=status,
                schedule=ScheduleDecision.after(self.transient_retry_seconds),
            )
        return ReconcileResult(status=status, schedule=ScheduleDecision.never())
