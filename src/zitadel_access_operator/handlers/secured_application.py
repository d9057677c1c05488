"""
SecuredApplication handlers - kopf hosting for the convergence engine.

Every trigger (create, update, resume, delete and the periodic resync timer)
runs the same full pass. The handler layer provides what the engine leaves to
its host:

- At most one active pass per object, shared by change handlers and the timer
- A deadline per pass; expiry cancels the pass without a status write
- Rescheduling: a failed pass becomes a kopf.TemporaryError carrying the
  delay the engine chose
"""

import asyncio
import logging
import random
import weakref
from typing import Any

import kopf

from zitadel_access_operator.constants import API_GROUP, API_VERSION, FINALIZER, PLURAL
from zitadel_access_operator.models.secured_application import Descriptor
from zitadel_access_operator.services import (
    ReconcileResult,
    ReconcilerConfig,
    SecuredApplicationReconciler,
)
from zitadel_access_operator.settings import Settings, settings
from zitadel_access_operator.utils.conditions import get_ready_condition

logger = logging.getLogger(__name__)

# One lock per (namespace, name); entries vanish once no pass holds them
_object_locks: "weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock]" = (
    weakref.WeakValueDictionary()
)


def get_object_lock(namespace: str, name: str) -> asyncio.Lock:
    """Return the lock serialising passes for one SecuredApplication."""
    key = (namespace, name)
    lock = _object_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _object_locks[key] = lock
    return lock


def build_reconciler_config(operator_settings: Settings) -> ReconcilerConfig:
    return ReconcilerConfig(
        cloudflare_idp_id=operator_settings.cloudflare_idp_id,
        session_duration=operator_settings.session_duration,
        transient_retry_seconds=operator_settings.transient_retry_seconds,
        policy_retry_seconds=operator_settings.policy_retry_seconds,
    )


def raise_for_schedule(result: ReconcileResult) -> None:
    """
    Hand the engine's scheduling decision to kopf.

    Raises:
        kopf.TemporaryError: When the engine asked for another pass
    """
    schedule = result.schedule
    if schedule.kind == "never":
        return

    message = "Reconciliation incomplete"
    condition = get_ready_condition(result.status) if result.status else None
    if condition is not None:
        message = f"{condition.reason}: {condition.message}"
    delay = schedule.delay if schedule.kind == "after" else 0
    raise kopf.TemporaryError(message, delay=delay)


async def run_pass(
    meta: dict[str, Any],
    spec: dict[str, Any],
    status: dict[str, Any] | None,
    memo: kopf.Memo,
) -> ReconcileResult:
    """
    Run one convergence pass for the object kopf handed us.

    Args:
        meta: Object metadata
        spec: Object spec
        status: Object status as last persisted
        memo: Operator memo holding the reconciler

    Returns:
        The engine's result

    Raises:
        kopf.TemporaryError: When the pass exceeded its deadline
    """
    reconciler: SecuredApplicationReconciler = memo.reconciler
    descriptor = Descriptor.from_body(meta, spec, status, FINALIZER)

    if settings.reconcile_jitter_max_seconds > 0:
        await asyncio.sleep(random.uniform(0, settings.reconcile_jitter_max_seconds))

    lock = get_object_lock(descriptor.namespace, descriptor.name)
    async with lock:
        try:
            async with asyncio.timeout(settings.reconcile_timeout_seconds):
                return await reconciler.reconcile(descriptor)
        except TimeoutError as e:
            logger.warning(
                f"Reconciliation of {descriptor.namespace}/{descriptor.name} "
                f"exceeded {settings.reconcile_timeout_seconds}s and was cancelled",
                extra={
                    "resource_name": descriptor.name,
                    "namespace": descriptor.namespace,
                    "operation": "reconcile_timeout",
                },
            )
            raise kopf.TemporaryError(
                "Reconciliation timed out",
                delay=settings.transient_retry_seconds,
            ) from e


@kopf.on.create(PLURAL, group=API_GROUP, version=API_VERSION)
@kopf.on.update(PLURAL, group=API_GROUP, version=API_VERSION)
@kopf.on.resume(PLURAL, group=API_GROUP, version=API_VERSION)
async def reconcile_secured_application(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    memo: kopf.Memo,
    **kwargs: Any,
) -> None:
    """
    Converge a SecuredApplication after it was created, changed or found on
    operator start.
    """
    result = await run_pass(meta, spec, status, memo)
    raise_for_schedule(result)


@kopf.on.delete(PLURAL, group=API_GROUP, version=API_VERSION, optional=True)
async def delete_secured_application(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    memo: kopf.Memo,
    **kwargs: Any,
) -> None:
    """
    Tear down a SecuredApplication.

    Deletion is held back by the operator's own finalizer rather than kopf's,
    so this handler is optional and the engine decides when to let go.
    """
    result = await run_pass(meta, spec, status, memo)
    raise_for_schedule(result)


@kopf.timer(
    PLURAL,
    group=API_GROUP,
    version=API_VERSION,
    interval=float(settings.resync_interval_seconds),
    initial_delay=float(settings.resync_interval_seconds),
)
async def resync_secured_application(
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    memo: kopf.Memo,
    **kwargs: Any,
) -> None:
    """Periodic full pass to repair drift in Zitadel, Cloudflare or the cluster."""
    if meta.get("deletionTimestamp"):
        return
    result = await run_pass(meta, spec, status, memo)
    raise_for_schedule(result)
