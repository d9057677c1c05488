"""
Unit tests for Ready condition transitions and the base reconciler's
status handling.
"""

from datetime import UTC, datetime

import pytest

from tests.fixtures.secured_application import (
    FakeStore,
    make_descriptor,
    status_write_failure,
)
from zitadel_access_operator.constants import REASON_UNEXPECTED_ERROR
from zitadel_access_operator.models.secured_application import (
    SecuredApplicationStatus,
)
from zitadel_access_operator.services.base_reconciler import (
    BaseReconciler,
    ReconcileResult,
    ScheduleDecision,
)
from zitadel_access_operator.utils.conditions import (
    get_ready_condition,
    set_ready_condition,
)

T0 = datetime(2026, 1, 1, tzinfo=UTC)
T1 = datetime(2026, 1, 2, tzinfo=UTC)


class TestSetReadyCondition:
    def test_initial_condition(self):
        status = set_ready_condition(
            SecuredApplicationStatus(), True, "Reconciled", "done", generation=3, now=T0
        )

        condition = get_ready_condition(status)
        assert condition.status == "True"
        assert condition.reason == "Reconciled"
        assert condition.last_transition_time == T0.isoformat()
        assert condition.observed_generation == 3
        assert status.ready is True
        assert status.observed_generation == 3

    def test_same_status_keeps_transition_time(self):
        first = set_ready_condition(
            SecuredApplicationStatus(), False, "ProjectNotFound", "a", now=T0
        )

        second = set_ready_condition(first, False, "RoleNotFound", "b", now=T1)

        condition = get_ready_condition(second)
        assert condition.last_transition_time == T0.isoformat()
        assert condition.reason == "RoleNotFound"
        assert condition.message == "b"

    def test_flip_moves_transition_time(self):
        failed = set_ready_condition(
            SecuredApplicationStatus(), False, "PolicyFailed", "x", now=T0
        )

        ready = set_ready_condition(failed, True, "Reconciled", "ok", now=T1)

        assert get_ready_condition(ready).last_transition_time == T1.isoformat()
        assert ready.ready is True

    def test_exactly_one_ready_condition(self):
        status = SecuredApplicationStatus()
        for success in (True, False, True):
            status = set_ready_condition(status, success, "R", "m", now=T0)

        assert [c.type for c in status.conditions] == ["Ready"]

    def test_input_is_not_modified(self):
        original = SecuredApplicationStatus(project_id="p-1")

        updated = set_ready_condition(original, True, "Reconciled", "ok")

        assert original.conditions == []
        assert original.ready is False
        assert updated.project_id == "p-1"

    def test_status_serializes_with_camel_case_keys(self):
        status = set_ready_condition(
            SecuredApplicationStatus(zitadel_app_id="a-1"),
            True,
            "Reconciled",
            "ok",
            generation=2,
            now=T0,
        )

        payload = status.to_status()

        assert payload["zitadelAppId"] == "a-1"
        assert payload["observedGeneration"] == 2
        assert payload["conditions"][0]["lastTransitionTime"] == T0.isoformat()
        assert "clientSecret" not in payload


class BrokenReconciler(BaseReconciler):
    """Raises outside of any step."""

    async def do_reconcile(self, descriptor) -> ReconcileResult:
        raise KeyError("missing")


class TestBaseReconciler:
    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_transient_failure(self):
        store = FakeStore()
        reconciler = BrokenReconciler(store, transient_retry_seconds=45)
        previous = {"projectId": "p-1", "zitadelAppId": "a-1"}

        result = await reconciler.reconcile(make_descriptor(status=previous))

        assert result.schedule == ScheduleDecision.after(45)
        condition = get_ready_condition(result.status)
        assert condition.reason == REASON_UNEXPECTED_ERROR
        assert "missing" in condition.message
        assert result.status.zitadel_app_id == "a-1"
        assert len(store.called("write_status")) == 1

    @pytest.mark.asyncio
    async def test_failed_status_write_is_not_raised(self):
        store = FakeStore()
        store.fail("write_status", status_write_failure())
        reconciler = BrokenReconciler(store, transient_retry_seconds=45)

        result = await reconciler.reconcile(make_descriptor())

        assert result.schedule == ScheduleDecision.after(45)


def test_schedule_decisions_compare_by_value():
    assert ScheduleDecision.after(30) == ScheduleDecision.after(30)
    assert ScheduleDecision.after(30) != ScheduleDecision.after(300)
    assert ScheduleDecision.never().kind == "never"
    assert ScheduleDecision.now().delay == 0
