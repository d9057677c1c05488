"""
Ready condition tracking for SecuredApplication status.

Follows the Kubernetes SetStatusCondition convention: lastTransitionTime only
moves when the condition status flips, so repeating the same outcome yields
an identical status.
"""

from datetime import UTC, datetime

from ..constants import CONDITION_FALSE, CONDITION_READY, CONDITION_TRUE
from ..models.secured_application import Condition, SecuredApplicationStatus


def get_ready_condition(status: SecuredApplicationStatus) -> Condition | None:
    for condition in status.conditions:
        if condition.type == CONDITION_READY:
            return condition
    return None


def set_ready_condition(
    status: SecuredApplicationStatus,
    success: bool,
    reason: str,
    message: str,
    *,
    generation: int | None = None,
    now: datetime | None = None,
) -> SecuredApplicationStatus:
    """
    Return a copy of status with its Ready condition set.

    Args:
        status: Status to derive from; it is not modified
        success: Whether the condition is True
        reason: Machine-readable reason code
        message: Human-readable message
        generation: Generation the outcome was observed at
        now: Clock override for the transition time

    Returns:
        New status with exactly one Ready condition and a matching ready flag
    """
    condition_status = CONDITION_TRUE if success else CONDITION_FALSE
    previous = get_ready_condition(status)

    if previous is not None and previous.status == condition_status:
        transition_time = previous.last_transition_time
    else:
        transition_time = (now or datetime.now(UTC)).isoformat()

    condition = Condition(
        type=CONDITION_READY,
        status=condition_status,
        reason=reason,
        message=message,
        last_transition_time=transition_time,
        observed_generation=generation,
    )
    others = [c for c in status.conditions if c.type != CONDITION_READY]

    update = {"conditions": [*others, condition], "ready": success}
    if generation is not None:
        update["observed_generation"] = generation
    return status.model_copy(update=update, deep=True)
