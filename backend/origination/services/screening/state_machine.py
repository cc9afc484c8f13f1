"""
Screening State Machine

ScreeningStatus enum is the source of truth.
State transitions:
    new → screening_inprogress → submitted
    submitted → approved | declined_final | declined_under_review
    declined_under_review → screening_inprogress | submitted

approved and declined_final are terminal. Decisions on a submitted
screening require the AUTHORIZE capability.
"""
from typing import Dict, FrozenSet

from ...errors import InvalidTransitionError, RedundantTransitionError, ValidationError
from ...models.db_models import ScreeningStatus


def parse_status(value) -> ScreeningStatus:
    if isinstance(value, ScreeningStatus):
        return value
    try:
        return ScreeningStatus(str(value).lower())
    except ValueError:
        raise ValidationError([f"Unknown screening status: {value}"])


class ScreeningStateMachine:
    """Explicit transition table for screening statuses."""

    # current status -> statuses it may move to
    TRANSITIONS: Dict[ScreeningStatus, FrozenSet[ScreeningStatus]] = {
        ScreeningStatus.NEW: frozenset({
            ScreeningStatus.SCREENING_INPROGRESS,
            ScreeningStatus.SUBMITTED,
        }),
        ScreeningStatus.SCREENING_INPROGRESS: frozenset({
            ScreeningStatus.SUBMITTED,
        }),
        ScreeningStatus.SUBMITTED: frozenset({
            ScreeningStatus.APPROVED,
            ScreeningStatus.DECLINED_FINAL,
            ScreeningStatus.DECLINED_UNDER_REVIEW,
        }),
        ScreeningStatus.DECLINED_UNDER_REVIEW: frozenset({
            ScreeningStatus.SCREENING_INPROGRESS,
            ScreeningStatus.SUBMITTED,
        }),
        ScreeningStatus.APPROVED: frozenset(),
        ScreeningStatus.DECLINED_FINAL: frozenset(),
    }

    # Target statuses that need the AUTHORIZE capability
    AUTHORIZED_TARGETS = frozenset({
        ScreeningStatus.APPROVED,
        ScreeningStatus.DECLINED_FINAL,
        ScreeningStatus.DECLINED_UNDER_REVIEW,
    })

    def requires_authorization(self, target: ScreeningStatus) -> bool:
        return target in self.AUTHORIZED_TARGETS

    def transition(self, current: ScreeningStatus, target: ScreeningStatus) -> ScreeningStatus:
        """
        Validate a status change and return the new status.

        Raises:
            RedundantTransitionError: target equals the current status
            InvalidTransitionError: target is not reachable from current
        """
        if current == target:
            raise RedundantTransitionError(f"Screening is already in {current.value} state")

        if target not in self.TRANSITIONS.get(current, frozenset()):
            raise InvalidTransitionError(
                f"Invalid transition: {current.value} -> {target.value}"
            )

        return target

    def is_terminal(self, status: ScreeningStatus) -> bool:
        return not self.TRANSITIONS.get(status)
