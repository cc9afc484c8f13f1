"""
Workflow Coordinator

Applies a screening status change and its side effects on the client,
the approval tasks and the notifications:

| status                | client status        | tasks                                   | notification        |
|-----------------------|----------------------|-----------------------------------------|---------------------|
| submitted             | screening_inprogress | new approve task                        | -                   |
| approved              | eligible             | open approve/review task completed      | task creator        |
| declined_final        | ineligible           | open approve/review task completed      | task creator        |
| declined_under_review | screening_inprogress | completed, new review task to creator   | acting user         |
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...auth import AUTHORIZE, require_capability
from ...models.db_models import (
    ClientStatus, ScreeningDB, ScreeningStatus, TaskDB, TaskType, UserDB,
)
from ..tasks import NotificationService, TaskService
from .state_machine import ScreeningStateMachine

logger = logging.getLogger(__name__)


def client_name(screening: ScreeningDB) -> str:
    client = screening.client
    if client is None:
        return screening.client_id
    return f"{client.first_name} {client.last_name}"


class WorkflowCoordinator:

    def __init__(self, db: Session):
        self.db = db
        self.machine = ScreeningStateMachine()
        self.tasks = TaskService(db)
        self.notifications = NotificationService(db)

    def authorize(self, actor: UserDB, target: ScreeningStatus) -> None:
        """Capability check for the target status. Runs before any mutation."""
        if self.machine.requires_authorization(target):
            require_capability(actor, AUTHORIZE, f"set a screening to {target.value}")

    def apply(self, screening: ScreeningDB, target: ScreeningStatus, actor: UserDB, comment: Optional[str] = None) -> ScreeningDB:
        """Move the screening to `target` and run the side effects of that status."""
        self.authorize(actor, target)
        previous = screening.status
        screening.status = self.machine.transition(previous, target)

        if target == ScreeningStatus.SUBMITTED:
            self._on_submitted(screening, actor)
        elif target == ScreeningStatus.SCREENING_INPROGRESS:
            self._set_client_status(screening, ClientStatus.SCREENING_INPROGRESS)
        elif target == ScreeningStatus.APPROVED:
            self._on_decision(screening, actor, ClientStatus.ELIGIBLE, comment,
                              "SCREENING_APPROVED", "has been approved")
        elif target == ScreeningStatus.DECLINED_FINAL:
            self._on_decision(screening, actor, ClientStatus.INELIGIBLE, comment,
                              "SCREENING_DECLINED_FINAL", "has been declined in final")
        elif target == ScreeningStatus.DECLINED_UNDER_REVIEW:
            self._on_declined_under_review(screening, actor, comment)

        self.db.flush()
        logger.info(f"Screening {screening.id}: {previous.value} -> {target.value} by {actor.id}")
        return screening

    # =========================================================================
    # SIDE EFFECTS
    # =========================================================================

    def _set_client_status(self, screening: ScreeningDB, status: ClientStatus) -> None:
        if screening.client is not None:
            screening.client.status = status

    def _open_task(self, screening: ScreeningDB) -> Optional[TaskDB]:
        task = self.tasks.find_open(screening.id, TaskType.APPROVE, TaskType.REVIEW)
        if task is None:
            logger.warning(f"No open approval task for screening {screening.id}")
        return task

    def _on_submitted(self, screening: ScreeningDB, actor: UserDB) -> None:
        self._set_client_status(screening, ClientStatus.SCREENING_INPROGRESS)

        # A resubmission answers the pending review
        review = self.tasks.find_open(screening.id, TaskType.REVIEW)
        if review is not None:
            self.tasks.complete(review)

        self.tasks.create(
            task=f"Approve Screening of {client_name(screening)}",
            task_type=TaskType.APPROVE,
            entity_ref=screening.id,
            created_by=actor.id,
            branch_id=screening.branch_id,
        )

    def _on_decision(
        self,
        screening: ScreeningDB,
        actor: UserDB,
        client_status: ClientStatus,
        comment: Optional[str],
        notification_type: str,
        verdict: str,
    ) -> None:
        self._set_client_status(screening, client_status)

        task = self._open_task(screening)
        if task is not None:
            self.tasks.complete(task, comment)

        recipient = task.created_by if task is not None else screening.created_by
        self.notifications.notify(
            for_user=recipient,
            type=notification_type,
            message=f"Screening of {client_name(screening)} {verdict}",
            task_ref=task.id if task is not None else None,
        )

    def _on_declined_under_review(self, screening: ScreeningDB, actor: UserDB, comment: Optional[str]) -> None:
        self._set_client_status(screening, ClientStatus.SCREENING_INPROGRESS)

        task = self._open_task(screening)
        if task is not None:
            self.tasks.complete(task, comment)

        review = self.tasks.create(
            task=f"Review Screening of {client_name(screening)}",
            task_type=TaskType.REVIEW,
            entity_ref=screening.id,
            created_by=actor.id,
            assigned_to=task.created_by if task is not None else screening.created_by,
            branch_id=screening.branch_id,
        )

        self.notifications.notify(
            for_user=actor.id,
            type="SCREENING_DECLINED_UNDER_REVIEW",
            message=f"Screening of {client_name(screening)} has been declined for further review",
            task_ref=review.id,
        )
