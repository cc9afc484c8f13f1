"""
Task Service

Approval work items. A task points at the entity it concerns through
entity_ref (a screening id for the screening workflow).
"""
import logging
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ...errors import NotFoundError
from ...models.db_models import TaskDB, TaskStatus, TaskType

logger = logging.getLogger(__name__)


class TaskService:

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        task: str,
        task_type: TaskType,
        entity_ref: str,
        created_by: Optional[str],
        assigned_to: Optional[str] = None,
        branch_id: Optional[str] = None,
        entity_type: str = "screening",
    ) -> TaskDB:
        entry = TaskDB(
            id=str(uuid4()),
            task=task,
            task_type=task_type,
            entity_ref=entity_ref,
            entity_type=entity_type,
            status=TaskStatus.NEW,
            created_by=created_by,
            assigned_to=assigned_to,
            branch_id=branch_id,
        )
        self.db.add(entry)
        self.db.flush()
        logger.info(f"Created {task_type.value} task {entry.id} for {entity_type} {entity_ref}")
        return entry

    def get(self, task_id: str) -> TaskDB:
        task = self.db.get(TaskDB, task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} Not Found")
        return task

    def find_open(self, entity_ref: str, *task_types: TaskType) -> Optional[TaskDB]:
        """Most recent uncompleted task for the entity."""
        query = self.db.query(TaskDB).filter(
            TaskDB.entity_ref == entity_ref,
            TaskDB.status == TaskStatus.NEW,
        )
        if task_types:
            query = query.filter(TaskDB.task_type.in_(task_types))
        return query.order_by(TaskDB.created_at.desc()).first()

    def complete(self, task: TaskDB, comment: Optional[str] = None) -> TaskDB:
        task.status = TaskStatus.COMPLETED
        if comment:
            task.comment = comment
        task.updated_at = datetime.utcnow()
        self.db.flush()
        return task

    def query_for_user(self, user_id: str, status: Optional[TaskStatus] = None):
        """Tasks assigned to the user or, when unassigned, created in the user's name."""
        query = self.db.query(TaskDB).filter(
            (TaskDB.assigned_to == user_id) | (TaskDB.created_by == user_id)
        )
        if status is not None:
            query = query.filter(TaskDB.status == status)
        return query.order_by(TaskDB.created_at.desc())
