"""
Task and Notification API Routes
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..errors import ValidationError, operation
from ..models.db_models import TaskStatus, UserDB
from ..models.schemas import NotificationOut, TaskOut, dump
from ..services.pagination import paginate
from ..services.tasks import NotificationService, TaskService

router = APIRouter(tags=["tasks"])


@router.get("/tasks/paginate")
async def paginate_tasks(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    """Tasks assigned to, or raised by, the caller."""
    with operation("FETCH_TASKS_COLLECTION_ERROR"):
        try:
            task_status = TaskStatus(status) if status else None
        except ValueError:
            raise ValidationError([f"Unknown task status: {status}"])
        query = TaskService(db).query_for_user(current_user.id, task_status)
        return paginate(query, page, per_page, serializer=lambda t: dump(TaskOut, t))


@router.get("/tasks/{task_id}")
async def get_task(
    task_id: str,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("TASK_RETRIEVAL_ERROR"):
        return dump(TaskOut, TaskService(db).get(task_id))


@router.get("/notifications/paginate")
async def paginate_notifications(
    unread: bool = False,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("FETCH_NOTIFICATIONS_COLLECTION_ERROR"):
        query = NotificationService(db).query_for_user(current_user.id, unread_only=unread)
        return paginate(query, page, per_page, serializer=lambda n: dump(NotificationOut, n))


@router.put("/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("UPDATE_NOTIFICATION_ERROR"):
        notification = NotificationService(db).mark_read(notification_id, current_user.id)
        db.commit()
        return dump(NotificationOut, notification)
