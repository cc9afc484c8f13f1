"""
Notification Service
"""
import logging
from typing import Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ...errors import NotFoundError, PermissionDeniedError
from ...models.db_models import NotificationDB

logger = logging.getLogger(__name__)


class NotificationService:

    def __init__(self, db: Session):
        self.db = db

    def notify(self, for_user: Optional[str], type: str, message: str, task_ref: Optional[str] = None) -> NotificationDB:
        notification = NotificationDB(
            id=str(uuid4()),
            type=type,
            message=message,
            task_ref=task_ref,
            for_user=for_user,
            read=False,
        )
        self.db.add(notification)
        self.db.flush()
        logger.debug(f"Notified {for_user}: {type}")
        return notification

    def query_for_user(self, user_id: str, unread_only: bool = False):
        query = self.db.query(NotificationDB).filter(NotificationDB.for_user == user_id)
        if unread_only:
            query = query.filter(NotificationDB.read.is_(False))
        return query.order_by(NotificationDB.created_at.desc())

    def mark_read(self, notification_id: str, user_id: str) -> NotificationDB:
        notification = self.db.get(NotificationDB, notification_id)
        if notification is None:
            raise NotFoundError(f"Notification {notification_id} Not Found")
        if notification.for_user != user_id:
            raise PermissionDeniedError("Notification belongs to another user")
        notification.read = True
        self.db.flush()
        return notification
