"""
Audit Log Service

Append-only trail of views and mutations made through the API.
"""
import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ..models.db_models import AuditLogDB

logger = logging.getLogger(__name__)


class AuditLogService:

    def __init__(self, db: Session):
        self.db = db

    def track(
        self,
        event: str,
        user_id: Optional[str],
        message: str,
        diff: Optional[Dict[str, Any]] = None,
        commit: bool = True,
    ) -> AuditLogDB:
        """Record an event. Commits by default; pass commit=False inside a unit of work."""
        entry = AuditLogDB(
            id=str(uuid4()),
            event=event,
            user_id=user_id,
            message=message,
            diff=diff,
        )
        self.db.add(entry)
        if commit:
            self.db.commit()
        logger.debug(f"audit {event} by {user_id}: {message}")
        return entry
