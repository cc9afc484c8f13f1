"""
Tasks and notifications raised by the approval workflow.
"""
from .task_service import TaskService
from .notification_service import NotificationService

__all__ = ["TaskService", "NotificationService"]
