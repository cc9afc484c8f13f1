"""
Screening lifecycle: storage, status machine, approval workflow and the
orchestrating service.
"""
from .screening_store import ScreeningStore
from .state_machine import ScreeningStateMachine, parse_status
from .workflow import WorkflowCoordinator
from .screening_service import ScreeningService

__all__ = [
    "ScreeningStore",
    "ScreeningStateMachine",
    "parse_status",
    "WorkflowCoordinator",
    "ScreeningService",
]
