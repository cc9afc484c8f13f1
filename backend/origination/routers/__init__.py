"""Loan Origination API - Routers"""
from .screenings import router as screenings_router
from .histories import router as histories_router
from .questions import router as questions_router
from .forms import router as forms_router
from .tasks import router as tasks_router
from .cbs import router as cbs_router
from .clients import router as clients_router
from .answers import router as answers_router

__all__ = [
    "screenings_router",
    "histories_router",
    "questions_router",
    "forms_router",
    "tasks_router",
    "cbs_router",
    "clients_router",
    "answers_router",
]
