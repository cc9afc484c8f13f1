"""
Questionnaire Services

Question trees, reusable form templates and the cloner that instantiates
templates into per-client screenings.
"""
from .question_store import QuestionStore
from .form_store import FormTemplateStore
from .form_cloner import FormCloner, PrerequisiteAccumulator, PendingPrerequisite

__all__ = [
    "QuestionStore",
    "FormTemplateStore",
    "FormCloner",
    "PrerequisiteAccumulator",
    "PendingPrerequisite",
]
