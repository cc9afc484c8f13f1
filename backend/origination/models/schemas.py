"""
Loan Origination API - Read Models

Pydantic views over the ORM models, shared by every router.
"""
from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .db_models import (
    QuestionType, ValidationFactor, FormType, FormLayout, ScreeningStatus,
    ClientStatus, CBSStatus, TaskType, TaskStatus,
)


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class Prerequisite(BaseModel):
    """Conditional-visibility rule: show when `question` was answered `answer`."""
    question: str
    answer: str = ""


class QuestionOut(ORMModel):
    id: str
    question_text: str
    remark: Optional[str] = ""
    number: Optional[int] = 1
    type: QuestionType
    required: Optional[bool] = False
    validation_factor: Optional[ValidationFactor] = ValidationFactor.NONE
    measurement_unit: Optional[str] = ""
    options: List[str] = Field(default_factory=list)
    values: List[str] = Field(default_factory=list)
    show: Optional[bool] = True
    prerequisites: List[Prerequisite] = Field(default_factory=list)
    sub_questions: List[QuestionOut] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("options", "values", "prerequisites", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return v or []


class SectionOut(ORMModel):
    id: str
    title: Optional[str] = ""
    number: Optional[int] = 1
    questions: List[QuestionOut] = Field(default_factory=list)


class FormOut(ORMModel):
    id: str
    type: FormType
    title: Optional[str] = ""
    subtitle: Optional[str] = ""
    purpose: Optional[str] = ""
    layout: Optional[FormLayout] = FormLayout.TWO_COLUMNS
    has_sections: Optional[bool] = False
    disclaimer: Optional[str] = ""
    signatures: List[str] = Field(default_factory=list)
    created_by: Optional[str] = None
    questions: List[QuestionOut] = Field(default_factory=list)
    sections: List[SectionOut] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    @field_validator("signatures", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return v or []


class ClientOut(ORMModel):
    id: str
    branch_id: str
    created_by: Optional[str] = None
    first_name: str
    last_name: str
    grandfather_name: str
    gender: str
    national_id_no: str
    national_id_card: Optional[str] = None
    picture: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    phone: Optional[str] = None
    civil_status: str
    household_members_count: Optional[int] = 0
    spouse: Optional[Dict[str, Any]] = None
    woreda: Optional[str] = None
    kebele: Optional[str] = None
    house_no: Optional[str] = None
    geolocation: Optional[List[List[float]]] = None
    status: ClientStatus
    loan_cycle_number: Optional[int] = 1
    is_active: Optional[bool] = True
    cbs_status: Optional[CBSStatus] = None
    cbs_ref: Optional[str] = None
    created_at: Optional[datetime] = None


class ScreeningOut(ORMModel):
    id: str
    client_id: str
    branch_id: Optional[str] = None
    created_by: Optional[str] = None
    status: ScreeningStatus
    comment: Optional[str] = ""
    title: Optional[str] = ""
    subtitle: Optional[str] = ""
    purpose: Optional[str] = ""
    layout: Optional[FormLayout] = FormLayout.TWO_COLUMNS
    has_sections: Optional[bool] = False
    disclaimer: Optional[str] = ""
    signatures: List[str] = Field(default_factory=list)
    questions: List[QuestionOut] = Field(default_factory=list)
    sections: List[SectionOut] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("signatures", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return v or []


class CycleOut(BaseModel):
    cycle_number: int
    screening: str = ""
    loan: str = ""
    acat: str = ""
    started_by: Optional[str] = None
    last_edit_by: Optional[str] = None


class HistoryOut(ORMModel):
    id: str
    client_id: str
    branch_id: Optional[str] = None
    cycle_number: int
    cycles: List[CycleOut] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TaskOut(ORMModel):
    id: str
    task: str
    task_type: TaskType
    entity_ref: str
    entity_type: Optional[str] = None
    status: TaskStatus
    comment: Optional[str] = ""
    created_by: Optional[str] = None
    assigned_to: Optional[str] = None
    branch_id: Optional[str] = None
    created_at: Optional[datetime] = None


class NotificationOut(ORMModel):
    id: str
    type: str
    message: str
    task_ref: Optional[str] = None
    for_user: Optional[str] = None
    read: Optional[bool] = False
    created_at: Optional[datetime] = None


def dump(schema, obj) -> dict:
    """Serialize an ORM object through a read model into JSON-ready data."""
    return schema.model_validate(obj).model_dump(mode="json")
