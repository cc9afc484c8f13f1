"""
Form Template API Routes

Form templates, their sections, and the questions attached to either.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..errors import operation
from ..models.db_models import UserDB
from ..models.schemas import FormOut, QuestionOut, SectionOut, dump
from ..services.audit_log import AuditLogService
from ..services.forms import FormTemplateStore
from ..services.forms.form_store import parse_form_type
from ..services.pagination import paginate
from .questions import QuestionRequest

router = APIRouter(prefix="/forms", tags=["forms"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class SectionRequest(BaseModel):
    title: Optional[str] = None
    number: Optional[int] = None
    questions: Optional[List[QuestionRequest]] = None


class FormRequest(BaseModel):
    type: Optional[str] = Field(None, description="SCREENING, LOAN_APPLICATION, GROUP_APPLICATION")
    title: Optional[str] = None
    subtitle: Optional[str] = None
    purpose: Optional[str] = None
    layout: Optional[str] = Field(None, description="TWO_COLUMNS or THREE_COLUMNS")
    has_sections: Optional[bool] = None
    disclaimer: Optional[str] = None
    signatures: Optional[List[str]] = None
    questions: Optional[List[QuestionRequest]] = None
    sections: Optional[List[SectionRequest]] = None


def _form(form) -> dict:
    return dump(FormOut, form)


def _commit(db: Session, fn, *args):
    try:
        result = fn(*args)
        db.commit()
        return result
    except Exception:
        db.rollback()
        raise


# =============================================================================
# FORMS
# =============================================================================

@router.post("/create", status_code=201)
async def create_form(
    request: FormRequest,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("FORM_CREATION_ERROR"):
        store = FormTemplateStore(db)
        form = _commit(db, store.create, request.model_dump(exclude_unset=True), current_user.id)
        result = _form(form)

    AuditLogService(db).track("create_form", current_user.id, f"Created form {result['id']}")
    return result


@router.get("/paginate")
async def paginate_forms(
    type: Optional[str] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("FETCH_FORMS_COLLECTION_ERROR"):
        query = FormTemplateStore(db).query(parse_form_type(type) if type else None)
        return paginate(query, page, per_page, serializer=_form)


@router.get("/screening")
async def get_screening_form(
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    """The template new screenings are cloned from."""
    with operation("FORM_RETRIEVAL_ERROR"):
        return _form(FormTemplateStore(db).get_screening_template())


@router.get("/{form_id}")
async def get_form(
    form_id: str,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("FORM_RETRIEVAL_ERROR"):
        result = _form(FormTemplateStore(db).get(form_id))

    AuditLogService(db).track("view_form", current_user.id, f"View form {form_id}")
    return result


@router.put("/{form_id}")
async def update_form(
    form_id: str,
    request: FormRequest,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    body = request.model_dump(exclude_unset=True, exclude={"questions", "sections"})
    with operation("UPDATE_FORM_ERROR"):
        store = FormTemplateStore(db)
        result = _form(_commit(db, store.update, form_id, body))

    AuditLogService(db).track("form_update", current_user.id, f"Update form {form_id}", diff=body)
    return result


@router.delete("/{form_id}")
async def delete_form(
    form_id: str,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("DELETE_FORM_ERROR"):
        store = FormTemplateStore(db)
        _commit(db, store.delete, form_id)

    AuditLogService(db).track("delete_form", current_user.id, f"Deleted form {form_id}")
    return {"id": form_id, "deleted": True}


@router.post("/{form_id}/questions", status_code=201)
async def add_form_question(
    form_id: str,
    request: QuestionRequest,
    section_id: Optional[str] = Query(None, description="Attach to this section instead of the form"),
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("QUESTION_CREATION_ERROR"):
        store = FormTemplateStore(db)
        question = _commit(db, store.add_question, form_id, request.model_dump(exclude_unset=True), section_id)
        result = dump(QuestionOut, question)

    AuditLogService(db).track("create_question", current_user.id, f"Added question {result['id']} to form {form_id}")
    return result


# =============================================================================
# SECTIONS
# =============================================================================

@router.post("/{form_id}/sections", status_code=201)
async def add_section(
    form_id: str,
    request: SectionRequest,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("SECTION_CREATION_ERROR"):
        store = FormTemplateStore(db)
        section = _commit(db, store.add_section, form_id, request.model_dump(exclude_unset=True))
        result = dump(SectionOut, section)

    AuditLogService(db).track("create_section", current_user.id, f"Added section {result['id']} to form {form_id}")
    return result


@router.put("/{form_id}/sections/{section_id}")
async def update_section(
    form_id: str,
    section_id: str,
    request: SectionRequest,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("UPDATE_SECTION_ERROR"):
        store = FormTemplateStore(db)
        section = _commit(db, store.update_section, section_id, request.model_dump(exclude_unset=True, exclude={"questions"}))
        return dump(SectionOut, section)


@router.delete("/{form_id}/sections/{section_id}")
async def delete_section(
    form_id: str,
    section_id: str,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("DELETE_SECTION_ERROR"):
        store = FormTemplateStore(db)
        _commit(db, store.delete_section, section_id)
    return {"id": section_id, "deleted": True}
