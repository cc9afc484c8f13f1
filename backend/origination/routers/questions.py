"""
Question API Routes

CRUD over question trees (template questions and their sub questions).
"""
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..errors import operation
from ..models.db_models import UserDB
from ..models.schemas import Prerequisite, QuestionOut, dump
from ..services.audit_log import AuditLogService
from ..services.forms import QuestionStore
from ..services.pagination import paginate

router = APIRouter(prefix="/questions", tags=["questions"])


class QuestionRequest(BaseModel):
    """Question payload. Nested sub_questions are created depth-first."""
    id: Optional[str] = Field(None, description="Existing id, only used for nested updates")
    question_text: Optional[str] = None
    remark: Optional[str] = None
    number: Optional[int] = None
    type: Optional[str] = Field(None, description="YES_NO, FILL_IN_BLANK, MULTIPLE_CHOICE, SINGLE_CHOICE, GROUPED")
    required: Optional[bool] = None
    validation_factor: Optional[str] = None
    measurement_unit: Optional[str] = None
    options: Optional[List[str]] = None
    values: Optional[List[Any]] = None
    show: Optional[bool] = None
    prerequisites: Optional[List[Prerequisite]] = None
    sub_questions: Optional[List["QuestionRequest"]] = None


def _question(question) -> dict:
    return dump(QuestionOut, question)


@router.post("/create", status_code=201)
async def create_question(
    request: QuestionRequest,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("QUESTION_CREATION_ERROR"):
        try:
            question = QuestionStore(db).create(request.model_dump(exclude_unset=True))
            db.commit()
        except Exception:
            db.rollback()
            raise
        result = _question(question)

    AuditLogService(db).track("create_question", current_user.id, f"Created question {result['id']}")
    return result


@router.get("/paginate")
async def paginate_questions(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("FETCH_QUESTIONS_COLLECTION_ERROR"):
        return paginate(QuestionStore(db).query(), page, per_page, serializer=_question)


@router.get("/{question_id}")
async def get_question(
    question_id: str,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("QUESTION_RETRIEVAL_ERROR"):
        result = _question(QuestionStore(db).get(question_id))

    AuditLogService(db).track("view_question", current_user.id, f"View question {question_id}")
    return result


@router.put("/{question_id}")
async def update_question(
    question_id: str,
    request: QuestionRequest,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    body = request.model_dump(exclude_unset=True)
    with operation("UPDATE_QUESTION_ERROR"):
        try:
            question = QuestionStore(db).update(question_id, body)
            db.commit()
        except Exception:
            db.rollback()
            raise
        result = _question(question)

    AuditLogService(db).track("question_update", current_user.id, f"Update question {question_id}", diff=body)
    return result


@router.delete("/{question_id}")
async def delete_question(
    question_id: str,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("DELETE_QUESTION_ERROR"):
        try:
            QuestionStore(db).delete(question_id)
            db.commit()
        except Exception:
            db.rollback()
            raise

    AuditLogService(db).track("delete_question", current_user.id, f"Deleted question {question_id}")
    return {"id": question_id, "deleted": True}
