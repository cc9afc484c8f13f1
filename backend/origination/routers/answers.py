"""
Answer API Routes

Answers are the questions a screening owns. Only answer fields (values,
remark, show) can change here; question structure stays as cloned.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..errors import operation
from ..models.db_models import UserDB
from ..models.schemas import QuestionOut, dump
from ..services.audit_log import AuditLogService
from ..services.pagination import paginate
from ..services.screening import ScreeningService, ScreeningStore
from .screenings import AnswerEdit

router = APIRouter(prefix="/screenings/answers", tags=["answers"])


class AnswerRequest(BaseModel):
    values: Optional[List] = None
    remark: Optional[str] = None
    show: Optional[bool] = None
    sub_questions: Optional[List[AnswerEdit]] = None


def _answer(question) -> dict:
    return dump(QuestionOut, question)


@router.get("/paginate")
async def paginate_answers(
    screening: Optional[str] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("FETCH_ANSWERS_COLLECTION_ERROR"):
        return paginate(ScreeningStore(db).query_answers(screening), page, per_page, serializer=_answer)


@router.get("/{answer_id}")
async def get_answer(
    answer_id: str,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("ANSWER_RETRIEVAL_ERROR"):
        result = _answer(ScreeningStore(db).get_answer(answer_id))

    AuditLogService(db).track("view_answer", current_user.id, f"View answer {answer_id}")
    return result


@router.put("/{answer_id}")
def update_answer(
    answer_id: str,
    request: AnswerRequest,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    body = request.model_dump(exclude_unset=True)
    with operation("UPDATE_ANSWER_ERROR"):
        result = _answer(ScreeningService(db).update_answer(answer_id, body))

    AuditLogService(db).track(
        "answer_update", current_user.id, f"Update answer {answer_id}",
        diff={k: v for k, v in body.items() if k != "sub_questions"},
    )
    return result
