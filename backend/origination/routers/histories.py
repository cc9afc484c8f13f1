"""
Loan Cycle History API Routes
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..errors import operation
from ..models.db_models import UserDB
from ..models.schemas import HistoryOut, dump
from ..services.audit_log import AuditLogService
from ..services.history import HistoryLedger
from ..services.pagination import paginate

router = APIRouter(prefix="/screenings/histories", tags=["histories"])


class RecordApplicationRequest(BaseModel):
    """Attach a loan or ACAT application to a cycle of the client's history."""
    application: str = Field(..., description="loan or acat")
    ref: str = Field(..., description="Id of the loan or ACAT application")
    cycle_number: Optional[int] = Field(None, description="Defaults to the current cycle")


@router.get("/search")
async def search_history(
    client: str = Query(..., description="Client id"),
    loan_cycle: Optional[int] = Query(None, alias="loanCycle", ge=1),
    application: Optional[str] = Query(None, description="screening, loan or acat"),
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    """
    Full ledger of a client, one of its cycles, or one application of a cycle.
    """
    with operation("SEARCH_HISTORY_ERROR"):
        result = HistoryLedger(db).search(client, loan_cycle=loan_cycle, application=application)

    AuditLogService(db).track("search_history", current_user.id, f"Search history of client {client}")
    return result


@router.get("/paginate")
async def paginate_histories(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("FETCH_HISTORIES_COLLECTION_ERROR"):
        branch_ids = [current_user.branch_id] if current_user.role != "admin" and current_user.branch_id else None
        query = HistoryLedger(db).query(branch_ids=branch_ids)
        return paginate(query, page, per_page, serializer=lambda h: dump(HistoryOut, h))


@router.get("/clients/{client_id}")
async def get_client_history(
    client_id: str,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("HISTORY_RETRIEVAL_ERROR"):
        result = dump(HistoryOut, HistoryLedger(db).get(client_id))

    AuditLogService(db).track("view_history", current_user.id, f"View history of client {client_id}")
    return result


@router.post("/clients/{client_id}/applications")
def record_application(
    client_id: str,
    request: RecordApplicationRequest,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    """Called when a loan or ACAT application is opened for the client."""
    with operation("UPDATE_HISTORY_ERROR"):
        try:
            history = HistoryLedger(db).record_application(
                client_id, request.application, request.ref, current_user.id,
                cycle_number=request.cycle_number,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        result = dump(HistoryOut, history)

    AuditLogService(db).track(
        "history_update", current_user.id,
        f"Recorded {request.application} {request.ref} for client {client_id}",
        diff=request.model_dump(),
    )
    return result
