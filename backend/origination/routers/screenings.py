"""
Screening API Routes

Client intake with its first screening, new loan cycles, answer edits and
the status workflow.
"""
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_admin
from ..database import get_db
from ..errors import ValidationError, operation
from ..models.db_models import UserDB
from ..models.dto import AssetFile, ClientIntake
from ..models.schemas import ScreeningOut, dump
from ..services.audit_log import AuditLogService
from ..services.pagination import paginate
from ..services.screening import ScreeningService, ScreeningStore, parse_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/screenings", tags=["screenings"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class StartCycleRequest(BaseModel):
    """Start the next loan cycle for an existing client."""
    client: str = Field(..., description="Client id")


class AnswerEdit(BaseModel):
    id: str
    values: Optional[List[Any]] = None
    remark: Optional[str] = None
    show: Optional[bool] = None
    sub_questions: Optional[List["AnswerEdit"]] = None


class SectionAnswers(BaseModel):
    id: Optional[str] = None
    questions: List[AnswerEdit] = Field(default_factory=list)


class UpdateScreeningRequest(BaseModel):
    status: Optional[str] = Field(None, description="Target screening status")
    comment: Optional[str] = None
    questions: Optional[List[AnswerEdit]] = None
    sections: Optional[List[SectionAnswers]] = None


def _asset(upload: Optional[UploadFile]) -> Optional[AssetFile]:
    if upload is None or not upload.filename:
        return None
    return AssetFile(filename=upload.filename, content=upload.file.read(), content_type=upload.content_type)


def _json_field(name: str, raw: Optional[str]) -> Any:
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationError([f"Client {name} is not valid JSON"])


def _screening(screening) -> Dict[str, Any]:
    return dump(ScreeningOut, screening)


# =============================================================================
# CREATE
# =============================================================================

@router.post("/clients/create", status_code=201)
def create_client_screening(
    first_name: Optional[str] = Form(None),
    last_name: Optional[str] = Form(None),
    grandfather_name: Optional[str] = Form(None),
    gender: Optional[str] = Form(None),
    national_id_no: Optional[str] = Form(None),
    branch: Optional[str] = Form(None),
    created_by: Optional[str] = Form(None),
    civil_status: Optional[str] = Form(None),
    household_members_count: Optional[int] = Form(None),
    phone: Optional[str] = Form(None),
    date_of_birth: Optional[datetime] = Form(None),
    woreda: Optional[str] = Form(None),
    kebele: Optional[str] = Form(None),
    house_no: Optional[str] = Form(None),
    spouse: Optional[str] = Form(None, description="JSON object"),
    geolocation: Optional[str] = Form(None, description="JSON polygon [[lng, lat], ...]"),
    national_id_card: Optional[UploadFile] = File(None),
    picture: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    """
    Create a client together with its first screening (loan cycle 1).
    """
    with operation("CLIENT_SCREENING_CREATION_ERROR"):
        intake = ClientIntake(
            first_name=first_name,
            last_name=last_name,
            grandfather_name=grandfather_name,
            gender=gender,
            national_id_no=national_id_no,
            branch=branch or current_user.branch_id,
            created_by=created_by or current_user.id,
            civil_status=civil_status,
            household_members_count=household_members_count,
            phone=phone,
            date_of_birth=date_of_birth,
            woreda=woreda,
            kebele=kebele,
            house_no=house_no,
            spouse=_json_field("Spouse Info", spouse),
            geolocation=_json_field("Geolocation", geolocation),
            national_id_card=_asset(national_id_card),
            picture=_asset(picture),
        )
        screening = ScreeningService(db).create_client_screening(intake, current_user)
        result = _screening(screening)

    AuditLogService(db).track(
        "create_client_screening", current_user.id,
        f"Created client {result['client_id']} with screening {result['id']}",
    )
    return result


@router.post("/create", status_code=201)
def start_new_cycle(
    request: StartCycleRequest,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    """
    Start a new loan cycle: clone the client's latest screening and append
    a cycle to the client's history.
    """
    with operation("SCREENING_CREATION_ERROR"):
        screening = ScreeningService(db).start_new_cycle(request.client, current_user)
        result = _screening(screening)

    AuditLogService(db).track(
        "create_screening", current_user.id,
        f"Created screening {result['id']} for client {request.client}",
    )
    return result


# =============================================================================
# READ
# =============================================================================

@router.get("/paginate")
async def paginate_screenings(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    """Latest screening of every client still in the screening stage."""
    with operation("FETCH_SCREENINGS_COLLECTION_ERROR"):
        branch_ids = [current_user.branch_id] if current_user.role != "admin" and current_user.branch_id else None
        query = ScreeningStore(db).query_latest_per_client(branch_ids=branch_ids)
        return paginate(query, page, per_page, serializer=_screening)


@router.get("/search")
async def search_screenings(
    client: Optional[str] = None,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("SEARCH_SCREENINGS_ERROR"):
        query = ScreeningStore(db).query(
            client_id=client,
            status=parse_status(status) if status else None,
        )
        return paginate(query, page, per_page, serializer=_screening)


@router.get("/clients/{client_id}/screenings")
async def get_client_screening(
    client_id: str,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    """Latest screening of a client."""
    with operation("CLIENT_SCREENING_RETRIEVAL_ERROR"):
        result = _screening(ScreeningStore(db).get_latest_for_client(client_id))

    AuditLogService(db).track("view_client_screening", current_user.id, f"View screening of client {client_id}")
    return result


@router.get("/{screening_id}")
async def get_screening(
    screening_id: str,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("SCREENING_RETRIEVAL_ERROR"):
        result = _screening(ScreeningStore(db).get(screening_id))

    AuditLogService(db).track("view_screening", current_user.id, f"View screening {screening_id}")
    return result


# =============================================================================
# UPDATE / REMOVE
# =============================================================================

@router.put("/{screening_id}")
def update_screening(
    screening_id: str,
    request: UpdateScreeningRequest,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    """
    Edit answers, comment and status. A status change runs the approval
    workflow (tasks, client status, notifications).
    """
    body = request.model_dump(exclude_unset=True)
    with operation("UPDATE_SCREENING_ERROR"):
        screening = ScreeningService(db).update_screening(screening_id, body, current_user)
        result = _screening(screening)

    event = "screening_status_update" if body.get("status") else "screening_update"
    AuditLogService(db).track(
        event, current_user.id, f"Update screening {screening_id}",
        diff={k: v for k, v in body.items() if k in ("status", "comment")},
    )
    return result


@router.delete("/{screening_id}")
def delete_screening(
    screening_id: str,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(require_admin),
):
    """Administrative removal. Cascades to the screening's questions and sections."""
    with operation("DELETE_SCREENING_ERROR"):
        ScreeningService(db).delete_screening(screening_id)

    AuditLogService(db).track("delete_screening", current_user.id, f"Deleted screening {screening_id}")
    return {"id": screening_id, "deleted": True}
