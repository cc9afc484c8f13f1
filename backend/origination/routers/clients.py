"""
Client API Routes

Reads and edits of clients after intake. Clients are created together with
their first screening through POST /screenings/clients/create.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..errors import ValidationError, operation
from ..models.db_models import ClientStatus, UserDB
from ..models.schemas import ClientOut, dump
from ..services.audit_log import AuditLogService
from ..services.clients import ClientService
from ..services.pagination import paginate

router = APIRouter(prefix="/screenings/clients", tags=["clients"])


class UpdateClientRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    grandfather_name: Optional[str] = None
    gender: Optional[str] = None
    national_id_no: Optional[str] = None
    date_of_birth: Optional[datetime] = None
    phone: Optional[str] = None
    civil_status: Optional[str] = None
    household_members_count: Optional[int] = None
    spouse: Optional[Dict[str, Any]] = None
    woreda: Optional[str] = None
    kebele: Optional[str] = None
    house_no: Optional[str] = None
    geolocation: Optional[List[Any]] = Field(None, description="Polygon [[lng, lat], ...]")


class ClientStatusRequest(BaseModel):
    is_active: bool


def _client(client) -> Dict[str, Any]:
    return dump(ClientOut, client)


def _parse_client_status(value: str) -> ClientStatus:
    try:
        return ClientStatus(value.lower())
    except ValueError:
        raise ValidationError([f"Unknown client status: {value}"])


@router.get("/paginate")
async def paginate_clients(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("FETCH_CLIENTS_COLLECTION_ERROR"):
        branch_ids = [current_user.branch_id] if current_user.role != "admin" and current_user.branch_id else None
        query = ClientService(db).query(
            branch_ids=branch_ids,
            status=_parse_client_status(status) if status else None,
        )
        return paginate(query, page, per_page, serializer=_client)


@router.get("/{client_id}")
async def get_client(
    client_id: str,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    with operation("CLIENT_RETRIEVAL_ERROR"):
        result = _client(ClientService(db).get(client_id))

    AuditLogService(db).track("view_client", current_user.id, f"View client {client_id}")
    return result


@router.put("/{client_id}")
def update_client(
    client_id: str,
    request: UpdateClientRequest,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    """Edit identity, household and address details."""
    body = request.model_dump(exclude_unset=True)
    with operation("UPDATE_CLIENT_ERROR"):
        try:
            client = ClientService(db).update(client_id, body)
            db.commit()
        except Exception:
            db.rollback()
            raise
        result = _client(client)

    AuditLogService(db).track(
        "client_update", current_user.id, f"Update Info for {result['phone'] or client_id}",
        diff=request.model_dump(mode="json", exclude_unset=True),
    )
    return result


@router.put("/{client_id}/status")
def update_client_status(
    client_id: str,
    request: ClientStatusRequest,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    """Activate or deactivate a client."""
    with operation("CLIENT_STATUS_UPDATE_ERROR"):
        try:
            client = ClientService(db).set_active(client_id, request.is_active)
            db.commit()
        except Exception:
            db.rollback()
            raise
        result = _client(client)

    AuditLogService(db).track(
        "client_status_update", current_user.id, f"Update Status for {result['phone'] or client_id}",
        diff=request.model_dump(),
    )
    return result
