"""
Core Banking System API Routes
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_admin
from ..database import get_db
from ..errors import operation
from ..models.db_models import UserDB
from ..models.schemas import ClientOut, dump
from ..services.audit_log import AuditLogService
from ..services.clients import CBSService, ClientService

router = APIRouter(prefix="/cbs", tags=["cbs"])


class ConnectRequest(BaseModel):
    client: str = Field(..., description="Id of an eligible client")


class CBSConfigRequest(BaseModel):
    url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    device_id: Optional[str] = None


@router.post("/connect")
def connect_client(
    request: ConnectRequest,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    """Push an eligible client to the core banking system."""
    with operation("CBS_CONNECTION_ERROR"):
        client = ClientService(db).get(request.client)
        client = CBSService(db).push_client(client)
        result = dump(ClientOut, client)

    AuditLogService(db).track("cbs_connect", current_user.id, f"Pushed client {request.client} to CBS")
    return result


@router.put("/config")
def update_config(
    request: CBSConfigRequest,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(require_admin),
):
    with operation("CBS_CONFIG_UPDATE_ERROR"):
        row = CBSService(db).update_config(request.model_dump(exclude_unset=True))
        result = {"url": row.url, "username": row.username, "device_id": row.device_id}

    AuditLogService(db).track("cbs_config_update", current_user.id, "Updated CBS config", diff=result)
    return {"message": "updated successfully", **result}
