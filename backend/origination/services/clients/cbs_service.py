"""
CBS Service

Pushes eligible clients to the core banking system and keeps the CBS
credentials. A persisted CBSConfigDB row wins over the environment.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import uuid4

import requests
from sqlalchemy.orm import Session

from ...errors import CBSRequestError, ValidationError
from ...models.db_models import CBSConfigDB, CBSStatus, ClientDB, ClientStatus
from ..integrations import CBSClient, CBSCredentials, LocalAssetStore

logger = logging.getLogger(__name__)

CONFIG_FIELDS = ("url", "username", "password", "device_id")


def customer_payload(client: ClientDB, picture_id: Optional[str], card_id: Optional[str]) -> Dict[str, Any]:
    date_joined = (client.created_at or datetime.utcnow()).strftime("%d/%m/%Y")
    return {
        "customerType": 1,
        "name": f"{client.last_name}, {client.first_name}",
        "branchID": client.branch_id,
        "persons": [{
            "gender": 0 if (client.gender or "").lower() == "male" else 1,
            "forenamePartOne": client.first_name,
            "forenamePartTwo": client.last_name,
            "surname": client.grandfather_name,
            "dateOfBirth": client.date_of_birth.strftime("%d/%m/%Y") if client.date_of_birth else None,
            "telephone1": client.phone,
            "pictureID": picture_id,
            "cardPictureID": card_id,
        }],
        "customerAddress": [{
            "address": {
                "address1": client.woreda,
                "address2": client.kebele,
                "address3": client.house_no,
                "country": "Ethiopia",
                "townCity": client.woreda,
            },
            "addressTypeID": 1,
            "dateMovedIn": date_joined,
            "dateMovedOut": None,
            "isPrimary": True,
        }],
        "DateJoined": date_joined,
    }


class CBSService:

    def __init__(self, db: Session, assets: Optional[LocalAssetStore] = None, session: Optional[requests.Session] = None):
        self.db = db
        self.assets = assets or LocalAssetStore()
        self.session = session

    # =========================================================================
    # CONFIG
    # =========================================================================

    def get_config(self) -> Optional[CBSConfigDB]:
        return self.db.query(CBSConfigDB).first()

    def credentials(self) -> CBSCredentials:
        row = self.get_config()
        if row is None:
            return CBSCredentials.from_env()
        return CBSCredentials(url=row.url, username=row.username, password=row.password, device_id=row.device_id or "")

    def update_config(self, data: Dict[str, Any]) -> CBSConfigDB:
        """Upsert the single config row. Unset fields fall back to the current credentials."""
        current = self.credentials()
        row = self.get_config()
        if row is None:
            row = CBSConfigDB(id=str(uuid4()))
            self.db.add(row)

        for name in CONFIG_FIELDS:
            value = data.get(name)
            setattr(row, name, value if value is not None else getattr(current, name))

        if not row.url:
            raise ValidationError(["CBS URL is Empty"])

        self.db.commit()
        logger.info(f"CBS config updated: {row.url} as {row.username}")
        return row

    # =========================================================================
    # PUSH
    # =========================================================================

    def push_client(self, client: ClientDB) -> ClientDB:
        """
        Create the client in the CBS. Commits the outcome either way.

        Raises CBSRequestError after marking the client DENIED.
        """
        if client.status != ClientStatus.ELIGIBLE:
            raise ValidationError([f"Client {client.id} is not eligible, status is {client.status.value}"])

        cbs = CBSClient(self.credentials(), session=self.session)
        try:
            cbs.login()
            picture_id = cbs.upload_picture(self.assets.path_for(client.picture)) if client.picture else None
            card_id = cbs.upload_id(self.assets.path_for(client.national_id_card)) if client.national_id_card else None
            ref = cbs.create_client(customer_payload(client, picture_id, card_id))
        except CBSRequestError as e:
            client.cbs_status = CBSStatus.DENIED
            client.cbs_message = e.message
            self.db.commit()
            logger.error(f"CBS push for client {client.id} denied: {e.message}")
            raise

        client.cbs_status = CBSStatus.ACCEPTED
        client.cbs_ref = ref
        client.cbs_message = None
        self.db.commit()
        logger.info(f"Client {client.id} accepted by CBS as {ref}")
        return client
