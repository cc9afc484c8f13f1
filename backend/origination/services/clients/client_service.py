"""
Client Service

Client intake: validation, duplicate detection, document upload and
creation. Intake arrives already normalised into a ClientIntake, whatever
the request encoding was.

Also edits client details after intake. Workflow status, branch and core
banking fields are not editable here, they follow screening outcomes and
the CBS push.
"""
import logging
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ...errors import DuplicateClientError, NotFoundError, ValidationError
from ...models.db_models import ClientDB, ClientStatus, UserDB
from ...models.dto import ClientIntake
from ..integrations import LocalAssetStore, parcel_points

logger = logging.getLogger(__name__)


REQUIRED_FIELDS = (
    ("first_name", "Client First Name is Empty"),
    ("last_name", "Client Last Name is Empty"),
    ("grandfather_name", "Client Grandfather name is Empty"),
    ("gender", "Client Gender is Empty"),
    ("national_id_no", "Client National Id No is Empty"),
    ("branch", "Client Related Branch is Empty"),
    ("created_by", "Client Created By is Empty"),
    ("civil_status", "Client Civil Status is Empty"),
    ("household_members_count", "Client household_members_count is Empty"),
)

UPDATABLE_FIELDS = (
    "first_name", "last_name", "grandfather_name", "gender", "national_id_no",
    "date_of_birth", "phone", "civil_status", "household_members_count",
    "spouse", "woreda", "kebele", "house_no", "geolocation",
)


def needs_spouse(civil_status: Optional[str], spouse: Any) -> bool:
    return bool(civil_status) and civil_status.lower() != "single" and not spouse


def validate_intake(intake: ClientIntake) -> List[str]:
    """Collect every intake problem at once."""
    errors = [message for name, message in REQUIRED_FIELDS if not getattr(intake, name)]
    if needs_spouse(intake.civil_status, intake.spouse):
        errors.append("Client Spouse Info is Empty!!")
    return errors


class ClientService:

    def __init__(self, db: Session, assets: Optional[LocalAssetStore] = None):
        self.db = db
        self.assets = assets or LocalAssetStore()

    def get(self, client_id: str) -> ClientDB:
        client = self.db.get(ClientDB, client_id)
        if client is None:
            raise NotFoundError(f"Client {client_id} Not Found")
        return client

    def create(self, intake: ClientIntake, actor: UserDB, stored_assets: List[str]) -> ClientDB:
        """
        Validate and create a client. Does not commit.

        URLs of assets written along the way are appended to `stored_assets`
        so the caller can remove them if the enclosing transaction fails.
        """
        errors = validate_intake(intake)
        if errors:
            raise ValidationError(errors)
        geolocation = parcel_points(intake.geolocation) if intake.geolocation else None

        if intake.phone:
            existing = self.db.query(ClientDB).filter(ClientDB.phone == intake.phone).first()
            if existing is not None:
                raise DuplicateClientError("Client with those details already exists!!")

        national_id_card = None
        if intake.national_id_card is not None:
            national_id_card = self.assets.store(intake.national_id_card, intake.first_name)
            stored_assets.append(national_id_card)

        picture = None
        if intake.picture is not None:
            picture = self.assets.store(intake.picture, intake.first_name)
            stored_assets.append(picture)

        client = ClientDB(
            id=str(uuid4()),
            branch_id=intake.branch,
            created_by=intake.created_by or actor.id,
            first_name=intake.first_name.strip(),
            last_name=intake.last_name.strip(),
            grandfather_name=intake.grandfather_name.strip(),
            gender=intake.gender,
            national_id_no=intake.national_id_no,
            national_id_card=national_id_card,
            picture=picture,
            date_of_birth=intake.date_of_birth,
            phone=intake.phone,
            civil_status=intake.civil_status,
            household_members_count=int(intake.household_members_count),
            spouse=intake.spouse,
            woreda=intake.woreda,
            kebele=intake.kebele,
            house_no=intake.house_no,
            geolocation=geolocation,
            status=ClientStatus.NEW,
            loan_cycle_number=1,
        )
        self.db.add(client)
        self.db.flush()

        logger.info(f"Created client {client.id} in branch {client.branch_id}")
        return client

    def query(self, branch_ids: Optional[List[str]] = None, status: Optional[ClientStatus] = None):
        query = self.db.query(ClientDB)
        if branch_ids:
            query = query.filter(ClientDB.branch_id.in_(branch_ids))
        if status is not None:
            query = query.filter(ClientDB.status == status)
        return query.order_by(ClientDB.created_at.desc())

    def update(self, client_id: str, data: Dict[str, Any]) -> ClientDB:
        """Edit client details. Fields outside UPDATABLE_FIELDS are ignored. Does not commit."""
        client = self.get(client_id)
        changes = {name: data[name] for name in UPDATABLE_FIELDS if name in data}

        errors = [message for name, message in REQUIRED_FIELDS if name in changes and not changes[name]]
        if needs_spouse(changes.get("civil_status", client.civil_status), changes.get("spouse", client.spouse)):
            errors.append("Client Spouse Info is Empty!!")
        if errors:
            raise ValidationError(errors)

        if changes.get("geolocation"):
            changes["geolocation"] = parcel_points(changes["geolocation"])

        phone = changes.get("phone")
        if phone and phone != client.phone:
            existing = (
                self.db.query(ClientDB)
                .filter(ClientDB.phone == phone, ClientDB.id != client.id)
                .first()
            )
            if existing is not None:
                raise DuplicateClientError("Client with those details already exists!!")

        for name, value in changes.items():
            if isinstance(value, str) and name in ("first_name", "last_name", "grandfather_name"):
                value = value.strip()
            setattr(client, name, value)

        self.db.flush()
        logger.info(f"Updated client {client.id}: {', '.join(changes) or 'no changes'}")
        return client

    def set_active(self, client_id: str, is_active: bool) -> ClientDB:
        client = self.get(client_id)
        client.is_active = is_active
        self.db.flush()
        logger.info(f"Client {client.id} {'activated' if is_active else 'deactivated'}")
        return client
