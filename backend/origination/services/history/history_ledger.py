"""
History Ledger

Append-only, per-client record of loan cycles. Each cycle references the
screening, loan and ACAT application that made it up:

    {"cycle_number": 2, "screening": <id>, "loan": <id>, "acat": <id>,
     "started_by": <user id>, "last_edit_by": <user id>}

The ledger also gates the start of a new cycle: only one screening, loan or
ACAT may be live per client, and every earlier cycle must be structurally
complete before another one is appended.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ...errors import (
    ConflictError, CycleInProgressError, IncompleteCycleError, NoHistoryRecordError,
    NoScreeningHistoryError, NotFoundError, ValidationError,
)
from ...models.db_models import (
    ACATStatus, ClientACATDB, ClientDB, HistoryDB, LoanDB, LoanStatus,
    ScreeningDB, ScreeningStatus,
)
from ...models.schemas import HistoryOut, ScreeningOut, dump

logger = logging.getLogger(__name__)


# =============================================================================
# GATING CONFIGURATION
# =============================================================================

LIVE_SCREENING_STATUSES = {
    ScreeningStatus.NEW,
    ScreeningStatus.SCREENING_INPROGRESS,
    ScreeningStatus.SUBMITTED,
}

LIVE_LOAN_STATUSES = {
    LoanStatus.NEW,
    LoanStatus.SUBMITTED,
    LoanStatus.INPROGRESS,
}

LIVE_ACAT_STATUSES = {
    ACATStatus.NEW,
    ACATStatus.SUBMITTED,
    ACATStatus.RESUBMITTED,
    ACATStatus.INPROGRESS,
}

# Cycle key -> label used in gating messages. Order is the pipeline order.
CYCLE_APPLICATIONS = {
    "screening": "Screening",
    "loan": "Loan",
    "acat": "ACAT",
}


def new_cycle(cycle_number: int, screening_id: str, actor_id: Optional[str]) -> Dict[str, Any]:
    return {
        "cycle_number": cycle_number,
        "screening": screening_id,
        "loan": "",
        "acat": "",
        "started_by": actor_id,
        "last_edit_by": actor_id,
    }


class HistoryLedger:
    """Per-client loan cycle ledger and new-cycle validator."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # READ
    # =========================================================================

    def find(self, client_id: str) -> Optional[HistoryDB]:
        return self.db.query(HistoryDB).filter(HistoryDB.client_id == client_id).first()

    def get(self, client_id: str) -> HistoryDB:
        history = self.find(client_id)
        if history is None:
            raise NotFoundError(f"Loan Cycle History for Client {client_id} Not Found")
        return history

    def query(self, branch_ids: Optional[List[str]] = None):
        query = self.db.query(HistoryDB)
        if branch_ids:
            query = query.filter(HistoryDB.branch_id.in_(branch_ids))
        return query.order_by(HistoryDB.created_at.desc())

    def search(self, client_id: str, loan_cycle: Optional[int] = None, application: Optional[str] = None) -> Dict[str, Any]:
        """
        Full ledger, one cycle, or one application of one cycle.

        `application` is one of screening, loan, acat and requires `loan_cycle`.
        """
        history = self.get(client_id)

        if loan_cycle is None:
            if application:
                raise ValidationError(["Loan Cycle is required when searching for an application"])
            return dump(HistoryOut, history)

        cycle = next((c for c in history.cycles or [] if c.get("cycle_number") == int(loan_cycle)), None)
        if cycle is None:
            raise NotFoundError(f"Loan Cycle {loan_cycle} Not Found")

        if not application:
            return dict(cycle)

        application = application.lower()
        if application not in CYCLE_APPLICATIONS:
            raise ValidationError([f"Application must be one of {', '.join(CYCLE_APPLICATIONS)}"])

        label = CYCLE_APPLICATIONS[application]
        ref = cycle.get(application)
        if not ref:
            raise NotFoundError(f"{label} Application for Loan Cycle {loan_cycle} Not Found")

        if application == "screening":
            screening = self.db.get(ScreeningDB, ref)
            if screening is None:
                raise NotFoundError(f"Screening {ref} Not Found")
            return dump(ScreeningOut, screening)

        model = LoanDB if application == "loan" else ClientACATDB
        entity = self.db.get(model, ref)
        if entity is None:
            raise NotFoundError(f"{label} {ref} Not Found")
        return {
            "id": entity.id,
            "client_id": entity.client_id,
            "status": entity.status.value,
            "created_at": entity.created_at.isoformat() if entity.created_at else None,
        }

    # =========================================================================
    # CYCLE GATING
    # =========================================================================

    def ensure_cycles_complete(self, history: HistoryDB) -> None:
        """Raise IncompleteCycleError naming the first missing application."""
        for cycle in history.cycles or []:
            for key, label in CYCLE_APPLICATIONS.items():
                if not cycle.get(key):
                    raise IncompleteCycleError(cycle.get("cycle_number", history.cycle_number), label)

    def validate_can_start_new_cycle(self, client_id: str) -> ScreeningDB:
        """
        Check that the client may start a new loan cycle.

        Returns the client's most recent screening, which serves as the
        structural template for the next one.
        """
        screenings = (
            self.db.query(ScreeningDB)
            .filter(ScreeningDB.client_id == client_id)
            .order_by(ScreeningDB.created_at.desc())
            .all()
        )
        if not screenings:
            raise NoScreeningHistoryError("Client Has No Previous Screening Application")

        for screening in screenings:
            if screening.status in LIVE_SCREENING_STATUSES:
                raise CycleInProgressError(
                    f"Client Has A Screening in {screening.status.value} state"
                )

        live_loan = (
            self.db.query(LoanDB)
            .filter(LoanDB.client_id == client_id, LoanDB.status.in_(LIVE_LOAN_STATUSES))
            .first()
        )
        if live_loan is not None:
            raise CycleInProgressError(f"Client Has A Loan in {live_loan.status.value} state")

        live_acat = (
            self.db.query(ClientACATDB)
            .filter(ClientACATDB.client_id == client_id, ClientACATDB.status.in_(LIVE_ACAT_STATUSES))
            .first()
        )
        if live_acat is not None:
            raise CycleInProgressError(f"Client Has An ACAT in {live_acat.status.value} state")

        history = self.find(client_id)
        if history is None:
            raise NoHistoryRecordError("Client Has No Loan Cycle History")

        self.ensure_cycles_complete(history)

        return screenings[0]

    # =========================================================================
    # WRITE
    # =========================================================================

    def seed(self, client: ClientDB, screening_id: str, actor_id: Optional[str]) -> HistoryDB:
        """Open the ledger of a brand-new client at cycle 1."""
        if self.find(client.id) is not None:
            raise ConflictError(f"Loan Cycle History for Client {client.id} already exists")

        history = HistoryDB(
            id=str(uuid4()),
            client_id=client.id,
            branch_id=client.branch_id,
            cycle_number=1,
            cycles=[new_cycle(1, screening_id, actor_id)],
        )
        self.db.add(history)
        client.loan_cycle_number = 1
        self.db.flush()
        return history

    def append_cycle(self, client_id: str, screening_id: str, actor_id: Optional[str]) -> HistoryDB:
        """Open the next cycle. Every earlier cycle must be complete."""
        history = self.find(client_id)
        if history is None:
            raise NoHistoryRecordError("Client Has No Loan Cycle History")

        self.ensure_cycles_complete(history)

        cycle_number = (history.cycle_number or 0) + 1
        history.cycle_number = cycle_number
        history.cycles = list(history.cycles or []) + [new_cycle(cycle_number, screening_id, actor_id)]
        history.updated_at = datetime.utcnow()

        client = self.db.get(ClientDB, client_id)
        if client is not None:
            client.loan_cycle_number = cycle_number

        self.db.flush()
        logger.info(f"Client {client_id} entered loan cycle {cycle_number}")
        return history

    def record_application(
        self,
        client_id: str,
        application: str,
        ref: str,
        actor_id: Optional[str],
        cycle_number: Optional[int] = None,
    ) -> HistoryDB:
        """Record the loan or ACAT of a cycle (the current one by default)."""
        application = (application or "").lower()
        if application not in ("loan", "acat"):
            raise ValidationError(["Application must be one of loan, acat"])
        if not ref:
            raise ValidationError([f"{CYCLE_APPLICATIONS[application]} reference is Empty"])

        model = LoanDB if application == "loan" else ClientACATDB
        entity = self.db.get(model, ref)
        if entity is None:
            raise NotFoundError(f"{CYCLE_APPLICATIONS[application]} {ref} Not Found")
        if entity.client_id != client_id:
            raise ValidationError([
                f"{CYCLE_APPLICATIONS[application]} {ref} does not belong to Client {client_id}"
            ])

        history = self.get(client_id)
        target = cycle_number if cycle_number is not None else history.cycle_number

        cycles = [dict(c) for c in history.cycles or []]
        for cycle in cycles:
            if cycle.get("cycle_number") == target:
                cycle[application] = ref
                cycle["last_edit_by"] = actor_id
                break
        else:
            raise NotFoundError(f"Loan Cycle {target} Not Found")

        history.cycles = cycles
        history.updated_at = datetime.utcnow()
        self.db.flush()
        return history
