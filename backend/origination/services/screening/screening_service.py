"""
Screening Service

Orchestrates the screening flows across the client, form, cloner, store,
ledger and workflow services. Each public method is one unit of work: it
commits on success, and on failure rolls back and undoes what the database
cannot (stored asset files).
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ...models.db_models import ClientStatus, QuestionDB, ScreeningDB, UserDB
from ...models.dto import ClientIntake
from ..clients import ClientService
from ..forms import FormCloner, FormTemplateStore, QuestionStore
from ..history import HistoryLedger
from ..integrations import GeoValidationService, LocalAssetStore
from .locks import client_locks
from .screening_store import ScreeningStore
from .state_machine import parse_status
from .workflow import WorkflowCoordinator

logger = logging.getLogger(__name__)


class ScreeningService:

    def __init__(
        self,
        db: Session,
        assets: Optional[LocalAssetStore] = None,
        geo: Optional[GeoValidationService] = None,
    ):
        self.db = db
        self.assets = assets or LocalAssetStore()
        self.geo = geo or GeoValidationService()
        self.clients = ClientService(db, self.assets)
        self.forms = FormTemplateStore(db)
        self.questions = QuestionStore(db)
        self.cloner = FormCloner(db)
        self.store = ScreeningStore(db)
        self.ledger = HistoryLedger(db)
        self.workflow = WorkflowCoordinator(db)

    # =========================================================================
    # NEW CLIENT
    # =========================================================================

    def create_client_screening(self, intake: ClientIntake, actor: UserDB) -> ScreeningDB:
        """
        Create a client, clone the screening template for it and open its
        loan cycle history at cycle 1.
        """
        stored_assets: List[str] = []
        try:
            client = self.clients.create(intake, actor, stored_assets)

            template = self.forms.get_screening_template()
            cloned = self.cloner.clone_form(template)
            screening = self.store.create(client, cloned, template, created_by=actor.id)

            self.ledger.seed(client, screening.id, actor.id)
            client.status = ClientStatus.SCREENING_INPROGRESS

            if client.geolocation:
                client.geolocation_result = self.geo.submit_parcel(client.geolocation, tag=client.id)

            self.db.commit()
        except Exception:
            self.db.rollback()
            for url in stored_assets:
                self.assets.remove(url)
            raise

        logger.info(f"Client {client.id} created with screening {screening.id}")
        return screening

    # =========================================================================
    # NEW CYCLE
    # =========================================================================

    def start_new_cycle(self, client_id: str, actor: UserDB) -> ScreeningDB:
        """
        Open the next loan cycle for an existing client, cloning the
        structure of the client's latest screening.
        """
        client = self.clients.get(client_id)

        with client_locks.hold(client_id):
            try:
                source = self.ledger.validate_can_start_new_cycle(client_id)
                cloned = self.cloner.clone_form(source)
                screening = self.store.create(client, cloned, source, created_by=actor.id)
                self.ledger.append_cycle(client_id, screening.id, actor.id)
                client.status = ClientStatus.SCREENING_INPROGRESS
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info(f"Client {client_id} started loan cycle {client.loan_cycle_number} with screening {screening.id}")
        return screening

    # =========================================================================
    # UPDATE
    # =========================================================================

    def update_screening(self, screening_id: str, data: Dict[str, Any], actor: UserDB) -> ScreeningDB:
        """
        Apply answer edits, then the comment and status change.

        `data` may carry `questions`, `sections[].questions`, `comment` and
        `status`. Only questions owned by this screening are touched.
        """
        screening = self.store.get(screening_id)

        target = parse_status(data["status"]) if data.get("status") else None
        if target is not None:
            self.workflow.authorize(actor, target)

        try:
            self._apply_answers(screening, data)

            if "comment" in data:
                screening.comment = data["comment"] or ""

            if target is not None:
                self.workflow.apply(screening, target, actor, comment=data.get("comment"))

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return screening

    def _apply_answers(self, screening: ScreeningDB, data: Dict[str, Any]) -> int:
        owned: Dict[str, QuestionDB] = {q.id: q for q in screening.questions}
        for section in screening.sections:
            owned.update({q.id: q for q in section.questions})

        edits = list(data.get("questions") or [])
        for section_data in data.get("sections") or []:
            edits.extend(section_data.get("questions") or [])

        applied = 0
        for edit in edits:
            question = owned.get(edit.get("id"))
            if question is None:
                logger.warning(f"Question {edit.get('id')} is not part of screening {screening.id}, skipped")
                continue
            self.questions.update_answers(question, edit)
            applied += 1

        if applied:
            self.db.flush()
        return applied

    def update_answer(self, question_id: str, data: Dict[str, Any]) -> QuestionDB:
        """Edit one answer (values, remark, show) and its listed sub answers."""
        try:
            question = self.store.get_answer(question_id)
            self.questions.update_answers(question, data)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return question

    # =========================================================================
    # REMOVE
    # =========================================================================

    def delete_screening(self, screening_id: str) -> ScreeningDB:
        try:
            screening = self.store.delete(screening_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return screening
