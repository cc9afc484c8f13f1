"""
Screening Store

Persistence for screenings: one client's questionnaire instance for one
loan cycle, owning its cloned questions and sections.

An answer is a question owned, directly or through a section or a parent
question, by a screening. Template questions are never answers.
"""
import logging
from typing import List, Optional, Union
from uuid import uuid4

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from ...errors import NotFoundError
from ...models.db_models import (
    ClientDB, ClientStatus, FormDB, QuestionDB, ScreeningDB, ScreeningStatus,
    SectionDB,
)
from ...models.dto import ClonedForm

logger = logging.getLogger(__name__)

# Clients past the screening stage drop out of the screening listing
CLOSED_CLIENT_STATUSES = (ClientStatus.LOAN_GRANTED, ClientStatus.LOAN_PAID)

TEMPLATE_FIELDS = ("title", "subtitle", "purpose", "layout", "has_sections", "disclaimer")


class ScreeningStore:

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        client: ClientDB,
        cloned: ClonedForm,
        template: Union[FormDB, ScreeningDB],
        created_by: Optional[str],
    ) -> ScreeningDB:
        """Create a screening owning the cloned questions and sections."""
        screening = ScreeningDB(
            id=str(uuid4()),
            client_id=client.id,
            branch_id=client.branch_id,
            created_by=created_by,
            status=ScreeningStatus.NEW,
            comment="",
            signatures=list(template.signatures or []),
        )
        for name in TEMPLATE_FIELDS:
            setattr(screening, name, getattr(template, name))

        screening.questions = list(cloned.questions)
        screening.sections = list(cloned.sections)

        self.db.add(screening)
        self.db.flush()
        logger.info(f"Created screening {screening.id} for client {client.id} ({cloned.question_count} questions)")
        return screening

    def get(self, screening_id: str) -> ScreeningDB:
        screening = self.db.get(ScreeningDB, screening_id)
        if screening is None:
            raise NotFoundError(f"Screening {screening_id} Not Found")
        return screening

    def find_latest_for_client(self, client_id: str) -> Optional[ScreeningDB]:
        return (
            self.db.query(ScreeningDB)
            .filter(ScreeningDB.client_id == client_id)
            .order_by(ScreeningDB.created_at.desc())
            .first()
        )

    def get_latest_for_client(self, client_id: str) -> ScreeningDB:
        screening = self.find_latest_for_client(client_id)
        if screening is None:
            raise NotFoundError(f"Screening for Client {client_id} Not Found")
        return screening

    def query(
        self,
        client_id: Optional[str] = None,
        status: Optional[ScreeningStatus] = None,
        branch_ids: Optional[List[str]] = None,
    ):
        query = self.db.query(ScreeningDB)
        if client_id:
            query = query.filter(ScreeningDB.client_id == client_id)
        if status is not None:
            query = query.filter(ScreeningDB.status == status)
        if branch_ids:
            query = query.filter(ScreeningDB.branch_id.in_(branch_ids))
        return query.order_by(ScreeningDB.created_at.desc())

    def query_latest_per_client(self, branch_ids: Optional[List[str]] = None):
        """Each client's most recent screening, skipping clients already granted or paid."""
        latest = (
            self.db.query(
                ScreeningDB.client_id.label("client_id"),
                func.max(ScreeningDB.created_at).label("created_at"),
            )
            .group_by(ScreeningDB.client_id)
            .subquery()
        )
        query = (
            self.db.query(ScreeningDB)
            .join(latest, and_(
                ScreeningDB.client_id == latest.c.client_id,
                ScreeningDB.created_at == latest.c.created_at,
            ))
            .join(ClientDB, ClientDB.id == ScreeningDB.client_id)
            .filter(ClientDB.status.notin_(CLOSED_CLIENT_STATUSES))
        )
        if branch_ids:
            query = query.filter(ScreeningDB.branch_id.in_(branch_ids))
        return query.order_by(ScreeningDB.created_at.desc())

    # =========================================================================
    # ANSWERS
    # =========================================================================

    def screening_of(self, question: QuestionDB) -> Optional[str]:
        """Id of the screening that owns `question`, or None for template questions."""
        root = question
        while root.parent is not None:
            root = root.parent
        if root.screening_id:
            return root.screening_id
        if root.section_id:
            section = self.db.get(SectionDB, root.section_id)
            return section.screening_id if section is not None else None
        return None

    def get_answer(self, question_id: str) -> QuestionDB:
        question = self.db.get(QuestionDB, question_id)
        if question is None or self.screening_of(question) is None:
            raise NotFoundError(f"Answer {question_id} Not Found")
        return question

    def query_answers(self, screening_id: Optional[str] = None):
        """Top level answers (sub questions ride along), optionally of one screening."""
        if screening_id:
            sections = select(SectionDB.id).where(SectionDB.screening_id == screening_id)
            owned = QuestionDB.screening_id == screening_id
        else:
            sections = select(SectionDB.id).where(SectionDB.screening_id.isnot(None))
            owned = QuestionDB.screening_id.isnot(None)

        return (
            self.db.query(QuestionDB)
            .filter(or_(owned, QuestionDB.section_id.in_(sections)))
            .order_by(QuestionDB.created_at.desc(), QuestionDB.position)
        )

    def delete(self, screening_id: str) -> ScreeningDB:
        """Remove a screening with every question and section it owns."""
        screening = self.get(screening_id)
        self.db.delete(screening)
        self.db.flush()
        logger.info(f"Deleted screening {screening_id}")
        return screening
