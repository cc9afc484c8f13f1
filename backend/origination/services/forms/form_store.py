"""
Form Template Store

Reusable questionnaire blueprints: ordered top-level questions plus
ordered sections of questions. Screenings clone from these and never
write back to them.
"""
import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ...errors import NotFoundError, ValidationError
from ...models.db_models import FormDB, FormLayout, FormType, QuestionDB, SectionDB
from .question_store import QuestionStore

logger = logging.getLogger(__name__)

FORM_FIELDS = ("title", "subtitle", "purpose", "has_sections", "disclaimer", "signatures")


def parse_form_type(value: Any) -> FormType:
    if isinstance(value, FormType):
        return value
    try:
        return FormType(str(value).upper().replace(" ", "_"))
    except ValueError:
        raise ValidationError([f"Unknown form type: {value}"])


def parse_layout(value: Any) -> FormLayout:
    if isinstance(value, FormLayout):
        return value
    try:
        return FormLayout(str(value).upper())
    except ValueError:
        raise ValidationError([f"Unknown form layout: {value}"])


class FormTemplateStore:
    """CRUD over form templates and their sections."""

    def __init__(self, db: Session):
        self.db = db
        self.questions = QuestionStore(db)

    # =========================================================================
    # FORMS
    # =========================================================================

    def create(self, data: Dict[str, Any], created_by: Optional[str] = None) -> FormDB:
        """Create a form with its questions and sections in payload order."""
        errors = []
        if not data.get("type"):
            errors.append("Form Type is Empty")
        if not (data.get("title") or "").strip():
            errors.append("Form Title is Empty")
        if errors:
            raise ValidationError(errors)

        form = FormDB(
            id=str(uuid4()),
            type=parse_form_type(data["type"]),
            title=data["title"].strip(),
            subtitle=data.get("subtitle") or "",
            purpose=data.get("purpose") or "",
            layout=parse_layout(data.get("layout") or FormLayout.TWO_COLUMNS),
            has_sections=bool(data.get("has_sections") or data.get("sections")),
            disclaimer=data.get("disclaimer") or "",
            signatures=list(data.get("signatures") or []),
            created_by=created_by,
        )
        self.db.add(form)

        for idx, question_data in enumerate(data.get("questions") or []):
            form.questions.append(self.questions.create(question_data, position=idx))

        for idx, section_data in enumerate(data.get("sections") or []):
            form.sections.append(self._build_section(section_data, default_number=idx + 1))

        self.db.flush()
        logger.info(f"Created {form.type.value} form {form.id} ({len(form.questions)} questions, {len(form.sections)} sections)")
        return form

    def get(self, form_id: str) -> FormDB:
        form = self.db.get(FormDB, form_id)
        if form is None:
            raise NotFoundError(f"Form {form_id} Not Found")
        return form

    def get_screening_template(self) -> FormDB:
        """The most recently created SCREENING form."""
        form = (
            self.db.query(FormDB)
            .filter(FormDB.type == FormType.SCREENING)
            .order_by(FormDB.created_at.desc())
            .first()
        )
        if form is None:
            raise NotFoundError("Screening Form Not Found")
        return form

    def query(self, form_type: Optional[FormType] = None):
        query = self.db.query(FormDB)
        if form_type is not None:
            query = query.filter(FormDB.type == form_type)
        return query.order_by(FormDB.created_at.desc())

    def update(self, form_id: str, data: Dict[str, Any]) -> FormDB:
        form = self.get(form_id)
        for name in FORM_FIELDS:
            if name in data:
                setattr(form, name, data[name])
        if "layout" in data:
            form.layout = parse_layout(data["layout"])
        if "type" in data:
            form.type = parse_form_type(data["type"])
        self.db.flush()
        return form

    def delete(self, form_id: str) -> FormDB:
        """Delete a form, its sections and every question they own."""
        form = self.get(form_id)
        self.db.delete(form)
        self.db.flush()
        return form

    def add_question(self, form_id: str, data: Dict[str, Any], section_id: Optional[str] = None) -> QuestionDB:
        """Append a question to the form, or to one of its sections."""
        form = self.get(form_id)
        if section_id:
            owner = self.get_section(section_id)
            if owner.form_id != form.id:
                raise NotFoundError(f"Section {section_id} Not Found in Form {form_id}")
            questions = owner.questions
        else:
            questions = form.questions

        question = self.questions.create(data, position=len(questions))
        questions.append(question)
        self.db.flush()
        return question

    # =========================================================================
    # SECTIONS
    # =========================================================================

    def _build_section(self, data: Dict[str, Any], default_number: int = 1) -> SectionDB:
        section = SectionDB(
            id=str(uuid4()),
            title=data.get("title") or "",
            number=data.get("number") or default_number,
        )
        for idx, question_data in enumerate(data.get("questions") or []):
            section.questions.append(self.questions.create(question_data, position=idx))
        return section

    def add_section(self, form_id: str, data: Dict[str, Any]) -> SectionDB:
        form = self.get(form_id)
        section = self._build_section(data, default_number=len(form.sections) + 1)
        form.sections.append(section)
        form.has_sections = True
        self.db.flush()
        return section

    def get_section(self, section_id: str) -> SectionDB:
        section = self.db.get(SectionDB, section_id)
        if section is None:
            raise NotFoundError(f"Section {section_id} Not Found")
        return section

    def update_section(self, section_id: str, data: Dict[str, Any]) -> SectionDB:
        section = self.get_section(section_id)
        if "title" in data:
            section.title = data["title"] or ""
        if "number" in data:
            section.number = data["number"]
        self.db.flush()
        return section

    def delete_section(self, section_id: str) -> SectionDB:
        section = self.get_section(section_id)
        self.db.delete(section)
        self.db.flush()
        return section
