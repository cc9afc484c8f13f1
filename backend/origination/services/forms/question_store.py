"""
Question Store

Persistence for question trees: a question, its nested sub questions and
its prerequisites. Every question is owned by exactly one parent question,
form, section or screening; deleting an owner deletes what it owns.
"""
import logging
from typing import Any, Dict, List
from uuid import uuid4

from sqlalchemy.orm import Session

from ...errors import NotFoundError, ValidationError
from ...models.db_models import QuestionDB, QuestionType, ValidationFactor

logger = logging.getLogger(__name__)

# Labels the mobile and web clients still send
QUESTION_TYPE_ALIASES = {
    "Yes/No": QuestionType.YES_NO,
    "Fill In Blank": QuestionType.FILL_IN_BLANK,
    "Multiple Choice": QuestionType.MULTIPLE_CHOICE,
    "Single Choice": QuestionType.SINGLE_CHOICE,
    "Grouped": QuestionType.GROUPED,
}

# Fields a template editor may change
EDITABLE_FIELDS = (
    "question_text", "remark", "number", "required", "measurement_unit",
    "options", "values", "show",
)

# Fields an answer edit on a screening may change
ANSWER_FIELDS = ("values", "remark", "show")


def parse_question_type(value: Any) -> QuestionType:
    if isinstance(value, QuestionType):
        return value
    if value in QUESTION_TYPE_ALIASES:
        return QUESTION_TYPE_ALIASES[value]
    try:
        return QuestionType(str(value).upper())
    except ValueError:
        raise ValidationError([f"Unknown question type: {value}"])


def parse_validation_factor(value: Any) -> ValidationFactor:
    if isinstance(value, ValidationFactor):
        return value
    try:
        return ValidationFactor(str(value).upper())
    except ValueError:
        raise ValidationError([f"Unknown validation factor: {value}"])


class QuestionStore:
    """CRUD over question trees."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # CREATE
    # =========================================================================

    def create(
        self,
        data: Dict[str, Any],
        position: int = 0,
    ) -> QuestionDB:
        """
        Create a question and, depth-first, all of its sub questions.

        Sub questions are created before the parent that references them.
        """
        errors = []
        if not (data.get("question_text") or "").strip():
            errors.append("Question Text is Empty")
        prerequisites = self._normalize_prerequisites(data.get("prerequisites") or [], errors)
        if errors:
            raise ValidationError(errors)

        sub_questions = [
            self.create(sub, position=idx)
            for idx, sub in enumerate(data.get("sub_questions") or [])
        ]

        question = QuestionDB(
            id=str(uuid4()),
            question_text=data["question_text"].strip(),
            remark=data.get("remark") or "",
            number=data.get("number") or position + 1,
            position=position,
            type=parse_question_type(data.get("type") or QuestionType.YES_NO),
            required=bool(data.get("required", False)),
            validation_factor=parse_validation_factor(data.get("validation_factor") or ValidationFactor.NONE),
            measurement_unit=data.get("measurement_unit") or "",
            options=list(data.get("options") or []),
            values=[str(v) for v in (data.get("values") or [])],
            show=bool(data.get("show", True)),
            prerequisites=prerequisites,
        )
        question.sub_questions = sub_questions
        self.db.add(question)
        self.db.flush()

        return question

    def _normalize_prerequisites(self, prerequisites: List[Dict[str, Any]], errors: List[str]) -> List[Dict[str, str]]:
        normalized = []
        for prerequisite in prerequisites:
            ref = prerequisite.get("question")
            if not ref or self.db.get(QuestionDB, ref) is None:
                errors.append(f"Prerequisite Question {ref} Not Found")
                continue
            normalized.append({"question": ref, "answer": str(prerequisite.get("answer", ""))})
        return normalized

    # =========================================================================
    # READ
    # =========================================================================

    def get(self, question_id: str) -> QuestionDB:
        question = self.db.get(QuestionDB, question_id)
        if question is None:
            raise NotFoundError(f"Question {question_id} Not Found")
        return question

    def query(self):
        return self.db.query(QuestionDB).order_by(QuestionDB.created_at.desc())

    # =========================================================================
    # UPDATE
    # =========================================================================

    def update(self, question_id: str, data: Dict[str, Any]) -> QuestionDB:
        """Update template fields, descending into any listed sub questions."""
        question = self.get(question_id)
        self._apply(question, data, EDITABLE_FIELDS)

        if "type" in data:
            question.type = parse_question_type(data["type"])
        if "validation_factor" in data:
            question.validation_factor = parse_validation_factor(data["validation_factor"])
        if "prerequisites" in data:
            errors = []
            prerequisites = self._normalize_prerequisites(data["prerequisites"] or [], errors)
            if errors:
                raise ValidationError(errors)
            question.prerequisites = prerequisites

        children = {sub.id: sub for sub in question.sub_questions}
        for sub_data in data.get("sub_questions") or []:
            sub_id = sub_data.get("id")
            if sub_id in children:
                self.update(sub_id, sub_data)
            else:
                logger.warning(f"Sub question {sub_id} is not a child of {question.id}, skipped")

        self.db.flush()
        return question

    def update_answers(self, question: QuestionDB, data: Dict[str, Any]) -> QuestionDB:
        """Apply an answer edit to an existing question and its listed sub questions."""
        self._apply(question, data, ANSWER_FIELDS)

        children = {sub.id: sub for sub in question.sub_questions}
        for sub_data in data.get("sub_questions") or []:
            child = children.get(sub_data.get("id"))
            if child is None:
                logger.warning(f"Sub question {sub_data.get('id')} is not a child of {question.id}, skipped")
                continue
            self.update_answers(child, sub_data)

        return question

    @staticmethod
    def _apply(question: QuestionDB, data: Dict[str, Any], fields) -> None:
        for name in fields:
            if name not in data:
                continue
            value = data[name]
            if name == "values":
                value = [str(v) for v in (value or [])]
            elif name == "options":
                value = list(value or [])
            setattr(question, name, value)

    # =========================================================================
    # DELETE
    # =========================================================================

    def delete(self, question_id: str) -> QuestionDB:
        """Delete a question together with every sub question it owns."""
        question = self.get(question_id)
        self.db.delete(question)
        self.db.flush()
        return question
