"""
Form Cloner

Instantiates a questionnaire for a new screening by deep-cloning the
question/section graph of a form template, or of a prior screening used as
the template for the next loan cycle.

Cloning happens in two passes per batch:

1. Structural copy. Every question (and, depth-first, every sub question)
   gets a fresh id. Clones start with no prerequisites; instead a pending
   note {clone, source text, source prerequisites} is recorded in the
   batch's PrerequisiteAccumulator, since the prerequisite targets may not
   be cloned yet.
2. Relink. Each source prerequisite is resolved to the text of the question
   it pointed at, and re-pointed at the first clone in the accumulator whose
   source carried that exact text. Unresolvable prerequisites are dropped.

A batch is either the template's top-level questions, or the questions of
one section. Prerequisites never cross batches: a top-level question that
depends on a section question (or on another section) loses that link.

Answers are not carried forward: clones always start with empty values.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Union
from uuid import uuid4

from sqlalchemy.orm import Session

from ...errors import NotFoundError
from ...models.db_models import FormDB, QuestionDB, ScreeningDB, SectionDB
from ...models.dto import ClonedForm

logger = logging.getLogger(__name__)


# =============================================================================
# ACCUMULATOR
# =============================================================================

@dataclass
class PendingPrerequisite:
    """A clone waiting for its prerequisites to be re-pointed."""
    clone: QuestionDB
    source_text: str
    source_prerequisites: List[Dict[str, str]] = field(default_factory=list)


class PrerequisiteAccumulator:
    """
    Scratch space for one clone batch.

    Created per batch and passed explicitly, so concurrent clone operations
    never share state.
    """

    def __init__(self):
        self.notes: List[PendingPrerequisite] = []

    def __len__(self) -> int:
        return len(self.notes)

    def record(self, clone: QuestionDB, source_text: str, source_prerequisites: Optional[List[Dict[str, str]]]):
        self.notes.append(PendingPrerequisite(
            clone=clone,
            source_text=source_text,
            source_prerequisites=list(source_prerequisites or []),
        ))

    def find_clone_by_source_text(self, text: str) -> Optional[QuestionDB]:
        """First clone, in record order, whose source question had exactly this text."""
        for note in self.notes:
            if note.source_text == text:
                return note.clone
        return None


# =============================================================================
# CLONER
# =============================================================================

class FormCloner:
    """Deep-clones question trees, sections and whole forms."""

    def __init__(self, db: Session):
        self.db = db

    def clone_question(self, question_id: str, accumulator: PrerequisiteAccumulator) -> QuestionDB:
        """
        Clone one question and all of its sub questions.

        Raises NotFoundError when the source question is gone. Missing sub
        questions are skipped.
        """
        source = self.db.get(QuestionDB, question_id)
        if source is None:
            raise NotFoundError(f"Question {question_id} Not Found")

        sub_clones = []
        for sub in list(source.sub_questions):
            try:
                sub_clones.append(self.clone_question(sub.id, accumulator))
            except NotFoundError as exc:
                logger.warning(f"Skipping sub question of {source.id}: {exc.message}")

        clone = QuestionDB(
            id=str(uuid4()),
            question_text=source.question_text,
            remark=source.remark or "",
            number=source.number,
            position=source.position,
            type=source.type,
            required=source.required,
            validation_factor=source.validation_factor,
            measurement_unit=source.measurement_unit or "",
            options=list(source.options or []),
            values=[],
            show=source.show if source.show is not None else True,
            prerequisites=[],
        )
        for idx, sub_clone in enumerate(sub_clones):
            sub_clone.position = idx
        clone.sub_questions = sub_clones

        self.db.add(clone)
        self.db.flush()

        accumulator.record(clone, source.question_text, source.prerequisites)
        return clone

    def relink_prerequisites(self, accumulator: PrerequisiteAccumulator) -> int:
        """
        Re-point every recorded clone's prerequisites at clones of the same batch.

        Returns the number of prerequisites that were relinked.
        """
        relinked = 0
        texts: Dict[str, Optional[str]] = {}

        for note in accumulator.notes:
            prerequisites = []
            for prerequisite in note.source_prerequisites:
                ref = prerequisite.get("question")
                if ref not in texts:
                    original = self.db.get(QuestionDB, ref) if ref else None
                    texts[ref] = original.question_text if original is not None else None

                text = texts[ref]
                target = accumulator.find_clone_by_source_text(text) if text is not None else None
                if target is None:
                    logger.debug(f"Dropping prerequisite on {ref} for clone {note.clone.id}: not in batch")
                    continue

                prerequisites.append({"question": target.id, "answer": prerequisite.get("answer", "")})
                relinked += 1

            note.clone.prerequisites = prerequisites

        self.db.flush()
        return relinked

    def clone_batch(self, question_ids: Iterable[str]) -> List[QuestionDB]:
        """Clone a set of sibling questions, then relink them among themselves."""
        accumulator = PrerequisiteAccumulator()
        clones = []

        for question_id in question_ids:
            try:
                clones.append(self.clone_question(question_id, accumulator))
            except NotFoundError as exc:
                logger.warning(f"Skipping question while cloning: {exc.message}")

        for idx, clone in enumerate(clones):
            clone.position = idx

        self.relink_prerequisites(accumulator)
        return clones

    def clone_section(self, section_id: str) -> SectionDB:
        """Clone one section; its questions form their own relink batch."""
        source = self.db.get(SectionDB, section_id)
        if source is None:
            raise NotFoundError(f"Section {section_id} Not Found")

        section = SectionDB(
            id=str(uuid4()),
            title=source.title,
            number=source.number,
        )
        section.questions = self.clone_batch([q.id for q in source.questions])
        self.db.add(section)
        self.db.flush()
        return section

    def clone_form(self, template: Union[FormDB, ScreeningDB]) -> ClonedForm:
        """
        Clone a template's top-level questions, then each section in order.

        Missing questions or sections are skipped; any other failure aborts
        the whole clone and propagates.
        """
        question_ids = [q.id for q in template.questions]
        section_ids = [s.id for s in template.sections]

        cloned = ClonedForm(questions=self.clone_batch(question_ids))

        for section_id in section_ids:
            try:
                cloned.sections.append(self.clone_section(section_id))
            except NotFoundError as exc:
                logger.warning(f"Skipping section while cloning: {exc.message}")

        logger.info(
            f"Cloned template {template.id}: {len(cloned.questions)} questions, "
            f"{len(cloned.sections)} sections, {cloned.question_count} nodes"
        )
        return cloned
