"""
Tests for the FormCloner.

1. Clones are independent of the template (ids, values, sub questions)
2. Prerequisites are re-pointed at clones of the same batch
3. Prerequisites crossing batches (top level <-> section) are dropped
4. Missing questions and sections are skipped
5. Relinking matches on question text, first match wins
"""
import pytest

from origination.errors import NotFoundError
from origination.services.forms import (
    FormCloner, FormTemplateStore, PrerequisiteAccumulator, QuestionStore,
)


def by_text(questions, text):
    return next(q for q in questions if q.question_text == text)


def all_ids(questions):
    ids = set()
    for q in questions:
        ids.add(q.id)
        ids |= all_ids(q.sub_questions)
    return ids


# =============================================================================
# TEST: CLONE INDEPENDENCE
# =============================================================================

class TestCloneIndependence:

    def test_clone_has_same_shape_and_fresh_ids(self, db, template):
        cloned = FormCloner(db).clone_form(template)

        assert [q.question_text for q in cloned.questions] == [q.question_text for q in template.questions]
        assert [s.title for s in cloned.sections] == ["Income"]
        assert cloned.question_count == 8

        template_ids = all_ids(template.questions)
        for section in template.sections:
            template_ids |= all_ids(section.questions)
        clone_ids = all_ids(cloned.questions)
        for section in cloned.sections:
            clone_ids |= all_ids(section.questions)

        assert template_ids.isdisjoint(clone_ids)
        assert {s.id for s in cloned.sections}.isdisjoint({s.id for s in template.sections})

    def test_sub_questions_are_cloned_under_the_clone(self, db, template):
        cloned = FormCloner(db).clone_form(template)
        db.commit()

        land = by_text(cloned.questions, "Does the client own farm land?")
        template_land = by_text(template.questions, "Does the client own farm land?")

        assert len(land.sub_questions) == 1
        assert land.sub_questions[0].question_text == "Land size"
        assert land.sub_questions[0].id != template_land.sub_questions[0].id
        assert land.sub_questions[0].parent_id == land.id
        assert land.sub_questions[0].measurement_unit == "ha"

    def test_editing_clone_leaves_template_untouched(self, db, template):
        cloned = FormCloner(db).clone_form(template)
        db.commit()

        resident = by_text(cloned.questions, "Is the client a resident of the kebele?")
        resident.values = ["No"]
        resident.options = ["Yes", "No", "Unknown"]
        db.commit()

        db.expire_all()
        original = by_text(template.questions, "Is the client a resident of the kebele?")
        assert original.values == []
        assert original.options == ["Yes", "No"]

    def test_editing_template_leaves_clone_untouched(self, db, template):
        cloned = FormCloner(db).clone_form(template)
        db.commit()

        QuestionStore(db).update(template.questions[0].id, {"question_text": "Reworded question"})
        db.commit()

        db.expire_all()
        assert cloned.questions[0].question_text == "Is the client a resident of the kebele?"

    def test_answers_are_not_carried_into_clones(self, db, template):
        source = template.questions[0]
        source.values = ["Yes"]
        db.commit()

        cloned = FormCloner(db).clone_form(template)

        assert cloned.questions[0].values == []

    def test_clones_are_not_owned_by_the_template(self, db, template):
        cloned = FormCloner(db).clone_form(template)
        db.commit()

        assert all(q.form_id is None for q in cloned.questions)
        assert all(s.form_id is None for s in cloned.sections)
        db.expire_all()
        assert len(template.questions) == 4


# =============================================================================
# TEST: PREREQUISITE RELINKING
# =============================================================================

class TestPrerequisiteRelinking:

    def test_prerequisite_points_at_clone_of_target(self, db, template):
        cloned = FormCloner(db).clone_form(template)

        land = by_text(cloned.questions, "Does the client own farm land?")
        certificate = by_text(cloned.questions, "Land certificate number")

        assert certificate.prerequisites == [{"question": land.id, "answer": "Yes"}]

    def test_section_prerequisite_points_at_clone_in_same_section(self, db, template):
        cloned = FormCloner(db).clone_form(template)
        section = cloned.sections[0]

        income_source = by_text(section.questions, "Main source of income")
        farm_income = by_text(section.questions, "Monthly farm income")

        assert farm_income.prerequisites == [{"question": income_source.id, "answer": "Farming"}]

    def test_relinked_prerequisite_never_points_at_template(self, db, template):
        cloned = FormCloner(db).clone_form(template)
        template_ids = all_ids(template.questions) | all_ids(template.sections[0].questions)

        for q in cloned.questions + cloned.sections[0].questions:
            for prerequisite in q.prerequisites:
                assert prerequisite["question"] not in template_ids

    def test_prerequisite_on_sub_question_of_batch(self, db):
        store = FormTemplateStore(db)
        form = store.create({
            "type": "SCREENING",
            "title": "Nested",
            "questions": [{
                "question_text": "Has livestock?",
                "sub_questions": [{"question_text": "Number of cattle", "type": "FILL_IN_BLANK"}],
            }],
        })
        cattle = form.questions[0].sub_questions[0]
        store.add_question(form.id, {
            "question_text": "Cattle vaccination record",
            "prerequisites": [{"question": cattle.id, "answer": "1"}],
        })
        db.commit()

        cloned = FormCloner(db).clone_form(form)
        cloned_cattle = cloned.questions[0].sub_questions[0]
        record = by_text(cloned.questions, "Cattle vaccination record")

        assert record.prerequisites == [{"question": cloned_cattle.id, "answer": "1"}]


# =============================================================================
# TEST: SCOPE ISOLATION
# =============================================================================

class TestScopeIsolation:

    def test_top_level_prerequisite_on_section_question_is_dropped(self, db, template):
        cloned = FormCloner(db).clone_form(template)

        trade_license = by_text(cloned.questions, "Trade license number")

        assert trade_license.prerequisites == []

    def test_section_prerequisite_on_top_level_question_is_dropped(self, db, template):
        cloned = FormCloner(db).clone_form(template)

        years = by_text(cloned.sections[0].questions, "Years of residence")

        assert years.prerequisites == []

    def test_accumulators_are_independent(self, db, template):
        cloner = FormCloner(db)
        first = PrerequisiteAccumulator()
        second = PrerequisiteAccumulator()

        cloner.clone_question(template.questions[0].id, first)

        assert len(first) == 1
        assert len(second) == 0
        assert second.find_clone_by_source_text(template.questions[0].question_text) is None


# =============================================================================
# TEST: MISSING QUESTIONS / SECTIONS
# =============================================================================

class TestMissingTolerance:

    def test_clone_question_raises_for_missing_question(self, db):
        with pytest.raises(NotFoundError):
            FormCloner(db).clone_question("does-not-exist", PrerequisiteAccumulator())

    def test_clone_batch_skips_missing_questions(self, db, template):
        ids = [template.questions[0].id, "does-not-exist", template.questions[1].id]

        clones = FormCloner(db).clone_batch(ids)

        assert [c.question_text for c in clones] == [
            "Is the client a resident of the kebele?",
            "Does the client own farm land?",
        ]
        assert [c.position for c in clones] == [0, 1]

    def test_clone_section_raises_for_missing_section(self, db):
        with pytest.raises(NotFoundError):
            FormCloner(db).clone_section("does-not-exist")

    def test_prerequisite_on_deleted_question_is_dropped(self, db, template):
        certificate = by_text(template.questions, "Land certificate number")
        certificate.prerequisites = [{"question": "deleted-question-id", "answer": "Yes"}]
        db.commit()

        cloned = FormCloner(db).clone_form(template)

        assert by_text(cloned.questions, "Land certificate number").prerequisites == []


# =============================================================================
# TEST: TEXT MATCHING
# =============================================================================

class TestTextMatching:

    def test_duplicate_text_relinks_to_first_clone(self, db):
        """Two questions share wording; the prerequisite resolves to the first one cloned."""
        store = FormTemplateStore(db)
        form = store.create({
            "type": "SCREENING",
            "title": "Duplicates",
            "questions": [
                {"question_text": "Other"},
                {"question_text": "Other"},
            ],
        })
        second = form.questions[1]
        store.add_question(form.id, {
            "question_text": "Specify other",
            "prerequisites": [{"question": second.id, "answer": "Yes"}],
        })
        db.commit()

        cloned = FormCloner(db).clone_form(form)
        first_clone, second_clone, specify = cloned.questions

        assert specify.prerequisites == [{"question": first_clone.id, "answer": "Yes"}]
        assert specify.prerequisites[0]["question"] != second_clone.id

    def test_relink_count(self, db, template):
        cloner = FormCloner(db)
        accumulator = PrerequisiteAccumulator()
        for q in template.questions:
            cloner.clone_question(q.id, accumulator)

        relinked = cloner.relink_prerequisites(accumulator)

        # certificate -> land resolves, trade license -> section question does not
        assert relinked == 1
