"""
Tests for the screening state machine and the approval workflow.

Covers the transition table, the AUTHORIZE guard, client status, task and
notification side effects, and answer edits on a screening.
"""
import pytest

from origination.errors import (
    InvalidTransitionError, PermissionDeniedError, RedundantTransitionError,
    ValidationError,
)
from origination.models.db_models import (
    ClientStatus, NotificationDB, ScreeningStatus, TaskDB, TaskStatus, TaskType,
)
from origination.services.screening import ScreeningStateMachine, parse_status


@pytest.fixture
def screening(screening_service, make_intake, officer, template):
    return screening_service.create_client_screening(make_intake(), officer)


@pytest.fixture
def submitted(screening_service, screening, officer):
    return screening_service.update_screening(screening.id, {"status": "submitted"}, officer)


def tasks_for(db, screening, task_type=None):
    query = db.query(TaskDB).filter(TaskDB.entity_ref == screening.id)
    if task_type is not None:
        query = query.filter(TaskDB.task_type == task_type)
    return query.all()


# =============================================================================
# TEST: TRANSITION TABLE
# =============================================================================

class TestScreeningStateMachine:

    def test_redundant_transition(self):
        with pytest.raises(RedundantTransitionError):
            ScreeningStateMachine().transition(ScreeningStatus.SUBMITTED, ScreeningStatus.SUBMITTED)

    @pytest.mark.parametrize("current,target", [
        (ScreeningStatus.NEW, ScreeningStatus.APPROVED),
        (ScreeningStatus.SCREENING_INPROGRESS, ScreeningStatus.DECLINED_FINAL),
        (ScreeningStatus.APPROVED, ScreeningStatus.SUBMITTED),
        (ScreeningStatus.DECLINED_FINAL, ScreeningStatus.SCREENING_INPROGRESS),
        (ScreeningStatus.SUBMITTED, ScreeningStatus.NEW),
    ])
    def test_transitions_outside_table_rejected(self, current, target):
        with pytest.raises(InvalidTransitionError):
            ScreeningStateMachine().transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (ScreeningStatus.NEW, ScreeningStatus.SCREENING_INPROGRESS),
        (ScreeningStatus.NEW, ScreeningStatus.SUBMITTED),
        (ScreeningStatus.SCREENING_INPROGRESS, ScreeningStatus.SUBMITTED),
        (ScreeningStatus.SUBMITTED, ScreeningStatus.APPROVED),
        (ScreeningStatus.SUBMITTED, ScreeningStatus.DECLINED_FINAL),
        (ScreeningStatus.SUBMITTED, ScreeningStatus.DECLINED_UNDER_REVIEW),
        (ScreeningStatus.DECLINED_UNDER_REVIEW, ScreeningStatus.SUBMITTED),
    ])
    def test_allowed_transitions(self, current, target):
        assert ScreeningStateMachine().transition(current, target) == target

    def test_terminal_states(self):
        machine = ScreeningStateMachine()
        assert machine.is_terminal(ScreeningStatus.APPROVED)
        assert machine.is_terminal(ScreeningStatus.DECLINED_FINAL)
        assert not machine.is_terminal(ScreeningStatus.DECLINED_UNDER_REVIEW)

    def test_parse_status(self):
        assert parse_status("Submitted") == ScreeningStatus.SUBMITTED
        with pytest.raises(ValidationError):
            parse_status("archived")


# =============================================================================
# TEST: SUBMISSION
# =============================================================================

class TestSubmit:

    def test_new_screening_state(self, screening):
        assert screening.status == ScreeningStatus.NEW
        assert screening.client.status == ClientStatus.SCREENING_INPROGRESS

    def test_submit_creates_one_approve_task(self, db, submitted, officer):
        assert submitted.status == ScreeningStatus.SUBMITTED
        assert submitted.client.status == ClientStatus.SCREENING_INPROGRESS

        tasks = tasks_for(db, submitted)
        assert len(tasks) == 1
        assert tasks[0].task_type == TaskType.APPROVE
        assert tasks[0].status == TaskStatus.NEW
        assert tasks[0].created_by == officer.id
        assert tasks[0].task == "Approve Screening of Abebe Kebede"

    def test_resubmitting_is_redundant(self, screening_service, submitted, officer):
        with pytest.raises(RedundantTransitionError):
            screening_service.update_screening(submitted.id, {"status": "submitted"}, officer)


# =============================================================================
# TEST: DECISIONS
# =============================================================================

class TestDecisions:

    def test_approve_requires_authorize(self, db, screening_service, submitted, officer):
        with pytest.raises(PermissionDeniedError):
            screening_service.update_screening(submitted.id, {"status": "approved"}, officer)

        db.expire_all()
        assert submitted.status == ScreeningStatus.SUBMITTED
        assert submitted.client.status == ClientStatus.SCREENING_INPROGRESS
        assert all(t.status == TaskStatus.NEW for t in tasks_for(db, submitted))
        assert db.query(NotificationDB).count() == 0

    def test_rejected_decision_keeps_answers_untouched(self, db, screening_service, submitted, officer):
        question = submitted.questions[0]

        with pytest.raises(PermissionDeniedError):
            screening_service.update_screening(submitted.id, {
                "status": "approved",
                "questions": [{"id": question.id, "values": ["No"]}],
            }, officer)

        db.expire_all()
        assert question.values == []

    def test_approve(self, db, screening_service, submitted, officer, supervisor):
        screening = screening_service.update_screening(
            submitted.id, {"status": "approved", "comment": "Good standing"}, supervisor,
        )

        assert screening.status == ScreeningStatus.APPROVED
        assert screening.comment == "Good standing"
        assert screening.client.status == ClientStatus.ELIGIBLE

        task = tasks_for(db, screening)[0]
        assert task.status == TaskStatus.COMPLETED
        assert task.comment == "Good standing"

        notification = db.query(NotificationDB).one()
        assert notification.for_user == officer.id
        assert notification.type == "SCREENING_APPROVED"
        assert notification.task_ref == task.id
        assert "approved" in notification.message

    def test_admin_holds_authorize(self, screening_service, submitted, admin):
        screening = screening_service.update_screening(submitted.id, {"status": "approved"}, admin)
        assert screening.client.status == ClientStatus.ELIGIBLE

    def test_decline_final(self, db, screening_service, submitted, officer, supervisor):
        screening = screening_service.update_screening(submitted.id, {"status": "declined_final"}, supervisor)

        assert screening.client.status == ClientStatus.INELIGIBLE
        assert tasks_for(db, screening)[0].status == TaskStatus.COMPLETED

        notification = db.query(NotificationDB).one()
        assert notification.for_user == officer.id
        assert notification.type == "SCREENING_DECLINED_FINAL"
        assert "declined in final" in notification.message

    def test_decline_under_review(self, db, screening_service, submitted, officer, supervisor):
        screening = screening_service.update_screening(
            submitted.id, {"status": "declined_under_review"}, supervisor,
        )

        assert screening.status == ScreeningStatus.DECLINED_UNDER_REVIEW
        assert screening.client.status == ClientStatus.SCREENING_INPROGRESS

        [approve] = tasks_for(db, screening, TaskType.APPROVE)
        [review] = tasks_for(db, screening, TaskType.REVIEW)
        assert approve.status == TaskStatus.COMPLETED
        assert review.task_type == TaskType.REVIEW
        assert review.status == TaskStatus.NEW
        assert review.assigned_to == officer.id
        assert review.created_by == supervisor.id

        notification = db.query(NotificationDB).one()
        assert notification.for_user == supervisor.id
        assert notification.task_ref == review.id
        assert "declined for further review" in notification.message

    def test_resubmission_after_review(self, db, screening_service, submitted, officer, supervisor):
        screening_service.update_screening(submitted.id, {"status": "declined_under_review"}, supervisor)

        screening = screening_service.update_screening(submitted.id, {"status": "submitted"}, officer)

        [review] = tasks_for(db, screening, TaskType.REVIEW)
        assert review.status == TaskStatus.COMPLETED
        approves = tasks_for(db, screening, TaskType.APPROVE)
        assert sorted(t.status.value for t in approves) == ["completed", "new"]
        second_approve = next(t for t in approves if t.status == TaskStatus.NEW)

        screening = screening_service.update_screening(submitted.id, {"status": "approved"}, supervisor)
        db.refresh(second_approve)
        assert second_approve.status == TaskStatus.COMPLETED
        assert screening.client.status == ClientStatus.ELIGIBLE

    def test_approved_is_terminal(self, screening_service, submitted, supervisor):
        screening_service.update_screening(submitted.id, {"status": "approved"}, supervisor)

        with pytest.raises(InvalidTransitionError):
            screening_service.update_screening(submitted.id, {"status": "declined_final"}, supervisor)


# =============================================================================
# TEST: ANSWER EDITS
# =============================================================================

class TestAnswerEdits:

    def test_answers_update_owned_clones_only(self, db, screening_service, screening, officer, template):
        resident = screening.questions[0]
        land = screening.questions[1]
        land_size = land.sub_questions[0]
        income_source = screening.sections[0].questions[0]

        screening_service.update_screening(screening.id, {
            "questions": [
                {"id": resident.id, "values": ["Yes"]},
                {"id": land.id, "values": ["Yes"], "sub_questions": [{"id": land_size.id, "values": [2.5]}]},
                {"id": template.questions[0].id, "values": ["No"]},
                {"id": "unknown-question", "values": ["No"]},
            ],
            "sections": [{"questions": [{"id": income_source.id, "values": ["Farming"], "remark": "Teff"}]}],
            "comment": "Visited the farm",
        }, officer)

        db.expire_all()
        assert resident.values == ["Yes"]
        assert land_size.values == ["2.5"]
        assert income_source.values == ["Farming"]
        assert income_source.remark == "Teff"
        assert screening.comment == "Visited the farm"
        assert screening.status == ScreeningStatus.NEW
        assert template.questions[0].values == []

    def test_answer_edit_cannot_change_structure(self, db, screening_service, screening, officer):
        resident = screening.questions[0]

        screening_service.update_screening(screening.id, {
            "questions": [{"id": resident.id, "question_text": "Changed", "options": ["Maybe"]}],
        }, officer)

        db.expire_all()
        assert resident.question_text == "Is the client a resident of the kebele?"
        assert resident.options == ["Yes", "No"]
