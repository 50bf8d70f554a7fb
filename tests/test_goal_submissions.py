"""Goal submission workflow: submit, review once, edit and delete same day."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, update

from app.exceptions import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from app.models import Goal, GoalSubmission, Role
from app.services import goal_submissions, ledger
from app.services.accounts import create_account_for_student, get_balance
from app.services.auth import Actor
from app.services.goal_submissions import (
    SubmissionItem,
    delete_submission,
    edit_submission,
    find_pending_submissions_for_student_today,
    is_same_day,
    list_goal_submissions,
    review_submission,
    submit_goals,
)


async def _submit(db, world, student_index: int = 0) -> int:
    [submission] = await submit_goals(
        db,
        world.students[student_index],
        [SubmissionItem(goal_id=world.goal, description="Read chapter 4")],
    )
    return submission.id


async def _age_one_day(db, submission_id: int) -> None:
    await db.execute(
        update(GoalSubmission)
        .where(GoalSubmission.id == submission_id)
        .values(created_at=datetime.now(timezone.utc) - timedelta(days=1))
    )
    await db.commit()


def _student(world, index: int = 0) -> Actor:
    return Actor(id=world.students[index], role=Role.STUDENT)


def _teacher(world) -> Actor:
    return Actor(id=world.teacher, role=Role.TEACHER)


async def test_submit_snapshots_goal_points(db_session, world):
    submission_id = await _submit(db_session, world)

    goal = await db_session.get(Goal, world.goal)
    goal.points = 50
    await db_session.commit()

    [submission] = await list_goal_submissions(db_session, student_id=world.students[0])
    assert submission.id == submission_id
    assert submission.points == 10
    assert submission.status == "pending"
    assert submission.class_id == world.class_id


async def test_submit_validation(db_session, world):
    with pytest.raises(ValidationError):
        await submit_goals(db_session, world.students[0], [])
    with pytest.raises(ValidationError):
        await submit_goals(
            db_session, world.students[0], [SubmissionItem(goal_id=world.goal, description="  ")]
        )
    with pytest.raises(NotFoundError):
        await submit_goals(
            db_session, world.students[0], [SubmissionItem(goal_id=9999, description="x")]
        )


async def test_submit_needs_class_when_enrolled_twice(db_session, world):
    await create_account_for_student(db_session, world.students[0], world.other_class_id)
    with pytest.raises(ValidationError):
        await _submit(db_session, world)

    [submission] = await submit_goals(
        db_session,
        world.students[0],
        [SubmissionItem(goal_id=world.goal, description="x", class_id=world.other_class_id)],
    )
    assert submission.class_id == world.other_class_id


async def test_approve_credits_exactly_once(db_session, world):
    submission_id = await _submit(db_session, world)

    approved = await review_submission(db_session, submission_id, world.teacher, "approved")
    assert approved.status == "approved"
    assert approved.reviewed_by == world.teacher
    assert await get_balance(db_session, world.accounts[0]) == 10

    txn = (await ledger.list_transactions_by_account(db_session, world.accounts[0]))[0]
    assert txn.type == "deposit"
    assert txn.reason == "Goal completed: Read a chapter"
    assert txn.created_by == world.teacher

    again = await review_submission(db_session, submission_id, world.teacher, "approved")
    assert again.status == "approved"
    assert await get_balance(db_session, world.accounts[0]) == 10
    assert len(await ledger.list_transactions_by_account(db_session, world.accounts[0])) == 1


async def test_approve_with_adjusted_points(db_session, world):
    submission_id = await _submit(db_session, world)
    approved = await review_submission(
        db_session, submission_id, world.teacher, "approved", points=25
    )
    assert approved.points == 25
    assert await get_balance(db_session, world.accounts[0]) == 25


async def test_points_change_while_pending_is_used_at_approval(db_session, world):
    submission_id = await _submit(db_session, world)
    pending = await review_submission(db_session, submission_id, world.teacher, "pending", points=3)
    assert pending.status == "pending"
    assert pending.points == 3
    assert await get_balance(db_session, world.accounts[0]) == 0

    await review_submission(db_session, submission_id, world.teacher, "approved")
    assert await get_balance(db_session, world.accounts[0]) == 3


async def test_zero_point_approval_posts_nothing(db_session, world):
    submission_id = await _submit(db_session, world)
    await review_submission(db_session, submission_id, world.teacher, "approved", points=0)
    assert await get_balance(db_session, world.accounts[0]) == 0
    assert await ledger.list_transactions_by_account(db_session, world.accounts[0]) == []


async def test_terminal_states_do_not_flip(db_session, world):
    approved_id = await _submit(db_session, world)
    denied_id = await _submit(db_session, world, student_index=1)
    await review_submission(db_session, approved_id, world.teacher, "approved")
    await review_submission(db_session, denied_id, world.teacher, "denied")

    with pytest.raises(InvalidStateError):
        await review_submission(db_session, approved_id, world.teacher, "denied")
    with pytest.raises(InvalidStateError):
        await review_submission(db_session, denied_id, world.teacher, "approved")
    with pytest.raises(InvalidStateError):
        await review_submission(db_session, approved_id, world.teacher, "approved", points=99)

    assert await get_balance(db_session, world.accounts[0]) == 10
    assert await get_balance(db_session, world.accounts[1]) == 0


async def test_review_rejects_bad_input_and_foreign_teacher(db_session, world):
    submission_id = await _submit(db_session, world)
    with pytest.raises(ValidationError):
        await review_submission(db_session, submission_id, world.teacher, "done")
    with pytest.raises(ValidationError):
        await review_submission(db_session, submission_id, world.teacher, "approved", points=-1)
    with pytest.raises(ForbiddenError):
        await review_submission(db_session, submission_id, world.other_teacher, "approved")
    assert await get_balance(db_session, world.accounts[0]) == 0


async def test_student_edits_own_pending_submission_same_day(db_session, world):
    submission_id = await _submit(db_session, world)
    edited = await edit_submission(db_session, submission_id, _student(world), "Read chapter 5")
    assert edited.description == "Read chapter 5"

    with pytest.raises(ForbiddenError):
        await edit_submission(db_session, submission_id, _student(world, 1), "Mine now")
    with pytest.raises(ValidationError):
        await edit_submission(db_session, submission_id, _student(world), " ")


async def test_yesterdays_submission_is_locked_for_student(db_session, world):
    submission_id = await _submit(db_session, world)
    await _age_one_day(db_session, submission_id)

    with pytest.raises(ForbiddenError):
        await edit_submission(db_session, submission_id, _student(world), "Too late")
    with pytest.raises(ForbiddenError):
        await delete_submission(db_session, submission_id, _student(world))

    # The class teacher can still remove it.
    await delete_submission(db_session, submission_id, _teacher(world))
    result = await db_session.execute(select(GoalSubmission).where(GoalSubmission.id == submission_id))
    assert result.scalar_one_or_none() is None


async def test_reviewed_submission_cannot_be_edited_or_deleted_by_student(db_session, world):
    submission_id = await _submit(db_session, world)
    await review_submission(db_session, submission_id, world.teacher, "denied")
    with pytest.raises(ForbiddenError):
        await edit_submission(db_session, submission_id, _student(world), "Please?")
    with pytest.raises(ForbiddenError):
        await delete_submission(db_session, submission_id, _student(world))


async def test_deleting_approved_submission_keeps_the_credit(db_session, world):
    submission_id = await _submit(db_session, world)
    await review_submission(db_session, submission_id, world.teacher, "approved")
    await delete_submission(db_session, submission_id, _teacher(world))
    assert await get_balance(db_session, world.accounts[0]) == 10


async def test_foreign_teacher_cannot_delete(db_session, world):
    submission_id = await _submit(db_session, world)
    with pytest.raises(ForbiddenError):
        await delete_submission(
            db_session, submission_id, Actor(id=world.other_teacher, role=Role.TEACHER)
        )


async def test_pending_today(db_session, world):
    first = await _submit(db_session, world)
    second = await _submit(db_session, world)
    await _age_one_day(db_session, first)
    today = await find_pending_submissions_for_student_today(db_session, world.students[0])
    assert [s.id for s in today] == [second]


def test_is_same_day_treats_naive_as_utc():
    now = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)
    assert is_same_day(datetime(2024, 3, 10, 0, 5), now)
    assert not is_same_day(datetime(2024, 3, 9, 23, 55), now)


@pytest.fixture()
def approve_after_read(db_session, world, monkeypatch):
    """Approve and credit a submission right after the service has read it.

    The approval bypasses the ORM so the copy the service holds stays
    ``pending``, as it would when another teacher's request lands in between.
    """
    real_get = goal_submissions.get_submission
    done = []

    async def get_then_approve(db, submission_id):
        submission = await real_get(db, submission_id)
        if not done:
            done.append(submission_id)
            await db.execute(
                update(GoalSubmission)
                .where(GoalSubmission.id == submission_id)
                .values(status="approved", reviewed_by=world.teacher)
                .execution_options(synchronize_session=False)
            )
            await ledger.record_transaction(
                db, world.accounts[0], "deposit", 10, reason="Goal completed: Read a chapter"
            )
        return submission

    monkeypatch.setattr(goal_submissions, "get_submission", get_then_approve)
    return done


async def _stored(db, submission_id: int):
    result = await db.execute(
        select(GoalSubmission.status, GoalSubmission.points, GoalSubmission.description)
        .where(GoalSubmission.id == submission_id)
    )
    return result.one_or_none()


async def test_points_change_loses_to_concurrent_approval(db_session, world, approve_after_read):
    submission_id = await _submit(db_session, world)
    with pytest.raises(InvalidStateError):
        await review_submission(db_session, submission_id, world.teacher, "pending", points=99)

    status, points, _ = await _stored(db_session, submission_id)
    assert status == "approved"
    assert points == 10
    assert await get_balance(db_session, world.accounts[0]) == 10


async def test_student_delete_loses_to_concurrent_approval(db_session, world, approve_after_read):
    submission_id = await _submit(db_session, world)
    with pytest.raises(ForbiddenError):
        await delete_submission(db_session, submission_id, _student(world))

    stored = await _stored(db_session, submission_id)
    assert stored is not None
    assert stored.status == "approved"
    assert await get_balance(db_session, world.accounts[0]) == 10


async def test_student_edit_loses_to_concurrent_approval(db_session, world, approve_after_read):
    submission_id = await _submit(db_session, world)
    with pytest.raises(ForbiddenError):
        await edit_submission(db_session, submission_id, _student(world), "Rewritten")

    stored = await _stored(db_session, submission_id)
    assert stored.status == "approved"
    assert stored.description == "Read chapter 4"
