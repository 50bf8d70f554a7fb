"""Goal submission workflow - students claim goals, teachers approve for points."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from app.models.goal import Goal
from app.models.goal_submission import GoalSubmission
from app.models.prize_request import ReviewStatus
from app.models.transaction import TransactionType
from app.services import ledger
from app.services.accounts import get_account_for_student, list_accounts_for_student
from app.services.auth import Actor
from app.services.classrooms import require_class_owner

logger = logging.getLogger(__name__)


@dataclass
class SubmissionItem:
    goal_id: int
    description: str
    class_id: int | None = None


def _local_date(moment: datetime):
    # SQLite hands back naive datetimes; they were written as UTC.
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(settings.SCHOOL_TIMEZONE)).date()


def is_same_day(created_at: datetime, now: datetime | None = None) -> bool:
    """True when ``created_at`` falls on the current school calendar day."""
    now = now or datetime.now(timezone.utc)
    return _local_date(created_at) == _local_date(now)


async def get_submission(db: AsyncSession, submission_id: int) -> GoalSubmission:
    result = await db.execute(
        select(GoalSubmission)
        .where(GoalSubmission.id == submission_id)
        .options(selectinload(GoalSubmission.goal))
        .execution_options(populate_existing=True)
    )
    submission = result.scalar_one_or_none()
    if submission is None:
        raise NotFoundError(f"Goal submission {submission_id} not found")
    return submission


async def _resolve_class_id(
    db: AsyncSession, student_id: int, class_id: int | None
) -> int:
    if class_id is not None:
        await get_account_for_student(db, student_id, class_id)
        return class_id
    accounts = await list_accounts_for_student(db, student_id)
    if not accounts:
        raise NotFoundError(f"Student {student_id} is not enrolled in any class")
    if len(accounts) > 1:
        raise ValidationError("Select a class when enrolled in multiple classes")
    return accounts[0].class_id


async def submit_goals(
    db: AsyncSession, student_id: int, items: list[SubmissionItem]
) -> list[GoalSubmission]:
    """Create one pending submission per item, snapshotting the goal's points."""
    if not items:
        raise ValidationError("No submissions provided")

    submissions = []
    for item in items:
        if not item.goal_id or not item.description or not item.description.strip():
            raise ValidationError("Each submission requires goalId and description")
        goal = await db.get(Goal, item.goal_id)
        if goal is None:
            raise NotFoundError(f"Goal {item.goal_id} not found")
        if not goal.available:
            raise ValidationError(f"Goal '{goal.title}' is not available")
        class_id = await _resolve_class_id(db, student_id, item.class_id)
        submissions.append(
            GoalSubmission(
                student_id=student_id,
                goal_id=goal.id,
                class_id=class_id,
                description=item.description.strip(),
                points=goal.points,
                status=ReviewStatus.PENDING.value,
            )
        )

    db.add_all(submissions)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("Failed to create goal submissions") from e

    logger.info("Student %d submitted %d goal(s)", student_id, len(submissions))
    return submissions


async def find_pending_submissions_for_student_today(
    db: AsyncSession, student_id: int, now: datetime | None = None
) -> list[GoalSubmission]:
    """Pending submissions a student created on the current school day."""
    result = await db.execute(
        select(GoalSubmission).where(
            GoalSubmission.student_id == student_id,
            GoalSubmission.status == ReviewStatus.PENDING.value,
        )
    )
    return [s for s in result.scalars().all() if is_same_day(s.created_at, now)]


def _parse_status(value: str) -> ReviewStatus:
    try:
        return ReviewStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid status: {value!r}") from None


def _parse_points(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError("Invalid points")
    return value


async def _transition(
    db: AsyncSession,
    submission_id: int,
    status: ReviewStatus,
    teacher_id: int,
    points: int,
) -> bool:
    """Move a submission out of ``pending``.  False if another review won."""
    statement = (
        update(GoalSubmission)
        .where(
            GoalSubmission.id == submission_id,
            GoalSubmission.status == ReviewStatus.PENDING.value,
        )
        .values(
            status=status.value,
            points=points,
            reviewed_by=teacher_id,
            reviewed_at=datetime.now(timezone.utc),
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    try:
        result = await db.execute(statement)
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("Failed to update goal submission") from e
    if result.rowcount != 1:
        await db.rollback()
        return False
    return True


async def _adjust_pending_points(db: AsyncSession, submission_id: int, points: int) -> None:
    """Change the points of a submission that is still ``pending``."""
    statement = (
        update(GoalSubmission)
        .where(
            GoalSubmission.id == submission_id,
            GoalSubmission.status == ReviewStatus.PENDING.value,
        )
        .values(points=points, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    try:
        result = await db.execute(statement)
        if result.rowcount != 1:
            await db.rollback()
            raise InvalidStateError(
                f"Goal submission {submission_id} was reviewed before its points changed"
            )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("Failed to update goal submission") from e


async def review_submission(
    db: AsyncSession,
    submission_id: int,
    teacher_id: int,
    status: str,
    points: int | None = None,
) -> GoalSubmission:
    """Approve or deny a submission.

    Only the ``pending -> approved`` edge credits the student, once, with
    whatever ``points`` holds at that moment.  Repeating the current status
    of an already reviewed submission is a no-op so a double click cannot
    credit twice.
    """
    new_status = _parse_status(status)
    if points is not None:
        points = _parse_points(points)

    submission = await get_submission(db, submission_id)
    await require_class_owner(db, submission.class_id, teacher_id)

    if submission.status != ReviewStatus.PENDING.value:
        if new_status.value == submission.status and points in (None, submission.points):
            return submission
        raise InvalidStateError(
            f"Goal submission {submission_id} is already {submission.status}"
        )
    if new_status == ReviewStatus.PENDING:
        if points is None or points == submission.points:
            return submission
        await _adjust_pending_points(db, submission_id, points)
        return await get_submission(db, submission_id)

    final_points = submission.points if points is None else points
    goal_title = submission.goal.title if submission.goal else "Unknown"

    if new_status == ReviewStatus.DENIED:
        if not await _transition(db, submission_id, new_status, teacher_id, final_points):
            return await _already_reviewed(db, submission_id, new_status)
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            raise PersistenceError("Failed to update goal submission") from e
        logger.info("Goal submission %d denied by teacher %d", submission_id, teacher_id)
        return await get_submission(db, submission_id)

    account = await get_account_for_student(db, submission.student_id, submission.class_id)
    async with ledger.account_lock(account.id):
        if not await _transition(db, submission_id, new_status, teacher_id, final_points):
            return await _already_reviewed(db, submission_id, new_status)
        if final_points > 0:
            # Status change and credit commit together.
            await ledger.post_transaction(
                db,
                account.id,
                TransactionType.DEPOSIT,
                final_points,
                reason=f"Goal completed: {goal_title}",
                notes="Goal submission approved",
                created_by=teacher_id,
            )
        else:
            try:
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                raise PersistenceError("Failed to update goal submission") from e

    logger.info(
        "Goal submission %d approved by teacher %d, %d point(s) credited",
        submission_id, teacher_id, final_points,
    )
    return await get_submission(db, submission_id)


async def _already_reviewed(
    db: AsyncSession, submission_id: int, wanted: ReviewStatus
) -> GoalSubmission:
    """A concurrent review got there first; same outcome is fine, anything else is not."""
    current = await get_submission(db, submission_id)
    if current.status == wanted.value:
        return current
    raise InvalidStateError(f"Goal submission {submission_id} is already {current.status}")


async def edit_submission(
    db: AsyncSession, submission_id: int, actor: Actor, description: str
) -> GoalSubmission:
    """Let a student reword their own pending submission on the day it was made."""
    submission = await get_submission(db, submission_id)
    if not actor.is_student or submission.student_id != actor.id:
        raise ForbiddenError("You can only edit your own submissions")
    if submission.status != ReviewStatus.PENDING.value:
        raise ForbiddenError("Cannot edit reviewed submissions")
    if not is_same_day(submission.created_at):
        raise ForbiddenError("Can only edit today's submissions")
    if description is None or not description.strip():
        raise ValidationError("Description is required")

    statement = (
        update(GoalSubmission)
        .where(
            GoalSubmission.id == submission_id,
            GoalSubmission.student_id == actor.id,
            GoalSubmission.status == ReviewStatus.PENDING.value,
        )
        .values(description=description.strip(), updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    try:
        result = await db.execute(statement)
        edited = result.rowcount == 1
        if edited:
            await db.commit()
        else:
            await db.rollback()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("Failed to update goal submission") from e
    if not edited:
        raise ForbiddenError("Cannot edit reviewed submissions")
    return await get_submission(db, submission_id)


async def delete_submission(db: AsyncSession, submission_id: int, actor: Actor) -> None:
    """Delete a submission.  The ledger is never touched."""
    submission = await get_submission(db, submission_id)
    statement = delete(GoalSubmission).where(GoalSubmission.id == submission_id)
    if actor.is_teacher:
        await require_class_owner(db, submission.class_id, actor.id)
    elif actor.is_student:
        if submission.student_id != actor.id:
            raise ForbiddenError("You can only delete your own submissions")
        if submission.status != ReviewStatus.PENDING.value:
            raise ForbiddenError("Cannot delete reviewed submissions")
        if not is_same_day(submission.created_at):
            raise ForbiddenError("Can only delete today's submissions")
        # A review may land between the checks above and the delete.
        statement = statement.where(
            GoalSubmission.student_id == actor.id,
            GoalSubmission.status == ReviewStatus.PENDING.value,
        )
    else:
        raise ForbiddenError("Forbidden")

    try:
        result = await db.execute(statement.execution_options(synchronize_session=False))
        deleted = result.rowcount == 1
        if deleted:
            await db.commit()
        else:
            await db.rollback()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("Failed to delete goal submission") from e
    if not deleted:
        if actor.is_student:
            raise ForbiddenError("Cannot delete reviewed submissions")
        raise NotFoundError(f"Goal submission {submission_id} not found")
    if submission in db:
        db.expunge(submission)
    logger.info("Goal submission %d deleted by %s %d", submission_id, actor.role.value, actor.id)


async def list_goal_submissions(
    db: AsyncSession,
    student_id: int | None = None,
    class_id: int | None = None,
    status: str | None = None,
) -> list[GoalSubmission]:
    query = select(GoalSubmission).options(selectinload(GoalSubmission.goal))
    if student_id is not None:
        query = query.where(GoalSubmission.student_id == student_id)
    if class_id is not None:
        query = query.where(GoalSubmission.class_id == class_id)
    if status:
        query = query.where(GoalSubmission.status == status)
    query = query.order_by(GoalSubmission.created_at.desc(), GoalSubmission.id.desc())
    result = await db.execute(query)
    return list(result.scalars().all())
