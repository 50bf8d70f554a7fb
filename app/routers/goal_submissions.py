"""Goal submission API routes."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.dependencies import get_current_user, require_student
from app.exceptions import ValidationError
from app.models.goal_submission import GoalSubmission
from app.services.auth import Actor
from app.services.classrooms import list_class_ids_for_teacher, require_class_owner
from app.services.goal_submissions import (
    SubmissionItem,
    delete_submission,
    edit_submission,
    find_pending_submissions_for_student_today,
    list_goal_submissions,
    review_submission,
    submit_goals,
)

router = APIRouter(prefix="/api/goal-submissions", tags=["goal-submissions"])


class SubmissionIn(BaseModel):
    goal_id: int
    description: str
    class_id: int | None = None


class SubmissionCreate(BaseModel):
    """Either a ``submissions`` list or a single inline submission."""

    submissions: list[SubmissionIn] | None = None
    goal_id: int | None = None
    description: str | None = None
    class_id: int | None = None

    def items(self) -> list[SubmissionItem]:
        if self.submissions is not None:
            return [
                SubmissionItem(s.goal_id, s.description, s.class_id)
                for s in self.submissions
            ]
        if self.goal_id is None or self.description is None:
            return []
        return [SubmissionItem(self.goal_id, self.description, self.class_id)]


class SubmissionUpdate(BaseModel):
    status: str | None = None
    points: int | None = None
    description: str | None = None


class SubmissionOut(BaseModel):
    id: int
    student_id: int
    goal_id: int
    goal_title: str | None
    class_id: int
    description: str
    points: int
    status: str
    reviewed_by: int | None
    reviewed_at: str | None
    created_at: str
    updated_at: str


def to_item(s: GoalSubmission) -> SubmissionOut:
    return SubmissionOut(
        id=s.id,
        student_id=s.student_id,
        goal_id=s.goal_id,
        goal_title=s.goal.title if s.goal else None,
        class_id=s.class_id,
        description=s.description,
        points=s.points,
        status=s.status,
        reviewed_by=s.reviewed_by,
        reviewed_at=s.reviewed_at.isoformat() if s.reviewed_at else None,
        created_at=s.created_at.isoformat(),
        updated_at=s.updated_at.isoformat(),
    )


@router.get("", response_model=list[SubmissionOut])
async def get_submissions(
    status: str | None = None,
    class_id: int | None = None,
    student_id: int | None = None,
    user: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if user.is_student:
        subs = await list_goal_submissions(
            db, student_id=user.id, class_id=class_id, status=status
        )
        return [to_item(s) for s in subs]

    if class_id is not None:
        await require_class_owner(db, class_id, user.id)
    owned = set(await list_class_ids_for_teacher(db, user.id))
    subs = await list_goal_submissions(
        db, student_id=student_id, class_id=class_id, status=status
    )
    return [to_item(s) for s in subs if s.class_id in owned]


@router.post("", status_code=201)
async def create_submissions(
    body: SubmissionCreate,
    user: Actor = Depends(require_student),
    db: AsyncSession = Depends(get_db),
):
    """Submit one or more completed goals for review."""
    items = body.items()
    if not items:
        raise ValidationError("No submissions provided")

    limit = settings.DAILY_GOAL_SUBMISSION_LIMIT
    today = await find_pending_submissions_for_student_today(db, user.id)
    if len(today) + len(items) > limit:
        raise ValidationError(
            f"You can only have {limit} pending goal submissions per day",
            details={"pending_today": len(today), "limit": limit},
        )

    created = await submit_goals(db, user.id, items)
    return {"success": True, "submission_ids": [s.id for s in created]}


@router.patch("/{submission_id}", response_model=SubmissionOut)
async def update_submission(
    submission_id: int,
    body: SubmissionUpdate,
    user: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Teachers review (status, points); students reword their own pending entry."""
    if user.is_teacher:
        if body.status is None:
            raise ValidationError("status is required")
        submission = await review_submission(
            db, submission_id, user.id, body.status, points=body.points
        )
    else:
        submission = await edit_submission(db, submission_id, user, body.description)
    return to_item(submission)


@router.delete("/{submission_id}")
async def remove_submission(
    submission_id: int,
    user: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await delete_submission(db, submission_id, user)
    return {"success": True}
