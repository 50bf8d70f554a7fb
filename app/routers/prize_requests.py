"""Prize request API routes."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user, require_student, require_teacher
from app.models.prize_request import PrizeRequest
from app.services.auth import Actor
from app.services.classrooms import list_class_ids_for_teacher, require_class_owner
from app.services.prize_requests import (
    approve_prize_request,
    deny_prize_request,
    list_prize_requests,
    request_prize,
)

router = APIRouter(prefix="/api/prize-requests", tags=["prize-requests"])


class PrizeRequestCreate(BaseModel):
    prize_id: int
    class_id: int
    reason: str | None = None
    custom_amount: int | None = None


class ReviewRequest(BaseModel):
    notes: str | None = None


class PrizeRequestItem(BaseModel):
    id: int
    student_id: int
    prize_id: int
    prize_name: str | None
    class_id: int
    prize_cost: int
    custom_amount: int | None
    amount: int
    reason: str | None
    status: str
    requested_at: str
    reviewed_at: str | None
    reviewed_by: int | None
    review_notes: str | None


def to_item(r: PrizeRequest) -> PrizeRequestItem:
    return PrizeRequestItem(
        id=r.id,
        student_id=r.student_id,
        prize_id=r.prize_id,
        prize_name=r.prize.name if r.prize else None,
        class_id=r.class_id,
        prize_cost=r.prize_cost,
        custom_amount=r.custom_amount,
        amount=r.effective_amount,
        reason=r.reason,
        status=r.status,
        requested_at=r.requested_at.isoformat(),
        reviewed_at=r.reviewed_at.isoformat() if r.reviewed_at else None,
        reviewed_by=r.reviewed_by,
        review_notes=r.review_notes,
    )


@router.post("", status_code=201)
async def create_prize_request(
    body: PrizeRequestCreate,
    user: Actor = Depends(require_student),
    db: AsyncSession = Depends(get_db),
):
    """Request a prize.  The cost is debited immediately."""
    request = await request_prize(
        db,
        student_id=user.id,
        prize_id=body.prize_id,
        class_id=body.class_id,
        reason=body.reason,
        custom_amount=body.custom_amount,
    )
    return {"success": True, "request_id": request.id}


@router.get("", response_model=list[PrizeRequestItem])
async def get_prize_requests(
    status: str | None = None,
    class_id: int | None = None,
    prize_id: int | None = None,
    student_id: int | None = None,
    user: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if user.is_student:
        requests = await list_prize_requests(
            db, status=status, student_id=user.id, class_id=class_id, prize_id=prize_id
        )
        return [to_item(r) for r in requests]

    if class_id is not None:
        await require_class_owner(db, class_id, user.id)
        requests = await list_prize_requests(
            db, status=status, student_id=student_id, class_id=class_id, prize_id=prize_id
        )
        return [to_item(r) for r in requests]

    owned = set(await list_class_ids_for_teacher(db, user.id))
    requests = await list_prize_requests(
        db, status=status, student_id=student_id, prize_id=prize_id
    )
    return [to_item(r) for r in requests if r.class_id in owned]


@router.post("/{request_id}/approve", response_model=PrizeRequestItem)
async def approve(
    request_id: int,
    body: ReviewRequest | None = None,
    user: Actor = Depends(require_teacher),
    db: AsyncSession = Depends(get_db),
):
    request = await approve_prize_request(
        db, request_id, user.id, notes=body.notes if body else None
    )
    return to_item(request)


@router.post("/{request_id}/deny", response_model=PrizeRequestItem)
async def deny(
    request_id: int,
    body: ReviewRequest,
    user: Actor = Depends(require_teacher),
    db: AsyncSession = Depends(get_db),
):
    """Deny a request and refund the student.  Notes are required."""
    request = await deny_prize_request(db, request_id, user.id, notes=body.notes)
    return to_item(request)
