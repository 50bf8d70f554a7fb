"""Prize redemption workflow - escrow on request, refund on denial.

Requesting a prize debits the account immediately, so the balance already
reflects pending requests.  Approval only changes the request status;
denial records a compensating deposit of the same amount.  Both reviews are
one-way transitions out of ``pending``.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.exceptions import (
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from app.models.prize import Prize
from app.models.prize_request import PrizeRequest, ReviewStatus
from app.models.transaction import TransactionType
from app.services import ledger
from app.services.accounts import get_account_for_student
from app.services.classrooms import require_class_owner

logger = logging.getLogger(__name__)


async def get_prize_request(db: AsyncSession, request_id: int) -> PrizeRequest:
    result = await db.execute(
        select(PrizeRequest)
        .where(PrizeRequest.id == request_id)
        .options(selectinload(PrizeRequest.prize))
        .execution_options(populate_existing=True)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFoundError(f"Prize request {request_id} not found")
    return request


def _effective_cost(prize: Prize, custom_amount: int | None) -> int:
    if not prize.is_crowdfunded:
        return prize.cost
    minimum = settings.CROWDFUND_MINIMUM_AMOUNT
    if (
        custom_amount is None
        or isinstance(custom_amount, bool)
        or not isinstance(custom_amount, int)
        or custom_amount < minimum
    ):
        raise ValidationError(
            f"Crowdfunded prizes require a custom amount of at least {minimum}"
        )
    return custom_amount


async def request_prize(
    db: AsyncSession,
    student_id: int,
    prize_id: int,
    class_id: int,
    reason: str | None = None,
    custom_amount: int | None = None,
) -> PrizeRequest:
    """Create a pending request and debit its cost in the same commit."""
    prize = await db.get(Prize, prize_id)
    if prize is None:
        raise NotFoundError(f"Prize {prize_id} not found")
    if not prize.available:
        raise ValidationError(f"Prize '{prize.name}' is not available")

    account = await get_account_for_student(db, student_id, class_id)
    cost = _effective_cost(prize, custom_amount)
    crowdfunded = prize.is_crowdfunded

    async with ledger.account_lock(account.id):
        account = await ledger.lock_account_row(db, account.id)
        balance = account.balance
        if balance < cost:
            await db.rollback()
            raise InsufficientFundsError(required=cost, balance=balance)

        request = PrizeRequest(
            student_id=student_id,
            prize_id=prize.id,
            class_id=class_id,
            prize_cost=prize.cost,
            custom_amount=custom_amount if crowdfunded else None,
            reason=reason,
            status=ReviewStatus.PENDING.value,
        )
        db.add(request)
        try:
            await db.flush()
        except SQLAlchemyError as e:
            await db.rollback()
            raise PersistenceError("Failed to create prize request") from e

        try:
            suffix = " (Crowdfunded)" if crowdfunded else ""
            notes = f"Prize request ID: {request.id}"
            if crowdfunded:
                notes += f" - Custom amount: {custom_amount}"
            await ledger.post_transaction(
                db,
                account.id,
                TransactionType.PRIZE_REDEMPTION,
                cost,
                reason=f"Prize request: {prize.name}{suffix}",
                notes=notes,
                created_by=student_id,
            )
        except PersistenceError:
            # The request row must not outlive its failed debit.
            await db.rollback()
            logger.error(
                "Prize request for student %d / prize %d rolled back: debit failed",
                student_id, prize_id,
            )
            raise

    logger.info(
        "Prize request %d created: student %d, prize %d, %d debited",
        request.id, student_id, prize_id, cost,
    )
    return request


async def _transition(
    db: AsyncSession,
    request_id: int,
    status: ReviewStatus,
    teacher_id: int,
    notes: str | None,
) -> None:
    """Move a request out of ``pending``; raise if someone else already did."""
    statement = (
        update(PrizeRequest)
        .where(
            PrizeRequest.id == request_id,
            PrizeRequest.status == ReviewStatus.PENDING.value,
        )
        .values(
            status=status.value,
            reviewed_at=datetime.now(timezone.utc),
            reviewed_by=teacher_id,
            review_notes=notes,
        )
        .execution_options(synchronize_session=False)
    )
    try:
        result = await db.execute(statement)
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("Failed to update prize request") from e
    if result.rowcount != 1:
        await db.rollback()
        raise InvalidStateError(f"Prize request {request_id} has already been reviewed")


async def approve_prize_request(
    db: AsyncSession,
    request_id: int,
    teacher_id: int,
    notes: str | None = None,
) -> PrizeRequest:
    """Approve a pending request.  The balance was already debited."""
    request = await get_prize_request(db, request_id)
    await require_class_owner(db, request.class_id, teacher_id)
    if request.status != ReviewStatus.PENDING.value:
        raise InvalidStateError(f"Prize request {request_id} is already {request.status}")

    await _transition(db, request_id, ReviewStatus.APPROVED, teacher_id, notes or None)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("Failed to approve prize request") from e

    logger.info("Prize request %d approved by teacher %d", request_id, teacher_id)
    return await get_prize_request(db, request_id)


async def deny_prize_request(
    db: AsyncSession,
    request_id: int,
    teacher_id: int,
    notes: str,
) -> PrizeRequest:
    """Deny a pending request and refund its effective amount."""
    if notes is None or not notes.strip():
        raise ValidationError("Review notes are required when denying a request")
    notes = notes.strip()

    request = await get_prize_request(db, request_id)
    await require_class_owner(db, request.class_id, teacher_id)
    if request.status != ReviewStatus.PENDING.value:
        raise InvalidStateError(f"Prize request {request_id} is already {request.status}")

    account = await get_account_for_student(db, request.student_id, request.class_id)
    refund = request.effective_amount
    prize_name = request.prize.name if request.prize else "Unknown"

    async with ledger.account_lock(account.id):
        await _transition(db, request_id, ReviewStatus.DENIED, teacher_id, notes)
        # Status change and refund commit together.
        await ledger.post_transaction(
            db,
            account.id,
            TransactionType.DEPOSIT,
            refund,
            reason=f"Prize request denied: {prize_name}",
            notes=f"Refund for denied request. Reason: {notes}",
            created_by=teacher_id,
        )

    logger.info(
        "Prize request %d denied by teacher %d, %d refunded to account %d",
        request_id, teacher_id, refund, account.id,
    )
    return await get_prize_request(db, request_id)


async def list_prize_requests(
    db: AsyncSession,
    status: str | None = None,
    student_id: int | None = None,
    class_id: int | None = None,
    prize_id: int | None = None,
) -> list[PrizeRequest]:
    query = select(PrizeRequest).options(selectinload(PrizeRequest.prize))
    if status:
        query = query.where(PrizeRequest.status == status)
    if student_id is not None:
        query = query.where(PrizeRequest.student_id == student_id)
    if class_id is not None:
        query = query.where(PrizeRequest.class_id == class_id)
    if prize_id is not None:
        query = query.where(PrizeRequest.prize_id == prize_id)
    query = query.order_by(PrizeRequest.requested_at.desc(), PrizeRequest.id.desc())
    result = await db.execute(query)
    return list(result.scalars().all())


async def list_pending_requests(
    db: AsyncSession, class_id: int | None = None
) -> list[PrizeRequest]:
    return await list_prize_requests(db, status=ReviewStatus.PENDING.value, class_id=class_id)


async def list_recent_reviewed_requests(
    db: AsyncSession, limit: int = 5, class_id: int | None = None
) -> list[PrizeRequest]:
    query = (
        select(PrizeRequest)
        .options(selectinload(PrizeRequest.prize))
        .where(
            PrizeRequest.status.in_(
                [ReviewStatus.APPROVED.value, ReviewStatus.DENIED.value]
            ),
            PrizeRequest.reviewed_at.is_not(None),
        )
        .order_by(PrizeRequest.reviewed_at.desc())
        .limit(limit)
    )
    if class_id is not None:
        query = query.where(PrizeRequest.class_id == class_id)
    result = await db.execute(query)
    return list(result.scalars().all())
