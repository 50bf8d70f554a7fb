"""Dashboard statistics - read-only aggregates over accounts, ledger and requests."""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.account import Account, Currency
from app.models.classroom import Classroom
from app.models.prize_request import PrizeRequest, ReviewStatus
from app.models.transaction import Transaction, TransactionType


@dataclass
class DashboardStats:
    total_students: int = 0
    total_funds: int = 0
    average_balance: int = 0
    pending_requests: int = 0
    approved_recently: int = 0
    total_transactions: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class StudentStats:
    current_balance: int = 0
    currency: str = Currency.STAR_CREDITS.value
    total_earned: int = 0
    total_spent: int = 0
    pending_requests: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ClassStats:
    student_count: int = 0
    total_funds: int = 0
    average_balance: int = 0
    transaction_count: int = 0
    pending_requests: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TeacherOverview:
    class_count: int = 0
    total_students: int = 0
    pending_requests: int = 0
    recent_transactions: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _average(total: int, count: int) -> int:
    return total // count if count else 0


async def _scalar(db: AsyncSession, query) -> int:
    return (await db.execute(query)).scalar() or 0


async def _teacher_class_ids(
    db: AsyncSession, teacher_id: int, class_id: int | None = None
) -> list[int]:
    query = select(Classroom.id).where(Classroom.teacher_id == teacher_id)
    if class_id is not None:
        query = query.where(Classroom.id == class_id)
    return list((await db.execute(query)).scalars().all())


async def get_dashboard_stats(
    db: AsyncSession, teacher_id: int, class_id: int | None = None
) -> DashboardStats:
    """Totals across a teacher's classes, or one of them.

    A class the teacher does not own contributes nothing.
    """
    class_ids = await _teacher_class_ids(db, teacher_id, class_id)
    if not class_ids:
        return DashboardStats()

    total_students = await _scalar(
        db,
        select(func.count(distinct(Account.user_id))).where(Account.class_id.in_(class_ids)),
    )
    row = (
        await db.execute(
            select(func.coalesce(func.sum(Account.balance), 0), func.count(Account.id))
            .where(Account.class_id.in_(class_ids))
        )
    ).one()
    total_funds, account_count = row[0], row[1]

    pending = await _scalar(
        db,
        select(func.count(PrizeRequest.id)).where(
            PrizeRequest.class_id.in_(class_ids),
            PrizeRequest.status == ReviewStatus.PENDING.value,
        ),
    )
    since = datetime.now(timezone.utc) - timedelta(hours=settings.APPROVAL_WINDOW_HOURS)
    approved = await _scalar(
        db,
        select(func.count(PrizeRequest.id)).where(
            PrizeRequest.class_id.in_(class_ids),
            PrizeRequest.status == ReviewStatus.APPROVED.value,
            PrizeRequest.reviewed_at >= since,
        ),
    )
    transactions = await _scalar(
        db,
        select(func.count(Transaction.id))
        .join(Account, Account.id == Transaction.account_id)
        .where(Account.class_id.in_(class_ids)),
    )

    return DashboardStats(
        total_students=total_students,
        total_funds=total_funds,
        average_balance=_average(total_funds, account_count),
        pending_requests=pending,
        approved_recently=approved,
        total_transactions=transactions,
    )


async def get_student_stats(
    db: AsyncSession, student_id: int, class_id: int | None = None
) -> StudentStats:
    """Balance and earn/spend totals for one student, in one class or all."""
    account_query = select(Account).where(Account.user_id == student_id)
    if class_id is not None:
        account_query = account_query.where(Account.class_id == class_id)
    account_query = account_query.order_by(Account.id).execution_options(populate_existing=True)
    accounts = list((await db.execute(account_query)).scalars().all())
    if not accounts:
        return StudentStats()
    account_ids = [a.id for a in accounts]

    async def _sum(type_: TransactionType) -> int:
        return await _scalar(
            db,
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                Transaction.account_id.in_(account_ids),
                Transaction.type == type_.value,
            ),
        )

    pending_query = select(func.count(PrizeRequest.id)).where(
        PrizeRequest.student_id == student_id,
        PrizeRequest.status == ReviewStatus.PENDING.value,
    )
    if class_id is not None:
        pending_query = pending_query.where(PrizeRequest.class_id == class_id)

    return StudentStats(
        current_balance=sum(a.balance for a in accounts),
        currency=accounts[0].currency,
        total_earned=await _sum(TransactionType.DEPOSIT),
        total_spent=await _sum(TransactionType.PRIZE_REDEMPTION),
        pending_requests=await _scalar(db, pending_query),
    )


async def get_class_stats(db: AsyncSession, class_id: int) -> ClassStats:
    row = (
        await db.execute(
            select(
                func.count(distinct(Account.user_id)),
                func.coalesce(func.sum(Account.balance), 0),
                func.count(Account.id),
            ).where(Account.class_id == class_id)
        )
    ).one()
    students, total_funds, account_count = row
    transactions = await _scalar(
        db,
        select(func.count(Transaction.id))
        .join(Account, Account.id == Transaction.account_id)
        .where(Account.class_id == class_id),
    )
    pending = await _scalar(
        db,
        select(func.count(PrizeRequest.id)).where(
            PrizeRequest.class_id == class_id,
            PrizeRequest.status == ReviewStatus.PENDING.value,
        ),
    )
    return ClassStats(
        student_count=students,
        total_funds=total_funds,
        average_balance=_average(total_funds, account_count),
        transaction_count=transactions,
        pending_requests=pending,
    )


async def get_teacher_overview(db: AsyncSession, teacher_id: int) -> TeacherOverview:
    class_ids = await _teacher_class_ids(db, teacher_id)
    if not class_ids:
        return TeacherOverview()

    students = await _scalar(
        db,
        select(func.count(distinct(Account.user_id))).where(Account.class_id.in_(class_ids)),
    )
    pending = await _scalar(
        db,
        select(func.count(PrizeRequest.id)).where(
            PrizeRequest.class_id.in_(class_ids),
            PrizeRequest.status == ReviewStatus.PENDING.value,
        ),
    )
    since = datetime.now(timezone.utc) - timedelta(hours=24)
    recent = await _scalar(
        db,
        select(func.count(Transaction.id)).where(
            Transaction.created_by == teacher_id,
            Transaction.created_at >= since,
        ),
    )
    return TeacherOverview(
        class_count=len(class_ids),
        total_students=students,
        pending_requests=pending,
        recent_transactions=recent,
    )
