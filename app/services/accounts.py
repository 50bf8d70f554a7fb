"""Account store - lookups and creation of (student, class) balances.

Balances are never written here; see :mod:`app.services.ledger`.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import InvalidStateError, NotFoundError, PersistenceError
from app.models.account import Account, Currency
from app.models.classroom import Classroom
from app.models.profile import Profile

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {
    Currency.STAR_CREDITS: "⭐",
    Currency.EARTH_POINTS: "\U0001f30d",
}

CURRENCY_NAMES = {
    Currency.STAR_CREDITS: "Star Credits",
    Currency.EARTH_POINTS: "Earth Points",
}


def currency_for_subject(subject: str | None) -> Currency:
    """Earth science classes earn Earth Points; everything else Star Credits."""
    if subject == "earth-science":
        return Currency.EARTH_POINTS
    return Currency.STAR_CREDITS


def format_currency(amount: int, currency: str) -> str:
    cur = Currency(currency)
    return f"{CURRENCY_SYMBOLS[cur]} {amount:,} {CURRENCY_NAMES[cur]}"


async def get_account(db: AsyncSession, account_id: int) -> Account:
    account = await db.get(Account, account_id)
    if account is None:
        raise NotFoundError(f"Account {account_id} not found")
    return account


async def get_account_for_student(
    db: AsyncSession, student_id: int, class_id: int
) -> Account:
    """Resolve a student's account in one class."""
    result = await db.execute(
        select(Account).where(
            Account.user_id == student_id,
            Account.class_id == class_id,
        )
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise NotFoundError(
            f"No account for student {student_id} in class {class_id}"
        )
    return account


async def list_accounts_for_student(db: AsyncSession, student_id: int) -> list[Account]:
    result = await db.execute(
        select(Account).where(Account.user_id == student_id).order_by(Account.id)
    )
    return list(result.scalars().all())


async def list_accounts_for_class(db: AsyncSession, class_id: int) -> list[Account]:
    """Accounts in a class, highest balance first."""
    result = await db.execute(
        select(Account)
        .where(Account.class_id == class_id)
        .order_by(Account.balance.desc(), Account.id)
    )
    return list(result.scalars().all())


async def get_balance(db: AsyncSession, account_id: int) -> int:
    result = await db.execute(select(Account.balance).where(Account.id == account_id))
    balance = result.scalar_one_or_none()
    if balance is None:
        raise NotFoundError(f"Account {account_id} not found")
    return balance


async def _has_account(db: AsyncSession, student_id: int, class_id: int) -> bool:
    result = await db.execute(
        select(Account.id).where(
            Account.user_id == student_id,
            Account.class_id == class_id,
        )
    )
    return result.first() is not None


async def create_account_for_student(
    db: AsyncSession, student_id: int, class_id: int
) -> Account:
    """Open a zero-balance account when a student joins a class."""
    classroom = await db.get(Classroom, class_id)
    if classroom is None:
        raise NotFoundError(f"Class {class_id} not found")

    if await db.get(Profile, student_id) is None:
        raise NotFoundError(f"Student {student_id} not found")
    if await _has_account(db, student_id, class_id):
        raise InvalidStateError(
            f"Student {student_id} already has an account in class {class_id}"
        )

    account = Account(
        user_id=student_id,
        class_id=class_id,
        balance=0,
        currency=currency_for_subject(classroom.subject).value,
    )
    db.add(account)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        # Only the unique (user, class) constraint means "already enrolled".
        if await _has_account(db, student_id, class_id):
            raise InvalidStateError(
                f"Student {student_id} already has an account in class {class_id}"
            ) from e
        logger.exception("Failed to open account for student %d in class %d", student_id, class_id)
        raise PersistenceError("Failed to open account") from e
    await db.refresh(account)
    logger.info("Opened account %d for student %d in class %d", account.id, student_id, class_id)
    return account
