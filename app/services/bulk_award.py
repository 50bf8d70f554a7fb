"""Bulk award workflow - one deposit per selected student.

Validation is all-or-nothing: every student must resolve to exactly one
account in a class the teacher owns before anything is written.  The
deposits themselves are independent ledger writes made in the order the
students were given; if one fails, the earlier ones stand and the error
says how many completed.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    AccountResolutionError,
    BulkAwardIncompleteError,
    ForbiddenError,
    PersistenceError,
    ValidationError,
)
from app.models.account import Account
from app.models.classroom import Classroom
from app.models.transaction import TransactionType
from app.services import ledger

logger = logging.getLogger(__name__)


@dataclass
class BulkAwardResult:
    transaction_count: int
    transaction_ids: list[int] = field(default_factory=list)


async def resolve_accounts(
    db: AsyncSession, student_ids: list[int], class_id: int | None = None
) -> list[Account]:
    """Pick one account per student, in order, or raise AccountResolutionError."""
    result = await db.execute(select(Account).where(Account.user_id.in_(student_ids)))
    by_student: dict[int, list[Account]] = {}
    for account in result.scalars().all():
        if class_id is not None and account.class_id != class_id:
            continue
        by_student.setdefault(account.user_id, []).append(account)

    missing = []
    ambiguous = []
    resolved = []
    for student_id in student_ids:
        matches = by_student.get(student_id, [])
        if not matches:
            missing.append(student_id)
        elif len(matches) > 1:
            ambiguous.append(student_id)
        else:
            resolved.append(matches[0])

    if missing or ambiguous:
        raise AccountResolutionError(missing=missing, ambiguous=ambiguous)
    return resolved


async def _check_ownership(
    db: AsyncSession, accounts: list[Account], teacher_id: int
) -> None:
    class_ids = {a.class_id for a in accounts}
    result = await db.execute(
        select(Classroom.id).where(
            Classroom.id.in_(class_ids),
            Classroom.teacher_id == teacher_id,
        )
    )
    owned = set(result.scalars().all())
    foreign = sorted(class_ids - owned)
    if foreign:
        raise ForbiddenError(
            "You can only award students in your own classes",
            details={"class_ids": foreign},
        )


async def award_bulk(
    db: AsyncSession,
    teacher_id: int,
    student_ids: list[int],
    amount: int,
    reason: str,
    class_id: int | None = None,
) -> BulkAwardResult:
    if not student_ids:
        raise ValidationError("No students selected")
    ledger.require_positive_amount(amount)
    if reason is None or not reason.strip():
        raise ValidationError("Reason is required")
    reason = reason.strip()

    # A repeated id would award the same student twice.
    student_ids = list(dict.fromkeys(student_ids))

    accounts = await resolve_accounts(db, student_ids, class_id)
    await _check_ownership(db, accounts, teacher_id)

    transaction_ids = []
    # Plain ids: a failed write rolls back and expires the loaded rows.
    targets = [(a.id, a.user_id) for a in accounts]
    for account_id, student_id in targets:
        try:
            txn = await ledger.record_transaction(
                db,
                account_id,
                TransactionType.DEPOSIT,
                amount,
                reason=reason,
                created_by=teacher_id,
            )
        except PersistenceError as e:
            logger.error(
                "Bulk award by teacher %d stopped at student %d after %d of %d",
                teacher_id, student_id, len(transaction_ids), len(targets),
            )
            raise BulkAwardIncompleteError(
                completed=len(transaction_ids),
                total=len(targets),
                failed_student_id=student_id,
            ) from e
        transaction_ids.append(txn.id)

    logger.info(
        "Teacher %d awarded %d to %d student(s)", teacher_id, amount, len(transaction_ids)
    )
    return BulkAwardResult(
        transaction_count=len(transaction_ids), transaction_ids=transaction_ids
    )
