"""Ledger engine - the only code path that changes an account balance.

Every balance change is written as one atomic unit: the account row is read
under a per-account lock, a :class:`Transaction` row is appended with the
balance before/after, and the account's ``balance`` is updated, then the
session is committed.  Either both rows change or neither does.

Serialization of concurrent writers on the same account uses two layers:

* an in-process :class:`asyncio.Lock` per account id, which is all SQLite
  needs since it has no row locks, and
* ``SELECT ... FOR UPDATE`` on the account row, which serializes writers
  across processes on databases that support row locking.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError, PersistenceError, ValidationError
from app.models.account import Account
from app.models.transaction import Transaction, TransactionType

logger = logging.getLogger(__name__)

_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()


@dataclass(frozen=True)
class Reconciliation:
    account_id: int
    balance: int
    ledger_total: int
    transaction_count: int

    @property
    def balanced(self) -> bool:
        return self.balance == self.ledger_total


def parse_type(value: str | TransactionType) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError:
        raise ValidationError(
            f"Invalid transaction type: {value!r}",
            details={"allowed": [t.value for t in TransactionType]},
        ) from None


def require_positive_amount(amount: object, field: str = "amount") -> int:
    """Return ``amount`` if it is a positive integer, else raise ValidationError."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"{field} must be a whole number")
    if amount <= 0:
        raise ValidationError(f"{field} must be positive")
    return amount


def signed_amount(type_: str | TransactionType, amount: int) -> int:
    """Effect of a transaction on the balance: credits are positive, debits negative."""
    return amount if TransactionType(type_).is_credit else -amount


@asynccontextmanager
async def account_lock(account_id: int) -> AsyncIterator[None]:
    """Hold the in-process write lock for one account.

    Workflows that must commit a state change together with a ledger entry
    take this lock first and then call :func:`post_transaction`.
    """
    lock = _locks.get(account_id)
    if lock is None:
        lock = asyncio.Lock()
        _locks[account_id] = lock
    async with lock:
        yield


async def lock_account_row(db: AsyncSession, account_id: int) -> Account:
    """Re-read an account row with ``FOR UPDATE``, bypassing the identity map."""
    result = await db.execute(
        select(Account)
        .where(Account.id == account_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise NotFoundError(f"Account {account_id} not found")
    return account


async def post_transaction(
    db: AsyncSession,
    account_id: int,
    type_: TransactionType,
    amount: int,
    reason: str | None = None,
    notes: str | None = None,
    created_by: int | None = None,
) -> Transaction:
    """Append a ledger entry and update the balance, then commit the session.

    The caller must hold :func:`account_lock` for ``account_id``.  Anything
    else pending in the session is committed in the same unit, and rolled
    back with it on failure.
    """
    try:
        account = await lock_account_row(db, account_id)
        before = account.balance
        after = before + signed_amount(type_, amount)

        txn = Transaction(
            account_id=account.id,
            user_id=account.user_id,
            type=type_.value,
            amount=amount,
            balance_before=before,
            balance_after=after,
            reason=reason,
            notes=notes,
            created_by=created_by,
        )
        db.add(txn)
        account.balance = after
        account.last_updated = datetime.now(timezone.utc)
        await db.commit()
    except NotFoundError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("Ledger write failed for account %d", account_id)
        raise PersistenceError("Failed to record transaction") from e

    logger.info(
        "Posted %s of %d on account %d: %d -> %d (txn %d)",
        txn.type, amount, account_id, before, after, txn.id,
    )
    return txn


async def record_transaction(
    db: AsyncSession,
    account_id: int,
    type_: str | TransactionType,
    amount: int,
    reason: str | None = None,
    notes: str | None = None,
    created_by: int | None = None,
) -> Transaction:
    """Record one balance-affecting event against an account.

    Raises ValidationError for a non-positive amount or unknown type,
    NotFoundError for a missing account and PersistenceError if the atomic
    write fails.  Balances are not floored at zero here; callers that care
    (prize redemption) check affordability first.
    """
    txn_type = parse_type(type_)
    require_positive_amount(amount)
    async with account_lock(account_id):
        return await post_transaction(
            db, account_id, txn_type, amount,
            reason=reason, notes=notes, created_by=created_by,
        )


async def get_transaction(db: AsyncSession, transaction_id: int) -> Transaction:
    txn = await db.get(Transaction, transaction_id)
    if txn is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return txn


def _newest_first(query, limit: int | None):
    query = query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
    if limit:
        query = query.limit(limit)
    return query


async def list_transactions_by_account(
    db: AsyncSession, account_id: int, limit: int | None = None
) -> list[Transaction]:
    query = select(Transaction).where(Transaction.account_id == account_id)
    result = await db.execute(_newest_first(query, limit))
    return list(result.scalars().all())


async def list_transactions_by_user(
    db: AsyncSession, user_id: int, limit: int | None = None
) -> list[Transaction]:
    query = select(Transaction).where(Transaction.user_id == user_id)
    result = await db.execute(_newest_first(query, limit))
    return list(result.scalars().all())


async def list_transactions_by_class(
    db: AsyncSession, class_id: int, limit: int | None = None
) -> list[Transaction]:
    query = (
        select(Transaction)
        .join(Account, Account.id == Transaction.account_id)
        .where(Account.class_id == class_id)
    )
    result = await db.execute(_newest_first(query, limit))
    return list(result.scalars().all())


async def list_recent_transactions(
    db: AsyncSession, limit: int = 10, class_id: int | None = None
) -> list[Transaction]:
    if class_id is not None:
        return await list_transactions_by_class(db, class_id, limit)
    result = await db.execute(_newest_first(select(Transaction), limit))
    return list(result.scalars().all())


async def reconcile_account(db: AsyncSession, account_id: int) -> Reconciliation:
    """Compare the stored balance with the signed sum of the account's history."""
    result = await db.execute(
        select(Account)
        .where(Account.id == account_id)
        .execution_options(populate_existing=True)
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise NotFoundError(f"Account {account_id} not found")

    rows = await db.execute(
        select(Transaction.type, func.sum(Transaction.amount), func.count(Transaction.id))
        .where(Transaction.account_id == account_id)
        .group_by(Transaction.type)
    )
    total = 0
    count = 0
    for type_, amount, n in rows.all():
        total += signed_amount(type_, amount or 0)
        count += n

    if account.balance != total:
        logger.warning(
            "Account %d is out of balance: stored %d, ledger %d",
            account_id, account.balance, total,
        )
    return Reconciliation(
        account_id=account_id,
        balance=account.balance,
        ledger_total=total,
        transaction_count=count,
    )
