"""Bulk award workflow tests."""

import pytest

from app.exceptions import (
    AccountResolutionError,
    BulkAwardIncompleteError,
    ForbiddenError,
    PersistenceError,
    ValidationError,
)
from app.services import ledger
from app.services.accounts import create_account_for_student, get_balance
from app.services.bulk_award import award_bulk


async def test_awards_every_selected_student(db_session, world):
    result = await award_bulk(
        db_session, world.teacher, world.students, 50, "Great teamwork",
        class_id=world.class_id,
    )
    assert result.transaction_count == 3
    assert len(result.transaction_ids) == 3
    for account_id in world.accounts:
        assert await get_balance(db_session, account_id) == 50
        [txn] = await ledger.list_transactions_by_account(db_session, account_id)
        assert txn.amount == 50
        assert txn.reason == "Great teamwork"
        assert txn.created_by == world.teacher


async def test_duplicate_ids_are_awarded_once(db_session, world):
    student = world.students[0]
    result = await award_bulk(db_session, world.teacher, [student, student], 5, "Bonus")
    assert result.transaction_count == 1
    assert await get_balance(db_session, world.accounts[0]) == 5


@pytest.mark.parametrize(
    "student_ids, amount, reason",
    [
        ([], 10, "x"),
        (None, 10, "x"),
        ([1], 0, "x"),
        ([1], -5, "x"),
        ([1], 10, "   "),
    ],
)
async def test_invalid_input(db_session, world, student_ids, amount, reason):
    with pytest.raises(ValidationError):
        await award_bulk(db_session, world.teacher, student_ids, amount, reason)


async def test_missing_account_writes_nothing(db_session, world):
    with pytest.raises(AccountResolutionError) as exc_info:
        await award_bulk(db_session, world.teacher, [world.students[0], 9999], 10, "x")
    assert exc_info.value.missing == [9999]
    assert "No account found for students: 9999" in exc_info.value.message
    assert await get_balance(db_session, world.accounts[0]) == 0


async def test_ambiguous_student_needs_class(db_session, world):
    student = world.students[0]
    await create_account_for_student(db_session, student, world.other_class_id)

    with pytest.raises(AccountResolutionError) as exc_info:
        await award_bulk(db_session, world.teacher, [student], 10, "x")
    assert exc_info.value.ambiguous == [student]
    assert "Select a class" in exc_info.value.message

    result = await award_bulk(
        db_session, world.teacher, [student], 10, "x", class_id=world.class_id
    )
    assert result.transaction_count == 1
    assert await get_balance(db_session, world.accounts[0]) == 10


async def test_foreign_class_is_forbidden(db_session, world):
    with pytest.raises(ForbiddenError):
        await award_bulk(
            db_session, world.teacher, [world.students[0], world.outsider], 10, "x"
        )
    assert await get_balance(db_session, world.accounts[0]) == 0
    assert await get_balance(db_session, world.outsider_account) == 0


async def test_partial_failure_reports_progress(db_session, world, monkeypatch):
    real_post = ledger.post_transaction
    calls = []

    async def flaky_post(*args, **kwargs):
        calls.append(args)
        if len(calls) == 2:
            raise PersistenceError("Failed to record transaction")
        return await real_post(*args, **kwargs)

    monkeypatch.setattr(ledger, "post_transaction", flaky_post)
    with pytest.raises(BulkAwardIncompleteError) as exc_info:
        await award_bulk(db_session, world.teacher, world.students, 10, "x")
    monkeypatch.undo()

    assert exc_info.value.completed == 1
    assert exc_info.value.total == 3
    assert exc_info.value.failed_student_id == world.students[1]
    assert await get_balance(db_session, world.accounts[0]) == 10
    assert await get_balance(db_session, world.accounts[1]) == 0
    assert await get_balance(db_session, world.accounts[2]) == 0
