"""Dashboard statistics tests."""

from app.services.prize_requests import approve_prize_request, request_prize
from app.services.stats import (
    get_class_stats,
    get_dashboard_stats,
    get_student_stats,
    get_teacher_overview,
)


async def test_dashboard_with_no_classes_is_all_zero(db_session):
    stats = await get_dashboard_stats(db_session, teacher_id=12345)
    assert stats.to_dict() == {
        "total_students": 0,
        "total_funds": 0,
        "average_balance": 0,
        "pending_requests": 0,
        "approved_recently": 0,
        "total_transactions": 0,
    }


async def test_dashboard_with_empty_accounts(db_session, world):
    stats = await get_dashboard_stats(db_session, world.teacher)
    assert stats.total_students == 3
    assert stats.total_funds == 0
    assert stats.average_balance == 0


async def test_dashboard_totals(db_session, world, fund):
    await fund(world.accounts[0], 500)
    await fund(world.accounts[1], 100)
    await fund(world.outsider_account, 1000)

    first = await request_prize(db_session, world.students[0], world.prize, world.class_id)
    await request_prize(db_session, world.students[0], world.prize, world.class_id)
    await approve_prize_request(db_session, first.id, world.teacher)

    stats = await get_dashboard_stats(db_session, world.teacher)
    assert stats.total_students == 3
    assert stats.total_funds == 100 + 100
    assert stats.average_balance == 200 // 3
    assert stats.pending_requests == 1
    assert stats.approved_recently == 1
    assert stats.total_transactions == 4

    # Another teacher's class does not leak in.
    other = await get_dashboard_stats(db_session, world.other_teacher)
    assert other.total_funds == 1000
    assert other.pending_requests == 0


async def test_dashboard_for_foreign_class_is_empty(db_session, world, fund):
    await fund(world.outsider_account, 1000)
    stats = await get_dashboard_stats(db_session, world.teacher, class_id=world.other_class_id)
    assert stats.total_funds == 0


async def test_student_stats(db_session, world, fund):
    await fund(world.accounts[0], 500)
    await request_prize(db_session, world.students[0], world.prize, world.class_id)

    stats = await get_student_stats(db_session, world.students[0])
    assert stats.current_balance == 300
    assert stats.currency == "star-credits"
    assert stats.total_earned == 500
    assert stats.total_spent == 200
    assert stats.pending_requests == 1


async def test_student_stats_without_account(db_session, world):
    stats = await get_student_stats(db_session, world.students[0], class_id=world.other_class_id)
    assert stats.current_balance == 0
    assert stats.pending_requests == 0


async def test_class_stats_and_overview(db_session, world, fund):
    await fund(world.accounts[0], 30)
    await fund(world.accounts[1], 10)

    class_stats = await get_class_stats(db_session, world.class_id)
    assert class_stats.student_count == 3
    assert class_stats.total_funds == 40
    assert class_stats.average_balance == 13
    assert class_stats.transaction_count == 2

    overview = await get_teacher_overview(db_session, world.teacher)
    assert overview.class_count == 1
    assert overview.total_students == 3
    assert overview.recent_transactions == 0
