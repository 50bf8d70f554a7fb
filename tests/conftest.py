"""Shared pytest fixtures for the token economy test suite."""

from collections.abc import AsyncGenerator
from types import SimpleNamespace

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.models import Classroom, Goal, Prize, Profile, Role, TransactionType
from app.services import ledger
from app.services.accounts import create_account_for_student
from main import app

# ---------------------------------------------------------------------------
# Async engine & session fixtures (in-memory SQLite)
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture()
async def async_engine():
    """Create a fresh in-memory async engine per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Provide an async session that rolls back after each test."""
    session_factory = async_sessionmaker(
        async_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTPX async client wired to the FastAPI app with test DB override."""

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Convenience / data fixtures
# ---------------------------------------------------------------------------


async def add_profile(db: AsyncSession, email: str, name: str, role: Role) -> int:
    profile = Profile(email=email, name=name, role=role.value)
    db.add(profile)
    await db.commit()
    return profile.id


async def add_class(db: AsyncSession, teacher_id: int, name: str, subject: str = "astronomy") -> int:
    classroom = Classroom(teacher_id=teacher_id, name=name, subject=subject)
    db.add(classroom)
    await db.commit()
    return classroom.id


async def _fund(db: AsyncSession, account_id: int, amount: int) -> None:
    await ledger.record_transaction(
        db, account_id, TransactionType.DEPOSIT, amount, reason="Opening balance"
    )


@pytest.fixture()
async def world(db_session: AsyncSession) -> SimpleNamespace:
    """A teacher with one class of three students, plus a second teacher.

    Only plain ids are exposed; tests re-read rows through the services.
    """
    db = db_session
    teacher = await add_profile(db, "teacher@example.com", "Teacher", Role.TEACHER)
    other_teacher = await add_profile(db, "other@example.com", "Other", Role.TEACHER)
    class_id = await add_class(db, teacher, "Period 1")
    other_class_id = await add_class(db, other_teacher, "Period 2", subject="earth-science")

    students = []
    accounts = []
    for i, name in enumerate(["Ada", "Ben", "Cleo"]):
        student = await add_profile(db, f"s{i}@example.com", name, Role.STUDENT)
        account = await create_account_for_student(db, student, class_id)
        students.append(student)
        accounts.append(account.id)

    outsider = await add_profile(db, "outsider@example.com", "Dev", Role.STUDENT)
    outsider_account = (await create_account_for_student(db, outsider, other_class_id)).id

    prize = Prize(name="Homework Pass", cost=200, class_id=class_id, teacher_id=teacher)
    crowdfund = Prize(name="Telescope Night", cost=0, class_id=class_id, teacher_id=teacher)
    retired = Prize(name="Old Prize", cost=10, available=False, class_id=class_id)
    goal = Goal(title="Read a chapter", points=10, teacher_id=teacher)
    db.add_all([prize, crowdfund, retired, goal])
    await db.commit()

    return SimpleNamespace(
        teacher=teacher,
        other_teacher=other_teacher,
        class_id=class_id,
        other_class_id=other_class_id,
        students=students,
        accounts=accounts,
        outsider=outsider,
        outsider_account=outsider_account,
        prize=prize.id,
        crowdfund=crowdfund.id,
        retired=retired.id,
        goal=goal.id,
    )


@pytest.fixture()
def fund(db_session: AsyncSession):
    """Credit an account through the ledger: ``await fund(account_id, amount)``."""

    async def _credit(account_id: int, amount: int) -> None:
        await _fund(db_session, account_id, amount)

    return _credit


@pytest.fixture()
def auth_headers():
    """Identity header as set by the auth proxy: ``auth_headers(user_id)``."""

    def _headers(user_id: int) -> dict[str, str]:
        return {"x-user-id": str(user_id)}

    return _headers


@pytest.fixture()
async def file_sessions(tmp_path):
    """Session factory on a file-backed SQLite database.

    Each concurrent caller opens its own session, so writes really interleave.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
