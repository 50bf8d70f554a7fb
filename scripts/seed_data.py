"""Seed the database with a demo class (teacher, students, prizes, goals).

Usage: python scripts/seed_data.py
"""

import asyncio
import sys
from pathlib import Path

# Ensure project root is on sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import select

from app.config import settings
from app.database import init_db, async_session
from app.models import Account, Classroom, Goal, Prize, Profile, Role, TransactionType
from app.services import ledger
from app.services.accounts import create_account_for_student


SEED_TEACHER = {"email": "teacher@example.com", "name": "Ms. Rivera"}

SEED_CLASS = {"name": "Period 3 Astronomy", "subject": "astronomy"}

SEED_STUDENTS = [
    {"email": "ada@example.com", "name": "Ada", "opening_balance": 500},
    {"email": "ben@example.com", "name": "Ben", "opening_balance": 120},
    {"email": "cleo@example.com", "name": "Cleo", "opening_balance": 0},
]

SEED_PRIZES = [
    {"name": "Homework Pass", "cost": 200, "category": "privilege", "icon": "📝"},
    {"name": "Choose Seat", "cost": 50, "category": "privilege", "icon": "🪑"},
    {"name": "Class Telescope Night", "cost": 0, "category": "class", "icon": "🔭"},
]

SEED_GOALS = [
    {"title": "Read a chapter", "points": 10},
    {"title": "Help a classmate", "points": 15},
    {"title": "Observation log", "points": 25},
]


async def _get_or_create_profile(session, email: str, name: str, role: Role) -> Profile:
    result = await session.execute(select(Profile).where(Profile.email == email))
    profile = result.scalar_one_or_none()
    if profile:
        print(f"  Exists: {role.value} {email}")
        return profile
    profile = Profile(email=email, name=name, role=role.value)
    session.add(profile)
    await session.commit()
    print(f"  Inserted: {role.value} {email}")
    return profile


async def seed() -> None:
    # Ensure data directory exists
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)

    # Create tables
    await init_db()
    print("Database tables created.")

    async with async_session() as session:
        teacher = await _get_or_create_profile(
            session, SEED_TEACHER["email"], SEED_TEACHER["name"], Role.TEACHER
        )

        result = await session.execute(
            select(Classroom).where(
                Classroom.teacher_id == teacher.id,
                Classroom.name == SEED_CLASS["name"],
            )
        )
        classroom = result.scalar_one_or_none()
        if classroom is None:
            classroom = Classroom(teacher_id=teacher.id, **SEED_CLASS)
            session.add(classroom)
            await session.commit()
            print(f"  Inserted: class {classroom.name}")
        class_id = classroom.id

        for data in SEED_STUDENTS:
            student = await _get_or_create_profile(
                session, data["email"], data["name"], Role.STUDENT
            )
            student_id = student.id
            existing = await session.execute(
                select(Account.id).where(
                    Account.user_id == student_id, Account.class_id == class_id
                )
            )
            if existing.first() is not None:
                continue
            account = await create_account_for_student(session, student_id, class_id)
            # Opening balances go through the ledger like any other credit.
            if data["opening_balance"]:
                await ledger.record_transaction(
                    session,
                    account.id,
                    TransactionType.DEPOSIT,
                    data["opening_balance"],
                    reason="Opening balance",
                    created_by=teacher.id,
                )
            print(f"  Opened account for {data['email']} ({data['opening_balance']})")

        for data in SEED_PRIZES:
            result = await session.execute(
                select(Prize).where(Prize.name == data["name"], Prize.class_id == class_id)
            )
            if result.scalar_one_or_none() is None:
                session.add(Prize(class_id=class_id, teacher_id=teacher.id, **data))
                print(f"  Inserted: prize {data['name']}")

        for data in SEED_GOALS:
            result = await session.execute(
                select(Goal).where(Goal.title == data["title"], Goal.teacher_id == teacher.id)
            )
            if result.scalar_one_or_none() is None:
                session.add(Goal(teacher_id=teacher.id, **data))
                print(f"  Inserted: goal {data['title']}")

        await session.commit()

    print("Seed data complete.")


if __name__ == "__main__":
    asyncio.run(seed())
