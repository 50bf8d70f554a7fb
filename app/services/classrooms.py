"""Class ownership checks used by every teacher-facing workflow."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ForbiddenError
from app.models.classroom import Classroom


async def require_class_owner(
    db: AsyncSession, class_id: int | None, teacher_id: int
) -> Classroom:
    """Return the class if ``teacher_id`` owns it, else raise ForbiddenError."""
    classroom = await db.get(Classroom, class_id) if class_id is not None else None
    if classroom is None or classroom.teacher_id != teacher_id:
        raise ForbiddenError("You do not own this class")
    return classroom


async def list_class_ids_for_teacher(db: AsyncSession, teacher_id: int) -> list[int]:
    result = await db.execute(
        select(Classroom.id).where(Classroom.teacher_id == teacher_id)
    )
    return list(result.scalars().all())
