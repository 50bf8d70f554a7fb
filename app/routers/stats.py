"""Dashboard statistics API routes."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.services.auth import Actor
from app.services.classrooms import require_class_owner
from app.services.stats import (
    get_class_stats,
    get_dashboard_stats,
    get_student_stats,
    get_teacher_overview,
)

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("")
async def get_stats(
    type: str = "dashboard",
    class_id: int | None = None,
    user: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Return ``dashboard``, ``student``, ``class`` or ``overview`` statistics."""
    if type == "student":
        if not user.is_student:
            raise HTTPException(status_code=403, detail="Student access required")
        return (await get_student_stats(db, user.id, class_id)).to_dict()

    if not user.is_teacher:
        raise HTTPException(status_code=403, detail="Teacher access required")
    if type == "dashboard":
        return (await get_dashboard_stats(db, user.id, class_id)).to_dict()
    if type == "class":
        if class_id is None:
            raise HTTPException(status_code=400, detail="class_id is required")
        await require_class_owner(db, class_id, user.id)
        return (await get_class_stats(db, class_id)).to_dict()
    if type == "overview":
        return (await get_teacher_overview(db, user.id)).to_dict()
    raise HTTPException(status_code=400, detail=f"Unknown stats type: {type}")
