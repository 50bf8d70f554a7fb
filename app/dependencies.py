"""FastAPI dependencies for route handlers."""

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.models.profile import Role
from app.services.auth import Actor, get_profile, parse_user_id


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> Actor:
    """Require an authenticated and registered user. Returns the acting identity."""
    user_id = parse_user_id(request.headers.get(settings.AUTH_USER_HEADER))
    if user_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    profile = await get_profile(db, user_id)
    if profile is None:
        raise HTTPException(status_code=403, detail="Not registered")
    return Actor.from_profile(profile)


async def require_teacher(user: Actor = Depends(get_current_user)) -> Actor:
    """Require teacher role."""
    if user.role != Role.TEACHER:
        raise HTTPException(status_code=403, detail="Teacher access required")
    return user


async def require_student(user: Actor = Depends(get_current_user)) -> Actor:
    """Require student role."""
    if user.role != Role.STUDENT:
        raise HTTPException(status_code=403, detail="Student access required")
    return user
