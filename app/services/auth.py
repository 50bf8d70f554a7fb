"""Identity helpers - the core only needs "who is acting, and in which role"."""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.profile import Profile, Role


@dataclass(frozen=True)
class Actor:
    id: int
    role: Role

    @property
    def is_teacher(self) -> bool:
        return self.role == Role.TEACHER

    @property
    def is_student(self) -> bool:
        return self.role == Role.STUDENT

    @classmethod
    def from_profile(cls, profile: Profile) -> "Actor":
        return cls(id=profile.id, role=Role(profile.role))


async def get_profile(db: AsyncSession, profile_id: int) -> Profile | None:
    return await db.get(Profile, profile_id)


def parse_user_id(raw: str | None) -> int | None:
    """Parse the identity header value set by the auth proxy."""
    if raw is None:
        return None
    raw = raw.strip()
    if not raw.isdigit():
        return None
    return int(raw)
