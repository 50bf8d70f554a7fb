"""Profile ORM model."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Integer, String, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[str] = mapped_column(String, nullable=False, default=Role.STUDENT.value)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc)
    )

    # Relationships
    accounts: Mapped[list["Account"]] = relationship("Account", back_populates="user")
    classes: Mapped[list["Classroom"]] = relationship(
        "Classroom", back_populates="teacher"
    )
