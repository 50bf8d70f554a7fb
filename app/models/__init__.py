"""ORM models package - exports all models and Base."""

from app.database import Base
from app.models.profile import Profile, Role
from app.models.classroom import Classroom
from app.models.account import Account, Currency
from app.models.transaction import Transaction, TransactionType
from app.models.prize import Prize
from app.models.prize_request import PrizeRequest, ReviewStatus
from app.models.goal import Goal
from app.models.goal_submission import GoalSubmission

__all__ = [
    "Base",
    "Profile",
    "Role",
    "Classroom",
    "Account",
    "Currency",
    "Transaction",
    "TransactionType",
    "Prize",
    "PrizeRequest",
    "ReviewStatus",
    "Goal",
    "GoalSubmission",
]
