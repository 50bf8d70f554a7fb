"""Service layer - the ledger engine and the workflows built on it."""

from app.services.bulk_award import BulkAwardResult, award_bulk
from app.services.goal_submissions import (
    SubmissionItem,
    delete_submission,
    edit_submission,
    review_submission,
    submit_goals,
)
from app.services.ledger import record_transaction
from app.services.prize_requests import (
    approve_prize_request,
    deny_prize_request,
    request_prize,
)
from app.services.stats import get_dashboard_stats, get_student_stats

__all__ = [
    "BulkAwardResult",
    "SubmissionItem",
    "approve_prize_request",
    "award_bulk",
    "delete_submission",
    "deny_prize_request",
    "edit_submission",
    "get_dashboard_stats",
    "get_student_stats",
    "record_transaction",
    "request_prize",
    "review_submission",
    "submit_goals",
]
