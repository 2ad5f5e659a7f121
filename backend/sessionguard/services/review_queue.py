"""Administrative review of flagged activity.

Recording a disposition is the only state change a flag ever causes. A
"suspended" disposition is a record of the administrator's decision; the
account itself is handled outside this service.
"""
from datetime import datetime
from enum import Enum
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from sessionguard.database import store_transaction
from sessionguard.errors import ReviewError
from sessionguard.models.security import SuspiciousActivity

logger = logging.getLogger(__name__)


class ReviewDisposition(str, Enum):
    DISMISSED = "dismissed"
    WARNING_ISSUED = "warning_issued"
    SUSPENDED = "suspended"

    @property
    def action_label(self) -> str:
        return ACTION_LABELS[self]


ACTION_LABELS = {
    ReviewDisposition.DISMISSED: "Dismissed - False Positive",
    ReviewDisposition.WARNING_ISSUED: "Warning Sent",
    ReviewDisposition.SUSPENDED: "Account Suspended",
}


def get_flagged_activities(
    db: Session,
    limit: int = 50,
    include_reviewed: bool = False,
) -> list[SuspiciousActivity]:
    """Get flagged activities, newest first."""
    with store_transaction(db, "List flagged activities"):
        query = db.query(SuspiciousActivity)
        if not include_reviewed:
            query = query.filter(SuspiciousActivity.reviewed == 0)
        return query.order_by(SuspiciousActivity.created_at.desc()).limit(limit).all()


def review_activity(
    db: Session,
    activity_id: str,
    reviewed_by: str,
    disposition: ReviewDisposition,
) -> SuspiciousActivity:
    """Record an administrator's disposition on a flagged activity.
    
    Raises:
        ReviewError: the activity does not exist or was already reviewed.
    """
    with store_transaction(db, f"Review activity {activity_id}"):
        activity = db.query(SuspiciousActivity).filter(
            SuspiciousActivity.id == activity_id,
        ).first()
        if activity is None:
            raise ReviewError("Flagged activity not found", not_found=True)
        if activity.reviewed:
            raise ReviewError("Flagged activity already reviewed")

        activity.reviewed = 1
        activity.reviewed_by = reviewed_by
        activity.reviewed_at = datetime.utcnow().isoformat()
        activity.action_taken = disposition.action_label

    logger.info(f"Activity {activity_id} reviewed by {reviewed_by}: {disposition.action_label}")
    return activity


def get_review_summary(db: Session) -> dict:
    """Count pending reviews per severity."""
    with store_transaction(db, "Summarize pending reviews"):
        rows = db.query(
            SuspiciousActivity.severity,
            func.count(SuspiciousActivity.id),
        ).filter(
            SuspiciousActivity.reviewed == 0,
        ).group_by(SuspiciousActivity.severity).all()

    summary = {"high": 0, "medium": 0, "low": 0}
    for severity, count in rows:
        summary[severity] = count
    summary["total"] = sum(summary.values())
    return summary
