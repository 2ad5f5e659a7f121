"""Anomaly review schemas."""
from pydantic import BaseModel

from sessionguard.services.review_queue import ReviewDisposition


class SuspiciousActivityResponse(BaseModel):
    """Flagged activity awaiting or past review."""
    
    id: str
    user_id: str
    activity_type: str
    severity: str
    details: dict
    session_id: str | None = None
    reviewed: bool
    reviewed_by: str | None = None
    reviewed_at: str | None = None
    action_taken: str | None = None
    created_at: str


class ReviewRequest(BaseModel):
    """Administrator's disposition for a flagged activity."""
    
    disposition: ReviewDisposition


class ReviewSummaryResponse(BaseModel):
    """Pending reviews by severity."""
    
    high: int
    medium: int
    low: int
    total: int
