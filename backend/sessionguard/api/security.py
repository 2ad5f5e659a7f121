"""Administrative security endpoints: anomaly review and session oversight."""
import json

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from sessionguard.api.deps import Identity, get_db, require_admin
from sessionguard.api.sessions import to_session_response
from sessionguard.models.security import SuspiciousActivity
from sessionguard.schemas.security import (
    ReviewRequest,
    ReviewSummaryResponse,
    SuspiciousActivityResponse,
)
from sessionguard.schemas.session import SessionResponse, TerminateResponse
from sessionguard.services.review_queue import (
    get_flagged_activities,
    get_review_summary,
    review_activity,
)
from sessionguard.services.session_manager import (
    force_terminate_all_sessions,
    get_active_sessions,
    terminate_session,
)

router = APIRouter(prefix="/admin", tags=["admin"])


def to_activity_response(activity: SuspiciousActivity) -> SuspiciousActivityResponse:
    return SuspiciousActivityResponse(
        id=activity.id,
        user_id=activity.user_id,
        activity_type=activity.activity_type,
        severity=activity.severity,
        details=json.loads(activity.details or "{}"),
        session_id=activity.session_id,
        reviewed=bool(activity.reviewed),
        reviewed_by=activity.reviewed_by,
        reviewed_at=activity.reviewed_at,
        action_taken=activity.action_taken,
        created_at=activity.created_at,
    )


@router.get("/security/activities", response_model=list[SuspiciousActivityResponse])
def list_flagged_activities(
    include_reviewed: bool = False,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    """Get flagged activities for review."""
    activities = get_flagged_activities(db, limit=limit, include_reviewed=include_reviewed)
    return [to_activity_response(a) for a in activities]


@router.get("/security/summary", response_model=ReviewSummaryResponse)
def review_summary(
    db: Session = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    """Get pending review counts by severity."""
    return ReviewSummaryResponse(**get_review_summary(db))


@router.post("/security/activities/{activity_id}/review", response_model=SuspiciousActivityResponse)
def review_flagged_activity(
    activity_id: str,
    review: ReviewRequest,
    db: Session = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    """Record a disposition. No automatic action follows from it."""
    activity = review_activity(db, activity_id, admin.user_id, review.disposition)
    return to_activity_response(activity)


@router.get("/users/{user_id}/sessions", response_model=list[SessionResponse])
def list_user_sessions(
    user_id: str,
    db: Session = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    """Get every session row of a user."""
    return [to_session_response(item.session) for item in get_active_sessions(db, user_id)]


@router.delete("/sessions/{session_id}", response_model=TerminateResponse)
def terminate_any_session(
    session_id: str,
    db: Session = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    """Terminate any user's session."""
    if not terminate_session(db, session_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )
    return TerminateResponse(success=True, terminated=1)


@router.post("/users/{user_id}/sessions/terminate-all", response_model=TerminateResponse)
def terminate_user_sessions(
    user_id: str,
    db: Session = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    """Sign a user out of every device."""
    terminated = force_terminate_all_sessions(db, user_id)
    return TerminateResponse(success=True, terminated=terminated)
