"""
Session Router - endpoints for managing the user's login sessions.
"""
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from config import settings
from deps import get_db
from Alert_module.Alert_preference_crud import update_alert_preferences
from Alert_module.Alert_schema import alert_to_item
from Login_module.Utils.auth_user import get_current_session_id, get_current_user
from Login_module.User.user_model import User
from . import session_service
from .Session_crud import get_security_stats, list_active_sessions
from .Session_schema import (
    ActiveSessionsResponse,
    LogoutResponse,
    RefreshTokenRequest,
    ReportSuspiciousRequest,
    ReportSuspiciousResponse,
    RevokeAllResponse,
    RevokeSessionResponse,
    SecurityExportResponse,
    SecurityOverviewResponse,
    SecuritySettingsRequest,
    SecuritySettingsResponse,
    SecurityStatsResponse,
    SessionDetailsResponse,
    TokenResponse,
)

router = APIRouter(prefix="/sessions", tags=["Sessions"])


def _correlation_id(request: Request) -> str:
    return request.headers.get("X-Correlation-ID") or str(uuid.uuid4())


@router.get("/active", response_model=ActiveSessionsResponse)
def get_active_sessions(
    current_user: User = Depends(get_current_user),
    current_session_id: Optional[str] = Depends(get_current_session_id),
    db: Session = Depends(get_db)
):
    """
    Active sessions of the current user, most recent activity first.
    """
    sessions = list_active_sessions(db, current_user.id)
    data = [session_service.session_to_data(s, current_session_id) for s in sessions]
    return ActiveSessionsResponse(
        message=f"Found {len(data)} active session(s).",
        active_sessions_count=len(data),
        sessions=data,
    )


@router.get("/security-overview", response_model=SecurityOverviewResponse)
def get_security_overview(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return SecurityOverviewResponse(
        data=session_service.security_overview(db, current_user.id, config=settings.session_config())
    )


@router.get("/security-stats", response_model=SecurityStatsResponse)
def get_session_security_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    stats = get_security_stats(db, current_user.id)
    stats["last_login_at"] = stats["last_login_at"].isoformat() if stats["last_login_at"] else None
    return SecurityStatsResponse(data=stats)


@router.get("/security-export", response_model=SecurityExportResponse)
def export_security_data(
    current_user: User = Depends(get_current_user),
    current_session_id: Optional[str] = Depends(get_current_session_id),
    db: Session = Depends(get_db)
):
    """
    Download of the user's sessions, alerts and session audit trail.
    Refresh-token families are never included.
    """
    return SecurityExportResponse(
        data=session_service.export_security_data(db, current_user.id, current_session_id)
    )


@router.post("/revoke-all", response_model=RevokeAllResponse)
def revoke_all_sessions(
    request: Request,
    current_user: User = Depends(get_current_user),
    current_session_id: Optional[str] = Depends(get_current_session_id),
    db: Session = Depends(get_db)
):
    """
    Sign out every other session. The current session stays active.
    """
    count = session_service.revoke_all_except_current(
        db, current_user.id, current_session_id,
        correlation_id=_correlation_id(request),
    )
    return RevokeAllResponse(
        message=f"Revoked {count} other session(s).",
        revoked_count=count,
    )


@router.post("/logout", response_model=LogoutResponse)
def logout(
    request: Request,
    current_user: User = Depends(get_current_user),
    current_session_id: Optional[str] = Depends(get_current_session_id),
    db: Session = Depends(get_db)
):
    session_service.logout_current(
        db, current_user.id, current_session_id,
        correlation_id=_correlation_id(request),
    )
    return LogoutResponse(session_id=current_session_id)


@router.post("/refresh", response_model=TokenResponse)
def refresh_tokens(
    payload: RefreshTokenRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Rotate the token pair. The session row is updated, not replaced.
    """
    tokens = session_service.refresh_session(
        db, payload.refresh_token,
        config=settings.session_config(),
        correlation_id=_correlation_id(request),
    )
    return TokenResponse(**tokens)


@router.post("/report-suspicious", response_model=ReportSuspiciousResponse)
def report_suspicious(
    payload: ReportSuspiciousRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    current_session_id: Optional[str] = Depends(get_current_session_id),
    db: Session = Depends(get_db)
):
    alert, revoked = session_service.report_suspicious_activity(
        db,
        user_id=current_user.id,
        session_id=payload.session_id,
        reason=payload.reason,
        description=payload.description,
        revoke=payload.revoke_session,
        current_session_id=current_session_id,
        correlation_id=_correlation_id(request),
    )
    return ReportSuspiciousResponse(
        message="Suspicious activity reported. Our security team has been notified.",
        alert_id=alert.id,
        session_revoked=revoked,
    )


@router.patch("/security-settings", response_model=SecuritySettingsResponse)
def update_security_settings(
    payload: SecuritySettingsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Toggle which login checks raise alerts and which channels notify.
    Only the fields present in the body change.
    """
    prefs = update_alert_preferences(db, current_user.id, payload.to_changes())
    return SecuritySettingsResponse(data={"settings": prefs.model_dump()})


@router.get("/{session_id}", response_model=SessionDetailsResponse)
def get_session_details(
    session_id: str,
    current_user: User = Depends(get_current_user),
    current_session_id: Optional[str] = Depends(get_current_session_id),
    db: Session = Depends(get_db)
):
    ls, alerts = session_service.get_session_details(db, current_user.id, session_id)
    return SessionDetailsResponse(
        message="Session details retrieved successfully.",
        session=session_service.session_to_data(ls, current_session_id),
        alerts=[alert_to_item(a).model_dump() for a in alerts],
    )


@router.delete("/{session_id}", response_model=RevokeSessionResponse)
def revoke_session(
    session_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    current_session_id: Optional[str] = Depends(get_current_session_id),
    db: Session = Depends(get_db)
):
    """
    Revoke one of the user's other sessions. Use /logout for the current one.
    """
    ls, revoked = session_service.revoke_single(
        db, current_user.id, session_id, current_session_id,
        correlation_id=_correlation_id(request),
    )
    return RevokeSessionResponse(
        message="Session revoked successfully." if revoked else "Session was already inactive.",
        session_id=ls.id,
        revoked=revoked,
    )
