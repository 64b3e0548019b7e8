"""
Security Alert Router - the user's security alert inbox.
"""
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from config import settings
from deps import get_db
from Login_module.Utils.auth_user import get_current_session_id, get_current_user
from Login_module.User.user_model import User
from . import Alert_crud
from .Alert_schema import (
    AlertActionRequest,
    AlertListResponse,
    AlertResponse,
    AlertSeverity,
    AlertStatsData,
    AlertStatsResponse,
    AlertStatus,
    AlertSummary,
    AlertType,
    BulkActionResponse,
    MarkAllReadRequest,
    Pagination,
    TestAlertRequest,
    alert_to_item,
)

router = APIRouter(prefix="/security/alerts", tags=["Security Alerts"])


@router.get("", response_model=AlertListResponse)
def list_alerts(
    severity: Optional[AlertSeverity] = Query(None),
    status_filter: Optional[AlertStatus] = Query(None, alias="status"),
    type: Optional[AlertType] = Query(None),
    unread_only: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    result = Alert_crud.list_alerts_for_user(
        db,
        current_user.id,
        severity=severity.value if severity else None,
        status=status_filter.value if status_filter else None,
        alert_type=type.value if type else None,
        unread_only=unread_only,
        page=page,
        limit=limit,
        config=settings.alert_config(),
    )
    return AlertListResponse(
        data=[alert_to_item(a) for a in result["alerts"]],
        pagination=Pagination(
            page=result["page"],
            limit=result["limit"],
            total=result["total"],
            pages=result["pages"],
        ),
        summary=AlertSummary(unread_count=result["unread_count"], total_count=result["total"]),
    )


@router.get("/stats", response_model=AlertStatsResponse)
def alert_stats(
    days: int = Query(30, ge=1, le=365),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    stats = Alert_crud.get_alert_stats(db, current_user.id, window_days=days, config=settings.alert_config())
    return AlertStatsResponse(data=AlertStatsData(**stats))


@router.patch("/mark-all-read", response_model=BulkActionResponse)
def mark_all_alerts_read(
    payload: Optional[MarkAllReadRequest] = Body(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    alert_ids = payload.alert_ids if payload else None
    count = Alert_crud.mark_all_read(db, current_user.id, alert_ids)
    return BulkActionResponse(message=f"Marked {count} alert(s) as read.", count=count)


@router.delete("", response_model=BulkActionResponse)
def clear_all_alerts(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    count = Alert_crud.clear_alerts(db, current_user.id)
    return BulkActionResponse(message=f"Cleared {count} alert(s).", count=count)


@router.post("/test", response_model=AlertResponse, status_code=status.HTTP_201_CREATED)
def create_test_alert(
    payload: Optional[TestAlertRequest] = Body(None),
    current_user: User = Depends(get_current_user),
    current_session_id: Optional[str] = Depends(get_current_session_id),
    db: Session = Depends(get_db)
):
    """
    Raise a labelled test alert through the normal fan-out.
    Not available in production.
    """
    if settings.ENVIRONMENT == "production":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Test alerts are not allowed in production"
        )
    payload = payload or TestAlertRequest()
    alert = Alert_crud.raise_test_alert(
        db,
        user_id=current_user.id,
        alert_type=payload.type.value,
        severity=payload.severity.value,
        session_id=current_session_id,
    )
    return AlertResponse(message="Test alert created.", data=alert_to_item(alert))


@router.get("/{alert_id}", response_model=AlertResponse)
def get_alert(
    alert_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    alert = Alert_crud.get_alert(db, alert_id, current_user.id)
    return AlertResponse(message="Security alert retrieved successfully.", data=alert_to_item(alert))


@router.patch("/{alert_id}/read", response_model=AlertResponse)
def mark_alert_read(
    alert_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    alert = Alert_crud.mark_alert_read(db, alert_id, current_user.id)
    return AlertResponse(message="Alert marked as read.", data=alert_to_item(alert))


@router.patch("/{alert_id}/dismiss", response_model=AlertResponse)
def dismiss_alert(
    alert_id: int,
    payload: Optional[AlertActionRequest] = Body(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    notes = payload.notes if payload else None
    alert = Alert_crud.dismiss_alert(db, alert_id, current_user.id, notes)
    return AlertResponse(message="Alert dismissed.", data=alert_to_item(alert))


@router.patch("/{alert_id}/resolve", response_model=AlertResponse)
def resolve_alert(
    alert_id: int,
    payload: Optional[AlertActionRequest] = Body(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    notes = payload.notes if payload else None
    alert = Alert_crud.resolve_alert(db, alert_id, current_user.id, notes)
    return AlertResponse(message="Alert resolved.", data=alert_to_item(alert))
