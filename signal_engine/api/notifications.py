"""Notifications API endpoints for viewing issued notifications and their deliveries."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from signal_engine.db.database import get_session
from signal_engine.db.repositories.notification_repo import NotificationRepository
from signal_engine.schemas.notification import NotificationListResponse, NotificationResponse

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    signal_id: str | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> NotificationListResponse:
    """List notifications, newest first.

    Args:
        signal_id: Only notifications of this signal
        offset: Number of records to skip (default 0)
        limit: Maximum number of records to return (default 50, max 100)
        db: Database session

    Returns:
        Paginated list of notifications with nested deliveries and total count
    """
    rows, total = await NotificationRepository(db).list_page(
        signal_id=signal_id, offset=offset, limit=limit
    )
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(row) for row in rows],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.get("/{notification_id}", response_model=NotificationResponse)
async def get_notification(
    notification_id: str,
    db: AsyncSession = Depends(get_session),
) -> NotificationResponse:
    """Get a notification with its per-contact-point delivery status.

    Raises:
        HTTPException: 404 if the notification does not exist
    """
    notification = await NotificationRepository(db).get(notification_id)
    if notification is None:
        raise HTTPException(status_code=404, detail=f"Notification {notification_id} not found")
    return NotificationResponse.model_validate(notification)
