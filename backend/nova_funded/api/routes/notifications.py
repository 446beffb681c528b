"""
/notifications — центр уведомлений и realtime-поток (SSE).
"""
import asyncio
import json
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from loguru import logger
from pydantic import BaseModel
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from nova_funded.api.dependencies import get_current_user, get_notification_feed, rate_limit_standard
from nova_funded.core.database import get_db
from nova_funded.models.notification import Notification
from nova_funded.models.user import User
from nova_funded.schemas.common import APIResponse
from nova_funded.services.notification_service import NotificationFeed

router = APIRouter(prefix="/notifications", tags=["notifications"])

KEEPALIVE_SECONDS = 15


class NotificationOut(BaseModel):
    id: int
    type: str
    title: str
    body: str
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListOut(BaseModel):
    items: list[NotificationOut]
    unread: int


@router.get("", response_model=APIResponse[NotificationListOut])
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
    _: None = Depends(rate_limit_standard),
) -> APIResponse[NotificationListOut]:
    stmt = select(Notification).where(Notification.user_id == user.id)
    if unread_only:
        stmt = stmt.where(Notification.is_read == False)
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    items = (await session.execute(stmt)).scalars().all()

    unread = (await session.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user.id,
            Notification.is_read == False,
        )
    )).scalar() or 0

    return APIResponse(data=NotificationListOut(
        items=[NotificationOut.model_validate(n) for n in items],
        unread=unread,
    ))


@router.post("/read-all", response_model=APIResponse[dict])
async def mark_all_read(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
    _: None = Depends(rate_limit_standard),
) -> APIResponse[dict]:
    result = await session.execute(
        update(Notification)
        .where(Notification.user_id == user.id, Notification.is_read == False)
        .values(is_read=True)
    )
    await session.commit()
    return APIResponse(data={"updated": result.rowcount})


@router.post("/{notification_id}/read", response_model=APIResponse[NotificationOut])
async def mark_read(
    notification_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
    _: None = Depends(rate_limit_standard),
) -> APIResponse[NotificationOut]:
    notif = await session.get(Notification, notification_id)
    if notif is None or notif.user_id != user.id:
        raise HTTPException(status_code=404, detail="Notification not found")
    notif.is_read = True
    await session.commit()
    return APIResponse(data=NotificationOut.model_validate(notif))


@router.get("/stream")
async def stream_notifications(
    request: Request,
    user: User = Depends(get_current_user),
    feed: NotificationFeed = Depends(get_notification_feed),
) -> StreamingResponse:
    """Server-Sent Events: новые уведомления пользователя по мере их появления."""
    queue: asyncio.Queue = asyncio.Queue()
    subscription = await feed.subscribe(user.id, queue.put_nowait)
    logger.debug(f"Notification stream opened for user {user.id}")

    async def event_generator():
        try:
            while not await request.is_disconnected():
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield f"data: {json.dumps(event, default=str)}\n\n"
        finally:
            await subscription.unsubscribe()
            logger.debug(f"Notification stream closed for user {user.id}")

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
