"""Notification inbox and push subscription endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..exceptions import NotFound
from ..models import Notification
from ..schemas import (
    NotificationListOut,
    NotificationOut,
    PushSubscriptionCreate,
    PushSubscriptionOut,
)
from ..services.notifications import (
    delete_push_subscriptions,
    list_notifications as load_notifications,
    register_push_subscription,
)
from ..time_utils import coerce_utc
from .auth import get_current_user_id


router = APIRouter(
    prefix="/notifications",
    tags=["notifications"],
)


@router.post(
    "/subscriptions",
    response_model=PushSubscriptionOut,
    status_code=201,
)
async def create_push_subscription(
    body: PushSubscriptionCreate,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
):
    subscription = await register_push_subscription(
        session,
        user_id,
        endpoint=body.endpoint,
        p256dh=body.keys.p256dh,
        auth=body.keys.auth,
        content_encoding=body.content_encoding,
    )
    return PushSubscriptionOut(
        id=subscription.id,
        endpoint=subscription.endpoint,
        createdAt=coerce_utc(subscription.created_at),
    )


@router.delete("/subscriptions", status_code=204)
async def remove_push_subscriptions(
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
):
    await delete_push_subscriptions(session, user_id)
    return Response(status_code=204)


@router.get("", response_model=NotificationListOut)
async def list_notifications(
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
    limit: int = Query(default=50, ge=1, le=200),
):
    rows = await load_notifications(session, user_id, limit=limit)
    unread = await session.scalar(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.read_at.is_(None))
    )
    return NotificationListOut(
        items=[
            NotificationOut(
                id=n.id,
                type=n.type,
                payload=n.payload or {},
                createdAt=coerce_utc(n.created_at),
                readAt=coerce_utc(n.read_at),
            )
            for n in rows
        ],
        unreadCount=int(unread or 0),
    )


@router.post("/{notification_id}/read", status_code=204)
async def mark_notification_read(
    notification_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_current_user_id),
):
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    result = await session.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .values(read_at=func.coalesce(Notification.read_at, now))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await session.rollback()
        raise NotFound("Notification not found.")
    await session.commit()
    return Response(status_code=204)
