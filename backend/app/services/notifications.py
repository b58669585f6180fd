"""Utilities for persisting and delivering validation notifications."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Iterable

from pywebpush import WebPushException, webpush
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import VAPID_PRIVATE_KEY, VAPID_PUBLIC_KEY, VAPID_SUBJECT
from ..models import Notification, PushSubscription
from ..time_utils import isoformat_utc


LOGGER = logging.getLogger(__name__)

NOTIFICATION_TYPES = {"create": "game_create", "edit": "game_edit"}


async def send_validation_notifications(
    session: AsyncSession,
    user_ids: Iterable[str],
    *,
    club_id: str,
    proposal_id: str,
    game_id: str,
    proposal_type: str,
) -> list[Notification]:
    """Tell each voter that a game result is waiting for their decision.

    Runs after the proposal has been committed; a failure here never undoes
    the proposal.
    """

    recipients = list(dict.fromkeys(uid for uid in user_ids if uid))
    if not recipients:
        return []

    title = "Game result to confirm" if proposal_type == "create" else "Game edit to confirm"
    deeplink = f"/clubs/{club_id}/games/{game_id}?proposal={proposal_id}"
    notifications: list[Notification] = []
    for user_id in recipients:
        notification = Notification(
            id=uuid.uuid4().hex,
            user_id=user_id,
            type=NOTIFICATION_TYPES.get(proposal_type, "game_create"),
            payload={
                "title": title,
                "body": "Please approve or reject the proposed result.",
                "deeplink": deeplink,
                "clubId": club_id,
                "proposalId": proposal_id,
                "gameId": game_id,
            },
        )
        session.add(notification)
        notifications.append(notification)

    await session.commit()
    for notification in notifications:
        await session.refresh(notification)

    if _push_available():
        for notification in notifications:
            subscriptions = await _list_push_subscriptions(session, notification.user_id)
            if subscriptions:
                await _dispatch_push_notifications(session, subscriptions, notification)

    return notifications


async def list_notifications(
    session: AsyncSession, user_id: str, *, limit: int = 50
) -> list[Notification]:
    rows = await session.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id)
        .limit(limit)
    )
    return list(rows.scalars())


async def register_push_subscription(
    session: AsyncSession,
    user_id: str,
    *,
    endpoint: str,
    p256dh: str,
    auth: str,
    content_encoding: str | None = None,
) -> PushSubscription:
    encoding = content_encoding or "aes128gcm"

    existing = (
        await session.execute(
            select(PushSubscription).where(PushSubscription.endpoint == endpoint)
        )
    ).scalar_one_or_none()

    if existing:
        existing.user_id = user_id
        existing.p256dh = p256dh
        existing.auth = auth
        existing.content_encoding = encoding
        await session.commit()
        await session.refresh(existing)
        return existing

    subscription = PushSubscription(
        id=uuid.uuid4().hex,
        user_id=user_id,
        endpoint=endpoint,
        p256dh=p256dh,
        auth=auth,
        content_encoding=encoding,
    )
    session.add(subscription)
    await session.commit()
    await session.refresh(subscription)
    return subscription


async def delete_push_subscriptions(session: AsyncSession, user_id: str) -> None:
    await session.execute(
        delete(PushSubscription).where(PushSubscription.user_id == user_id)
    )
    await session.commit()


async def _list_push_subscriptions(
    session: AsyncSession, user_id: str
) -> list[PushSubscription]:
    rows = await session.execute(
        select(PushSubscription).where(PushSubscription.user_id == user_id)
    )
    return list(rows.scalars())


async def _dispatch_push_notifications(
    session: AsyncSession,
    subscriptions: list[PushSubscription],
    notification: Notification,
) -> None:
    message = {
        "title": notification.payload.get("title"),
        "body": notification.payload.get("body"),
        "url": notification.payload.get("deeplink"),
        "notification": {
            "id": notification.id,
            "type": notification.type,
            "createdAt": isoformat_utc(notification.created_at),
            "payload": notification.payload,
        },
    }

    invalid_ids: list[str] = []
    for subscription in subscriptions:
        try:
            await _send_push(subscription, message)
        except _InvalidSubscriptionError:
            invalid_ids.append(subscription.id)

    if invalid_ids:
        await session.execute(
            delete(PushSubscription).where(PushSubscription.id.in_(invalid_ids))
        )
        await session.commit()


def _push_available() -> bool:
    return bool(VAPID_PRIVATE_KEY and VAPID_PUBLIC_KEY)


class _InvalidSubscriptionError(Exception):
    """Raised when a push subscription is gone for good."""


async def _send_push(subscription: PushSubscription, message: dict) -> None:
    subscription_info = {
        "endpoint": subscription.endpoint,
        "keys": {"p256dh": subscription.p256dh, "auth": subscription.auth},
    }
    try:
        await asyncio.to_thread(
            webpush,
            subscription_info=subscription_info,
            data=json.dumps(message),
            vapid_private_key=VAPID_PRIVATE_KEY,
            vapid_claims={"sub": VAPID_SUBJECT},
            content_encoding=subscription.content_encoding,
        )
    except WebPushException as exc:  # pragma: no cover - depends on external service
        status = getattr(getattr(exc, "response", None), "status_code", None)
        if status in {404, 410}:
            raise _InvalidSubscriptionError from exc
        LOGGER.warning("Web push delivery failed: %s", exc)
