import pytest
from sqlalchemy import select

from app import db
from app.models import Notification, PushSubscription
from app.services import notifications


@pytest.mark.anyio
async def test_subscription_endpoints(client, auth):
    payload = {
        "endpoint": "https://push.example.test/abc",
        "keys": {"p256dh": "key", "auth": "secret"},
    }
    resp = await client.post(
        "/api/v0/notifications/subscriptions", json=payload, headers=auth("bob")
    )
    assert resp.status_code == 201
    assert resp.json()["endpoint"] == payload["endpoint"]

    # Re-registering the same endpoint moves it to the new user.
    resp = await client.post(
        "/api/v0/notifications/subscriptions",
        json={**payload, "contentEncoding": "aesgcm"},
        headers=auth("carol"),
    )
    assert resp.status_code == 201

    async with db.AsyncSessionLocal() as session:
        rows = (await session.execute(select(PushSubscription))).scalars().all()
    assert [(r.user_id, r.content_encoding) for r in rows] == [("carol", "aesgcm")]

    resp = await client.delete(
        "/api/v0/notifications/subscriptions", headers=auth("carol")
    )
    assert resp.status_code == 204
    async with db.AsyncSessionLocal() as session:
        assert (await session.execute(select(PushSubscription))).scalars().all() == []


@pytest.mark.anyio
async def test_validation_notifications_are_pushed_and_dead_endpoints_pruned(monkeypatch):
    monkeypatch.setattr(notifications, "VAPID_PUBLIC_KEY", "public")
    monkeypatch.setattr(notifications, "VAPID_PRIVATE_KEY", "private")

    sent = []

    async def _fake_send(subscription, message):
        sent.append((subscription.endpoint, message))
        if subscription.endpoint.endswith("gone"):
            raise notifications._InvalidSubscriptionError()

    monkeypatch.setattr(notifications, "_send_push", _fake_send)

    async with db.AsyncSessionLocal() as session:
        await notifications.register_push_subscription(
            session, "bob", endpoint="https://push.example.test/live", p256dh="k", auth="a"
        )
        await notifications.register_push_subscription(
            session, "bob", endpoint="https://push.example.test/gone", p256dh="k", auth="a"
        )
        created = await notifications.send_validation_notifications(
            session,
            ["bob", "carol", "bob", ""],
            club_id="club-1",
            proposal_id="prop-1",
            game_id="game-1",
            proposal_type="edit",
        )

    assert sorted(n.user_id for n in created) == ["bob", "carol"]
    assert {n.type for n in created} == {"game_edit"}
    assert len(sent) == 2
    message = sent[0][1]
    assert message["url"] == "/clubs/club-1/games/game-1?proposal=prop-1"
    assert message["notification"]["payload"]["proposalId"] == "prop-1"

    async with db.AsyncSessionLocal() as session:
        endpoints = (await session.execute(select(PushSubscription.endpoint))).scalars().all()
        stored = (await session.execute(select(Notification))).scalars().all()
    assert endpoints == ["https://push.example.test/live"]
    assert len(stored) == 2


@pytest.mark.anyio
async def test_no_push_without_vapid_keys(monkeypatch):
    monkeypatch.setattr(notifications, "VAPID_PRIVATE_KEY", None)

    async def _fail(*args, **kwargs):
        raise AssertionError("push should not be attempted")

    monkeypatch.setattr(notifications, "_send_push", _fail)

    async with db.AsyncSessionLocal() as session:
        await notifications.register_push_subscription(
            session, "bob", endpoint="https://push.example.test/live", p256dh="k", auth="a"
        )
        created = await notifications.send_validation_notifications(
            session,
            ["bob"],
            club_id="club-1",
            proposal_id="prop-1",
            game_id="game-1",
            proposal_type="create",
        )
    assert [n.type for n in created] == ["game_create"]
