import pytest

from app import db
from app.models import User

API = "/api/v0"
CLUB = "club-1"
PLAYERS = ["alice", "bob", "carol", "dave"]
SCORES = {"alice": 42300, "bob": 31200, "carol": 17800, "dave": 8700}


async def _seed_users(*user_ids: str) -> None:
    async with db.AsyncSessionLocal() as session:
        for uid in user_ids:
            session.add(User(id=uid, display_name=uid.title()))
        await session.commit()


async def _setup_club(client, auth) -> str:
    await _seed_users(*PLAYERS)
    resp = await client.post(
        f"{API}/clubs", json={"id": CLUB, "name": "Tuesday Riichi"}, headers=auth("alice")
    )
    assert resp.status_code == 201, resp.text
    for uid in PLAYERS[1:]:
        resp = await client.put(
            f"{API}/clubs/{CLUB}/members/{uid}",
            json={"role": "member"},
            headers=auth("alice"),
        )
        assert resp.status_code == 200, resp.text
        assert resp.json() == {"ok": True, "userId": uid, "role": "member"}

    resp = await client.post(
        f"{API}/clubs/{CLUB}/competitions",
        json={"name": "Spring League", "type": "championship"},
        headers=auth("alice"),
    )
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["status"] == "active"
    assert body["tournamentState"] == {"activeRoundNumber": None, "lastCompletedRound": 0}
    return body["id"]


@pytest.mark.anyio
async def test_game_flow_over_http(client, auth):
    competition_id = await _setup_club(client, auth)

    resp = await client.post(
        f"{API}/games",
        json={
            "clubId": CLUB,
            "participants": PLAYERS,
            "finalScores": SCORES,
            "competitionIds": [competition_id],
        },
        headers=auth("alice"),
    )
    assert resp.status_code == 201, resp.text
    submitted = resp.json()
    assert submitted["status"] == "pending_validation"
    assert submitted["resubmitted"] is False

    resp = await client.get(f"{API}/inbox", params={"status": "pending"}, headers=auth("bob"))
    assert resp.status_code == 200
    inbox = resp.json()
    assert [item["proposalId"] for item in inbox] == [submitted["proposalId"]]
    assert inbox[0]["type"] == "game_create"

    resp = await client.get(
        f"{API}/proposals/{submitted['proposalId']}", headers=auth("carol")
    )
    assert resp.status_code == 200
    proposal = resp.json()
    assert proposal["validation"]["pendingUserIds"] == PLAYERS
    assert proposal["computedPreview"]["ranks"]["alice"] == 1

    for uid in PLAYERS:
        resp = await client.post(
            f"{API}/proposals/{submitted['proposalId']}/approve", headers=auth(uid)
        )
        assert resp.status_code == 200, resp.text
    decision = resp.json()
    assert decision["proposalStatus"] == "accepted"
    assert decision["gameStatus"] == "validated"

    resp = await client.get(f"{API}/games/{submitted['gameId']}", headers=auth("dave"))
    assert resp.status_code == 200
    game = resp.json()
    assert game["status"] == "validated"
    assert game["activeVersion"]["versionNumber"] == 1
    assert game["activeVersion"]["id"] == decision["versionId"]

    resp = await client.get(
        f"{API}/games/{submitted['gameId']}/versions", headers=auth("dave")
    )
    assert [v["versionNumber"] for v in resp.json()] == [1]

    resp = await client.get(
        f"{API}/clubs/{CLUB}/competitions/{competition_id}/leaderboard",
        headers=auth("bob"),
    )
    assert resp.status_code == 200
    standings = resp.json()["standings"]
    assert [row["userId"] for row in standings] == PLAYERS
    assert [row["rank"] for row in standings] == [1, 2, 3, 4]
    assert standings[0]["totalPoints"] == pytest.approx(32.3)
    assert standings[0]["displayName"] == "Alice"
    assert {row["gamesPlayed"] for row in standings} == {1}

    resp = await client.get(f"{API}/clubs/{CLUB}/leaderboards/global", headers=auth("bob"))
    assert resp.json()["standings"] == []

    resp = await client.post(
        f"{API}/proposals/{submitted['proposalId']}/reject",
        json={"reason": "too late"},
        headers=auth("bob"),
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "failed_precondition"


@pytest.mark.anyio
async def test_reject_over_http_and_notification_inbox(client, auth):
    await _setup_club(client, auth)

    resp = await client.post(
        f"{API}/games",
        json={"clubId": CLUB, "participants": PLAYERS, "finalScores": SCORES},
        headers=auth("bob"),
    )
    submitted = resp.json()

    resp = await client.post(
        f"{API}/proposals/{submitted['proposalId']}/reject",
        json={"reason": "wrong scores"},
        headers=auth("dave"),
    )
    assert resp.status_code == 200
    assert resp.json() == {
        "proposalStatus": "rejected",
        "gameStatus": "disputed",
        "versionId": None,
    }

    resp = await client.get(
        f"{API}/proposals/{submitted['proposalId']}", headers=auth("alice")
    )
    assert resp.json()["rejectionReason"] == "wrong scores"
    assert resp.json()["validation"]["hasRejection"] is True

    resp = await client.get(f"{API}/notifications", headers=auth("carol"))
    assert resp.status_code == 200
    body = resp.json()
    assert body["unreadCount"] == 1
    (item,) = body["items"]
    assert item["type"] == "game_create"
    assert item["payload"]["proposalId"] == submitted["proposalId"]

    resp = await client.post(
        f"{API}/notifications/{item['id']}/read", headers=auth("carol")
    )
    assert resp.status_code == 204
    resp = await client.get(f"{API}/notifications", headers=auth("carol"))
    assert resp.json()["unreadCount"] == 0

    resp = await client.post(
        f"{API}/notifications/{item['id']}/read", headers=auth("dave")
    )
    assert resp.status_code == 404


@pytest.mark.anyio
async def test_club_rules_are_admin_managed(client, auth):
    await _setup_club(client, auth)

    resp = await client.get(f"{API}/clubs/{CLUB}/rules", headers=auth("bob"))
    assert resp.status_code == 200
    rules = resp.json()
    assert rules["uma"] == [20, 10, -10, -20]
    assert rules["scoreSum"] == 100000

    rules["uma"] = [15, 5, -5, -15]
    resp = await client.put(f"{API}/clubs/{CLUB}/rules", json=rules, headers=auth("bob"))
    assert resp.status_code == 403
    assert resp.headers["content-type"].startswith("application/problem+json")
    assert resp.json()["code"] == "permission_denied"
    assert resp.json()["instance"] == f"{API}/clubs/{CLUB}/rules"

    resp = await client.put(f"{API}/clubs/{CLUB}/rules", json=rules, headers=auth("alice"))
    assert resp.status_code == 200
    resp = await client.get(f"{API}/clubs/{CLUB}/rules", headers=auth("carol"))
    assert resp.json()["uma"] == [15, 5, -5, -15]


@pytest.mark.anyio
async def test_tournament_round_over_http(client, auth):
    players = [f"p{index}" for index in range(8)]
    await _seed_users("host", *players)
    resp = await client.post(
        f"{API}/clubs", json={"id": CLUB, "name": "Open Club"}, headers=auth("host")
    )
    assert resp.status_code == 201
    for uid in players:
        await client.put(
            f"{API}/clubs/{CLUB}/members/{uid}",
            json={"role": "member"},
            headers=auth("host"),
        )

    resp = await client.post(
        f"{API}/clubs/{CLUB}/competitions",
        json={
            "name": "Winter Cup",
            "type": "tournament",
            "tournamentConfig": {
                "participantUserIds": players,
                "totalRounds": 1,
                "pairingAlgorithm": "performance_swiss",
            },
        },
        headers=auth("host"),
    )
    assert resp.status_code == 201, resp.text
    competition_id = resp.json()["id"]
    rounds_url = f"{API}/clubs/{CLUB}/competitions/{competition_id}/rounds"

    resp = await client.post(rounds_url, headers=auth("host"))
    assert resp.status_code == 201, resp.text
    created = resp.json()
    assert created["roundNumber"] == 1
    assert len(created["tables"]) == 2

    resp = await client.post(rounds_url, headers=auth("host"))
    assert resp.status_code == 409

    resp = await client.get(rounds_url, headers=auth(players[0]))
    (listed,) = resp.json()
    assert listed["status"] == "active"
    assert set(listed["tables"]) == {"0", "1"}

    for table in created["tables"]:
        roster = table["playerIds"]
        resp = await client.post(
            f"{rounds_url}/{created['roundId']}/tables/{table['tableIndex']}/result",
            json={"finalScores": dict(zip(roster, (40000, 30000, 20000, 10000)))},
            headers=auth(roster[0]),
        )
        assert resp.status_code == 201, resp.text
        proposal_id = resp.json()["proposalId"]
        for uid in roster:
            resp = await client.post(
                f"{API}/proposals/{proposal_id}/approve", headers=auth(uid)
            )
            assert resp.status_code == 200

    resp = await client.get(
        f"{API}/clubs/{CLUB}/competitions/{competition_id}", headers=auth("host")
    )
    competition = resp.json()
    assert competition["status"] == "archived"
    assert competition["tournamentState"]["lastCompletedRound"] == 1


@pytest.mark.anyio
async def test_requests_need_identity(client, auth):
    resp = await client.get(f"{API}/games/some-game")
    assert resp.status_code == 401
    assert resp.json()["code"] == "unauthenticated"

    resp = await client.get(
        f"{API}/games/some-game", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert resp.status_code == 401

    resp = await client.get(f"{API}/inbox", headers=auth("nobody"))
    assert resp.status_code == 200
    assert resp.json() == []


@pytest.mark.anyio
async def test_malformed_payloads_are_invalid_arguments(client, auth):
    await _setup_club(client, auth)

    resp = await client.post(
        f"{API}/games",
        json={
            "clubId": CLUB,
            "participants": PLAYERS,
            "finalScores": SCORES,
            "unexpected": True,
        },
        headers=auth("alice"),
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_argument"

    resp = await client.post(
        f"{API}/games",
        json={"clubId": CLUB, "participants": PLAYERS[:3], "finalScores": SCORES},
        headers=auth("alice"),
    )
    assert resp.status_code == 400

    resp = await client.post(
        f"{API}/games",
        json={
            "clubId": CLUB,
            "participants": PLAYERS,
            "finalScores": {**SCORES, "dave": 9000},
        },
        headers=auth("alice"),
    )
    assert resp.status_code == 400
    assert "sum" in resp.json()["detail"]

    resp = await client.post(
        f"{API}/clubs", json={"id": CLUB, "name": "Duplicate"}, headers=auth("bob")
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "already_exists"


@pytest.mark.anyio
async def test_health_endpoints(client):
    assert (await client.get("/healthz")).json() == {"status": "ok"}
    assert (await client.get("/api/healthz")).json() == {"status": "ok", "database": "ok"}
    assert (await client.get("/api")).status_code == 200
