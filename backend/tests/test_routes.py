import io
import uuid
from datetime import date

import httpx
import pytest
from httpx import AsyncClient
from PIL import Image

from runpool.jobs.refresh_leaderboard import refresh_leaderboard
from runpool.main import app
from fakes import auth

MONDAY = date(2025, 3, 3)


def _png() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), (200, 40, 40)).save(buf, format="PNG")
    return buf.getvalue()


def _group_with_open_challenge(store):
    owner = uuid.uuid4()
    g = store.seed_group(owner_id=owner)
    ch = store.seed_challenge(g.id, MONDAY, status="OPEN", pot="20")
    return owner, g, ch


def test_create_group_makes_caller_owner(client, store):
    me = uuid.uuid4()
    r = client.post("/groups", json={"name": "Lunch Loop"}, headers=auth(me))
    assert r.status_code == 201
    body = r.json()
    assert body["your_role"] == "owner"
    assert len(body["invite_code"]) == 8
    assert store.memberships[(uuid.UUID(body["id"]), me)].role == "owner"


def test_missing_or_bad_token_is_rejected(client):
    assert client.post("/groups", json={"name": "Lunch Loop"}).status_code in (401, 403)
    r = client.post("/groups", json={"name": "Lunch Loop"}, headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401


def test_join_by_code_is_idempotent(client, store):
    g = store.seed_group(code="RUNFAST1")
    me = uuid.uuid4()
    first = client.post("/groups/join/runfast1", headers=auth(me))
    assert first.status_code == 201
    assert first.json()["your_role"] == "member"
    again = client.post("/groups/join/RUNFAST1", headers=auth(me))
    assert again.status_code == 200
    assert (g.id, me) in store.memberships


def test_join_unknown_code_is_structured_404(client):
    r = client.post("/groups/join/NOPE0000", headers=auth(uuid.uuid4()))
    assert r.status_code == 404
    assert r.json() == {"status": "error", "error": "Group not found"}


def test_members_and_role_changes(client, store):
    owner = uuid.uuid4()
    g = store.seed_group(owner_id=owner)
    member = store.seed_member(g.id)
    store.seed_profile(member, "Jo")

    members = client.get(f"/groups/{g.id}/members", headers=auth(owner)).json()
    assert {m["name"] for m in members} == {"Jo", f"User {str(owner)[:8]}"}

    r = client.patch(f"/groups/{g.id}/members/{member}", json={"role": "admin"}, headers=auth(member))
    assert r.status_code == 403
    r = client.patch(f"/groups/{g.id}/members/{member}", json={"role": "admin"}, headers=auth(owner))
    assert r.status_code == 200
    assert r.json()["role"] == "admin"
    r = client.patch(f"/groups/{g.id}/members/{owner}", json={"role": "member"}, headers=auth(owner))
    assert r.status_code == 400


def test_non_member_cannot_see_group(client, store):
    g = store.seed_group()
    assert client.get(f"/groups/{g.id}", headers=auth(uuid.uuid4())).status_code == 403


def test_one_open_challenge_per_group(client, store):
    owner = uuid.uuid4()
    g = store.seed_group(owner_id=owner)
    payload = {"week_start": "2025-03-03", "week_end": "2025-03-09", "pot": "15.00"}

    r = client.post(f"/groups/{g.id}/challenges", json=payload, headers=auth(owner))
    assert r.status_code == 201
    assert r.json()["status"] == "OPEN"
    assert r.json()["pot"] == 15.0
    assert client.post(f"/groups/{g.id}/challenges", json=payload, headers=auth(owner)).status_code == 409


def test_challenge_dates_must_be_ordered(client, store):
    owner = uuid.uuid4()
    g = store.seed_group(owner_id=owner)
    r = client.post(
        f"/groups/{g.id}/challenges",
        json={"week_start": "2025-03-09", "week_end": "2025-03-03"},
        headers=auth(owner),
    )
    assert r.status_code == 422


def test_members_cannot_create_or_close_challenges(client, store):
    owner, g, ch = _group_with_open_challenge(store)
    member = store.seed_member(g.id)
    r = client.post(
        f"/groups/{g.id}/challenges",
        json={"week_start": "2025-03-10", "week_end": "2025-03-16"},
        headers=auth(member),
    )
    assert r.status_code == 403
    assert client.post(f"/challenges/{ch.id}/close", headers=auth(member)).status_code == 403


def test_close_is_idempotent(client, store):
    owner, g, ch = _group_with_open_challenge(store)
    for _ in range(2):
        r = client.post(f"/challenges/{ch.id}/close", headers=auth(owner))
        assert r.status_code == 200
        assert r.json()["status"] == "CLOSED"


def test_submit_proof_queues_refresh(client, store, queue):
    owner, g, ch = _group_with_open_challenge(store)
    r = client.post(f"/challenges/{ch.id}/proofs", data={"miles": "3.25"}, headers=auth(owner))
    assert r.status_code == 201
    body = r.json()
    assert body["miles"] == 3.25
    assert body["image_url"] is None
    assert queue.jobs == [(refresh_leaderboard, (str(ch.id),), {})]
    assert store.commits == 1


def test_walking_miles_are_halved(client, store):
    owner, g, ch = _group_with_open_challenge(store)
    r = client.post(f"/challenges/{ch.id}/proofs", data={"miles": "5", "activity": "walk"}, headers=auth(owner))
    assert r.status_code == 201
    assert r.json()["miles"] == 2.5
    assert r.json()["activity"] == "walk"


def test_negative_miles_rejected(client, store):
    owner, g, ch = _group_with_open_challenge(store)
    r = client.post(f"/challenges/{ch.id}/proofs", data={"miles": "-1"}, headers=auth(owner))
    assert r.status_code == 422


def test_closed_challenge_rejects_proofs(client, store):
    owner = uuid.uuid4()
    g = store.seed_group(owner_id=owner)
    ch = store.seed_challenge(g.id, MONDAY, status="CLOSED")
    r = client.post(f"/challenges/{ch.id}/proofs", data={"miles": "2"}, headers=auth(owner))
    assert r.status_code == 409


def test_non_member_cannot_submit(client, store):
    _, _, ch = _group_with_open_challenge(store)
    r = client.post(f"/challenges/{ch.id}/proofs", data={"miles": "2"}, headers=auth(uuid.uuid4()))
    assert r.status_code == 403


def test_unknown_challenge_is_404(client):
    r = client.get(f"/challenges/{uuid.uuid4()}/leaderboard", headers=auth(uuid.uuid4()))
    assert r.status_code == 404
    assert r.json()["error"] == "Challenge not found"


def test_proof_image_must_be_a_real_image(client, store):
    owner, g, ch = _group_with_open_challenge(store)
    r = client.post(
        f"/challenges/{ch.id}/proofs",
        data={"miles": "2"},
        files={"file": ("run.png", b"not an image", "image/png")},
        headers=auth(owner),
    )
    assert r.status_code == 400
    assert store.proofs == []


def test_proof_image_is_stored(client, store, monkeypatch):
    stored = {}
    monkeypatch.setattr("runpool.routes.challenges.put_bytes", lambda key, data, ct: stored.update({key: ct}))
    monkeypatch.setattr("runpool.routes.challenges.get_bytes", lambda key: (b"png-bytes", "image/png"))
    owner, g, ch = _group_with_open_challenge(store)

    r = client.post(
        f"/challenges/{ch.id}/proofs",
        data={"miles": "4"},
        files={"file": ("run.png", _png(), "image/png")},
        headers=auth(owner),
    )
    assert r.status_code == 201
    (key, content_type), = stored.items()
    assert key.startswith(f"proofs/{ch.id}/{owner}/") and key.endswith(".png")
    assert content_type == "image/png"

    img = client.get(r.json()["image_url"], headers=auth(owner))
    assert img.status_code == 200
    assert img.content == b"png-bytes"


def test_leaderboard_reports_movement_between_views(client, store):
    owner, g, ch = _group_with_open_challenge(store)
    runner = store.seed_member(g.id)
    store.seed_profile(runner, "Runner")
    client.post(f"/challenges/{ch.id}/proofs", data={"miles": "6"}, headers=auth(owner))
    client.post(f"/challenges/{ch.id}/proofs", data={"miles": "3"}, headers=auth(runner))

    first = client.get(f"/challenges/{ch.id}/leaderboard", headers=auth(owner)).json()
    assert first["status"] == "ok"
    assert [row["rank"] for row in first["leaderboard"]] == [1, 2]
    assert all(row["movement"] == "same" for row in first["leaderboard"])

    client.post(f"/challenges/{ch.id}/proofs", data={"miles": "4"}, headers=auth(runner))
    second = client.get(f"/challenges/{ch.id}/leaderboard", headers=auth(runner)).json()
    top = second["leaderboard"][0]
    assert (top["name"], top["miles"], top["rank_delta"], top["movement"]) == ("Runner", 7.0, 1, "up")
    assert second["leaderboard"][1]["movement"] == "down"


@pytest.mark.parametrize("path", ["/proofs", ""])
def test_challenge_reads_require_membership(client, store, path):
    _, _, ch = _group_with_open_challenge(store)
    assert client.get(f"/challenges/{ch.id}{path}", headers=auth(uuid.uuid4())).status_code == 403


@pytest.mark.asyncio
async def test_proof_listing_over_asgi(client, store):
    owner, g, ch = _group_with_open_challenge(store)
    store.seed_proof(ch.id, owner, 2.5)
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        r = await ac.get(f"/challenges/{ch.id}/proofs", headers=auth(owner))
        assert r.status_code == 200
        assert [p["miles"] for p in r.json()] == [2.5]
        assert r.json()[0]["activity"] == "run"
