from __future__ import annotations
import uuid
from datetime import date

import pytest

from runpool.jobs.refresh_leaderboard import refresh
from fakes import FakeSender

MONDAY = date(2025, 3, 3)


def _race(store):
    g = store.seed_group(name="Hill Crew")
    ch = store.seed_challenge(g.id, MONDAY, status="OPEN")
    users = [uuid.uuid4() for _ in range(4)]
    for i, (u, m) in enumerate(zip(users, (9, 7, 5, 3))):
        store.seed_profile(u, f"runner{i}", f"runner{i}@example.com")
        store.seed_proof(ch.id, u, m)
    return g, ch, users


@pytest.mark.asyncio
async def test_first_refresh_sets_baseline_without_emails(store, repos, sender):
    _, ch, _ = _race(store)
    assert await refresh(repos, ch.id, sender) == []
    assert sender.sent == []
    assert store.commits == 1


@pytest.mark.asyncio
async def test_user_entering_top3_is_emailed_once(store, repos, sender):
    _, ch, users = _race(store)
    await refresh(repos, ch.id, sender)

    store.seed_proof(ch.id, users[3], 5)
    assert await refresh(repos, ch.id, sender) == [users[3]]
    (to, subject, html) = sender.sent[0]
    assert to == "runner3@example.com"
    assert subject == "You're 2nd place in Hill Crew!"
    assert len(sender.sent) == 1

    # no standings change, no repeat email
    assert await refresh(repos, ch.id, sender) == []
    assert len(sender.sent) == 1


@pytest.mark.asyncio
async def test_refresh_without_email_config_still_advances(store, repos):
    _, ch, users = _race(store)
    await refresh(repos, ch.id, None)
    store.seed_proof(ch.id, users[3], 10)
    assert await refresh(repos, ch.id, None) == [users[3]]
    assert store.snapshots[ch.id][users[3]][0] == 1


@pytest.mark.asyncio
async def test_failed_notification_does_not_raise(store, repos):
    _, ch, users = _race(store)
    sender = FakeSender(fail={"runner3@example.com"})
    await refresh(repos, ch.id, sender)
    store.seed_proof(ch.id, users[3], 10)
    assert await refresh(repos, ch.id, sender) == [users[3]]
    assert sender.sent == []


@pytest.mark.asyncio
async def test_unexpected_send_error_does_not_fail_the_job(store, repos):
    class Broken:
        async def send(self, to, subject, html):
            raise RuntimeError("socket closed")

    _, ch, users = _race(store)
    await refresh(repos, ch.id, Broken())
    store.seed_proof(ch.id, users[3], 10)
    assert await refresh(repos, ch.id, Broken()) == [users[3]]
    assert store.commits == 2
