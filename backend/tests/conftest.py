from __future__ import annotations
import pytest
from fastapi.testclient import TestClient

from runpool.deps import email_sender_provider, get_queue, get_repositories
from runpool.main import app
from fakes import FakeQueue, FakeSender, InMemoryStore


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def repos(store):
    return store.repositories()


@pytest.fixture
def sender() -> FakeSender:
    return FakeSender()


@pytest.fixture
def queue() -> FakeQueue:
    return FakeQueue()


@pytest.fixture
def client(repos, sender, queue):
    app.dependency_overrides[get_repositories] = lambda: repos
    app.dependency_overrides[email_sender_provider] = lambda: (lambda: sender)
    app.dependency_overrides[get_queue] = lambda: queue
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


