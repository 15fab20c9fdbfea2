# tests/conftest.py

from __future__ import annotations

import os
from typing import Callable, Dict, Tuple

import pytest

# Fast hashing, memory backend and no background scheduler for tests
os.environ["PERSISTENCE_BACKEND"] = "memory"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ENABLE_REMINDERS"] = "false"
os.environ["APP_TIMEZONE"] = "UTC"
os.environ["CLIENT_URL"] = "http://client.test"

from fastapi.testclient import TestClient  # noqa: E402

from task_manager.lifecycle import TaskLifecycleManager  # noqa: E402
from task_manager.main import app  # noqa: E402
from task_manager.notifications import get_notifier  # noqa: E402
from task_manager.repositories import (  # noqa: E402
    InMemoryTaskRepository,
    InMemoryUserRepository,
    get_task_repository,
    get_user_repository,
)

from .fakes import FakeNotifier  # noqa: E402


@pytest.fixture()
def task_repo() -> InMemoryTaskRepository:
    return InMemoryTaskRepository()


@pytest.fixture()
def user_repo() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def manager(task_repo, user_repo, notifier) -> TaskLifecycleManager:
    return TaskLifecycleManager(task_repo, user_repo, notifier)


@pytest.fixture()
def client(task_repo, user_repo, notifier):
    """
    TestClient whose stores and notifier are fresh per test.

    Used without a `with` block, so the lifespan (and with it the reminder
    scheduler) never starts.
    """
    app.dependency_overrides[get_task_repository] = lambda: task_repo
    app.dependency_overrides[get_user_repository] = lambda: user_repo
    app.dependency_overrides[get_notifier] = lambda: notifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def register(client) -> Callable[..., Tuple[str, Dict[str, str]]]:
    """Register a user through the API and return (user_id, auth headers)."""

    def _register(email: str = "alice@example.com", password: str = "s3cret-pass") -> Tuple[str, Dict[str, str]]:
        res = client.post("/api/auth/register", json={"email": email, "password": password})
        assert res.status_code == 201, res.text
        body = res.json()
        return body["userId"], {"Authorization": f"Bearer {body['token']}"}

    return _register
