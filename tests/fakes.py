# tests/fakes.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Set

from task_manager.errors import NotificationFailure, StoreFailure
from task_manager.notifications import Notifier
from task_manager.repositories import InMemoryTaskRepository


@dataclass
class SentEmail:
    to: str
    subject: str
    body: str


@dataclass
class FakeNotifier(Notifier):
    """
    Records every delivery attempt.

    Addresses in fail_for (or every address when fail_all is set) raise
    NotificationFailure, like an unreachable SMTP relay would.
    """

    sent: List[SentEmail] = field(default_factory=list)
    attempts: List[str] = field(default_factory=list)
    fail_for: Set[str] = field(default_factory=set)
    fail_all: bool = False

    def send(self, to: str, subject: str, body: str) -> None:
        self.attempts.append(to)
        if self.fail_all or to in self.fail_for:
            raise NotificationFailure(f"relay refused {to}")
        self.sent.append(SentEmail(to=to, subject=subject, body=body))


class BrokenTaskRepository(InMemoryTaskRepository):
    """Task store whose reminder query always fails."""

    def find_due_between(self, start: datetime, end: datetime):
        raise StoreFailure("database is locked")
