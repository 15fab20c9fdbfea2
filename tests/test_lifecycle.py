from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from task_manager.errors import NotFoundError, TaskArchivedError, ValidationError
from task_manager.lifecycle import compute_stats, filter_by_period, filter_due_soon


def make_task(**overrides):
    task = {
        "id": "t1",
        "owner_id": "u1",
        "title": "Task",
        "description": None,
        "completed": False,
        "is_archived": False,
        "created_at": datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc),
        "end_date": None,
    }
    task.update(overrides)
    return task


@pytest.fixture()
def alice(user_repo):
    return user_repo.create("alice@example.com", "hash")


@pytest.fixture()
def bob(user_repo):
    return user_repo.create("bob@example.com", "hash")


class TestCreate:
    def test_empty_title_persists_nothing(self, manager, task_repo, alice):
        with pytest.raises(ValidationError):
            manager.create(alice["id"], "")
        with pytest.raises(ValidationError):
            manager.create(alice["id"], "   ")
        assert task_repo.find(alice["id"]) == []

    def test_create_defaults(self, manager, alice, notifier):
        task = manager.create(alice["id"], "  Pay rent ", "monthly")
        assert task["title"] == "Pay rent"
        assert task["completed"] is False
        assert task["is_archived"] is False
        assert task["owner_id"] == alice["id"]
        assert notifier.sent == []

    def test_create_with_end_date_notifies_owner(self, manager, alice, notifier):
        manager.create(alice["id"], "Pay rent", end_date=datetime(2030, 1, 1, tzinfo=timezone.utc))
        assert [m.to for m in notifier.sent] == ["alice@example.com"]

    def test_notification_failure_does_not_fail_create(self, manager, alice, notifier, task_repo):
        notifier.fail_all = True
        task = manager.create(alice["id"], "Pay rent", end_date=datetime(2030, 1, 1, tzinfo=timezone.utc))
        assert task_repo.get(task["id"], alice["id"]) is not None

    def test_naive_end_date_is_stored_as_utc(self, manager, alice):
        task = manager.create(alice["id"], "Naive", end_date=datetime(2030, 1, 1, 9, 30))
        assert task["end_date"] == datetime(2030, 1, 1, 9, 30, tzinfo=timezone.utc)
        assert task["end_date"].tzinfo is not None


class TestUpdate:
    def test_update_applies_provided_fields(self, manager, alice):
        task = manager.create(alice["id"], "Old", "keep me")
        updated = manager.update(alice["id"], task["id"], {"title": "New", "completed": True})
        assert updated["title"] == "New"
        assert updated["completed"] is True
        assert updated["description"] == "keep me"

    def test_owner_and_created_at_are_immutable(self, manager, alice, bob):
        task = manager.create(alice["id"], "Mine")
        updated = manager.update(
            alice["id"], task["id"],
            {"owner_id": bob["id"], "created_at": datetime(2000, 1, 1, tzinfo=timezone.utc), "id": "x"},
        )
        assert updated["owner_id"] == alice["id"]
        assert updated["created_at"] == task["created_at"]
        assert updated["id"] == task["id"]
        assert manager.archive(alice["id"], task["id"])["owner_id"] == alice["id"]
        assert manager.restore(alice["id"], task["id"])["owner_id"] == alice["id"]

    def test_update_by_non_owner_is_not_found_and_store_unchanged(self, manager, task_repo, alice, bob):
        task = manager.create(bob["id"], "Bob's")
        with pytest.raises(NotFoundError):
            manager.update(alice["id"], task["id"], {"title": "Mine now"})
        assert task_repo.get(task["id"], bob["id"]) == task

    def test_update_rejects_empty_title(self, manager, alice):
        task = manager.create(alice["id"], "Keep")
        with pytest.raises(ValidationError):
            manager.update(alice["id"], task["id"], {"title": " "})

    def test_changed_end_date_notifies(self, manager, alice, notifier):
        task = manager.create(alice["id"], "Report")
        due = datetime(2030, 5, 1, 17, 0, tzinfo=timezone.utc)
        manager.update(alice["id"], task["id"], {"end_date": due})
        manager.update(alice["id"], task["id"], {"end_date": due})
        assert len(notifier.sent) == 1

    def test_naive_end_date_on_update_is_stored_as_utc(self, manager, alice):
        task = manager.create(alice["id"], "Report")
        updated = manager.update(alice["id"], task["id"], {"end_date": datetime(2030, 5, 1, 17, 0)})
        assert updated["end_date"] == datetime(2030, 5, 1, 17, 0, tzinfo=timezone.utc)

        # Listing and due-soon filtering compare against aware datetimes
        now = datetime(2030, 4, 30, 12, 0, tzinfo=timezone.utc)
        assert [t["id"] for t in filter_due_soon(manager.list(alice["id"]), now)] == [task["id"]]

    def test_archived_task_cannot_be_edited_or_toggled(self, manager, alice):
        task = manager.create(alice["id"], "Frozen")
        manager.archive(alice["id"], task["id"])
        with pytest.raises(TaskArchivedError):
            manager.update(alice["id"], task["id"], {"title": "Thawed"})
        with pytest.raises(TaskArchivedError):
            manager.toggle_complete(alice["id"], task["id"])


class TestArchiveRestoreDelete:
    def test_archive_twice_is_a_no_op(self, manager, alice):
        task = manager.create(alice["id"], "Old")
        first = manager.archive(alice["id"], task["id"])
        second = manager.archive(alice["id"], task["id"])
        assert first == second
        assert second["is_archived"] is True

    def test_round_trip_preserves_completed_and_visibility(self, manager, alice):
        task = manager.create(alice["id"], "Done")
        manager.toggle_complete(alice["id"], task["id"])
        manager.archive(alice["id"], task["id"])
        assert manager.list(alice["id"]) == []

        restored = manager.restore(alice["id"], task["id"])
        assert restored["completed"] is True
        assert [t["id"] for t in manager.list(alice["id"])] == [task["id"]]

    def test_archive_missing_is_not_found(self, manager, alice):
        with pytest.raises(NotFoundError):
            manager.archive(alice["id"], "missing")
        with pytest.raises(NotFoundError):
            manager.restore(alice["id"], "missing")

    def test_delete(self, manager, alice, bob):
        task = manager.create(alice["id"], "Gone")
        with pytest.raises(NotFoundError):
            manager.delete(bob["id"], task["id"])
        manager.delete(alice["id"], task["id"])
        with pytest.raises(NotFoundError):
            manager.delete(alice["id"], task["id"])


class TestList:
    def test_list_never_returns_archived_by_default(self, manager, alice):
        ids = [manager.create(alice["id"], f"T{i}")["id"] for i in range(4)]
        manager.archive(alice["id"], ids[0])
        manager.archive(alice["id"], ids[2])
        listed = manager.list(alice["id"])
        assert all(not t["is_archived"] for t in listed)
        assert len(manager.list(alice["id"], include_archived=True)) == 4

    def test_stats_month_requires_year(self, manager, alice):
        with pytest.raises(ValidationError):
            manager.stats(alice["id"], month=3)


class TestFilterByPeriod:
    def test_selects_matching_month_only(self):
        tasks = [
            make_task(id="feb", created_at=datetime(2025, 2, 28, 23, 59, tzinfo=timezone.utc)),
            make_task(id="mar", created_at=datetime(2025, 3, 1, 0, 0, tzinfo=timezone.utc)),
            make_task(id="mar-2024", created_at=datetime(2024, 3, 10, tzinfo=timezone.utc)),
        ]
        assert [t["id"] for t in filter_by_period(tasks, 3, 2025)] == ["mar"]

    def test_empty_period(self):
        assert filter_by_period([make_task()], 7, 2025) == []

    def test_evaluated_in_configured_zone(self):
        task = make_task(created_at=datetime(2025, 1, 31, 23, 30, tzinfo=timezone.utc))
        assert filter_by_period([task], 1, 2025) == [task]
        # Already February in Tokyo
        assert filter_by_period([task], 2, 2025, ZoneInfo("Asia/Tokyo")) == [task]

    def test_invalid_month(self):
        with pytest.raises(ValidationError):
            filter_by_period([], 13, 2025)


class TestComputeStats:
    def test_counts(self):
        tasks = [
            make_task(completed=True),
            make_task(completed=False),
            make_task(completed=False),
            make_task(completed=True, is_archived=True),
            make_task(completed=False, is_archived=True),
        ]
        stats = compute_stats(tasks)
        assert stats == {"total": 5, "completed": 1, "incomplete": 2, "archived": 2}
        assert stats["completed"] + stats["incomplete"] == stats["total"] - stats["archived"]

    def test_empty(self):
        assert compute_stats([]) == {"total": 0, "completed": 0, "incomplete": 0, "archived": 0}


class TestFilterDueSoon:
    def test_window(self):
        now = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)
        tasks = [
            make_task(id="soon", end_date=now + timedelta(days=1)),
            make_task(id="past", end_date=now - timedelta(hours=1)),
            make_task(id="far", end_date=now + timedelta(days=5)),
            make_task(id="done", end_date=now + timedelta(hours=3), completed=True),
            make_task(id="archived", end_date=now + timedelta(hours=3), is_archived=True),
            make_task(id="undated"),
        ]
        assert [t["id"] for t in filter_due_soon(tasks, now)] == ["soon"]
