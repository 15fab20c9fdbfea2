"""
Daily reminder sweep.

Once a day, at a fixed wall-clock time:
- select incomplete, non-archived tasks due in the window
  [00:00 of now+1 day, 23:59:59.999999 of now+2 days],
- email each task's owner a reminder.

The window is two days wide while the cadence is one day. A missed run still
leaves every task one chance to be reminded, and a task can be reminded twice.
Nothing records which reminders went out.
"""
from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, Optional, Tuple

from .models import TaskEntity
from .notifications import Notifier, notify_safely, reminder_message
from .repositories import TaskRepository, UserRepository
from .utils import start_of_day, utcnow

logger = logging.getLogger(__name__)

_ONE_DAY = timedelta(days=1)


# PUBLIC_INTERFACE
def reminder_window(now: datetime, tz: tzinfo = timezone.utc) -> Tuple[datetime, datetime]:
    """
    Return the half-open window [start, end) of due dates that get a reminder
    when the sweep runs at `now`: start is midnight of tomorrow and end is
    midnight three days out, both in `tz`.
    """
    today = start_of_day(now, tz)
    start = today + _ONE_DAY
    end = today + 3 * _ONE_DAY
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def days_until_due(end_date: datetime, now: datetime) -> int:
    """Whole days until the due date, rounded up."""
    return math.ceil((end_date - now) / _ONE_DAY)


def _remind(task: TaskEntity, users: UserRepository, notifier: Notifier, now: datetime, tz: tzinfo) -> bool:
    owner = users.get_by_id(task["owner_id"])
    if owner is None:
        logger.warning("Reminder skipped: owner %s of task %s not found", task["owner_id"], task["id"])
        return False
    assert task["end_date"] is not None
    days = days_until_due(task["end_date"], now)
    subject, body = reminder_message(task["title"], task["end_date"], days, tz)
    return notify_safely(notifier, owner["email"], subject, body)


# PUBLIC_INTERFACE
def run_reminder_sweep(
    tasks: TaskRepository,
    users: UserRepository,
    notifier: Notifier,
    *,
    now: Optional[datetime] = None,
    tz: tzinfo = timezone.utc,
) -> int:
    """
    Scan for tasks due in the reminder window and notify their owners.

    Each task is handled on its own: a failure for one is logged and the
    sweep moves on. Never raises. Returns the number of reminders sent.
    """
    now = now or utcnow()
    start, end = reminder_window(now, tz)

    try:
        due = tasks.find_due_between(start, end)
    except Exception:
        logger.exception("Reminder scan failed window=[%s, %s)", start.isoformat(), end.isoformat())
        return 0

    logger.info("Reminder scan window=[%s, %s) matched=%d", start.isoformat(), end.isoformat(), len(due))

    sent = 0
    for task in due:
        try:
            if _remind(task, users, notifier, now, tz):
                sent += 1
        except Exception:
            logger.exception("Reminder failed task_id=%s", task.get("id"))
    logger.info("Reminder sweep done sent=%d failed=%d", sent, len(due) - sent)
    return sent


# PUBLIC_INTERFACE
def next_run_after(now: datetime, hour: int, minute: int, tz: tzinfo = timezone.utc) -> datetime:
    """The first hour:minute wall-clock time in `tz` strictly after `now`, in UTC."""
    local_now = now.astimezone(tz)
    target = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= local_now:
        target = target + _ONE_DAY
    return target.astimezone(timezone.utc)


# PUBLIC_INTERFACE
def seconds_until_next_run(now: datetime, hour: int, minute: int, tz: tzinfo = timezone.utc) -> float:
    """Seconds from `now` until the next hour:minute wall-clock time in `tz`."""
    return (next_run_after(now, hour, minute, tz) - now.astimezone(timezone.utc)).total_seconds()


async def run_reminder_scheduler(
        tasks: TaskRepository,
        users: UserRepository,
        notifier: Notifier,
        *,
        hour: int = 9,
        minute: int = 0,
        tz: tzinfo = timezone.utc,
        run_on_startup: bool = False,
        clock: Callable[[], datetime] = utcnow,
) -> None:
    """
    Run the reminder sweep every day at hour:minute (in `tz`), and optionally
    once right away.

    Each trigger runs at most once: the next trigger is always computed
    after the one just served, even when the sleep wakes up early.

    The sweep does blocking store and SMTP I/O, so it runs in a worker
    thread. To stop the scheduler, cancel the coroutine/task.
    """
    logger.info(
        "Reminder scheduler started at=%02d:%02d tz=%s run_on_startup=%s",
        hour, minute, getattr(tz, "key", tz), run_on_startup,
    )
    if run_on_startup:
        await asyncio.to_thread(run_reminder_sweep, tasks, users, notifier, now=clock(), tz=tz)

    trigger = next_run_after(clock(), hour, minute, tz)
    while True:
        delay = (trigger - clock()).total_seconds()
        logger.debug("Next reminder sweep at %s in %.0fs", trigger.isoformat(), delay)
        if delay > 0:
            await asyncio.sleep(delay)
        await asyncio.to_thread(run_reminder_sweep, tasks, users, notifier, now=clock(), tz=tz)
        trigger = next_run_after(max(trigger, clock()), hour, minute, tz)
