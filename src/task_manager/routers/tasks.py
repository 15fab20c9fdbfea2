from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ..auth import get_current_user_id
from ..errors import ValidationError
from ..lifecycle import TaskLifecycleManager, filter_by_period, filter_due_soon
from ..notifications import Notifier, get_notifier
from ..repositories import TaskRepository, UserRepository, get_task_repository, get_user_repository
from ..schemas import MessageOut, TaskCreate, TaskOut, TaskStats, TaskUpdate
from ..settings import get_settings
from ..utils import utcnow

router = APIRouter(
    prefix="/api/tasks",
    tags=["tasks"],
)

_NOT_FOUND = {404: {"description": "Task not found or not owned by the caller"}}


def get_lifecycle_manager(
    tasks: TaskRepository = Depends(get_task_repository),
    users: UserRepository = Depends(get_user_repository),
    notifier: Notifier = Depends(get_notifier),
) -> TaskLifecycleManager:
    """
    Dependency wiring the lifecycle manager to the configured stores.
    """
    return TaskLifecycleManager(tasks, users, notifier, tz=get_settings().tzinfo)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[TaskOut],
    summary="List Tasks",
    description=(
        "List the caller's tasks, oldest first.\n\n"
        "Query parameters:\n"
        "- includeArchived: include archived tasks (default false)\n"
        "- month, year: only tasks created in that calendar month (APP_TIMEZONE)\n"
        "- dueSoon: only incomplete tasks due within the next two days"
    ),
)
def list_tasks(
    include_archived: bool = Query(False, alias="includeArchived", description="Include archived tasks"),
    month: Optional[int] = Query(None, ge=1, le=12, description="Creation month (1..12)"),
    year: Optional[int] = Query(None, ge=1970, le=9999, description="Creation year"),
    due_soon: bool = Query(False, alias="dueSoon", description="Only tasks due within two days"),
    owner_id: str = Depends(get_current_user_id),
    manager: TaskLifecycleManager = Depends(get_lifecycle_manager),
) -> List[TaskOut]:
    items = manager.list(owner_id, include_archived=include_archived)
    if month is not None or year is not None:
        if month is None or year is None:
            raise ValidationError("month and year must be given together")
        items = filter_by_period(items, month, year, manager.tz)
    if due_soon:
        items = filter_due_soon(items, utcnow())
    return [TaskOut(**it) for it in items]  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.get(
    "/stats",
    response_model=TaskStats,
    summary="Task Statistics",
    description="Counts of total, completed, incomplete and archived tasks, optionally for one month.",
)
def task_stats(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1970, le=9999),
    owner_id: str = Depends(get_current_user_id),
    manager: TaskLifecycleManager = Depends(get_lifecycle_manager),
) -> TaskStats:
    return TaskStats(**manager.stats(owner_id, month=month, year=year))


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description="Create a task. When endDate is set the owner is emailed a confirmation (best-effort).",
    responses={422: {"description": "Validation error"}},
)
def create_task(
    payload: TaskCreate,
    owner_id: str = Depends(get_current_user_id),
    manager: TaskLifecycleManager = Depends(get_lifecycle_manager),
) -> TaskOut:
    created = manager.create(owner_id, payload.title, payload.description, payload.end_date)
    return TaskOut(**created)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.put(
    "/toggle/{task_id}",
    response_model=TaskOut,
    summary="Toggle Completion",
    responses={**_NOT_FOUND, 409: {"description": "Task is archived"}},
)
def toggle_task(
    task_id: str,
    owner_id: str = Depends(get_current_user_id),
    manager: TaskLifecycleManager = Depends(get_lifecycle_manager),
) -> TaskOut:
    return TaskOut(**manager.toggle_complete(owner_id, task_id))  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.put(
    "/archive/{task_id}",
    response_model=TaskOut,
    summary="Archive Task",
    description="Hide a task from default listings. Archiving an archived task returns it unchanged.",
    responses=_NOT_FOUND,
)
def archive_task(
    task_id: str,
    owner_id: str = Depends(get_current_user_id),
    manager: TaskLifecycleManager = Depends(get_lifecycle_manager),
) -> TaskOut:
    return TaskOut(**manager.archive(owner_id, task_id))  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.put(
    "/restore/{task_id}",
    response_model=TaskOut,
    summary="Restore Task",
    responses=_NOT_FOUND,
)
def restore_task(
    task_id: str,
    owner_id: str = Depends(get_current_user_id),
    manager: TaskLifecycleManager = Depends(get_lifecycle_manager),
) -> TaskOut:
    return TaskOut(**manager.restore(owner_id, task_id))  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.put(
    "/{task_id}",
    response_model=TaskOut,
    summary="Update Task",
    description=(
        "Update title, description, endDate and/or completed. Only the fields sent are changed; "
        "a changed endDate triggers a best-effort email."
    ),
    responses={**_NOT_FOUND, 409: {"description": "Task is archived"}},
)
def update_task(
    task_id: str,
    payload: TaskUpdate,
    owner_id: str = Depends(get_current_user_id),
    manager: TaskLifecycleManager = Depends(get_lifecycle_manager),
) -> TaskOut:
    updated = manager.update(owner_id, task_id, payload.changes())
    return TaskOut(**updated)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}",
    response_model=MessageOut,
    summary="Delete Task",
    description="Permanently delete a task. Prefer archiving for a reversible removal.",
    responses=_NOT_FOUND,
)
def delete_task(
    task_id: str,
    owner_id: str = Depends(get_current_user_id),
    manager: TaskLifecycleManager = Depends(get_lifecycle_manager),
) -> MessageOut:
    manager.delete(owner_id, task_id)
    return MessageOut(message="Task deleted")
