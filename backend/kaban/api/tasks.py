"""
Kaban - Tasks API
=================

Task CRUD, column moves, archive and dependencies.
"""

from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Query, Response, status

from kaban.api.deps import Context
from kaban.core.errors import not_found, validation
from kaban.core.models import Task
from kaban.core.schemas import (
    AddTaskCheckedResult,
    AddTaskInput,
    ArchiveCriteria,
    ArchiveResult,
    DeleteResult,
    DependencyCheck,
    DependencyRequest,
    MoveTaskRequest,
    RestoreTaskRequest,
    SearchArchiveResult,
    SetParentRequest,
    TaskHistoryResponse,
    TaskResponse,
    UpdateTaskInput,
)
from kaban.core.services.history import DEFAULT_HISTORY_LIMIT

router = APIRouter(prefix="/tasks", tags=["Tasks"])

Actor = Annotated[Optional[str], Query(description="Agent recorded in the task history")]


# ==========================================================================
# Helper Functions
# ==========================================================================

async def get_task_or_404(context: Context, task_id: str) -> Task:
    """Resolve an id or unique id prefix, or raise NOT_FOUND."""
    task = await context.tasks.resolve_task(task_id)
    if task is None:
        raise not_found("Task", task_id)
    return task


def add_task_fields(payload: AddTaskInput) -> dict:
    return payload.model_dump(by_alias=False)


# ==========================================================================
# Task CRUD
# ==========================================================================

@router.get(
    "",
    response_model=list[TaskResponse],
    summary="List tasks",
)
async def list_tasks(
    context: Context,
    column: Optional[str] = Query(None, description="Filter by column"),
    created_by: Optional[str] = Query(None, alias="createdBy"),
    assignee: Optional[str] = Query(None),
    blocked: bool = Query(False, description="Only tasks with a blocked reason"),
    include_archived: bool = Query(False, alias="includeArchived"),
) -> list[TaskResponse]:
    tasks = await context.tasks.list_tasks(
        column_id=column,
        created_by=created_by,
        assignee=assignee,
        blocked_only=blocked,
        include_archived=include_archived,
    )
    return [TaskResponse.model_validate(task) for task in tasks]


@router.post(
    "",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add task",
)
async def add_task(payload: AddTaskInput, context: Context) -> TaskResponse:
    task = await context.tasks.add_task(**add_task_fields(payload))
    return TaskResponse.model_validate(task)


@router.post(
    "/checked",
    response_model=AddTaskCheckedResult,
    summary="Add task unless a similar one exists",
)
async def add_task_checked(
    payload: AddTaskInput,
    context: Context,
    force: bool = Query(False, description="Create even if similar tasks exist"),
) -> AddTaskCheckedResult:
    fields = add_task_fields(payload)
    return await context.tasks.add_task_checked(fields.pop("title"), force=force, **fields)


# ==========================================================================
# Archive
# ==========================================================================

@router.post(
    "/archive",
    response_model=ArchiveResult,
    summary="Archive tasks",
)
async def archive_tasks(
    criteria: ArchiveCriteria,
    context: Context,
    actor: Actor = None,
) -> ArchiveResult:
    return await context.tasks.archive_tasks(criteria, actor=actor)


@router.get(
    "/archive/search",
    response_model=SearchArchiveResult,
    summary="Search archived tasks",
)
async def search_archive(
    context: Context,
    q: str = Query("", description="Whitespace separated terms"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> SearchArchiveResult:
    tasks, total = await context.tasks.search_archive(q, limit=limit, offset=offset)
    return SearchArchiveResult(
        tasks=[TaskResponse.model_validate(task) for task in tasks],
        total=total,
    )


@router.delete(
    "/archive",
    response_model=DeleteResult,
    summary="Purge archived tasks",
)
async def purge_archive(
    context: Context,
    older_than: Optional[datetime] = Query(None, alias="olderThan"),
) -> DeleteResult:
    return await context.tasks.purge_archive(older_than=older_than)


@router.post(
    "/reset",
    response_model=DeleteResult,
    summary="Delete every task",
)
async def reset_board(
    context: Context,
    confirm: bool = Query(False, description="Must be true"),
) -> DeleteResult:
    if not confirm:
        raise validation("Board reset requires confirm=true")
    return await context.tasks.reset_board()


# ==========================================================================
# Single task
# ==========================================================================

@router.get(
    "/{task_id}",
    response_model=TaskResponse,
    summary="Get task",
)
async def get_task(task_id: str, context: Context) -> TaskResponse:
    return TaskResponse.model_validate(await get_task_or_404(context, task_id))


@router.patch(
    "/{task_id}",
    response_model=TaskResponse,
    summary="Update task",
)
async def update_task(
    task_id: str,
    payload: UpdateTaskInput,
    context: Context,
    expected_version: Optional[int] = Query(None, alias="expectedVersion"),
    actor: Actor = None,
) -> TaskResponse:
    """
    Partial update. Pass the version you read as expectedVersion to be
    rejected with 409 if someone else wrote the task in between.
    """
    task = await get_task_or_404(context, task_id)
    updated = await context.tasks.update_task(
        task.id,
        payload,
        expected_version=expected_version,
        actor=actor,
    )
    return TaskResponse.model_validate(updated)


@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete task",
)
async def delete_task(
    task_id: str,
    context: Context,
    actor: Actor = None,
) -> Response:
    task = await get_task_or_404(context, task_id)
    await context.tasks.delete_task(task.id, actor=actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{task_id}/move",
    response_model=TaskResponse,
    summary="Move task",
)
async def move_task(
    task_id: str,
    payload: MoveTaskRequest,
    context: Context,
    actor: Actor = None,
) -> TaskResponse:
    task = await get_task_or_404(context, task_id)
    moved = await context.tasks.move_task(
        task.id,
        payload.column_id,
        force=payload.force,
        validate_deps=payload.validate_deps,
        actor=actor,
    )
    return TaskResponse.model_validate(moved)


@router.post(
    "/{task_id}/complete",
    response_model=TaskResponse,
    summary="Complete task",
)
async def complete_task(
    task_id: str,
    context: Context,
    actor: Actor = None,
) -> TaskResponse:
    task = await get_task_or_404(context, task_id)
    return TaskResponse.model_validate(await context.tasks.complete_task(task.id, actor=actor))


@router.post(
    "/{task_id}/restore",
    response_model=TaskResponse,
    summary="Restore archived task",
)
async def restore_task(
    task_id: str,
    context: Context,
    payload: Optional[RestoreTaskRequest] = None,
    actor: Actor = None,
) -> TaskResponse:
    task = await get_task_or_404(context, task_id)
    column_id = payload.column_id if payload else None
    return TaskResponse.model_validate(
        await context.tasks.restore_task(task.id, column_id, actor=actor)
    )


@router.put(
    "/{task_id}/parent",
    response_model=TaskResponse,
    summary="Set parent task",
)
async def set_parent(task_id: str, payload: SetParentRequest, context: Context) -> TaskResponse:
    task = await get_task_or_404(context, task_id)
    return TaskResponse.model_validate(await context.tasks.set_parent(task.id, payload.parent_id))


# ==========================================================================
# Dependencies
# ==========================================================================

@router.get(
    "/{task_id}/dependencies",
    response_model=DependencyCheck,
    summary="Check dependencies",
)
async def check_dependencies(task_id: str, context: Context) -> DependencyCheck:
    task = await get_task_or_404(context, task_id)
    return await context.tasks.validate_dependencies(task.id)


@router.post(
    "/{task_id}/dependencies",
    response_model=TaskResponse,
    summary="Add dependency",
)
async def add_dependency(
    task_id: str,
    payload: DependencyRequest,
    context: Context,
) -> TaskResponse:
    task = await get_task_or_404(context, task_id)
    return TaskResponse.model_validate(
        await context.tasks.add_dependency(task.id, payload.depends_on_id)
    )


@router.delete(
    "/{task_id}/dependencies/{depends_on_id}",
    response_model=TaskResponse,
    summary="Remove dependency",
)
async def remove_dependency(task_id: str, depends_on_id: str, context: Context) -> TaskResponse:
    task = await get_task_or_404(context, task_id)
    return TaskResponse.model_validate(
        await context.tasks.remove_dependency(task.id, depends_on_id)
    )


# ==========================================================================
# History
# ==========================================================================

@router.get(
    "/{task_id}/history",
    response_model=list[TaskHistoryResponse],
    summary="Task history",
)
async def get_task_history(
    task_id: str,
    context: Context,
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=500),
) -> list[TaskHistoryResponse]:
    """
    Recorded changes of a task, newest first.

    A deleted task no longer resolves by prefix, so its full id is looked
    up as given.
    """
    task = await context.tasks.resolve_task(task_id)
    rows = await context.history.get_task_history(task.id if task else task_id, limit=limit)
    return [TaskHistoryResponse.model_validate(row) for row in rows]
