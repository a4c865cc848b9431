"""
Sync Engine - applies one todo batch to the board.

Items are processed in order, one at a time: a task created for an early
item can be matched by a later item of the same batch. A failing item is
recorded in the result and the rest of the batch still runs.
"""

import time
from typing import Literal, Optional

import structlog

from kaban.core.errors import capture
from kaban.sync.client import BoardClient, BoardTask
from kaban.sync.conflict_resolver import ConflictResolver
from kaban.sync.constants import BACKLOG_COLUMN, STATUS_TO_COLUMN, TERMINAL_COLUMN
from kaban.sync.schemas import SyncConfig, SyncResult, TodoItem, TodoStatus

logger = structlog.get_logger()

Outcome = Literal["created", "moved", "skipped"]


class SyncEngine:
    """
    Matches todo items to board tasks and creates or moves them.

    Matching order: the external id seen in an earlier sync, a task whose
    id equals the todo id, the truncated title, then the raw content.
    Title matching cannot tell apart two tasks with the same title; the
    first one listed wins.
    """

    def __init__(self, client: BoardClient, config: Optional[SyncConfig] = None):
        self.client = client
        self.config = config or SyncConfig()
        self.resolver = ConflictResolver(self.config.conflict_strategy)
        self._by_id: dict[str, BoardTask] = {}
        self._by_title: dict[str, BoardTask] = {}

    def truncate_title(self, title: str) -> str:
        limit = self.config.max_title_length
        if len(title) <= limit:
            return title
        return f"{title[: limit - 3]}..."

    async def sync(self, todos: list[TodoItem]) -> SyncResult:
        started = time.monotonic()
        result = SyncResult()

        if not await self.client.board_exists():
            result.skipped = len(todos)
            logger.info("sync_skipped_no_board", items=len(todos))
            return result

        if not todos:
            return result

        tasks = await self.client.list_tasks()
        self._by_id = {task.id: task for task in tasks}
        self._by_title = {}
        for task in tasks:
            self._by_title.setdefault(task.title, task)

        for todo in todos:
            if not self.resolver.should_sync(todo, self.config.cancelled_policy):
                result.skipped += 1
                continue

            outcome = await capture(self._sync_item(todo))
            if outcome.ok:
                if outcome.value == "created":
                    result.created += 1
                elif outcome.value == "moved":
                    result.moved += 1
                else:
                    result.skipped += 1
            else:
                result.errors.append(f"{self.truncate_title(todo.content)}: {outcome.message}")
                result.success = False

        logger.info(
            "sync_completed",
            success=result.success,
            created=result.created,
            moved=result.moved,
            skipped=result.skipped,
            errors=len(result.errors),
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return result

    async def _match(self, todo: TodoItem) -> Optional[BoardTask]:
        mapped = await self.client.find_mapped_task(todo.id)
        if mapped is not None:
            return mapped
        return (
            self._by_id.get(todo.id)
            or self._by_title.get(self.truncate_title(todo.content))
            or self._by_title.get(todo.content)
        )

    def _remember(self, task: BoardTask) -> None:
        self._by_id[task.id] = task
        current = self._by_title.get(task.title)
        if current is None or current.id == task.id:
            self._by_title[task.title] = task

    async def _sync_item(self, todo: TodoItem) -> Outcome:
        existing = await self._match(todo)
        if existing is None:
            return await self._create(todo)

        await self.client.record_mapping(todo.id, existing.id)
        resolution = self.resolver.resolve(todo, existing.column_id)

        if resolution.winner == "kaban" or existing.column_id == resolution.target_column:
            return "skipped"

        if resolution.target_column == TERMINAL_COLUMN:
            moved = await self.client.complete_task(existing.id)
        else:
            moved = await self.client.move_task(existing.id, resolution.target_column)

        self._remember(moved)
        logger.debug(
            "todo_synced",
            task_id=existing.id,
            to_column=resolution.target_column,
            reason=resolution.reason,
        )
        return "moved"

    async def _create(self, todo: TodoItem) -> Outcome:
        if todo.status == TodoStatus.CANCELLED:
            column_id = BACKLOG_COLUMN
        else:
            column_id = STATUS_TO_COLUMN[todo.status]

        task = await self.client.add_task(self.truncate_title(todo.content), column_id)
        await self.client.record_mapping(todo.id, task.id)
        self._remember(task)
        return "created"
