"""
Task Store - CRUD and lifecycle transitions over task rows.

Every column change funnels through move_task. Writers that read a task
and want to write it back pass the version they read as expected_version;
a stale version is rejected with CONFLICT and nothing is written.
"""

import re
from datetime import datetime
from typing import Any, Optional, Union

import structlog
from sqlalchemy import and_, delete, func, or_, select, update

from kaban.core.config import Settings, get_settings
from kaban.core.errors import ExitCode, KabanError, not_found, validation
from kaban.core.ids import as_utc, new_ulid, utcnow
from kaban.core.models import (
    Column,
    HistoryEvent,
    SyncMapping,
    Task,
    TaskHistory,
    TaskLink,
    TaskPriority,
)
from kaban.core.schemas import (
    AddTaskCheckedResult,
    ArchiveCriteria,
    ArchiveResult,
    DeleteResult,
    DependencyCheck,
    SimilarTask,
    TaskResponse,
    UpdateTaskInput,
)
from kaban.core.services.base import BoardStoreService, parse_input
from kaban.core.services.board import BoardService
from kaban.core.services.history import HistoryService
from kaban.core.validation import (
    DESCRIPTION_MAX_LENGTH,
    validate_agent_name,
    validate_column_id,
    validate_title,
)

logger = structlog.get_logger()

_WORD_RE = re.compile(r"[a-z0-9]+")


def jaccard_similarity(a: str, b: str) -> float:
    """Word-set Jaccard similarity of two titles, 0.0 - 1.0."""
    words_a = set(_WORD_RE.findall(a.lower()))
    words_b = set(_WORD_RE.findall(b.lower()))
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class TaskService(BoardStoreService):
    """Task lifecycle: add, update, move, archive, restore, delete."""

    SIMILARITY_THRESHOLD = 0.5
    SIMILAR_TASKS_LIMIT = 5

    def __init__(
        self,
        db,
        board_service: BoardService,
        settings: Optional[Settings] = None,
    ):
        super().__init__(db)
        self.board_service = board_service
        self.settings = settings or get_settings()
        self.history = HistoryService(db)

    @staticmethod
    def _actor(actor: Optional[str]) -> Optional[str]:
        return validate_agent_name(actor) if actor else None

    # ==========================================================================
    # Lookups
    # ==========================================================================

    async def get_task(self, task_id: str) -> Optional[Task]:
        """Task or None; callers decide whether absence is fatal."""
        result = await self.db.execute(
            select(Task)
            .where(Task.id == task_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_task_or_raise(self, task_id: str) -> Task:
        task = await self.get_task(task_id)
        if task is None:
            raise not_found("Task", task_id)
        return task

    async def resolve_task(self, id_or_prefix: str) -> Optional[Task]:
        """
        Exact id first, then a unique case-insensitive id prefix.

        Raises:
            KabanError: VALIDATION when the prefix matches several tasks
        """
        task = await self.get_task(id_or_prefix)
        if task is not None:
            return task

        prefix = _escape_like(id_or_prefix.strip().upper())
        if not prefix:
            return None
        result = await self.db.execute(
            select(Task)
            .where(Task.id.like(f"{prefix}%", escape="\\"))
            .limit(2)
            .execution_options(populate_existing=True)
        )
        matches = list(result.scalars().all())
        if len(matches) > 1:
            raise validation(f"Task ID prefix '{id_or_prefix}' is ambiguous")
        return matches[0] if matches else None

    async def list_tasks(
        self,
        column_id: Optional[str] = None,
        created_by: Optional[str] = None,
        assignee: Optional[str] = None,
        blocked_only: bool = False,
        include_archived: bool = False,
    ) -> list[Task]:
        """Tasks ordered by (column, position); archived ones only on request."""
        query = select(Task).execution_options(populate_existing=True)

        if not include_archived:
            query = query.where(Task.archived.is_(False))
        if column_id:
            query = query.where(Task.column_id == column_id)
        if created_by:
            query = query.where(Task.created_by == created_by.lower())
        if assignee:
            query = query.where(Task.assigned_to == assignee.lower())
        if blocked_only:
            query = query.where(Task.blocked_reason.is_not(None))

        result = await self.db.execute(query.order_by(Task.column_id, Task.position))
        return list(result.scalars().all())

    async def _require_column(self, column_id: str) -> Column:
        validate_column_id(column_id)
        column = await self.board_service.get_column(column_id)
        if column is None:
            raise validation(f"Column '{column_id}' does not exist")
        return column

    async def _next_position(self, column_id: str) -> int:
        """Append-only: positions are never renumbered, archived rows included."""
        result = await self.db.execute(
            select(func.coalesce(func.max(Task.position), -1)).where(Task.column_id == column_id)
        )
        return int(result.scalar_one()) + 1

    async def _live_count(self, column_id: str, exclude_task_id: Optional[str] = None) -> int:
        query = select(func.count()).select_from(Task).where(
            Task.column_id == column_id,
            Task.archived.is_(False),
        )
        if exclude_task_id:
            query = query.where(Task.id != exclude_task_id)
        result = await self.db.execute(query)
        return result.scalar() or 0

    # ==========================================================================
    # Create
    # ==========================================================================

    async def add_task(
        self,
        title: str,
        description: Optional[str] = None,
        column_id: Optional[str] = None,
        created_by: Optional[str] = None,
        assigned_to: Optional[str] = None,
        parent_id: Optional[str] = None,
        depends_on: Optional[list[str]] = None,
        files: Optional[list[str]] = None,
        labels: Optional[list[str]] = None,
        priority: Optional[Union[TaskPriority, str]] = None,
        due_date: Optional[datetime] = None,
    ) -> Task:
        """
        Create a task at the end of its column with version 1.

        Column defaults to the configured default column and the creator to
        the configured default agent.
        """
        title = validate_title(title)
        creator = validate_agent_name(created_by or self.settings.DEFAULT_AGENT)
        assignee = validate_agent_name(assigned_to) if assigned_to else None
        column_id = column_id or self.settings.DEFAULT_COLUMN
        column = await self._require_column(column_id)

        if description is not None and len(description) > DESCRIPTION_MAX_LENGTH:
            raise validation(f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters")
        if parent_id is not None:
            await self.get_task_or_raise(parent_id)
        for dep_id in depends_on or []:
            await self.get_task_or_raise(dep_id)

        now = utcnow()
        task = Task(
            id=new_ulid(),
            title=title,
            description=description,
            column_id=column_id,
            position=await self._next_position(column_id),
            created_by=creator,
            assigned_to=assignee,
            parent_id=parent_id,
            depends_on=list(depends_on or []),
            files=list(files or []),
            labels=list(labels or []),
            blocked_reason=None,
            priority=TaskPriority(priority) if priority else TaskPriority.MEDIUM,
            due_date=as_utc(due_date),
            version=1,
            created_at=now,
            updated_at=now,
            started_at=now if column_id == self.settings.IN_PROGRESS_COLUMN else None,
            completed_at=now if column.is_terminal else None,
            archived=False,
            archived_at=None,
        )
        self.db.add(task)
        self.history.record(task.id, HistoryEvent.CREATE, creator)
        await self._commit()

        logger.info("task_added", task_id=task.id, column=column_id, created_by=creator)
        return await self.get_task_or_raise(task.id)

    async def find_similar_tasks(
        self,
        title: str,
        threshold: float = SIMILARITY_THRESHOLD,
    ) -> list[tuple[Task, float]]:
        """Live tasks whose titles resemble `title`, most similar first."""
        scored = [
            (task, jaccard_similarity(title, task.title))
            for task in await self.list_tasks()
        ]
        scored = [item for item in scored if item[1] >= threshold]
        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[: self.SIMILAR_TASKS_LIMIT]

    async def add_task_checked(
        self,
        title: str,
        force: bool = False,
        **fields: Any,
    ) -> AddTaskCheckedResult:
        """Refuse to create near-duplicates unless forced."""
        similar = await self.find_similar_tasks(title)
        similar_out = [
            SimilarTask(task=TaskResponse.model_validate(task), similarity=round(score, 2))
            for task, score in similar
        ]

        if similar and not force:
            listed = ", ".join(f'"{task.title}" ({round(score * 100)}%)' for task, score in similar)
            return AddTaskCheckedResult(
                task=None,
                created=False,
                similar_tasks=similar_out,
                rejected=True,
                rejection_reason=(
                    f"Found {len(similar)} very similar task(s): {listed}. "
                    "Use force=true to create anyway."
                ),
            )

        task = await self.add_task(title, **fields)
        return AddTaskCheckedResult(
            task=TaskResponse.model_validate(task),
            created=True,
            similar_tasks=similar_out,
            rejected=False,
        )

    # ==========================================================================
    # Update / Move
    # ==========================================================================

    async def update_task(
        self,
        task_id: str,
        updates: Union[UpdateTaskInput, dict[str, Any]],
        expected_version: Optional[int] = None,
        actor: Optional[str] = None,
    ) -> Task:
        """
        Apply a partial update and bump the version.

        Each field whose value actually changed gets a history row
        attributed to `actor`.

        Raises:
            KabanError: NOT_FOUND, VALIDATION, or CONFLICT when
                expected_version does not match the stored version
        """
        task = await self.get_task_or_raise(task_id)
        if expected_version is not None and task.version != expected_version:
            raise KabanError(
                f"Task modified by another agent, re-read required. Current version: {task.version}",
                ExitCode.CONFLICT,
            )

        changes = parse_input(UpdateTaskInput, updates).changes()
        if "title" in changes and changes["title"] is None:
            raise validation("Title cannot be empty")
        for field in ("files", "labels"):
            if field in changes and changes[field] is None:
                changes[field] = []
        if "priority" in changes and changes["priority"] is None:
            changes["priority"] = TaskPriority.MEDIUM
        actor = self._actor(actor)
        before = {field: getattr(task, field) for field in changes}

        conditions = [Task.id == task_id]
        if expected_version is not None:
            conditions.append(Task.version == expected_version)

        result = await self.db.execute(
            update(Task)
            .where(and_(*conditions))
            .values(**changes, version=Task.version + 1, updated_at=utcnow())
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise KabanError(
                "Task modified by another agent, re-read required",
                ExitCode.CONFLICT,
            )
        self.history.record_changes(task_id, before, changes, actor)
        await self._commit()

        logger.info("task_updated", task_id=task_id, fields=sorted(changes))
        return await self.get_task_or_raise(task_id)

    async def move_task(
        self,
        task_id: str,
        column_id: str,
        force: bool = False,
        validate_deps: bool = False,
        actor: Optional[str] = None,
    ) -> Task:
        """
        The single column transition.

        Re-appends the task at the end of the target column, bumps the
        version and stamps started_at (first entry into the in-progress
        column) and completed_at (first entry into a terminal column).

        The WIP count covers live tasks of the target column other than the
        one being moved. Archived rows and the mover itself are left out, so
        re-appending a task inside a full column is allowed; a count over
        every row of the column would reject that move.

        The WIP check reads the live count and then writes; it is not
        atomic with the write, so two concurrent movers can overshoot the
        limit by one.
        """
        actor = self._actor(actor)
        task = await self.get_task_or_raise(task_id)
        column = await self._require_column(column_id)
        from_column = task.column_id

        if column.wip_limit and not force:
            count = await self._live_count(column_id, exclude_task_id=task_id)
            if count >= column.wip_limit:
                raise validation(
                    f"Column '{column.name}' at WIP limit ({count}/{column.wip_limit}). "
                    "Move a task out first."
                )

        if column.is_terminal and validate_deps:
            check = await self.validate_dependencies(task_id)
            if not check.valid:
                raise validation(
                    f"Task '{task_id}' is blocked by incomplete dependencies: "
                    f"{', '.join(check.blocked_by)}"
                )

        now = utcnow()
        values: dict[str, Any] = {
            "column_id": column_id,
            "position": await self._next_position(column_id),
            "version": Task.version + 1,
            "updated_at": now,
        }
        if column.is_terminal and task.completed_at is None:
            values["completed_at"] = now
        if column_id == self.settings.IN_PROGRESS_COLUMN and task.started_at is None:
            values["started_at"] = now

        await self.db.execute(update(Task).where(Task.id == task_id).values(**values))
        self.history.record_changes(task_id, {"column_id": from_column}, {"column_id": column_id}, actor)
        await self._commit()

        logger.info(
            "task_moved",
            task_id=task_id,
            from_column=from_column,
            to_column=column_id,
            forced=force,
        )
        return await self.get_task_or_raise(task_id)

    async def complete_task(self, task_id: str, actor: Optional[str] = None) -> Task:
        """Move a task into the board's terminal column."""
        terminal = await self.board_service.get_terminal_column()
        if terminal is None:
            raise KabanError("No terminal column configured", ExitCode.GENERAL_ERROR)
        return await self.move_task(task_id, terminal.id, actor=actor)

    async def set_parent(
        self,
        task_id: str,
        parent_id: Optional[str],
        actor: Optional[str] = None,
    ) -> Task:
        """
        Attach a task under a parent (or detach with None).

        Parent chains form a tree; a parent that already descends from the
        task is rejected.
        """
        actor = self._actor(actor)
        task = await self.get_task_or_raise(task_id)

        if parent_id is not None:
            if parent_id == task_id:
                raise validation("Task cannot be its own parent")
            ancestor = await self.get_task_or_raise(parent_id)
            seen = {task_id}
            while ancestor.parent_id is not None:
                if ancestor.parent_id in seen:
                    raise validation(
                        f"Setting parent '{parent_id}' would create a cycle"
                    )
                seen.add(ancestor.id)
                next_ancestor = await self.get_task(ancestor.parent_id)
                if next_ancestor is None:
                    break
                ancestor = next_ancestor

        if task.parent_id == parent_id:
            return task

        old_parent = task.parent_id
        await self.db.execute(
            update(Task)
            .where(Task.id == task_id)
            .values(parent_id=parent_id, version=Task.version + 1, updated_at=utcnow())
        )
        self.history.record_changes(task_id, {"parent_id": old_parent}, {"parent_id": parent_id}, actor)
        await self._commit()
        return await self.get_task_or_raise(task_id)

    # ==========================================================================
    # Dependencies
    # ==========================================================================

    async def add_dependency(
        self,
        task_id: str,
        depends_on_id: str,
        actor: Optional[str] = None,
    ) -> Task:
        if task_id == depends_on_id:
            raise validation("Task cannot depend on itself")

        actor = self._actor(actor)
        task = await self.get_task_or_raise(task_id)
        await self.get_task_or_raise(depends_on_id)

        if depends_on_id in task.depends_on:
            return task

        await self._set_depends_on(task, [*task.depends_on, depends_on_id], actor)
        return await self.get_task_or_raise(task_id)

    async def remove_dependency(
        self,
        task_id: str,
        depends_on_id: str,
        actor: Optional[str] = None,
    ) -> Task:
        actor = self._actor(actor)
        task = await self.get_task_or_raise(task_id)

        if depends_on_id not in task.depends_on:
            return task

        await self._set_depends_on(
            task,
            [dep for dep in task.depends_on if dep != depends_on_id],
            actor,
        )
        return await self.get_task_or_raise(task_id)

    async def _set_depends_on(self, task: Task, depends_on: list[str], actor: Optional[str]) -> None:
        old = list(task.depends_on)
        await self.db.execute(
            update(Task)
            .where(Task.id == task.id)
            .values(
                depends_on=depends_on,
                version=Task.version + 1,
                updated_at=utcnow(),
            )
        )
        self.history.record_changes(task.id, {"depends_on": old}, {"depends_on": depends_on}, actor)
        await self._commit()

    async def validate_dependencies(self, task_id: str) -> DependencyCheck:
        """Dependencies that have not reached the terminal column."""
        task = await self.get_task_or_raise(task_id)
        if not task.depends_on:
            return DependencyCheck(valid=True, blocked_by=[])

        terminal = await self.board_service.get_terminal_column()
        if terminal is None:
            return DependencyCheck(valid=True, blocked_by=[])

        result = await self.db.execute(
            select(Task.id, Task.column_id).where(Task.id.in_(task.depends_on))
        )
        columns = dict(result.all())
        # Deleted dependencies no longer block
        blocked_by = [
            dep_id for dep_id in task.depends_on
            if dep_id in columns and columns[dep_id] != terminal.id
        ]
        return DependencyCheck(valid=not blocked_by, blocked_by=blocked_by)

    async def get_actionable_tasks(self, column_id: Optional[str] = None) -> list[Task]:
        """
        Live tasks with no blocked reason and every dependency completed.

        Without a column, tasks already in the terminal column are left out.
        """
        terminal = await self.board_service.get_terminal_column()
        tasks = await self.list_tasks(column_id=column_id)
        if column_id is None and terminal is not None:
            tasks = [t for t in tasks if t.column_id != terminal.id]

        actionable = []
        for task in tasks:
            if task.blocked_reason:
                continue
            if task.depends_on and not (await self.validate_dependencies(task.id)).valid:
                continue
            actionable.append(task)
        return actionable

    # ==========================================================================
    # Delete
    # ==========================================================================

    async def _delete_rows(self, task_ids: list[str], actor: Optional[str] = None) -> None:
        """Remove tasks plus the links and sync mappings pointing at them."""
        await self.db.execute(
            delete(TaskLink).where(
                or_(TaskLink.from_task_id.in_(task_ids), TaskLink.to_task_id.in_(task_ids))
            )
        )
        await self.db.execute(delete(SyncMapping).where(SyncMapping.task_id.in_(task_ids)))
        await self.db.execute(
            update(Task).where(Task.parent_id.in_(task_ids)).values(parent_id=None)
        )
        await self.db.execute(delete(Task).where(Task.id.in_(task_ids)))
        self.history.record_deletes(task_ids, actor)

    async def delete_task(self, task_id: str, actor: Optional[str] = None) -> None:
        """Hard delete. The task's history is kept and ends with a DELETE row."""
        actor = self._actor(actor)
        await self.get_task_or_raise(task_id)
        await self._delete_rows([task_id], actor)
        await self._commit()
        logger.info("task_deleted", task_id=task_id)

    # ==========================================================================
    # Archive
    # ==========================================================================

    async def archive_tasks(
        self,
        criteria: Union[ArchiveCriteria, dict[str, Any]],
        actor: Optional[str] = None,
    ) -> ArchiveResult:
        """
        Soft-delete every live task matching all given criteria.

        Raises:
            KabanError: VALIDATION when no criteria is given
        """
        criteria = parse_input(ArchiveCriteria, criteria)
        if criteria.is_empty:
            raise validation("At least one criteria must be provided")
        actor = self._actor(actor)

        query = select(Task.id).where(Task.archived.is_(False))
        if criteria.status:
            query = query.where(Task.column_id == criteria.status)
        if criteria.older_than:
            query = query.where(Task.created_at < criteria.older_than)
        if criteria.task_ids:
            query = query.where(Task.id.in_(criteria.task_ids))

        result = await self.db.execute(query)
        task_ids = list(result.scalars().all())
        if not task_ids:
            return ArchiveResult(archived_count=0, task_ids=[])

        now = utcnow()
        await self.db.execute(
            update(Task)
            .where(Task.id.in_(task_ids))
            .values(
                archived=True,
                archived_at=now,
                updated_at=now,
                version=Task.version + 1,
            )
        )
        for task_id in task_ids:
            self.history.record_changes(task_id, {"archived": False}, {"archived": True}, actor)
        await self._commit()

        logger.info("tasks_archived", count=len(task_ids))
        return ArchiveResult(archived_count=len(task_ids), task_ids=task_ids)

    async def restore_task(
        self,
        task_id: str,
        column_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Task:
        """
        Bring an archived task back, optionally into another column.

        WIP limits are not checked: restoring recovers existing work.
        """
        actor = self._actor(actor)
        task = await self.get_task_or_raise(task_id)
        if not task.archived:
            raise validation(f"Task '{task_id}' is not archived")

        before = {"archived": True, "column_id": task.column_id}
        values: dict[str, Any] = {
            "archived": False,
            "archived_at": None,
            "version": Task.version + 1,
            "updated_at": utcnow(),
        }
        if column_id and column_id != task.column_id:
            await self._require_column(column_id)
            values["column_id"] = column_id
            values["position"] = await self._next_position(column_id)

        await self.db.execute(update(Task).where(Task.id == task_id).values(**values))
        self.history.record_changes(
            task_id,
            before,
            {"archived": False, "column_id": values.get("column_id", before["column_id"])},
            actor,
        )
        await self._commit()

        logger.info(
            "task_restored",
            task_id=task_id,
            column=values.get("column_id", before["column_id"]),
        )
        return await self.get_task_or_raise(task_id)

    async def search_archive(
        self,
        query: str,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Task], int]:
        """
        Page of archived tasks matching every query term, plus the total.

        An empty query lists all archived tasks.
        """
        conditions = [Task.archived.is_(True)]
        for term in query.split():
            pattern = f"%{_escape_like(term)}%"
            conditions.append(or_(
                Task.title.ilike(pattern, escape="\\"),
                Task.description.ilike(pattern, escape="\\"),
            ))

        count_result = await self.db.execute(
            select(func.count()).select_from(Task).where(*conditions)
        )
        total = count_result.scalar() or 0

        result = await self.db.execute(
            select(Task)
            .where(*conditions)
            .order_by(Task.archived_at, Task.id)
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all()), total

    async def purge_archive(
        self,
        older_than: Optional[datetime] = None,
        actor: Optional[str] = None,
    ) -> DeleteResult:
        """Hard-delete archived tasks, optionally only those archived before a date."""
        actor = self._actor(actor)
        query = select(Task.id).where(Task.archived.is_(True))
        if older_than is not None:
            query = query.where(Task.archived_at < as_utc(older_than))

        result = await self.db.execute(query)
        task_ids = list(result.scalars().all())
        if not task_ids:
            return DeleteResult(deleted_count=0)

        await self._delete_rows(task_ids, actor)
        await self._commit()

        logger.info("archive_purged", count=len(task_ids))
        return DeleteResult(deleted_count=len(task_ids))

    async def reset_board(self) -> DeleteResult:
        """
        Hard-delete every task along with the whole task history.

        Confirmation is the caller's job.
        """
        result = await self.db.execute(select(func.count()).select_from(Task))
        count = result.scalar() or 0
        if count == 0:
            return DeleteResult(deleted_count=0)

        await self.db.execute(delete(TaskLink))
        await self.db.execute(delete(SyncMapping))
        await self.db.execute(update(Task).values(parent_id=None))
        await self.db.execute(delete(Task))
        await self.db.execute(delete(TaskHistory))
        await self._commit()

        logger.warning("board_reset", deleted=count)
        return DeleteResult(deleted_count=count)
