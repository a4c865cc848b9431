"""
The board as seen by the sync engine.

SyncEngine only talks to a BoardClient. LocalBoardClient runs the calls
against the services of an open KabanContext.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from kaban.core.context import KabanContext
from kaban.core.errors import ExitCode, KabanError
from kaban.core.ids import utcnow
from kaban.core.models import SyncMapping, Task


def _storage_error(exc: SQLAlchemyError) -> KabanError:
    return KabanError(f"Storage error: {exc}", ExitCode.GENERAL_ERROR)


@dataclass(frozen=True)
class BoardTask:
    id: str
    title: str
    column_id: str

    @classmethod
    def from_task(cls, task: Task) -> "BoardTask":
        return cls(id=task.id, title=task.title, column_id=task.column_id)


class BoardClient(Protocol):
    async def board_exists(self) -> bool: ...

    async def list_tasks(self) -> list[BoardTask]: ...

    async def find_mapped_task(self, external_id: str) -> Optional[BoardTask]: ...

    async def record_mapping(self, external_id: str, task_id: str) -> None: ...

    async def add_task(self, title: str, column_id: str) -> BoardTask: ...

    async def move_task(self, task_id: str, column_id: str) -> BoardTask: ...

    async def complete_task(self, task_id: str) -> BoardTask: ...


class LocalBoardClient:
    """BoardClient backed by the in-process services."""

    def __init__(self, context: KabanContext, agent: Optional[str] = None):
        self.context = context
        self.agent = agent or context.settings.DEFAULT_AGENT

    async def board_exists(self) -> bool:
        try:
            return await self.context.boards.get_board() is not None
        except SQLAlchemyError as exc:
            raise _storage_error(exc) from exc

    async def list_tasks(self) -> list[BoardTask]:
        try:
            tasks = await self.context.tasks.list_tasks()
        except SQLAlchemyError as exc:
            raise _storage_error(exc) from exc
        return [BoardTask.from_task(task) for task in tasks]

    async def find_mapped_task(self, external_id: str) -> Optional[BoardTask]:
        """Live task previously synced from this external id."""
        try:
            result = await self.context.session.execute(
                select(Task)
                .join(SyncMapping, SyncMapping.task_id == Task.id)
                .where(SyncMapping.external_id == external_id, Task.archived.is_(False))
            )
            task = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise _storage_error(exc) from exc
        return BoardTask.from_task(task) if task else None

    async def record_mapping(self, external_id: str, task_id: str) -> None:
        session = self.context.session
        try:
            mapping = await session.get(SyncMapping, external_id)
            if mapping is None:
                session.add(SyncMapping(external_id=external_id, task_id=task_id))
            elif mapping.task_id != task_id:
                mapping.task_id = task_id
                mapping.updated_at = utcnow()
            else:
                return
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            raise _storage_error(exc) from exc

    async def add_task(self, title: str, column_id: str) -> BoardTask:
        task = await self.context.tasks.add_task(title, column_id=column_id, created_by=self.agent)
        return BoardTask.from_task(task)

    async def move_task(self, task_id: str, column_id: str) -> BoardTask:
        task = await self.context.tasks.move_task(task_id, column_id, actor=self.agent)
        return BoardTask.from_task(task)

    async def complete_task(self, task_id: str) -> BoardTask:
        task = await self.context.tasks.complete_task(task_id, actor=self.agent)
        return BoardTask.from_task(task)
