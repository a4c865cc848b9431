"""
Per-invocation context.

One KabanContext is opened per HTTP request or hook run. It owns a single
session and the services built on it, so nothing reaches for a global
store handle.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from kaban.core.config import Settings, get_settings
from kaban.core.database import Database
from kaban.core.schemas import BoardConfig
from kaban.core.services import (
    BoardService,
    HistoryService,
    LinkService,
    ScoringService,
    TaskService,
)


@dataclass
class KabanContext:
    settings: Settings
    session: AsyncSession
    boards: BoardService
    tasks: TaskService
    history: HistoryService
    links: LinkService
    scoring: ScoringService

    @classmethod
    def build(cls, session: AsyncSession, settings: Optional[Settings] = None) -> "KabanContext":
        settings = settings or get_settings()
        boards = BoardService(session)
        links = LinkService(session)
        tasks = TaskService(session, boards, settings)
        return cls(
            settings=settings,
            session=session,
            boards=boards,
            tasks=tasks,
            history=tasks.history,
            links=links,
            scoring=ScoringService(links),
        )

    async def ensure_board(self, config: BoardConfig) -> None:
        """Initialize the board from `config` unless one already exists."""
        if await self.boards.get_board() is None:
            await self.boards.initialize_board(config)


@asynccontextmanager
async def open_context(
    database: Database,
    settings: Optional[Settings] = None,
) -> AsyncGenerator[KabanContext, None]:
    async with database.session() as session:
        yield KabanContext.build(session, settings)
