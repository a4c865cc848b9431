"""
Board Directory - board identity and the ordered column list.
"""

from typing import Optional

import structlog
from sqlalchemy import func, select

from kaban.core.errors import validation
from kaban.core.ids import new_ulid, utcnow
from kaban.core.models import Board, Column, Task
from kaban.core.schemas import BoardConfig, BoardResponse, BoardStatus, ColumnStatus
from kaban.core.services.base import BoardStoreService

logger = structlog.get_logger()


class BoardService(BoardStoreService):
    """
    Owns the board row and its columns.

    Columns are written once by initialize_board and only read afterwards.
    """

    async def initialize_board(self, config: BoardConfig) -> Board:
        """
        Create the board and one column per configured column.

        Configured order becomes `position`. Calling this against a store
        that already has a board is a caller error.
        """
        if await self.get_board() is not None:
            raise validation("Board already initialized")

        now = utcnow()
        board = Board(
            id=new_ulid(),
            name=config.board.name,
            revision=0,
            created_at=now,
            updated_at=now,
        )
        self.db.add(board)
        await self.db.flush()

        for position, col in enumerate(config.columns):
            self.db.add(Column(
                id=col.id,
                board_id=board.id,
                name=col.name,
                position=position,
                wip_limit=col.wip_limit,
                is_terminal=col.is_terminal,
            ))

        await self._commit()
        logger.info("board_initialized", board_id=board.id, columns=len(config.columns))
        return board

    async def get_board(self) -> Optional[Board]:
        result = await self.db.execute(
            select(Board).limit(1).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_columns(self) -> list[Column]:
        result = await self.db.execute(select(Column).order_by(Column.position))
        return list(result.scalars().all())

    async def get_column(self, column_id: str) -> Optional[Column]:
        result = await self.db.execute(select(Column).where(Column.id == column_id))
        return result.scalar_one_or_none()

    async def get_terminal_column(self) -> Optional[Column]:
        """First terminal column by position, or None."""
        result = await self.db.execute(
            select(Column)
            .where(Column.is_terminal.is_(True))
            .order_by(Column.position)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_revision(self) -> int:
        """Change counter polled by consumers to detect external writes."""
        result = await self.db.execute(select(Board.revision).limit(1))
        return result.scalar_one_or_none() or 0

    async def get_status(self) -> Optional[BoardStatus]:
        """Board, per-column live task counts and totals."""
        board = await self.get_board()
        if board is None:
            return None

        counts_result = await self.db.execute(
            select(Task.column_id, func.count())
            .where(Task.archived.is_(False))
            .group_by(Task.column_id)
        )
        counts = dict(counts_result.all())

        archived_result = await self.db.execute(
            select(func.count()).select_from(Task).where(Task.archived.is_(True))
        )

        columns = [
            ColumnStatus(
                id=col.id,
                name=col.name,
                position=col.position,
                wip_limit=col.wip_limit,
                is_terminal=col.is_terminal,
                task_count=counts.get(col.id, 0),
            )
            for col in await self.get_columns()
        ]

        return BoardStatus(
            board=BoardResponse.model_validate(board),
            columns=columns,
            total_tasks=sum(c.task_count for c in columns),
            archived_tasks=archived_result.scalar() or 0,
        )
