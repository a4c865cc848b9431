"""
Link Graph - typed edges between tasks.

`blocks` and `blocked_by` are stored as forced inverses: writing one side
writes the other in the same commit.
"""

from typing import Optional, Union

import structlog
from sqlalchemy import and_, delete, or_, select

from kaban.core.errors import not_found, validation
from kaban.core.ids import utcnow
from kaban.core.models import LinkType, Task, TaskLink
from kaban.core.services.base import BoardStoreService

logger = structlog.get_logger()


class LinkService(BoardStoreService):
    """Add, remove and query task links."""

    async def _require_task(self, task_id: str) -> None:
        result = await self.db.execute(select(Task.id).where(Task.id == task_id))
        if result.scalar_one_or_none() is None:
            raise not_found("Task", task_id)

    async def _find(self, from_id: str, to_id: str, link_type: LinkType) -> Optional[TaskLink]:
        result = await self.db.execute(
            select(TaskLink).where(
                TaskLink.from_task_id == from_id,
                TaskLink.to_task_id == to_id,
                TaskLink.link_type == link_type,
            )
        )
        return result.scalar_one_or_none()

    async def add_link(
        self,
        from_id: str,
        to_id: str,
        link_type: Union[LinkType, str],
    ) -> TaskLink:
        """
        Insert an edge, and its inverse for blocks/blocked_by.

        Re-adding an existing edge returns it unchanged.
        """
        link_type = LinkType(link_type)
        if from_id == to_id:
            raise validation("Cannot link a task to itself")
        await self._require_task(from_id)
        await self._require_task(to_id)

        existing = await self._find(from_id, to_id, link_type)
        inverse = link_type.inverse
        inverse_missing = (
            inverse is not None and await self._find(to_id, from_id, inverse) is None
        )
        if existing is not None and not inverse_missing:
            return existing

        now = utcnow()
        if existing is None:
            self.db.add(TaskLink(
                from_task_id=from_id,
                to_task_id=to_id,
                link_type=link_type,
                created_at=now,
            ))
        if inverse_missing:
            self.db.add(TaskLink(
                from_task_id=to_id,
                to_task_id=from_id,
                link_type=inverse,
                created_at=now,
            ))
        await self._commit()

        logger.info("link_added", from_task=from_id, to_task=to_id, link_type=link_type.value)
        return await self._find(from_id, to_id, link_type)

    async def remove_link(
        self,
        from_id: str,
        to_id: str,
        link_type: Union[LinkType, str],
    ) -> None:
        """Remove an edge and its forced inverse. Missing edges are ignored."""
        link_type = LinkType(link_type)
        edge = and_(
            TaskLink.from_task_id == from_id,
            TaskLink.to_task_id == to_id,
            TaskLink.link_type == link_type,
        )
        if link_type.inverse is not None:
            edge = or_(edge, and_(
                TaskLink.from_task_id == to_id,
                TaskLink.to_task_id == from_id,
                TaskLink.link_type == link_type.inverse,
            ))

        await self.db.execute(delete(TaskLink).where(edge))
        await self._commit()
        logger.info("link_removed", from_task=from_id, to_task=to_id, link_type=link_type.value)

    async def get_links_from(
        self,
        task_id: str,
        link_type: Optional[Union[LinkType, str]] = None,
    ) -> list[TaskLink]:
        query = select(TaskLink).where(TaskLink.from_task_id == task_id)
        if link_type is not None:
            query = query.where(TaskLink.link_type == LinkType(link_type))
        result = await self.db.execute(query.order_by(TaskLink.id))
        return list(result.scalars().all())

    async def get_links_to(
        self,
        task_id: str,
        link_type: Optional[Union[LinkType, str]] = None,
    ) -> list[TaskLink]:
        query = select(TaskLink).where(TaskLink.to_task_id == task_id)
        if link_type is not None:
            query = query.where(TaskLink.link_type == LinkType(link_type))
        result = await self.db.execute(query.order_by(TaskLink.id))
        return list(result.scalars().all())

    async def get_all_links(
        self,
        task_id: str,
        link_type: Optional[Union[LinkType, str]] = None,
    ) -> list[TaskLink]:
        """Edges touching the task in either direction."""
        query = select(TaskLink).where(
            or_(TaskLink.from_task_id == task_id, TaskLink.to_task_id == task_id)
        )
        if link_type is not None:
            query = query.where(TaskLink.link_type == LinkType(link_type))
        result = await self.db.execute(query.order_by(TaskLink.id))
        return list(result.scalars().all())

    async def get_blockers(self, task_id: str) -> list[str]:
        """Ids of tasks blocking this one."""
        links = await self.get_links_from(task_id, LinkType.BLOCKED_BY)
        return [link.to_task_id for link in links]

    async def get_blocking(self, task_id: str) -> list[str]:
        """Ids of tasks this one blocks."""
        links = await self.get_links_from(task_id, LinkType.BLOCKS)
        return [link.to_task_id for link in links]
