"""
Task history - the per-task change log.

Rows are added to the caller's session and land in the same commit as the
change they describe. TaskService writes them; nothing else does.
"""

import enum
import json
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import select

from kaban.core.ids import as_utc
from kaban.core.models import HistoryEvent, TaskHistory
from kaban.core.services.base import BoardStoreService

DEFAULT_HISTORY_LIMIT = 50


def render_value(value: Any) -> Optional[str]:
    """Text form of a field value; None stays None."""
    if value is None:
        return None
    if isinstance(value, enum.Enum):
        return str(value.value)
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)


class HistoryService(BoardStoreService):
    """Writes and reads TaskHistory rows."""

    def record(
        self,
        task_id: str,
        event_type: HistoryEvent,
        actor: Optional[str] = None,
        field_name: Optional[str] = None,
        old_value: Any = None,
        new_value: Any = None,
    ) -> None:
        self.db.add(TaskHistory(
            task_id=task_id,
            event_type=event_type,
            field_name=field_name,
            old_value=render_value(old_value),
            new_value=render_value(new_value),
            actor=actor,
        ))

    def record_changes(
        self,
        task_id: str,
        before: dict[str, Any],
        after: dict[str, Any],
        actor: Optional[str] = None,
    ) -> list[str]:
        """One UPDATE row per field whose rendered value changed."""
        changed = []
        for field_name, new_value in after.items():
            old_text = render_value(before.get(field_name))
            new_text = render_value(new_value)
            if old_text == new_text:
                continue
            self.db.add(TaskHistory(
                task_id=task_id,
                event_type=HistoryEvent.UPDATE,
                field_name=field_name,
                old_value=old_text,
                new_value=new_text,
                actor=actor,
            ))
            changed.append(field_name)
        return changed

    def record_deletes(self, task_ids: Iterable[str], actor: Optional[str] = None) -> None:
        for task_id in task_ids:
            self.record(task_id, HistoryEvent.DELETE, actor)

    async def get_task_history(
        self,
        task_id: str,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[TaskHistory]:
        """Newest first. Deleted tasks keep their history."""
        result = await self.db.execute(
            select(TaskHistory)
            .where(TaskHistory.task_id == task_id)
            .order_by(TaskHistory.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
