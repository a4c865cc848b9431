"""
Kaban - Database Models
=======================

SQLAlchemy models for the board, its columns, tasks, task history, task
links and the external todo id mappings used by the sync engine.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from kaban.core.database import Base
from kaban.core.ids import new_ulid, utcnow


# ==========================================================================
# Enums
# ==========================================================================

class LinkType(str, enum.Enum):
    """Typed edge between two tasks."""
    BLOCKS = "blocks"
    BLOCKED_BY = "blocked_by"
    RELATED = "related"

    @property
    def inverse(self) -> Optional["LinkType"]:
        """Forced inverse edge type, if any."""
        if self is LinkType.BLOCKS:
            return LinkType.BLOCKED_BY
        if self is LinkType.BLOCKED_BY:
            return LinkType.BLOCKS
        return None


class HistoryEvent(str, enum.Enum):
    """Kind of change recorded in a task's history."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class TaskPriority(str, enum.Enum):
    """Declared priority tier, read by the priority scorer."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ==========================================================================
# Mixins
# ==========================================================================

class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )


# ==========================================================================
# Models
# ==========================================================================

class Board(Base, TimestampMixin):
    """
    The single board of a store.

    `revision` is the change counter pollers watch; every committed
    mutation made through the services bumps it.
    """

    __tablename__ = "boards"

    id: Mapped[str] = mapped_column(
        String(26),
        primary_key=True,
        default=new_ulid,
    )
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    revision: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Board {self.name}>"


class Column(Base):
    """A named stage; may carry a WIP limit and/or be terminal."""

    __tablename__ = "columns"

    id: Mapped[str] = mapped_column(
        String(50),
        primary_key=True,
    )
    board_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("boards.id"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    wip_limit: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )
    is_terminal: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Column {self.id}>"


class Task(Base, TimestampMixin):
    """
    Work item living in exactly one column.

    `version` starts at 1 and grows by one on every mutation; it is the
    optimistic concurrency token handed to writers.
    """

    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(
        String(26),
        primary_key=True,
        default=new_ulid,
    )
    title: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    column_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("columns.id"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    created_by: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    assigned_to: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(26),
        ForeignKey("tasks.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    depends_on: Mapped[list[str]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    files: Mapped[list[str]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    labels: Mapped[list[str]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    blocked_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    priority: Mapped[TaskPriority] = mapped_column(
        Enum(TaskPriority),
        default=TaskPriority.MEDIUM,
        nullable=False,
    )
    due_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    version: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
    )

    # Lifecycle timestamps
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    archived: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        index=True,
    )
    archived_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Task {self.id} {self.column_id} v{self.version}>"


class TaskHistory(Base):
    """
    One recorded change to a task.

    UPDATE rows carry the field name with its old and new values rendered
    as text. Rows outlive their task, so `task_id` is not a foreign key.
    """

    __tablename__ = "task_history"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    task_id: Mapped[str] = mapped_column(
        String(26),
        nullable=False,
        index=True,
    )
    event_type: Mapped[HistoryEvent] = mapped_column(
        Enum(HistoryEvent),
        nullable=False,
    )
    field_name: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )
    old_value: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    new_value: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    actor: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<TaskHistory {self.task_id} {self.event_type.value} {self.field_name or ''}>"


class TaskLink(Base):
    """Directed, typed edge between two tasks."""

    __tablename__ = "task_links"
    __table_args__ = (
        UniqueConstraint("from_task_id", "to_task_id", "link_type", name="uq_task_links_edge"),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    from_task_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    to_task_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    link_type: Mapped[LinkType] = mapped_column(
        Enum(LinkType),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<TaskLink {self.from_task_id} -{self.link_type.value}-> {self.to_task_id}>"


class SyncMapping(Base, TimestampMixin):
    """External todo id first seen by the sync engine, and its task."""

    __tablename__ = "sync_mappings"

    external_id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )
    task_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<SyncMapping {self.external_id} -> {self.task_id}>"
