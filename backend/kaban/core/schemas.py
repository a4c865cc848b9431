"""
Kaban - Pydantic Schemas
========================

Board configuration, service inputs and response shapes.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from kaban.core.models import HistoryEvent, LinkType, TaskPriority
from kaban.core.validation import (
    DESCRIPTION_MAX_LENGTH,
    AgentName,
    ColumnId,
    Labels,
    TaskId,
    Title,
    UtcDateTime,
)


# ==========================================================================
# Base Schemas
# ==========================================================================

class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


# ==========================================================================
# Board Configuration
# ==========================================================================

class ColumnConfig(BaseSchema):
    """One configured column."""

    id: ColumnId
    name: str = Field(min_length=1, max_length=50)
    wip_limit: Optional[int] = Field(None, gt=0, alias="wipLimit")
    is_terminal: bool = Field(False, alias="isTerminal")


class BoardDefaults(BaseSchema):
    column: ColumnId = "todo"
    agent: AgentName = "user"


class BoardSettings(BaseSchema):
    name: str = Field(min_length=1, max_length=100)


class BoardConfig(BaseSchema):
    """Board name, ordered columns and defaults, as stored in config.json."""

    board: BoardSettings
    columns: list[ColumnConfig] = Field(min_length=1)
    defaults: BoardDefaults = Field(default_factory=BoardDefaults)

    @model_validator(mode="after")
    def check_columns(self) -> "BoardConfig":
        ids = [col.id for col in self.columns]
        if len(ids) != len(set(ids)):
            raise ValueError("Column IDs must be unique")
        if self.defaults.column not in ids:
            raise ValueError(f"Default column '{self.defaults.column}' is not configured")
        return self


DEFAULT_BOARD_CONFIG = BoardConfig(
    board=BoardSettings(name="Kaban Board"),
    columns=[
        ColumnConfig(id="backlog", name="Backlog"),
        ColumnConfig(id="todo", name="Todo"),
        ColumnConfig(id="in_progress", name="In Progress", wip_limit=3),
        ColumnConfig(id="review", name="Review", wip_limit=2),
        ColumnConfig(id="done", name="Done", is_terminal=True),
    ],
    defaults=BoardDefaults(column="todo", agent="user"),
)


def load_board_config(path: Union[str, Path]) -> BoardConfig:
    """Read a board config file, falling back to the default board."""
    path = Path(path)
    if not path.exists():
        return DEFAULT_BOARD_CONFIG
    return BoardConfig.model_validate(json.loads(path.read_text(encoding="utf-8")))


# ==========================================================================
# Task Inputs
# ==========================================================================

class AddTaskInput(BaseSchema):
    """Fields accepted when creating a task."""

    title: Title
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH)
    column_id: Optional[ColumnId] = Field(None, alias="columnId")
    created_by: Optional[AgentName] = Field(None, alias="createdBy")
    assigned_to: Optional[AgentName] = Field(None, alias="assignedTo")
    parent_id: Optional[TaskId] = Field(None, alias="parentId")
    depends_on: list[TaskId] = Field(default_factory=list, alias="dependsOn")
    files: list[str] = Field(default_factory=list)
    labels: Labels = Field(default_factory=list)
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[UtcDateTime] = Field(None, alias="dueDate")


class UpdateTaskInput(BaseSchema):
    """
    Partial update. Only fields explicitly set are applied, so passing
    `description=None` clears the description.
    """

    title: Optional[Title] = None
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH)
    assigned_to: Optional[AgentName] = Field(None, alias="assignedTo")
    files: Optional[list[str]] = None
    labels: Optional[Labels] = None
    blocked_reason: Optional[str] = Field(None, alias="blockedReason")
    priority: Optional[TaskPriority] = None
    due_date: Optional[UtcDateTime] = Field(None, alias="dueDate")

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, by_alias=False)


class ListTasksFilter(BaseSchema):
    column_id: Optional[ColumnId] = Field(None, alias="columnId")
    created_by: Optional[AgentName] = Field(None, alias="createdBy")
    assignee: Optional[AgentName] = None
    blocked_only: bool = Field(False, alias="blocked")
    include_archived: bool = Field(False, alias="includeArchived")


class ArchiveCriteria(BaseSchema):
    """Archive selection; given criteria combine with AND."""

    task_ids: Optional[list[str]] = Field(None, alias="taskIds")
    status: Optional[ColumnId] = None
    older_than: Optional[UtcDateTime] = Field(None, alias="olderThan")

    @property
    def is_empty(self) -> bool:
        return not (self.task_ids or self.status or self.older_than)


class PurgeCriteria(BaseSchema):
    older_than: Optional[UtcDateTime] = Field(None, alias="olderThan")


class MoveTaskRequest(BaseSchema):
    column_id: ColumnId = Field(alias="columnId")
    force: bool = False
    validate_deps: bool = Field(False, alias="validateDeps")


class RestoreTaskRequest(BaseSchema):
    column_id: Optional[ColumnId] = Field(None, alias="columnId")


class SetParentRequest(BaseSchema):
    parent_id: Optional[str] = Field(None, alias="parentId")


class DependencyRequest(BaseSchema):
    depends_on_id: str = Field(alias="dependsOnId")


class LinkCreate(BaseSchema):
    from_task_id: str = Field(alias="fromTaskId")
    to_task_id: str = Field(alias="toTaskId")
    link_type: LinkType = Field(alias="linkType")


# ==========================================================================
# Responses
# ==========================================================================

class BoardResponse(BaseSchema):
    id: str
    name: str
    revision: int
    created_at: datetime
    updated_at: datetime


class ColumnResponse(BaseSchema):
    id: str
    name: str
    position: int
    wip_limit: Optional[int] = None
    is_terminal: bool


class ColumnStatus(ColumnResponse):
    task_count: int


class BoardStatus(BaseSchema):
    board: BoardResponse
    columns: list[ColumnStatus]
    total_tasks: int
    archived_tasks: int


class TaskResponse(BaseSchema):
    id: str
    title: str
    description: Optional[str] = None
    column_id: str
    position: int
    created_by: str
    assigned_to: Optional[str] = None
    parent_id: Optional[str] = None
    depends_on: list[str]
    files: list[str]
    labels: list[str]
    blocked_reason: Optional[str] = None
    priority: TaskPriority
    due_date: Optional[datetime] = None
    version: int
    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    archived: bool
    archived_at: Optional[datetime] = None


class TaskHistoryResponse(BaseSchema):
    """One recorded change; values are text, or null when unset."""
    id: int
    task_id: str
    event_type: HistoryEvent
    field_name: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    actor: Optional[str] = None
    created_at: datetime


class ArchiveResult(BaseSchema):
    archived_count: int
    task_ids: list[str]


class SearchArchiveResult(BaseSchema):
    tasks: list[TaskResponse]
    total: int


class DeleteResult(BaseSchema):
    deleted_count: int


class DependencyCheck(BaseSchema):
    valid: bool
    blocked_by: list[str]


class SimilarTask(BaseSchema):
    task: TaskResponse
    similarity: float


class AddTaskCheckedResult(BaseSchema):
    task: Optional[TaskResponse] = None
    created: bool
    similar_tasks: list[SimilarTask]
    rejected: bool
    rejection_reason: Optional[str] = None


class LinkResponse(BaseSchema):
    id: int
    from_task_id: str
    to_task_id: str
    link_type: LinkType
    created_at: datetime


class ScoredTaskResponse(BaseSchema):
    task: TaskResponse
    score: float
    breakdown: dict[str, float]


class RevisionResponse(BaseSchema):
    revision: int


# ==========================================================================
# Error / Health
# ==========================================================================

class ErrorDetail(BaseSchema):
    message: str
    code: int


class ErrorResponse(BaseSchema):
    success: bool = False
    error: ErrorDetail


class HealthResponse(BaseSchema):
    status: str
    version: str
    environment: str
    database: str
