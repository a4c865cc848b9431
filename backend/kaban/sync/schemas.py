"""
Kaban - Sync Schemas
====================

Todo list wire shapes, the agent hook payload, sync configuration and the
per-batch result.
"""

import enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from kaban.core.config import CancelledPolicy, ConflictStrategy, Settings


class TodoStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TodoPriority(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ==========================================================================
# Todo list
# ==========================================================================

class TodoItem(BaseModel):
    """One item of an agent's todo list."""

    id: str = Field(min_length=1)
    content: str = Field(min_length=1, max_length=500)
    status: TodoStatus
    priority: TodoPriority


class TodoWriteInput(BaseModel):
    todos: list[TodoItem]


# ==========================================================================
# Hook payload
# ==========================================================================

class HookInput(BaseModel):
    """PostToolUse payload handed to the hook on stdin."""

    model_config = ConfigDict(extra="ignore")

    session_id: str
    transcript_path: str
    cwd: str
    permission_mode: str
    hook_event_name: Literal["PostToolUse"]
    tool_name: str
    tool_input: Any = None
    tool_response: Optional[Any] = None
    tool_use_id: str


class TodoWriteHookInput(HookInput):
    tool_name: Literal["TodoWrite"]
    tool_input: TodoWriteInput


# ==========================================================================
# Config / Result
# ==========================================================================

class SyncConfig(BaseModel):
    conflict_strategy: ConflictStrategy = "status_priority"
    cancelled_policy: CancelledPolicy = "skip"
    max_title_length: int = Field(200, ge=50, le=1000)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyncConfig":
        return cls(
            conflict_strategy=settings.SYNC_CONFLICT_STRATEGY,
            cancelled_policy=settings.SYNC_CANCELLED_POLICY,
            max_title_length=settings.SYNC_MAX_TITLE_LENGTH,
        )


class SyncResult(BaseModel):
    """Counts for one batch; success is False if any item failed."""

    success: bool = True
    created: int = 0
    moved: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)
