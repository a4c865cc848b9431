"""
Conflict Resolver - decides whether the todo item or the board wins.
"""

from dataclasses import dataclass
from typing import Literal

from kaban.core.config import CancelledPolicy, ConflictStrategy
from kaban.sync.constants import (
    STATUS_PRIORITY,
    STATUS_TO_COLUMN,
    TERMINAL_COLUMN,
    column_to_status,
)
from kaban.sync.schemas import TodoItem, TodoStatus

Winner = Literal["todo", "kaban"]


@dataclass(frozen=True)
class ResolveResult:
    winner: Winner
    target_column: str
    reason: str


class ConflictResolver:
    """
    Resolves a todo item against the board task it matched.

    Under status_priority a completed todo always wins and a task already
    in the terminal column always stays there; otherwise the higher status
    priority wins and a tie goes to the todo item.
    """

    def __init__(self, strategy: ConflictStrategy = "status_priority"):
        self.strategy = strategy

    def resolve(self, todo: TodoItem, column_id: str) -> ResolveResult:
        todo_column = STATUS_TO_COLUMN[todo.status]

        if self.strategy == "todowrite_wins":
            return ResolveResult("todo", todo_column, "todowrite_wins strategy")

        if self.strategy == "kaban_wins":
            return ResolveResult("kaban", column_id, "kaban_wins strategy")

        if todo.status == TodoStatus.COMPLETED:
            return ResolveResult("todo", TERMINAL_COLUMN, "completed status always wins (terminal state)")

        if column_id == TERMINAL_COLUMN:
            return ResolveResult("kaban", TERMINAL_COLUMN, "board task already completed (terminal state)")

        todo_priority = STATUS_PRIORITY[todo.status]
        board_priority = STATUS_PRIORITY[column_to_status(column_id)]

        if todo_priority > board_priority:
            return ResolveResult(
                "todo",
                todo_column,
                f"todo status priority ({todo_priority}) > board ({board_priority})",
            )
        if board_priority > todo_priority:
            return ResolveResult(
                "kaban",
                column_id,
                f"board status priority ({board_priority}) > todo ({todo_priority})",
            )
        return ResolveResult("todo", todo_column, "equal priority, todo wins (most recent)")

    @staticmethod
    def should_sync(todo: TodoItem, cancelled_policy: CancelledPolicy) -> bool:
        """Cancelled items only sync when filed to the backlog."""
        if todo.status == TodoStatus.CANCELLED:
            return cancelled_policy == "backlog"
        return True
