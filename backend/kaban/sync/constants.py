"""Fixed mappings between todo statuses and board columns."""

from kaban.sync.schemas import TodoStatus

# Higher wins under the status_priority strategy
STATUS_PRIORITY: dict[TodoStatus, int] = {
    TodoStatus.COMPLETED: 3,
    TodoStatus.IN_PROGRESS: 2,
    TodoStatus.PENDING: 1,
    TodoStatus.CANCELLED: 0,
}

STATUS_TO_COLUMN: dict[TodoStatus, str] = {
    TodoStatus.PENDING: "todo",
    TodoStatus.IN_PROGRESS: "in_progress",
    TodoStatus.COMPLETED: "done",
    TodoStatus.CANCELLED: "backlog",
}

COLUMN_TO_STATUS: dict[str, TodoStatus] = {
    "backlog": TodoStatus.PENDING,
    "todo": TodoStatus.PENDING,
    "in_progress": TodoStatus.IN_PROGRESS,
    "review": TodoStatus.IN_PROGRESS,
    "done": TodoStatus.COMPLETED,
}

TERMINAL_COLUMN = STATUS_TO_COLUMN[TodoStatus.COMPLETED]
BACKLOG_COLUMN = STATUS_TO_COLUMN[TodoStatus.CANCELLED]


def column_to_status(column_id: str) -> TodoStatus:
    """Unknown columns read as pending."""
    return COLUMN_TO_STATUS.get(column_id, TodoStatus.PENDING)
