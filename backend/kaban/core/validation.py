"""
Input validation shared by the services and the pydantic schemas.

The check functions raise ValueError so pydantic can use them as field
validators; the validate_* wrappers turn that into a VALIDATION KabanError.
"""

import re
from datetime import datetime
from typing import Annotated, Callable

from pydantic import AfterValidator

from kaban.core.errors import validation
from kaban.core.ids import as_utc, is_ulid

TITLE_MAX_LENGTH = 200
AGENT_NAME_MAX_LENGTH = 50
COLUMN_ID_MAX_LENGTH = 50
LABEL_MAX_LENGTH = 50
DESCRIPTION_MAX_LENGTH = 5000

_AGENT_NAME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]*$")
_COLUMN_ID_RE = re.compile(r"^[a-z0-9_]+$")


def check_title(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("Title cannot be empty")
    if len(value) > TITLE_MAX_LENGTH:
        raise ValueError(f"Title cannot exceed {TITLE_MAX_LENGTH} characters")
    return value


def check_agent_name(value: str) -> str:
    if not value:
        raise ValueError("Agent name cannot be empty")
    if len(value) > AGENT_NAME_MAX_LENGTH:
        raise ValueError(f"Agent name cannot exceed {AGENT_NAME_MAX_LENGTH} characters")
    if not _AGENT_NAME_RE.match(value):
        raise ValueError("Agent name must start with letter, then alphanumeric with _ or -")
    return value.lower()


def check_column_id(value: str) -> str:
    if not value:
        raise ValueError("Column ID cannot be empty")
    if len(value) > COLUMN_ID_MAX_LENGTH:
        raise ValueError(f"Column ID cannot exceed {COLUMN_ID_MAX_LENGTH} characters")
    if not _COLUMN_ID_RE.match(value):
        raise ValueError("Column ID must be lowercase alphanumeric with underscores")
    return value


def check_task_id(value: str) -> str:
    if not is_ulid(value):
        raise ValueError(f"Invalid task ID '{value}'")
    return value


def check_labels(values: list[str]) -> list[str]:
    for label in values:
        if len(label) > LABEL_MAX_LENGTH:
            raise ValueError(f"Label cannot exceed {LABEL_MAX_LENGTH} characters")
    return values


# Annotated types for pydantic schemas
Title = Annotated[str, AfterValidator(check_title)]
AgentName = Annotated[str, AfterValidator(check_agent_name)]
ColumnId = Annotated[str, AfterValidator(check_column_id)]
TaskId = Annotated[str, AfterValidator(check_task_id)]
Labels = Annotated[list[str], AfterValidator(check_labels)]
# Offsets are converted, naive values are taken as UTC
UtcDateTime = Annotated[datetime, AfterValidator(as_utc)]


def _wrap(check: Callable[[str], str], value: str) -> str:
    try:
        return check(value)
    except ValueError as exc:
        raise validation(str(exc)) from exc


def validate_title(title: str) -> str:
    return _wrap(check_title, title)


def validate_agent_name(name: str) -> str:
    return _wrap(check_agent_name, name)


def validate_column_id(column_id: str) -> str:
    return _wrap(check_column_id, column_id)


def validate_task_id(task_id: str) -> str:
    return _wrap(check_task_id, task_id)
