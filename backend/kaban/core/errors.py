"""
Kaban - Error Taxonomy
======================

Every core failure surfaces as a KabanError carrying a small integer code.
Callers (CLI, TUI, MCP, HTTP) translate the code into exit codes or
user-facing messages.
"""

import enum
from dataclasses import dataclass
from typing import Any, Awaitable, Generic, TypeVar, Union

T = TypeVar("T")


class ExitCode(enum.IntEnum):
    """Error codes shared by every consumer."""
    SUCCESS = 0
    GENERAL_ERROR = 1
    NOT_FOUND = 2
    CONFLICT = 3
    VALIDATION = 4


class KabanError(Exception):
    """Typed core error."""

    def __init__(self, message: str, code: ExitCode = ExitCode.GENERAL_ERROR):
        super().__init__(message)
        self.message = message
        self.code = ExitCode(code)

    def __repr__(self) -> str:
        return f"<KabanError {self.code.name}: {self.message}>"


def not_found(kind: str, identifier: str) -> KabanError:
    return KabanError(f"{kind} '{identifier}' not found", ExitCode.NOT_FOUND)


def validation(message: str) -> KabanError:
    return KabanError(message, ExitCode.VALIDATION)


# ==========================================================================
# Result type
# ==========================================================================

@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying the value."""
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying the taxonomy code and message."""
    code: ExitCode
    message: str

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[Any], Err]


async def capture(awaitable: Awaitable[T]) -> Result:
    """
    Await a service call and fold a KabanError into an Err.

    Anything that is not a KabanError is reported as GENERAL_ERROR, so a
    caller iterating a batch can keep going.
    """
    try:
        return Ok(await awaitable)
    except KabanError as exc:
        return Err(exc.code, exc.message)
    except Exception as exc:  # noqa: BLE001 - boundary between batch items
        return Err(ExitCode.GENERAL_ERROR, str(exc) or exc.__class__.__name__)
