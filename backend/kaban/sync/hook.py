"""
Agent hook entry point (`kaban-hook`).

Reads a PostToolUse payload from stdin. Anything other than a well-formed
TodoWrite call exits 0 without touching the board; otherwise one sync runs
and the exit code reports whether every item synced.
"""

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Optional

import structlog
from pydantic import ValidationError
from sqlalchemy.engine import make_url

from kaban.core.config import Settings, get_settings
from kaban.core.context import open_context
from kaban.core.database import Database
from kaban.core.errors import ExitCode, KabanError
from kaban.core.logging import configure_logging
from kaban.sync.client import LocalBoardClient
from kaban.sync.engine import SyncEngine
from kaban.sync.schemas import HookInput, SyncConfig, SyncResult, TodoWriteHookInput

logger = structlog.get_logger()


def parse_payload(raw: str) -> Optional[TodoWriteHookInput]:
    """TodoWrite payload, or None for other tools and malformed input."""
    try:
        data = json.loads(raw)
        hook_input = HookInput.model_validate(data)
    except (json.JSONDecodeError, ValidationError):
        return None
    if hook_input.tool_name != "TodoWrite":
        return None
    try:
        return TodoWriteHookInput.model_validate(data)
    except ValidationError:
        return None


async def run_sync(
    payload: TodoWriteHookInput,
    database: Database,
    settings: Settings,
) -> SyncResult:
    async with open_context(database, settings) as context:
        engine = SyncEngine(LocalBoardClient(context), SyncConfig.from_settings(settings))
        return await engine.sync(payload.tool_input.todos)


def _store_exists(settings: Settings) -> bool:
    if not settings.is_sqlite:
        return True
    path = make_url(settings.DATABASE_URL).database
    return not path or path == ":memory:" or Path(path).exists()


async def handle(raw: str, settings: Settings, database: Optional[Database] = None) -> int:
    """Process one payload and return the process exit code."""
    payload = parse_payload(raw)
    if payload is None:
        return ExitCode.SUCCESS

    owns_database = database is None
    if owns_database:
        if not _store_exists(settings):
            logger.info("sync_skipped_no_store", cwd=payload.cwd)
            return ExitCode.SUCCESS
        database = Database(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

    try:
        result = await run_sync(payload, database, settings)
    except KabanError as exc:
        logger.error("sync_failed", code=exc.code.name, error=exc.message)
        return ExitCode.GENERAL_ERROR
    finally:
        if owns_database:
            await database.dispose()

    for error in result.errors:
        logger.warning("sync_item_failed", error=error)
    return ExitCode.SUCCESS if result.success else ExitCode.GENERAL_ERROR


def main() -> None:
    settings = get_settings()
    configure_logging(settings, stream=sys.stderr)

    raw = sys.stdin.read()
    payload = parse_payload(raw)
    # Relative store paths are resolved against the project the agent runs in
    if payload is not None and os.path.isdir(payload.cwd):
        os.chdir(payload.cwd)

    sys.exit(int(asyncio.run(handle(raw, settings))))


if __name__ == "__main__":
    main()
