"""
Kaban - Sync API
================

Applies an agent todo batch to the board.
"""

from fastapi import APIRouter

from kaban.api.deps import Context
from kaban.sync.client import LocalBoardClient
from kaban.sync.engine import SyncEngine
from kaban.sync.schemas import SyncConfig, SyncResult, TodoWriteInput

router = APIRouter(prefix="/sync", tags=["Sync"])


@router.post(
    "",
    response_model=SyncResult,
    summary="Sync a todo batch",
)
async def sync_todos(payload: TodoWriteInput, context: Context) -> SyncResult:
    """Per-item failures are reported in `errors`; the request still succeeds."""
    engine = SyncEngine(LocalBoardClient(context), SyncConfig.from_settings(context.settings))
    return await engine.sync(payload.todos)
