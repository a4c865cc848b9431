"""
Kaban - Todo Sync
=================

Mirrors an agent's todo list onto the board: each todo item is matched to a
task, conflicts are resolved by the configured strategy and the task is
created or moved accordingly.
"""

from kaban.sync.conflict_resolver import ConflictResolver, ResolveResult
from kaban.sync.engine import SyncEngine
from kaban.sync.schemas import SyncConfig, SyncResult, TodoItem, TodoWriteInput

__all__ = [
    "ConflictResolver",
    "ResolveResult",
    "SyncConfig",
    "SyncEngine",
    "SyncResult",
    "TodoItem",
    "TodoWriteInput",
]
