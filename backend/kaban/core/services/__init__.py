"""Board services: Board Directory, Task Store and its history, Link Graph, Scoring Engine."""

from kaban.core.services.board import BoardService
from kaban.core.services.history import HistoryService
from kaban.core.services.link import LinkService
from kaban.core.services.scoring import ScoredTask, ScoringService
from kaban.core.services.task import TaskService

__all__ = [
    "BoardService",
    "HistoryService",
    "LinkService",
    "ScoredTask",
    "ScoringService",
    "TaskService",
]
