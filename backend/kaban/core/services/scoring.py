"""
Scoring Engine - ranks actionable tasks with an ordered scorer pipeline.

Each scorer contributes a number per task; the total decides the order and
the per-scorer breakdown is kept for explanation. Scorers are appended to
the pipeline, never reordered, so existing contributions keep their
meaning when new ones are added.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional, Protocol

import structlog

from kaban.core.errors import validation
from kaban.core.ids import as_utc, utcnow
from kaban.core.models import Task, TaskPriority
from kaban.core.services.link import LinkService

logger = structlog.get_logger()

SECONDS_PER_DAY = 86400

PRIORITY_WEIGHTS: dict[TaskPriority, float] = {
    TaskPriority.CRITICAL: 40,
    TaskPriority.HIGH: 30,
    TaskPriority.MEDIUM: 20,
    TaskPriority.LOW: 10,
}

DUE_DATE_MAX_SCORE = 50.0
BLOCKING_WEIGHT = 10.0
FIFO_WEIGHT_PER_DAY = 0.1
FIFO_MAX_SCORE = 5.0


class Scorer(Protocol):
    name: str

    async def score(self, task: Task, now: datetime) -> float:
        ...


@dataclass
class ScoredTask:
    """A task with its total score and per-scorer breakdown."""

    task: Task
    score: float
    breakdown: dict[str, float] = field(default_factory=dict)


# ==========================================================================
# Scorers
# ==========================================================================

class PriorityScorer:
    """Fixed weight per declared priority tier."""

    name = "priority"

    async def score(self, task: Task, now: datetime) -> float:
        return PRIORITY_WEIGHTS.get(TaskPriority(task.priority), PRIORITY_WEIGHTS[TaskPriority.MEDIUM])


class DueDateScorer:
    """
    Urgency grows as the due date approaches: 50 / (1 + days_left),
    capped at 50 once the task is due or overdue.
    """

    name = "due_date"

    async def score(self, task: Task, now: datetime) -> float:
        if task.due_date is None:
            return 0.0
        days_left = (as_utc(task.due_date) - as_utc(now)).total_seconds() / SECONDS_PER_DAY
        if days_left <= 0:
            return DUE_DATE_MAX_SCORE
        return DUE_DATE_MAX_SCORE / (1 + days_left)


class BlockingScorer:
    """Ten points per task currently blocked by this one."""

    name = "blocking"

    def __init__(self, count_blocked: Callable[[str], Awaitable[int]]):
        self.count_blocked = count_blocked

    async def score(self, task: Task, now: datetime) -> float:
        return BLOCKING_WEIGHT * await self.count_blocked(task.id)


class FifoScorer:
    """Older tasks score slightly higher, up to 5 points."""

    name = "fifo"

    async def score(self, task: Task, now: datetime) -> float:
        age_days = (as_utc(now) - as_utc(task.created_at)).total_seconds() / SECONDS_PER_DAY
        return min(max(age_days, 0.0) * FIFO_WEIGHT_PER_DAY, FIFO_MAX_SCORE)


priority_scorer = PriorityScorer()
due_date_scorer = DueDateScorer()
fifo_scorer = FifoScorer()


def create_blocking_scorer(count_blocked: Callable[[str], Awaitable[int]]) -> BlockingScorer:
    """Blocking scorer reading blocked-task counts from `count_blocked`."""
    return BlockingScorer(count_blocked)


# ==========================================================================
# Service
# ==========================================================================

class ScoringService:
    """
    Runs the scorer pipeline over a set of tasks.

    Default pipeline, in order: priority, due_date, blocking, fifo.
    """

    def __init__(self, link_service: Optional[LinkService] = None, scorers: Optional[list[Scorer]] = None):
        self.scorers: list[Scorer] = []
        if scorers is None:
            scorers = [priority_scorer, due_date_scorer]
            if link_service is not None:
                async def count_blocked(task_id: str) -> int:
                    return len(await link_service.get_blocking(task_id))

                scorers.append(create_blocking_scorer(count_blocked))
            scorers.append(fifo_scorer)
        for scorer in scorers:
            self.add_scorer(scorer)

    def add_scorer(self, scorer: Scorer) -> None:
        """
        Append a scorer to the end of the pipeline.

        Raises:
            KabanError: VALIDATION when a scorer with the same name is present
        """
        if any(existing.name == scorer.name for existing in self.scorers):
            raise validation(f"Scorer '{scorer.name}' is already registered")
        self.scorers.append(scorer)

    async def score_task(self, task: Task, now: datetime) -> ScoredTask:
        breakdown: dict[str, float] = {}
        for scorer in self.scorers:
            breakdown[scorer.name] = round(await scorer.score(task, now), 2)
        return ScoredTask(task=task, score=round(sum(breakdown.values()), 2), breakdown=breakdown)

    async def rank_tasks(self, tasks: list[Task], now: Optional[datetime] = None) -> list[ScoredTask]:
        """
        Highest score first.

        Ties fall back to each scorer's contribution in pipeline order, then
        creation time, then id, so a fixed input always ranks the same.
        """
        now = now or utcnow()
        scored = [await self.score_task(task, now) for task in tasks]
        names = [scorer.name for scorer in self.scorers]

        scored.sort(
            key=lambda item: (
                -item.score,
                *(-item.breakdown[name] for name in names),
                as_utc(item.task.created_at),
                item.task.id,
            )
        )
        return scored

    async def pick_next(self, tasks: list[Task], now: Optional[datetime] = None) -> Optional[ScoredTask]:
        ranked = await self.rank_tasks(tasks, now)
        if not ranked:
            return None
        logger.debug("next_task_picked", task_id=ranked[0].task.id, score=ranked[0].score)
        return ranked[0]
