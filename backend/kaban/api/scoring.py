"""
Kaban - Scoring API
===================

Ranked actionable tasks and the next task to pick up.
"""

from typing import Optional

from fastapi import APIRouter, Query

from kaban.api.deps import Context
from kaban.core.schemas import ScoredTaskResponse, TaskResponse
from kaban.core.services import ScoredTask

router = APIRouter(prefix="/scoring", tags=["Scoring"])


def to_response(scored: ScoredTask) -> ScoredTaskResponse:
    return ScoredTaskResponse(
        task=TaskResponse.model_validate(scored.task),
        score=scored.score,
        breakdown=scored.breakdown,
    )


@router.get(
    "/ranking",
    response_model=list[ScoredTaskResponse],
    summary="Rank actionable tasks",
)
async def rank_tasks(
    context: Context,
    column: Optional[str] = Query(None, description="Restrict to one column"),
) -> list[ScoredTaskResponse]:
    tasks = await context.tasks.get_actionable_tasks(column_id=column)
    return [to_response(item) for item in await context.scoring.rank_tasks(tasks)]


@router.get(
    "/next",
    response_model=Optional[ScoredTaskResponse],
    summary="Next task",
)
async def next_task(
    context: Context,
    column: Optional[str] = Query(None, description="Restrict to one column"),
) -> Optional[ScoredTaskResponse]:
    """Highest-ranked actionable task, or null when nothing is actionable."""
    tasks = await context.tasks.get_actionable_tasks(column_id=column)
    picked = await context.scoring.pick_next(tasks)
    return to_response(picked) if picked else None
