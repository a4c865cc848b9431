"""
Kaban - Board API
=================

Board status, columns and the change counter.
"""

from fastapi import APIRouter

from kaban.api.deps import Context
from kaban.core.errors import not_found
from kaban.core.schemas import BoardStatus, ColumnResponse, RevisionResponse

router = APIRouter(prefix="/board", tags=["Board"])


@router.get(
    "",
    response_model=BoardStatus,
    summary="Board status",
)
async def get_board_status(context: Context) -> BoardStatus:
    """Board, columns with live task counts, archived total."""
    board_status = await context.boards.get_status()
    if board_status is None:
        raise not_found("Board", "default")
    return board_status


@router.get(
    "/columns",
    response_model=list[ColumnResponse],
    summary="List columns",
)
async def list_columns(context: Context) -> list[ColumnResponse]:
    return [ColumnResponse.model_validate(col) for col in await context.boards.get_columns()]


@router.get(
    "/revision",
    response_model=RevisionResponse,
    summary="Change counter",
)
async def get_revision(context: Context) -> RevisionResponse:
    """
    Increases on every committed write; poll it to notice changes made by
    other processes.
    """
    return RevisionResponse(revision=await context.boards.get_revision())
