"""
Kaban - Links API
=================

Typed edges between tasks.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Query, Response, status

from kaban.api.deps import Context
from kaban.core.models import LinkType
from kaban.core.schemas import LinkCreate, LinkResponse

router = APIRouter(prefix="/links", tags=["Links"])


@router.post(
    "",
    response_model=LinkResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add link",
)
async def add_link(payload: LinkCreate, context: Context) -> LinkResponse:
    """blocks and blocked_by also write the inverse edge."""
    link = await context.links.add_link(payload.from_task_id, payload.to_task_id, payload.link_type)
    return LinkResponse.model_validate(link)


@router.delete(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove link",
)
async def remove_link(
    context: Context,
    from_task_id: str = Query(alias="fromTaskId"),
    to_task_id: str = Query(alias="toTaskId"),
    link_type: LinkType = Query(alias="linkType"),
) -> Response:
    await context.links.remove_link(from_task_id, to_task_id, link_type)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{task_id}",
    response_model=list[LinkResponse],
    summary="Links of a task",
)
async def get_links(
    task_id: str,
    context: Context,
    direction: Literal["from", "to", "all"] = Query("all"),
    link_type: Optional[LinkType] = Query(None, alias="linkType"),
) -> list[LinkResponse]:
    if direction == "from":
        links = await context.links.get_links_from(task_id, link_type)
    elif direction == "to":
        links = await context.links.get_links_to(task_id, link_type)
    else:
        links = await context.links.get_all_links(task_id, link_type)
    return [LinkResponse.model_validate(link) for link in links]


@router.get(
    "/{task_id}/blockers",
    response_model=list[str],
    summary="Tasks blocking this one",
)
async def get_blockers(task_id: str, context: Context) -> list[str]:
    return await context.links.get_blockers(task_id)


@router.get(
    "/{task_id}/blocking",
    response_model=list[str],
    summary="Tasks this one blocks",
)
async def get_blocking(task_id: str, context: Context) -> list[str]:
    return await context.links.get_blocking(task_id)
