"""
Kaban - API Dependencies
========================

Shared dependencies for FastAPI endpoints.
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request

from kaban.core.config import Settings
from kaban.core.context import KabanContext, open_context
from kaban.core.database import Database


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


async def get_context(
    database: Annotated[Database, Depends(get_database)],
    settings: Annotated[Settings, Depends(get_settings_dep)],
) -> AsyncGenerator[KabanContext, None]:
    """One context, and so one session, per request."""
    async with open_context(database, settings) as context:
        yield context


# Type alias for dependency injection
Context = Annotated[KabanContext, Depends(get_context)]
