"""
Shared plumbing for the board services.
"""

from typing import Any, TypeVar, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from kaban.core.errors import ExitCode, KabanError, validation
from kaban.core.models import Board

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def parse_input(schema: type[SchemaT], data: Union[SchemaT, dict[str, Any]]) -> SchemaT:
    """Validate a dict against a schema, reporting the first issue as VALIDATION."""
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        message = first.get("msg", "Invalid input").removeprefix("Value error, ")
        raise validation(f"{field}: {message}" if field else message) from exc


class BoardStoreService:
    """Base for services that write through one AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _commit(self) -> None:
        """
        Bump the board change counter and commit as one write.

        Storage failures roll back and surface as GENERAL_ERROR.
        """
        try:
            await self.db.execute(update(Board).values(revision=Board.revision + 1))
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise KabanError(f"Storage error: {exc}", ExitCode.GENERAL_ERROR) from exc
