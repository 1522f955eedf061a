"""Response envelopes shared by every endpoint."""

from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SuccessResponse(BaseModel, Generic[T]):
    """Standard success envelope."""

    success: Literal[True] = True
    message: str
    data: T


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    success: Literal[False] = False
    error: str
    code: str
    details: Any | None = None
