"""Shared schema plumbing: camelCase aliasing and the response envelope.

Every response body is {"success": ..., "data": ..., "message": ...}.
Field names go out in camelCase (managerId, createdAt); input accepts
either camelCase or snake_case.
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

DataT = TypeVar("DataT")


class CamelModel(BaseModel):
    model_config = {
        "from_attributes": True,
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class Envelope(BaseModel, Generic[DataT]):
    """Uniform success wrapper."""

    success: bool = True
    data: Optional[DataT] = None
    message: Optional[str] = None


class ErrorBody(BaseModel):
    """Uniform failure body (rendered by the app's exception handlers)."""

    success: bool = False
    error: str
    message: Optional[str] = None


class UserBrief(CamelModel):
    id: int
    email: str


class UserWithRole(UserBrief):
    role: str
