"""Shared base model and error envelope."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake-case in Python, camelCase on the wire (the UI's field names)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(BaseModel):
    """Body returned for every failed request."""

    error: str
    code: str
    details: str | None = None
    timestamp: str = Field(..., description="ISO-8601 UTC time of the failure")
    params: dict[str, Any] | None = Field(None, description="Offending request parameters")
