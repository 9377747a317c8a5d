"""
Base Pydantic models for the client.
Wire-facing records inherit from WireModel so camelCase payloads validate
straight into snake_case fields.
"""

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Timezone-aware current time; every timestamp in the engine is UTC."""
    return datetime.now(timezone.utc)


class WireModel(BaseModel):
    """Base model for records exchanged with the API."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class MutationResult(BaseModel):
    """
    Outcome of an optimistic mutation.

    `applied` means local state changed; `persisted` means the server
    confirmed it. Optimistic operations never roll back, so
    applied=True/persisted=False is the normal failure shape.
    """

    applied: bool = Field(..., description="Local state was updated")
    persisted: bool = Field(False, description="Server acknowledged the change")
    error: Optional[str] = Field(None, description="Why persistence or validation failed")

    @classmethod
    def rejected(cls, error: str) -> "MutationResult":
        return cls(applied=False, persisted=False, error=error)
