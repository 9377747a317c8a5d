"""
Guest session models.
"""

from datetime import datetime
from enum import Enum

from pydantic import Field

from guestchat.models.base import WireModel, utc_now


class SessionState(str, Enum):
    """Session Manager lifecycle; READY may hold no session when degraded."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class GuestSession(WireModel):
    """Anonymous, server-issued identity scoping a set of chats."""

    session_id: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utc_now)
