"""
Chat-related Pydantic models: messages, chats and send outcomes.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from guestchat.models.base import WireModel, utc_now
from guestchat.models.upload import UploadedFile

ChatId = Union[int, str]


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Message(WireModel):
    """Single chat message in canonical shape."""

    content: str = Field("", description="Message text")
    role: MessageRole = Field(MessageRole.ASSISTANT, description="user or assistant")
    timestamp: datetime = Field(default_factory=utc_now)
    id: Optional[ChatId] = Field(None, description="Server id, absent for local messages")
    is_loading: bool = Field(False, description="Assistant placeholder awaiting a reply")
    attachments: List[UploadedFile] = Field(default_factory=list)

    @classmethod
    def loading_placeholder(cls) -> "Message":
        return cls(role=MessageRole.ASSISTANT, is_loading=True)


class Chat(WireModel):
    """A titled conversation owned by one guest session."""

    id: ChatId = Field(..., description="Server chat id, or temp-<ms> while unconfirmed")
    session_id: str = Field(..., description="Owning guest session")
    title: Optional[str] = Field(None, description="None or the default title means untitled")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    timestamp: datetime = Field(default_factory=utc_now)
    last_message: Optional[str] = None
    messages: List[Message] = Field(default_factory=list)

    @property
    def activity_at(self) -> datetime:
        """Sort key: most-recently-active first."""
        return self.updated_at or self.timestamp

    @property
    def has_loading_message(self) -> bool:
        return any(m.is_loading for m in self.messages)


class SendResult(BaseModel):
    """Outcome of one send_message call after the exchange settles."""

    chat_id: ChatId
    success: bool
    user_message: Message
    reply: Message = Field(..., description="Assistant reply or the inline error message")
    title: Optional[str] = Field(None, description="Title derived from this first message")
    error: Optional[str] = None
