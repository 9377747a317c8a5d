"""
Chat store: create, select, rename, delete and refresh the chats of the
active guest session.

Create, rename and delete are optimistic. Local state changes first and is
kept even when the server call fails; the returned MutationResult says
whether the server confirmed it.
"""

import time
from typing import List, Optional, Union

from guestchat.core.config import settings
from guestchat.core.errors import ApiError
from guestchat.core.logging import get_logger
from guestchat.models.base import MutationResult
from guestchat.models.chat import Chat, ChatId, Message
from guestchat.services.api_client import GuestApiClient
from guestchat.services.normalization import (
    extract_chat_id,
    extract_messages_from_history,
    extract_session_chats,
    is_valid_chat_id,
    normalize_chats,
)
from guestchat.services.state import ChatState

logger = get_logger(__name__)

TEMP_ID_PREFIX = "temp-"


def is_temporary_chat_id(chat_id: ChatId) -> bool:
    """Ids minted locally for chats the server has not confirmed yet."""
    return isinstance(chat_id, str) and chat_id.startswith(TEMP_ID_PREFIX)


class ChatStore:
    """Owns the chat collection of the active session."""

    def __init__(self, api: GuestApiClient, state: ChatState):
        self.api = api
        self.state = state

    def _new_temp_id(self) -> str:
        temp_id = f"{TEMP_ID_PREFIX}{int(time.time() * 1000)}"
        suffix = 1
        while self.state.has_chat(temp_id):
            temp_id = f"{TEMP_ID_PREFIX}{int(time.time() * 1000)}-{suffix}"
            suffix += 1
        return temp_id

    async def create_new_chat(self, title: Optional[str] = None) -> Optional[ChatId]:
        """
        Create a chat and select it.

        The chat is inserted at the head of the collection under a temporary
        id before the request goes out. On success the server id replaces it;
        on failure the temporary chat stays (no rollback).

        Returns:
            The server chat id, the temporary id if the server call failed,
            or None without a session
        """
        session_id = self.state.session_id
        if not session_id:
            logger.warning("create_new_chat called without a guest session")
            return None

        title = title or settings.default_chat_title
        temp_id = self._new_temp_id()
        self.state.add_chat(Chat(id=temp_id, session_id=session_id, title=title))
        self.state.select(temp_id)

        try:
            response = await self.api.create_chat(session_id, title)
        except ApiError as e:
            logger.error(
                f"Failed to create chat, keeping local chat {temp_id}: {e}",
                extra={"session_id": session_id},
            )
            return temp_id

        server_id = extract_chat_id(response)
        if server_id is None:
            logger.warning(f"Create chat response has no chat id, keeping {temp_id}")
            return temp_id

        if not self.state.has_chat(temp_id):
            # Deleted while the request was in flight
            logger.info(f"Chat {temp_id} removed before server confirmed it as {server_id}")
            return server_id

        self.state.replace_chat_id(temp_id, server_id)
        logger.info(f"Created chat {server_id}", extra={"session_id": session_id})
        return server_id

    def select_chat(self, chat: Union[Chat, ChatId, None]) -> bool:
        """
        Select a chat already in the collection. No network access.

        Returns:
            False (and logs) for an invalid or unknown chat id
        """
        chat_id = chat.id if isinstance(chat, Chat) else chat
        if not is_valid_chat_id(chat_id):
            logger.warning(f"Refusing to select chat with invalid id: {chat_id!r}")
            return False
        if not self.state.has_chat(chat_id):
            logger.warning(f"Refusing to select unknown chat {chat_id}")
            return False

        self.state.select(chat_id)
        return True

    async def delete_chat(self, chat_id: ChatId) -> MutationResult:
        """
        Delete a chat locally, then on the server.

        If the deleted chat was selected the most recent remaining chat is
        selected; if none remain a replacement chat is created, so the
        collection is never left empty.
        """
        if not is_valid_chat_id(chat_id):
            logger.warning(f"Refusing to delete chat with invalid id: {chat_id!r}")
            return MutationResult.rejected(f"Invalid chat id: {chat_id!r}")

        session_id = self.state.session_id
        if not session_id:
            return MutationResult.rejected("No active guest session")

        selected_id = self.state.selected_chat_id
        was_selected = selected_id is not None and str(selected_id) == str(chat_id)

        if self.state.remove_chat(chat_id) is None:
            return MutationResult.rejected(f"Unknown chat {chat_id}")

        if was_selected:
            next_id = self.state.most_recent_chat_id()
            if next_id is not None:
                self.state.select(next_id)

        if not self.state.chat_ids:
            await self.create_new_chat()

        if is_temporary_chat_id(chat_id):
            return MutationResult(applied=True, persisted=True)

        try:
            await self.api.delete_chat(session_id, chat_id)
        except ApiError as e:
            logger.error(f"Failed to delete chat {chat_id} on server: {e}")
            return MutationResult(applied=True, persisted=False, error=str(e))

        logger.info(f"Deleted chat {chat_id}", extra={"session_id": session_id})
        return MutationResult(applied=True, persisted=True)

    async def update_chat_title(self, chat_id: ChatId, title: str) -> MutationResult:
        """Rename locally, then persist. A failed save keeps the local title."""
        if not is_valid_chat_id(chat_id):
            return MutationResult.rejected(f"Invalid chat id: {chat_id!r}")

        title = (title or "").strip()
        if not title:
            return MutationResult.rejected("Title must not be empty")

        session_id = self.state.session_id
        if not session_id:
            return MutationResult.rejected("No active guest session")
        if not self.state.has_chat(chat_id):
            return MutationResult.rejected(f"Unknown chat {chat_id}")

        self.state.rename_chat(chat_id, title)

        if is_temporary_chat_id(chat_id):
            return MutationResult(applied=True, persisted=False, error="Chat not yet saved")

        try:
            await self.api.update_chat_title(session_id, chat_id, title)
        except ApiError as e:
            logger.error(f"Failed to update chat title for {chat_id}: {e}")
            return MutationResult(applied=True, persisted=False, error=str(e))

        return MutationResult(applied=True, persisted=True)

    async def refresh_chats(self) -> MutationResult:
        """
        Re-fetch the session and reconcile.

        The selected chat stays selected (with its messages replaced) when it
        still exists; otherwise the first chat is selected, or nothing.
        """
        session_id = self.state.session_id
        if not session_id:
            return MutationResult.rejected("No active guest session")

        try:
            payload = await self.api.get_session(session_id)
        except ApiError as e:
            logger.error(f"Failed to refresh chats: {e}", extra={"session_id": session_id})
            return MutationResult(applied=False, persisted=False, error=str(e))

        chats = normalize_chats(extract_session_chats(payload), session_id)
        selected_id = self.state.selected_chat_id

        self.state.replace_chats(chats)

        if selected_id is not None and self.state.has_chat(selected_id):
            self.state.select(selected_id)
        elif chats:
            self.state.select(chats[0].id)
        else:
            self.state.select(None)

        logger.debug(f"Refreshed {len(chats)} chats", extra={"session_id": session_id})
        return MutationResult(applied=True, persisted=True)

    async def load_chat_history(self, chat_id: ChatId) -> List[Message]:
        """Fetch a chat's history from the server and make it resident."""
        if not is_valid_chat_id(chat_id) or is_temporary_chat_id(chat_id):
            return []

        session_id = self.state.session_id
        if not session_id or not self.state.has_chat(chat_id):
            return []

        try:
            history = await self.api.get_chat_history(session_id, chat_id)
        except ApiError as e:
            logger.error(f"Failed to load history for chat {chat_id}: {e}")
            chat = self.state.get_chat(chat_id)
            return chat.messages if chat else []

        messages = extract_messages_from_history(history)
        if self.state.has_chat(chat_id):
            self.state.set_messages(chat_id, messages)
        return messages
