"""
Chat state holder.

Single owner of the session id, the chat collection, the selected chat and
the per-chat send flags. Services mutate it only through the named methods
below; readers get deep copies, so nothing outside this class can change
state by assignment.

Chat ids are compared by their string form: the same chat can arrive as 12
from one endpoint and "12" from another.
"""

from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from guestchat.core.logging import get_logger
from guestchat.models.base import utc_now
from guestchat.models.chat import Chat, ChatId, Message

logger = get_logger(__name__)

StateListener = Callable[["ChatState"], None]


def _key(chat_id: ChatId) -> str:
    return str(chat_id)


class ChatState:
    """In-memory state for one client instance."""

    def __init__(self) -> None:
        self._session_id: Optional[str] = None
        self._chats: List[Chat] = []
        self._selected_chat_id: Optional[ChatId] = None
        self._sending: Set[str] = set()
        self._aliases: Dict[str, ChatId] = {}
        self._listeners: List[StateListener] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked after every state change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"State listener failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def chats(self) -> List[Chat]:
        return [chat.model_copy(deep=True) for chat in self._chats]

    @property
    def chat_ids(self) -> List[ChatId]:
        return [chat.id for chat in self._chats]

    @property
    def selected_chat_id(self) -> Optional[ChatId]:
        return self._selected_chat_id

    @property
    def selected_chat(self) -> Optional[Chat]:
        if self._selected_chat_id is None:
            return None
        return self.get_chat(self._selected_chat_id)

    @property
    def messages(self) -> List[Message]:
        """Messages of the selected chat."""
        chat = self._find(self._selected_chat_id) if self._selected_chat_id is not None else None
        return [m.model_copy(deep=True) for m in chat.messages] if chat else []

    def get_chat(self, chat_id: ChatId) -> Optional[Chat]:
        chat = self._find(chat_id)
        return chat.model_copy(deep=True) if chat else None

    def has_chat(self, chat_id: ChatId) -> bool:
        return self._find(chat_id) is not None

    def resolve_chat_id(self, chat_id: ChatId) -> Optional[ChatId]:
        """
        Current id of a chat, following temp-to-server id swaps.

        Returns None when the chat is no longer in the collection.
        """
        seen = set()
        while _key(chat_id) in self._aliases and _key(chat_id) not in seen:
            seen.add(_key(chat_id))
            chat_id = self._aliases[_key(chat_id)]
        chat = self._find(chat_id)
        return chat.id if chat else None

    def most_recent_chat_id(self) -> Optional[ChatId]:
        if not self._chats:
            return None
        return max(self._chats, key=lambda c: c.activity_at).id

    def _find(self, chat_id: ChatId) -> Optional[Chat]:
        key = _key(chat_id)
        for chat in self._chats:
            if _key(chat.id) == key:
                return chat
        return None

    def _require(self, chat_id: ChatId) -> Chat:
        chat = self._find(chat_id)
        if chat is None:
            raise KeyError(f"Unknown chat {chat_id}")
        return chat

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def set_session_id(self, session_id: str) -> None:
        self._session_id = session_id
        self._notify()

    def clear(self) -> None:
        """Drop the session and everything scoped to it."""
        self._session_id = None
        self._chats = []
        self._selected_chat_id = None
        self._sending.clear()
        self._aliases.clear()
        self._notify()

    # ------------------------------------------------------------------
    # Chat collection
    # ------------------------------------------------------------------

    def replace_chats(self, chats: List[Chat]) -> None:
        """Swap in a freshly loaded collection; selection is revalidated."""
        self._chats = [chat.model_copy(deep=True) for chat in chats]
        if self._selected_chat_id is not None and not self.has_chat(self._selected_chat_id):
            self._selected_chat_id = None
        self._notify()

    def add_chat(self, chat: Chat) -> None:
        """Insert at the head of the collection."""
        self._chats.insert(0, chat.model_copy(deep=True))
        self._notify()

    def remove_chat(self, chat_id: ChatId) -> Optional[Chat]:
        chat = self._find(chat_id)
        if chat is None:
            return None
        self._chats.remove(chat)
        self._sending.discard(_key(chat_id))
        if self._selected_chat_id is not None and _key(self._selected_chat_id) == _key(chat_id):
            self._selected_chat_id = None
        self._notify()
        return chat

    def replace_chat_id(self, old_id: ChatId, new_id: ChatId) -> None:
        """Swap a temporary id for the server id; selection follows."""
        chat = self._require(old_id)
        chat.id = new_id
        self._aliases[_key(old_id)] = new_id
        if self._selected_chat_id is not None and _key(self._selected_chat_id) == _key(old_id):
            self._selected_chat_id = new_id
        if _key(old_id) in self._sending:
            self._sending.discard(_key(old_id))
            self._sending.add(_key(new_id))
        self._notify()

    def rename_chat(self, chat_id: ChatId, title: str) -> None:
        self._require(chat_id).title = title
        self._notify()

    def touch_chat(
        self,
        chat_id: ChatId,
        last_message: Optional[str],
        updated_at: Optional[datetime] = None,
    ) -> None:
        chat = self._require(chat_id)
        chat.last_message = last_message
        chat.updated_at = updated_at or utc_now()
        self._notify()

    def select(self, chat_id: Optional[ChatId]) -> None:
        """Select a chat present in the collection, or clear selection."""
        if chat_id is None:
            self._selected_chat_id = None
        else:
            self._selected_chat_id = self._require(chat_id).id
        self._notify()

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def append_message(self, chat_id: ChatId, message: Message) -> None:
        self._require(chat_id).messages.append(message.model_copy(deep=True))
        self._notify()

    def set_messages(self, chat_id: ChatId, messages: List[Message]) -> None:
        self._require(chat_id).messages = [m.model_copy(deep=True) for m in messages]
        self._notify()

    def remove_loading_messages(self, chat_id: ChatId) -> int:
        """Drop every loading placeholder in a chat; returns how many."""
        chat = self._find(chat_id)
        if chat is None:
            return 0
        before = len(chat.messages)
        chat.messages = [m for m in chat.messages if not m.is_loading]
        removed = before - len(chat.messages)
        if removed:
            self._notify()
        return removed

    # ------------------------------------------------------------------
    # Send guard
    # ------------------------------------------------------------------

    def is_sending(self, chat_id: ChatId) -> bool:
        return _key(chat_id) in self._sending

    def begin_send(self, chat_id: ChatId) -> bool:
        """Claim the chat's send slot; False when a send is outstanding."""
        key = _key(chat_id)
        if key in self._sending:
            return False
        self._sending.add(key)
        return True

    def end_send(self, chat_id: ChatId) -> None:
        self._sending.discard(_key(chat_id))
