"""
Guest chat client.

Wires storage, the API client, chat state and the four services together and
exposes the operations a UI layer calls. One instance per application load.
"""

from typing import Callable, List, Optional, Sequence, Union

import httpx

from guestchat.core.config import settings
from guestchat.core.logging import get_logger
from guestchat.models.base import MutationResult
from guestchat.models.chat import Chat, ChatId, Message, SendResult
from guestchat.models.session import GuestSession, SessionState
from guestchat.models.upload import (
    BatchSubmission,
    BatchUploadResult,
    FileCategory,
    LocalFile,
    UploadedFile,
)
from guestchat.services.api_client import GuestApiClient
from guestchat.services.chats import ChatStore
from guestchat.services.messages import MessageExchange
from guestchat.services.session import SessionManager
from guestchat.services.state import ChatState, StateListener
from guestchat.services.storage import KeyValueStore, get_storage
from guestchat.services.uploads import BatchUploadTracker, ProgressCallback

logger = get_logger(__name__)


class GuestChatClient:
    """Facade over session, chats, messages and uploads."""

    def __init__(
        self,
        storage: Optional[KeyValueStore] = None,
        api: Optional[GuestApiClient] = None,
        state: Optional[ChatState] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_unauthorized: Optional[Callable[[int], None]] = None,
    ):
        """
        Initialize the client.

        Args:
            storage: Persistence for session id and auth token; defaults to
                the backend selected by GUESTCHAT_STORAGE_BACKEND
            api: Prebuilt API client; built from settings when omitted
            state: Chat state holder, shared with any observers
            transport: httpx transport for the default API client
            on_unauthorized: Called with 401/403 status codes
        """
        self.storage = storage if storage is not None else get_storage()
        self.api = api or GuestApiClient(
            self.storage, transport=transport, on_unauthorized=on_unauthorized
        )
        self.state = state or ChatState()

        self.chats = ChatStore(self.api, self.state)
        self.uploads = BatchUploadTracker(self.api, self.state)
        self.session_manager = SessionManager(self.api, self.storage, self.state, self.chats)
        self.messages = MessageExchange(self.api, self.state, self.chats, self.uploads)

    async def __aenter__(self) -> "GuestChatClient":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.api.aclose()

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @property
    def session(self) -> Optional[GuestSession]:
        return self.session_manager.session

    @property
    def session_state(self) -> SessionState:
        return self.session_manager.status

    async def initialize(self) -> Optional[GuestSession]:
        return await self.session_manager.initialize()

    async def reset_session(self) -> Optional[GuestSession]:
        """Logout/reset: drop the stored session and start a fresh one."""
        logger.info("Resetting guest session", extra={"session_id": self.state.session_id})
        self.uploads.clear_pending()
        return await self.session_manager.reset()

    def set_auth_token(self, token: Optional[str]) -> None:
        """Store (or clear, with None) the bearer token sent on every request."""
        if token:
            self.storage.set(settings.auth_token_storage_key, token)
        else:
            self.storage.remove(settings.auth_token_storage_key)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Observe state changes; returns an unsubscribe callable."""
        self.state.add_listener(listener)
        return lambda: self.state.remove_listener(listener)

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    @property
    def chat_list(self) -> List[Chat]:
        return self.state.chats

    @property
    def selected_chat(self) -> Optional[Chat]:
        return self.state.selected_chat

    @property
    def current_messages(self) -> List[Message]:
        return self.state.messages

    async def create_new_chat(self, title: Optional[str] = None) -> Optional[ChatId]:
        return await self.chats.create_new_chat(title)

    def select_chat(self, chat: Union[Chat, ChatId, None]) -> bool:
        return self.chats.select_chat(chat)

    async def delete_chat(self, chat_id: ChatId) -> MutationResult:
        return await self.chats.delete_chat(chat_id)

    async def update_chat_title(self, chat_id: ChatId, title: str) -> MutationResult:
        return await self.chats.update_chat_title(chat_id, title)

    async def refresh_chats(self) -> MutationResult:
        return await self.chats.refresh_chats()

    async def load_chat_history(self, chat_id: ChatId) -> List[Message]:
        return await self.chats.load_chat_history(chat_id)

    # ------------------------------------------------------------------
    # Messages and uploads
    # ------------------------------------------------------------------

    async def send_message(
        self,
        content: str,
        chat_id: Optional[ChatId] = None,
        attachments: Optional[Sequence[UploadedFile]] = None,
        language: Optional[str] = None,
        specialty: Optional[str] = None,
    ) -> SendResult:
        return await self.messages.send_message(
            content,
            chat_id=chat_id,
            attachments=attachments,
            language=language,
            specialty=specialty,
        )

    @property
    def pending_files(self) -> List[UploadedFile]:
        return self.uploads.pending_files

    def remove_pending_file(self, file_id: str) -> bool:
        return self.uploads.remove_pending(file_id)

    async def submit_batch(
        self,
        files: Sequence[LocalFile],
        category: Union[FileCategory, str] = FileCategory.GENERAL,
        chat_id: Optional[ChatId] = None,
    ) -> BatchSubmission:
        return await self.uploads.submit_batch(files, category, chat_id)

    async def poll_batch(
        self, batch_id: str, on_progress: Optional[ProgressCallback] = None
    ) -> BatchUploadResult:
        return await self.uploads.poll_status(batch_id, on_progress=on_progress)

    async def upload_files(
        self,
        files: Sequence[LocalFile],
        category: Union[FileCategory, str] = FileCategory.GENERAL,
        chat_id: Optional[ChatId] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchUploadResult:
        return await self.uploads.upload_files(files, category, chat_id, on_progress)


# Global client instance
_guest_chat_client: Optional[GuestChatClient] = None


def get_guest_chat_client() -> GuestChatClient:
    """Get or create global guest chat client instance."""
    global _guest_chat_client
    if _guest_chat_client is None:
        _guest_chat_client = GuestChatClient()
    return _guest_chat_client
