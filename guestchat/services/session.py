"""
Guest session manager.

Bootstraps the anonymous session once per client load:

    UNINITIALIZED -> INITIALIZING -> READY

A stored id the server no longer knows (404) is treated as stale: the id is
discarded and a fresh session is created in the same run. Any other failure
leaves the manager READY with no session instead of raising to the caller.
"""

import asyncio
from typing import Any, Mapping, Optional

from guestchat.core.config import settings
from guestchat.core.errors import ApiError, StaleSessionError
from guestchat.core.logging import get_logger
from guestchat.models.base import utc_now
from guestchat.models.session import GuestSession, SessionState
from guestchat.services.chats import ChatStore
from guestchat.services.api_client import GuestApiClient
from guestchat.services.normalization import (
    extract_session_chats,
    normalize_chats,
    parse_timestamp,
)
from guestchat.services.state import ChatState
from guestchat.services.storage import KeyValueStore

logger = get_logger(__name__)


class SessionManager:
    """Owns guest session bootstrap, restore and stale-session recovery."""

    def __init__(
        self,
        api: GuestApiClient,
        storage: KeyValueStore,
        state: ChatState,
        chat_store: ChatStore,
    ):
        self.api = api
        self.storage = storage
        self.state = state
        self.chat_store = chat_store

        self.status = SessionState.UNINITIALIZED
        self.session: Optional[GuestSession] = None
        self.last_error: Optional[str] = None
        self._init_task: Optional[asyncio.Task] = None

    @property
    def storage_key(self) -> str:
        return settings.guest_session_storage_key

    @property
    def is_ready(self) -> bool:
        return self.status == SessionState.READY and self.session is not None

    async def initialize(self) -> Optional[GuestSession]:
        """
        Restore or create the guest session.

        Concurrent callers share the run already in flight. Once a session
        is ready, later calls return it without touching the network.

        Returns:
            The active session, or None when initialization degraded
        """
        if self._init_task is not None and not self._init_task.done():
            logger.debug("Session initialization already in flight, joining it")
            return await asyncio.shield(self._init_task)

        if self.is_ready:
            return self.session

        self._init_task = asyncio.ensure_future(self._run_initialize())
        return await asyncio.shield(self._init_task)

    async def _run_initialize(self) -> Optional[GuestSession]:
        self.status = SessionState.INITIALIZING
        self.last_error = None

        try:
            stored_id = self.storage.get(self.storage_key)

            if stored_id:
                try:
                    session = await self._restore_session(stored_id)
                    self.status = SessionState.READY
                    return session
                except StaleSessionError:
                    logger.info(
                        "Stored guest session not found on server, creating a new one",
                        extra={"session_id": stored_id},
                    )
                    self.storage.remove(self.storage_key)
                    self.state.clear()

            session = await self.create_session()
            self.status = SessionState.READY
            return session

        except Exception as e:
            logger.error(f"Failed to initialize guest session: {e}", exc_info=True)
            self.last_error = str(e)
            self.session = None
            self.status = SessionState.READY
            return None

    async def _restore_session(self, session_id: str) -> GuestSession:
        try:
            payload = await self.api.get_session(session_id)
        except ApiError as e:
            if e.is_not_found:
                raise StaleSessionError(session_id) from e
            raise

        chats = normalize_chats(extract_session_chats(payload), session_id)

        self.storage.set(self.storage_key, session_id)
        self.session = GuestSession(
            session_id=session_id,
            created_at=self._created_at(payload),
        )
        self.state.set_session_id(session_id)
        self.state.replace_chats(chats)

        if chats:
            self.state.select(chats[0].id)
        else:
            await self.chat_store.create_new_chat(settings.default_chat_title)

        logger.info(
            f"Restored guest session with {len(chats)} chats",
            extra={"session_id": session_id},
        )
        return self.session

    async def create_session(self) -> GuestSession:
        """
        Start a new guest session and give it one initial chat.

        The session id is persisted before the initial chat is requested.

        Raises:
            ApiError: If the server does not issue a session
        """
        payload = await self.api.start_guest_session()
        session_id = None
        if isinstance(payload, Mapping):
            session_id = payload.get("sessionId") or payload.get("session_id")
        if not session_id or not isinstance(session_id, str):
            raise ApiError("Guest session response has no sessionId", detail=payload)

        self.storage.set(self.storage_key, session_id)
        self.session = GuestSession(session_id=session_id, created_at=self._created_at(payload))

        self.state.clear()
        self.state.set_session_id(session_id)
        await self.chat_store.create_new_chat(settings.default_chat_title)

        logger.info("Created guest session", extra={"session_id": session_id})
        return self.session

    async def reset(self) -> Optional[GuestSession]:
        """Forget the current session (logout/reset) and bootstrap a new one."""
        if self._init_task is not None and not self._init_task.done():
            await self._init_task

        self.storage.remove(self.storage_key)
        self.state.clear()
        self.session = None
        self.status = SessionState.UNINITIALIZED
        return await self.initialize()

    @staticmethod
    def _created_at(payload: Any):
        if isinstance(payload, Mapping):
            parsed = parse_timestamp(payload.get("createdAt") or payload.get("created_at"))
            if parsed is not None:
                return parsed
        return utc_now()
