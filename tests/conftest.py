"""
Shared fixtures for the guest chat test suite.

Provides: in-memory storage, chat state, a mocked API client and the wired
services built on top of them.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from guestchat.models.chat import Chat
from guestchat.services.api_client import GuestApiClient
from guestchat.services.chats import ChatStore
from guestchat.services.messages import MessageExchange
from guestchat.services.session import SessionManager
from guestchat.services.state import ChatState
from guestchat.services.storage import MemoryStore
from guestchat.services.uploads import BatchUploadTracker

API_METHODS = (
    "start_guest_session",
    "get_session",
    "create_chat",
    "update_chat_title",
    "delete_chat",
    "get_chat_history",
    "send_message",
    "upload_batch",
    "get_batch_status",
    "get_batch_files",
)

SESSION_ID = "sess-123"


@pytest.fixture
def storage():
    return MemoryStore()


@pytest.fixture
def state():
    return ChatState()


@pytest.fixture
def api():
    """
    Mocked GuestApiClient with every endpoint as an AsyncMock.

    Returns:
        MagicMock: endpoints return None until a test configures them
    """
    client = MagicMock(spec=GuestApiClient)
    for name in API_METHODS:
        setattr(client, name, AsyncMock(return_value=None))
    return client


@pytest.fixture
def chat_store(api, state):
    return ChatStore(api, state)


@pytest.fixture
def sleeps():
    """Records poll intervals instead of sleeping."""
    return []


@pytest.fixture
def uploads(api, state, sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)

    return BatchUploadTracker(api, state, poll_interval=1.0, max_attempts=5, sleep=fake_sleep)


@pytest.fixture
def exchange(api, state, chat_store, uploads):
    return MessageExchange(api, state, chat_store, uploads)


@pytest.fixture
def session_manager(api, storage, state, chat_store):
    return SessionManager(api, storage, state, chat_store)


@pytest.fixture
def active_state(state):
    """State with a session and two server chats, the newer one selected."""
    state.set_session_id(SESSION_ID)
    state.replace_chats(
        [
            Chat(id=2, session_id=SESSION_ID, title="Knee pain"),
            Chat(id=1, session_id=SESSION_ID, title=None),
        ]
    )
    state.select(2)
    return state
