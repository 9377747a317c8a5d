"""Tests for ChatStore optimistic create/rename/delete and refresh."""

import pytest

from guestchat.core.errors import ApiError
from guestchat.models.chat import Chat
from guestchat.services.chats import is_temporary_chat_id

SESSION_ID = "sess-123"


class TestCreateChat:
    @pytest.mark.asyncio
    async def test_temp_chat_replaced_by_server_id(self, chat_store, api, active_state):
        api.create_chat.return_value = {"data": {"chatId": 77}}

        chat_id = await chat_store.create_new_chat()

        assert chat_id == 77
        assert active_state.chat_ids[0] == 77
        assert active_state.selected_chat_id == 77
        api.create_chat.assert_awaited_once_with(SESSION_ID, "New Chat")

    @pytest.mark.asyncio
    async def test_failed_create_keeps_temp_chat(self, chat_store, api, active_state):
        api.create_chat.side_effect = ApiError("boom", status_code=500)

        chat_id = await chat_store.create_new_chat("Labs")

        assert is_temporary_chat_id(chat_id)
        assert active_state.chat_ids[0] == chat_id
        assert active_state.selected_chat_id == chat_id
        assert active_state.get_chat(chat_id).title == "Labs"

    @pytest.mark.asyncio
    async def test_without_session_returns_none(self, chat_store, api, state):
        assert await chat_store.create_new_chat() is None
        api.create_chat.assert_not_called()


class TestSelectChat:
    def test_select_known_chat(self, chat_store, active_state):
        assert chat_store.select_chat(1) is True
        assert active_state.selected_chat_id == 1

    def test_string_id_matches_int_chat(self, chat_store, active_state):
        assert chat_store.select_chat("1") is True
        assert active_state.selected_chat_id == 1

    @pytest.mark.parametrize("chat_id", [None, "undefined", "null", 999])
    def test_invalid_or_unknown_is_refused(self, chat_store, active_state, chat_id):
        assert chat_store.select_chat(chat_id) is False
        assert active_state.selected_chat_id == 2


class TestDeleteChat:
    @pytest.mark.asyncio
    async def test_delete_selected_selects_most_recent_remaining(self, chat_store, api, active_state):
        result = await chat_store.delete_chat(2)

        assert result.applied and result.persisted
        assert active_state.chat_ids == [1]
        assert active_state.selected_chat_id == 1
        api.delete_chat.assert_awaited_once_with(SESSION_ID, 2)

    @pytest.mark.asyncio
    async def test_delete_unselected_keeps_selection(self, chat_store, active_state):
        await chat_store.delete_chat(1)

        assert active_state.selected_chat_id == 2

    @pytest.mark.asyncio
    async def test_deleting_last_chat_creates_replacement(self, chat_store, api, state):
        state.set_session_id(SESSION_ID)
        state.replace_chats([Chat(id=5, session_id=SESSION_ID)])
        state.select(5)
        api.create_chat.return_value = {"id": 6}

        result = await chat_store.delete_chat(5)

        assert result.applied
        assert state.chat_ids == [6]
        assert state.selected_chat_id == 6

    @pytest.mark.asyncio
    async def test_deleting_last_chat_offline_still_leaves_one(self, chat_store, api, state):
        state.set_session_id(SESSION_ID)
        state.replace_chats([Chat(id=5, session_id=SESSION_ID)])
        state.select(5)
        api.create_chat.side_effect = ApiError("offline")
        api.delete_chat.side_effect = ApiError("offline")

        result = await chat_store.delete_chat(5)

        assert result.applied and not result.persisted
        assert len(state.chat_ids) == 1
        assert state.selected_chat_id == state.chat_ids[0]

    @pytest.mark.asyncio
    async def test_server_failure_keeps_local_delete(self, chat_store, api, active_state):
        api.delete_chat.side_effect = ApiError("boom", status_code=500)

        result = await chat_store.delete_chat(1)

        assert result.applied is True
        assert result.persisted is False
        assert active_state.chat_ids == [2]

    @pytest.mark.asyncio
    async def test_temporary_chat_is_not_sent_to_server(self, chat_store, api, active_state):
        api.create_chat.side_effect = ApiError("offline")
        temp_id = await chat_store.create_new_chat()

        result = await chat_store.delete_chat(temp_id)

        assert result.persisted
        api.delete_chat.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("chat_id", ["undefined", None, 404])
    async def test_invalid_or_unknown_rejected(self, chat_store, api, active_state, chat_id):
        result = await chat_store.delete_chat(chat_id)

        assert result.applied is False
        assert active_state.chat_ids == [2, 1]
        api.delete_chat.assert_not_called()


class TestUpdateChatTitle:
    @pytest.mark.asyncio
    async def test_rename_persists(self, chat_store, api, active_state):
        result = await chat_store.update_chat_title(1, "  Blood work  ")

        assert result.persisted
        assert active_state.get_chat(1).title == "Blood work"
        api.update_chat_title.assert_awaited_once_with(SESSION_ID, 1, "Blood work")

    @pytest.mark.asyncio
    async def test_failed_rename_keeps_local_title(self, chat_store, api, active_state):
        api.update_chat_title.side_effect = ApiError("boom", status_code=500)

        result = await chat_store.update_chat_title(1, "Blood work")

        assert result.applied and not result.persisted
        assert active_state.get_chat(1).title == "Blood work"

    @pytest.mark.asyncio
    async def test_blank_title_rejected(self, chat_store, api, active_state):
        result = await chat_store.update_chat_title(1, "   ")

        assert not result.applied
        api.update_chat_title.assert_not_called()


class TestRefreshChats:
    @pytest.mark.asyncio
    async def test_selected_chat_kept_with_fresh_messages(self, chat_store, api, active_state):
        api.get_session.return_value = {
            "chats": [
                {"id": 2, "title": "Knee pain", "messages": [{"id": "m1", "content": "hello"}]},
                {"id": 3, "title": "New one"},
            ]
        }

        result = await chat_store.refresh_chats()

        assert result.persisted
        assert active_state.selected_chat_id == 2
        assert [m.content for m in active_state.messages] == ["hello"]
        assert sorted(active_state.chat_ids) == [2, 3]

    @pytest.mark.asyncio
    async def test_vanished_selection_falls_back_to_first(self, chat_store, api, active_state):
        api.get_session.return_value = {
            "chats": [
                {"id": 8, "updatedAt": "2024-05-01T00:00:00Z"},
                {"id": 9, "updatedAt": "2024-06-01T00:00:00Z"},
            ]
        }

        await chat_store.refresh_chats()

        assert active_state.selected_chat_id == 9

    @pytest.mark.asyncio
    async def test_empty_refresh_clears_selection(self, chat_store, api, active_state):
        api.get_session.return_value = {"chats": []}

        await chat_store.refresh_chats()

        assert active_state.selected_chat_id is None
        assert active_state.chat_ids == []

    @pytest.mark.asyncio
    async def test_chat_with_unusable_id_is_skipped(self, chat_store, api, active_state):
        api.get_session.return_value = {"chats": [{"id": 1.5}, {"id": 2, "title": "Knee pain"}]}

        result = await chat_store.refresh_chats()

        assert result.persisted
        assert active_state.chat_ids == [2]
        assert active_state.selected_chat_id == 2

    @pytest.mark.asyncio
    async def test_refresh_failure_leaves_state(self, chat_store, api, active_state):
        api.get_session.side_effect = ApiError("boom", status_code=503)

        result = await chat_store.refresh_chats()

        assert not result.applied
        assert active_state.chat_ids == [2, 1]


class TestLoadChatHistory:
    @pytest.mark.asyncio
    async def test_history_is_made_resident(self, chat_store, api, active_state):
        api.get_chat_history.return_value = {
            "data": [
                {"id": "b", "content": "reply", "timestamp": "2024-01-01T10:01:00Z"},
                {"id": "a", "content": "question", "isUser": True, "timestamp": "2024-01-01T10:00:00Z"},
            ]
        }

        messages = await chat_store.load_chat_history(2)

        assert [m.id for m in messages] == ["a", "b"]
        assert [m.id for m in active_state.messages] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_temporary_chat_has_no_server_history(self, chat_store, api, active_state):
        assert await chat_store.load_chat_history("temp-1") == []
        api.get_chat_history.assert_not_called()
