"""
Message exchange: send a user message and settle the assistant reply.

The user message and a loading placeholder are appended before the request
goes out. Whatever the outcome, the placeholder is removed before the reply
(or the localized error message) is appended, and the chat's send flag is
released.
"""

from typing import Optional, Sequence

from guestchat.core.config import settings
from guestchat.core.errors import (
    GuestChatError,
    InvalidChatIdError,
    MessageValidationError,
    NoSessionError,
    SendInProgressError,
)
from guestchat.core.logging import get_logger
from guestchat.core.strings import ATTACHED_FILES, ERROR_MESSAGE, translate
from guestchat.models.base import utc_now
from guestchat.models.chat import ChatId, Message, MessageRole, SendResult
from guestchat.models.upload import UploadedFile
from guestchat.services.api_client import GuestApiClient
from guestchat.services.chats import ChatStore
from guestchat.services.normalization import is_valid_chat_id, resolve_reply_content
from guestchat.services.state import ChatState
from guestchat.services.uploads import BatchUploadTracker
from guestchat.utils.chat_titles import derive_chat_title, is_new_chat

logger = get_logger(__name__)


class MessageExchange:
    """Sends messages for the chats held in ChatState."""

    def __init__(
        self,
        api: GuestApiClient,
        state: ChatState,
        chat_store: ChatStore,
        uploads: BatchUploadTracker,
    ):
        self.api = api
        self.state = state
        self.chat_store = chat_store
        self.uploads = uploads

    async def send_message(
        self,
        content: str,
        chat_id: Optional[ChatId] = None,
        attachments: Optional[Sequence[UploadedFile]] = None,
        language: Optional[str] = None,
        specialty: Optional[str] = None,
    ) -> SendResult:
        """
        Send a message and wait for the assistant reply.

        Args:
            content: Message text; may be blank when files are attached
            chat_id: Target chat; defaults to the selected chat
            attachments: Files to attach; defaults to the pending attachments
            language: Reply language; defaults to GUESTCHAT_DEFAULT_LANGUAGE
            specialty: Optional specialty/category hint for the assistant

        Returns:
            SendResult; success is False when the reply failed and the
            inline error message was appended instead

        Raises:
            NoSessionError: No active guest session
            InvalidChatIdError: Target chat id is missing or a null literal
            MessageValidationError: Empty message without attachments, or unknown chat
            SendInProgressError: A send is already outstanding for the chat
        """
        session_id = self.state.session_id
        if not session_id:
            raise NoSessionError("send_message")

        chat_id = chat_id if chat_id is not None else self.state.selected_chat_id
        if not is_valid_chat_id(chat_id):
            raise InvalidChatIdError(chat_id)

        chat = self.state.get_chat(chat_id)
        if chat is None:
            raise MessageValidationError(f"Unknown chat {chat_id}")

        files = list(attachments) if attachments is not None else self.uploads.pending_files
        text = (content or "").strip()
        if not text and not files:
            raise MessageValidationError("Message is empty and has no attachments")

        if not self.state.begin_send(chat_id):
            raise SendInProgressError(chat_id)

        language = language or settings.default_language
        specialty = specialty or settings.default_specialty or None
        file_ids = [f.file_id for f in files]
        # Attachment-only sends carry a label as content
        text = text or translate(ATTACHED_FILES, language)
        is_first = not chat.messages and is_new_chat(chat.title)

        user_message = Message(
            content=text,
            role=MessageRole.USER,
            attachments=[f.model_copy() for f in files],
        )

        try:
            self.state.append_message(chat_id, user_message)
            self.state.append_message(chat_id, Message.loading_placeholder())

            error: Optional[str] = None
            try:
                payload = await self.api.send_message(
                    session_id,
                    chat_id,
                    text,
                    language,
                    file_ids=file_ids,
                    specialty=specialty,
                )
                reply_text = resolve_reply_content(payload)
                if not reply_text.strip():
                    error = "Empty reply from assistant"
            except GuestChatError as e:
                error = str(e)
            except Exception as e:
                logger.error(
                    f"Unexpected error while sending: {e}",
                    exc_info=True,
                    extra={"session_id": session_id, "chat_id": chat_id},
                )
                error = str(e) or type(e).__name__

            # A temp chat may have received its server id mid-flight
            current_id = self.state.resolve_chat_id(chat_id)

            if error is None:
                reply = Message(content=reply_text, role=MessageRole.ASSISTANT)
            else:
                logger.error(
                    f"Send failed: {error}",
                    extra={"session_id": session_id, "chat_id": chat_id},
                )
                reply = Message(content=translate(ERROR_MESSAGE, language), role=MessageRole.ASSISTANT)

            self.uploads.clear_pending(file_ids)

            if current_id is None:
                logger.info(
                    "Chat deleted while a message was in flight",
                    extra={"chat_id": chat_id},
                )
                return SendResult(
                    chat_id=chat_id,
                    success=error is None,
                    user_message=user_message,
                    reply=reply,
                    error=error,
                )

            self.state.remove_loading_messages(current_id)
            self.state.append_message(current_id, reply)
            self.state.touch_chat(current_id, reply.content, utc_now())

            title = None
            if is_first:
                title = derive_chat_title(user_message.content)
                await self.chat_store.update_chat_title(current_id, title)

            return SendResult(
                chat_id=current_id,
                success=error is None,
                user_message=user_message,
                reply=reply,
                title=title,
                error=error,
            )
        finally:
            current_id = self.state.resolve_chat_id(chat_id)
            if current_id is not None:
                self.state.remove_loading_messages(current_id)
                self.state.end_send(current_id)
            self.state.end_send(chat_id)
