"""
Chat and message normalization.

The guest API has shipped several payload shapes over time (camelCase and
snake_case keys, `_id` from the document store, history rows that embed
their own parent chat). These functions turn any of them into the canonical
models and never raise on bad input: a record that cannot be normalized is
dropped by returning None.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from guestchat.core.logging import get_logger
from guestchat.models.chat import Chat, ChatId, Message, MessageRole
from guestchat.models.upload import FileCategory, UploadedFile

logger = get_logger(__name__)

CHAT_ID_KEYS = ("id", "chatId", "_id", "chat_id")
MESSAGE_ID_KEYS = ("id", "messageId", "_id")
CONTENT_KEYS = ("content", "message", "text")
REPLY_KEYS = ("response", "message", "content")
INVALID_ID_LITERALS = ("undefined", "null", "")


def _first(raw: Mapping[str, Any], keys: Iterable[str]) -> Any:
    """First value under `keys` that is neither None nor an empty string."""
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse ISO-8601 strings, epoch seconds or epoch milliseconds into UTC.

    Naive values are assumed to be UTC so mixed payloads still sort.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_valid_chat_id(chat_id: Any) -> bool:
    """True unless the id is missing or one of the stringified-null literals."""
    if chat_id is None:
        return False
    if isinstance(chat_id, str) and chat_id.strip() in INVALID_ID_LITERALS:
        return False
    return True


def extract_chat_id(response: Any) -> Optional[ChatId]:
    """Pull a chat id out of a create-chat response of any known shape."""
    if isinstance(response, Mapping):
        chat_id = _first(response, CHAT_ID_KEYS)
        if chat_id is None and isinstance(response.get("data"), Mapping):
            chat_id = _first(response["data"], CHAT_ID_KEYS)
        return chat_id if is_valid_chat_id(chat_id) else None
    if isinstance(response, (int, str)) and not isinstance(response, bool):
        return response if is_valid_chat_id(response) else None
    return None


def _resolve_role(raw: Mapping[str, Any]) -> MessageRole:
    role = raw.get("role")
    if isinstance(role, MessageRole):
        return role
    if isinstance(role, str) and role:
        return MessageRole.USER if role.lower() == "user" else MessageRole.ASSISTANT

    sender = raw.get("sender")
    if isinstance(sender, str) and sender:
        return MessageRole.USER if sender.upper() == "USER" else MessageRole.ASSISTANT

    is_user = raw.get("isUser", raw.get("is_user"))
    if isinstance(is_user, bool):
        return MessageRole.USER if is_user else MessageRole.ASSISTANT

    return MessageRole.ASSISTANT


def normalize_uploaded_file(raw: Any) -> Optional[UploadedFile]:
    """Normalize file metadata from the batch files endpoint or a message."""
    if isinstance(raw, UploadedFile):
        return raw
    if not isinstance(raw, Mapping):
        return None

    file_id = _first(raw, ("fileId", "file_id", "id"))
    if file_id is None:
        return None

    category = raw.get("category")
    try:
        category = FileCategory(category) if category else None
    except ValueError:
        category = None

    size = _first(raw, ("fileSize", "file_size", "size"))
    try:
        size = int(size) if size is not None else 0
    except (TypeError, ValueError):
        size = 0

    return UploadedFile(
        file_id=str(file_id),
        filename=str(_first(raw, ("filename", "fileName", "name")) or ""),
        url=str(raw.get("url") or ""),
        file_type=str(
            _first(raw, ("fileType", "file_type", "type", "contentType"))
            or "application/octet-stream"
        ),
        file_size=size,
        category=category,
        uploaded_at=parse_timestamp(_first(raw, ("uploadedAt", "uploaded_at"))),
    )


def normalize_message(raw: Any) -> Message:
    """
    Convert one message payload into a Message.

    Only scalar fields are read. History rows can embed a `chat` object that
    points back at its own message list; it is never traversed or copied.
    """
    if isinstance(raw, Message):
        return raw.model_copy(deep=True)
    if not isinstance(raw, Mapping):
        raise TypeError(f"Message payload must be an object, got {type(raw).__name__}")

    content = _first(raw, CONTENT_KEYS)
    if not isinstance(content, str):
        content = "" if content is None or isinstance(content, (Mapping, list)) else str(content)

    message_id = _first(raw, MESSAGE_ID_KEYS)
    if isinstance(message_id, (Mapping, list)):
        message_id = None

    attachments_raw = raw.get("attachments") or raw.get("files") or []
    attachments = []
    if isinstance(attachments_raw, list):
        for item in attachments_raw:
            uploaded = normalize_uploaded_file(item)
            if uploaded is not None:
                attachments.append(uploaded)

    timestamp = parse_timestamp(_first(raw, ("timestamp", "createdAt", "created_at")))

    message = Message(
        content=content,
        role=_resolve_role(raw),
        id=message_id,
        is_loading=bool(raw.get("isLoading", raw.get("is_loading", False))),
        attachments=attachments,
    )
    if timestamp is not None:
        message.timestamp = timestamp
    return message


def extract_messages_from_history(history: Any) -> List[Message]:
    """
    Extract ordered messages from a history response.

    Accepts a bare list, a `{"data": [...]}` envelope, or previously
    extracted Message objects. Duplicate ids keep the first occurrence,
    blank messages are dropped, and the result is sorted oldest first.
    Running it again on its own output returns the same sequence.
    """
    if history is None:
        return []

    items = history
    if isinstance(history, Mapping):
        items = history.get("data")
        if isinstance(items, Mapping):
            items = items.get("messages")

    if not isinstance(items, list):
        logger.warning(f"History response is not a list: {type(items).__name__}")
        return []

    extracted: List[Message] = []
    seen_ids = set()

    for item in items:
        try:
            message = normalize_message(item)
        except (TypeError, ValueError) as e:
            logger.warning(f"Dropping unreadable history item: {e}")
            continue

        if message.id is not None:
            key = str(message.id)
            if key in seen_ids:
                continue
            seen_ids.add(key)

        if message.content.strip():
            extracted.append(message)

    # sorted() is stable, so equal timestamps keep server order
    return sorted(extracted, key=lambda m: m.timestamp)


def normalize_chat(raw: Any, session_id: str) -> Optional[Chat]:
    """
    Convert a chat payload into a Chat, or None when it has no usable id.

    None is a data-integrity signal to drop the record, not an error.
    """
    if isinstance(raw, Chat):
        return raw.model_copy(deep=True)
    if not isinstance(raw, Mapping):
        logger.error(f"Chat payload is not an object: {type(raw).__name__}")
        return None

    chat_id = _first(raw, CHAT_ID_KEYS)
    if not is_valid_chat_id(chat_id) or isinstance(chat_id, (Mapping, list, bool)):
        logger.error(f"Chat object has no valid id, keys={sorted(raw.keys())}")
        return None

    title = _first(raw, ("title", "name"))
    created_at = parse_timestamp(_first(raw, ("createdAt", "created_at")))
    updated_at = parse_timestamp(_first(raw, ("updatedAt", "updated_at")))
    timestamp = parse_timestamp(raw.get("timestamp")) or created_at or updated_at

    messages = extract_messages_from_history(raw.get("messages") or [])

    last_message = _first(raw, ("lastMessage", "last_message"))
    if not isinstance(last_message, str):
        last_message = messages[-1].content if messages else None

    try:
        chat = Chat(
            id=chat_id,
            session_id=str(_first(raw, ("sessionId", "session_id")) or session_id),
            title=title if isinstance(title, str) else None,
            created_at=created_at,
            updated_at=updated_at,
            last_message=last_message,
            messages=messages,
        )
    except ValidationError as e:
        logger.error(f"Chat {chat_id!r} failed validation: {e.error_count()} error(s)")
        return None
    if timestamp is not None:
        chat.timestamp = timestamp
    return chat


def extract_session_chats(payload: Any) -> List[Any]:
    """Raw chat list from a session response, bare or `data`-wrapped."""
    if isinstance(payload, Mapping) and isinstance(payload.get("data"), Mapping):
        payload = payload["data"]
    if isinstance(payload, Mapping):
        chats = payload.get("chats")
        return chats if isinstance(chats, list) else []
    return []


def normalize_chats(raw_chats: Any, session_id: str) -> List[Chat]:
    """Normalize a chat list, dropping malformed entries, most recent first."""
    if not isinstance(raw_chats, list):
        return []
    chats = [c for c in (normalize_chat(raw, session_id) for raw in raw_chats) if c is not None]
    dropped = len(raw_chats) - len(chats)
    if dropped:
        logger.warning(f"Dropped {dropped} malformed chat(s) for session {session_id}")
    return sorted(chats, key=lambda c: c.activity_at, reverse=True)


def resolve_reply_content(payload: Any) -> str:
    """
    Pick the assistant text out of a send-message response.

    Priority: `response`, `message`, `content`, then the raw body when it is
    plain text. Returns an empty string when nothing usable is present.
    """
    if isinstance(payload, str):
        return payload
    if isinstance(payload, Mapping):
        for key in REPLY_KEYS:
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value
            if isinstance(value, Mapping):
                nested = resolve_reply_content(value)
                if nested:
                    return nested
    return ""
