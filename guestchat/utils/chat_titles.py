"""
Chat title helpers.
"""

from typing import Optional

from guestchat.core.config import settings
from guestchat.core.strings import NEW_CHAT, translate


def is_new_chat(title: Optional[str]) -> bool:
    """A chat is untitled until it gets anything but the default title."""
    return not title or not title.strip() or title == settings.default_chat_title


def get_display_chat_title(title: Optional[str], language: Optional[str] = None) -> str:
    """Title to show, with untitled chats rendered as the localized default."""
    if is_new_chat(title):
        return translate(NEW_CHAT, language)
    return title


def derive_chat_title(content: str, word_count: Optional[int] = None) -> str:
    """
    Title derived from a chat's first message: its first few words plus "...".

    "What are the side effects of ibuprofen" -> "What are the..."
    """
    words = content.split()
    if not words:
        return settings.default_chat_title
    count = word_count or settings.chat_title_word_count
    return " ".join(words[:count]) + "..."
