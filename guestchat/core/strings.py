"""
Localized strings the engine writes into chat state.

Only the handful of strings that end up inside chats or messages live here;
everything else is the UI's business.
"""

from typing import Dict, Optional

from guestchat.core.config import settings

NEW_CHAT = "chat.newChat"
ERROR_MESSAGE = "chat.error.message"
ATTACHED_FILES = "chat.attachedFiles"

CATALOG: Dict[str, Dict[str, str]] = {
    "en": {
        NEW_CHAT: "New Chat",
        ERROR_MESSAGE: "Sorry, something went wrong. Please try again.",
        ATTACHED_FILES: "Attached files",
    },
    "es": {
        NEW_CHAT: "Nuevo chat",
        ERROR_MESSAGE: "Lo sentimos, algo salió mal. Inténtalo de nuevo.",
        ATTACHED_FILES: "Archivos adjuntos",
    },
    "fr": {
        NEW_CHAT: "Nouvelle discussion",
        ERROR_MESSAGE: "Désolé, une erreur s'est produite. Veuillez réessayer.",
        ATTACHED_FILES: "Fichiers joints",
    },
    "ar": {
        NEW_CHAT: "محادثة جديدة",
        ERROR_MESSAGE: "عذرًا، حدث خطأ ما. يرجى المحاولة مرة أخرى.",
        ATTACHED_FILES: "ملفات مرفقة",
    },
}


def translate(key: str, language: Optional[str] = None) -> str:
    """
    Look up a string, falling back to English, then to the key itself.

    Region suffixes are ignored ("es-MX" resolves to "es").
    """
    lang = (language or settings.default_language or "en").split("-")[0].lower()
    table = CATALOG.get(lang) or CATALOG["en"]
    return table.get(key) or CATALOG["en"].get(key, key)
