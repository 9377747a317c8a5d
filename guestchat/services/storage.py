"""
Local persistence adapter.

Key/value stores for the guest session id and the auth token. The file
stores write the whole document to a temp file and swap it in, so a single
key update is atomic on disk.
"""

import base64
import hashlib
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from cryptography.fernet import Fernet, InvalidToken

from guestchat.core.config import settings
from guestchat.core.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value or None."""
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete key; missing keys are ignored."""
        ...


class MemoryStore(KeyValueStore):
    """Process-local store, used in tests and for throwaway sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """Plain JSON document on disk (the browser local storage equivalent)."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            return self._decode(self.path.read_bytes())
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable store at {self.path}: {e}")
            return {}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_bytes(self._encode(data))
        os.replace(tmp_path, self.path)

    def _decode(self, raw: bytes) -> Dict[str, str]:
        data = json.loads(raw.decode("utf-8"))
        if not isinstance(data, dict):
            raise ValueError("store document is not an object")
        return data

    def _encode(self, data: Dict[str, str]) -> bytes:
        return json.dumps(data, indent=2).encode("utf-8")

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


def derive_fernet_key(secret: str) -> bytes:
    """
    Derive a Fernet key from arbitrary secret text.

    SHA-256 gives a stable 32-byte key; Fernet wants it urlsafe-base64 encoded.
    """
    if not secret or not secret.strip():
        raise ValueError("Secure storage requires a non-empty secret")
    return base64.urlsafe_b64encode(hashlib.sha256(secret.encode()).digest())


class EncryptedFileStore(JsonFileStore):
    """JSON store encrypted at rest with Fernet (device secure storage)."""

    def __init__(self, path: str | Path, secret: str):
        super().__init__(path)
        self._fernet = Fernet(derive_fernet_key(secret))

    def _decode(self, raw: bytes) -> Dict[str, str]:
        try:
            decrypted = self._fernet.decrypt(raw)
        except InvalidToken as e:
            raise ValueError("secure store could not be decrypted") from e
        return super()._decode(decrypted)

    def _encode(self, data: Dict[str, str]) -> bytes:
        return self._fernet.encrypt(super()._encode(data))


def get_storage() -> KeyValueStore:
    """Factory based on GUESTCHAT_STORAGE_BACKEND."""
    backend = settings.storage_backend
    if backend == "memory":
        return MemoryStore()
    if backend == "secure":
        return EncryptedFileStore(settings.storage_path, settings.storage_secret)
    return JsonFileStore(settings.storage_path)
