"""Tests for the local key/value stores."""

import json

import pytest

from guestchat.core.config import settings
from guestchat.services.storage import (
    EncryptedFileStore,
    JsonFileStore,
    MemoryStore,
    derive_fernet_key,
    get_storage,
)


class TestMemoryStore:
    def test_get_set_remove(self):
        store = MemoryStore({"a": "1"})
        assert store.get("a") == "1"
        store.set("b", "2")
        store.remove("a")
        store.remove("missing")
        assert store.get("a") is None
        assert store.get("b") == "2"


class TestJsonFileStore:
    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "store.json"
        JsonFileStore(path).set("guest_session_id", "sess-1")

        assert JsonFileStore(path).get("guest_session_id") == "sess-1"
        assert json.loads(path.read_text()) == {"guest_session_id": "sess-1"}

    def test_remove_only_touches_that_key(self, tmp_path):
        store = JsonFileStore(tmp_path / "store.json")
        store.set("guest_session_id", "sess-1")
        store.set("auth_token", "tok")
        store.remove("guest_session_id")

        assert store.get("guest_session_id") is None
        assert store.get("auth_token") == "tok"

    def test_corrupt_file_reads_as_empty(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        store = JsonFileStore(path)

        assert store.get("anything") is None
        store.set("k", "v")
        assert store.get("k") == "v"


class TestEncryptedFileStore:
    def test_values_are_not_stored_in_plain_text(self, tmp_path):
        path = tmp_path / "secure.bin"
        store = EncryptedFileStore(path, "s3cret")
        store.set("auth_token", "bearer-token-value")

        assert b"bearer-token-value" not in path.read_bytes()
        assert EncryptedFileStore(path, "s3cret").get("auth_token") == "bearer-token-value"

    def test_wrong_secret_reads_as_empty(self, tmp_path):
        path = tmp_path / "secure.bin"
        EncryptedFileStore(path, "right").set("auth_token", "tok")

        assert EncryptedFileStore(path, "wrong").get("auth_token") is None

    def test_key_derivation(self):
        assert derive_fernet_key("abc") == derive_fernet_key("abc")
        assert derive_fernet_key("abc") != derive_fernet_key("abd")
        with pytest.raises(ValueError):
            derive_fernet_key("")


class TestGetStorage:
    @pytest.mark.parametrize(
        "backend, expected",
        [("memory", MemoryStore), ("file", JsonFileStore), ("secure", EncryptedFileStore)],
    )
    def test_backend_selection(self, monkeypatch, tmp_path, backend, expected):
        monkeypatch.setattr(settings, "storage_backend", backend)
        monkeypatch.setattr(settings, "storage_path", str(tmp_path / "store"))
        monkeypatch.setattr(settings, "storage_secret", "s3cret")

        assert type(get_storage()) is expected
