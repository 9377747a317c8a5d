"""
API gateway client for the guest chat REST API.

Thin httpx wrapper: one coroutine per endpoint, bearer token injection on
every request, 401/403 surfaced to an optional callback. Every failure is
raised as ApiError so callers branch on status_code instead of httpx types.
"""

from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from guestchat.core.config import settings
from guestchat.core.errors import ApiError
from guestchat.core.logging import get_logger
from guestchat.models.chat import ChatId
from guestchat.models.upload import FileCategory, LocalFile
from guestchat.services.storage import KeyValueStore

logger = get_logger(__name__)


class GuestApiClient:
    """Client for guest session, chat, message and batch upload endpoints."""

    def __init__(
        self,
        storage: KeyValueStore,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_unauthorized: Optional[Callable[[int], None]] = None,
    ):
        """
        Initialize the API client.

        Args:
            storage: Store the auth token is read from on each request
            base_url: API base; defaults to GUESTCHAT_API_BASE_URL
            timeout: Request timeout in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
            on_unauthorized: Called with 401/403 status; token handling
                belongs to the auth collaborator
        """
        self.storage = storage
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.on_unauthorized = on_unauthorized

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.api_timeout_seconds,
            transport=transport,
            headers={"Accept": "application/json"},
            event_hooks={
                "request": [self._inject_auth_header],
                "response": [self._handle_auth_failure],
            },
        )

    async def __aenter__(self) -> "GuestApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    async def _inject_auth_header(self, request: httpx.Request) -> None:
        token = self.storage.get(settings.auth_token_storage_key)
        if token and "Authorization" not in request.headers:
            request.headers["Authorization"] = f"Bearer {token}"

    async def _handle_auth_failure(self, response: httpx.Response) -> None:
        if response.status_code in (401, 403):
            logger.warning(
                f"Auth failure {response.status_code} on "
                f"{response.request.method} {response.request.url.path}"
            )
            if self.on_unauthorized:
                self.on_unauthorized(response.status_code)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ApiError.from_httpx(e) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _guest_headers(self, session_id: Optional[str]) -> Dict[str, str]:
        if not session_id:
            return {}
        return {settings.guest_session_header: session_id}

    # ------------------------------------------------------------------
    # Guest sessions and chats
    # ------------------------------------------------------------------

    async def start_guest_session(self) -> Dict[str, Any]:
        return await self._request("POST", "/guest/start")

    async def get_session(self, session_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/guest/session/{session_id}")

    async def create_chat(self, session_id: str, title: Optional[str]) -> Any:
        return await self._request("POST", f"/guest/chats/{session_id}", json={"title": title})

    async def update_chat_title(self, session_id: str, chat_id: ChatId, title: str) -> Any:
        return await self._request(
            "PUT", f"/guest/chats/{session_id}/{chat_id}", json={"title": title}
        )

    async def delete_chat(self, session_id: str, chat_id: ChatId) -> None:
        await self._request("DELETE", f"/guest/chats/{session_id}/{chat_id}")

    async def get_chat_history(self, session_id: str, chat_id: ChatId) -> Any:
        return await self._request("GET", f"/guest/chat/{session_id}/{chat_id}/history")

    # ------------------------------------------------------------------
    # Messages and files
    # ------------------------------------------------------------------

    async def send_message(
        self,
        session_id: str,
        chat_id: ChatId,
        message: str,
        language: str,
        file_ids: Sequence[str] = (),
        specialty: Optional[str] = None,
    ) -> Any:
        """
        Submit a user message and wait for the assistant reply.

        Returns:
            The decoded response body; its shape varies by backend version
        """
        body = {
            "message": message,
            "language": language,
            "fileIds": list(file_ids),
            "specialty": specialty,
        }
        return await self._request(
            "POST",
            f"/v2/messages/chat/{chat_id}",
            json=body,
            headers=self._guest_headers(session_id),
        )

    async def upload_batch(
        self,
        session_id: str,
        chat_id: ChatId,
        files: Sequence[LocalFile],
        category: FileCategory,
    ) -> Dict[str, Any]:
        multipart = [("files", (f.name, f.data, f.content_type)) for f in files]
        return await self._request(
            "POST",
            f"/v2/messages/chat/{chat_id}/files/batch",
            files=multipart,
            data={"category": category.value},
            headers=self._guest_headers(session_id),
        )

    async def get_batch_status(self, session_id: str, batch_id: str) -> Dict[str, Any]:
        return await self._request(
            "GET",
            f"/v2/messages/files/batch/{batch_id}/status",
            headers=self._guest_headers(session_id),
        )

    async def get_batch_files(self, session_id: str, batch_id: str) -> List[Dict[str, Any]]:
        return await self._request(
            "GET",
            f"/v2/messages/files/batch/{batch_id}/files",
            headers=self._guest_headers(session_id),
        )
