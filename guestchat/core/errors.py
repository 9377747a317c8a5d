"""
Exception taxonomy for the guest chat engine.

Validation errors are raised before any network call. API errors wrap the
transport so services can branch on status (404 means a stale session).
Batch errors are terminal for one upload batch only.
"""

from typing import Any, List, Optional

import httpx


class GuestChatError(Exception):
    """Base class for all guest chat errors."""


class NoSessionError(GuestChatError):
    """Operation requires an initialized guest session."""

    def __init__(self, operation: str):
        super().__init__(f"No active guest session for {operation}")
        self.operation = operation


class ApiError(GuestChatError):
    """
    HTTP or transport failure talking to the API.

    `status_code` is None when no response was received (DNS, timeout,
    connection reset).
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        detail: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in (401, 403)

    @classmethod
    def from_httpx(cls, error: httpx.HTTPError) -> "ApiError":
        """Build an ApiError from any httpx failure."""
        if isinstance(error, httpx.HTTPStatusError):
            response = error.response
            try:
                detail = response.json()
            except ValueError:
                detail = response.text
            return cls(
                f"{error.request.method} {error.request.url.path} failed with {response.status_code}",
                status_code=response.status_code,
                detail=detail,
            )
        return cls(f"Request failed: {error}")


class StaleSessionError(GuestChatError):
    """Stored guest session id was rejected by the server (404)."""

    def __init__(self, session_id: str):
        super().__init__(f"Guest session {session_id} no longer exists")
        self.session_id = session_id


class ValidationError(GuestChatError):
    """Input rejected client-side before any network call."""


class InvalidChatIdError(ValidationError):
    def __init__(self, chat_id: Any):
        super().__init__(f"Invalid chat id: {chat_id!r}")
        self.chat_id = chat_id


class MessageValidationError(ValidationError):
    """Empty message with no attachments, or unknown target chat."""


class SendInProgressError(ValidationError):
    """A send is already outstanding for this chat."""

    def __init__(self, chat_id: Any):
        super().__init__(f"A message is already being sent in chat {chat_id}")
        self.chat_id = chat_id


class UploadValidationError(ValidationError):
    """
    Every file in a batch failed validation.

    `rejected` holds one FileRejection per file.
    """

    def __init__(self, rejected: List[Any]):
        names = ", ".join(r.filename for r in rejected)
        super().__init__(f"No valid files to upload: {names}")
        self.rejected = rejected


class BatchUploadError(GuestChatError):
    """Terminal failure of one upload batch."""

    def __init__(self, batch_id: str, message: str):
        super().__init__(message)
        self.batch_id = batch_id


class BatchUploadFailedError(BatchUploadError):
    """Server reported the batch as failed."""

    def __init__(self, batch_id: str):
        super().__init__(batch_id, f"Batch upload {batch_id} failed")


class BatchUploadTimeoutError(BatchUploadError):
    """Batch did not reach a terminal status within the attempt cap."""

    def __init__(self, batch_id: str, attempts: int):
        super().__init__(
            batch_id, f"Batch upload {batch_id} still processing after {attempts} attempts"
        )
        self.attempts = attempts
