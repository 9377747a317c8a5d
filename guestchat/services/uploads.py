"""
Batched file upload tracking.

Files are validated against their category rules, sent as one multipart
request, then the batch is polled on a fixed interval until it reaches a
terminal status or the attempt cap runs out:

    SUBMITTED -> POLLING -> COMPLETED | PARTIAL | FAILED | TIMED_OUT

Completed and partial batches both surface their uploaded files, which join
the pending attachments for the next message.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from guestchat.core.config import settings
from guestchat.core.errors import (
    ApiError,
    BatchUploadFailedError,
    BatchUploadTimeoutError,
    NoSessionError,
    UploadValidationError,
    ValidationError,
)
from guestchat.core.logging import get_logger
from guestchat.models.chat import ChatId
from guestchat.models.upload import (
    FILE_CATEGORY_RULES,
    BatchState,
    BatchStatus,
    BatchSubmission,
    BatchUploadJob,
    BatchUploadResult,
    FileCategory,
    FileRejection,
    LocalFile,
    UploadedFile,
)
from guestchat.services.api_client import GuestApiClient
from guestchat.services.normalization import is_valid_chat_id, normalize_uploaded_file
from guestchat.services.state import ChatState

logger = get_logger(__name__)

ProgressCallback = Callable[[BatchUploadJob], None]
Sleep = Callable[[float], Awaitable[Any]]


def _coerce_category(category: Union[FileCategory, str]) -> FileCategory:
    try:
        return FileCategory(category)
    except ValueError as e:
        allowed = ", ".join(c.value for c in FileCategory)
        raise ValidationError(f"Unknown file category {category!r}. Allowed: {allowed}") from e


def validate_file(file: LocalFile, category: Union[FileCategory, str] = FileCategory.GENERAL) -> Optional[str]:
    """
    Check one file against its category rules.

    Returns:
        An error message, or None when the file is acceptable
    """
    rule = FILE_CATEGORY_RULES[_coerce_category(category)]

    if file.size > rule.max_size_bytes:
        return f"File size exceeds {rule.max_size_mb}MB limit"

    if file.extension not in rule.extensions:
        accepted = ", ".join(sorted(rule.extensions))
        return f"File format not allowed. Accepted: {accepted}"

    if file.size == 0:
        return "File is empty"

    return None


def validate_files(
    files: Sequence[LocalFile],
    category: Union[FileCategory, str] = FileCategory.GENERAL,
    max_files: Optional[int] = None,
) -> Tuple[List[LocalFile], List[FileRejection]]:
    """Split files into (valid, rejected); one bad file never blocks the rest."""
    limit = max_files or settings.max_files_per_batch
    valid: List[LocalFile] = []
    rejected: List[FileRejection] = []

    for file in files:
        error = validate_file(file, category)
        if error is None and len(valid) >= limit:
            error = f"Too many files, at most {limit} per batch"
        if error:
            rejected.append(FileRejection(filename=file.name, error=error))
        else:
            valid.append(file)

    return valid, rejected


def _parse_status(payload: Any) -> BatchStatus:
    raw = payload.get("status") if isinstance(payload, Mapping) else None
    try:
        return BatchStatus(str(raw).lower())
    except ValueError:
        return BatchStatus.PROCESSING


def _parse_progress(payload: Any) -> float:
    if not isinstance(payload, Mapping):
        return 0.0
    raw = payload.get("progressPercentage", payload.get("progress", 0))
    try:
        return min(100.0, max(0.0, float(raw or 0)))
    except (TypeError, ValueError):
        return 0.0


class BatchUploadTracker:
    """Submits batches, polls them, and holds compose-time attachments."""

    def __init__(
        self,
        api: GuestApiClient,
        state: ChatState,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.api = api
        self.state = state
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.batch_poll_interval_seconds
        )
        self.max_attempts = max_attempts or settings.batch_poll_max_attempts
        self._sleep = sleep

        self.jobs: Dict[str, BatchUploadJob] = {}
        self.batch_states: Dict[str, BatchState] = {}
        self._pending: List[UploadedFile] = []

    # ------------------------------------------------------------------
    # Pending attachments
    # ------------------------------------------------------------------

    @property
    def pending_files(self) -> List[UploadedFile]:
        return [f.model_copy() for f in self._pending]

    @property
    def pending_file_ids(self) -> List[str]:
        return [f.file_id for f in self._pending]

    def add_pending(self, files: Sequence[UploadedFile]) -> None:
        known = set(self.pending_file_ids)
        for file in files:
            if file.file_id not in known:
                self._pending.append(file)
                known.add(file.file_id)

    def remove_pending(self, file_id: str) -> bool:
        before = len(self._pending)
        self._pending = [f for f in self._pending if f.file_id != file_id]
        return len(self._pending) != before

    def clear_pending(self, file_ids: Optional[Sequence[str]] = None) -> None:
        """Clear all pending attachments, or only the given ids."""
        if file_ids is None:
            self._pending = []
            return
        drop = set(file_ids)
        self._pending = [f for f in self._pending if f.file_id not in drop]

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def _require_session(self, operation: str) -> str:
        session_id = self.state.session_id
        if not session_id:
            raise NoSessionError(operation)
        return session_id

    async def submit_batch(
        self,
        files: Sequence[LocalFile],
        category: Union[FileCategory, str] = FileCategory.GENERAL,
        chat_id: Optional[ChatId] = None,
    ) -> BatchSubmission:
        """
        Validate files and upload the valid ones as a single batch.

        Args:
            files: Files picked by the user
            category: Category applied to the whole batch
            chat_id: Target chat; defaults to the selected chat

        Returns:
            Submission with the batch id and any per-file rejections

        Raises:
            UploadValidationError: If no file passed validation (no request sent)
            ApiError: If the upload request fails
        """
        category = _coerce_category(category)
        session_id = self._require_session("submit_batch")
        chat_id = chat_id if chat_id is not None else self.state.selected_chat_id
        if not is_valid_chat_id(chat_id):
            raise ValidationError(f"Invalid chat id for upload: {chat_id!r}")

        valid, rejected = validate_files(files, category)
        for rejection in rejected:
            logger.warning(f"Rejected {rejection.filename}: {rejection.error}")
        if not valid:
            raise UploadValidationError(rejected)

        payload = await self.api.upload_batch(session_id, chat_id, valid, category)
        batch_id = payload.get("batchId") if isinstance(payload, Mapping) else None
        if not batch_id:
            raise ApiError("Batch upload response has no batchId", detail=payload)
        batch_id = str(batch_id)

        self.jobs[batch_id] = BatchUploadJob(batch_id=batch_id, status=BatchStatus.PROCESSING)
        self.batch_states[batch_id] = BatchState.POLLING
        logger.info(
            f"Submitted batch of {len(valid)} file(s), {len(rejected)} rejected",
            extra={"batch_id": batch_id, "chat_id": chat_id},
        )
        return BatchSubmission(
            batch_id=batch_id,
            category=category,
            accepted=[f.name for f in valid],
            rejected=rejected,
            state=BatchState.POLLING,
        )

    async def poll_status(
        self,
        batch_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchUploadResult:
        """
        Poll a batch until it settles.

        Progress handed to `on_progress` never decreases, even if the server
        reports a lower value on a later poll.

        Raises:
            BatchUploadFailedError: Server reported the batch as failed
            BatchUploadTimeoutError: Still processing after max_attempts polls
            ApiError: A status or files request failed
        """
        session_id = self._require_session("poll_status")
        previous = self.jobs.get(batch_id)
        best_progress = previous.progress_percentage if previous else 0.0
        self.batch_states[batch_id] = BatchState.POLLING

        for attempt in range(1, self.max_attempts + 1):
            try:
                payload = await self.api.get_batch_status(session_id, batch_id)
            except ApiError:
                self.batch_states[batch_id] = BatchState.FAILED
                raise

            status = _parse_status(payload)
            best_progress = max(best_progress, _parse_progress(payload))
            if status in (BatchStatus.COMPLETED, BatchStatus.PARTIAL):
                best_progress = 100.0

            job = BatchUploadJob(
                batch_id=batch_id, status=status, progress_percentage=best_progress
            )
            self.jobs[batch_id] = job
            if on_progress:
                on_progress(job)

            if status in (BatchStatus.COMPLETED, BatchStatus.PARTIAL):
                try:
                    files, failed = await self.fetch_batch_files(batch_id)
                except ApiError:
                    # Settled on the server but its files are unreachable
                    self.batch_states[batch_id] = BatchState.FAILED
                    raise
                self.add_pending(files)
                state = BatchState.COMPLETED if status == BatchStatus.COMPLETED else BatchState.PARTIAL
                self.batch_states[batch_id] = state
                logger.info(
                    f"Batch {status.value}: {len(files)} file(s) ready, {len(failed)} failed",
                    extra={"batch_id": batch_id},
                )
                return BatchUploadResult(
                    batch_id=batch_id,
                    state=state,
                    progress_percentage=best_progress,
                    files=files,
                    failed_files=failed,
                )

            if status == BatchStatus.FAILED:
                self.batch_states[batch_id] = BatchState.FAILED
                logger.error("Batch upload failed on server", extra={"batch_id": batch_id})
                raise BatchUploadFailedError(batch_id)

            if attempt < self.max_attempts:
                await self._sleep(self.poll_interval)

        self.batch_states[batch_id] = BatchState.TIMED_OUT
        logger.error(
            f"Batch upload timed out after {self.max_attempts} polls",
            extra={"batch_id": batch_id},
        )
        raise BatchUploadTimeoutError(batch_id, self.max_attempts)

    async def fetch_batch_files(self, batch_id: str) -> Tuple[List[UploadedFile], List[FileRejection]]:
        """
        Fetch and normalize the files of a settled batch.

        Entries flagged as failed (success false, status failed, or an error
        without a file id) are returned separately instead of dropped.
        """
        session_id = self._require_session("fetch_batch_files")
        payload = await self.api.get_batch_files(session_id, batch_id)

        items = payload
        if isinstance(payload, Mapping):
            items = payload.get("files", payload.get("data", []))
        if not isinstance(items, list):
            logger.warning("Batch files response is not a list", extra={"batch_id": batch_id})
            return [], []

        files: List[UploadedFile] = []
        failed: List[FileRejection] = []
        for item in items:
            if not isinstance(item, Mapping):
                continue
            name = str(item.get("filename") or item.get("name") or "")
            item_failed = item.get("success") is False or str(item.get("status", "")).lower() == "failed"
            uploaded = None if item_failed else normalize_uploaded_file(item)
            if uploaded is None:
                failed.append(FileRejection(filename=name, error=str(item.get("error") or "Upload failed")))
            else:
                files.append(uploaded)

        return files, failed

    async def upload_files(
        self,
        files: Sequence[LocalFile],
        category: Union[FileCategory, str] = FileCategory.GENERAL,
        chat_id: Optional[ChatId] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchUploadResult:
        """Submit a batch and poll it to completion in one call."""
        submission = await self.submit_batch(files, category, chat_id)
        result = await self.poll_status(submission.batch_id, on_progress=on_progress)
        result.rejected = submission.rejected
        return result
