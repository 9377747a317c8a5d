"""Tests for file validation and BatchUploadTracker polling."""

import pytest

from guestchat.core.errors import (
    ApiError,
    BatchUploadFailedError,
    BatchUploadTimeoutError,
    UploadValidationError,
)
from guestchat.models.upload import MB, BatchState, FileCategory, LocalFile
from guestchat.services.uploads import validate_file, validate_files

SESSION_ID = "sess-123"


def pdf(name="labs.pdf", size=1024):
    return LocalFile(name=name, data=b"x" * size, content_type="application/pdf")


FILES_PAYLOAD = [
    {
        "fileId": "f1",
        "filename": "labs.pdf",
        "url": "https://files.test/f1",
        "fileType": "application/pdf",
        "fileSize": 1024,
        "category": "lab-results",
    },
    {
        "fileId": "f2",
        "filename": "scan.png",
        "url": "https://files.test/f2",
        "fileType": "image/png",
        "fileSize": 2048,
        "category": "lab-results",
    },
]


class TestValidation:
    def test_accepts_allowed_file(self):
        assert validate_file(pdf(), FileCategory.LAB_RESULTS) is None

    def test_rejects_oversize_for_category(self):
        big = pdf("rx.pdf", size=6 * MB)
        assert "5MB" in validate_file(big, FileCategory.PRESCRIPTIONS)
        assert validate_file(big, FileCategory.GENERAL) is None

    def test_rejects_extension_not_in_category(self):
        dicom = LocalFile(name="ct.DCM", data=b"x")
        assert validate_file(dicom, FileCategory.IMAGING) is None
        assert "not allowed" in validate_file(dicom, FileCategory.LAB_RESULTS)

    def test_one_bad_file_does_not_block_others(self):
        valid, rejected = validate_files(
            [pdf("a.pdf"), LocalFile(name="virus.exe", data=b"x"), pdf("b.pdf")],
            "general",
        )
        assert [f.name for f in valid] == ["a.pdf", "b.pdf"]
        assert [r.filename for r in rejected] == ["virus.exe"]

    def test_batch_size_cap(self):
        files = [pdf(f"{i}.pdf") for i in range(4)]
        valid, rejected = validate_files(files, FileCategory.GENERAL, max_files=3)
        assert len(valid) == 3
        assert [r.filename for r in rejected] == ["3.pdf"]


class TestSubmitBatch:
    @pytest.mark.asyncio
    async def test_submits_valid_files_only(self, uploads, api, active_state):
        api.upload_batch.return_value = {"batchId": "b-1"}

        submission = await uploads.submit_batch(
            [pdf(), LocalFile(name="notes.exe", data=b"x")], FileCategory.LAB_RESULTS
        )

        assert submission.batch_id == "b-1"
        assert submission.state == BatchState.POLLING
        assert submission.accepted == ["labs.pdf"]
        assert [r.filename for r in submission.rejected] == ["notes.exe"]
        args = api.upload_batch.await_args.args
        assert args[0] == SESSION_ID
        assert args[1] == 2
        assert [f.name for f in args[2]] == ["labs.pdf"]
        assert args[3] == FileCategory.LAB_RESULTS

    @pytest.mark.asyncio
    async def test_oversize_file_rejected_before_request(self, uploads, api, active_state):
        api.upload_batch.return_value = {"batchId": "b-3"}
        files = [pdf("a.pdf"), pdf("big.pdf", size=6 * MB), pdf("b.pdf")]

        submission = await uploads.submit_batch(files, FileCategory.PRESCRIPTIONS)

        assert submission.accepted == ["a.pdf", "b.pdf"]
        assert [r.filename for r in submission.rejected] == ["big.pdf"]
        assert "5MB" in submission.rejected[0].error
        sent = api.upload_batch.await_args.args[2]
        assert [f.name for f in sent] == ["a.pdf", "b.pdf"]
        assert api.upload_batch.await_count == 1

    @pytest.mark.asyncio
    async def test_all_rejected_raises_without_request(self, uploads, api, active_state):
        with pytest.raises(UploadValidationError) as exc_info:
            await uploads.submit_batch([LocalFile(name="a.exe", data=b"x")])

        assert exc_info.value.rejected[0].filename == "a.exe"
        api.upload_batch.assert_not_called()


class TestPollStatus:
    @pytest.mark.asyncio
    async def test_completed_batch_surfaces_files(self, uploads, api, active_state, sleeps):
        api.get_batch_status.side_effect = [
            {"status": "processing", "progressPercentage": 20},
            {"status": "processing", "progressPercentage": 60},
            {"status": "completed", "progressPercentage": 100},
        ]
        api.get_batch_files.return_value = FILES_PAYLOAD

        result = await uploads.poll_status("b-1")

        assert result.state == BatchState.COMPLETED
        assert [f.file_id for f in result.files] == ["f1", "f2"]
        assert result.files[0].category == FileCategory.LAB_RESULTS
        assert result.files[1].is_image
        assert uploads.pending_file_ids == ["f1", "f2"]
        assert uploads.batch_states["b-1"] == BatchState.COMPLETED
        assert sleeps == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_progress_never_decreases(self, uploads, api, active_state):
        api.get_batch_status.side_effect = [
            {"status": "processing", "progressPercentage": 50},
            {"status": "processing", "progressPercentage": 30},
            {"status": "processing", "progressPercentage": 70},
            {"status": "completed"},
        ]
        api.get_batch_files.return_value = {"files": FILES_PAYLOAD}
        seen = []

        await uploads.poll_status("b-1", on_progress=lambda job: seen.append(job.progress_percentage))

        assert seen == [50, 50, 70, 100]

    @pytest.mark.asyncio
    async def test_partial_batch_reports_failed_files(self, uploads, api, active_state):
        api.get_batch_status.return_value = {"status": "partial", "progressPercentage": 100}
        api.get_batch_files.return_value = [
            FILES_PAYLOAD[0],
            {"filename": "broken.pdf", "success": False, "error": "Virus scan failed"},
        ]

        result = await uploads.poll_status("b-1")

        assert result.state == BatchState.PARTIAL
        assert [f.file_id for f in result.files] == ["f1"]
        assert result.failed_files[0].filename == "broken.pdf"
        assert result.failed_files[0].error == "Virus scan failed"

    @pytest.mark.asyncio
    async def test_server_failure_is_distinct_from_timeout(self, uploads, api, active_state):
        api.get_batch_status.return_value = {"status": "failed"}

        with pytest.raises(BatchUploadFailedError) as exc_info:
            await uploads.poll_status("b-1")

        assert not isinstance(exc_info.value, BatchUploadTimeoutError)
        assert uploads.batch_states["b-1"] == BatchState.FAILED
        api.get_batch_files.assert_not_called()

    @pytest.mark.asyncio
    async def test_attempt_cap_times_out(self, uploads, api, active_state, sleeps):
        api.get_batch_status.return_value = {"status": "processing", "progressPercentage": 10}

        with pytest.raises(BatchUploadTimeoutError) as exc_info:
            await uploads.poll_status("b-1")

        assert exc_info.value.attempts == 5
        assert api.get_batch_status.await_count == 5
        assert len(sleeps) == 4
        assert uploads.batch_states["b-1"] == BatchState.TIMED_OUT

    @pytest.mark.asyncio
    async def test_status_request_error_propagates(self, uploads, api, active_state):
        api.get_batch_status.side_effect = ApiError("boom", status_code=502)

        with pytest.raises(ApiError):
            await uploads.poll_status("b-1")

        assert uploads.batch_states["b-1"] == BatchState.FAILED

    @pytest.mark.asyncio
    async def test_files_request_error_marks_batch_failed(self, uploads, api, active_state):
        api.get_batch_status.return_value = {"status": "completed", "progressPercentage": 100}
        api.get_batch_files.side_effect = ApiError("boom", status_code=502)

        with pytest.raises(ApiError):
            await uploads.poll_status("b-1")

        assert uploads.batch_states["b-1"] == BatchState.FAILED
        assert uploads.pending_files == []

    @pytest.mark.asyncio
    async def test_upload_files_end_to_end(self, uploads, api, active_state):
        api.upload_batch.return_value = {"batchId": "b-9"}
        api.get_batch_status.return_value = {"status": "completed"}
        api.get_batch_files.return_value = FILES_PAYLOAD[:1]

        result = await uploads.upload_files(
            [pdf(), LocalFile(name="x.exe", data=b"x")], "lab-results"
        )

        assert result.batch_id == "b-9"
        assert [f.file_id for f in result.files] == ["f1"]
        assert [r.filename for r in result.rejected] == ["x.exe"]


class TestPendingAttachments:
    @pytest.mark.asyncio
    async def test_remove_and_clear(self, uploads, api, active_state):
        api.get_batch_status.return_value = {"status": "completed"}
        api.get_batch_files.return_value = FILES_PAYLOAD

        await uploads.poll_status("b-1")
        assert uploads.remove_pending("f1") is True
        assert uploads.remove_pending("missing") is False
        assert uploads.pending_file_ids == ["f2"]

        uploads.clear_pending()
        assert uploads.pending_files == []

    @pytest.mark.asyncio
    async def test_same_file_not_added_twice(self, uploads, api, active_state):
        api.get_batch_status.return_value = {"status": "completed"}
        api.get_batch_files.return_value = FILES_PAYLOAD

        await uploads.poll_status("b-1")
        await uploads.poll_status("b-2")

        assert uploads.pending_file_ids == ["f1", "f2"]
