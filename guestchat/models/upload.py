"""
Pydantic models for batched file uploads and their per-category rules.
"""

import mimetypes
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field, computed_field

from guestchat.models.base import WireModel

MB = 1024 * 1024


class FileCategory(str, Enum):
    """Closed set of medical document categories accepted by the batch endpoint."""

    GENERAL = "general"
    LAB_RESULTS = "lab-results"
    IMAGING = "imaging"
    PRESCRIPTIONS = "prescriptions"
    CLINICAL_NOTES = "clinical-notes"


class CategoryRule(BaseModel):
    """Accepted extensions and size limit for one category."""

    extensions: FrozenSet[str]
    max_size_bytes: int
    description: str = ""

    @property
    def max_size_mb(self) -> int:
        return self.max_size_bytes // MB


FILE_CATEGORY_RULES: Dict[FileCategory, CategoryRule] = {
    FileCategory.GENERAL: CategoryRule(
        extensions=frozenset({".pdf", ".txt", ".jpg", ".jpeg", ".png", ".doc", ".docx"}),
        max_size_bytes=10 * MB,
        description="General medical documents",
    ),
    FileCategory.LAB_RESULTS: CategoryRule(
        extensions=frozenset({".pdf", ".txt", ".csv"}),
        max_size_bytes=10 * MB,
        description="Blood tests, urine analysis, pathology reports",
    ),
    FileCategory.IMAGING: CategoryRule(
        extensions=frozenset({".jpg", ".jpeg", ".png", ".pdf", ".dcm", ".dicom"}),
        max_size_bytes=50 * MB,
        description="X-rays, MRI, CT scans, ultrasounds",
    ),
    FileCategory.PRESCRIPTIONS: CategoryRule(
        extensions=frozenset({".pdf", ".jpg", ".jpeg", ".png"}),
        max_size_bytes=5 * MB,
        description="Medication lists, prescription images",
    ),
    FileCategory.CLINICAL_NOTES: CategoryRule(
        extensions=frozenset({".pdf", ".txt", ".doc", ".docx"}),
        max_size_bytes=10 * MB,
        description="Doctor notes, discharge summaries",
    ),
}


class LocalFile(BaseModel):
    """A file picked for upload, held in memory until submitted."""

    name: str = Field(..., description="File name including extension")
    data: bytes = Field(..., repr=False)
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return Path(self.name).suffix.lower()

    @classmethod
    def from_path(cls, path: str | Path) -> "LocalFile":
        path = Path(path)
        content_type, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            data=path.read_bytes(),
            content_type=content_type or "application/octet-stream",
        )


class UploadedFile(WireModel):
    """Server-side file metadata, attachable to a message by file_id."""

    file_id: str
    filename: str = ""
    url: str = ""
    file_type: str = "application/octet-stream"
    file_size: int = 0
    category: Optional[FileCategory] = None
    uploaded_at: Optional[datetime] = None

    @computed_field
    @property
    def is_image(self) -> bool:
        return self.file_type.startswith("image")


class BatchStatus(str, Enum):
    """Status values reported by the batch status endpoint."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class BatchState(str, Enum):
    """Client-side lifecycle of one batch."""

    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class BatchUploadJob(WireModel):
    """Snapshot of a batch as last seen by the poller."""

    batch_id: str
    status: BatchStatus = BatchStatus.PROCESSING
    progress_percentage: float = Field(0.0, ge=0.0, le=100.0)


class FileRejection(BaseModel):
    """A file refused either locally (validation) or by the server."""

    filename: str
    error: str


class BatchSubmission(BaseModel):
    """Result of submitting one multipart batch."""

    batch_id: str
    category: FileCategory
    accepted: List[str] = Field(default_factory=list, description="Names sent to the server")
    rejected: List[FileRejection] = Field(default_factory=list)
    state: BatchState = BatchState.SUBMITTED


class BatchUploadResult(BaseModel):
    """Files surfaced from a completed or partial batch."""

    batch_id: str
    state: BatchState
    progress_percentage: float = 100.0
    files: List[UploadedFile] = Field(default_factory=list)
    failed_files: List[FileRejection] = Field(default_factory=list)
    rejected: List[FileRejection] = Field(default_factory=list)
