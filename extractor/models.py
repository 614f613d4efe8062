"""
Pydantic models shared across the extractor.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Document(BaseModel):
    """One input file: raw bytes plus the name it is reported under."""

    model_config = ConfigDict(frozen=True)

    name: str
    content: bytes
    content_type: str = "application/pdf"


class StagedResource(BaseModel):
    model_config = ConfigDict(frozen=True)

    bucket: str
    key: str
    name: str = ""


class JobStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    POLLING = "POLLING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.TIMED_OUT)


class ExtractionJob(BaseModel):
    """An in-flight analysis request. Status is advanced only by the job client."""

    job_id: str
    resource: StagedResource
    status: JobStatus = JobStatus.SUBMITTED
    attempts: int = 0


class ExtractionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    invoice_number: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    invoice_date: Optional[str] = None
    due_date: Optional[str] = None
    confidence: float = 0.0
    raw_text: str = ""


class ExtractionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    file_name: str
    success: bool
    data: Optional[ExtractionRecord] = None
    error: Optional[str] = None
    elapsed_seconds: float = 0.0


class ProgressSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    completed: int
    total: int
    current_batch: int
    total_batches: int
    success_count: int
    fail_count: int
    results: tuple[ExtractionResult, ...] = Field(default_factory=tuple)
