"""
Per-document extraction errors.

Each of these is caught inside the pipeline of the document that raised it
and turned into a failed ``ExtractionResult``; none of them abort a run.
"""

from typing import Optional


class ExtractionError(Exception):
    """Base class for failures confined to a single document."""


class StagingError(ExtractionError):
    """Writing the document to remote storage failed."""


class SubmissionError(ExtractionError):
    """The analysis service rejected the job."""


class AnalysisFailedError(ExtractionError):
    def __init__(self, job_id: str, reason: Optional[str] = None):
        self.job_id = job_id
        self.reason = reason or "Unknown error"
        super().__init__(f"Analysis job {job_id} failed: {self.reason}")


class AnalysisTimeoutError(ExtractionError):
    def __init__(self, job_id: str, attempts: int, interval: float):
        self.job_id = job_id
        self.attempts = attempts
        self.interval = interval
        super().__init__(
            f"Analysis job {job_id} timed out after {attempts} attempts "
            f"({attempts * interval:.0f}s)"
        )
