"""
Textract job client — starts one analysis job per staged document and polls
it to a terminal state.

Polling runs at a fixed interval with a fixed attempt ceiling; there is no
backoff and no retry of a rejected submission.
"""

import asyncio
import logging

from botocore.exceptions import BotoCoreError, ClientError

from extractor import config
from extractor.exceptions import AnalysisFailedError, AnalysisTimeoutError, SubmissionError
from extractor.models import ExtractionJob, JobStatus, StagedResource

logger = logging.getLogger(__name__)

_SUCCESS_STATUSES = ("SUCCEEDED", "PARTIAL_SUCCESS")


def blocks_to_text(blocks: list[dict]) -> str:
    """Join the text of all LINE blocks, in service order, one per line."""
    return "\n".join(
        b["Text"] for b in blocks if b.get("BlockType") == "LINE" and b.get("Text")
    )


class JobClient:
    def __init__(
        self,
        textract_client,
        feature_types: list[str] | None = None,
        poll_interval: float | None = None,
        max_attempts: int | None = None,
    ):
        self._textract = textract_client
        self.feature_types = feature_types or config.TEXTRACT_FEATURE_TYPES
        self.poll_interval = config.POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.max_attempts = config.MAX_POLL_ATTEMPTS if max_attempts is None else max_attempts
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")

    async def submit(self, resource: StagedResource) -> str:
        """Start an analysis job for *resource*. No retries here."""
        try:
            response = await asyncio.to_thread(
                self._textract.start_document_analysis,
                DocumentLocation={"S3Object": {"Bucket": resource.bucket, "Name": resource.key}},
                FeatureTypes=self.feature_types,
            )
        except (BotoCoreError, ClientError) as e:
            raise SubmissionError(f"Failed to start Textract job for {resource.name or resource.key}: {e}") from e

        job_id = response.get("JobId")
        if not job_id:
            raise SubmissionError("Textract failed to return a JobId")
        logger.debug("Textract job %s started for %s", job_id, resource.key)
        return job_id

    async def poll_until_done(self, job: ExtractionJob) -> str:
        """
        Poll *job* every ``poll_interval`` seconds, at most ``max_attempts``
        times, and return the recognised text once it succeeds.

        Raises ``AnalysisFailedError`` on a FAILED status (or a remote error
        while polling) and ``AnalysisTimeoutError`` when attempts run out.
        """
        job.status = JobStatus.POLLING

        for attempt in range(1, self.max_attempts + 1):
            job.attempts = attempt
            response = await self._get_page(job)
            status = response.get("JobStatus")

            if status in _SUCCESS_STATUSES:
                if status == "PARTIAL_SUCCESS":
                    logger.warning("Textract job %s only partially succeeded", job.job_id)
                blocks = list(response.get("Blocks") or [])
                next_token = response.get("NextToken")
                while next_token:
                    page = await self._get_page(job, next_token)
                    blocks.extend(page.get("Blocks") or [])
                    next_token = page.get("NextToken")
                job.status = JobStatus.SUCCEEDED
                return blocks_to_text(blocks)

            if status == "FAILED":
                job.status = JobStatus.FAILED
                raise AnalysisFailedError(job.job_id, response.get("StatusMessage"))

            if attempt < self.max_attempts:
                await asyncio.sleep(self.poll_interval)

        job.status = JobStatus.TIMED_OUT
        raise AnalysisTimeoutError(job.job_id, self.max_attempts, self.poll_interval)

    async def _get_page(self, job: ExtractionJob, next_token: str | None = None) -> dict:
        kwargs = {"JobId": job.job_id}
        if next_token:
            kwargs["NextToken"] = next_token
        try:
            return await asyncio.to_thread(self._textract.get_document_analysis, **kwargs)
        except (BotoCoreError, ClientError) as e:
            job.status = JobStatus.FAILED
            raise AnalysisFailedError(job.job_id, f"status request failed: {e}") from e
