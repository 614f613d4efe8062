"""
Batch orchestrator — runs many documents through Textract at once without
exceeding the account's concurrent-job limit.

    documents
      → split into batches of ``max_concurrency``
      → per batch: stage all  → submit all  → poll all  → release + parse
      → emit a ProgressSnapshot
      → next batch

Batches run one after another; everything inside a batch runs concurrently.
Gating each batch on the previous one's completion is what keeps the number
of in-flight jobs at or below ``max_concurrency``.

A document that fails at any step yields a failed ``ExtractionResult``; it
never stops its siblings.
"""

import asyncio
import inspect
import logging
import time
from typing import Callable, Iterable, Optional, TypeVar

from extractor import config
from extractor.exceptions import ExtractionError
from extractor.jobs import JobClient
from extractor.models import (
    Document,
    ExtractionJob,
    ExtractionRecord,
    ExtractionResult,
    ProgressSnapshot,
    StagedResource,
)
from extractor.parser import parse
from extractor.staging import ResourceStager

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[ProgressSnapshot], None]


def chunk(items: list[T], size: int) -> list[list[T]]:
    """Split *items* into consecutive groups of at most *size*, keeping order."""
    return [items[i : i + size] for i in range(0, len(items), size)]


class BatchOrchestrator:
    def __init__(
        self,
        stager: ResourceStager,
        job_client: JobClient,
        parser: Callable[[str], ExtractionRecord] = parse,
    ):
        self._stager = stager
        self._jobs = job_client
        self._parse = parser

    async def run(
        self,
        documents: Iterable[Document],
        max_concurrency: int | None = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> list[ExtractionResult]:
        """
        Extract every document and return one result per document.

        Parameters
        ----------
        documents : iterable of Document
        max_concurrency : int | None
            Batch size, i.e. the most jobs ever in flight at once.
            Defaults to ``config.MAX_CONCURRENT_JOBS``.
        on_progress : callable | None
            Called with a fresh ProgressSnapshot after every completed batch.
            May be a coroutine function.
        """
        if max_concurrency is None:
            max_concurrency = config.MAX_CONCURRENT_JOBS
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be at least 1, got {max_concurrency}")

        documents = list(documents)
        total = len(documents)
        batches = chunk(documents, max_concurrency)
        all_results: list[ExtractionResult] = []
        run_start = time.monotonic()

        logger.info(
            "Starting extraction of %d document(s) in %d batch(es), max %d concurrent jobs",
            total, len(batches), max_concurrency,
        )

        for batch_number, batch in enumerate(batches, start=1):
            logger.info("Processing batch %d/%d (%d documents)", batch_number, len(batches), len(batch))
            try:
                batch_results = await self._process_batch(batch)
                all_results.extend(batch_results)

                success_count = sum(1 for r in all_results if r.success)
                fail_count = len(all_results) - success_count
                logger.info(
                    "Batch %d complete: %d success, %d failed so far",
                    batch_number, success_count, fail_count,
                )

                if on_progress is not None:
                    snapshot = ProgressSnapshot(
                        completed=len(all_results),
                        total=total,
                        current_batch=batch_number,
                        total_batches=len(batches),
                        success_count=success_count,
                        fail_count=fail_count,
                        results=tuple(all_results),
                    )
                    outcome = on_progress(snapshot)
                    if inspect.isawaitable(outcome):
                        await outcome
            except Exception:
                logger.exception("Batch %d/%d failed; continuing with the next batch", batch_number, len(batches))

        elapsed = time.monotonic() - run_start
        success_count = sum(1 for r in all_results if r.success)
        logger.info(
            "All batches processed in %.1fs (avg %.1fs per document): %d success, %d failed",
            elapsed,
            elapsed / total if total else 0.0,
            success_count,
            len(all_results) - success_count,
        )
        return all_results

    async def extract_one(self, document: Document) -> ExtractionResult:
        """Convenience wrapper for a single document."""
        results = await self.run([document], max_concurrency=1)
        return results[0]

    # ── per-batch stages ──────────────────────────────────────────────────────

    async def _process_batch(self, batch: list[Document]) -> list[ExtractionResult]:
        batch_start = time.monotonic()

        staged = await asyncio.gather(*(self._stage(doc) for doc in batch))
        logger.info("   Uploads complete (%.1fs)", time.monotonic() - batch_start)

        t0 = time.monotonic()
        submitted = await asyncio.gather(
            *(self._submit(resource, error) for resource, error in staged)
        )
        logger.info("   Jobs started (%.1fs)", time.monotonic() - t0)

        t0 = time.monotonic()
        results = await asyncio.gather(
            *(
                self._complete(doc, resource, job, error, batch_start)
                for doc, (resource, _), (job, error) in zip(batch, staged, submitted)
            )
        )
        logger.info("   Polling complete (%.1fs)", time.monotonic() - t0)
        return list(results)

    async def _stage(self, doc: Document) -> tuple[Optional[StagedResource], Optional[str]]:
        try:
            resource = await self._stager.stage(doc.content, doc.name, doc.content_type)
        except ExtractionError as e:
            return None, str(e)
        except Exception as e:
            logger.exception("Unexpected error staging %s", doc.name)
            return None, f"Upload failed: {e}"
        return resource, None

    async def _submit(
        self, resource: Optional[StagedResource], error: Optional[str]
    ) -> tuple[Optional[ExtractionJob], Optional[str]]:
        if error is not None:
            return None, error
        try:
            job_id = await self._jobs.submit(resource)
        except ExtractionError as e:
            return None, str(e)
        except Exception as e:
            logger.exception("Unexpected error starting job for %s", resource.key)
            return None, f"Failed to start job: {e}"
        return ExtractionJob(job_id=job_id, resource=resource), None

    async def _complete(
        self,
        doc: Document,
        resource: Optional[StagedResource],
        job: Optional[ExtractionJob],
        error: Optional[str],
        started: float,
    ) -> ExtractionResult:
        raw_text = ""
        if resource is not None:
            try:
                if error is None:
                    raw_text = await self._jobs.poll_until_done(job)
            except ExtractionError as e:
                error = str(e)
            except Exception as e:
                logger.exception("Unexpected error polling job for %s", doc.name)
                error = f"Extraction failed: {e}"
            finally:
                await self._stager.release(resource)

        if error is None:
            try:
                record = self._parse(raw_text)
            except Exception as e:
                logger.exception("Parser failed on %s", doc.name)
                error = f"Parsing failed: {e}"
            else:
                return ExtractionResult(
                    file_name=doc.name,
                    success=True,
                    data=record,
                    elapsed_seconds=round(time.monotonic() - started, 3),
                )

        logger.warning("Extraction failed for %s: %s", doc.name, error)
        return ExtractionResult(
            file_name=doc.name,
            success=False,
            error=error,
            elapsed_seconds=round(time.monotonic() - started, 3),
        )
