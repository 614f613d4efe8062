#!/usr/bin/env python3
"""
CLI extract script — runs a folder of invoice PDFs through Textract in parallel
batches and writes the extracted fields to JSON.

Usage:
    python extract.py --pdf-dir ./test-pdfs --output results.json
    python extract.py --pdf ./test-pdfs/INV-001.pdf
    python extract.py --pdf-dir ./test-pdfs --max-concurrency 10
    python extract.py --cleanup-orphans
"""

from __future__ import annotations

import argparse
import asyncio
import glob
import json
import logging
import os
import sys
import time

from botocore.exceptions import BotoCoreError, ClientError

from extractor import config
from extractor.aws import build_orchestrator, s3_client
from extractor.models import Document, ExtractionResult, ProgressSnapshot
from extractor.staging import ResourceStager, release_orphans
import tracking_store

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger("extract")

CHECKPOINT_FILE = ".extract_checkpoint"

# ── Checkpoint helpers ───────────────────────────────────────────────────────

def _load_checkpoint(path: str) -> set[str]:
    if not os.path.exists(path):
        return set()
    with open(path) as f:
        return {line.strip() for line in f if line.strip()}


def _save_checkpoint(path: str, names: list[str]) -> None:
    with open(path, "a") as f:
        for name in names:
            f.write(name + "\n")


# ── Service connectivity check ───────────────────────────────────────────────

def _check_services(bucket: str) -> bool:
    """Verify the staging bucket is reachable. Returns True if OK."""
    logger.info(f"[CHECK] S3 bucket {bucket} ...")
    try:
        s3_client().head_bucket(Bucket=bucket)
    except (BotoCoreError, ClientError) as exc:
        logger.error(f"[CHECK] S3 FAIL: {exc}")
        return False
    logger.info("[CHECK] S3 OK")
    return True


# ── Progress + summary ───────────────────────────────────────────────────────

def _progress_printer(started: float, checkpoint_file: str | None = None):
    checkpointed = 0

    def on_progress(progress: ProgressSnapshot) -> None:
        nonlocal checkpointed
        if checkpoint_file:
            # Only the batch that just finished; earlier ones are already on disk.
            batch = progress.results[checkpointed:]
            _save_checkpoint(checkpoint_file, [r.file_name for r in batch if r.success])
            checkpointed = len(progress.results)

        percent = round(progress.completed / progress.total * 100) if progress.total else 100
        logger.info(
            f"[PROGRESS] {progress.completed}/{progress.total} ({percent}%) | "
            f"Batch {progress.current_batch}/{progress.total_batches} | "
            f"OK {progress.success_count} | FAIL {progress.fail_count} | "
            f"Elapsed: {time.time() - started:.0f}s"
        )
    return on_progress


def _summarize(results: list[ExtractionResult], skipped: int) -> None:
    succeeded = [r for r in results if r.success]
    failed = [r for r in results if not r.success]
    avg_confidence = (
        sum(r.data.confidence for r in succeeded) / len(succeeded) if succeeded else 0.0
    )
    logger.info("=" * 60)
    logger.info("EXTRACT SUMMARY")
    logger.info(f"  Succeeded:  {len(succeeded)}")
    logger.info(f"  Failed:     {len(failed)}")
    logger.info(f"  Skipped:    {skipped} (already checkpointed)")
    logger.info(f"  Avg confidence: {avg_confidence:.1f}%")
    for r in failed:
        logger.info(f"  FAILED {r.file_name}: {r.error}")
    logger.info("=" * 60)


def _load_documents(pdf_paths: list[str], completed: set[str]) -> tuple[list[Document], int]:
    documents = []
    skipped = 0
    for pdf_path in pdf_paths:
        name = os.path.basename(pdf_path)
        if name in completed:
            logger.info(f"[SKIP] {name} already extracted (checkpoint). Skipping.")
            skipped += 1
            continue
        with open(pdf_path, "rb") as f:
            documents.append(Document(name=name, content=f.read()))
    return documents, skipped


# ── Main ─────────────────────────────────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(description="Extract invoice fields from PDFs with Textract")
    parser.add_argument("--pdf", help="Path to a single PDF file")
    parser.add_argument("--pdf-dir", help="Directory containing PDF files")
    parser.add_argument("--output", help="Write results as JSON to this file")
    parser.add_argument(
        "--max-concurrency", type=int, default=config.MAX_CONCURRENT_JOBS,
        help=f"Documents per batch / concurrent Textract jobs (default {config.MAX_CONCURRENT_JOBS})",
    )
    parser.add_argument(
        "--poll-interval", type=float, default=config.POLL_INTERVAL_SECONDS,
        help=f"Seconds between status polls (default {config.POLL_INTERVAL_SECONDS:g})",
    )
    parser.add_argument(
        "--max-poll-attempts", type=int, default=config.MAX_POLL_ATTEMPTS,
        help=f"Polls per job before giving up (default {config.MAX_POLL_ATTEMPTS})",
    )
    parser.add_argument(
        "--checkpoint-file", default=CHECKPOINT_FILE,
        help="Checkpoint file path (default: .extract_checkpoint)",
    )
    parser.add_argument(
        "--reset-checkpoint", action="store_true",
        help="Delete the checkpoint file and start fresh",
    )
    parser.add_argument(
        "--skip-checks", action="store_true",
        help="Skip service connectivity checks",
    )
    parser.add_argument(
        "--cleanup-orphans", action="store_true",
        help="Delete staged S3 objects left behind by interrupted runs, then exit",
    )

    args = parser.parse_args()

    if args.max_concurrency < 1:
        parser.error("--max-concurrency must be at least 1")
    if args.max_poll_attempts < 1:
        parser.error("--max-poll-attempts must be at least 1")

    ledger = tracking_store.StagingLedger()

    if args.cleanup_orphans:
        stager = ResourceStager(s3_client(), ledger=ledger)
        count = asyncio.run(release_orphans(stager, ledger))
        logger.info(f"Released {count} orphaned staged resource(s).")
        return

    # Resolve PDF paths
    pdf_paths: list[str] = []
    if args.pdf:
        pdf_paths.append(os.path.abspath(args.pdf))
    elif args.pdf_dir:
        pdf_paths = sorted(glob.glob(os.path.join(os.path.abspath(args.pdf_dir), "*.pdf")))

    if not pdf_paths:
        logger.error("No PDF files found.")
        sys.exit(1)

    logger.info(f"Found {len(pdf_paths)} PDF(s) to extract.")

    if not args.skip_checks:
        if not _check_services(config.S3_BUCKET):
            logger.error("Service checks failed. Use --skip-checks to bypass.")
            sys.exit(1)

    if args.reset_checkpoint and os.path.exists(args.checkpoint_file):
        os.remove(args.checkpoint_file)
        logger.info(f"Checkpoint file reset: {args.checkpoint_file}")

    documents, skipped = _load_documents(pdf_paths, _load_checkpoint(args.checkpoint_file))

    orchestrator = build_orchestrator(
        poll_interval=args.poll_interval,
        max_attempts=args.max_poll_attempts,
        ledger=ledger,
    )
    started = time.time()
    results = asyncio.run(
        orchestrator.run(
            documents,
            max_concurrency=args.max_concurrency,
            on_progress=_progress_printer(started, args.checkpoint_file),
        )
    )

    if args.output:
        with open(args.output, "w") as f:
            json.dump([r.model_dump(mode="json") for r in results], f, indent=2, ensure_ascii=False)
        logger.info(f"Results written to {args.output}")

    _summarize(results, skipped)


if __name__ == "__main__":
    main()
