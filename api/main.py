"""
FastAPI application — POST /extract, GET /extract/{tracking_id}, GET /health.

Uploads are accepted immediately and extracted in the background; callers
poll with the returned tracking id.  Progress lives in ``tracking_store``
and is evicted only by the periodic sweep started in the lifespan.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from api.models import ExtractAccepted, ExtractStatus
from extractor import config
from extractor.aws import build_orchestrator
from extractor.models import Document, ProgressSnapshot
from extractor.orchestrator import BatchOrchestrator
import tracking_store

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {"application/pdf", "image/png", "image/jpeg", "image/tiff"}

# ── Globals ──────────────────────────────────────────────────────────────────
_orchestrator: BatchOrchestrator | None = None


async def _sweep_periodically(interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await asyncio.to_thread(tracking_store.sweep_expired)
        except Exception as e:
            logger.warning("Tracking sweep failed: %s", e)
            continue
        if removed:
            logger.info("Swept %d expired extraction run(s)", removed)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _orchestrator
    _orchestrator = build_orchestrator(ledger=tracking_store.StagingLedger())
    sweeper = asyncio.create_task(_sweep_periodically(config.SWEEP_INTERVAL_SECONDS))
    logger.info("Extractor ready (bucket=%s, region=%s).", config.S3_BUCKET, config.AWS_REGION)
    yield
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    _orchestrator = None


app = FastAPI(
    title="Invoice Batch Extractor",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── POST /extract ────────────────────────────────────────────────────────────

@app.post("/extract", response_model=ExtractAccepted, status_code=202)
async def extract_documents(
    background_tasks: BackgroundTasks,
    files: list[UploadFile] = File(...),
    max_concurrency: Optional[int] = Form(None),
):
    """
    Accept one or more documents and start extracting them in the background.
    Returns a tracking id straight away.
    """
    if max_concurrency is not None and max_concurrency < 1:
        raise HTTPException(status_code=422, detail="max_concurrency must be at least 1.")

    documents: list[Document] = []
    for index, upload in enumerate(files, start=1):
        name = upload.filename or f"document-{index}.pdf"
        content_type = upload.content_type or "application/pdf"
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise HTTPException(
                status_code=400,
                detail=f"{name}: unsupported content type {content_type}.",
            )
        content = await upload.read()
        if not content:
            raise HTTPException(status_code=400, detail=f"{name}: file is empty.")
        if len(content) > config.MAX_DOCUMENT_BYTES:
            raise HTTPException(
                status_code=413,
                detail=f"{name}: file exceeds {config.MAX_DOCUMENT_BYTES // (1024 * 1024)}MB.",
            )
        documents.append(Document(name=name, content=content, content_type=content_type))

    tracking_id = uuid.uuid4().hex
    tracking_store.create_run(tracking_id, total=len(documents))
    background_tasks.add_task(_run_extraction, tracking_id, documents, max_concurrency)
    logger.info("Accepted %d document(s) as run %s", len(documents), tracking_id)

    return ExtractAccepted(tracking_id=tracking_id, total=len(documents))


async def _run_extraction(tracking_id: str, documents: list[Document], max_concurrency: int | None) -> None:
    async def on_progress(snapshot: ProgressSnapshot) -> None:
        await asyncio.to_thread(tracking_store.update_progress, tracking_id, snapshot)

    try:
        results = await _orchestrator.run(
            documents,
            max_concurrency=max_concurrency,
            on_progress=on_progress,
        )
    except Exception as e:
        logger.exception("Extraction run %s failed", tracking_id)
        await asyncio.to_thread(tracking_store.fail_run, tracking_id, str(e))
        return
    await asyncio.to_thread(tracking_store.complete_run, tracking_id, results)


# ── GET /extract/{tracking_id} ───────────────────────────────────────────────

@app.get("/extract/{tracking_id}", response_model=ExtractStatus)
async def get_extraction(tracking_id: str):
    """Returns processing (with progress), completed (with results) or failed."""
    run = tracking_store.get_run(tracking_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Extraction run {tracking_id} not found.")
    return ExtractStatus(**run)


# ── GET /health ──────────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    return {"status": "ok", "bucket": config.S3_BUCKET, "region": config.AWS_REGION}
