"""
Central configuration — reads environment variables and provides defaults.
"""

import os
from dotenv import load_dotenv

load_dotenv()

# ── AWS ───────────────────────────────────────────────────────────────────────
AWS_REGION: str = os.getenv("AWS_REGION", "us-east-1")
AWS_S3_REGION: str = os.getenv("AWS_S3_REGION", AWS_REGION)
AWS_TEXTRACT_REGION: str = os.getenv("AWS_TEXTRACT_REGION", AWS_REGION)

# ── Staging (S3) ──────────────────────────────────────────────────────────────
S3_BUCKET: str = os.getenv("S3_BUCKET") or os.getenv("AWS_S3_BUCKET", "invoice-extract-staging")
S3_KEY_PREFIX: str = os.getenv("S3_KEY_PREFIX", "invoices")

# ── Analysis (Textract) ───────────────────────────────────────────────────────
TEXTRACT_FEATURE_TYPES: list[str] = [
    f.strip().upper()
    for f in os.getenv("TEXTRACT_FEATURE_TYPES", "TABLES,FORMS").split(",")
    if f.strip()
]

# Account-level concurrent job limit; free tier is typically 10-20.
MAX_CONCURRENT_JOBS: int = int(os.getenv("MAX_CONCURRENT_JOBS", "20"))

# ── Polling ───────────────────────────────────────────────────────────────────
POLL_INTERVAL_SECONDS: float = float(os.getenv("POLL_INTERVAL_SECONDS", "3"))
MAX_POLL_ATTEMPTS: int = int(os.getenv("MAX_POLL_ATTEMPTS", "60"))

# ── Uploads ───────────────────────────────────────────────────────────────────
MAX_DOCUMENT_BYTES: int = int(os.getenv("MAX_DOCUMENT_BYTES", str(10 * 1024 * 1024)))

# ── Tracking store ────────────────────────────────────────────────────────────
TRACKING_DB_PATH: str = os.getenv("TRACKING_DB_PATH", "data/tracking.db")
TRACKING_TTL_SECONDS: int = int(os.getenv("TRACKING_TTL_SECONDS", "3600"))
SWEEP_INTERVAL_SECONDS: int = int(os.getenv("SWEEP_INTERVAL_SECONDS", "300"))
ORPHAN_MAX_AGE_SECONDS: int = int(os.getenv("ORPHAN_MAX_AGE_SECONDS", "900"))
