"""
boto3 client factories and the default wiring of stager + job client.
"""

import boto3

from extractor import config
from extractor.jobs import JobClient
from extractor.orchestrator import BatchOrchestrator
from extractor.staging import ResourceStager


def s3_client(region: str | None = None):
    return boto3.client("s3", region_name=region or config.AWS_S3_REGION)


def textract_client(region: str | None = None):
    return boto3.client("textract", region_name=region or config.AWS_TEXTRACT_REGION)


def build_orchestrator(
    bucket: str | None = None,
    poll_interval: float | None = None,
    max_attempts: int | None = None,
    ledger=None,
) -> BatchOrchestrator:
    """Wire a BatchOrchestrator against real S3 and Textract clients."""
    stager = ResourceStager(s3_client(), bucket=bucket, ledger=ledger)
    job_client = JobClient(textract_client(), poll_interval=poll_interval, max_attempts=max_attempts)
    return BatchOrchestrator(stager, job_client)
