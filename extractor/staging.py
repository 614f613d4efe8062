"""
Resource stager — copies document bytes into S3 so Textract can read them,
and deletes them again once the document is done.
"""

import asyncio
import logging
import os
import re
import time
import uuid

from botocore.exceptions import BotoCoreError, ClientError

from extractor import config
from extractor.exceptions import StagingError
from extractor.models import StagedResource

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def make_key(name: str, prefix: str | None = None) -> str:
    """
    Build a collision-resistant object key like
    ``invoices/1718000000000-3f2a9c1b-INV_001.pdf``.
    """
    prefix = config.S3_KEY_PREFIX if prefix is None else prefix
    basename = _UNSAFE_KEY_CHARS.sub("_", os.path.basename(name)) or "document"
    key = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{basename}"
    return f"{prefix.strip('/')}/{key}" if prefix.strip("/") else key


class ResourceStager:
    def __init__(self, s3_client, bucket: str | None = None, key_prefix: str | None = None, ledger=None):
        self._s3 = s3_client
        self.bucket = bucket or config.S3_BUCKET
        self.key_prefix = config.S3_KEY_PREFIX if key_prefix is None else key_prefix
        self._ledger = ledger

    async def stage(self, content: bytes, name: str, content_type: str = "application/pdf") -> StagedResource:
        """Upload *content* and return the handle that refers to it."""
        key = make_key(name, self.key_prefix)
        try:
            await asyncio.to_thread(
                self._s3.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise StagingError(f"Failed to upload {name} to S3: {e}") from e

        resource = StagedResource(bucket=self.bucket, key=key, name=name)
        logger.debug("Staged %s → s3://%s/%s (%d bytes)", name, self.bucket, key, len(content))

        if self._ledger is not None:
            try:
                await asyncio.to_thread(self._ledger.record_staged, resource)
            except Exception as e:
                logger.warning("Could not record staged resource %s in ledger: %s", key, e)
        return resource

    async def release(self, resource: StagedResource) -> None:
        """Best-effort delete. Failures are logged and never raised."""
        try:
            await asyncio.to_thread(
                self._s3.delete_object, Bucket=resource.bucket, Key=resource.key
            )
        except Exception as e:
            # Left in the ledger so a later orphan sweep can retry.
            logger.warning("S3 cleanup failed for s3://%s/%s: %s", resource.bucket, resource.key, e)
            return

        if self._ledger is not None:
            try:
                await asyncio.to_thread(self._ledger.record_released, resource)
            except Exception as e:
                logger.warning("Could not clear %s from ledger: %s", resource.key, e)


async def release_orphans(stager: ResourceStager, ledger, older_than: float | None = None) -> int:
    """
    Release every resource the ledger still holds that was staged more than
    *older_than* seconds ago. Returns how many were found.
    """
    older_than = config.ORPHAN_MAX_AGE_SECONDS if older_than is None else older_than
    orphans = await asyncio.to_thread(ledger.list_orphans, older_than)
    for resource in orphans:
        logger.info("Releasing orphaned resource s3://%s/%s", resource.bucket, resource.key)
        await stager.release(resource)
    return len(orphans)
