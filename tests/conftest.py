"""
Fakes shaped like the boto3 S3 and Textract clients, so the extractor can be
exercised end to end without AWS.
"""

import threading

import pytest
from botocore.exceptions import ClientError

from extractor.jobs import JobClient
from extractor.orchestrator import BatchOrchestrator
from extractor.staging import ResourceStager

SAMPLE_INVOICE_TEXT = """ACME Supplies B.V.
Invoice Number: INV-2024-001
Invoice Date: 15/03/2024
Bill To: Globex Trading LLC
accounts@globex.example
Payment within 30 days
Subtotal: 1.268,60
Total: EUR 1.534,99"""


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} (fake)"}}, operation)


def name_from_key(key: str) -> str:
    """Recover the document name from a key like ``invoices/<ms>-<hex>-<name>``."""
    return key.rsplit("/", 1)[-1].split("-", 2)[2]


class FakeS3:
    def __init__(self, fail_names=(), fail_delete: bool = False):
        self.fail_names = set(fail_names)
        self.fail_delete = fail_delete
        self.objects: dict[tuple[str, str], bytes] = {}
        self.put_keys: list[str] = []
        self.deleted_keys: list[str] = []
        self._lock = threading.Lock()

    def put_object(self, Bucket, Key, Body, ContentType=None):
        with self._lock:
            self.put_keys.append(Key)
        if name_from_key(Key) in self.fail_names:
            raise client_error("AccessDenied", "PutObject")
        with self._lock:
            self.objects[(Bucket, Key)] = Body
        return {"ETag": '"fake"'}

    def delete_object(self, Bucket, Key):
        with self._lock:
            self.deleted_keys.append(Key)
        if self.fail_delete:
            raise client_error("InternalError", "DeleteObject")
        with self._lock:
            self.objects.pop((Bucket, Key), None)
        return {}

    def head_bucket(self, Bucket):
        return {}


class FakeTextract:
    """
    ``behaviours`` maps a document name to one of:
    ``ok`` (default), ``reject``, ``no_job_id``, ``fail``, ``timeout``,
    ``poll_error``, ``partial`` or ``paginate``.
    """

    def __init__(self, behaviours=None, texts=None, in_progress_polls: int = 1):
        self.behaviours = behaviours or {}
        self.texts = texts or {}
        self.in_progress_polls = in_progress_polls
        self.jobs: dict[str, dict] = {}
        self.start_calls: list[dict] = []
        self.get_calls: list[dict] = []
        self._lock = threading.Lock()

    def start_document_analysis(self, DocumentLocation, FeatureTypes):
        key = DocumentLocation["S3Object"]["Name"]
        name = name_from_key(key)
        with self._lock:
            self.start_calls.append({"DocumentLocation": DocumentLocation, "FeatureTypes": FeatureTypes})
        behaviour = self.behaviours.get(name, "ok")
        if behaviour == "reject":
            raise client_error("LimitExceededException", "StartDocumentAnalysis")
        if behaviour == "no_job_id":
            return {}
        with self._lock:
            job_id = f"job-{len(self.jobs) + 1}"
            self.jobs[job_id] = {"name": name, "polls": 0}
        return {"JobId": job_id}

    def get_document_analysis(self, JobId, NextToken=None):
        job = self.jobs[JobId]
        behaviour = self.behaviours.get(job["name"], "ok")
        with self._lock:
            self.get_calls.append({"JobId": JobId, "NextToken": NextToken})

        blocks = self._blocks(job["name"])
        if NextToken == "page-2":
            return {"JobStatus": "SUCCEEDED", "Blocks": blocks[len(blocks) // 2 :]}

        with self._lock:
            job["polls"] += 1
            polls = job["polls"]

        if behaviour == "timeout" or polls <= self.in_progress_polls:
            return {"JobStatus": "IN_PROGRESS"}
        if behaviour == "poll_error":
            raise client_error("ThrottlingException", "GetDocumentAnalysis")
        if behaviour == "fail":
            return {"JobStatus": "FAILED", "StatusMessage": "Unsupported document format"}
        if behaviour == "paginate":
            return {"JobStatus": "SUCCEEDED", "Blocks": blocks[: len(blocks) // 2], "NextToken": "page-2"}
        status = "PARTIAL_SUCCESS" if behaviour == "partial" else "SUCCEEDED"
        return {"JobStatus": status, "Blocks": blocks}

    def _blocks(self, name: str) -> list[dict]:
        text = self.texts.get(name, SAMPLE_INVOICE_TEXT)
        blocks: list[dict] = [{"BlockType": "PAGE", "Id": "p1"}]
        for i, line in enumerate(text.splitlines()):
            blocks.append({"BlockType": "LINE", "Id": f"l{i}", "Text": line})
            blocks.append({"BlockType": "WORD", "Id": f"w{i}", "Text": line.split(" ")[0]})
        return blocks


@pytest.fixture
def fake_s3():
    return FakeS3()


@pytest.fixture
def fake_textract():
    return FakeTextract()


def make_orchestrator(s3=None, textract=None, max_attempts: int = 5, job_client_cls=JobClient, ledger=None):
    s3 = s3 or FakeS3()
    textract = textract or FakeTextract()
    stager = ResourceStager(s3, bucket="test-bucket", key_prefix="invoices", ledger=ledger)
    jobs = job_client_cls(textract, feature_types=["TABLES", "FORMS"], poll_interval=0, max_attempts=max_attempts)
    return BatchOrchestrator(stager, jobs)
