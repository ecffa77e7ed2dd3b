"""Shared fixtures and in-memory fakes for the collaborators."""

import asyncio
import io
import json
from datetime import datetime, timezone

import pytest

from syslogidx.core.config import Settings
from syslogidx.services.aws_clients import QueueMessage


class FakeBackend:
    """Records index calls; ``fail_on`` picks which calls raise (1-based)."""

    def __init__(self, indices=None, fail_on=(), fail_delete=()):
        self.indexed = []
        self.calls = 0
        self.fail_on = set(fail_on)
        self.indices = dict.fromkeys(indices or [], {"aliases": {}})
        self.fail_delete = set(fail_delete)
        self.deleted = []
        self.connected = False

    async def connect(self):
        self.connected = True

    async def disconnect(self):
        self.connected = False

    async def index(self, index_name, doc_type, fields, event_time, doc_id=None):
        self.calls += 1
        if self.calls in self.fail_on:
            raise ConnectionError("index write failed")
        self.indexed.append((index_name, doc_type, dict(fields), event_time, doc_id))
        return {"result": "created"}

    async def index_json(self, index_name, doc_type, raw, event_time, doc_id=None):
        return await self.index(index_name, doc_type, json.loads(raw), event_time, doc_id=doc_id)

    async def aliases(self):
        return dict(self.indices)

    async def delete_index(self, name):
        if name in self.fail_delete:
            raise ConnectionError(f"cannot delete {name}")
        self.deleted.append(name)
        self.indices.pop(name, None)

    async def health_check(self):
        return {"status": "connected", "cluster_name": "test"}


class FakeQueue:
    """SQS stand-in serving prepared batches of messages."""

    def __init__(self, batches=None, url="https://sqs.test/cloudtrail"):
        self.batches = list(batches or [])
        self.url = url
        self.deleted = []
        self.receive_calls = 0

    async def get_queue_url(self, name):
        return self.url

    async def receive_message(self, queue_url, attributes, max_messages, visibility_timeout, wait_time):
        self.receive_calls += 1
        if not self.batches:
            return []
        batch = self.batches.pop(0)
        if isinstance(batch, Exception):
            raise batch
        return batch

    async def delete_message(self, queue_url, receipt_handle):
        self.deleted.append(receipt_handle)


class FakeStore:
    """S3 stand-in keyed by (bucket, key)."""

    def __init__(self, objects=None):
        self.objects = dict(objects or {})
        self.puts = []

    async def get_reader(self, bucket, key):
        if (bucket, key) not in self.objects:
            raise FileNotFoundError(f"s3://{bucket}/{key}")
        return io.BytesIO(self.objects[(bucket, key)])

    async def put_object(self, bucket, key, data, **extra):
        self.puts.append((bucket, key, data, extra))


def make_queue_message(bucket, keys, receipt="receipt-1"):
    inner = json.dumps({"s3Bucket": bucket, "s3ObjectKey": keys})
    body = json.dumps({"Type": "Notification", "MessageId": "m-1", "Message": inner})
    return QueueMessage(message_id="m-1", receipt_handle=receipt, body=body)


def make_bundle(*event_times, **extra):
    records = [
        {"eventTime": t, "eventName": f"Event{i}", "eventSource": "ec2.amazonaws.com", **extra}
        for i, t in enumerate(event_times)
    ]
    return json.dumps({"Records": records}).encode("utf-8")


def make_parts(**overrides):
    parts = {
        "facility": 1,
        "severity": 6,
        "timestamp": datetime(2024, 3, 2, 10, 0, 0, tzinfo=timezone.utc),
        "hostname": "web1.ec2.internal",
        "app_name": "restapi",
        "proc_id": "123",
        "msg_id": "",
        "structured_data": "",
        "message": '{"evt":"signup"}',
    }
    parts.update(overrides)
    return parts


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        retain_days=2,
        retention_interval=3600,
        retention_max_jitter=0,
        cloudtrail_retry_interval=60,
        archive_s3_bucket="archive-bucket",
        archive_max_entries=3,
        syslog_host="127.0.0.1",
        syslog_port=0,
    )


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def stop_event():
    return asyncio.Event()
