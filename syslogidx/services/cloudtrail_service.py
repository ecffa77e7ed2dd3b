"""
CloudTrail log indexing.

CloudTrail is configured to write logs to an S3 bucket and post a notification
to an SNS topic when a new log is written. The SNS topic enqueues a message in
SQS for each notification.

To index the logs we receive a message from the SQS queue, pull down every log
bundle it references from S3, and index the events in Elasticsearch. Only
after every event of every bundle has been indexed is the message deleted from
the queue. Otherwise the message becomes visible again once its visibility
timeout expires and the whole notification is retried, so events may be
indexed more than once. That is preferred over losing events. With
``cloudtrail_idempotent_ids`` each event gets a document id derived from its
bundle and position, which turns those repeats into overwrites.
"""

import asyncio
import gzip
import hashlib
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from syslogidx.core.config import Settings
from syslogidx.models.cloudtrail import (
    SNSMessage,
    CloudTrailNotification,
    CloudTrailRecord,
    CloudTrailLog
)
from syslogidx.models.log import index_name_for, format_timestamp
from syslogidx.services.aws_clients import QueueMessage, SQSQueue, S3ObjectStore
from syslogidx.services.elasticsearch_service import ElasticsearchService

logger = logging.getLogger(__name__)


def document_id(bucket: str, key: str, offset: int) -> str:
    """Stable id for the record at ``offset`` in a bundle."""
    return hashlib.sha1(f"{bucket}/{key}:{offset}".encode("utf-8")).hexdigest()


def decode_notification(body: str) -> CloudTrailNotification:
    """
    Unwrap the SNS envelope carried in an SQS message body.

    Raises:
        ValueError: the body or the inner message is not a valid notification
    """
    note = SNSMessage.model_validate_json(body)
    return CloudTrailNotification.model_validate_json(note.message)


def read_bundle(reader: Any, key: str) -> CloudTrailLog:
    """Decode a log bundle from a file-like object, gunzipping ``.gz`` keys."""
    if key.endswith(".gz"):
        with gzip.GzipFile(fileobj=reader) as stream:
            data = json.load(stream)
    else:
        data = json.load(reader)
    return CloudTrailLog.model_validate(data)


class CloudTrailIndexer:
    """
    Long-running loop that drains CloudTrail notifications from SQS.

    One failure anywhere in a notification keeps its message on the queue.
    """

    def __init__(
        self,
        settings: Settings,
        backend: ElasticsearchService,
        queue: SQSQueue,
        store: S3ObjectStore,
        stop_event: Optional[asyncio.Event] = None
    ):
        self.settings = settings
        self.backend = backend
        self.queue = queue
        self.store = store
        self.stop_event = stop_event or asyncio.Event()
        self.queue_url: Optional[str] = None
        self.stats: Dict[str, int] = {
            "messages_received": 0,
            "messages_deleted": 0,
            "records_indexed": 0,
            "failures": 0,
        }

    async def setup(self) -> None:
        """
        Resolve the queue URL.

        Raises:
            Whatever the SQS client raises; the service cannot run without it
        """
        self.queue_url = await self.queue.get_queue_url(self.settings.cloudtrail_sqs_queue)
        logger.info(f"CloudTrail indexer using queue {self.queue_url}")

    async def _sleep(self, seconds: float) -> None:
        """Sleep, returning early when the indexer is stopped."""
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run(self) -> None:
        """Poll until stopped. Never raises on processing errors."""
        if self.queue_url is None:
            await self.setup()

        while not self.stop_event.is_set():
            await self.poll_once()

    async def poll_once(self) -> None:
        """Receive one batch and process it, sleeping on errors or an empty queue."""
        try:
            messages = await self.queue.receive_message(
                self.queue_url,
                None,
                self.settings.cloudtrail_max_messages,
                self.settings.cloudtrail_visibility_timeout,
                self.settings.cloudtrail_wait_time
            )
        except Exception as e:
            logger.error(f"SQS ReceiveMessage failed: {e!r}")
            await self._sleep(self.settings.cloudtrail_retry_interval)
            return

        if not messages:
            logger.debug("No message received, sleeping")
            await self._sleep(self.settings.cloudtrail_retry_interval)
            return

        for message in messages:
            self.stats["messages_received"] += 1
            await self.process_message(message)

    async def process_message(self, message: QueueMessage) -> bool:
        """
        Index everything a message references.

        Returns:
            True if the message was deleted from the queue
        """
        try:
            note = decode_notification(message.body)
        except ValueError as e:
            # Left on the queue; it expires or gets redelivered
            logger.error(f"Failed to decode CloudTrail notification from SQS message {message.message_id}: {e}")
            return False

        failed = 0
        for key in note.s3_object_key:
            failed += await self.index_object(note.s3_bucket, key)

        if failed:
            self.stats["failures"] += failed
            logger.warning(
                f"{failed} failure(s) indexing notification {message.message_id}, leaving it for redelivery"
            )
            return False

        try:
            await self.queue.delete_message(self.queue_url, message.receipt_handle)
        except Exception as e:
            logger.error(f"Failed to delete message {message.message_id}: {e!r}")
            return False

        self.stats["messages_deleted"] += 1
        return True

    async def fetch_bundle(self, bucket: str, key: str) -> CloudTrailLog:
        reader = await self.store.get_reader(bucket, key)
        try:
            return await asyncio.to_thread(read_bundle, reader, key)
        finally:
            reader.close()

    def build_document(self, record: Dict[str, Any]) -> Tuple[str, datetime, bytes]:
        """
        Serialize a record with the synthetic fields Kibana expects.

        Returns:
            (index name, event time, JSON bytes)

        Raises:
            ValueError: the record has no usable eventTime
        """
        event_time = CloudTrailRecord.model_validate(record).event_time

        document = dict(record)
        document["@timestamp"] = format_timestamp(event_time)
        document["@version"] = "1"
        document["@app"] = self.settings.cloudtrail_app_tag

        return index_name_for(event_time), event_time, json.dumps(document).encode("utf-8")

    async def index_object(self, bucket: str, key: str) -> int:
        """
        Index all records of one bundle, in file order.

        Returns:
            Number of failures; indexing stops at the first failed write
        """
        try:
            bundle = await self.fetch_bundle(bucket, key)
        except Exception as e:
            logger.error(f"Failed to fetch CloudTrail log from S3 ({bucket}:{key}): {e!r}")
            return 1

        failed = 0
        for offset, record in enumerate(bundle.records):
            try:
                index_name, event_time, raw = self.build_document(record)
            except ValueError as e:
                logger.error(f"Skipping malformed CloudTrail record {offset} in {bucket}:{key}: {e}")
                failed += 1
                continue

            doc_id = document_id(bucket, key, offset) if self.settings.cloudtrail_idempotent_ids else None
            try:
                await self.backend.index_json(
                    index_name, self.settings.cloudtrail_doc_type, raw, event_time, doc_id=doc_id
                )
            except Exception as e:
                logger.error(f"Failed to index CloudTrail event {offset} from {bucket}:{key}: {e!r}")
                failed += 1
                break
            self.stats["records_indexed"] += 1

        return failed
