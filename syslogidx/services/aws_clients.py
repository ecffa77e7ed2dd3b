"""
Thin async wrappers over the boto3 SQS and S3 clients.

boto3 is blocking, so every call runs in a worker thread.
"""

import asyncio
import logging
from typing import Any, BinaryIO, List, Optional

import boto3
from pydantic import BaseModel, Field

from syslogidx.core.config import Settings

logger = logging.getLogger(__name__)


class QueueMessage(BaseModel):
    """One received SQS message."""

    message_id: str = ""
    receipt_handle: str
    body: str
    attributes: dict = Field(default_factory=dict)


def create_session(settings: Settings) -> "boto3.session.Session":
    """
    Build a boto3 session and make sure credentials can be found.

    Raises:
        RuntimeError: no AWS credentials are available
    """
    session = boto3.session.Session(region_name=settings.aws_region)
    if session.get_credentials() is None:
        raise RuntimeError("No AWS credentials found")
    logger.info(f"AWS session ready for region {settings.aws_region}")
    return session


class SQSQueue:
    """Receive and delete messages on SQS queues."""

    def __init__(self, client: Any):
        self.client = client

    @classmethod
    def from_session(cls, session: "boto3.session.Session") -> "SQSQueue":
        return cls(session.client("sqs"))

    async def get_queue_url(self, name: str) -> str:
        response = await asyncio.to_thread(self.client.get_queue_url, QueueName=name)
        return response["QueueUrl"]

    async def receive_message(
        self,
        queue_url: str,
        attributes: Optional[List[str]],
        max_messages: int,
        visibility_timeout: int,
        wait_time: int
    ) -> List[QueueMessage]:
        """Long-poll for up to ``max_messages`` messages."""
        kwargs = {
            "QueueUrl": queue_url,
            "MaxNumberOfMessages": max_messages,
            "VisibilityTimeout": visibility_timeout,
            "WaitTimeSeconds": wait_time,
        }
        if attributes:
            kwargs["AttributeNames"] = list(attributes)

        response = await asyncio.to_thread(self.client.receive_message, **kwargs)
        return [
            QueueMessage(
                message_id=m.get("MessageId", ""),
                receipt_handle=m["ReceiptHandle"],
                body=m["Body"],
                attributes=m.get("Attributes", {})
            )
            for m in response.get("Messages", [])
        ]

    async def delete_message(self, queue_url: str, receipt_handle: str) -> None:
        await asyncio.to_thread(
            self.client.delete_message,
            QueueUrl=queue_url,
            ReceiptHandle=receipt_handle
        )


class S3ObjectStore:
    """Read and write S3 objects."""

    def __init__(self, client: Any):
        self.client = client

    @classmethod
    def from_session(cls, session: "boto3.session.Session") -> "S3ObjectStore":
        return cls(session.client("s3"))

    async def get_reader(self, bucket: str, key: str) -> BinaryIO:
        """
        Open an object for streaming.

        The returned body is a blocking file-like object; the caller must
        close it.
        """
        response = await asyncio.to_thread(self.client.get_object, Bucket=bucket, Key=key)
        return response["Body"]

    async def put_object(self, bucket: str, key: str, data: bytes, **extra: Any) -> None:
        await asyncio.to_thread(self.client.put_object, Bucket=bucket, Key=key, Body=data, **extra)
