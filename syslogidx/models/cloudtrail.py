"""
CloudTrail delivery envelopes.

CloudTrail writes log bundles to S3 and publishes a notification to SNS,
which fans out into an SQS queue. The SQS message body is the SNS envelope;
its ``Message`` string holds the CloudTrail notification.
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime


class SNSMessage(BaseModel):
    """SNS notification as delivered in an SQS message body."""

    type: Optional[str] = Field(None, alias="Type")
    message_id: Optional[str] = Field(None, alias="MessageId")
    topic_arn: Optional[str] = Field(None, alias="TopicArn")
    subject: Optional[str] = Field(None, alias="Subject")
    message: str = Field(..., alias="Message")
    timestamp: Optional[datetime] = Field(None, alias="Timestamp")

    class Config:
        populate_by_name = True
        extra = "ignore"


class CloudTrailNotification(BaseModel):
    """Points at the log bundles CloudTrail just delivered."""

    s3_bucket: str = Field(..., alias="s3Bucket")
    s3_object_key: List[str] = Field(default_factory=list, alias="s3ObjectKey")

    class Config:
        populate_by_name = True
        extra = "ignore"


class CloudTrailRecord(BaseModel):
    """
    The fields of a CloudTrail event that routing depends on.

    Only ``eventTime`` is interpreted. The indexer keeps the raw record dict
    so every other field, including ones added to CloudTrail later, is
    indexed as delivered.
    """

    event_time: datetime = Field(..., alias="eventTime")

    class Config:
        populate_by_name = True
        extra = "ignore"


class CloudTrailLog(BaseModel):
    """Contents of one CloudTrail log bundle."""

    records: List[Dict[str, Any]] = Field(default_factory=list, alias="Records")

    class Config:
        populate_by_name = True
        extra = "ignore"
