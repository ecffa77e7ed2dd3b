from functools import lru_cache
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


def _default_json_apps() -> Dict[str, bool]:
    return {
        "dhclient": False,
        "kernel": False,
        "rsyslogd": False,
        "sshd": False,
        "sudo": False,

        "mysql-audit": True,
        "deploy": True,
        "restapi": True,
    }


class Settings(BaseSettings):
    """Application configuration settings loaded from environment variables."""

    # Application Settings
    app_name: str = "Syslog Indexer"
    app_version: str = "1.0.0"
    debug: bool = False

    # Status API
    host: str = "0.0.0.0"
    port: int = 8000

    # Syslog Listener
    syslog_host: str = "127.0.0.1"
    syslog_port: int = 1514
    syslog_max_line: int = 64 * 1024

    # Elasticsearch Configuration
    elasticsearch_host: str = "127.0.0.1"
    elasticsearch_port: int = 9200
    elasticsearch_user: Optional[str] = None
    elasticsearch_password: Optional[str] = None
    elasticsearch_timeout: int = 30

    # AWS
    aws_region: str = "us-east-1"

    # CloudTrail indexing
    cloudtrail: bool = False
    cloudtrail_sqs_queue: str = "cloudtrail"
    cloudtrail_max_messages: int = Field(default=1, ge=1, le=10)
    cloudtrail_visibility_timeout: int = 120
    cloudtrail_wait_time: int = Field(default=20, ge=0, le=20)
    cloudtrail_retry_interval: float = 60.0
    cloudtrail_doc_type: str = "cloudtrail"
    cloudtrail_app_tag: str = "syslogidx"
    cloudtrail_idempotent_ids: bool = True

    # Log archiving
    archive: bool = False
    archive_s3_bucket: Optional[str] = None
    archive_prefix: str = "syslog/"
    archive_flush_interval: float = 300.0
    archive_max_entries: int = 10000

    # Index retention
    cleanup: bool = False
    retain_days: int = 60
    retention_interval: float = 24 * 60 * 60
    retention_max_jitter: float = 2 * 60 * 60

    # Classification seeds: app name -> emits JSON, app name -> doc type
    json_apps: Dict[str, bool] = Field(default_factory=_default_json_apps)
    app_types: Dict[str, str] = Field(default_factory=dict)

    @property
    def elasticsearch_url(self) -> str:
        """Construct Elasticsearch connection URL."""
        return f"http://{self.elasticsearch_host}:{self.elasticsearch_port}"

    @property
    def elasticsearch_auth(self) -> Optional[tuple]:
        if self.elasticsearch_user and self.elasticsearch_password:
            return (self.elasticsearch_user, self.elasticsearch_password)
        return None

    class Config:
        env_prefix = "SYSLOGIDX_"
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()
