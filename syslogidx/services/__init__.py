from .elasticsearch_service import ElasticsearchService
from .classification_cache import ClassificationCache
from .syslog_service import SyslogHandler
from .listener import SyslogListener
from .cloudtrail_service import CloudTrailIndexer
from .retention_service import RetentionSweep
from .archive_service import LogArchiver

__all__ = [
    "ElasticsearchService",
    "ClassificationCache",
    "SyslogHandler",
    "SyslogListener",
    "CloudTrailIndexer",
    "RetentionSweep",
    "LogArchiver"
]
