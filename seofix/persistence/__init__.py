"""Report, activity, backup and website persistence backends."""

from seofix.persistence.activity import InMemoryActivityLog, RedisActivityLog
from seofix.persistence.backup import FileBackupService, InMemoryBackupService
from seofix.persistence.reports import FileReportStore, InMemoryReportStore
from seofix.persistence.websites import InMemoryWebsiteDirectory

__all__ = (
    "FileBackupService",
    "FileReportStore",
    "InMemoryActivityLog",
    "InMemoryBackupService",
    "InMemoryReportStore",
    "InMemoryWebsiteDirectory",
    "RedisActivityLog",
)
