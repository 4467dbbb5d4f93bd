"""
Error taxonomy for the ION crawler
"""
from typing import Optional


class CrawlerError(Exception):
    """Base class for all crawler errors"""


class FeedUnavailableError(CrawlerError):
    """The document feed could not be reached or answered with a server error"""


class InvalidCursorError(CrawlerError):
    """The feed rejected the continuation cursor"""

    def __init__(self, cursor: str, message: Optional[str] = None):
        super().__init__(message or f"Feed rejected cursor {cursor!r}")
        self.cursor = cursor


class PublishError(CrawlerError):
    """The event sink did not confirm delivery"""

    def __init__(self, document_id: str, message: Optional[str] = None):
        super().__init__(message or f"Failed to publish event for {document_id}")
        self.document_id = document_id


class NotFoundError(CrawlerError):
    """A seen record was expected but does not exist"""


class StoreError(CrawlerError):
    """The durable key-value store failed"""


class MalformedRecordError(CrawlerError):
    """A raw feed record could not be parsed into a DID document"""

    def __init__(self, message: str, record_id: Optional[str] = None):
        super().__init__(message)
        self.record_id = record_id
