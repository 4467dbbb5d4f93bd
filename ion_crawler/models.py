"""
Data models and DTOs for the ION crawler
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional
from datetime import datetime


# Opaque continuation token handed out by the feed
CrawlCursor = str

EVENT_TYPE_DID_DISCOVERED = "did-document-discovered"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp written by ``datetime.isoformat``"""
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class DidDocument:
    """A discovered identity document"""
    id: str
    type: str
    payload: Any
    observed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'payload': self.payload,
            'observed_at': self.observed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DidDocument':
        return cls(
            id=data['id'],
            type=data['type'],
            payload=data.get('payload'),
            observed_at=parse_timestamp(data['observed_at']),
        )


@dataclass
class SeenRecord:
    """Persisted marker for a document id that has been examined"""
    id: str
    first_seen_at: datetime
    published: bool = False
    excluded: bool = False
    document: Optional[DidDocument] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'first_seen_at': self.first_seen_at.isoformat(),
            'published': self.published,
            'excluded': self.excluded,
            'document': self.document.to_dict() if self.document else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SeenRecord':
        document = data.get('document')
        return cls(
            id=data['id'],
            first_seen_at=parse_timestamp(data['first_seen_at']),
            published=bool(data.get('published', False)),
            excluded=bool(data.get('excluded', False)),
            document=DidDocument.from_dict(document) if document else None,
        )


@dataclass(frozen=True)
class EventEnvelope:
    """Event handed to the downstream sink; event_id is the idempotency key"""
    event_id: str
    event_type: str
    occurred_at: datetime
    payload: Any

    def to_dict(self) -> Dict[str, Any]:
        return {
            'eventId': self.event_id,
            'eventType': self.event_type,
            'occurredAt': self.occurred_at.isoformat(),
            'payload': self.payload,
        }


@dataclass
class FeedPage:
    """One page of raw records returned by the feed"""
    documents: list
    next_cursor: Optional[CrawlCursor] = None


@dataclass
class CycleSummary:
    """Outcome of one crawl cycle, produced even when the cycle ends early"""
    success: bool = True
    skipped: bool = False
    matched: int = 0
    published: int = 0
    retried: int = 0
    failed: int = 0
    duplicates: int = 0
    excluded: int = 0
    pages: int = 0
    cursor: Optional[CrawlCursor] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def counts(self) -> Dict[str, int]:
        return {
            'matched': self.matched,
            'published': self.published,
            'retried': self.retried,
            'failed': self.failed,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'success': self.success,
            'skipped': self.skipped,
            'duplicates': self.duplicates,
            'excluded': self.excluded,
            'pages': self.pages,
            'cursor': self.cursor,
            'error': self.error,
        }
        data.update(self.counts())
        return data
