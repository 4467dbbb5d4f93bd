"""
Durable record of DID document ids the crawler has already examined
"""
import json
from datetime import datetime
from typing import Iterator, Optional

from loguru import logger

from ion_crawler.errors import NotFoundError, StoreError
from ion_crawler.models import CrawlCursor, DidDocument, SeenRecord
from ion_crawler.services.bloom_filter_service import BloomFilterService
from ion_crawler.services.kv_store_service import KeyValueStore

SEEN_PREFIX = 'seen/'
CURSOR_KEY = 'cursor'


class SeenStoreService:
    """
    Two-phase seen/published markers plus the feed cursor, on top of a key-value store

    Layout: ``seen/<id>`` holds a SeenRecord as JSON and ``cursor`` holds the
    last committed continuation token. Every mutation is written through before
    returning. Assumes a single writer process.
    """

    def __init__(self, store: KeyValueStore, bloom_filter: Optional[BloomFilterService] = None):
        self._store = store
        self._bloom_filter = bloom_filter

    def initialize(self) -> None:
        """Warm the Bloom filter from the persisted seen partition"""
        if self._bloom_filter is None:
            return
        self._bloom_filter.initialize()
        count = self._bloom_filter.add_multiple(
            key[len(SEEN_PREFIX):] for key, _ in self._store.scan_prefix(SEEN_PREFIX)
        )
        logger.info(f"Loaded {count} seen document ids into Bloom filter")

    @staticmethod
    def _seen_key(document_id: str) -> str:
        return f"{SEEN_PREFIX}{document_id}"

    @staticmethod
    def _decode(raw: str) -> SeenRecord:
        try:
            return SeenRecord.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise StoreError(f"Corrupt seen record: {e}") from e

    def _write(self, record: SeenRecord) -> None:
        self._store.put(self._seen_key(record.id), json.dumps(record.to_dict()))

    def get(self, document_id: str) -> Optional[SeenRecord]:
        raw = self._store.get(self._seen_key(document_id))
        return self._decode(raw) if raw is not None else None

    def has(self, document_id: str) -> bool:
        """True iff a seen record exists, whatever its published flag"""
        if self._bloom_filter is not None and self._bloom_filter.ready:
            if not self._bloom_filter.might_contain(document_id):
                return False
        return self._store.get(self._seen_key(document_id)) is not None

    def mark_seen(self, document_id: str, timestamp: datetime,
                  document: Optional[DidDocument] = None) -> bool:
        """
        Create an unpublished seen record unless one already exists

        Args:
            document_id: Document id
            timestamp: First observation time
            document: Document to keep for later republishing

        Returns:
            True if a record was created, False if it already existed
        """
        if self.get(document_id) is not None:
            return False
        self._write(SeenRecord(id=document_id, first_seen_at=timestamp, document=document))
        if self._bloom_filter is not None:
            self._bloom_filter.add(document_id)
        logger.debug(f"Marked {document_id} as seen")
        return True

    def mark_excluded(self, document_id: str, timestamp: datetime) -> bool:
        """Record an id that was examined but will never be published"""
        if self.get(document_id) is not None:
            return False
        self._write(SeenRecord(id=document_id, first_seen_at=timestamp, excluded=True))
        if self._bloom_filter is not None:
            self._bloom_filter.add(document_id)
        logger.debug(f"Marked {document_id} as excluded")
        return True

    def mark_published(self, document_id: str) -> None:
        record = self.get(document_id)
        if record is None:
            raise NotFoundError(f"No seen record for {document_id}")
        if record.published:
            return
        record.published = True
        self._write(record)
        logger.debug(f"Marked {document_id} as published")

    def pending_publish(self) -> Iterator[str]:
        """
        Ids seen but not yet confirmed published

        The id list is taken when this method is called; records marked
        published afterwards are still yielded.
        """
        pending = []
        for _, raw in self._store.scan_prefix(SEEN_PREFIX):
            record = self._decode(raw)
            if not record.published and not record.excluded:
                pending.append(record.id)
        return iter(pending)

    def get_cursor(self) -> Optional[CrawlCursor]:
        return self._store.get(CURSOR_KEY) or None

    def set_cursor(self, cursor: CrawlCursor) -> None:
        self._store.put(CURSOR_KEY, cursor)
        logger.debug(f"Committed cursor {cursor}")

    def clear_cursor(self) -> None:
        self._store.delete(CURSOR_KEY)

    def reset(self) -> int:
        """Drop every seen record and the cursor; returns the number of records removed"""
        keys = [key for key, _ in self._store.scan_prefix(SEEN_PREFIX)]
        for key in keys:
            self._store.delete(key)
        self.clear_cursor()
        if self._bloom_filter is not None:
            self._bloom_filter.initialize()
        logger.warning(f"Seen store reset, removed {len(keys)} records")
        return len(keys)
