"""Shared fakes and fixtures for crawler tests."""

from datetime import datetime, timedelta, timezone

import pytest
from kafka.errors import KafkaTimeoutError

from ion_crawler.config import CrawlerConfig
from ion_crawler.errors import StoreError
from ion_crawler.models import FeedPage
from ion_crawler.services.bloom_filter_service import BloomFilterService
from ion_crawler.services.crawl_cycle_service import CrawlCycleService
from ion_crawler.services.document_filter_service import DocumentFilterService
from ion_crawler.services.event_publisher_service import EventPublisherService
from ion_crawler.services.kv_store_service import InMemoryStoreService
from ion_crawler.services.seen_store_service import SeenStoreService

FEED_ENDPOINT = "http://ion.test:3000"


def record(document_id, type_="gxi", **payload):
    """Raw feed record as the ION feed returns it."""
    return {"id": document_id, "type": type_, "document": {"id": document_id, **payload}}


class FakeClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


class FakeFeed:
    """Feed serving pages keyed by the cursor they are requested with."""

    def __init__(self, pages=None, log=None):
        # cursor -> FeedPage or Exception
        self.pages = dict(pages or {})
        self.calls = []
        self.log = log if log is not None else []

    def add_page(self, cursor, documents, next_cursor=None):
        self.pages[cursor] = FeedPage(documents=list(documents), next_cursor=next_cursor)

    def fail(self, cursor, error):
        self.pages[cursor] = error

    async def fetch_page(self, cursor, page_size):
        self.calls.append(cursor)
        self.log.append(("fetch", cursor))
        page = self.pages.get(cursor)
        if isinstance(page, Exception):
            raise page
        if page is None:
            return FeedPage(documents=[], next_cursor=None)
        return page


class FakeKafkaService:
    """Stands in for KafkaService; failures can be queued per event id."""

    def __init__(self, log=None):
        self.sent = []
        self.failures = {}
        self.log = log if log is not None else []

    def fail_next(self, event_id, times=1):
        self.failures[event_id] = times

    def send_json_message(self, key, data):
        self.log.append(("send", key))
        if self.failures.get(key, 0) > 0:
            self.failures[key] -= 1
            raise KafkaTimeoutError(f"no ack for {key}")
        self.sent.append((key, data))

    def sent_ids(self):
        return [key for key, _ in self.sent]


class RecordingStore(InMemoryStoreService):
    """In-memory store that logs cursor writes into a shared event log."""

    def __init__(self, log=None):
        super().__init__()
        self.log = log if log is not None else []
        self.fail_puts = False

    def put(self, key, value):
        if self.fail_puts:
            raise StoreError("store is down")
        if key == "cursor":
            self.log.append(("cursor", value))
        super().put(key, value)


@pytest.fixture
def event_log():
    return []


@pytest.fixture
def kv_store(event_log):
    return RecordingStore(log=event_log)


@pytest.fixture
def seen_store(kv_store):
    store = SeenStoreService(kv_store, BloomFilterService(capacity=1000, error_rate=0.01))
    store.initialize()
    return store


@pytest.fixture
def feed(event_log):
    return FakeFeed(log=event_log)


@pytest.fixture
def kafka(event_log):
    return FakeKafkaService(log=event_log)


@pytest.fixture
def publisher(kafka):
    return EventPublisherService(kafka)


@pytest.fixture
def crawler_config():
    return CrawlerConfig(feed_endpoint=FEED_ENDPOINT, page_size=10)


@pytest.fixture
def make_cycle(feed, seen_store, publisher, crawler_config):
    """Build a CrawlCycleService; config overrides apply to every snapshot."""

    def _make(config=None, publisher_override=None, feed_override=None, document_filter=None):
        snapshot = config or crawler_config
        return CrawlCycleService(
            feed_override or feed,
            document_filter or DocumentFilterService(),
            seen_store,
            publisher_override or publisher,
            lambda: snapshot,
            clock=FakeClock(),
        )

    return _make

