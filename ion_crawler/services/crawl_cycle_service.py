"""
One crawl cycle: resume, drain pending publishes, page through the feed
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from loguru import logger

from ion_crawler.config import CrawlerConfig
from ion_crawler.errors import (
    FeedUnavailableError,
    InvalidCursorError,
    MalformedRecordError,
    NotFoundError,
    PublishError,
    StoreError,
)
from ion_crawler.models import CrawlCursor, CycleSummary
from ion_crawler.services.document_filter_service import DocumentFilterService
from ion_crawler.services.event_publisher_service import EventPublisherService
from ion_crawler.services.feed_service import FeedService
from ion_crawler.services.metrics_service import (
    CYCLE_DURATION,
    CYCLES,
    DOCUMENTS_DUPLICATE,
    DOCUMENTS_EXCLUDED,
    DOCUMENTS_FAILED,
    DOCUMENTS_MATCHED,
    DOCUMENTS_PUBLISHED,
    DOCUMENTS_RETRIED,
)
from ion_crawler.services.seen_store_service import SeenStoreService


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CrawlCycleService:
    """
    Orchestrates a single crawl cycle

    Per document the order is always mark_seen -> publish -> mark_published.
    A page's cursor is committed only after every record of the page is done,
    so a cycle interrupted mid-page refetches that page next time; documents
    already marked seen on it are then skipped as duplicates and healed by the
    draining phase. Invocations never overlap: a call made while a cycle is
    running returns a skipped summary.
    """

    def __init__(
        self,
        feed_service: FeedService,
        document_filter: DocumentFilterService,
        seen_store: SeenStoreService,
        publisher: EventPublisherService,
        config_provider: Callable[[], CrawlerConfig],
        clock: Callable[[], datetime] = utc_now,
    ):
        self._feed_service = feed_service
        self._document_filter = document_filter
        self._seen_store = seen_store
        self._publisher = publisher
        self._config_provider = config_provider
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run_cycle(self, cancel_event: Optional[asyncio.Event] = None) -> CycleSummary:
        """
        Run one cycle to completion

        Args:
            cancel_event: When set, the cycle stops at the next page boundary

        Returns:
            CycleSummary, also on early termination

        Raises:
            StoreError: the seen store failed; the partial summary is logged
        """
        if self._lock.locked():
            logger.warning("Previous crawl cycle still running, skipping this invocation")
            CYCLES.labels(outcome='skipped').inc()
            return CycleSummary(skipped=True)

        async with self._lock:
            config = self._config_provider()
            summary = CycleSummary(started_at=self._clock())
            with CYCLE_DURATION.time():
                try:
                    cursor = self._resume(config)
                    summary.cursor = cursor
                    await self._drain(summary, cancel_event)
                    await self._page(config, cursor, summary, cancel_event)
                except (StoreError, NotFoundError) as e:
                    summary.success = False
                    summary.error = str(e)
                    summary.finished_at = self._clock()
                    CYCLES.labels(outcome='store_error').inc()
                    logger.error(f"Crawl cycle aborted by store failure: {e}; partial summary: {summary.to_dict()}")
                    raise

            summary.finished_at = self._clock()
            if summary.success:
                CYCLES.labels(outcome='success').inc()
            logger.info(f"Crawl cycle finished: {summary.to_dict()}")
            return summary

    def _resume(self, config: CrawlerConfig) -> Optional[CrawlCursor]:
        if config.restart_from_genesis:
            logger.warning("Restarting traversal from genesis, persisted cursor discarded")
            self._seen_store.clear_cursor()
            return None
        cursor = self._seen_store.get_cursor()
        if cursor:
            logger.info(f"Resuming crawl from cursor {cursor}")
        else:
            logger.info("No persisted cursor, crawling from genesis")
        return cursor

    async def _drain(self, summary: CycleSummary, cancel_event: Optional[asyncio.Event]) -> None:
        """Republish documents that were seen but never confirmed published"""
        for document_id in self._seen_store.pending_publish():
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Cancellation requested, leaving remaining pending documents for the next cycle")
                return

            record = self._seen_store.get(document_id)
            if record is None or record.published:
                continue
            if record.document is None:
                summary.failed += 1
                DOCUMENTS_FAILED.labels(phase='drain').inc()
                logger.error(f"Seen record {document_id} has no stored document, cannot republish")
                continue

            try:
                await self._publisher.publish(record.document)
            except PublishError as e:
                summary.failed += 1
                DOCUMENTS_FAILED.labels(phase='drain').inc()
                logger.warning(f"Retry failed for {document_id}, will try again next cycle: {e}")
                continue

            self._seen_store.mark_published(document_id)
            summary.retried += 1
            DOCUMENTS_RETRIED.inc()

    async def _page(self, config: CrawlerConfig, cursor: Optional[CrawlCursor],
                    summary: CycleSummary, cancel_event: Optional[asyncio.Event]) -> None:
        while summary.pages < config.max_pages_per_cycle:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Cancellation requested, stopping at committed cursor {cursor}")
                return

            try:
                page = await self._feed_service.fetch_page(cursor, config.page_size)
            except InvalidCursorError as e:
                self._seen_store.clear_cursor()
                summary.success = False
                summary.error = str(e)
                summary.cursor = None
                CYCLES.labels(outcome='invalid_cursor').inc()
                logger.warning(
                    f"Feed rejected cursor {cursor}; cursor cleared, next cycle restarts from genesis. "
                    "Documents published after the last committed page may be revisited."
                )
                return
            except FeedUnavailableError as e:
                summary.success = False
                summary.error = str(e)
                CYCLES.labels(outcome='feed_unavailable').inc()
                logger.error(f"Feed unavailable, ending cycle early at cursor {cursor}: {e}")
                return

            summary.pages += 1
            for raw in page.documents:
                await self._process_record(raw, config, summary)

            if page.next_cursor is None or page.next_cursor == cursor:
                logger.info(f"Reached the end of the available feed after {summary.pages} page(s)")
                return

            self._seen_store.set_cursor(page.next_cursor)
            cursor = page.next_cursor
            summary.cursor = cursor

        logger.info(f"Page budget of {config.max_pages_per_cycle} exhausted, continuing next cycle from {cursor}")

    async def _process_record(self, raw: Any, config: CrawlerConfig, summary: CycleSummary) -> None:
        observed_at = self._clock()
        try:
            document = self._document_filter.parse(raw, observed_at)
        except MalformedRecordError as e:
            summary.excluded += 1
            DOCUMENTS_EXCLUDED.inc()
            logger.warning(f"Skipping malformed feed record: {e}")
            if e.record_id:
                self._seen_store.mark_excluded(e.record_id, observed_at)
            return

        if not self._document_filter.accepts(document, config):
            return

        if self._seen_store.has(document.id):
            summary.duplicates += 1
            DOCUMENTS_DUPLICATE.inc()
            logger.debug(f"Already seen {document.id}, skipping")
            return

        self._seen_store.mark_seen(document.id, observed_at, document)
        summary.matched += 1
        DOCUMENTS_MATCHED.inc()

        try:
            await self._publisher.publish(document)
        except PublishError as e:
            summary.failed += 1
            DOCUMENTS_FAILED.labels(phase='page').inc()
            logger.warning(f"Publish failed for {document.id}, left pending for the next cycle: {e}")
            return

        self._seen_store.mark_published(document.id)
        summary.published += 1
        DOCUMENTS_PUBLISHED.inc()
