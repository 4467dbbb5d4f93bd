"""
Service factory following Dependency Inversion Principle
"""
from dataclasses import replace
from typing import Callable, Optional

from loguru import logger

from ion_crawler.config import Config, CrawlerConfig
from ion_crawler.services.bloom_filter_service import BloomFilterService
from ion_crawler.services.cassandra_service import CassandraService
from ion_crawler.services.crawl_cycle_service import CrawlCycleService
from ion_crawler.services.document_filter_service import DocumentFilterService
from ion_crawler.services.event_publisher_service import EventPublisherService
from ion_crawler.services.feed_service import FeedService
from ion_crawler.services.kafka_service import KafkaService
from ion_crawler.services.kv_store_service import InMemoryStoreService, KeyValueStore
from ion_crawler.services.metrics_service import MetricsService
from ion_crawler.services.redis_service import RedisService
from ion_crawler.services.scheduler_service import SchedulerService
from ion_crawler.services.seen_store_service import SeenStoreService


def genesis_once(provider: Callable[[], CrawlerConfig]) -> Callable[[], CrawlerConfig]:
    """Honor restart_from_genesis for the first snapshot only"""
    state = {'first': True}

    def _provide() -> CrawlerConfig:
        config = provider()
        if state['first']:
            state['first'] = False
            return config
        return replace(config, restart_from_genesis=False) if config.restart_from_genesis else config

    return _provide


class ServiceFactory:
    """Factory for creating and managing service instances"""

    def __init__(self, config_provider: Optional[Callable[[], CrawlerConfig]] = None,
                 store_backend: Optional[str] = None):
        self._services = {}
        self._base_config_provider = config_provider or CrawlerConfig.from_env
        self._config_provider = genesis_once(self._base_config_provider)
        self._store_backend = (store_backend or Config.STORE_BACKEND).lower()
        self._initial_config: Optional[CrawlerConfig] = None

    @property
    def initial_config(self) -> CrawlerConfig:
        """Snapshot used to build long-lived services such as the feed client"""
        if self._initial_config is None:
            self._initial_config = self._base_config_provider()
        return self._initial_config

    def _get(self, name: str, build: Callable):
        if name not in self._services:
            self._services[name] = build()
        return self._services[name]

    def get_kv_store(self) -> KeyValueStore:
        """Get the key-value backend selected by STORE_BACKEND"""
        def build() -> KeyValueStore:
            if self._store_backend == 'cassandra':
                return CassandraService()
            if self._store_backend == 'redis':
                return RedisService()
            if self._store_backend == 'memory':
                logger.warning("Using in-memory store, crawler state will not survive restarts")
                return InMemoryStoreService()
            raise ValueError(f"Unknown STORE_BACKEND: {self._store_backend}")
        return self._get('kv_store', build)

    def get_bloom_filter_service(self) -> BloomFilterService:
        return self._get('bloom_filter_service', BloomFilterService)

    def get_seen_store_service(self) -> SeenStoreService:
        return self._get('seen_store_service', lambda: SeenStoreService(
            self.get_kv_store(), self.get_bloom_filter_service()
        ))

    def get_feed_service(self) -> FeedService:
        return self._get('feed_service', lambda: FeedService(self.initial_config.feed_endpoint))

    def get_document_filter_service(self) -> DocumentFilterService:
        return self._get('document_filter_service', DocumentFilterService)

    def get_kafka_service(self) -> KafkaService:
        return self._get('kafka_service', KafkaService)

    def get_event_publisher_service(self) -> EventPublisherService:
        return self._get('event_publisher_service', lambda: EventPublisherService(
            self.get_kafka_service()
        ))

    def get_metrics_service(self) -> MetricsService:
        return self._get('metrics_service', MetricsService)

    def get_crawl_cycle_service(self) -> CrawlCycleService:
        """Get the crawl cycle orchestrator with all dependencies"""
        return self._get('crawl_cycle_service', lambda: CrawlCycleService(
            self.get_feed_service(),
            self.get_document_filter_service(),
            self.get_seen_store_service(),
            self.get_event_publisher_service(),
            self._config_provider
        ))

    def get_scheduler_service(self) -> SchedulerService:
        return self._get('scheduler_service', lambda: SchedulerService(
            self.get_crawl_cycle_service(),
            self.initial_config.interval_minutes
        ))

    def initialize_store(self) -> None:
        self.get_kv_store().initialize()
        self.get_seen_store_service().initialize()

    def initialize_all_services(self, with_metrics: bool = True) -> None:
        """Initialize all services"""
        self.initialize_store()
        self.get_kafka_service().initialize_producer()
        if with_metrics:
            self.get_metrics_service().start_metrics_server()

    async def cleanup_all_services(self) -> None:
        """Cleanup all services"""
        if 'feed_service' in self._services:
            await self._services['feed_service'].close()
        if 'kafka_service' in self._services:
            self._services['kafka_service'].close()
        if 'kv_store' in self._services:
            self._services['kv_store'].close()
