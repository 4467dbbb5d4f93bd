"""
Configuration management for the ION crawler
"""
import os
from dataclasses import dataclass
from typing import FrozenSet, Mapping, Optional


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _as_set(value: str) -> FrozenSet[str]:
    return frozenset(item.strip() for item in value.split(',') if item.strip())


class Config:
    """Infrastructure settings read from the environment"""

    # Feed Configuration
    FEED_API_KEY: Optional[str] = os.getenv('FEED_API_KEY')
    FEED_TIMEOUT: int = int(os.getenv('FEED_TIMEOUT', '30'))
    FEED_RETRY_ATTEMPTS: int = int(os.getenv('FEED_RETRY_ATTEMPTS', '3'))
    FEED_RETRY_MAX_WAIT: float = float(os.getenv('FEED_RETRY_MAX_WAIT', '20'))
    USER_AGENT: str = os.getenv('USER_AGENT', 'IonCrawler/1.0')

    # Kafka Configuration
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv('KAFKA_BOOTSTRAP_SERVERS', 'localhost:9092')
    KAFKA_EVENTS_TOPIC: str = os.getenv('KAFKA_EVENTS_TOPIC', 'did-document-events')
    KAFKA_SEND_RETRIES: int = int(os.getenv('KAFKA_SEND_RETRIES', '5'))
    KAFKA_SEND_TIMEOUT: float = float(os.getenv('KAFKA_SEND_TIMEOUT', '30'))

    # Store Configuration: cassandra, redis or memory
    STORE_BACKEND: str = os.getenv('STORE_BACKEND', 'cassandra')

    # Redis Configuration
    REDIS_HOST: str = os.getenv('REDIS_HOST', 'localhost')
    REDIS_PORT: int = int(os.getenv('REDIS_PORT', '6379'))
    REDIS_DB: int = int(os.getenv('REDIS_DB', '0'))
    REDIS_KEY_PREFIX: str = os.getenv('REDIS_KEY_PREFIX', 'ion-crawler:')

    # Cassandra Configuration
    CASSANDRA_HOST: str = os.getenv('CASSANDRA_HOST', 'localhost')
    CASSANDRA_PORT: int = int(os.getenv('CASSANDRA_PORT', '9042'))
    CASSANDRA_KEYSPACE: str = os.getenv('CASSANDRA_KEYSPACE', 'ioncrawler')

    # Bloom Filter Configuration
    BLOOM_FILTER_CAPACITY: int = int(os.getenv('BLOOM_FILTER_CAPACITY', '1000000'))
    BLOOM_FILTER_ERROR_RATE: float = float(os.getenv('BLOOM_FILTER_ERROR_RATE', '0.01'))

    # Logging Configuration
    LOG_DIR: str = os.getenv('LOG_DIR', '/app/logs')
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')

    # Metrics Configuration
    METRICS_PORT: int = int(os.getenv('METRICS_PORT', '8000'))

    @classmethod
    def get_kafka_servers(cls) -> list:
        """Get Kafka servers as a list"""
        return cls.KAFKA_BOOTSTRAP_SERVERS.split(',')


@dataclass(frozen=True)
class CrawlerConfig:
    """Immutable settings snapshot taken before each crawl cycle"""
    feed_endpoint: str
    page_size: int = 100
    accepted_types: FrozenSet[str] = frozenset({'gxi'})
    sampling_rate: float = 1.0
    interval_minutes: int = 30
    restart_from_genesis: bool = False
    max_pages_per_cycle: int = 50

    def __post_init__(self):
        if not self.feed_endpoint:
            raise ValueError("FEED_ENDPOINT is required")
        if self.page_size <= 0:
            raise ValueError(f"page size must be positive, got {self.page_size}")
        if self.max_pages_per_cycle <= 0:
            raise ValueError(f"page budget must be positive, got {self.max_pages_per_cycle}")
        if self.interval_minutes <= 0:
            raise ValueError(f"interval must be positive, got {self.interval_minutes}")
        if not 0.0 <= self.sampling_rate <= 1.0:
            raise ValueError(f"sampling rate must be within [0, 1], got {self.sampling_rate}")
        if not self.accepted_types:
            raise ValueError("at least one accepted document type is required")

    @property
    def sampling_enabled(self) -> bool:
        return self.sampling_rate < 1.0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> 'CrawlerConfig':
        """
        Build a snapshot from environment variables

        Args:
            env: Mapping to read from, defaults to ``os.environ`` at call time

        Returns:
            Validated CrawlerConfig
        """
        env = os.environ if env is None else env
        return cls(
            feed_endpoint=env.get('FEED_ENDPOINT', '').strip(),
            page_size=int(env.get('FEED_PAGE_SIZE', '100')),
            accepted_types=_as_set(env.get('FILTER_ACCEPTED_TYPES', 'gxi')),
            sampling_rate=float(env.get('FILTER_SAMPLING_RATE', '1.0')),
            interval_minutes=int(env.get('CRAWLER_INTERVAL_MINUTES', '30')),
            restart_from_genesis=_as_bool(env.get('CRAWLER_RESTART_FROM_GENESIS', 'false')),
            max_pages_per_cycle=int(env.get('CRAWLER_MAX_PAGES_PER_CYCLE', '50')),
        )
