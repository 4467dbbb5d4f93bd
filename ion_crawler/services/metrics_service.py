"""
Metrics service following Single Responsibility Principle
"""
from prometheus_client import Counter, Histogram, start_http_server
from loguru import logger

from ion_crawler.config import Config

# Metrics
DOCUMENTS_MATCHED = Counter('did_documents_matched_total', 'New documents accepted by the filter')
DOCUMENTS_PUBLISHED = Counter('did_documents_published_total', 'Documents published while paging')
DOCUMENTS_RETRIED = Counter('did_documents_retried_total', 'Pending documents published while draining')
DOCUMENTS_FAILED = Counter('did_documents_failed_total', 'Publish attempts that failed', ['phase'])
DOCUMENTS_DUPLICATE = Counter('did_documents_duplicate_total', 'Accepted documents already seen')
DOCUMENTS_EXCLUDED = Counter('did_documents_excluded_total', 'Malformed feed records')
FEED_PAGES = Counter('feed_pages_fetched_total', 'Feed pages fetched')
FEED_ERRORS = Counter('feed_errors_total', 'Feed errors', ['kind'])
CYCLES = Counter('crawl_cycles_total', 'Crawl cycles by outcome', ['outcome'])
CYCLE_DURATION = Histogram('crawl_cycle_duration_seconds', 'Time spent in one crawl cycle')


class MetricsService:
    """Service responsible for metrics exposure"""

    def __init__(self, port: int = None):
        self._port = port or Config.METRICS_PORT
        self._metrics_started = False

    def start_metrics_server(self) -> None:
        """Start Prometheus metrics server"""
        try:
            if not self._metrics_started:
                start_http_server(self._port)
                self._metrics_started = True
                logger.info(f"Metrics server started on port {self._port}")
        except OSError as e:
            logger.error(f"Failed to start metrics server: {e}")
            raise
