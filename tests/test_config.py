"""Unit tests for crawler configuration and the service factory wiring."""

import pytest

from conftest import FEED_ENDPOINT
from ion_crawler.config import CrawlerConfig
from ion_crawler.services.crawl_cycle_service import CrawlCycleService
from ion_crawler.services.kv_store_service import InMemoryStoreService
from ion_crawler.services.service_factory import ServiceFactory, genesis_once


def test_from_env_defaults():
    config = CrawlerConfig.from_env({"FEED_ENDPOINT": FEED_ENDPOINT})

    assert config.feed_endpoint == FEED_ENDPOINT
    assert config.page_size == 100
    assert config.accepted_types == frozenset({"gxi"})
    assert config.sampling_rate == 1.0
    assert config.sampling_enabled is False
    assert config.interval_minutes == 30
    assert config.restart_from_genesis is False
    assert config.max_pages_per_cycle == 50


def test_from_env_parses_every_setting():
    config = CrawlerConfig.from_env({
        "FEED_ENDPOINT": f" {FEED_ENDPOINT} ",
        "FEED_PAGE_SIZE": "25",
        "FILTER_ACCEPTED_TYPES": "gxi, Z3hp ,,",
        "FILTER_SAMPLING_RATE": "0.25",
        "CRAWLER_INTERVAL_MINUTES": "5",
        "CRAWLER_RESTART_FROM_GENESIS": "Yes",
        "CRAWLER_MAX_PAGES_PER_CYCLE": "3",
    })

    assert config.feed_endpoint == FEED_ENDPOINT
    assert config.page_size == 25
    assert config.accepted_types == frozenset({"gxi", "Z3hp"})
    assert config.sampling_enabled is True
    assert config.interval_minutes == 5
    assert config.restart_from_genesis is True
    assert config.max_pages_per_cycle == 3


@pytest.mark.parametrize("overrides", [
    {"FEED_ENDPOINT": ""},
    {"FEED_PAGE_SIZE": "0"},
    {"FILTER_SAMPLING_RATE": "1.5"},
    {"FILTER_SAMPLING_RATE": "-0.1"},
    {"CRAWLER_INTERVAL_MINUTES": "0"},
    {"CRAWLER_MAX_PAGES_PER_CYCLE": "-1"},
    {"FILTER_ACCEPTED_TYPES": " , "},
    {"FEED_PAGE_SIZE": "many"},
])
def test_invalid_settings_are_rejected(overrides):
    env = {"FEED_ENDPOINT": FEED_ENDPOINT, **overrides}

    with pytest.raises(ValueError):
        CrawlerConfig.from_env(env)


def test_restart_from_genesis_applies_to_first_snapshot_only():
    provider = genesis_once(lambda: CrawlerConfig(FEED_ENDPOINT, restart_from_genesis=True))

    assert provider().restart_from_genesis is True
    assert provider().restart_from_genesis is False
    assert provider().restart_from_genesis is False


def test_factory_wires_memory_backend_and_reuses_instances():
    factory = ServiceFactory(config_provider=lambda: CrawlerConfig(FEED_ENDPOINT, interval_minutes=7),
                             store_backend="memory")

    cycle = factory.get_crawl_cycle_service()

    assert isinstance(cycle, CrawlCycleService)
    assert factory.get_crawl_cycle_service() is cycle
    assert isinstance(factory.get_kv_store(), InMemoryStoreService)
    assert factory.get_seen_store_service() is factory.get_seen_store_service()
    assert factory.get_scheduler_service()._interval == 7 * 60


def test_factory_rejects_unknown_backend():
    factory = ServiceFactory(config_provider=lambda: CrawlerConfig(FEED_ENDPOINT), store_backend="sqlite")

    with pytest.raises(ValueError):
        factory.get_kv_store()


@pytest.mark.asyncio
async def test_factory_memory_store_initializes_and_cleans_up():
    factory = ServiceFactory(config_provider=lambda: CrawlerConfig(FEED_ENDPOINT), store_backend="memory")

    factory.initialize_store()
    factory.get_seen_store_service().set_cursor("c1")

    assert factory.get_seen_store_service().get_cursor() == "c1"
    await factory.cleanup_all_services()
