"""
Bloom filter service used as a fast negative cache for seen document ids
"""
from typing import Iterable, Optional
from pybloom_live import ScalableBloomFilter
from loguru import logger

from ion_crawler.config import Config


class BloomFilterService:
    """Service responsible for Bloom filter operations"""

    def __init__(self, capacity: Optional[int] = None, error_rate: Optional[float] = None):
        self._capacity = capacity or Config.BLOOM_FILTER_CAPACITY
        self._error_rate = error_rate or Config.BLOOM_FILTER_ERROR_RATE
        self._bloom_filter: Optional[ScalableBloomFilter] = None

    @property
    def ready(self) -> bool:
        return self._bloom_filter is not None

    def initialize(self) -> None:
        """Create an empty filter; grows past the initial capacity as needed"""
        self._bloom_filter = ScalableBloomFilter(
            initial_capacity=self._capacity,
            error_rate=self._error_rate,
            mode=ScalableBloomFilter.LARGE_SET_GROWTH
        )
        logger.info(f"Bloom filter initialized (capacity={self._capacity}, error_rate={self._error_rate})")

    def add(self, item: str) -> None:
        if self._bloom_filter is not None:
            self._bloom_filter.add(item)

    def add_multiple(self, items: Iterable[str]) -> int:
        """
        Add multiple items to Bloom filter

        Args:
            items: Items to add

        Returns:
            Number of items added
        """
        count = 0
        if self._bloom_filter is not None:
            for item in items:
                self._bloom_filter.add(item)
                count += 1
            logger.debug(f"Added {count} items to Bloom filter")
        return count

    def might_contain(self, item: str) -> bool:
        """
        Check if item is in Bloom filter

        Returns:
            False only if the item was definitely never added; True when the
            filter is not initialized
        """
        if self._bloom_filter is None:
            return True
        return item in self._bloom_filter
