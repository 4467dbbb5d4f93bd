"""
Redis-backed key-value store for crawler state
"""
from typing import List, Optional, Tuple
import redis
from loguru import logger

from ion_crawler.config import Config
from ion_crawler.errors import StoreError
from ion_crawler.services.kv_store_service import KeyValueStore


class RedisService(KeyValueStore):
    """Service responsible for Redis operations"""

    def __init__(self, client: Optional[redis.Redis] = None, key_prefix: Optional[str] = None):
        self._client = client
        self._key_prefix = Config.REDIS_KEY_PREFIX if key_prefix is None else key_prefix

    def initialize(self) -> None:
        """Initialize Redis connection"""
        try:
            if self._client is None:
                self._client = redis.Redis(
                    host=Config.REDIS_HOST,
                    port=Config.REDIS_PORT,
                    db=Config.REDIS_DB,
                    decode_responses=True
                )
            # Test connection
            self._client.ping()
            logger.info("Redis connection initialized successfully")
        except redis.RedisError as e:
            logger.error(f"Failed to initialize Redis connection: {e}")
            raise StoreError(f"Redis unavailable: {e}") from e

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def get(self, key: str) -> Optional[str]:
        """
        Get value from Redis

        Args:
            key: Logical key, without the namespace prefix

        Returns:
            Value or None if not found
        """
        try:
            return self._client.get(self._key(key))
        except redis.RedisError as e:
            logger.error(f"Failed to get key {key}: {e}")
            raise StoreError(f"Redis get failed for {key}: {e}") from e

    def put(self, key: str, value: str) -> None:
        try:
            self._client.set(self._key(key), value)
        except redis.RedisError as e:
            logger.error(f"Failed to set key {key}: {e}")
            raise StoreError(f"Redis set failed for {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._key(key))
        except redis.RedisError as e:
            logger.error(f"Failed to delete key {key}: {e}")
            raise StoreError(f"Redis delete failed for {key}: {e}") from e

    def scan_prefix(self, prefix: str) -> List[Tuple[str, str]]:
        """
        Collect every key under a prefix with SCAN, then read the values

        Keys removed between the scan and the read are left out.
        """
        full_prefix = self._key(prefix)
        try:
            keys = sorted(self._client.scan_iter(match=f"{full_prefix}*"))
            if not keys:
                return []
            values = self._client.mget(keys)
        except redis.RedisError as e:
            logger.error(f"Failed to scan prefix {prefix}: {e}")
            raise StoreError(f"Redis scan failed for {prefix}: {e}") from e

        strip = len(self._key_prefix)
        return [(k[strip:], v) for k, v in zip(keys, values) if v is not None]

    def close(self) -> None:
        """Close Redis connection"""
        try:
            if self._client:
                self._client.close()
                logger.info("Redis connection closed")
        except redis.RedisError as e:
            logger.error(f"Error closing Redis connection: {e}")
