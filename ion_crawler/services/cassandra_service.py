"""
Cassandra-backed key-value store for crawler state
"""
import zlib
from typing import List, Optional, Tuple
from cassandra import DriverException
from cassandra.cluster import Cluster, NoHostAvailable
from loguru import logger

from ion_crawler.config import Config
from ion_crawler.errors import StoreError
from ion_crawler.services.kv_store_service import KeyValueStore

CASSANDRA_ERRORS = (DriverException, NoHostAvailable)

CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS crawler_state (
    partition text,
    key text,
    value text,
    PRIMARY KEY (partition, key)
)
"""

# Logical partitions stored across a fixed number of hash buckets; changing a count orphans stored rows
BUCKETED_PARTITIONS = {'seen': 64}


def _bucket(partition: str, rest: str) -> str:
    buckets = BUCKETED_PARTITIONS.get(partition)
    if not buckets:
        return partition
    return f"{partition}:{zlib.crc32(rest.encode('utf-8')) % buckets}"


def split_key(key: str) -> Tuple[str, str]:
    """Map ``seen/<id>`` to ('seen:<bucket>', '<id>') and ``cursor`` to ('cursor', '')"""
    partition, _, rest = key.partition('/')
    return _bucket(partition, rest), rest


def physical_partitions(partition: str) -> List[str]:
    """Every stored partition that holds keys of a logical partition"""
    buckets = BUCKETED_PARTITIONS.get(partition)
    if not buckets:
        return [partition]
    return [f"{partition}:{i}" for i in range(buckets)]


class CassandraService(KeyValueStore):
    """Service responsible for Cassandra database operations"""

    def __init__(self, session=None):
        self._cluster: Optional[Cluster] = None
        self._session = session
        self._statements = {}

    def initialize(self) -> None:
        """Initialize Cassandra connection and the state table"""
        try:
            if self._session is None:
                self._cluster = Cluster([Config.CASSANDRA_HOST], port=Config.CASSANDRA_PORT)
                self._session = self._cluster.connect()
                self._session.set_keyspace(Config.CASSANDRA_KEYSPACE)
            self._session.execute(CREATE_TABLE)
            self._statements = {
                'get': self._session.prepare(
                    "SELECT value FROM crawler_state WHERE partition = ? AND key = ?"
                ),
                'put': self._session.prepare(
                    "INSERT INTO crawler_state (partition, key, value) VALUES (?, ?, ?)"
                ),
                'delete': self._session.prepare(
                    "DELETE FROM crawler_state WHERE partition = ? AND key = ?"
                ),
                'scan': self._session.prepare(
                    "SELECT key, value FROM crawler_state WHERE partition = ?"
                ),
            }
            logger.info("Cassandra connection initialized successfully")
        except CASSANDRA_ERRORS as e:
            logger.error(f"Failed to initialize Cassandra connection: {e}")
            raise StoreError(f"Cassandra unavailable: {e}") from e

    def _execute(self, name: str, params: tuple):
        try:
            return self._session.execute(self._statements[name], params)
        except CASSANDRA_ERRORS as e:
            logger.error(f"Cassandra {name} failed for {params[:2]}: {e}")
            raise StoreError(f"Cassandra {name} failed: {e}") from e

    def get(self, key: str) -> Optional[str]:
        row = self._execute('get', split_key(key)).one()
        return row.value if row else None

    def put(self, key: str, value: str) -> None:
        partition, rest = split_key(key)
        self._execute('put', (partition, rest, value))
        logger.debug(f"Stored {key}")

    def delete(self, key: str) -> None:
        self._execute('delete', split_key(key))

    def scan_prefix(self, prefix: str) -> List[Tuple[str, str]]:
        """
        Read every bucket of a logical partition and keep the keys matching the rest of the prefix

        Args:
            prefix: Key prefix, e.g. ``seen/``

        Returns:
            List of (key, value) pairs
        """
        partition, _, rest = prefix.partition('/')
        result = []
        for physical in physical_partitions(partition):
            for row in self._execute('scan', (physical,)):
                if row.key.startswith(rest):
                    key = f"{partition}/{row.key}" if row.key else partition
                    result.append((key, row.value))
        return result

    def close(self) -> None:
        """Close Cassandra connection"""
        try:
            if self._cluster:
                self._cluster.shutdown()
                logger.info("Cassandra connection closed")
        except CASSANDRA_ERRORS as e:
            logger.error(f"Error closing Cassandra connection: {e}")
