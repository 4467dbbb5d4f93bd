"""Unit tests for the Redis and Cassandra state backends against fake clients."""

import fnmatch
from collections import namedtuple
from datetime import datetime, timezone

import pytest
import redis
from cassandra import DriverException

from ion_crawler.errors import StoreError
from ion_crawler.services.cassandra_service import CassandraService, physical_partitions, split_key
from ion_crawler.services.redis_service import RedisService
from ion_crawler.services.seen_store_service import SeenStoreService


class FakeRedis:
    """Dictionary-backed subset of the redis.Redis API."""

    def __init__(self):
        self.data = {}
        self.down = False
        self.closed = False

    def _check(self):
        if self.down:
            raise redis.ConnectionError("connection refused")

    def ping(self):
        self._check()
        return True

    def get(self, key):
        self._check()
        return self.data.get(key)

    def set(self, key, value):
        self._check()
        self.data[key] = value

    def delete(self, key):
        self._check()
        self.data.pop(key, None)

    def scan_iter(self, match=None):
        self._check()
        return iter([k for k in list(self.data) if match is None or fnmatch.fnmatchcase(k, match)])

    def mget(self, keys):
        self._check()
        return [self.data.get(k) for k in keys]

    def close(self):
        self.closed = True


Row = namedtuple("Row", ["key", "value"])


class FakeResult(list):
    def one(self):
        return self[0] if self else None


class FakeCassandraSession:
    """Executes the prepared crawler_state statements against a dict."""

    def __init__(self):
        self.rows = {}
        self.down = False
        self.ddl = []

    def prepare(self, query):
        return query

    def execute(self, statement, params=None):
        if self.down:
            raise DriverException("no replicas")
        if statement.lstrip().startswith("CREATE"):
            self.ddl.append(statement)
            return FakeResult()
        if statement.startswith("INSERT"):
            partition, key, value = params
            self.rows[(partition, key)] = value
            return FakeResult()
        if statement.startswith("DELETE"):
            self.rows.pop(tuple(params), None)
            return FakeResult()
        if "AND key" in statement:
            value = self.rows.get(tuple(params))
            return FakeResult([Row(params[1], value)] if value is not None else [])
        partition = params[0]
        return FakeResult(sorted(Row(k, v) for (p, k), v in self.rows.items() if p == partition))


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def redis_store(fake_redis):
    store = RedisService(client=fake_redis, key_prefix="test:")
    store.initialize()
    return store


@pytest.fixture
def cassandra_session():
    return FakeCassandraSession()


@pytest.fixture
def cassandra_store(cassandra_session):
    store = CassandraService(session=cassandra_session)
    store.initialize()
    return store


def test_split_key():
    partition, key = split_key("seen/did:ion:a/b")

    assert key == "did:ion:a/b"
    assert partition in physical_partitions("seen")
    assert split_key("seen/did:ion:a/b") == (partition, key)
    assert split_key("cursor") == ("cursor", "")
    assert physical_partitions("cursor") == ["cursor"]


def test_cassandra_spreads_seen_records_across_buckets(cassandra_session, cassandra_store):
    for i in range(200):
        cassandra_store.put(f"seen/did:ion:{i}", str(i))

    partitions = {partition for partition, _ in cassandra_session.rows}

    assert len(partitions) > 1
    assert partitions <= set(physical_partitions("seen"))
    assert len(cassandra_store.scan_prefix("seen/")) == 200
    assert cassandra_store.get("seen/did:ion:17") == "17"


@pytest.mark.parametrize("store_fixture", ["redis_store", "cassandra_store"])
def test_backend_get_put_delete(request, store_fixture):
    store = request.getfixturevalue(store_fixture)

    assert store.get("cursor") is None
    store.put("cursor", "c1")
    store.put("seen/did:ion:a", "{}")
    assert store.get("cursor") == "c1"

    store.delete("cursor")
    assert store.get("cursor") is None
    assert store.get("seen/did:ion:a") == "{}"


@pytest.mark.parametrize("store_fixture", ["redis_store", "cassandra_store"])
def test_backend_scan_prefix_returns_logical_keys(request, store_fixture):
    store = request.getfixturevalue(store_fixture)
    store.put("seen/did:ion:b", "2")
    store.put("seen/did:ion:a", "1")
    store.put("cursor", "c1")

    assert sorted(store.scan_prefix("seen/")) == [("seen/did:ion:a", "1"), ("seen/did:ion:b", "2")]


def test_redis_keys_are_namespaced(redis_store, fake_redis):
    redis_store.put("cursor", "c1")

    assert fake_redis.data == {"test:cursor": "c1"}


def test_redis_errors_become_store_errors(redis_store, fake_redis):
    fake_redis.down = True

    with pytest.raises(StoreError):
        redis_store.put("cursor", "c1")
    with pytest.raises(StoreError):
        redis_store.scan_prefix("seen/")


def test_redis_initialize_fails_when_unreachable(fake_redis):
    fake_redis.down = True

    with pytest.raises(StoreError):
        RedisService(client=fake_redis).initialize()


def test_cassandra_creates_state_table(cassandra_session, cassandra_store):
    assert len(cassandra_session.ddl) == 1
    assert "crawler_state" in cassandra_session.ddl[0]


def test_cassandra_errors_become_store_errors(cassandra_session, cassandra_store):
    cassandra_session.down = True

    with pytest.raises(StoreError):
        cassandra_store.get("cursor")


@pytest.mark.parametrize("store_fixture", ["redis_store", "cassandra_store"])
def test_seen_store_on_durable_backend(request, store_fixture):
    backend = request.getfixturevalue(store_fixture)
    seen = SeenStoreService(backend)
    seen.initialize()
    seen.mark_seen("did:ion:a", datetime(2024, 1, 1, tzinfo=timezone.utc))
    seen.set_cursor("c3")

    restarted = SeenStoreService(backend)
    restarted.initialize()

    assert restarted.has("did:ion:a") is True
    assert restarted.get_cursor() == "c3"
    assert list(restarted.pending_publish()) == ["did:ion:a"]
