"""
Key-value store contract shared by the durable state backends
"""
import threading
from typing import Dict, List, Optional, Tuple


class KeyValueStore:
    """Minimal durable key-value contract: get, put, delete and prefix scan"""

    def initialize(self) -> None:
        pass

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def put(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def scan_prefix(self, prefix: str) -> List[Tuple[str, str]]:
        """Return a snapshot of every (key, value) pair whose key starts with prefix"""
        raise NotImplementedError

    def close(self) -> None:
        pass


class InMemoryStoreService(KeyValueStore):
    """Process-local store, useful for development runs and tests; not durable"""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def scan_prefix(self, prefix: str) -> List[Tuple[str, str]]:
        with self._lock:
            return sorted((k, v) for k, v in self._data.items() if k.startswith(prefix))
