"""
Key/value stores backing the timer records (Redis in production, memory for tests)
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

import redis

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Minimal string key/value interface used by the timer store"""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> bool:
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        pass

    def is_available(self) -> bool:
        return True


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed store; degrades to a no-op store when Redis is unreachable"""

    def __init__(self, host: str = 'localhost', port: int = 6379, db: int = 0, client=None):
        if client is not None:
            self.redis = client
            return

        try:
            self.redis = redis.Redis(
                host=host,
                port=port,
                db=db,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5
            )
            # Test connection
            self.redis.ping()
            logger.info("[KVStore] Connected to Redis at %s:%s", host, port)
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.warning("[KVStore] Redis not available (%s). Timer persistence disabled.", e)
            self.redis = None

    def is_available(self) -> bool:
        """Check if Redis is available"""
        return self.redis is not None

    def get(self, key: str) -> Optional[str]:
        if not self.is_available():
            return None

        try:
            return self.redis.get(key)
        except redis.RedisError as e:
            logger.error("[KVStore] Error getting key %s: %s", key, e)
            return None

    def set(self, key: str, value: str) -> bool:
        if not self.is_available():
            return False

        try:
            self.redis.set(key, value)
            return True
        except redis.RedisError as e:
            logger.error("[KVStore] Error setting key %s: %s", key, e)
            return False

    def delete(self, key: str) -> bool:
        if not self.is_available():
            return False

        try:
            self.redis.delete(key)
            return True
        except redis.RedisError as e:
            logger.error("[KVStore] Error deleting key %s: %s", key, e)
            return False


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store, used for tests and single-process development"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> bool:
        with self._lock:
            self._data[key] = value
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            self._data.pop(key, None)
        return True


def create_kv_store(app_config) -> KeyValueStore:
    """Build the store selected by TIMER_BACKEND"""
    backend = str(app_config.get('TIMER_BACKEND', 'redis')).lower()
    if backend == 'memory':
        return MemoryKeyValueStore()
    if backend == 'redis':
        return RedisKeyValueStore(
            host=app_config.get('REDIS_HOST', 'localhost'),
            port=int(app_config.get('REDIS_PORT', 6379)),
            db=int(app_config.get('REDIS_DB', 0))
        )
    raise ValueError(f"Timer backend '{backend}' not supported. Available backends: redis, memory")
