"""
Persisted auth token storage, one namespace per browser session.
Redis when configured, process memory otherwise (fail-open).
"""

import logging
import os
import time
from threading import Lock
from typing import Optional

import redis

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None

KEY_PREFIX = "bookerhq:auth"


def redis_configured() -> bool:
    return bool(os.getenv("REDIS_URL") or os.getenv("REDIS_HOST"))


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client
    Supports both a REDIS_URL and individual host settings
    """
    global redis_client

    if redis_client is None:
        logger.info("🔄 Initializing Redis connection for token storage...")
        redis_url = os.getenv("REDIS_URL")

        try:
            if redis_url:
                redis_client = redis.from_url(
                    redis_url,
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    retry_on_timeout=True,
                    health_check_interval=30,
                    max_connections=20,
                )
            else:
                redis_ssl = os.getenv("REDIS_SSL", "false").lower() == "true"
                redis_client = redis.Redis(
                    host=os.getenv("REDIS_HOST", "localhost"),
                    port=int(os.getenv("REDIS_PORT", "6379")),
                    password=os.getenv("REDIS_PASSWORD", None),
                    db=int(os.getenv("REDIS_DB", "0")),
                    ssl=redis_ssl,
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    retry_on_timeout=True,
                    health_check_interval=30,
                    max_connections=20,
                )
            # Test connection
            redis_client.ping()
            logger.info("Redis connected successfully")
        except Exception as e:
            logger.error(f"❌ Failed to connect to Redis: {str(e)}")
            redis_client = None
            raise

    return redis_client


class TokenStorage:
    """Key/value storage scoped to one browser session"""

    def __init__(self, namespace: str):
        self.namespace = namespace

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def clear_namespace(self) -> None:
        raise NotImplementedError


class MemoryTokenStorage(TokenStorage):
    """In-process storage; entries are shared by every instance with the same namespace"""

    _entries: dict[str, tuple[str, Optional[float]]] = {}
    _lock = Lock()

    def __init__(self, namespace: str, default_ttl: Optional[int] = None):
        super().__init__(namespace)
        self.default_ttl = default_ttl

    def _key(self, key: str) -> str:
        return f"{KEY_PREFIX}:{self.namespace}:{key}"

    @classmethod
    def purge_expired(cls) -> int:
        """Drop expired entries of every namespace; returns how many went"""
        now = time.time()
        with cls._lock:
            expired = [k for k, (_, expires_at) in cls._entries.items() if expires_at is not None and expires_at <= now]
            for stored_key in expired:
                del cls._entries[stored_key]
        return len(expired)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(self._key(key))
            if not entry:
                return None
            value, expires_at = entry
            if expires_at is not None and expires_at <= time.time():
                del self._entries[self._key(key)]
                return None
            return value

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        ttl = ttl or self.default_ttl
        expires_at = time.time() + ttl if ttl else None
        with self._lock:
            self._entries[self._key(key)] = (value, expires_at)
        self.purge_expired()

    def remove(self, key: str) -> None:
        with self._lock:
            self._entries.pop(self._key(key), None)

    def clear_namespace(self) -> None:
        prefix = f"{KEY_PREFIX}:{self.namespace}:"
        with self._lock:
            for stored_key in [k for k in self._entries if k.startswith(prefix)]:
                del self._entries[stored_key]


class RedisTokenStorage(TokenStorage):
    def __init__(self, namespace: str, client: redis.Redis, default_ttl: Optional[int] = None):
        super().__init__(namespace)
        self.client = client
        self.default_ttl = default_ttl

    def _key(self, key: str) -> str:
        return f"{KEY_PREFIX}:{self.namespace}:{key}"

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(self._key(key))
        except redis.RedisError as e:
            logger.error(f"❌ Token storage get error for {self.namespace}: {e}")
            return None

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        ttl = ttl or self.default_ttl
        try:
            if ttl:
                self.client.setex(self._key(key), ttl, value)
            else:
                self.client.set(self._key(key), value)
        except redis.RedisError as e:
            logger.error(f"❌ Token storage set error for {self.namespace}: {e}")

    def remove(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except redis.RedisError as e:
            logger.error(f"❌ Token storage delete error for {self.namespace}: {e}")

    def clear_namespace(self) -> None:
        try:
            keys = list(self.client.scan_iter(match=f"{KEY_PREFIX}:{self.namespace}:*"))
            if keys:
                self.client.delete(*keys)
        except redis.RedisError as e:
            logger.error(f"❌ Token storage clear error for {self.namespace}: {e}")


def create_token_storage(namespace: str, default_ttl: Optional[int] = None) -> TokenStorage:
    if redis_configured():
        try:
            return RedisTokenStorage(namespace, get_redis_client(), default_ttl=default_ttl)
        except Exception as e:
            logger.warning(f"⚠️ Redis unavailable, keeping auth tokens in memory: {e}")
    return MemoryTokenStorage(namespace, default_ttl=default_ttl)
