from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, Protocol

import redis
from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from ingos_api.config import Config

logger = logging.getLogger("ingos.data_protection")

PROTECTION_KEYS_REDIS_KEY = "Ingos-Protection-Keys"


class DataProtectionError(Exception):
    pass


class KeyRepository(Protocol):
    def get_all_keys(self) -> list[bytes]: ...

    def store_key(self, key: bytes) -> None: ...


class EphemeralKeyRepository:
    """Keeps keys in process memory; they are lost when the process exits."""

    def __init__(self) -> None:
        self._keys: list[bytes] = []

    def get_all_keys(self) -> list[bytes]:
        return list(self._keys)

    def store_key(self, key: bytes) -> None:
        self._keys.append(key)


class RedisKeyRepository:
    def __init__(self, client: Any, redis_key: str = PROTECTION_KEYS_REDIS_KEY) -> None:
        self._client = client
        self.redis_key = redis_key

    def get_all_keys(self) -> list[bytes]:
        raw_keys = self._client.lrange(self.redis_key, 0, -1) or []
        return [key.encode("ascii") if isinstance(key, str) else bytes(key) for key in raw_keys]

    def store_key(self, key: bytes) -> None:
        self._client.rpush(self.redis_key, key)


class DataProtector:
    def __init__(self, repository: KeyRepository) -> None:
        self.repository = repository
        self._lock = threading.Lock()
        self._fernet = self._load()

    def _load(self) -> MultiFernet:
        keys = self.repository.get_all_keys()
        if not keys:
            key = Fernet.generate_key()
            self.repository.store_key(key)
            keys = self.repository.get_all_keys() or [key]
            logger.info("data_protection_key_created")
            # Instances racing on an empty ring all encrypt with the first stored key.
            return MultiFernet([Fernet(key) for key in keys])
        # Newest key first: it encrypts, the others still decrypt.
        return MultiFernet([Fernet(key) for key in reversed(keys)])

    def reload(self) -> None:
        with self._lock:
            self._fernet = self._load()

    @property
    def key_count(self) -> int:
        return len(self.repository.get_all_keys())

    def protect(self, data: bytes | str) -> str:
        payload = data.encode("utf-8") if isinstance(data, str) else data
        return self._fernet.encrypt(payload).decode("ascii")

    def unprotect(self, token: str, *, ttl_seconds: int | None = None) -> bytes:
        try:
            raw = token.encode("ascii")
        except UnicodeEncodeError as exc:
            raise DataProtectionError("The payload could not be unprotected.") from exc
        try:
            return self._fernet.decrypt(raw, ttl=ttl_seconds)
        except InvalidToken:
            pass
        # Another instance may have added a key since the ring was read.
        self.reload()
        try:
            return self._fernet.decrypt(raw, ttl=ttl_seconds)
        except InvalidToken as exc:
            raise DataProtectionError("The payload could not be unprotected.") from exc

    def rotate_key(self) -> None:
        with self._lock:
            self.repository.store_key(Fernet.generate_key())
            self._fernet = self._load()


def configure_data_protection(
    config: Config,
    *,
    redis_factory: Callable[..., Any] | None = None,
) -> DataProtector:
    if config.is_development:
        return DataProtector(EphemeralKeyRepository())

    # Connection errors propagate and abort startup.
    factory = redis_factory or redis.Redis.from_url
    client = factory(config.redis_configuration)
    client.ping()
    logger.info("data_protection_redis_connected", extra={"redis_key": PROTECTION_KEYS_REDIS_KEY})
    return DataProtector(RedisKeyRepository(client, PROTECTION_KEYS_REDIS_KEY))
