"""Document store with a Redis backend and an in-process backend.

Each collection (``complaints``, ``users``, ``notifications``) is one
Redis hash keyed by document id, holding orjson-encoded documents.  When
no Redis URL is configured the same interface is served from process
memory, which is what development and the test-suite use.

Unlike a cache, the store never falls back silently: a Redis failure
that survives the retry policy is raised as
:class:`~src.services.errors.PersistenceError`.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Protocol, runtime_checkable

import orjson
import redis.exceptions
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.services.errors import PersistenceError

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Backend protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class StoreBackend(Protocol):
    """Async raw-bytes backend interface."""

    async def get(self, collection: str, doc_id: str) -> bytes | None: ...

    async def put(self, collection: str, doc_id: str, value: bytes) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> bool: ...

    async def values(self, collection: str) -> list[bytes]: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


class RedisStoreBackend:
    """Redis-backed store using ``redis.asyncio`` with connection pooling."""

    __slots__ = ("_namespace", "_pool", "_redis")

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        namespace: str = "",
        max_connections: int = 20,
    ) -> None:
        import redis.asyncio as aioredis

        self._namespace = namespace
        self._pool = aioredis.ConnectionPool.from_url(
            url,
            max_connections=max_connections,
            decode_responses=False,
        )
        self._redis = aioredis.Redis(connection_pool=self._pool)

    def _key(self, collection: str) -> str:
        return f"{self._namespace}{collection}"

    # -- StoreBackend interface ------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> bytes | None:
        return await self._redis.hget(self._key(collection), doc_id)

    async def put(self, collection: str, doc_id: str, value: bytes) -> None:
        await self._redis.hset(self._key(collection), doc_id, value)

    async def delete(self, collection: str, doc_id: str) -> bool:
        return bool(await self._redis.hdel(self._key(collection), doc_id))

    async def values(self, collection: str) -> list[bytes]:
        return list(await self._redis.hvals(self._key(collection)))

    # -- Lifecycle -------------------------------------------------------------

    async def close(self) -> None:
        await self._redis.aclose()
        await self._pool.aclose()

    async def ping(self) -> bool:
        """Return *True* if the Redis server is reachable."""
        try:
            return bool(await self._redis.ping())
        except Exception:
            return False


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class InMemoryStoreBackend:
    """Dict-of-dicts store guarded by an :class:`asyncio.Lock`.

    Insertion order is preserved, so ``values`` returns documents in the
    order they were first written.
    """

    __slots__ = ("_data", "_lock")

    def __init__(self) -> None:
        self._data: dict[str, dict[str, bytes]] = {}
        self._lock = asyncio.Lock()

    async def get(self, collection: str, doc_id: str) -> bytes | None:
        async with self._lock:
            return self._data.get(collection, {}).get(doc_id)

    async def put(self, collection: str, doc_id: str, value: bytes) -> None:
        async with self._lock:
            self._data.setdefault(collection, {})[doc_id] = value

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with self._lock:
            return self._data.get(collection, {}).pop(doc_id, None) is not None

    async def values(self, collection: str) -> list[bytes]:
        async with self._lock:
            return list(self._data.get(collection, {}).values())

    async def close(self) -> None:
        return None

    async def ping(self) -> bool:
        return True

    def size(self, collection: str) -> int:
        """Number of documents currently held in *collection*."""
        return len(self._data.get(collection, {}))


# ---------------------------------------------------------------------------
# DocumentStore  --  public API
# ---------------------------------------------------------------------------


_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    redis.exceptions.ConnectionError,
    redis.exceptions.TimeoutError,
)


class DocumentStore:
    """JSON document facade over a :class:`StoreBackend`.

    Values are serialised with *orjson*.  Transient backend errors are
    retried (3 attempts, exponential backoff); anything still failing is
    raised as :class:`PersistenceError`.
    """

    __slots__ = ("_backend", "_max_attempts")

    def __init__(self, backend: StoreBackend, *, max_attempts: int = 3) -> None:
        self._backend = backend
        self._max_attempts = max_attempts

    @property
    def backend(self) -> StoreBackend:
        return self._backend

    async def _call(self, method: str, collection: str, *args: Any) -> Any:
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(_TRANSIENT_ERRORS),
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(
                            "store.retry",
                            method=method,
                            collection=collection,
                            attempt=attempt.retry_state.attempt_number,
                        )
                    return await getattr(self._backend, method)(collection, *args)
        except Exception as exc:
            logger.error(
                "store.operation_failed",
                method=method,
                collection=collection,
                error=str(exc),
            )
            raise PersistenceError(f"Store operation '{method}' failed") from exc
        return None  # pragma: no cover

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        raw: bytes | None = await self._call("get", collection, doc_id)
        if raw is None:
            return None
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            raise PersistenceError(f"Corrupt document {collection}/{doc_id}") from exc

    async def put(self, collection: str, doc_id: str, document: dict[str, Any]) -> None:
        await self._call("put", collection, doc_id, orjson.dumps(document))

    async def delete(self, collection: str, doc_id: str) -> bool:
        return bool(await self._call("delete", collection, doc_id))

    async def all(self, collection: str) -> list[dict[str, Any]]:
        raw_values: list[bytes] = await self._call("values", collection)
        documents: list[dict[str, Any]] = []
        for raw in raw_values:
            try:
                documents.append(orjson.loads(raw))
            except orjson.JSONDecodeError:
                logger.warning("store.corrupt_document_skipped", collection=collection)
        return documents

    async def ping(self) -> bool:
        return await self._backend.ping()

    # -- Lifecycle -------------------------------------------------------------

    async def close(self) -> None:
        """Cleanly shut down the backend connection pool (if any)."""
        with contextlib.suppress(Exception):
            await self._backend.close()

    # -- Convenience constructors ----------------------------------------------

    @staticmethod
    def from_url(redis_url: str | None, *, namespace: str = "") -> DocumentStore:
        """Create a Redis-backed store, or an in-memory one when *redis_url* is empty.

        Example::

            store = DocumentStore.from_url(settings.redis_url, namespace="campus:")
        """
        if redis_url:
            logger.info("store.redis_backend", namespace=namespace)
            return DocumentStore(RedisStoreBackend(url=redis_url, namespace=namespace))
        logger.info("store.inmemory_backend")
        return DocumentStore(InMemoryStoreBackend())
