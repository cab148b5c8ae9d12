"""Local durable cache with per-namespace storage."""

import asyncio
import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Protocol, Type, Union

from pydantic import BaseModel, ValidationError

from .constants import CACHE_SCHEMA_VERSION, DEFAULT_CACHE_MAX_BYTES, STORAGE_KEYS, Namespace
from .errors import CacheError, CacheQuotaExceeded
from .models import utcnow

logger = logging.getLogger(__name__)

KEY_PREFIX = "moviemend_offline_"

NamespaceLike = Union[Namespace, str]


class KeyValueStore(Protocol):
    """Synchronous string-keyed storage."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryStore:
    """In-process store with a byte quota."""

    def __init__(self, max_bytes: Optional[int] = DEFAULT_CACHE_MAX_BYTES):
        self.max_bytes = max_bytes
        self.data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.max_bytes is not None:
            used = sum(len(v.encode("utf-8")) for k, v in self.data.items() if k != key)
            if used + len(value.encode("utf-8")) > self.max_bytes:
                raise CacheQuotaExceeded(f"Writing {key} would exceed {self.max_bytes} bytes")
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self.data)


class FileStore:
    """One file per key under a directory; survives restarts."""

    SUFFIX = ".json"

    def __init__(self, directory: Union[str, Path], max_bytes: Optional[int] = DEFAULT_CACHE_MAX_BYTES):
        self.directory = Path(directory)
        self.max_bytes = max_bytes

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}{self.SUFFIX}"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise CacheError(f"Failed to read {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        encoded = value.encode("utf-8")
        try:
            if self.max_bytes is not None:
                target = self._path(key).name
                used = sum(p.stat().st_size for p in self._files() if p.name != target)
                if used + len(encoded) > self.max_bytes:
                    raise CacheQuotaExceeded(f"Writing {key} would exceed {self.max_bytes} bytes")

            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(encoded)
                os.replace(tmp_name, self._path(key))
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise CacheError(f"Failed to write {key}: {e}") from e

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise CacheError(f"Failed to remove {key}: {e}") from e

    def keys(self) -> list[str]:
        try:
            return [p.name[: -len(self.SUFFIX)] for p in self._files()]
        except OSError as e:
            raise CacheError(f"Failed to list {self.directory}: {e}") from e

    def _files(self) -> list[Path]:
        if not self.directory.exists():
            return []
        return [p for p in self.directory.iterdir() if p.is_file() and p.name.endswith(self.SUFFIX)]


class CollectionSnapshot(BaseModel):
    """A stored collection plus its envelope metadata."""

    records: list[Any]
    owner: Optional[str] = None
    saved_at: Optional[datetime] = None


def storage_key(namespace: NamespaceLike) -> str:
    try:
        return STORAGE_KEYS[Namespace(namespace)]
    except ValueError:
        return f"{KEY_PREFIX}{namespace}"


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


class LocalCache:
    """Key-value cache partitioned into namespaces.

    Collections are stored as full snapshots, entities as one keyed map per
    namespace. Every stored value is wrapped in a versioned envelope; a
    mismatched version or an unreadable payload reads as absent. Storage
    failures are logged and never raised to callers.
    """

    def __init__(
        self,
        store: KeyValueStore,
        schema_version: int = CACHE_SCHEMA_VERSION,
        max_entities: Optional[int] = None,
    ):
        self.store = store
        self.schema_version = schema_version
        self.max_entities = max_entities

        self._locks: dict[str, asyncio.Lock] = {}
        self._locks_loop: Optional[asyncio.AbstractEventLoop] = None

    # ── Collections ──────────────────────────────────────────────

    async def write_collection(
        self, namespace: NamespaceLike, records: list, owner: Optional[str] = None
    ) -> None:
        """Replace the namespace's collection."""
        data = [_to_jsonable(r) for r in records]
        key = storage_key(namespace)
        async with self._lock(key):
            await self._save(key, data, owner=owner)

    async def read_collection(
        self, namespace: NamespaceLike, model: Optional[Type[BaseModel]] = None
    ) -> list:
        snapshot = await self.lookup_collection(namespace, model)
        return snapshot.records if snapshot else []

    async def lookup_collection(
        self, namespace: NamespaceLike, model: Optional[Type[BaseModel]] = None
    ) -> Optional[CollectionSnapshot]:
        """Like read_collection, but None when nothing usable is stored."""
        key = storage_key(namespace)
        envelope = await self._load(key)
        if envelope is None:
            return None
        records = envelope.get("data")
        if not isinstance(records, list):
            logger.warning(f"Cached {key} is not a collection, ignoring")
            return None
        try:
            if model is not None:
                records = [model.model_validate(r) for r in records]
            return CollectionSnapshot(
                records=records,
                owner=envelope.get("owner"),
                saved_at=envelope.get("saved_at"),
            )
        except ValidationError as e:
            logger.warning(f"Cached {key} failed validation, treating as miss: {e}")
            return None

    # ── Entities ─────────────────────────────────────────────────

    async def write_entity(self, namespace: NamespaceLike, key: Any, value: Any) -> None:
        """Upsert one keyed record in the namespace's map."""
        skey = storage_key(namespace)
        # The map is read and written whole; concurrent upserts must not interleave.
        async with self._lock(skey):
            envelope = await self._load(skey)
            entities = envelope.get("data") if envelope else None
            if not isinstance(entities, dict):
                entities = {}

            entities.pop(str(key), None)
            entities[str(key)] = _to_jsonable(value)

            if self.max_entities is not None:
                while len(entities) > self.max_entities:
                    evicted = next(iter(entities))
                    del entities[evicted]
                    logger.debug(f"Evicted {evicted} from {skey}")

            await self._save(skey, entities)

    async def read_entity(
        self, namespace: NamespaceLike, key: Any, model: Optional[Type[BaseModel]] = None
    ) -> Optional[Any]:
        skey = storage_key(namespace)
        envelope = await self._load(skey)
        entities = envelope.get("data") if envelope else None
        if not isinstance(entities, dict):
            return None
        value = entities.get(str(key))
        if value is None or model is None:
            return value
        try:
            return model.model_validate(value)
        except ValidationError as e:
            logger.warning(f"Cached {skey}[{key}] failed validation, treating as miss: {e}")
            return None

    # ── Maintenance ──────────────────────────────────────────────

    async def clear(self, namespace: Optional[NamespaceLike] = None) -> None:
        """Wipe one namespace, or all cache state."""
        try:
            if namespace is not None:
                key = storage_key(namespace)
                async with self._lock(key):
                    await asyncio.to_thread(self.store.remove, key)
                logger.info(f"Cleared cache namespace {namespace}")
                return
            keys = await asyncio.to_thread(self.store.keys)
            for key in keys:
                if key.startswith(KEY_PREFIX):
                    async with self._lock(key):
                        await asyncio.to_thread(self.store.remove, key)
            logger.info("Cleared offline cache")
        except CacheError as e:
            logger.warning(f"Failed to clear cache: {e}")

    # ── Envelope I/O ─────────────────────────────────────────────

    def _lock(self, key: str) -> asyncio.Lock:
        """Per-key write lock, scoped to the running event loop."""
        loop = asyncio.get_running_loop()
        if loop is not self._locks_loop:
            self._locks = {}
            self._locks_loop = loop
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def _load(self, key: str) -> Optional[dict]:
        try:
            raw = await asyncio.to_thread(self.store.get, key)
        except CacheError as e:
            logger.warning(f"Failed to read cache {key}: {e}")
            return None
        if raw is None:
            return None

        try:
            envelope = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Corrupted cache payload for {key}, treating as miss: {e}")
            return None

        if not isinstance(envelope, dict) or envelope.get("version") != self.schema_version:
            logger.warning(f"Cache format mismatch for {key}, treating as miss")
            return None
        return envelope

    async def _save(self, key: str, data: Any, owner: Optional[str] = None) -> None:
        envelope = {
            "version": self.schema_version,
            "saved_at": utcnow().isoformat(),
            "owner": owner,
            "data": data,
        }
        try:
            payload = json.dumps(envelope)
            await asyncio.to_thread(self.store.set, key, payload)
        except (CacheError, TypeError, ValueError) as e:
            logger.warning(f"Failed to write cache {key}: {e}")
