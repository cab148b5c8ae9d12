"""Cache-aware reads for the watchlist and movie details."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Hashable, Optional, Union

from .cache import LocalCache
from .connectivity import ConnectivityMonitor
from .constants import DEFAULT_FRESH_SECONDS, DEFAULT_KEEP_SECONDS, Namespace
from .errors import MovieSyncError, OfflineUnavailable, Unauthenticated, Unreachable
from .gateway import RemoteGateway
from .models import (
    CachedMovieDetail,
    DataSource,
    FetchResult,
    MovieDetail,
    ResyncResult,
    WatchlistEntry,
    utcnow,
)

logger = logging.getLogger(__name__)


class CachedQueries:
    """Decides per read whether to serve from cache or network.

    Offline, reads come from the cache. Online, reads go to the network and
    every success is written through to the cache; a transport failure falls
    back to whatever is cached. Movie details additionally short-circuit to
    the cache while younger than `fresh_seconds`, and are served stale with a
    background refresh until `keep_seconds`.

    At most one fetch per (namespace, key) is in flight; concurrent callers
    share it.
    """

    def __init__(
        self,
        gateway: RemoteGateway,
        cache: LocalCache,
        monitor: ConnectivityMonitor,
        fresh_seconds: int = DEFAULT_FRESH_SECONDS,
        keep_seconds: int = DEFAULT_KEEP_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.gateway = gateway
        self.cache = cache
        self.monitor = monitor
        self.fresh_seconds = fresh_seconds
        self.keep_seconds = keep_seconds
        self.clock = clock

        self.last_resync: Optional[ResyncResult] = None
        self._last_watchlist: Optional[list[WatchlistEntry]] = None
        self._last_owner: Optional[str] = None
        self._inflight: dict[Hashable, asyncio.Task] = {}
        self._background: set[asyncio.Task] = set()
        self._invalidated_at: dict[Namespace, datetime] = {}
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ── Connectivity wiring ──────────────────────────────────────

    def attach(self) -> None:
        """Start resyncing on offline→online transitions."""
        if self._unsubscribe is None:
            self._unsubscribe = self.monitor.subscribe(self._on_connectivity_change)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def _on_connectivity_change(self, online: bool) -> None:
        if online:
            await self.resync()

    async def resync(self) -> ResyncResult:
        """Refetch the watchlist and refresh its cache."""
        logger.info("Resyncing watchlist after reconnect")
        try:
            entries = await self.refresh_watchlist()
            result = ResyncResult(success=True, entries_synced=len(entries))
        except MovieSyncError as e:
            logger.error(f"Watchlist resync failed: {e}")
            result = ResyncResult(success=False, errors=[str(e)])

        self.last_resync = result
        return result

    # ── Reads ────────────────────────────────────────────────────

    async def fetch(self, namespace: Union[Namespace, str], key: Any = None) -> FetchResult:
        """Read a namespace through the cache policy."""
        namespace = Namespace(namespace)
        if namespace == Namespace.WATCHLIST:
            return await self.fetch_watchlist()
        if key is None:
            raise ValueError("movie-details reads need a movie id")
        return await self.fetch_movie_detail(int(key))

    async def fetch_watchlist(self) -> FetchResult:
        return await self._dedupe(Namespace.WATCHLIST, self._read_watchlist)

    async def fetch_movie_detail(self, movie_id: int) -> FetchResult:
        return await self._dedupe(
            (Namespace.MOVIE_DETAILS, movie_id), lambda: self._read_movie_detail(movie_id)
        )

    async def refresh_watchlist(self) -> list[WatchlistEntry]:
        """Fetch the watchlist from the network and write it through."""
        return await self._network_watchlist(self._require_user())

    async def in_watchlist(self, movie_id: int) -> bool:
        """Whether the most recently seen watchlist contains the movie."""
        user_id = self.gateway.current_user()
        if user_id is None:
            return False
        entries = self._last_watchlist if self._last_owner == user_id else None
        if entries is None:
            entries = await self.cached_watchlist(user_id) or []
        return any(entry.movie_id == movie_id for entry in entries)

    def invalidate(self, namespace: Union[Namespace, str]) -> None:
        """Force the next read of the namespace past any freshness window."""
        self._invalidated_at[Namespace(namespace)] = self.clock()

    async def store_watchlist(self, entries: list[WatchlistEntry], owner: str) -> None:
        """Replace the cached watchlist snapshot."""
        self._last_watchlist = list(entries)
        self._last_owner = owner
        await self.cache.write_collection(Namespace.WATCHLIST, entries, owner=owner)

    async def cached_watchlist(self, owner: str) -> Optional[list[WatchlistEntry]]:
        """Cached watchlist for the user, or None if nothing usable is stored."""
        snapshot = await self.cache.lookup_collection(Namespace.WATCHLIST, WatchlistEntry)
        if snapshot is None:
            return None
        if snapshot.owner is not None and snapshot.owner != owner:
            logger.debug("Cached watchlist belongs to another user, ignoring")
            return None
        return snapshot.records

    async def drain(self) -> None:
        """Wait for background revalidations to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ── Watchlist ────────────────────────────────────────────────

    async def _read_watchlist(self) -> FetchResult:
        user_id = self._require_user()

        if not self.monitor.is_online():
            result = await self._cached_watchlist_result(user_id)
            if result is None:
                raise OfflineUnavailable(Namespace.WATCHLIST.value)
            return result

        try:
            entries = await self._network_watchlist(user_id)
        except Unreachable:
            result = await self._cached_watchlist_result(user_id)
            if result is None:
                raise
            logger.warning("Backend unreachable, serving cached watchlist")
            return result
        return FetchResult(value=entries, source=DataSource.NETWORK, fetched_at=self.clock())

    async def _cached_watchlist_result(self, user_id: str) -> Optional[FetchResult]:
        snapshot = await self.cache.lookup_collection(Namespace.WATCHLIST, WatchlistEntry)
        if snapshot is None or snapshot.owner not in (None, user_id):
            return None
        logger.info(f"Serving {len(snapshot.records)} cached watchlist entries")
        self._last_watchlist = list(snapshot.records)
        self._last_owner = user_id
        return FetchResult(
            value=snapshot.records,
            source=DataSource.CACHE,
            fetched_at=snapshot.saved_at,
            stale=True,
        )

    async def _network_watchlist(self, user_id: str) -> list[WatchlistEntry]:
        async def fetch_and_store() -> list[WatchlistEntry]:
            entries = await self.gateway.fetch_watchlist()
            await self.store_watchlist(entries, owner=user_id)
            return entries

        return await self._dedupe(("network", Namespace.WATCHLIST), fetch_and_store)

    # ── Movie details ────────────────────────────────────────────

    async def _read_movie_detail(self, movie_id: int) -> FetchResult:
        cached = await self.cache.read_entity(Namespace.MOVIE_DETAILS, movie_id, CachedMovieDetail)

        if not self.monitor.is_online():
            if cached is None:
                raise OfflineUnavailable(Namespace.MOVIE_DETAILS.value, movie_id)
            logger.info(f"Offline: serving cached details for movie {movie_id}")
            return self._cached_detail_result(cached)

        if cached is not None and not self._is_invalidated(Namespace.MOVIE_DETAILS, cached.fetched_at):
            age = cached.age_seconds(self.clock())
            if age < self.fresh_seconds:
                logger.debug(f"Details for movie {movie_id} are fresh ({int(age)}s)")
                return self._cached_detail_result(cached)
            if age < self.keep_seconds:
                logger.debug(f"Details for movie {movie_id} are stale ({int(age)}s), revalidating")
                self._revalidate(movie_id)
                return self._cached_detail_result(cached)

        try:
            detail = await self._network_movie_detail(movie_id)
        except Unreachable:
            if cached is None:
                raise
            logger.warning(f"Catalog unreachable, falling back to cached details for movie {movie_id}")
            return self._cached_detail_result(cached)
        return FetchResult(value=detail, source=DataSource.NETWORK, fetched_at=self.clock())

    def _cached_detail_result(self, cached: CachedMovieDetail) -> FetchResult:
        return FetchResult(
            value=cached.payload,
            source=DataSource.CACHE,
            fetched_at=cached.fetched_at,
            stale=cached.age_seconds(self.clock()) >= self.fresh_seconds,
        )

    async def _network_movie_detail(self, movie_id: int) -> MovieDetail:
        async def fetch_and_store() -> MovieDetail:
            detail = await self.gateway.fetch_movie_detail(movie_id)
            cached = CachedMovieDetail(movie_id=movie_id, payload=detail, fetched_at=self.clock())
            await self.cache.write_entity(Namespace.MOVIE_DETAILS, movie_id, cached)
            return detail

        return await self._dedupe(("network", Namespace.MOVIE_DETAILS, movie_id), fetch_and_store)

    def _revalidate(self, movie_id: int) -> None:
        async def refresh() -> None:
            try:
                await self._network_movie_detail(movie_id)
            except MovieSyncError as e:
                logger.warning(f"Background refresh of movie {movie_id} failed: {e}")

        task = asyncio.get_running_loop().create_task(refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ── Helpers ──────────────────────────────────────────────────

    def _require_user(self) -> str:
        user_id = self.gateway.current_user()
        if user_id is None:
            raise Unauthenticated()
        return user_id

    def _is_invalidated(self, namespace: Namespace, fetched_at: datetime) -> bool:
        invalidated_at = self._invalidated_at.get(namespace)
        return invalidated_at is not None and fetched_at < invalidated_at

    async def _dedupe(self, key: Hashable, factory: Callable[[], Awaitable[Any]]) -> Any:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(factory())
            self._inflight[key] = task

            def forget(done: asyncio.Task, key: Hashable = key) -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]

            task.add_done_callback(forget)
        else:
            logger.debug(f"Joining in-flight fetch for {key}")
        return await asyncio.shield(task)
