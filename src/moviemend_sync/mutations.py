"""Watchlist writes and cache invalidation."""

import logging
from typing import Callable, Optional

from .connectivity import ConnectivityMonitor
from .constants import Namespace
from .errors import MovieSyncError, OfflineUnavailable, RemoteError, Unauthenticated
from .gateway import RemoteGateway
from .models import (
    MutationOutcome,
    MutationResult,
    NewWatchlistEntry,
    WatchlistEntry,
    WatchStatus,
    utcnow,
)
from .queries import CachedQueries

logger = logging.getLogger(__name__)

Patch = Callable[[list[WatchlistEntry]], list[WatchlistEntry]]


class WatchlistMutations:
    """Single remote writes followed by a cached-collection patch.

    There is no offline queue: a mutation attempted while offline fails with
    OfflineUnavailable and is not replayed.
    """

    def __init__(self, gateway: RemoteGateway, queries: CachedQueries, monitor: ConnectivityMonitor):
        self.gateway = gateway
        self.queries = queries
        self.monitor = monitor

    async def add_entry(
        self, movie_id: int, title: str, poster_path: Optional[str] = None
    ) -> MutationResult:
        """Add a movie as want-to-watch. A duplicate yields ALREADY_EXISTS."""
        user_id = self._precheck()
        new = NewWatchlistEntry(movie_id=movie_id, movie_title=title, movie_poster=poster_path)

        try:
            entry = await self.gateway.insert_entry(new)
        except RemoteError as e:
            if e.is_unique_violation:
                logger.info(f"Already in watchlist: {title}")
                return MutationResult(outcome=MutationOutcome.ALREADY_EXISTS, movie_id=movie_id)
            raise

        logger.info(f"Added to watchlist: {title}")
        await self._apply(
            user_id, lambda entries: [entry] + [e for e in entries if e.movie_id != movie_id]
        )
        return MutationResult(outcome=MutationOutcome.APPLIED, movie_id=movie_id, entry=entry)

    async def remove_entry(self, movie_id: int) -> MutationResult:
        user_id = self._precheck()

        if not await self.gateway.delete_entry(movie_id):
            logger.info(f"Movie {movie_id} was not in the watchlist")
            return MutationResult(outcome=MutationOutcome.UNCHANGED, movie_id=movie_id)

        logger.info(f"Removed movie {movie_id} from watchlist")
        await self._apply(user_id, lambda entries: [e for e in entries if e.movie_id != movie_id])
        return MutationResult(outcome=MutationOutcome.APPLIED, movie_id=movie_id)

    async def mark_watched(self, movie_id: int) -> MutationResult:
        """Move an entry to watched. Already-watched or absent entries are UNCHANGED."""
        user_id = self._precheck()
        changes = {"status": WatchStatus.WATCHED.value, "watched_at": utcnow().isoformat()}

        updated = await self.gateway.update_entry(
            movie_id, changes, only_status=WatchStatus.WANT_TO_WATCH
        )
        if updated is None:
            return MutationResult(outcome=MutationOutcome.UNCHANGED, movie_id=movie_id)

        logger.info(f"Marked movie {movie_id} as watched")
        await self._apply(user_id, _replace(updated))
        return MutationResult(outcome=MutationOutcome.APPLIED, movie_id=movie_id, entry=updated)

    async def rate_entry(
        self, movie_id: int, rating: int, notes: Optional[str] = None
    ) -> MutationResult:
        """Set a 1-5 rating and optional note on an entry."""
        if not 1 <= rating <= 5:
            raise ValueError(f"Rating must be between 1 and 5, got {rating}")
        user_id = self._precheck()

        changes: dict = {"rating": rating}
        if notes is not None:
            changes["notes"] = notes

        updated = await self.gateway.update_entry(movie_id, changes)
        if updated is None:
            return MutationResult(outcome=MutationOutcome.UNCHANGED, movie_id=movie_id)

        logger.info(f"Rated movie {movie_id}: {rating}/5")
        await self._apply(user_id, _replace(updated))
        return MutationResult(outcome=MutationOutcome.APPLIED, movie_id=movie_id, entry=updated)

    def _precheck(self) -> str:
        if not self.monitor.is_online():
            logger.warning("Watchlist changes are unavailable offline")
            raise OfflineUnavailable(Namespace.WATCHLIST.value)
        user_id = self.gateway.current_user()
        if user_id is None:
            raise Unauthenticated()
        return user_id

    async def _apply(self, user_id: str, patch: Patch) -> None:
        """Patch the cached collection, or refetch it when nothing is cached."""
        self.queries.invalidate(Namespace.WATCHLIST)
        cached = await self.queries.cached_watchlist(user_id)
        if cached is not None:
            await self.queries.store_watchlist(patch(cached), owner=user_id)
            return

        try:
            await self.queries.refresh_watchlist()
        except MovieSyncError as e:
            logger.warning(f"Watchlist refresh after write failed: {e}")


def _replace(updated: WatchlistEntry) -> Patch:
    def patch(entries: list[WatchlistEntry]) -> list[WatchlistEntry]:
        return [updated if e.movie_id == updated.movie_id else e for e in entries]

    return patch
