"""Shared fixtures: an in-memory backend stand-in and a mutable clock."""

import time
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from moviemend_sync.cache import LocalCache, MemoryStore
from moviemend_sync.connectivity import ConnectivityMonitor
from moviemend_sync.errors import RemoteError, Unauthenticated, Unreachable
from moviemend_sync.models import MovieDetail, NewWatchlistEntry, WatchlistEntry, WatchStatus
from moviemend_sync.queries import CachedQueries


class StubGateway:
    """Mimics the backend: per-user rows, unique (user, movie), catalog payloads."""

    def __init__(self, user_id: Optional[str] = "user-1") -> None:
        self.user_id = user_id
        self.rows: list[WatchlistEntry] = []
        self.details: dict[int, dict] = {}
        self.calls: list[str] = []
        self.unreachable = False

    def current_user(self) -> Optional[str]:
        return self.user_id

    def _check(self) -> None:
        if self.user_id is None:
            raise Unauthenticated()
        if self.unreachable:
            raise Unreachable("backend down")

    def _mine(self) -> list[WatchlistEntry]:
        return [r for r in self.rows if r.user_id == self.user_id]

    async def fetch_watchlist(self) -> list[WatchlistEntry]:
        self.calls.append("fetch_watchlist")
        self._check()
        return sorted(self._mine(), key=lambda r: r.added_at, reverse=True)

    async def insert_entry(self, new: NewWatchlistEntry) -> WatchlistEntry:
        self.calls.append("insert_entry")
        self._check()
        if any(r.movie_id == new.movie_id for r in self._mine()):
            raise RemoteError("23505", "duplicate key value violates unique constraint", 409)
        entry = WatchlistEntry(id=f"row-{len(self.rows) + 1}", user_id=self.user_id, **new.model_dump())
        self.rows.append(entry)
        return entry

    async def delete_entry(self, movie_id: int) -> bool:
        self.calls.append("delete_entry")
        self._check()
        before = len(self.rows)
        self.rows = [r for r in self.rows if not (r.user_id == self.user_id and r.movie_id == movie_id)]
        return len(self.rows) < before

    async def update_entry(self, movie_id: int, changes: dict, only_status: Optional[WatchStatus] = None):
        self.calls.append("update_entry")
        self._check()
        for idx, row in enumerate(self.rows):
            if row.user_id != self.user_id or row.movie_id != movie_id:
                continue
            if only_status is not None and row.status != only_status:
                return None
            updated = WatchlistEntry.model_validate({**row.model_dump(), **changes})
            self.rows[idx] = updated
            return updated
        return None

    async def fetch_movie_detail(self, movie_id: int) -> MovieDetail:
        self.calls.append(f"fetch_movie_detail:{movie_id}")
        self._check()
        if movie_id not in self.details:
            raise RemoteError("404", "Movie not found", 404)
        return MovieDetail.model_validate(self.details[movie_id])


class SlowStore(MemoryStore):
    """Store whose reads block long enough for concurrent writers to overlap."""

    def get(self, key):
        time.sleep(0.05)
        return super().get(key)


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def inception_detail() -> dict:
    return {
        "id": 27205,
        "title": "Inception",
        "release_date": "2010-07-15",
        "runtime": 148,
        "vote_average": 8.4,
        "genres": [{"id": 28, "name": "Action"}, {"id": 878, "name": "Science Fiction"}],
        "credits": {
            "cast": [
                {"id": 6193, "name": "Leonardo DiCaprio", "character": "Cobb", "order": 0},
                {"id": 24045, "name": "Joseph Gordon-Levitt", "character": "Arthur", "order": 1},
            ],
            "crew": [{"id": 525, "name": "Christopher Nolan", "job": "Director", "department": "Directing"}],
        },
        "videos": {
            "results": [
                {"id": "v1", "key": "YoHD9XEInc0", "name": "Trailer", "site": "YouTube",
                 "type": "Trailer", "official": True},
            ]
        },
        "budget": 160000000,
    }


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def cache(store) -> LocalCache:
    return LocalCache(store)


@pytest.fixture
def monitor() -> ConnectivityMonitor:
    return ConnectivityMonitor(online=True)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def queries(gateway, cache, monitor, clock) -> CachedQueries:
    q = CachedQueries(gateway, cache, monitor, fresh_seconds=3600, keep_seconds=86400, clock=clock)
    q.attach()
    return q
