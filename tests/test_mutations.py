"""Tests for watchlist mutations and cache patching."""

import asyncio

import pytest
from moviemend_sync.constants import Namespace
from moviemend_sync.errors import OfflineUnavailable, RemoteError, Unauthenticated, Unreachable
from moviemend_sync.models import MutationOutcome, WatchlistEntry, WatchStatus
from moviemend_sync.mutations import WatchlistMutations


@pytest.fixture
def mutations(gateway, queries, monitor) -> WatchlistMutations:
    return WatchlistMutations(gateway, queries, monitor)


def _cached(cache) -> list[WatchlistEntry]:
    return asyncio.run(cache.read_collection(Namespace.WATCHLIST, WatchlistEntry))


def test_duplicate_insert_is_distinguishable(mutations):
    """Second insert of the same movie reports ALREADY_EXISTS, not an error."""
    first = asyncio.run(mutations.add_entry(603, "The Matrix"))
    second = asyncio.run(mutations.add_entry(603, "The Matrix"))

    assert first.outcome == MutationOutcome.APPLIED
    assert first.entry.status == WatchStatus.WANT_TO_WATCH
    assert second.outcome == MutationOutcome.ALREADY_EXISTS
    assert second.entry is None


def test_duplicate_insert_keeps_single_cached_entry(mutations, queries, cache):
    asyncio.run(queries.fetch_watchlist())

    asyncio.run(mutations.add_entry(603, "The Matrix", "/matrix.jpg"))
    asyncio.run(mutations.add_entry(603, "The Matrix", "/matrix.jpg"))

    cached = _cached(cache)
    assert [e.movie_id for e in cached].count(603) == 1
    assert cached[0].movie_poster == "/matrix.jpg"


def test_add_without_cached_snapshot_refetches(mutations, cache, gateway):
    """With nothing cached, a successful write refreshes the collection."""
    asyncio.run(mutations.add_entry(27205, "Inception"))

    assert gateway.calls == ["insert_entry", "fetch_watchlist"]
    assert [e.movie_id for e in _cached(cache)] == [27205]


def test_add_patches_existing_snapshot(mutations, queries, cache, gateway):
    asyncio.run(mutations.add_entry(278, "The Shawshank Redemption"))
    gateway.calls.clear()

    asyncio.run(mutations.add_entry(603, "The Matrix"))

    assert gateway.calls == ["insert_entry"]
    assert [e.movie_id for e in _cached(cache)] == [603, 278]
    assert asyncio.run(queries.in_watchlist(603)) is True


def test_offline_mutations_fail_immediately(mutations, monitor, gateway):
    monitor.went_offline()

    for attempt in (
        mutations.add_entry(603, "The Matrix"),
        mutations.remove_entry(603),
        mutations.mark_watched(603),
        mutations.rate_entry(603, 4),
    ):
        with pytest.raises(OfflineUnavailable):
            asyncio.run(attempt)
    assert gateway.calls == []


def test_unauthenticated_mutation(mutations, gateway):
    gateway.user_id = None
    with pytest.raises(Unauthenticated):
        asyncio.run(mutations.add_entry(603, "The Matrix"))


def test_other_remote_errors_propagate(mutations, gateway):
    async def reject(new):
        raise RemoteError("42501", "permission denied", 403)

    gateway.insert_entry = reject
    with pytest.raises(RemoteError):
        asyncio.run(mutations.add_entry(603, "The Matrix"))


def test_unreachable_write_fails(mutations, gateway):
    gateway.unreachable = True
    with pytest.raises(Unreachable):
        asyncio.run(mutations.add_entry(603, "The Matrix"))


def test_remove_entry(mutations, cache):
    asyncio.run(mutations.add_entry(603, "The Matrix"))
    asyncio.run(mutations.add_entry(27205, "Inception"))

    removed = asyncio.run(mutations.remove_entry(603))
    missing = asyncio.run(mutations.remove_entry(603))

    assert removed.outcome == MutationOutcome.APPLIED
    assert missing.outcome == MutationOutcome.UNCHANGED
    assert [e.movie_id for e in _cached(cache)] == [27205]


def test_mark_watched_is_one_way(mutations, cache, gateway):
    asyncio.run(mutations.add_entry(603, "The Matrix"))

    first = asyncio.run(mutations.mark_watched(603))
    second = asyncio.run(mutations.mark_watched(603))
    absent = asyncio.run(mutations.mark_watched(1))

    assert first.outcome == MutationOutcome.APPLIED
    assert first.entry.status == WatchStatus.WATCHED
    assert first.entry.watched_at is not None
    assert second.outcome == MutationOutcome.UNCHANGED
    assert absent.outcome == MutationOutcome.UNCHANGED

    cached = _cached(cache)
    assert cached[0].status == WatchStatus.WATCHED
    assert cached[0].watched_at == first.entry.watched_at


def test_rate_entry(mutations, cache):
    asyncio.run(mutations.add_entry(603, "The Matrix"))

    result = asyncio.run(mutations.rate_entry(603, 5, notes="Still holds up"))

    assert result.outcome == MutationOutcome.APPLIED
    cached = _cached(cache)
    assert cached[0].rating == 5
    assert cached[0].notes == "Still holds up"


def test_rate_entry_validates_before_io(mutations, gateway):
    with pytest.raises(ValueError):
        asyncio.run(mutations.rate_entry(603, 6))
    assert gateway.calls == []
