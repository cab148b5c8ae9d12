"""Unit tests for data models."""

from datetime import datetime, timezone

import pytest
from moviemend_sync.models import MovieDetail, WatchlistEntry, WatchStatus, image_url

from conftest import inception_detail


def test_watchlist_entry_creation():
    """Test creating a watchlist entry."""
    entry = WatchlistEntry(
        user_id="user-1",
        movie_id=27205,
        movie_title="Inception",
        movie_poster="/poster.jpg",
    )

    assert entry.movie_id == 27205
    assert entry.movie_title == "Inception"
    assert entry.status == WatchStatus.WANT_TO_WATCH
    assert entry.watched_at is None
    assert entry.added_at.tzinfo is not None


def test_entry_from_backend_row():
    """Test that a raw backend row validates into the model."""
    row = {
        "id": "a1b2",
        "user_id": "user-1",
        "movie_id": 278,
        "movie_title": "The Shawshank Redemption",
        "movie_poster": None,
        "status": "watched",
        "added_at": "2024-04-01T10:00:00+00:00",
        "watched_at": "2024-04-02T21:30:00+00:00",
        "rating": 5,
        "notes": None,
    }
    entry = WatchlistEntry.model_validate(row)

    assert entry.status == WatchStatus.WATCHED
    assert entry.watched_at == datetime(2024, 4, 2, 21, 30, tzinfo=timezone.utc)
    assert entry.rating == 5


def test_rating_validation():
    """Test rating is limited to 1-5."""
    entry = WatchlistEntry(user_id="u", movie_id=1, movie_title="Test", rating=4)
    assert entry.rating == 4

    with pytest.raises(Exception):
        WatchlistEntry(user_id="u", movie_id=1, movie_title="Test", rating=0)

    with pytest.raises(Exception):
        WatchlistEntry(user_id="u", movie_id=1, movie_title="Test", rating=6)


def test_mark_watched_is_one_way():
    """Test status only moves from want_to_watch to watched."""
    entry = WatchlistEntry(user_id="u", movie_id=1, movie_title="Test")
    at = datetime(2024, 5, 1, tzinfo=timezone.utc)

    watched = entry.mark_watched(at)
    assert watched.status == WatchStatus.WATCHED
    assert watched.watched_at == at
    assert entry.status == WatchStatus.WANT_TO_WATCH

    again = watched.mark_watched(datetime(2025, 1, 1, tzinfo=timezone.utc))
    assert again.watched_at == at


def test_poster_url():
    """Test poster paths resolve against the image host."""
    entry = WatchlistEntry(user_id="u", movie_id=1, movie_title="Test", movie_poster="/abc.jpg")
    assert entry.poster_url() == "https://image.tmdb.org/t/p/w500/abc.jpg"
    assert entry.poster_url("w185") == "https://image.tmdb.org/t/p/w185/abc.jpg"
    assert image_url(None).startswith("https://images.unsplash.com/")


def test_movie_detail_keeps_unknown_fields():
    """Test extra catalog fields survive a dump/validate cycle."""
    detail = MovieDetail.model_validate(inception_detail())

    assert detail.model_dump(mode="json")["budget"] == 160000000
    assert detail.directors == ["Christopher Nolan"]
    assert [m["name"] for m in detail.top_cast(1)] == ["Leonardo DiCaprio"]
    assert detail.trailer["key"] == "YoHD9XEInc0"


def test_movie_detail_without_credits():
    detail = MovieDetail(id=1, title="Bare")
    assert detail.directors == []
    assert detail.top_cast() == []
    assert detail.trailer is None
