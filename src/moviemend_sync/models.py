"""Data models for watchlist entries and movie details."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .constants import PLACEHOLDER_POSTER_URL, TMDB_IMAGE_BASE, TMDB_POSTER_SIZE

T = TypeVar("T")


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def image_url(path: Optional[str], size: str = TMDB_POSTER_SIZE) -> str:
    """Resolve a relative image path against the image host."""
    if not path:
        return PLACEHOLDER_POSTER_URL
    return f"{TMDB_IMAGE_BASE}/{size}{path}"


class WatchStatus(str, Enum):
    """Watchlist entry status."""

    WANT_TO_WATCH = "want_to_watch"
    WATCHED = "watched"


class WatchlistEntry(BaseModel):
    """A user's saved record for one movie."""

    # Identifiers
    id: Optional[str] = None
    user_id: str
    movie_id: int

    # Display data
    movie_title: str
    movie_poster: Optional[str] = None

    # Watch data
    status: WatchStatus = WatchStatus.WANT_TO_WATCH
    added_at: datetime = Field(default_factory=utcnow)
    watched_at: Optional[datetime] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    notes: Optional[str] = None

    def poster_url(self, size: str = TMDB_POSTER_SIZE) -> str:
        return image_url(self.movie_poster, size)

    def mark_watched(self, at: Optional[datetime] = None) -> "WatchlistEntry":
        """Return a watched copy. Status only moves forward."""
        if self.status == WatchStatus.WATCHED:
            return self
        return self.model_copy(
            update={"status": WatchStatus.WATCHED, "watched_at": at or utcnow()}
        )


class NewWatchlistEntry(BaseModel):
    """Payload for adding a movie to the watchlist."""

    movie_id: int
    movie_title: str
    movie_poster: Optional[str] = None


class Genre(BaseModel):
    id: int
    name: str


class MovieDetail(BaseModel):
    """Denormalized movie detail payload from the catalog proxy.

    Unknown keys are kept so that a cached payload round-trips field for field.
    """

    model_config = ConfigDict(extra="allow")

    id: int
    title: str
    original_title: Optional[str] = None
    overview: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    release_date: Optional[str] = None
    runtime: Optional[int] = None
    tagline: Optional[str] = None
    vote_average: Optional[float] = None
    vote_count: Optional[int] = None
    genres: list[Genre] = Field(default_factory=list)
    credits: Optional[dict[str, Any]] = None
    videos: Optional[dict[str, Any]] = None

    @property
    def directors(self) -> list[str]:
        crew = (self.credits or {}).get("crew", [])
        return [member["name"] for member in crew if member.get("job") == "Director"]

    def top_cast(self, limit: int = 10) -> list[dict]:
        cast = (self.credits or {}).get("cast", [])
        return sorted(cast, key=lambda member: member.get("order", 0))[:limit]

    @property
    def trailer(self) -> Optional[dict]:
        """First YouTube trailer, preferring official ones."""
        videos = [
            v for v in (self.videos or {}).get("results", [])
            if v.get("site") == "YouTube" and v.get("type") == "Trailer"
        ]
        official = [v for v in videos if v.get("official")]
        return (official or videos or [None])[0]


class CachedMovieDetail(BaseModel):
    """Last-fetched detail payload for one movie."""

    movie_id: int
    payload: MovieDetail
    fetched_at: datetime = Field(default_factory=utcnow)

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        return ((now or utcnow()) - self.fetched_at).total_seconds()


class DataSource(str, Enum):
    """Where a query result came from."""

    NETWORK = "network"
    CACHE = "cache"


class FetchResult(BaseModel, Generic[T]):
    """Successful read, tagged with its origin."""

    value: T
    source: DataSource
    fetched_at: Optional[datetime] = None
    stale: bool = False


class MutationOutcome(str, Enum):
    """Non-error outcomes of a watchlist mutation."""

    APPLIED = "applied"
    ALREADY_EXISTS = "already_exists"
    UNCHANGED = "unchanged"


class MutationResult(BaseModel):
    """Result of a watchlist mutation."""

    outcome: MutationOutcome
    movie_id: int
    entry: Optional[WatchlistEntry] = None

    @property
    def applied(self) -> bool:
        return self.outcome == MutationOutcome.APPLIED


class ResyncResult(BaseModel):
    """Result of a reconnect-triggered refresh."""

    success: bool
    entries_synced: int = 0
    errors: list[str] = Field(default_factory=list)
