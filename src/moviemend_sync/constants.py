"""Constants used throughout the application."""

from enum import Enum


class Namespace(str, Enum):
    """Local cache namespaces."""

    WATCHLIST = "watchlist"
    MOVIE_DETAILS = "movie-details"


STORAGE_KEYS = {
    Namespace.WATCHLIST: "moviemend_offline_watchlist",
    Namespace.MOVIE_DETAILS: "moviemend_offline_movies",
}

# HTTP Status Codes
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403

# PostgreSQL SQLSTATE reported by the backend for a duplicate (user, movie) row
UNIQUE_VIOLATION_CODE = "23505"

# Default values
DEFAULT_FRESH_SECONDS = 3600  # 1 hour
DEFAULT_KEEP_SECONDS = 86400  # 1 day
DEFAULT_CACHE_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_WEB_UI_PORT = 8080
CACHE_SCHEMA_VERSION = 1
SESSION_EXPIRY_BUFFER_SECONDS = 60

# Image host
TMDB_IMAGE_BASE = "https://image.tmdb.org/t/p"
TMDB_POSTER_SIZE = "w500"
PLACEHOLDER_POSTER_URL = (
    "https://images.unsplash.com/photo-1478720568477-152d9b164e26?w=400&h=600&fit=crop"
)
