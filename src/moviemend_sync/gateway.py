"""Remote data gateway for the managed backend."""

import asyncio
import logging
from typing import Any, Optional, Protocol, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .base_client import BaseAPIClient
from .constants import DEFAULT_TIMEOUT_SECONDS
from .errors import RemoteError, Unauthenticated
from .models import MovieDetail, NewWatchlistEntry, WatchlistEntry, WatchStatus
from .session import AuthSession, SessionStore

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _parse(model: Type[M], data: Any, what: str) -> M:
    """Validate a backend payload, reporting a malformed one as a RemoteError."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.error(f"Malformed {what} from backend: {e}")
        raise RemoteError(code="invalid_payload", message=f"Malformed {what}") from e


class RemoteGateway(Protocol):
    """Operations the query and mutation layers need from the backend."""

    def current_user(self) -> Optional[str]: ...

    async def fetch_watchlist(self) -> list[WatchlistEntry]: ...

    async def insert_entry(self, new: NewWatchlistEntry) -> WatchlistEntry: ...

    async def delete_entry(self, movie_id: int) -> bool: ...

    async def update_entry(
        self, movie_id: int, changes: dict, only_status: Optional[WatchStatus] = None
    ) -> Optional[WatchlistEntry]: ...

    async def fetch_movie_detail(self, movie_id: int) -> MovieDetail: ...


class SupabaseGateway(BaseAPIClient):
    """Gateway over the backend's REST tables and catalog proxy function."""

    SERVICE_NAME = "Backend"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        sessions: SessionStore,
        watchlist_table: str = "watchlist",
        details_function: str = "tmdb-details",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """Initialize gateway with backend URL, project key and session store."""
        super().__init__(base_url=base_url, api_key=api_key, timeout=timeout)
        self.sessions = sessions
        self.table_path = f"/rest/v1/{watchlist_table}"
        self.details_path = f"/functions/v1/{details_function}"

    def current_user(self) -> Optional[str]:
        session = self.sessions.current()
        return session.user_id if session else None

    def _auth(self) -> AuthSession:
        session = self.sessions.current()
        if session is None:
            raise Unauthenticated()
        return session

    # ── Watchlist ────────────────────────────────────────────────

    async def fetch_watchlist(self) -> list[WatchlistEntry]:
        """Fetch the current user's watchlist, newest first."""
        auth = self._auth()
        rows = await asyncio.to_thread(
            self._request,
            "GET",
            self.table_path,
            auth.access_token,
            self.SERVICE_NAME,
            params={
                "select": "*",
                "user_id": f"eq.{auth.user_id}",
                "order": "added_at.desc",
            },
        )
        entries = [_parse(WatchlistEntry, row, "watchlist row") for row in rows or []]
        logger.info(f"Fetched {len(entries)} watchlist entries")
        return entries

    async def insert_entry(self, new: NewWatchlistEntry) -> WatchlistEntry:
        """Insert a want-to-watch row. Duplicates surface as RemoteError 23505."""
        auth = self._auth()
        payload = {
            "user_id": auth.user_id,
            **new.model_dump(),
            "status": WatchStatus.WANT_TO_WATCH.value,
        }
        rows = await asyncio.to_thread(
            self._request,
            "POST",
            self.table_path,
            auth.access_token,
            self.SERVICE_NAME,
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        logger.info(f"Inserted watchlist entry: {new.movie_title}")
        if rows:
            return _parse(WatchlistEntry, rows[0], "watchlist row")
        return WatchlistEntry(user_id=auth.user_id, **new.model_dump())

    async def delete_entry(self, movie_id: int) -> bool:
        """Delete the user's row for a movie. Returns False if none existed."""
        auth = self._auth()
        rows = await asyncio.to_thread(
            self._request,
            "DELETE",
            self.table_path,
            auth.access_token,
            self.SERVICE_NAME,
            params={"user_id": f"eq.{auth.user_id}", "movie_id": f"eq.{movie_id}"},
            headers={"Prefer": "return=representation"},
        )
        logger.info(f"Deleted watchlist entry for movie {movie_id}")
        return bool(rows)

    async def update_entry(
        self, movie_id: int, changes: dict, only_status: Optional[WatchStatus] = None
    ) -> Optional[WatchlistEntry]:
        """Patch the user's row for a movie; None if no row matched."""
        auth = self._auth()
        params = {"user_id": f"eq.{auth.user_id}", "movie_id": f"eq.{movie_id}"}
        if only_status is not None:
            params["status"] = f"eq.{only_status.value}"

        rows = await asyncio.to_thread(
            self._request,
            "PATCH",
            self.table_path,
            auth.access_token,
            self.SERVICE_NAME,
            params=params,
            json=changes,
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            logger.info(f"No watchlist row updated for movie {movie_id}")
            return None
        logger.info(f"Updated watchlist entry for movie {movie_id}")
        return _parse(WatchlistEntry, rows[0], "watchlist row")

    # ── Catalog ──────────────────────────────────────────────────

    async def fetch_movie_detail(self, movie_id: int) -> MovieDetail:
        """Fetch full movie detail through the catalog proxy."""
        auth = self._auth()
        data = await asyncio.to_thread(
            self._request,
            "POST",
            self.details_path,
            auth.access_token,
            "Catalog",
            json={"movieId": movie_id},
        )
        logger.debug(f"Fetched details for movie {movie_id}")
        return _parse(MovieDetail, data, "movie detail")
