"""Service wiring and result printing."""

import logging
from typing import Callable, Optional

import click

from .cache import FileStore, LocalCache
from .config import Settings, get_settings
from .connectivity import ConnectivityMonitor
from .gateway import RemoteGateway, SupabaseGateway
from .models import DataSource, FetchResult, MovieDetail, MutationOutcome, MutationResult, WatchStatus
from .mutations import WatchlistMutations
from .queries import CachedQueries
from .session import SessionStore

logger = logging.getLogger(__name__)


class MovieSyncService:
    """Owns one monitor, cache, gateway, query layer and mutation layer."""

    def __init__(
        self,
        gateway: RemoteGateway,
        cache: LocalCache,
        monitor: ConnectivityMonitor,
        fresh_seconds: Optional[int] = None,
        keep_seconds: Optional[int] = None,
    ):
        self.gateway = gateway
        self.cache = cache
        self.monitor = monitor

        windows = {}
        if fresh_seconds is not None:
            windows["fresh_seconds"] = fresh_seconds
        if keep_seconds is not None:
            windows["keep_seconds"] = keep_seconds

        self.queries = CachedQueries(gateway, cache, monitor, **windows)
        self.mutations = WatchlistMutations(gateway, self.queries, monitor)
        self.queries.attach()

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        online: bool = True,
        advisory: Optional[Callable[[str], None]] = None,
    ) -> "MovieSyncService":
        """Build the service from configuration."""
        if settings is None:
            settings = get_settings()

        logger.debug("Initializing sync service...")
        sessions = SessionStore(settings.session_file)
        gateway = SupabaseGateway(
            base_url=settings.backend_url or "",
            api_key=settings.anon_key or "",
            sessions=sessions,
            watchlist_table=settings.watchlist_table,
            details_function=settings.details_function,
            timeout=settings.timeout_seconds,
        )
        cache = LocalCache(
            FileStore(settings.cache_path, max_bytes=settings.cache_max_bytes),
            schema_version=settings.cache_schema_version,
            max_entities=settings.max_movie_details,
        )
        monitor = ConnectivityMonitor(online=online, advisory=advisory)
        return cls(
            gateway,
            cache,
            monitor,
            fresh_seconds=settings.fresh_seconds,
            keep_seconds=settings.keep_seconds,
        )

    async def close(self) -> None:
        """Stop listening for reconnects and wait for background work."""
        self.queries.detach()
        await self.monitor.drain()
        await self.queries.drain()


def print_watchlist(result: FetchResult) -> None:
    """Print a watchlist read to the console."""
    entries = result.value
    if result.source == DataSource.CACHE:
        click.echo("\n=== Offline copy - may be out of date ===")

    click.echo(f"\n=== Watchlist ({len(entries)}) ===")
    for entry in entries:
        mark = "x" if entry.status == WatchStatus.WATCHED else " "
        rating = f"  {entry.rating}/5" if entry.rating else ""
        click.echo(f"  [{mark}] {entry.movie_title} (id {entry.movie_id}){rating}")
        if entry.notes:
            click.echo(f"        {entry.notes}")


def print_movie(result: FetchResult) -> None:
    """Print movie details to the console."""
    movie: MovieDetail = result.value
    if result.stale:
        click.echo("\n=== Cached copy - may be out of date ===")

    year = (movie.release_date or "")[:4]
    click.echo(f"\n=== {movie.title}{f' ({year})' if year else ''} ===")
    if movie.tagline:
        click.echo(movie.tagline)
    if movie.runtime:
        click.echo(f"Runtime: {movie.runtime} min")
    if movie.genres:
        click.echo(f"Genres: {', '.join(g.name for g in movie.genres)}")
    if movie.vote_average is not None:
        click.echo(f"Rating: {movie.vote_average / 2:.1f}/5")
    if movie.directors:
        click.echo(f"Directed by: {', '.join(movie.directors)}")
    cast = movie.top_cast(5)
    if cast:
        click.echo(f"Cast: {', '.join(member['name'] for member in cast)}")
    trailer = movie.trailer
    if trailer:
        click.echo(f"Trailer: https://www.youtube.com/watch?v={trailer['key']}")
    if movie.overview:
        click.echo(f"\n{movie.overview}")


def print_mutation(result: MutationResult, applied_message: str) -> None:
    """Print a mutation outcome to the console."""
    if result.outcome == MutationOutcome.ALREADY_EXISTS:
        click.echo("Already in watchlist")
    elif result.applied:
        click.echo(applied_message)
    else:
        click.echo(f"No change for movie {result.movie_id}")
