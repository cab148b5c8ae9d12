"""Command-line interface for the offline-aware watchlist sync."""

import asyncio
import logging
import sys
from typing import Awaitable, Callable, Optional

import click

from .cache import FileStore, LocalCache
from .config import Settings, get_settings, validate_backend
from .connectivity import OFFLINE_ADVISORY, probe
from .constants import DEFAULT_WEB_UI_PORT, Namespace
from .errors import MovieSyncError, OfflineUnavailable, Unauthenticated
from .service import MovieSyncService, print_movie, print_mutation, print_watchlist
from .session import SessionStore

logger = logging.getLogger(__name__)

# Exit codes
EXIT_FAILURE = 1
EXIT_OFFLINE = 2
EXIT_UNAUTHENTICATED = 3


def setup_logging(level: str):
    """Configure logging for the application."""
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )


def _show_config_error(invalid_fields: list[str], config_path: str, exit_code: Optional[int] = EXIT_FAILURE):
    """Display configuration error message and optionally exit."""
    logger.error("="*60)
    logger.error("CONFIGURATION ERROR: Missing or invalid backend settings")
    logger.error("="*60)
    logger.error("Missing/invalid settings:")
    for name in invalid_fields:
        logger.error(f"  - {name}")
    logger.error("")
    logger.error(f"Edit {config_path}, or set MOVIEMEND_BACKEND_URL / MOVIEMEND_ANON_KEY")
    logger.error("="*60)
    if exit_code is not None:
        sys.exit(exit_code)


def _execute(offline: bool, action: Callable[[MovieSyncService], Awaitable[None]]) -> None:
    """Build the service, run one action, and map errors to exit codes."""
    settings = get_settings()

    if offline:
        online = False
    else:
        is_valid, invalid_fields = validate_backend(settings)
        if not is_valid:
            _show_config_error(invalid_fields, str(settings.config_path))
        online = probe(settings.backend_url, timeout=settings.timeout_seconds)

    if not online:
        click.echo(OFFLINE_ADVISORY, err=True)

    service = MovieSyncService.from_settings(settings, online=online)

    async def runner():
        try:
            await action(service)
        finally:
            await service.close()

    try:
        asyncio.run(runner())
    except OfflineUnavailable as e:
        click.echo(f"Offline: {e}", err=True)
        sys.exit(EXIT_OFFLINE)
    except Unauthenticated as e:
        click.echo(f"Not signed in: {e}", err=True)
        click.echo("Run: moviemend-sync login --user-id ... --access-token ...", err=True)
        sys.exit(EXIT_UNAUTHENTICATED)
    except MovieSyncError as e:
        logger.debug("Command failed", exc_info=True)
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_FAILURE)


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default=None,
    help="Logging level (defaults to config)",
)
def main(log_level: Optional[str]):
    """Offline-aware watchlist and movie detail sync."""
    setup_logging(log_level or get_settings().log_level)


@main.command()
@click.option("--offline", is_flag=True, help="Serve from the local cache only")
def watchlist(offline: bool):
    """Show your watchlist."""
    async def action(service: MovieSyncService):
        print_watchlist(await service.queries.fetch_watchlist())

    _execute(offline, action)


@main.command()
@click.argument("movie_id", type=int)
@click.option("--offline", is_flag=True, help="Serve from the local cache only")
def movie(movie_id: int, offline: bool):
    """Show details for a movie."""
    async def action(service: MovieSyncService):
        result = await service.queries.fetch_movie_detail(movie_id)
        print_movie(result)
        if await service.queries.in_watchlist(movie_id):
            click.echo("\n(in your watchlist)")

    _execute(offline, action)


@main.command()
@click.argument("movie_id", type=int)
@click.option("--title", required=True, help="Movie title")
@click.option("--poster", default=None, help="Poster path, e.g. /abc.jpg")
def add(movie_id: int, title: str, poster: Optional[str]):
    """Add a movie to your watchlist."""
    async def action(service: MovieSyncService):
        result = await service.mutations.add_entry(movie_id, title, poster)
        print_mutation(result, f"Added to watchlist: {title}")

    _execute(False, action)


@main.command()
@click.argument("movie_id", type=int)
def remove(movie_id: int):
    """Remove a movie from your watchlist."""
    async def action(service: MovieSyncService):
        result = await service.mutations.remove_entry(movie_id)
        print_mutation(result, "Movie removed from watchlist")

    _execute(False, action)


@main.command()
@click.argument("movie_id", type=int)
def watched(movie_id: int):
    """Mark a watchlist movie as watched."""
    async def action(service: MovieSyncService):
        result = await service.mutations.mark_watched(movie_id)
        print_mutation(result, "Marked as watched!")

    _execute(False, action)


@main.command()
@click.argument("movie_id", type=int)
@click.argument("rating", type=click.IntRange(1, 5))
@click.option("--notes", default=None, help="Free-text note")
def rate(movie_id: int, rating: int, notes: Optional[str]):
    """Rate a watchlist movie from 1 to 5."""
    async def action(service: MovieSyncService):
        result = await service.mutations.rate_entry(movie_id, rating, notes)
        print_mutation(result, f"Rated {rating}/5")

    _execute(False, action)


@main.group()
def cache():
    """Manage the local offline cache."""


@cache.command("clear")
@click.option(
    "--namespace",
    type=click.Choice([ns.value for ns in Namespace]),
    default=None,
    help="Only clear one namespace",
)
def cache_clear(namespace: Optional[str]):
    """Wipe cached watchlist and movie details."""
    settings = get_settings()
    local_cache = LocalCache(
        FileStore(settings.cache_path, max_bytes=settings.cache_max_bytes),
        schema_version=settings.cache_schema_version,
    )
    asyncio.run(local_cache.clear(namespace))
    click.echo(f"Cleared {namespace or 'all'} cache")


@main.command()
@click.option("--user-id", required=True, help="Backend user id")
@click.option("--access-token", required=True, help="Access token from the app's sign-in")
@click.option("--expires-in", type=int, default=None, help="Token lifetime in seconds")
def login(user_id: str, access_token: str, expires_in: Optional[int]):
    """Store a session obtained from the app's sign-in."""
    settings = get_settings()
    SessionStore(settings.session_file).save(user_id, access_token, expires_in)
    click.echo(f"Session saved to {settings.session_file}")


@main.command()
def logout():
    """Forget the stored session and wipe the offline cache."""
    settings = get_settings()
    SessionStore(settings.session_file).clear()
    local_cache = LocalCache(FileStore(settings.cache_path, max_bytes=settings.cache_max_bytes))
    asyncio.run(local_cache.clear())
    click.echo("Signed out")


@main.command()
def status():
    """Show connectivity, session and cache state."""
    settings = get_settings()
    is_valid, invalid_fields = validate_backend(settings)
    online = is_valid and probe(settings.backend_url, timeout=settings.timeout_seconds)
    session = SessionStore(settings.session_file).current()

    click.echo("\n=== Status ===")
    click.echo(f"Backend: {settings.backend_url or '(not configured)'}")
    click.echo(f"Online: {online}")
    click.echo(f"Signed in: {session.user_id if session else 'no'}")
    click.echo(f"Cache: {settings.cache_path}")
    if not is_valid:
        click.echo(f"Invalid settings: {', '.join(invalid_fields)}")


@main.command()
@click.option("--port", type=int, default=DEFAULT_WEB_UI_PORT, help="API port")
@click.option("--host", type=str, default="127.0.0.1", help="API host")
def serve(port: int, host: str):
    """Run the local HTTP API for the app shell."""
    import uvicorn
    from .web import create_app

    settings: Settings = get_settings()
    is_valid, invalid_fields = validate_backend(settings)
    if not is_valid:
        _show_config_error(invalid_fields, str(settings.config_path))

    online = probe(settings.backend_url, timeout=settings.timeout_seconds)
    logger.info("="*60)
    logger.info("Watchlist Sync - Local API")
    logger.info(f"API: http://{host}:{port}")
    logger.info(f"Initial connectivity: {'online' if online else 'offline'}")
    logger.info("="*60)

    try:
        uvicorn.run(create_app(settings, online=online), host=host, port=port, log_level="warning")
    except KeyboardInterrupt:
        logger.info("API stopped by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
