"""
Local HTTP API for the watchlist sync layer.
The app shell reads and writes through it and forwards runtime
connectivity events to POST /connectivity.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import Settings
from .constants import Namespace
from .errors import MovieSyncError, OfflineUnavailable, RemoteError, Unauthenticated, Unreachable
from .models import FetchResult, MutationOutcome, MutationResult
from .service import MovieSyncService

logger = logging.getLogger(__name__)


class AddEntryRequest(BaseModel):
    """Add-to-watchlist request model"""
    movie_id: int
    title: str
    poster_path: Optional[str] = None


class RatingRequest(BaseModel):
    """Rating request model"""
    rating: int = Field(ge=1, le=5)
    notes: Optional[str] = None


class ConnectivityEvent(BaseModel):
    """Runtime connectivity event"""
    online: bool


def _error_response(status_code: int, error: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message, **extra})


def _mutation_response(result: MutationResult, created: bool = False) -> JSONResponse:
    if result.outcome == MutationOutcome.ALREADY_EXISTS:
        return _error_response(409, "already_exists", "This movie is already in your watchlist")
    status_code = 201 if created and result.applied else 200
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


def create_app(
    settings: Optional[Settings] = None,
    online: bool = True,
    service: Optional[MovieSyncService] = None,
) -> FastAPI:
    """Build the API around an existing service or one built from settings."""
    if service is None:
        service = MovieSyncService.from_settings(settings, online=online)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await service.close()

    app = FastAPI(title="Watchlist Sync", version="0.1.0", lifespan=lifespan)
    app.state.service = service

    @app.exception_handler(OfflineUnavailable)
    async def offline_handler(request: Request, exc: OfflineUnavailable):
        return _error_response(503, "offline_unavailable", str(exc))

    @app.exception_handler(Unauthenticated)
    async def unauthenticated_handler(request: Request, exc: Unauthenticated):
        return _error_response(401, "unauthenticated", str(exc))

    @app.exception_handler(Unreachable)
    async def unreachable_handler(request: Request, exc: Unreachable):
        return _error_response(502, "unreachable", str(exc))

    @app.exception_handler(RemoteError)
    async def remote_error_handler(request: Request, exc: RemoteError):
        return _error_response(502, "remote_error", exc.message or str(exc), code=exc.code)

    @app.exception_handler(MovieSyncError)
    async def sync_error_handler(request: Request, exc: MovieSyncError):
        return _error_response(500, "sync_error", str(exc))

    @app.get("/watchlist")
    async def get_watchlist():
        result: FetchResult = await service.queries.fetch_watchlist()
        return result.model_dump(mode="json")

    @app.get("/movies/{movie_id}")
    async def get_movie(movie_id: int):
        result: FetchResult = await service.queries.fetch_movie_detail(movie_id)
        body = result.model_dump(mode="json")
        body["in_watchlist"] = await service.queries.in_watchlist(movie_id)
        return body

    @app.post("/watchlist")
    async def add_entry(request: AddEntryRequest):
        result = await service.mutations.add_entry(request.movie_id, request.title, request.poster_path)
        return _mutation_response(result, created=True)

    @app.delete("/watchlist/{movie_id}")
    async def remove_entry(movie_id: int):
        return _mutation_response(await service.mutations.remove_entry(movie_id))

    @app.post("/watchlist/{movie_id}/watched")
    async def mark_watched(movie_id: int):
        return _mutation_response(await service.mutations.mark_watched(movie_id))

    @app.post("/watchlist/{movie_id}/rating")
    async def rate_entry(movie_id: int, request: RatingRequest):
        result = await service.mutations.rate_entry(movie_id, request.rating, request.notes)
        return _mutation_response(result)

    @app.get("/connectivity")
    async def get_connectivity():
        await service.monitor.drain()
        last = service.queries.last_resync
        return {
            "online": service.monitor.is_online(),
            "last_resync": last.model_dump() if last else None,
        }

    @app.post("/connectivity")
    async def set_connectivity(event: ConnectivityEvent):
        changed = service.monitor.set_online(event.online)
        return {"online": service.monitor.is_online(), "changed": changed}

    @app.delete("/cache")
    async def clear_cache(namespace: Optional[str] = None):
        if namespace is not None:
            try:
                namespace = Namespace(namespace).value
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Unknown namespace: {namespace}")
        await service.cache.clear(namespace)
        return {"cleared": namespace or "all"}

    return app
