"""Online/offline signal relay."""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

import requests

logger = logging.getLogger(__name__)

OFFLINE_ADVISORY = "You're offline. Showing cached content."
ONLINE_ADVISORY = "Back online! Loading fresh content..."

Listener = Callable[[bool], Union[None, Awaitable[None]]]


class ConnectivityMonitor:
    """Tracks connectivity and notifies listeners on transitions only.

    One instance per process. Runtime connectivity events are fed in through
    `went_online()` / `went_offline()`; the monitor never polls.
    """

    def __init__(self, online: bool = True, advisory: Optional[Callable[[str], None]] = None):
        self._online = online
        self._listeners: list[Listener] = []
        self._advisory = advisory
        self._tasks: set[asyncio.Task] = set()

    def is_online(self) -> bool:
        return self._online

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def went_online(self) -> bool:
        return self.set_online(True)

    def went_offline(self) -> bool:
        return self.set_online(False)

    def set_online(self, online: bool) -> bool:
        """Apply a connectivity event. Returns True if the state changed."""
        if online == self._online:
            logger.debug(f"Connectivity unchanged (online={online})")
            return False

        self._online = online
        if online:
            logger.info(ONLINE_ADVISORY)
            self._emit_advisory(ONLINE_ADVISORY)
        else:
            logger.warning(OFFLINE_ADVISORY)
            self._emit_advisory(OFFLINE_ADVISORY)

        for listener in list(self._listeners):
            try:
                result = listener(online)
                if inspect.isawaitable(result):
                    self._schedule(result)
            except Exception as e:
                logger.error(f"Connectivity listener failed: {e}")
        return True

    async def drain(self) -> None:
        """Wait for listener tasks started by past transitions."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _emit_advisory(self, message: str) -> None:
        if self._advisory is None:
            return
        try:
            self._advisory(message)
        except Exception as e:
            logger.error(f"Advisory callback failed: {e}")

    def _schedule(self, awaitable: Awaitable[None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.error("Async connectivity listener skipped: no running event loop")
            return
        task = loop.create_task(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Connectivity listener task failed: {task.exception()}")


def probe(url: str, timeout: float = 3.0) -> bool:
    """One-shot reachability check used to seed the initial state."""
    try:
        requests.head(url, timeout=timeout, allow_redirects=True)
        return True
    except requests.RequestException as e:
        logger.debug(f"Reachability probe to {url} failed: {e}")
        return False
