"""Tests for the connectivity monitor."""

import asyncio
from unittest.mock import patch

import requests
from moviemend_sync.connectivity import (
    OFFLINE_ADVISORY,
    ONLINE_ADVISORY,
    ConnectivityMonitor,
    probe,
)


def test_listeners_fire_only_on_transitions():
    """Test repeated identical states do not notify."""
    monitor = ConnectivityMonitor(online=True)
    seen = []
    monitor.subscribe(seen.append)

    assert monitor.went_online() is False
    assert monitor.went_offline() is True
    assert monitor.went_offline() is False
    assert monitor.set_online(True) is True
    assert monitor.set_online(True) is False

    assert seen == [False, True]
    assert monitor.is_online() is True


def test_unsubscribe():
    monitor = ConnectivityMonitor()
    seen = []
    unsubscribe = monitor.subscribe(seen.append)

    monitor.went_offline()
    unsubscribe()
    unsubscribe()
    monitor.went_online()

    assert seen == [False]


def test_advisories():
    """Test user-visible advisories on each transition."""
    messages = []
    monitor = ConnectivityMonitor(online=True, advisory=messages.append)

    monitor.went_offline()
    monitor.went_offline()
    monitor.went_online()

    assert messages == [OFFLINE_ADVISORY, ONLINE_ADVISORY]


def test_failing_listener_does_not_block_others():
    monitor = ConnectivityMonitor()
    seen = []

    def broken(online):
        raise RuntimeError("boom")

    monitor.subscribe(broken)
    monitor.subscribe(seen.append)
    monitor.went_offline()

    assert seen == [False]


def test_async_listener_is_scheduled_and_drained():
    """Test coroutine listeners run as tasks on the running loop."""
    monitor = ConnectivityMonitor(online=False)
    seen = []

    async def listener(online):
        await asyncio.sleep(0)
        seen.append(online)

    monitor.subscribe(listener)

    async def scenario():
        monitor.went_online()
        assert seen == []
        await monitor.drain()

    asyncio.run(scenario())
    assert seen == [True]


def test_async_listener_without_loop_is_skipped():
    monitor = ConnectivityMonitor(online=False)
    seen = []

    async def listener(online):
        seen.append(online)

    monitor.subscribe(listener)
    assert monitor.went_online() is True
    assert seen == []


def test_probe():
    """Test the one-shot reachability probe."""
    with patch("moviemend_sync.connectivity.requests.head") as head:
        assert probe("https://example.test") is True
        head.assert_called_once()

    with patch(
        "moviemend_sync.connectivity.requests.head",
        side_effect=requests.ConnectionError("no route"),
    ):
        assert probe("https://example.test") is False
