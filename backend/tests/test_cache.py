"""Tests for the per-user query cache."""
from __future__ import annotations

from unittest.mock import MagicMock, patch

from linkgraph.services.cache import QueryCache


def test_loader_called_once_within_ttl():
    cache = QueryCache(ttl_seconds=60)
    loader = MagicMock(return_value=[1, 2])

    assert cache.get_or_load("accepted", "alice", loader) == [1, 2]
    assert cache.get_or_load("accepted", "alice", loader) == [1, 2]

    loader.assert_called_once()
    assert cache.hits == 1
    assert cache.misses == 1
    assert len(cache) == 1


def test_namespaces_and_users_are_separate():
    cache = QueryCache(ttl_seconds=60)
    cache.get_or_load("accepted", "alice", lambda: "a")
    cache.get_or_load("count", "alice", lambda: 1)
    cache.get_or_load("accepted", "bob", lambda: "b")
    assert len(cache) == 3
    assert cache.get_or_load("accepted", "bob", lambda: "other") == "b"


def test_expired_entry_reloaded():
    cache = QueryCache(ttl_seconds=10)
    with patch("linkgraph.services.cache.time.monotonic", return_value=100.0):
        cache.get_or_load("count", "alice", lambda: 1)
    with patch("linkgraph.services.cache.time.monotonic", return_value=111.0):
        assert cache.get_or_load("count", "alice", lambda: 2) == 2
    assert cache.misses == 2


def test_invalidate_users_drops_all_namespaces():
    cache = QueryCache(ttl_seconds=60)
    cache.get_or_load("accepted", "alice", lambda: "a")
    cache.get_or_load("count", "alice", lambda: 1)
    cache.get_or_load("count", "bob", lambda: 2)
    cache.get_or_load("count", "carol", lambda: 3)

    assert cache.invalidate_users("alice", "bob") == 3

    assert len(cache) == 1
    assert cache.get_or_load("count", "carol", lambda: 99) == 3


def test_invalidate_unknown_user():
    assert QueryCache().invalidate_users("nobody") == 0


def test_zero_ttl_disables_caching():
    cache = QueryCache(ttl_seconds=0)
    loader = MagicMock(return_value=5)
    cache.get_or_load("count", "alice", loader)
    cache.get_or_load("count", "alice", loader)
    assert loader.call_count == 2
    assert len(cache) == 0


def test_clear():
    cache = QueryCache()
    cache.get_or_load("count", "alice", lambda: 1)
    cache.clear()
    assert len(cache) == 0
