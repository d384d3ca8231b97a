"""Tests for the position cache."""

import pytest

from mirrorbot.clients.data_api import DataApiError
from mirrorbot.positions import PositionCache

from tests.mocks.mock_clients import MockPositions, make_position


class TestPositionCache:

    @pytest.fixture
    def fetch(self):
        return MockPositions([
            make_position(asset="token-1", size="10"),
            make_position(asset="token-2", size="20"),
        ])

    def test_fetches_once_within_ttl(self, fetch):
        cache = PositionCache(fetch, ttl_sec=30)
        cache.get_positions(now=1000)
        cache.get_positions(now=1029)
        assert fetch.calls == 1

    def test_refetches_after_ttl(self, fetch):
        cache = PositionCache(fetch, ttl_sec=30)
        cache.get_positions(now=1000)
        cache.get_positions(now=1030)
        assert fetch.calls == 2

    def test_force_and_invalidate(self, fetch):
        cache = PositionCache(fetch, ttl_sec=30)
        cache.get_positions(now=1000)
        cache.get_positions(now=1001, force=True)
        cache.invalidate()
        cache.get_positions(now=1002)
        assert fetch.calls == 3

    def test_get_by_token(self, fetch):
        cache = PositionCache(fetch)
        assert cache.get_by_token("token-2", now=1000).size == 20
        assert cache.get_by_token("token-9", now=1000) is None

    def test_fetch_error_propagates_and_is_not_cached(self):
        fetch = MockPositions(error=DataApiError("down"))
        cache = PositionCache(fetch)
        with pytest.raises(DataApiError):
            cache.get_positions(now=1000)
        assert not cache.is_fresh(1000)
