"""
Short-lived cache of the operator's own positions.

The exposure clamp needs the current holding for each mirrored token. The
cache bounds Data API calls to one per TTL window; a stale value only
makes the exposure clamp slightly off until the next refresh.
"""

import logging
from typing import Callable, List, Optional

from mirrorbot.models import Position

logger = logging.getLogger(__name__)


class PositionCache:
    """TTL cache over a position fetcher. Current time is always passed in."""

    def __init__(
        self,
        fetch_positions: Callable[[], List[Position]],
        ttl_sec: float = 30.0,
    ):
        self._fetch = fetch_positions
        self._ttl = ttl_sec
        self._positions: List[Position] = []
        self._fetched_at: Optional[float] = None

    def is_fresh(self, now: float) -> bool:
        return self._fetched_at is not None and (now - self._fetched_at) < self._ttl

    def invalidate(self) -> None:
        self._fetched_at = None

    def get_positions(self, now: float, force: bool = False) -> List[Position]:
        if not force and self.is_fresh(now):
            return self._positions
        self._positions = list(self._fetch())
        self._fetched_at = now
        logger.debug(f"Refreshed position cache: {len(self._positions)} positions")
        return self._positions

    def get_by_token(self, token_id: str, now: float) -> Optional[Position]:
        for position in self.get_positions(now):
            if position.asset == token_id:
                return position
        return None
