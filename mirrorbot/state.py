"""
Persisted State Store

Durable record shared by the mirror loop and the redeem loop:
- lastSeen: per-trader cursor (latest processed trade timestamp)
- seenTrades: fingerprint -> trade timestamp, for exactly-once mirroring
- dailyVolume: UTC day key + BUY notional spent that day
- redeemAttempts: condition id -> last redemption attempt timestamp

The mirror loop only touches cursors, seen trades and daily volume; the
redeem loop only touches redeem attempts. Both persist the whole snapshot.
The loops run their iterations in worker threads, so mutations and
snapshots go through an internal lock.
Saves write a temp file and os.replace() it over the target, so a crash
mid-write never leaves a partial state file behind.
"""

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class StateError(Exception):
    """Raised when an existing state file cannot be read."""
    pass


def day_key_utc(now: float) -> str:
    """UTC calendar day (YYYY-MM-DD) for a unix timestamp."""
    return datetime.fromtimestamp(now, tz=timezone.utc).strftime("%Y-%m-%d")


@dataclass
class DailyVolume:
    day: str = ""
    spent_usd: Decimal = Decimal("0")


@dataclass
class BotState:
    """
    In-memory state snapshot.

    Passed by reference to the engine, the batcher and the runner; only
    mutated through the methods below.
    """
    last_seen: Dict[str, int] = field(default_factory=dict)
    seen_trades: Dict[str, int] = field(default_factory=dict)
    daily_volume: DailyVolume = field(default_factory=DailyVolume)
    redeem_attempts: Dict[str, int] = field(default_factory=dict)
    _lock: Any = field(default_factory=threading.RLock, repr=False, compare=False)

    # Cursors

    def cursor(self, trader: str) -> Optional[int]:
        return self.last_seen.get(trader.lower())

    def advance_cursor(self, trader: str, timestamp: int) -> None:
        """Move a trader's cursor forward. Never moves it backwards."""
        key = trader.lower()
        with self._lock:
            current = self.last_seen.get(key, 0)
            if timestamp > current:
                self.last_seen[key] = timestamp

    # Seen trades

    def has_seen(self, key: str) -> bool:
        return key in self.seen_trades

    def note_seen(self, key: str, timestamp: int) -> None:
        with self._lock:
            self.seen_trades[key] = timestamp

    def prune_seen_trades(self, now: float, max_age_sec: int) -> int:
        """Drop fingerprints older than max_age_sec. Returns how many were dropped."""
        cutoff = int(now) - max_age_sec
        with self._lock:
            stale = [key for key, ts in self.seen_trades.items() if ts < cutoff]
            for key in stale:
                del self.seen_trades[key]
        if stale:
            logger.debug(f"Pruned {len(stale)} seen trades older than {max_age_sec}s")
        return len(stale)

    # Daily volume

    def ensure_daily_volume(self, now: float) -> DailyVolume:
        """Reset the counter if the UTC day rolled over, then return it."""
        key = day_key_utc(now)
        with self._lock:
            if self.daily_volume.day != key:
                if self.daily_volume.day:
                    logger.info(
                        f"UTC day rollover {self.daily_volume.day} -> {key}, "
                        f"resetting daily volume (was ${self.daily_volume.spent_usd:.2f})"
                    )
                self.daily_volume = DailyVolume(day=key, spent_usd=Decimal("0"))
            return self.daily_volume

    def record_spend(self, notional: Decimal, now: float) -> Decimal:
        """Attribute BUY notional to today's counter. Returns the new total."""
        with self._lock:
            volume = self.ensure_daily_volume(now)
            volume.spent_usd += notional
            return volume.spent_usd

    # Redeem attempts

    def record_redeem_attempt(self, condition_id: str, now: float) -> None:
        with self._lock:
            self.redeem_attempts[condition_id] = int(now)

    def last_redeem_attempt(self, condition_id: str) -> int:
        return self.redeem_attempts.get(condition_id, 0)

    # Serialization

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready copy using the on-disk (camelCase) layout."""
        with self._lock:
            return {
                "lastSeen": dict(self.last_seen),
                "seenTrades": dict(self.seen_trades),
                "dailyVolume": {
                    "day": self.daily_volume.day,
                    "spentUsd": float(self.daily_volume.spent_usd),
                },
                "redeemAttempts": dict(self.redeem_attempts),
            }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BotState":
        """Build state from a parsed file; missing sections fall back to defaults."""
        daily = data.get("dailyVolume") or {}
        return cls(
            last_seen={str(k).lower(): int(v) for k, v in (data.get("lastSeen") or {}).items()},
            seen_trades={str(k): int(v) for k, v in (data.get("seenTrades") or {}).items()},
            daily_volume=DailyVolume(
                day=str(daily.get("day", "")),
                spent_usd=Decimal(str(daily.get("spentUsd", 0))),
            ),
            redeem_attempts={str(k): int(v) for k, v in (data.get("redeemAttempts") or {}).items()},
        )


class StateStore:
    """
    JSON file persistence for BotState.

    Absence of a state file is not an error (defaults apply). A file that
    exists but cannot be parsed raises StateError so startup fails loudly
    instead of silently forgetting every seen trade.
    """

    def __init__(self, state_file: str):
        self.state_file = Path(state_file)

    def load(self) -> BotState:
        if not self.state_file.exists():
            logger.info(f"No state file at {self.state_file}, starting fresh")
            return BotState()

        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StateError(f"Failed to read state file {self.state_file}: {e}") from e

        if not isinstance(data, dict):
            raise StateError(f"Invalid state file format in {self.state_file}")

        try:
            state = BotState.from_dict(data)
        except (AttributeError, TypeError, ValueError, InvalidOperation) as e:
            raise StateError(f"Invalid state file contents in {self.state_file}: {e}") from e
        logger.info(
            f"Loaded state: {len(state.last_seen)} cursors, "
            f"{len(state.seen_trades)} seen trades, "
            f"{len(state.redeem_attempts)} redeem attempts"
        )
        return state

    def save(self, state: BotState) -> None:
        """
        Persist a snapshot atomically.

        The snapshot is taken before any I/O, so callers on the event loop
        can hand the write off to a worker thread safely.
        """
        self.write(state.to_dict())

    def write(self, snapshot: Dict[str, Any]) -> None:
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(
            dir=self.state_file.parent,
            prefix=".state_",
            suffix=".json.tmp",
        )
        try:
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                json.dump(snapshot, f, indent=2)
            os.replace(temp_path, self.state_file)
        except BaseException:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
        logger.debug(f"Saved state to {self.state_file}")
