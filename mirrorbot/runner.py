"""
Mirror Bot Runner

Runs two independently paced loops over one shared state:

1. Mirror loop - poll followed traders, mirror new trades, prune, save
2. Redeem loop - sweep redeemable positions, submit redemptions, save

Each iteration runs in a worker thread (network calls block), while the
loops themselves are scheduled together with asyncio.gather. An error in
one iteration is logged and the loop carries on.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from mirrorbot.config import MirrorConfig
from mirrorbot.engine import MirrorOutcome, MirrorStats, TradeMirrorEngine
from mirrorbot.models import Position
from mirrorbot.redeem.batcher import RedeemReport, RedemptionBatcher
from mirrorbot.state import BotState, StateStore

logger = logging.getLogger(__name__)


@dataclass
class RunnerStats:
    """Statistics for the runner session."""
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    mirror_iterations: int = 0
    redeem_iterations: int = 0
    trades_evaluated: int = 0
    orders_submitted: int = 0
    orders_failed: int = 0
    trades_rejected: int = 0
    redemptions_submitted: int = 0
    redemptions_failed: int = 0
    errors: int = 0

    def add_mirror(self, stats: MirrorStats) -> None:
        self.mirror_iterations += 1
        self.trades_evaluated += sum(
            n for outcome, n in stats.outcomes.items() if outcome != MirrorOutcome.ALREADY_SEEN.value
        )
        self.orders_submitted += stats.orders_submitted
        self.orders_failed += stats.count(MirrorOutcome.EXECUTION_FAILED)
        self.trades_rejected += stats.count(MirrorOutcome.REJECTED)

    def add_redeem(self, report: RedeemReport) -> None:
        self.redeem_iterations += 1
        self.redemptions_submitted += report.succeeded
        self.redemptions_failed += report.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "runtime_seconds": (datetime.now(timezone.utc) - self.started_at).total_seconds(),
            "mirror_iterations": self.mirror_iterations,
            "redeem_iterations": self.redeem_iterations,
            "trades_evaluated": self.trades_evaluated,
            "orders_submitted": self.orders_submitted,
            "orders_failed": self.orders_failed,
            "trades_rejected": self.trades_rejected,
            "redemptions_submitted": self.redemptions_submitted,
            "redemptions_failed": self.redemptions_failed,
            "errors": self.errors,
        }


class MirrorRunner:
    """
    Schedules the mirror and redeem loops.

    The redeem loop is skipped entirely when no batcher is given
    (AUTO_REDEEM=false).
    """

    HEARTBEAT_SEC = 30

    def __init__(
        self,
        config: MirrorConfig,
        engine: TradeMirrorEngine,
        state: BotState,
        store: StateStore,
        batcher: Optional[RedemptionBatcher] = None,
        fetch_redeemable: Optional[Callable[[], List[Position]]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            config: Mirror configuration
            engine: Trade mirror engine
            state: Shared state (same object the engine and batcher hold)
            store: Persistence for state
            batcher: Redemption batcher, or None to disable redemption
            fetch_redeemable: Returns the operator's redeemable positions
            clock: Unix time source
        """
        if batcher is not None and fetch_redeemable is None:
            raise ValueError("fetch_redeemable is required when a batcher is given")
        self._config = config
        self._engine = engine
        self._state = state
        self._store = store
        self._batcher = batcher
        self._fetch_redeemable = fetch_redeemable
        self._clock = clock

        self._running = False
        self._stats = RunnerStats()
        self._last_heartbeat = 0.0

    @property
    def stats(self) -> RunnerStats:
        return self._stats

    def stop(self) -> None:
        self._running = False

    def mirror_iteration(self) -> MirrorStats:
        """One mirror pass: poll every trader, prune old fingerprints, save."""
        now = self._clock()
        if now - self._last_heartbeat >= self.HEARTBEAT_SEC:
            logger.info("Polling traders...")
            self._last_heartbeat = now

        stats = self._engine.run_once(now)
        self._state.prune_seen_trades(now, self._config.polling.max_seen_trades_age_sec)
        self._store.save(self._state)
        return stats

    def redeem_iteration(self) -> RedeemReport:
        """One redemption sweep. Saves only when something was eligible."""
        positions = self._fetch_redeemable()
        now = self._clock()
        report = self._batcher.redeem(positions, now)
        if report.eligible:
            logger.info(
                f"Redeem sweep: {report.instructions} market(s), "
                f"{report.succeeded} ok, {report.failed} failed"
            )
            self._store.save(self._state)
        return report

    async def mirror_loop(self, max_iterations: Optional[int] = None) -> None:
        interval = self._config.polling.poll_interval_ms / 1000
        iteration = 0
        while self._running:
            try:
                stats = await asyncio.to_thread(self.mirror_iteration)
                self._stats.add_mirror(stats)
            except asyncio.CancelledError:
                logger.info("Mirror loop cancelled")
                raise
            except Exception as e:
                self._stats.errors += 1
                logger.error(f"Mirror loop error: {e}", exc_info=True)

            iteration += 1
            if max_iterations and iteration >= max_iterations:
                break
            await asyncio.sleep(interval)

    async def redeem_loop(self, max_iterations: Optional[int] = None) -> None:
        if self._batcher is None:
            return
        interval = self._config.redeem.poll_interval_ms / 1000
        iteration = 0
        while self._running:
            try:
                report = await asyncio.to_thread(self.redeem_iteration)
                self._stats.add_redeem(report)
            except asyncio.CancelledError:
                logger.info("Redeem loop cancelled")
                raise
            except Exception as e:
                self._stats.errors += 1
                logger.error(f"Redeem loop error: {e}", exc_info=True)

            iteration += 1
            if max_iterations and iteration >= max_iterations:
                break
            await asyncio.sleep(interval)

    async def run(self, max_iterations: Optional[int] = None) -> RunnerStats:
        """
        Run both loops until stopped.

        Args:
            max_iterations: Per-loop iteration cap (None = run forever)
        """
        self._running = True
        self._stats = RunnerStats()

        logger.info("=" * 60)
        logger.info("MIRROR BOT STARTING")
        logger.info("=" * 60)
        for key, value in self._config.describe().items():
            logger.info(f"{key}: {value}")
        logger.info("=" * 60)

        try:
            await asyncio.gather(
                self.mirror_loop(max_iterations),
                self.redeem_loop(max_iterations),
            )
        finally:
            self._running = False
            logger.info("Mirror bot stopped")
            logger.info(f"Final stats: {self._stats.to_dict()}")

        return self._stats
