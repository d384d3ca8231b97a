"""
Trade Mirror Engine

Polls each followed trader's activity and turns every new trade into at
most one order on the operator's account:

    dedup -> side filter -> sizing -> risk clamps -> submit -> state update

Every trade that gets past the dedup check is marked seen exactly once,
whatever the outcome. A trade that was filtered, unsizeable, rejected by
a clamp, or failed at the venue is never re-evaluated.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

from mirrorbot.clients.data_api import DataApiError
from mirrorbot.config import MirrorConfig
from mirrorbot.execution.executor import FailureKind, OrderExecutor, OrderResult
from mirrorbot.models import ActivityTrade
from mirrorbot.positions import PositionCache
from mirrorbot.risk.pipeline import RiskClampPipeline
from mirrorbot.sizing import compute_size
from mirrorbot.state import BotState

logger = logging.getLogger(__name__)

BALANCE_HINT = (
    "Deposit USDC to your Polymarket account and ensure allowance is set in the Polymarket UI."
)


class MirrorOutcome(str, Enum):
    """Terminal result of evaluating one observed trade."""

    ALREADY_SEEN = "already_seen"
    FILTERED = "filtered"
    UNSIZEABLE = "unsizeable"
    REJECTED = "rejected"
    DRY_RUN = "dry_run"
    SUBMITTED = "submitted"
    EXECUTION_FAILED = "execution_failed"


@dataclass
class MirrorStats:
    """Counters for one pass over all traders."""
    traders_polled: int = 0
    trader_errors: int = 0
    trades_fetched: int = 0
    outcomes: Dict[str, int] = field(default_factory=dict)

    def record(self, outcome: MirrorOutcome) -> None:
        self.outcomes[outcome.value] = self.outcomes.get(outcome.value, 0) + 1

    def count(self, outcome: MirrorOutcome) -> int:
        return self.outcomes.get(outcome.value, 0)

    @property
    def orders_submitted(self) -> int:
        return self.count(MirrorOutcome.SUBMITTED) + self.count(MirrorOutcome.DRY_RUN)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "traders_polled": self.traders_polled,
            "trader_errors": self.trader_errors,
            "trades_fetched": self.trades_fetched,
            "outcomes": dict(self.outcomes),
        }


class TradeMirrorEngine:
    """
    Mirrors followed traders onto the operator's account.

    Mutates the shared BotState (cursors, seen trades, daily spend) but
    never persists it; the runner owns saving.
    """

    def __init__(
        self,
        config: MirrorConfig,
        trade_source: Any,
        executor: OrderExecutor,
        positions: PositionCache,
        state: BotState,
    ):
        """
        Args:
            config: Mirror configuration
            trade_source: Anything with get_trades(user, start, end, limit)
            executor: Order executor (dry-run or live)
            positions: Cache of the operator's own positions
            state: Shared mutable state
        """
        self._config = config
        self._source = trade_source
        self._executor = executor
        self._positions = positions
        self._state = state
        self._pipeline = RiskClampPipeline(config.risk, state, positions)

    @property
    def state(self) -> BotState:
        return self._state

    def handle_trade(self, trade: ActivityTrade, now: float) -> MirrorOutcome:
        """
        Evaluate one observed trade.

        Raises:
            DataApiError: If the position lookup failed. The trade is left
                unmarked so the next poll evaluates it again.
        """
        key = trade.fingerprint().key
        if self._state.has_seen(key):
            return MirrorOutcome.ALREADY_SEEN

        outcome = self._evaluate(trade, now)
        self._state.note_seen(key, trade.timestamp)
        return outcome

    def _evaluate(self, trade: ActivityTrade, now: float) -> MirrorOutcome:
        sizing = self._config.sizing
        if not sizing.side.allows(trade.side):
            logger.debug(f"Skipping {trade.side} from {trade.trader} (COPY_SIDE={sizing.side.value})")
            return MirrorOutcome.FILTERED

        candidate = compute_size(trade, sizing)
        if candidate is None:
            logger.debug(f"Unsizeable trade {trade.transaction_hash} (price={trade.price}, size={trade.size})")
            return MirrorOutcome.UNSIZEABLE

        clamp = self._pipeline.clamp(candidate, trade.asset, now)
        if not clamp.approved:
            logger.info(f"Skipping trade {trade.transaction_hash[:12]}...: {clamp!r}")
            return MirrorOutcome.REJECTED

        order = clamp.candidate
        result = self._submit(trade.asset, order.side, order.price, order.size)

        if not result.success:
            self._log_failure(result)
            return MirrorOutcome.EXECUTION_FAILED

        if result.dry_run:
            logger.info(
                f"DRY_RUN order: {order.side} {order.size:.4f} of {trade.asset[:16]}... "
                f"@ {order.price} (${order.notional:.2f})"
            )
            return MirrorOutcome.DRY_RUN

        if order.is_buy:
            spent = self._state.record_spend(order.notional, now)
            logger.debug(f"Daily volume now ${spent:.2f}")
        logger.info(
            f"Order placed: {order.side} {order.size:.4f} of {trade.asset[:16]}... "
            f"@ {order.price} (${order.notional:.2f}) order={result.order_id}"
        )
        return MirrorOutcome.SUBMITTED

    def _submit(self, token_id: str, side: str, price, size) -> OrderResult:
        try:
            return self._executor.submit_order(token_id, side, price, size)
        except Exception as e:
            return OrderResult(success=False, error=str(e))

    def _log_failure(self, result: OrderResult) -> None:
        if result.failure_kind is FailureKind.BALANCE_OR_ALLOWANCE:
            logger.error(
                f"Order rejected: insufficient USDC balance or allowance "
                f"(profile {self._config.venue.profile_address}). {BALANCE_HINT}"
            )
        logger.warning(f"Order failed: {result.error}")

    def poll_trader(self, trader: str, now: float, stats: Optional[MirrorStats] = None) -> MirrorStats:
        """
        Fetch and mirror one trader's new trades.

        The cursor moves to the newest timestamp in the batch regardless of
        outcomes. If a position lookup fails mid-batch, the cursor stops short
        of the failing trade so it is fetched again next poll.
        """
        stats = stats if stats is not None else MirrorStats()
        stats.traders_polled += 1

        cursor = self._state.cursor(trader)
        start = cursor + 1 if cursor else int(now) - self._config.polling.trade_lookback_sec
        end = int(now)

        logger.debug(f"Polling trader {trader} from {start} to {end}")
        try:
            trades: List[ActivityTrade] = self._source.get_trades(
                trader, start, end, self._config.polling.trades_page_limit
            )
        except Exception as e:
            logger.warning(f"Failed to fetch trades for {trader}: {e}")
            stats.trader_errors += 1
            return stats

        if not trades:
            logger.debug(f"No trades found for {trader}")
            return stats
        stats.trades_fetched += len(trades)

        newest: Optional[int] = None
        failed_at: Optional[int] = None
        for trade in trades:
            try:
                outcome = self.handle_trade(trade, now)
            except DataApiError as e:
                logger.warning(f"Position lookup failed for {trader}, will retry: {e}")
                stats.trader_errors += 1
                failed_at = trade.timestamp
                break
            stats.record(outcome)
            newest = trade.timestamp if newest is None else max(newest, trade.timestamp)

        if failed_at is not None and newest is not None and newest >= failed_at:
            newest = failed_at - 1
        if newest is not None:
            self._state.advance_cursor(trader, newest)

        return stats

    def run_once(self, now: float) -> MirrorStats:
        """
        One pass over every followed trader, in configured order.

        An unexpected error while handling one trader is logged and counted;
        the remaining traders are still polled. That trader keeps its cursor.
        """
        stats = MirrorStats()
        for trader in self._config.traders:
            try:
                self.poll_trader(trader, now, stats)
            except Exception as e:
                logger.error(f"Error mirroring trader {trader}: {e}", exc_info=True)
                stats.trader_errors += 1
        return stats
