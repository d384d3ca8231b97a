"""
Risk Clamp Pipeline for mirrored orders.

Three ordered stages. Each stage either passes the candidate through,
shrinks it, or rejects it:

1. Trade bounds     - min / max notional per order
2. Daily volume     - BUY notional per UTC day (SELL passes untouched)
3. Position exposure - BUY: cap value held per token; SELL: never sell more than held

A rejected candidate never reaches a later stage, and no stage ever
increases notional. Stages look only at (side, price, size, notional),
never at which sizing strategy produced the candidate.
"""

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional
import logging

from mirrorbot.config import RiskLimits
from mirrorbot.positions import PositionCache
from mirrorbot.sizing import OrderCandidate, is_positive
from mirrorbot.state import BotState

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ClampResult:
    """
    Outcome of a clamp stage (or of the whole pipeline).

    approved: Whether the candidate survives
    candidate: The (possibly shrunk) candidate when approved
    reason: Human-readable explanation
    blocked_by: Which stage rejected it (if rejected)
    """
    approved: bool
    reason: str
    candidate: Optional[OrderCandidate] = None
    blocked_by: Optional[str] = None
    adjusted: bool = False

    def __repr__(self) -> str:
        if self.approved:
            if self.adjusted:
                return f"APPROVED (adjusted to {self.candidate}): {self.reason}"
            return f"APPROVED: {self.reason}"
        return f"BLOCKED by {self.blocked_by}: {self.reason}"

    @property
    def size(self) -> Optional[Decimal]:
        return self.candidate.size if self.candidate else None

    @property
    def notional(self) -> Optional[Decimal]:
        return self.candidate.notional if self.candidate else None

    @classmethod
    def passed(cls, candidate: OrderCandidate, reason: str, adjusted: bool = False) -> "ClampResult":
        return cls(approved=True, reason=reason, candidate=candidate, adjusted=adjusted)

    @classmethod
    def blocked(cls, stage: str, reason: str) -> "ClampResult":
        return cls(approved=False, reason=reason, blocked_by=stage)


def shrink_to_notional(candidate: OrderCandidate, notional: Decimal) -> OrderCandidate:
    """Cap notional and recompute size at the candidate's price."""
    return replace(candidate, notional=notional, size=notional / candidate.price)


def shrink_to_size(candidate: OrderCandidate, size: Decimal) -> OrderCandidate:
    """Cap size and recompute notional at the candidate's price."""
    return replace(candidate, size=size, notional=size * candidate.price)


class RiskClampPipeline:
    """
    Sequential clamp stages over an OrderCandidate.

    Reads the daily volume counter from the shared state and the operator's
    holdings from the position cache. Never writes spend: the engine records
    spend only after a successful submission.
    """

    TRADE_BOUNDS = "trade_bounds"
    DAILY_VOLUME = "daily_volume"
    POSITION_EXPOSURE = "position_exposure"

    def __init__(self, limits: RiskLimits, state: BotState, positions: PositionCache):
        self._limits = limits
        self._state = state
        self._positions = positions

    def clamp(self, candidate: OrderCandidate, token_id: str, now: float) -> ClampResult:
        """Run all three stages. Stops at the first rejection."""
        adjusted = False
        stages = (
            lambda c: self.clamp_trade_bounds(c),
            lambda c: self.clamp_daily_volume(c, now),
            lambda c: self.clamp_position(c, token_id, now),
        )
        result = ClampResult.passed(candidate, "no stages run")
        for stage in stages:
            result = stage(result.candidate)
            if not result.approved:
                logger.debug(f"Clamp rejected {candidate!r}: {result!r}")
                return result
            adjusted = adjusted or result.adjusted

        return ClampResult.passed(
            result.candidate,
            f"Approved: {result.candidate!r}",
            adjusted=adjusted,
        )

    def clamp_trade_bounds(self, candidate: OrderCandidate) -> ClampResult:
        """Stage 1: reject below min_trade_usd, shrink above max_trade_usd."""
        limits = self._limits
        if candidate.notional < limits.min_trade_usd:
            return ClampResult.blocked(
                self.TRADE_BOUNDS,
                f"Notional ${candidate.notional:.2f} below minimum ${limits.min_trade_usd}",
            )

        if candidate.notional > limits.max_trade_usd:
            shrunk = shrink_to_notional(candidate, limits.max_trade_usd)
            if not is_positive(shrunk.size):
                return ClampResult.blocked(self.TRADE_BOUNDS, "Size not positive after max-trade cap")
            return ClampResult.passed(
                shrunk,
                f"Capped at max trade ${limits.max_trade_usd}",
                adjusted=True,
            )

        return ClampResult.passed(candidate, "Within trade bounds")

    def clamp_daily_volume(self, candidate: OrderCandidate, now: float) -> ClampResult:
        """Stage 2: BUY notional may not exceed what is left of today's cap."""
        if not candidate.is_buy:
            return ClampResult.passed(candidate, "SELL not subject to daily volume")

        volume = self._state.ensure_daily_volume(now)
        remaining = self._limits.max_daily_volume_usd - volume.spent_usd
        if remaining <= 0:
            return ClampResult.blocked(
                self.DAILY_VOLUME,
                f"Daily volume cap reached: ${volume.spent_usd:.2f} / ${self._limits.max_daily_volume_usd}",
            )

        if candidate.notional > remaining:
            shrunk = shrink_to_notional(candidate, remaining)
            if shrunk.notional < self._limits.min_trade_usd:
                return ClampResult.blocked(
                    self.DAILY_VOLUME,
                    f"Remaining daily volume ${remaining:.2f} below minimum ${self._limits.min_trade_usd}",
                )
            return ClampResult.passed(shrunk, f"Shrunk to remaining daily volume ${remaining:.2f}", adjusted=True)

        return ClampResult.passed(candidate, "Within daily volume")

    def clamp_position(self, candidate: OrderCandidate, token_id: str, now: float) -> ClampResult:
        """
        Stage 3: per-token exposure.

        BUY: current value is priced at curPrice, then avgPrice, then the
        trade price; the order may only fill the gap up to the cap.
        SELL: we can only sell what we hold.
        """
        position = self._positions.get_by_token(token_id, now)

        if candidate.is_buy:
            current_value = position.value_usd(candidate.price) if position else Decimal("0")
            remaining = self._limits.max_position_size_usd - current_value
            if remaining <= 0:
                return ClampResult.blocked(
                    self.POSITION_EXPOSURE,
                    f"Position cap reached for {token_id[:16]}: ${current_value:.2f} / ${self._limits.max_position_size_usd}",
                )
            if candidate.notional > remaining:
                shrunk = shrink_to_notional(candidate, remaining)
                if shrunk.notional < self._limits.min_trade_usd:
                    return ClampResult.blocked(
                        self.POSITION_EXPOSURE,
                        f"Remaining position room ${remaining:.2f} below minimum ${self._limits.min_trade_usd}",
                    )
                return ClampResult.passed(shrunk, f"Shrunk to position room ${remaining:.2f}", adjusted=True)
            return ClampResult.passed(candidate, "Within position cap")

        if position is None or position.size <= 0:
            return ClampResult.blocked(self.POSITION_EXPOSURE, f"No position to sell in {token_id[:16]}")

        if candidate.size > position.size:
            shrunk = shrink_to_size(candidate, position.size)
            if shrunk.notional < self._limits.min_trade_usd:
                return ClampResult.blocked(
                    self.POSITION_EXPOSURE,
                    f"Held position ${shrunk.notional:.2f} below minimum ${self._limits.min_trade_usd}",
                )
            return ClampResult.passed(shrunk, f"Clamped to held size {position.size}", adjusted=True)

        return ClampResult.passed(candidate, "Within held size")
