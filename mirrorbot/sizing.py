"""
Order sizing for mirrored trades.

Maps an observed trade to a candidate (size, notional) under one of four
strategies. Pure: no state, no I/O. Returns None when the trade cannot be
sized (non-positive price, or a non-positive / non-finite result).
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from mirrorbot.config import CopyStrategy, SizingConfig
from mirrorbot.models import ActivityTrade


@dataclass(frozen=True, slots=True)
class OrderCandidate:
    """A proposed order before risk clamping. size is in shares, notional in USD."""
    side: str
    price: Decimal
    size: Decimal
    notional: Decimal

    def __repr__(self) -> str:
        return f"Candidate({self.side} {self.size:.4f} @ {self.price} = ${self.notional:.2f})"

    @property
    def is_buy(self) -> bool:
        return self.side == "BUY"


def is_positive(value: Optional[Decimal]) -> bool:
    return value is not None and value.is_finite() and value > 0


def compute_size(trade: ActivityTrade, config: SizingConfig) -> Optional[OrderCandidate]:
    """
    Size a mirrored order for trade.

    PERCENT_USD:    notional = trade.usdc_size * ratio,  size = notional / price
    PERCENT_SHARES: size = trade.size * ratio,           notional = size * price
    FIXED_USD:      notional = config.fixed_usd,         size = notional / price
    FIXED_SHARES:   size = config.fixed_shares,          notional = size * price
    """
    price = trade.price
    if not is_positive(price):
        return None

    ratio = config.ratio_for(trade.trader)
    strategy = config.strategy

    if strategy is CopyStrategy.PERCENT_USD:
        notional = trade.usdc_size * ratio
        size = notional / price
    elif strategy is CopyStrategy.PERCENT_SHARES:
        size = trade.size * ratio
        notional = size * price
    elif strategy is CopyStrategy.FIXED_USD:
        notional = config.fixed_usd
        size = notional / price
    elif strategy is CopyStrategy.FIXED_SHARES:
        size = config.fixed_shares
        notional = size * price
    else:
        raise ValueError(f"Unhandled copy strategy: {strategy}")

    if not is_positive(size) or not is_positive(notional):
        return None

    return OrderCandidate(side=trade.side, price=price, size=size, notional=notional)
