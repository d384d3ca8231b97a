"""
Venue data models.

ActivityTrade and Position mirror the Polymarket Data API payloads
(/activity and /positions). Both are immutable once parsed; numeric
fields are Decimal so sizing and clamping never touch binary floats.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ActivityTrade(BaseModel):
    """
    A single trade observed on a followed trader's activity feed.

    Example payload (trimmed):
        {"proxyWallet": "0xabc...", "timestamp": 1700000000, "side": "BUY",
         "asset": "1234...", "size": 100, "usdcSize": 40, "price": 0.4,
         "transactionHash": "0xdef...", "conditionId": "0x99...", "outcomeIndex": 0}
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    proxy_wallet: str = Field(..., alias="proxyWallet")
    timestamp: int
    condition_id: str = Field("", alias="conditionId")
    type: str = "TRADE"
    size: Decimal
    usdc_size: Decimal = Field(..., alias="usdcSize")
    transaction_hash: str = Field(..., alias="transactionHash")
    price: Decimal
    asset: str
    side: str
    outcome_index: int = Field(0, alias="outcomeIndex")
    outcome: Optional[str] = None
    title: Optional[str] = None
    slug: Optional[str] = None
    event_slug: Optional[str] = Field(None, alias="eventSlug")

    @field_validator("side")
    @classmethod
    def validate_side(cls, v: str) -> str:
        side = v.upper()
        if side not in ("BUY", "SELL"):
            raise ValueError(f"Invalid side: {v}. Must be 'BUY' or 'SELL'")
        return side

    @field_validator("size", "usdc_size", "price", mode="before")
    @classmethod
    def coerce_decimal(cls, v):
        # Floats from JSON go through str() so 0.4 stays 0.4
        if isinstance(v, float):
            return Decimal(str(v))
        return v

    @property
    def trader(self) -> str:
        return self.proxy_wallet.lower()

    @property
    def is_buy(self) -> bool:
        return self.side == "BUY"

    def fingerprint(self) -> "TradeFingerprint":
        return TradeFingerprint(
            transaction_hash=self.transaction_hash,
            asset=self.asset,
            side=self.side,
            size=self.size,
            price=self.price,
        )


class Position(BaseModel):
    """A holding of the operator's account in one market outcome."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    condition_id: str = Field(..., alias="conditionId")
    asset: str
    outcome_index: int = Field(0, alias="outcomeIndex")
    size: Decimal
    avg_price: Optional[Decimal] = Field(None, alias="avgPrice")
    cur_price: Optional[Decimal] = Field(None, alias="curPrice")
    redeemable: bool = False
    negative_risk: bool = Field(False, alias="negativeRisk")
    outcome: Optional[str] = None

    @field_validator("size", "avg_price", "cur_price", mode="before")
    @classmethod
    def coerce_decimal(cls, v):
        if isinstance(v, float):
            return Decimal(str(v))
        return v

    def value_usd(self, fallback_price: Decimal) -> Decimal:
        """Mark-to-market value: current price, then average price, then the fallback."""
        price = self.cur_price
        if price is None:
            price = self.avg_price
        if price is None:
            price = fallback_price
        return price * self.size


@dataclass(frozen=True, slots=True)
class TradeFingerprint:
    """
    Identity of an observed trade for exactly-once mirroring.

    Two observations with the same fingerprint are the same trade.
    """
    transaction_hash: str
    asset: str
    side: str
    size: Decimal
    price: Decimal

    @property
    def key(self) -> str:
        return (
            f"{self.transaction_hash}:{self.asset}:{self.side}:"
            f"{_plain_number(self.size)}:{_plain_number(self.price)}"
        )

    def __str__(self) -> str:
        return self.key


def _plain_number(value: Decimal) -> str:
    # 100, 100.0 and 1E+2 must all key the same way: "100"
    return format(value.normalize(), "f")
