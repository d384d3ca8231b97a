"""
Order Executor for the mirror bot

Submits a clamped mirror order to the Polymarket CLOB.

Two implementations behind one interface:
- DryRunExecutor: logs the order, never touches the network
- ClobOrderExecutor: GTC limit order via py-clob-client

Failures come back as OrderResult(success=False) rather than exceptions;
the engine logs them with a classification hint and moves on.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR
from enum import Enum
from typing import Any, Callable, Dict, Optional
import logging
import time
import uuid

from mirrorbot.config import VenueConfig

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    BALANCE_OR_ALLOWANCE = "balance_or_allowance"
    BELOW_MIN_SIZE = "below_min_size"
    OTHER = "other"


def classify_failure(message: Optional[str]) -> FailureKind:
    """Bucket a venue error message so the operator gets an actionable hint."""
    text = (message or "").lower()
    if "not enough balance" in text or "allowance" in text:
        return FailureKind.BALANCE_OR_ALLOWANCE
    if "minimum order size" in text:
        return FailureKind.BELOW_MIN_SIZE
    return FailureKind.OTHER


@dataclass(frozen=True, slots=True)
class OrderResult:
    """
    Result of an order submission attempt.
    """
    success: bool
    order_id: Optional[str] = None
    price: Optional[Decimal] = None
    size: Optional[Decimal] = None
    error: Optional[str] = None
    dry_run: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __repr__(self) -> str:
        if self.success:
            mode = "DRY-RUN" if self.dry_run else "LIVE"
            return f"OrderResult({mode}: {self.size}@{self.price}, order={self.order_id})"
        return f"OrderResult(FAILED: {self.error})"

    @property
    def failure_kind(self) -> Optional[FailureKind]:
        if self.success:
            return None
        return classify_failure(self.error)


class ExecutionError(Exception):
    """Raised when the venue rejects an order."""
    pass


class OrderExecutor(ABC):
    """
    Abstract order executor.

    Mock, dry-run and live executors all implement this interface so the
    engine never knows which one it is talking to.
    """

    @abstractmethod
    def submit_order(self, token_id: str, side: str, price: Decimal, size: Decimal) -> OrderResult:
        """
        Submit a limit order.

        Args:
            token_id: Outcome token to trade
            side: 'BUY' or 'SELL'
            price: Limit price (the observed trade's price)
            size: Shares

        Returns:
            OrderResult with outcome
        """
        pass

    @abstractmethod
    def get_name(self) -> str:
        """Return executor name for logging."""
        pass


class DryRunExecutor(OrderExecutor):
    """Logs orders and reports success without placing anything."""

    def __init__(self):
        self.orders: list = []

    def submit_order(self, token_id: str, side: str, price: Decimal, size: Decimal) -> OrderResult:
        self.orders.append((token_id, side, price, size))
        logger.info(f"DRY-RUN: {side} {size:.4f} of {token_id[:16]}... @ {price}")
        return OrderResult(
            success=True,
            order_id=f"dry-{uuid.uuid4().hex[:8]}",
            price=price,
            size=size,
            dry_run=True,
        )

    def get_name(self) -> str:
        return "DryRunExecutor"


@dataclass(frozen=True, slots=True)
class MarketMeta:
    """Per-token order constraints from the order book."""
    tick_size: Decimal
    min_order_size: Decimal
    neg_risk: bool


def round_to_tick(price: Decimal, tick_size: Decimal, side: str) -> Decimal:
    """
    Snap a price onto the tick grid.

    BUY rounds down and SELL rounds up, so the rounded limit is never more
    aggressive than the observed trade.
    """
    if not tick_size.is_finite() or tick_size <= 0:
        return price
    rounding = ROUND_FLOOR if side.upper() == "BUY" else ROUND_CEILING
    ticks = (price / tick_size).to_integral_value(rounding=rounding)
    return (ticks * tick_size).quantize(tick_size)


class ClobOrderExecutor(OrderExecutor):
    """
    Live executor over py-clob-client.

    Posts GTC limit orders at the (tick-rounded) observed price. Order book
    metadata (tick size, min order size, neg-risk flag) is cached per token.
    """

    META_TTL_SEC = 300

    def __init__(
        self,
        client: Any,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            client: Authenticated py_clob_client ClobClient (or a compatible mock)
            clock: Time source for the metadata cache
        """
        self._client = client
        self._clock = clock
        self._meta_cache: Dict[str, tuple] = {}
        logger.info("ClobOrderExecutor initialized in LIVE mode")

    @classmethod
    def from_config(cls, venue: VenueConfig) -> "ClobOrderExecutor":
        """Build an authenticated ClobClient, deriving API creds if none were configured."""
        from py_clob_client.client import ClobClient
        from py_clob_client.clob_types import ApiCreds

        client = ClobClient(
            host=venue.clob_host,
            key=venue.private_key,
            chain_id=venue.chain_id,
            signature_type=venue.signature_type,
            funder=venue.funder_address,
        )
        if venue.api_creds:
            creds = ApiCreds(
                api_key=venue.api_creds.key,
                api_secret=venue.api_creds.secret,
                api_passphrase=venue.api_creds.passphrase,
            )
        else:
            logger.info("Deriving Polymarket API keys")
            creds = client.create_or_derive_api_creds()
            if creds is None or not getattr(creds, "api_key", None):
                raise ExecutionError(
                    "Unable to create or derive API keys. "
                    "Check SIGNATURE_TYPE, PRIVATE_KEY, and FUNDER_ADDRESS/PROFILE_ADDRESS."
                )
        client.set_api_creds(creds)
        return cls(client)

    def get_market_meta(self, token_id: str) -> MarketMeta:
        now = self._clock()
        cached = self._meta_cache.get(token_id)
        if cached and now - cached[1] < self.META_TTL_SEC:
            return cached[0]

        book = self._client.get_order_book(token_id)
        meta = MarketMeta(
            tick_size=Decimal(str(_field(book, "tick_size") or "0.01")),
            min_order_size=Decimal(str(_field(book, "min_order_size") or "0")),
            neg_risk=bool(_field(book, "neg_risk")),
        )
        self._meta_cache[token_id] = (meta, now)
        return meta

    def submit_order(self, token_id: str, side: str, price: Decimal, size: Decimal) -> OrderResult:
        from py_clob_client.clob_types import OrderArgs, OrderType, PartialCreateOrderOptions

        side = side.upper()
        try:
            meta = self.get_market_meta(token_id)
            limit_price = round_to_tick(price, meta.tick_size, side)

            if size < meta.min_order_size:
                logger.warning(
                    f"Order size below minimum: {size:.4f} < {meta.min_order_size} ({token_id[:16]}...)"
                )
                return OrderResult(
                    success=False,
                    error=f"Size {size:.4f} below minimum order size {meta.min_order_size}",
                )

            logger.info(f"LIVE: {side} {size:.4f} of {token_id[:16]}... @ {limit_price}")
            args = OrderArgs(
                token_id=token_id,
                price=float(limit_price),
                size=float(size),
                side=side,
            )
            options = PartialCreateOrderOptions(tick_size=str(meta.tick_size), neg_risk=meta.neg_risk)
            signed = self._client.create_order(args, options)
            response = self._client.post_order(signed, OrderType.GTC)
        except Exception as e:
            return OrderResult(success=False, error=str(e))

        if not isinstance(response, dict):
            return OrderResult(success=False, error=f"Unexpected response: {response}")
        error = response.get("errorMsg") or response.get("error")
        if error or response.get("success") is False:
            return OrderResult(success=False, error=str(error or response))

        order_id = response.get("orderID") or response.get("order_id") or response.get("id")
        return OrderResult(success=True, order_id=order_id, price=limit_price, size=size)

    def get_name(self) -> str:
        return "ClobOrderExecutor"


def _field(obj: Any, name: str) -> Any:
    # Order books come back as objects from py-clob-client, dicts from mocks
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def create_executor(venue: VenueConfig, dry_run: bool) -> OrderExecutor:
    """
    Factory function to create the appropriate executor.

    The live client is only built (and API keys derived) when not in dry-run.
    """
    if dry_run:
        logger.info("Creating DryRunExecutor (DRY_RUN=true)")
        return DryRunExecutor()
    logger.warning("Creating ClobOrderExecutor - REAL ORDERS WILL BE PLACED")
    return ClobOrderExecutor.from_config(venue)
