"""Tests for order sizing strategies."""

from decimal import Decimal

from mirrorbot.config import CopyStrategy, SizingConfig
from mirrorbot.sizing import compute_size

from tests.mocks.mock_clients import make_trade

TRADER = "0x1111111111111111111111111111111111111111"


class TestComputeSize:
    """Tests for compute_size across the four strategies."""

    def test_percent_usd(self):
        """0.40 x 100 shares ($40) at ratio 0.25 -> $10, 25 shares."""
        trade = make_trade(price="0.40", size="100", usdc_size="40")
        config = SizingConfig(strategy=CopyStrategy.PERCENT_USD, ratio=Decimal("0.25"))

        candidate = compute_size(trade, config)

        assert candidate.notional == Decimal("10")
        assert candidate.size == Decimal("25")
        assert candidate.side == "BUY"
        assert candidate.price == Decimal("0.40")

    def test_percent_shares(self):
        trade = make_trade(price="0.50", size="200", side="SELL")
        config = SizingConfig(strategy=CopyStrategy.PERCENT_SHARES, ratio=Decimal("0.1"))

        candidate = compute_size(trade, config)

        assert candidate.size == Decimal("20")
        assert candidate.notional == Decimal("10")
        assert candidate.side == "SELL"

    def test_fixed_usd_ignores_trade_size(self):
        config = SizingConfig(strategy=CopyStrategy.FIXED_USD, fixed_usd=Decimal("5"))
        small = compute_size(make_trade(price="0.25", size="1"), config)
        large = compute_size(make_trade(price="0.25", size="10000"), config)

        assert small.notional == large.notional == Decimal("5")
        assert small.size == Decimal("20")

    def test_fixed_shares(self):
        config = SizingConfig(strategy=CopyStrategy.FIXED_SHARES, fixed_shares=Decimal("8"))
        candidate = compute_size(make_trade(price="0.75"), config)

        assert candidate.size == Decimal("8")
        assert candidate.notional == Decimal("6")

    def test_per_trader_ratio(self):
        config = SizingConfig(
            strategy=CopyStrategy.PERCENT_USD,
            ratio=Decimal("1"),
            trader_ratios={TRADER: Decimal("0.5")},
        )
        candidate = compute_size(make_trade(price="0.40", size="100", trader=TRADER), config)
        assert candidate.notional == Decimal("20")

    def test_zero_price_unsizeable(self):
        config = SizingConfig(strategy=CopyStrategy.FIXED_USD)
        assert compute_size(make_trade(price="0"), config) is None

    def test_zero_ratio_unsizeable(self):
        config = SizingConfig(strategy=CopyStrategy.PERCENT_USD, ratio=Decimal("0"))
        assert compute_size(make_trade(), config) is None

    def test_zero_usdc_size_unsizeable(self):
        config = SizingConfig(strategy=CopyStrategy.PERCENT_USD)
        assert compute_size(make_trade(usdc_size="0"), config) is None
