"""Tests for mirror bot configuration."""

import pytest
from decimal import Decimal

from eth_account import Account

from mirrorbot.config import (
    ConfigError,
    CopySide,
    CopyStrategy,
    MirrorConfig,
    PollingConfig,
    RiskLimits,
    SizingConfig,
    RelayerTxType,
    parse_trader_allocations,
)

TRADER = "0x" + "a" * 40
PROFILE = "0x" + "b" * 40
PRIVATE_KEY = "0x" + "11" * 32

ENV_VARS = [
    "CLOB_HOST", "DATA_API_HOST", "CHAIN_ID", "PRIVATE_KEY", "SIGNATURE_TYPE",
    "PROFILE_ADDRESS", "FUNDER_ADDRESS", "CLOB_API_KEY", "CLOB_API_SECRET",
    "CLOB_API_PASSPHRASE", "COPY_TRADERS", "TRADER_ALLOCATIONS", "COPY_STRATEGY",
    "COPY_RATIO", "FIXED_TRADE_USD", "FIXED_TRADE_SHARES", "MIN_TRADE_USD",
    "MAX_TRADE_USD", "MAX_DAILY_VOLUME_USD", "MAX_POSITION_SIZE_USD", "COPY_SIDE",
    "POLL_INTERVAL_MS", "TRADE_LOOKBACK_SEC", "STATE_FILE", "DRY_RUN", "DEBUG",
    "AUTO_REDEEM", "REDEEM_POLL_INTERVAL_MS", "REDEEM_COOLDOWN_SEC", "RPC_URL",
    "MAX_SEEN_TRADES_AGE_SEC", "RELAYER_URL", "RELAYER_TX_TYPE", "BUILDER_API_KEY",
    "BUILDER_API_SECRET", "BUILDER_API_PASSPHRASE", "BUILDER_SIGNING_URL",
    "BUILDER_SIGNING_TOKEN",
]


@pytest.fixture
def env(monkeypatch):
    """Minimal valid dry-run environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("COPY_TRADERS", TRADER)
    monkeypatch.setenv("PROFILE_ADDRESS", PROFILE)
    monkeypatch.setenv("MAX_DAILY_VOLUME_USD", "100")
    monkeypatch.setenv("MAX_POSITION_SIZE_USD", "50")
    monkeypatch.setenv("DRY_RUN", "true")
    monkeypatch.setenv("AUTO_REDEEM", "false")
    return monkeypatch


class TestFromEnv:
    """Tests for MirrorConfig.from_env."""

    def test_defaults(self, env):
        """Test defaults for everything not set."""
        config = MirrorConfig.from_env(dotenv=False)

        assert config.dry_run is True
        assert config.traders == (TRADER,)
        assert config.sizing.strategy is CopyStrategy.PERCENT_USD
        assert config.sizing.ratio == Decimal("1")
        assert config.sizing.side is CopySide.BOTH
        assert config.risk.min_trade_usd == Decimal("1")
        assert config.risk.max_trade_usd == Decimal("1000")
        assert config.risk.max_daily_volume_usd == Decimal("100")
        assert config.risk.max_position_size_usd == Decimal("50")
        assert config.polling.poll_interval_ms == 5000
        assert config.polling.trade_lookback_sec == 300
        assert config.redeem.cooldown_sec == 600
        assert config.state_file == "./data/state.json"
        assert config.venue.chain_id == 137
        assert config.venue.profile_address == PROFILE

    def test_traders_lowercased(self, env):
        env.setenv("COPY_TRADERS", "0x" + "A" * 40 + ", " + "0x" + "c" * 40)
        config = MirrorConfig.from_env(dotenv=False)
        assert config.traders == ("0x" + "a" * 40, "0x" + "c" * 40)

    def test_missing_traders(self, env):
        env.delenv("COPY_TRADERS")
        with pytest.raises(ConfigError, match="COPY_TRADERS"):
            MirrorConfig.from_env(dotenv=False)

    def test_invalid_trader_address(self, env):
        env.setenv("COPY_TRADERS", "not-an-address")
        with pytest.raises(ConfigError, match="Invalid address"):
            MirrorConfig.from_env(dotenv=False)

    def test_missing_daily_cap(self, env):
        env.delenv("MAX_DAILY_VOLUME_USD")
        with pytest.raises(ConfigError, match="MAX_DAILY_VOLUME_USD"):
            MirrorConfig.from_env(dotenv=False)

    def test_invalid_number(self, env):
        env.setenv("COPY_RATIO", "lots")
        with pytest.raises(ConfigError, match="COPY_RATIO"):
            MirrorConfig.from_env(dotenv=False)

    def test_live_requires_private_key(self, env):
        env.setenv("DRY_RUN", "false")
        with pytest.raises(ConfigError, match="PRIVATE_KEY"):
            MirrorConfig.from_env(dotenv=False)

    def test_live_redeem_requires_rpc(self, env):
        env.setenv("DRY_RUN", "false")
        env.setenv("PRIVATE_KEY", PRIVATE_KEY)
        env.setenv("AUTO_REDEEM", "true")
        with pytest.raises(ConfigError, match="RPC_URL"):
            MirrorConfig.from_env(dotenv=False)

    def test_profile_derived_from_private_key(self, env):
        """EOA signing (type 0) can run off the key's own address."""
        env.delenv("PROFILE_ADDRESS")
        env.setenv("PRIVATE_KEY", PRIVATE_KEY)
        env.setenv("SIGNATURE_TYPE", "0")
        config = MirrorConfig.from_env(dotenv=False)
        assert config.venue.profile_address == Account.from_key(PRIVATE_KEY).address.lower()
        assert config.venue.funder_address is None

    def test_proxy_signing_requires_funder(self, env):
        env.delenv("PROFILE_ADDRESS")
        env.setenv("PRIVATE_KEY", PRIVATE_KEY)
        with pytest.raises(ConfigError, match="SIGNATURE_TYPE"):
            MirrorConfig.from_env(dotenv=False)

    def test_funder_falls_back_to_profile(self, env):
        config = MirrorConfig.from_env(dotenv=False)
        assert config.venue.funder_address == PROFILE

    def test_cli_override_wins(self, env):
        env.setenv("DRY_RUN", "false")
        env.setenv("PRIVATE_KEY", PRIVATE_KEY)
        config = MirrorConfig.from_env(dotenv=False, dry_run=True, debug=True)
        assert config.dry_run is True
        assert config.debug is True

    def test_api_creds_need_all_three(self, env):
        env.setenv("CLOB_API_KEY", "k")
        env.setenv("CLOB_API_SECRET", "s")
        assert MirrorConfig.from_env(dotenv=False).venue.api_creds is None

        env.setenv("CLOB_API_PASSPHRASE", "p")
        creds = MirrorConfig.from_env(dotenv=False).venue.api_creds
        assert (creds.key, creds.secret, creds.passphrase) == ("k", "s", "p")

    def test_describe_hides_secrets(self, env):
        env.setenv("PRIVATE_KEY", PRIVATE_KEY)
        summary = MirrorConfig.from_env(dotenv=False).describe()
        assert summary["mode"] == "DRY-RUN"
        assert PRIVATE_KEY not in summary.values()


class TestRedeemRoute:
    """Tests for live redemption wallet routing."""

    @pytest.fixture
    def live(self, env):
        env.setenv("DRY_RUN", "false")
        env.setenv("PRIVATE_KEY", PRIVATE_KEY)
        env.setenv("AUTO_REDEEM", "true")
        env.setenv("RPC_URL", "http://localhost:8545")
        return env

    def test_default_proxy_wallet(self, live):
        config = MirrorConfig.from_env(dotenv=False)
        assert config.venue.signature_type == 1
        assert config.redeem_tx_type is RelayerTxType.PROXY
        assert config.redeem.relayer_url == "https://relayer-v2.polymarket.com"
        assert config.describe()["redeem_via"] == "PROXY"

    def test_safe_requires_builder_creds(self, live):
        live.setenv("SIGNATURE_TYPE", "2")
        with pytest.raises(ConfigError, match="Builder credentials"):
            MirrorConfig.from_env(dotenv=False)

    def test_safe_with_local_builder_creds(self, live):
        live.setenv("SIGNATURE_TYPE", "2")
        live.delenv("RPC_URL")
        live.setenv("BUILDER_API_KEY", "bk")
        live.setenv("BUILDER_API_SECRET", "bs")
        live.setenv("BUILDER_API_PASSPHRASE", "bp")
        config = MirrorConfig.from_env(dotenv=False)
        assert config.redeem_tx_type is RelayerTxType.SAFE
        assert config.redeem.builder_creds.key == "bk"

    def test_safe_with_remote_signing(self, live):
        live.setenv("SIGNATURE_TYPE", "2")
        live.setenv("BUILDER_SIGNING_URL", "https://signer.example.com/sign")
        live.setenv("BUILDER_SIGNING_TOKEN", "token")
        assert MirrorConfig.from_env(dotenv=False).redeem.has_builder_auth

    def test_tx_type_must_match_signature_type(self, live):
        live.setenv("RELAYER_TX_TYPE", "safe")
        with pytest.raises(ConfigError, match="does not match SIGNATURE_TYPE=1"):
            MirrorConfig.from_env(dotenv=False)

    def test_eoa_must_own_positions(self, live):
        """Type 0 redeems from the key's address, so the profile must be that address."""
        live.setenv("SIGNATURE_TYPE", "0")
        with pytest.raises(ConfigError, match="positions belong to"):
            MirrorConfig.from_env(dotenv=False)

    def test_eoa_own_profile(self, live):
        live.setenv("SIGNATURE_TYPE", "0")
        live.delenv("PROFILE_ADDRESS")
        config = MirrorConfig.from_env(dotenv=False)
        assert config.redeem_tx_type is None
        assert config.describe()["redeem_via"] == "EOA"

    def test_route_not_checked_without_redeem(self, live):
        live.setenv("SIGNATURE_TYPE", "2")
        live.setenv("AUTO_REDEEM", "false")
        assert MirrorConfig.from_env(dotenv=False).redeem_tx_type is RelayerTxType.SAFE

    def test_unknown_tx_type(self, live):
        live.setenv("RELAYER_TX_TYPE", "MULTISIG")
        with pytest.raises(ConfigError, match="RELAYER_TX_TYPE"):
            MirrorConfig.from_env(dotenv=False)


class TestEnums:
    """Tests for strategy and side parsing."""

    @pytest.mark.parametrize("raw,expected", [
        (None, CopyStrategy.PERCENT_USD),
        ("percent", CopyStrategy.PERCENT_USD),
        ("PROPORTIONAL", CopyStrategy.PERCENT_USD),
        ("pct_shares", CopyStrategy.PERCENT_SHARES),
        ("BRUT", CopyStrategy.FIXED_USD),
        ("fixed", CopyStrategy.FIXED_USD),
        ("FLAT_SHARES", CopyStrategy.FIXED_SHARES),
    ])
    def test_strategy_aliases(self, raw, expected):
        assert CopyStrategy.parse(raw) is expected

    def test_unknown_strategy(self):
        with pytest.raises(ConfigError):
            CopyStrategy.parse("MARTINGALE")

    def test_side_filter(self):
        assert CopySide.parse("all") is CopySide.BOTH
        assert CopySide.BOTH.allows("SELL")
        assert CopySide.BUY.allows("buy")
        assert not CopySide.BUY.allows("SELL")

    def test_unknown_side(self):
        with pytest.raises(ConfigError):
            CopySide.parse("SIDEWAYS")


class TestValidation:
    """Tests for dataclass validation."""

    def test_min_above_max_trade(self):
        with pytest.raises(ConfigError, match="min_trade_usd"):
            RiskLimits(min_trade_usd=Decimal("50"), max_trade_usd=Decimal("10"))

    def test_negative_ratio(self):
        with pytest.raises(ConfigError):
            SizingConfig(ratio=Decimal("-0.5"))

    def test_retention_must_cover_lookback(self):
        with pytest.raises(ConfigError, match="max_seen_trades_age_sec"):
            PollingConfig(trade_lookback_sec=600, max_seen_trades_age_sec=300)

    def test_trader_ratio_override(self):
        sizing = SizingConfig(ratio=Decimal("0.5"), trader_ratios={TRADER: Decimal("0.1")})
        assert sizing.ratio_for(TRADER.upper().replace("0X", "0x")) == Decimal("0.1")
        assert sizing.ratio_for("0x" + "c" * 40) == Decimal("0.5")


class TestTraderAllocations:
    """Tests for TRADER_ALLOCATIONS parsing."""

    def test_parse(self):
        parsed = parse_trader_allocations(f"{TRADER.upper()}=0.25, 0xabc=1.5")
        assert parsed[TRADER.upper().lower()] == Decimal("0.25")
        assert parsed["0xabc"] == Decimal("1.5")

    def test_malformed_entries_skipped(self):
        parsed = parse_trader_allocations("0xabc=,=0.5,0xdef=nope,0x123=0.2")
        assert parsed == {"0x123": Decimal("0.2")}

    def test_empty(self):
        assert parse_trader_allocations(None) == {}
        assert parse_trader_allocations("") == {}
