"""
Mirror Bot Configuration

Validated, frozen dataclass config for the trade mirror and the
redemption sweep. Loaded once at startup from environment variables
(optionally via a .env file) and never mutated afterwards.

All monetary values use Decimal for precision.
Any invalid or missing required value raises ConfigError at startup.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, Optional, Tuple
import os

from dotenv import load_dotenv
from eth_account import Account
from web3 import Web3


class ConfigError(ValueError):
    """Raised when configuration is missing or invalid."""
    pass


class CopyStrategy(str, Enum):
    """How a mirrored order is sized from the observed trade."""

    PERCENT_USD = "PERCENT_USD"
    PERCENT_SHARES = "PERCENT_SHARES"
    FIXED_USD = "FIXED_USD"
    FIXED_SHARES = "FIXED_SHARES"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "CopyStrategy":
        if not raw:
            return cls.PERCENT_USD
        value = raw.strip().upper()
        if value in ("PERCENT", "PERCENT_USD", "PCT_USD", "PROPORTIONAL"):
            return cls.PERCENT_USD
        if value in ("PERCENT_SHARES", "PCT_SHARES"):
            return cls.PERCENT_SHARES
        if value in ("FIXED", "BRUT", "FIXED_USD", "FLAT_USD"):
            return cls.FIXED_USD
        if value in ("FIXED_SHARES", "FLAT_SHARES"):
            return cls.FIXED_SHARES
        raise ConfigError(f"Unsupported COPY_STRATEGY: {raw}")


class RelayerTxType(str, Enum):
    """Smart-wallet flavour the relayer executes redemptions through."""

    SAFE = "SAFE"
    PROXY = "PROXY"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["RelayerTxType"]:
        if not raw:
            return None
        value = raw.strip().upper()
        if value in ("SAFE", "PROXY"):
            return cls(value)
        raise ConfigError(f"Unsupported RELAYER_TX_TYPE: {raw}")


class CopySide(str, Enum):
    """Which sides of the followed traders' activity are mirrored."""

    BUY = "BUY"
    SELL = "SELL"
    BOTH = "BOTH"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "CopySide":
        if not raw:
            return cls.BOTH
        value = raw.strip().upper()
        if value in ("BUY", "SELL"):
            return cls(value)
        if value in ("BOTH", "ALL"):
            return cls.BOTH
        raise ConfigError(f"Unsupported COPY_SIDE: {raw}")

    def allows(self, side: str) -> bool:
        if self is CopySide.BOTH:
            return True
        return self.value == side.upper()


@dataclass(frozen=True, slots=True)
class SizingConfig:
    """
    Order sizing parameters.

    ratio applies to the PERCENT_* strategies, fixed_usd / fixed_shares to
    the FIXED_* strategies. trader_ratios overrides ratio per trader
    (keys are lower-case addresses).
    """
    strategy: CopyStrategy = CopyStrategy.PERCENT_USD
    ratio: Decimal = Decimal("1")
    fixed_usd: Decimal = Decimal("10")
    fixed_shares: Decimal = Decimal("1")
    side: CopySide = CopySide.BOTH
    trader_ratios: Dict[str, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.ratio < Decimal("0"):
            raise ConfigError(f"ratio must be non-negative: {self.ratio}")
        if self.fixed_usd < Decimal("0"):
            raise ConfigError(f"fixed_usd must be non-negative: {self.fixed_usd}")
        if self.fixed_shares < Decimal("0"):
            raise ConfigError(f"fixed_shares must be non-negative: {self.fixed_shares}")

    def ratio_for(self, trader: str) -> Decimal:
        """Per-trader override if configured, else the global ratio."""
        return self.trader_ratios.get(trader.lower(), self.ratio)


@dataclass(frozen=True, slots=True)
class RiskLimits:
    """
    Risk clamp limits.

    Applied in order: per-trade bounds, daily BUY volume, per-position exposure.
    """
    min_trade_usd: Decimal = Decimal("1")
    max_trade_usd: Decimal = Decimal("1000")
    max_daily_volume_usd: Decimal = Decimal("100")
    max_position_size_usd: Decimal = Decimal("100")

    def __post_init__(self) -> None:
        if self.min_trade_usd < Decimal("0"):
            raise ConfigError(f"min_trade_usd must be non-negative: {self.min_trade_usd}")
        if self.max_trade_usd <= Decimal("0"):
            raise ConfigError(f"max_trade_usd must be positive: {self.max_trade_usd}")
        if self.min_trade_usd > self.max_trade_usd:
            raise ConfigError(
                f"min_trade_usd ({self.min_trade_usd}) must be <= max_trade_usd ({self.max_trade_usd})"
            )
        if self.max_daily_volume_usd < Decimal("0"):
            raise ConfigError(f"max_daily_volume_usd must be non-negative: {self.max_daily_volume_usd}")
        if self.max_position_size_usd < Decimal("0"):
            raise ConfigError(f"max_position_size_usd must be non-negative: {self.max_position_size_usd}")


@dataclass(frozen=True, slots=True)
class PollingConfig:
    """Loop pacing and retention windows."""
    poll_interval_ms: int = 5000
    trade_lookback_sec: int = 300
    max_seen_trades_age_sec: int = 60 * 60 * 24 * 7
    position_cache_ttl_sec: float = 30.0
    trades_page_limit: int = 100

    def __post_init__(self) -> None:
        if self.poll_interval_ms <= 0:
            raise ConfigError(f"poll_interval_ms must be positive: {self.poll_interval_ms}")
        if self.trade_lookback_sec < 0:
            raise ConfigError(f"trade_lookback_sec must be non-negative: {self.trade_lookback_sec}")
        if self.max_seen_trades_age_sec < self.trade_lookback_sec:
            raise ConfigError(
                f"max_seen_trades_age_sec ({self.max_seen_trades_age_sec}) must cover "
                f"trade_lookback_sec ({self.trade_lookback_sec})"
            )


@dataclass(frozen=True, slots=True)
class ApiCreds:
    key: str
    secret: str
    passphrase: str


@dataclass(frozen=True, slots=True)
class RedeemConfig:
    """
    Redemption sweep settings.

    tx_type None means "follow SIGNATURE_TYPE" (2 -> SAFE, otherwise PROXY).
    SAFE wallets redeem through the builder relayer, which authenticates
    with either local builder creds or a remote signing server.
    """
    enabled: bool = True
    poll_interval_ms: int = 60000
    cooldown_sec: int = 600
    rpc_url: Optional[str] = None
    relayer_url: str = "https://relayer-v2.polymarket.com"
    tx_type: Optional[RelayerTxType] = None
    builder_creds: Optional[ApiCreds] = None
    builder_signing_url: Optional[str] = None
    builder_signing_token: Optional[str] = None

    def __post_init__(self) -> None:
        if self.poll_interval_ms <= 0:
            raise ConfigError(f"redeem poll_interval_ms must be positive: {self.poll_interval_ms}")
        if self.cooldown_sec < 0:
            raise ConfigError(f"cooldown_sec must be non-negative: {self.cooldown_sec}")

    @property
    def has_builder_auth(self) -> bool:
        return bool(self.builder_creds) or bool(self.builder_signing_url and self.builder_signing_token)


@dataclass(frozen=True, slots=True)
class VenueConfig:
    """
    Venue endpoints and account identity.

    private_key is only required for live order submission and on-chain
    redemption; dry runs can omit it as long as profile_address is set.
    """
    clob_host: str = "https://clob.polymarket.com"
    data_api_host: str = "https://data-api.polymarket.com"
    chain_id: int = 137
    private_key: Optional[str] = None
    signature_type: int = 1
    profile_address: str = ""
    funder_address: Optional[str] = None
    api_creds: Optional[ApiCreds] = None

    def __post_init__(self) -> None:
        if not self.profile_address:
            raise ConfigError("PROFILE_ADDRESS or FUNDER_ADDRESS is required to query your positions.")
        if self.signature_type in (1, 2) and not self.funder_address:
            raise ConfigError("FUNDER_ADDRESS or PROFILE_ADDRESS is required for SIGNATURE_TYPE 1 or 2")


@dataclass(frozen=True, slots=True)
class MirrorConfig:
    """
    Master configuration for the mirror bot.

    Immutable for the process lifetime.
    """
    venue: VenueConfig
    traders: Tuple[str, ...]
    sizing: SizingConfig = field(default_factory=SizingConfig)
    risk: RiskLimits = field(default_factory=RiskLimits)
    polling: PollingConfig = field(default_factory=PollingConfig)
    redeem: RedeemConfig = field(default_factory=RedeemConfig)
    state_file: str = "./data/state.json"
    dry_run: bool = False
    debug: bool = False

    def __post_init__(self) -> None:
        if not self.traders:
            raise ConfigError("COPY_TRADERS is required (comma-separated list)")
        if not self.dry_run and not self.venue.private_key:
            raise ConfigError("Missing required env var: PRIVATE_KEY")
        if self.redeem.enabled and not self.dry_run:
            self._check_live_redeem()

    def _check_live_redeem(self) -> None:
        """
        Redemptions must be sent on behalf of the wallet that holds the positions.

        SIGNATURE_TYPE 0: the key's own address must be the profile.
        SIGNATURE_TYPE 1: PROXY wallet, called through the proxy factory.
        SIGNATURE_TYPE 2: SAFE wallet, executed by the builder relayer.
        """
        tx_type = self.redeem_tx_type
        if tx_type is not RelayerTxType.SAFE and not self.redeem.rpc_url:
            raise ConfigError("RPC_URL is required when AUTO_REDEEM=true")

        signature_type = self.venue.signature_type
        if signature_type == 0:
            owner = Account.from_key(self.venue.private_key).address.lower()
            if owner != self.venue.profile_address.lower():
                raise ConfigError(
                    f"SIGNATURE_TYPE=0 redeems from {owner}, but positions belong to "
                    f"{self.venue.profile_address}. Set AUTO_REDEEM=false or fix PROFILE_ADDRESS."
                )
            return

        expected = RelayerTxType.SAFE if signature_type == 2 else RelayerTxType.PROXY
        if tx_type is not expected:
            raise ConfigError(
                f"RELAYER_TX_TYPE={tx_type.value} does not match SIGNATURE_TYPE={signature_type} "
                f"(expected {expected.value})"
            )
        if tx_type is RelayerTxType.SAFE and not self.redeem.has_builder_auth:
            raise ConfigError(
                "Builder credentials are required to redeem through a SAFE wallet. "
                "Provide BUILDER_API_* or BUILDER_SIGNING_*."
            )

    @property
    def redeem_tx_type(self) -> Optional[RelayerTxType]:
        """Wallet route for redemptions: None for a plain EOA, else PROXY or SAFE."""
        if self.venue.signature_type == 0:
            return None
        if self.redeem.tx_type is not None:
            return self.redeem.tx_type
        return RelayerTxType.SAFE if self.venue.signature_type == 2 else RelayerTxType.PROXY

    @classmethod
    def from_env(cls, dotenv: bool = True, **overrides) -> "MirrorConfig":
        """
        Create config from environment variables.

        Args:
            dotenv: Load a .env file first (existing env vars win)
            **overrides: Top-level field overrides (e.g. dry_run=True from the CLI)
        """
        if dotenv:
            load_dotenv()

        dry_run = overrides.pop("dry_run", None)
        if dry_run is None:
            dry_run = _env_bool("DRY_RUN", False)
        debug = overrides.pop("debug", None)
        if debug is None:
            debug = _env_bool("DEBUG", False)

        private_key = _env("PRIVATE_KEY")
        profile = _checksum("PROFILE_ADDRESS", _env("PROFILE_ADDRESS"))
        funder = _checksum("FUNDER_ADDRESS", _env("FUNDER_ADDRESS"))
        derived = None
        if private_key:
            try:
                derived = Account.from_key(private_key).address
            except Exception as e:
                raise ConfigError(f"Invalid PRIVATE_KEY: {e}") from e

        profile_address = (profile or funder or derived or "").lower()
        funder_address = (funder or profile or "").lower() or None

        api_creds = None
        key, secret, passphrase = _env("CLOB_API_KEY"), _env("CLOB_API_SECRET"), _env("CLOB_API_PASSPHRASE")
        if key and secret and passphrase:
            api_creds = ApiCreds(key=key, secret=secret, passphrase=passphrase)

        traders = tuple(t.lower() for t in _env_list("COPY_TRADERS"))
        for trader in traders:
            _checksum("COPY_TRADERS", trader)

        venue = VenueConfig(
            clob_host=_env("CLOB_HOST") or "https://clob.polymarket.com",
            data_api_host=_env("DATA_API_HOST") or "https://data-api.polymarket.com",
            chain_id=int(_env_decimal("CHAIN_ID", "137")),
            private_key=private_key,
            signature_type=int(_env_decimal("SIGNATURE_TYPE", "1")),
            profile_address=profile_address,
            funder_address=funder_address,
            api_creds=api_creds,
        )

        sizing = SizingConfig(
            strategy=CopyStrategy.parse(_env("COPY_STRATEGY")),
            ratio=_env_decimal("COPY_RATIO", "1"),
            fixed_usd=_env_decimal("FIXED_TRADE_USD", "10"),
            fixed_shares=_env_decimal("FIXED_TRADE_SHARES", "1"),
            side=CopySide.parse(_env("COPY_SIDE")),
            trader_ratios=parse_trader_allocations(_env("TRADER_ALLOCATIONS")),
        )

        risk = RiskLimits(
            min_trade_usd=_env_decimal("MIN_TRADE_USD", "1"),
            max_trade_usd=_env_decimal("MAX_TRADE_USD", "1000"),
            max_daily_volume_usd=_env_decimal("MAX_DAILY_VOLUME_USD"),
            max_position_size_usd=_env_decimal("MAX_POSITION_SIZE_USD"),
        )

        polling = PollingConfig(
            poll_interval_ms=int(_env_decimal("POLL_INTERVAL_MS", "5000")),
            trade_lookback_sec=int(_env_decimal("TRADE_LOOKBACK_SEC", "300")),
            max_seen_trades_age_sec=int(_env_decimal("MAX_SEEN_TRADES_AGE_SEC", str(60 * 60 * 24 * 7))),
        )

        builder_creds = None
        key, secret, passphrase = (
            _env("BUILDER_API_KEY"), _env("BUILDER_API_SECRET"), _env("BUILDER_API_PASSPHRASE")
        )
        if key and secret and passphrase:
            builder_creds = ApiCreds(key=key, secret=secret, passphrase=passphrase)

        redeem = RedeemConfig(
            enabled=_env_bool("AUTO_REDEEM", True),
            poll_interval_ms=int(_env_decimal("REDEEM_POLL_INTERVAL_MS", "60000")),
            cooldown_sec=int(_env_decimal("REDEEM_COOLDOWN_SEC", "600")),
            rpc_url=_env("RPC_URL"),
            relayer_url=_env("RELAYER_URL") or "https://relayer-v2.polymarket.com",
            tx_type=RelayerTxType.parse(_env("RELAYER_TX_TYPE")),
            builder_creds=builder_creds,
            builder_signing_url=_env("BUILDER_SIGNING_URL"),
            builder_signing_token=_env("BUILDER_SIGNING_TOKEN"),
        )

        return cls(
            venue=venue,
            traders=traders,
            sizing=sizing,
            risk=risk,
            polling=polling,
            redeem=redeem,
            state_file=_env("STATE_FILE") or "./data/state.json",
            dry_run=dry_run,
            debug=debug,
            **overrides,
        )

    def describe(self) -> Dict[str, str]:
        """Non-secret summary for startup logging and the CLI."""
        return {
            "mode": "DRY-RUN" if self.dry_run else "LIVE",
            "traders": ", ".join(self.traders),
            "strategy": self.sizing.strategy.value,
            "ratio": str(self.sizing.ratio),
            "side": self.sizing.side.value,
            "trade_usd": f"{self.risk.min_trade_usd}-{self.risk.max_trade_usd}",
            "daily_cap_usd": str(self.risk.max_daily_volume_usd),
            "position_cap_usd": str(self.risk.max_position_size_usd),
            "profile": self.venue.profile_address,
            "auto_redeem": str(self.redeem.enabled),
            "redeem_via": self.redeem_tx_type.value if self.redeem_tx_type else "EOA",
            "state_file": self.state_file,
        }


def parse_trader_allocations(raw: Optional[str]) -> Dict[str, Decimal]:
    """
    Parse "addr=ratio,addr=ratio" into a lower-cased mapping.

    Malformed entries are skipped rather than rejected.
    """
    if not raw:
        return {}
    out: Dict[str, Decimal] = {}
    for entry in raw.split(","):
        address, _, ratio_raw = (part.strip() for part in entry.partition("="))
        if not address or not ratio_raw:
            continue
        try:
            ratio = Decimal(ratio_raw)
        except InvalidOperation:
            continue
        if not ratio.is_finite():
            continue
        out[address.lower()] = ratio
    return out


def _env(name: str) -> Optional[str]:
    value = os.getenv(name)
    return None if value is None or value == "" else value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> list:
    raw = _env(name)
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_decimal(name: str, default: Optional[str] = None) -> Decimal:
    raw = _env(name)
    if raw is None:
        if default is None:
            raise ConfigError(f"Missing required numeric env var: {name}")
        raw = default
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ConfigError(f"Invalid number for {name}: {raw}")
    if not value.is_finite():
        raise ConfigError(f"Invalid number for {name}: {raw}")
    return value


def _checksum(name: str, value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return Web3.to_checksum_address(value)
    except (ValueError, TypeError):
        raise ConfigError(f"Invalid address for {name}: {value}")
