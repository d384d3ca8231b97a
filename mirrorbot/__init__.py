"""
mirrorbot - Polymarket copy trading.

Mirrors followed traders' trades onto the operator's account with
configurable sizing and risk clamps, and redeems resolved positions.
"""

from mirrorbot.config import ConfigError, CopySide, CopyStrategy, MirrorConfig
from mirrorbot.engine import MirrorOutcome, MirrorStats, TradeMirrorEngine
from mirrorbot.models import ActivityTrade, Position, TradeFingerprint
from mirrorbot.positions import PositionCache
from mirrorbot.redeem.batcher import RedemptionBatcher
from mirrorbot.risk.pipeline import ClampResult, RiskClampPipeline
from mirrorbot.runner import MirrorRunner, RunnerStats
from mirrorbot.sizing import OrderCandidate, compute_size
from mirrorbot.state import BotState, StateError, StateStore

__version__ = "0.1.0"

__all__ = [
    "ActivityTrade",
    "BotState",
    "ClampResult",
    "ConfigError",
    "CopySide",
    "CopyStrategy",
    "MirrorConfig",
    "MirrorOutcome",
    "MirrorRunner",
    "MirrorStats",
    "OrderCandidate",
    "Position",
    "PositionCache",
    "RedemptionBatcher",
    "RiskClampPipeline",
    "RunnerStats",
    "StateError",
    "StateStore",
    "TradeFingerprint",
    "TradeMirrorEngine",
    "compute_size",
]
