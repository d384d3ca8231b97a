"""
Risk clamping for mirrored orders.

Per-trade bounds, daily BUY volume, per-position exposure.
"""

from mirrorbot.risk.pipeline import (
    ClampResult,
    RiskClampPipeline,
    shrink_to_notional,
    shrink_to_size,
)

__all__ = [
    "ClampResult",
    "RiskClampPipeline",
    "shrink_to_notional",
    "shrink_to_size",
]
