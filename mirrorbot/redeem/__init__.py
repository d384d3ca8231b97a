"""
Redemption of resolved positions.
"""

from mirrorbot.redeem.batcher import (
    NegRiskRedemption,
    RedeemReport,
    RedemptionBatcher,
    RedemptionInstruction,
    StandardRedemption,
    build_instructions,
    filter_eligible,
    group_by_condition,
    to_base_units,
)

__all__ = [
    "NegRiskRedemption",
    "RedeemReport",
    "RedemptionBatcher",
    "RedemptionInstruction",
    "StandardRedemption",
    "build_instructions",
    "filter_eligible",
    "group_by_condition",
    "to_base_units",
]
