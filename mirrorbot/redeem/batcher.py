"""
Redemption Batcher

Collapses redeemable positions into one settlement instruction per market
(condition id). A market with any negative-risk position is redeemed
through the NegRiskAdapter with aggregate per-outcome amounts; every other
market gets a plain binary redemption. The two routes never merge.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import TYPE_CHECKING, Dict, Iterable, List, Tuple, Union
import logging

from mirrorbot.models import Position
from mirrorbot.state import BotState

if TYPE_CHECKING:
    from mirrorbot.execution.settlement import SettlementResult, SettlementSubmitter

logger = logging.getLogger(__name__)

BASE_UNIT_DECIMALS = 6


def to_base_units(amount: Decimal, decimals: int = BASE_UNIT_DECIMALS) -> int:
    """Shares -> integer base units, rounded half up. Negative or non-finite -> 0."""
    if not amount.is_finite():
        return 0
    scaled = (amount * (Decimal(10) ** decimals)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(0, int(scaled))


@dataclass(frozen=True, slots=True)
class StandardRedemption:
    """Binary market redemption via the Conditional Tokens contract."""
    condition_id: str

    def __repr__(self) -> str:
        return f"StandardRedemption({self.condition_id})"


@dataclass(frozen=True, slots=True)
class NegRiskRedemption:
    """
    Negative-risk market redemption via the NegRiskAdapter.

    amounts: [outcome 0 base units, all other outcomes base units]
    """
    condition_id: str
    amounts: Tuple[int, int]

    def __repr__(self) -> str:
        return f"NegRiskRedemption({self.condition_id}, amounts={list(self.amounts)})"


RedemptionInstruction = Union[StandardRedemption, NegRiskRedemption]


@dataclass
class RedeemReport:
    """What one sweep did."""
    eligible: int = 0
    instructions: int = 0
    succeeded: int = 0
    failed: int = 0
    tx_hashes: List[str] = field(default_factory=list)
    attempted_conditions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "eligible": self.eligible,
            "instructions": self.instructions,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "tx_hashes": list(self.tx_hashes),
        }


def group_by_condition(positions: Iterable[Position]) -> Dict[str, List[Position]]:
    """Redeemable positions keyed by condition id, in first-seen order."""
    groups: Dict[str, List[Position]] = {}
    for position in positions:
        if not position.redeemable:
            continue
        groups.setdefault(position.condition_id, []).append(position)
    return groups


def neg_risk_amounts(group: Iterable[Position]) -> Tuple[int, int]:
    yes = Decimal("0")
    no = Decimal("0")
    for position in group:
        if position.outcome_index == 0:
            yes += position.size
        else:
            no += position.size
    return (to_base_units(yes), to_base_units(no))


def build_instructions(positions: Iterable[Position]) -> List[RedemptionInstruction]:
    """One instruction per condition id; negative-risk if any member is flagged."""
    instructions: List[RedemptionInstruction] = []
    for condition_id, group in group_by_condition(positions).items():
        if any(p.negative_risk for p in group):
            instructions.append(NegRiskRedemption(condition_id, neg_risk_amounts(group)))
        else:
            instructions.append(StandardRedemption(condition_id))
    return instructions


def filter_eligible(
    positions: Iterable[Position],
    state: BotState,
    now: float,
    cooldown_sec: int,
) -> List[Position]:
    """Redeemable positions whose market was last attempted more than cooldown_sec ago."""
    return [
        p for p in positions
        if p.redeemable and now - state.last_redeem_attempt(p.condition_id) > cooldown_sec
    ]


class RedemptionBatcher:
    """
    Runs a redemption sweep over the operator's positions.

    Every condition id in an eligible batch gets an attempt timestamp
    whether or not its transaction succeeded; the cooldown then keeps a
    failing market from being retried every poll.
    """

    def __init__(self, submitter: "SettlementSubmitter", state: BotState, cooldown_sec: int = 600):
        self._submitter = submitter
        self._state = state
        self._cooldown = cooldown_sec

    def redeem(self, positions: Iterable[Position], now: float) -> RedeemReport:
        eligible = filter_eligible(positions, self._state, now, self._cooldown)
        report = RedeemReport(eligible=len(eligible))
        if not eligible:
            return report

        instructions = build_instructions(eligible)
        report.instructions = len(instructions)
        for instruction in instructions:
            result: "SettlementResult" = self._submitter.submit(instruction)
            if result.success:
                report.succeeded += 1
                if result.tx_hash:
                    report.tx_hashes.append(result.tx_hash)
                logger.info(f"Redeem executed: {instruction!r} tx={result.tx_hash}")
            else:
                report.failed += 1
                logger.warning(f"Redeem failed: {instruction!r}: {result.error}")

        for instruction in instructions:
            self._state.record_redeem_attempt(instruction.condition_id, now)
            report.attempted_conditions.append(instruction.condition_id)

        return report
