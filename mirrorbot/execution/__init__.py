"""
Execution adapters: CLOB order submission and on-chain redemption.
"""

from mirrorbot.execution.executor import (
    ClobOrderExecutor,
    DryRunExecutor,
    ExecutionError,
    FailureKind,
    OrderExecutor,
    OrderResult,
    classify_failure,
    create_executor,
    round_to_tick,
)
from mirrorbot.execution.settlement import (
    DryRunSettlementSubmitter,
    RedeemCalls,
    RelayerSettlementSubmitter,
    SettlementResult,
    SettlementSubmitter,
    Web3SettlementSubmitter,
    create_settlement_submitter,
)

__all__ = [
    "ClobOrderExecutor",
    "DryRunExecutor",
    "ExecutionError",
    "FailureKind",
    "OrderExecutor",
    "OrderResult",
    "classify_failure",
    "create_executor",
    "round_to_tick",
    "DryRunSettlementSubmitter",
    "RedeemCalls",
    "RelayerSettlementSubmitter",
    "SettlementResult",
    "SettlementSubmitter",
    "Web3SettlementSubmitter",
    "create_settlement_submitter",
]
