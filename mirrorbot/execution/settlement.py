"""
Settlement submitter for redemption instructions.

Turns a StandardRedemption / NegRiskRedemption into an on-chain
redeemPositions call:
- standard markets go to the Conditional Tokens contract with index sets [1, 2]
- negative-risk markets go to the NegRiskAdapter with per-outcome amounts

The call is sent on behalf of whichever wallet holds the positions:
- EOA (SIGNATURE_TYPE 0): signed and sent by the key directly
- PROXY (SIGNATURE_TYPE 1): wrapped in ProxyWalletFactory.proxy() from the key
- SAFE (SIGNATURE_TYPE 2): executed through the builder relayer

Failures are returned, never raised, so one bad market cannot stop the sweep.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Tuple
import logging
import uuid

from mirrorbot.config import MirrorConfig, RedeemConfig, RelayerTxType, VenueConfig
from mirrorbot.redeem.batcher import NegRiskRedemption, RedemptionInstruction, StandardRedemption

logger = logging.getLogger(__name__)

CTF_ADDRESS = "0x4d97dcd97ec945f40cf65f87097ace5ea0476045"
USDC_ADDRESS = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"
NEG_RISK_ADAPTER = "0xd91E80cF2E7be2e162c6513ceD06f1dD0dA35296"
PROXY_FACTORY_ADDRESS = "0xaB45c5A4B0c941a2F231C04C3f49182e1A254052"

PARENT_COLLECTION_ID = b"\x00" * 32
BINARY_INDEX_SETS = [1, 2]
CALL_TYPE_CODE = 1

CTF_REDEEM_ABI = [
    {"inputs": [{"name": "collateralToken", "type": "address"},
                {"name": "parentCollectionId", "type": "bytes32"},
                {"name": "conditionId", "type": "bytes32"},
                {"name": "indexSets", "type": "uint256[]"}],
     "name": "redeemPositions", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
]

NEG_RISK_REDEEM_ABI = [
    {"inputs": [{"name": "_conditionId", "type": "bytes32"},
                {"name": "_amounts", "type": "uint256[]"}],
     "name": "redeemPositions", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
]

PROXY_FACTORY_ABI = [
    {"inputs": [{"components": [{"name": "to", "type": "address"},
                                {"name": "typeCode", "type": "uint256"},
                                {"name": "data", "type": "bytes"},
                                {"name": "value", "type": "uint256"}],
                 "name": "_txns", "type": "tuple[]"}],
     "name": "proxy", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
]


@dataclass(frozen=True, slots=True)
class SettlementResult:
    """Outcome of one redemption submission."""
    success: bool
    condition_id: str
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    dry_run: bool = False

    def __repr__(self) -> str:
        if self.success:
            mode = "DRY-RUN" if self.dry_run else "LIVE"
            return f"SettlementResult({mode}: {self.condition_id[:12]}... tx={self.tx_hash})"
        return f"SettlementResult(FAILED {self.condition_id[:12]}...: {self.error})"


class SettlementSubmitter(ABC):
    """Submits one redemption instruction."""

    @abstractmethod
    def submit(self, instruction: RedemptionInstruction) -> SettlementResult:
        pass


class DryRunSettlementSubmitter(SettlementSubmitter):
    """Logs instructions instead of sending transactions."""

    def __init__(self):
        self.submitted: list = []

    def submit(self, instruction: RedemptionInstruction) -> SettlementResult:
        self.submitted.append(instruction)
        logger.info(f"DRY-RUN redeem: {instruction!r}")
        return SettlementResult(
            success=True,
            condition_id=instruction.condition_id,
            tx_hash=f"dry-{uuid.uuid4().hex[:8]}",
            dry_run=True,
        )


class RedeemCalls:
    """
    Contract bindings for the two redeemPositions entry points.

    Works without a provider: encode() only needs the ABIs.
    """

    def __init__(self, w3: Any):
        from web3 import Web3

        self.ctf = w3.eth.contract(address=Web3.to_checksum_address(CTF_ADDRESS), abi=CTF_REDEEM_ABI)
        self.neg_risk = w3.eth.contract(
            address=Web3.to_checksum_address(NEG_RISK_ADAPTER), abi=NEG_RISK_REDEEM_ABI
        )
        self.collateral = Web3.to_checksum_address(USDC_ADDRESS)

    def _route(self, instruction: RedemptionInstruction) -> Tuple[Any, list]:
        from web3 import Web3

        if isinstance(instruction, NegRiskRedemption):
            condition = Web3.to_bytes(hexstr=instruction.condition_id)
            return self.neg_risk, [condition, list(instruction.amounts)]
        if isinstance(instruction, StandardRedemption):
            condition = Web3.to_bytes(hexstr=instruction.condition_id)
            return self.ctf, [self.collateral, PARENT_COLLECTION_ID, condition, BINARY_INDEX_SETS]
        raise TypeError(f"Unknown redemption instruction: {instruction!r}")

    def function(self, instruction: RedemptionInstruction) -> Any:
        """Contract function call, ready for build_transaction."""
        contract, args = self._route(instruction)
        return contract.functions.redeemPositions(*args)

    def encode(self, instruction: RedemptionInstruction) -> Tuple[str, str]:
        """(target address, calldata hex) for wrapping in a wallet transaction."""
        contract, args = self._route(instruction)
        return contract.address, contract.encode_abi("redeemPositions", args=args)


class Web3SettlementSubmitter(SettlementSubmitter):
    """
    Signs and sends redeemPositions transactions from the operator's key.

    With via_proxy_factory the call is wrapped in ProxyWalletFactory.proxy(),
    so it executes from the key's Polymarket proxy wallet (SIGNATURE_TYPE 1),
    which is where the positions live. Otherwise the key's own address
    redeems (SIGNATURE_TYPE 0).

    One transaction per instruction, waiting for the receipt before
    returning. A reverted receipt counts as a failure.
    """

    GAS_LIMIT = 300_000
    RECEIPT_TIMEOUT_SEC = 120

    def __init__(self, w3: Any, account: Any, via_proxy_factory: bool = False):
        """
        Args:
            w3: Connected Web3 instance
            account: Signer with .address and .sign_transaction (eth_account LocalAccount)
            via_proxy_factory: Route calls through the operator's proxy wallet
        """
        from web3 import Web3

        self._w3 = w3
        self._account = account
        self._calls = RedeemCalls(w3)
        self._factory = None
        if via_proxy_factory:
            self._factory = w3.eth.contract(
                address=Web3.to_checksum_address(PROXY_FACTORY_ADDRESS), abi=PROXY_FACTORY_ABI
            )

    @classmethod
    def from_rpc(
        cls,
        rpc_url: str,
        private_key: str,
        chain_id: int = 137,
        via_proxy_factory: bool = False,
    ) -> "Web3SettlementSubmitter":
        from eth_account import Account
        from web3 import Web3
        from web3.middleware import ExtraDataToPOAMiddleware

        if chain_id != 137:
            raise ValueError(f"Unsupported chainId for redeem: {chain_id}")
        w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": 30}))
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        return cls(w3, Account.from_key(private_key), via_proxy_factory=via_proxy_factory)

    def build_call(self, instruction: RedemptionInstruction) -> Any:
        if self._factory is None:
            return self._calls.function(instruction)

        from web3 import Web3

        target, data = self._calls.encode(instruction)
        proxy_txn = (target, CALL_TYPE_CODE, Web3.to_bytes(hexstr=data), 0)
        return self._factory.functions.proxy([proxy_txn])

    def submit(self, instruction: RedemptionInstruction) -> SettlementResult:
        cid = instruction.condition_id
        try:
            call = self.build_call(instruction)
            tx = call.build_transaction({
                "from": self._account.address,
                "nonce": self._w3.eth.get_transaction_count(self._account.address),
                "gas": self.GAS_LIMIT,
                "chainId": self._w3.eth.chain_id,
            })
            signed = self._account.sign_transaction(tx)
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.RECEIPT_TIMEOUT_SEC)
        except Exception as e:
            logger.warning(f"Redeem transaction failed for {cid}: {e}")
            return SettlementResult(success=False, condition_id=cid, error=str(e))

        hex_hash = tx_hash.hex()
        if receipt["status"] != 1:
            logger.warning(f"Redeem transaction reverted for {cid}: {hex_hash}")
            return SettlementResult(success=False, condition_id=cid, tx_hash=hex_hash, error="Transaction reverted")
        return SettlementResult(success=True, condition_id=cid, tx_hash=hex_hash)


class RelayerSettlementSubmitter(SettlementSubmitter):
    """
    Executes redemptions from the operator's Safe through Polymarket's
    builder relayer (gasless, SIGNATURE_TYPE 2).

    The relayer returns once the transaction is mined or confirmed; a
    response without a transaction hash counts as a failure.
    """

    def __init__(self, relay_client: Any, calls: Optional[RedeemCalls] = None):
        """
        Args:
            relay_client: py_builder_relayer_client RelayClient (or a compatible mock)
            calls: Calldata encoder; a provider-less Web3 is enough
        """
        if calls is None:
            from web3 import Web3
            calls = RedeemCalls(Web3())
        self._client = relay_client
        self._calls = calls

    @classmethod
    def from_config(cls, redeem: RedeemConfig, venue: VenueConfig) -> "RelayerSettlementSubmitter":
        from py_builder_relayer_client.client import RelayClient
        from py_builder_signing_sdk.config import BuilderConfig

        if redeem.builder_creds:
            from py_builder_signing_sdk.sdk_types import BuilderApiKeyCreds

            builder_config = BuilderConfig(
                local_builder_creds=BuilderApiKeyCreds(
                    key=redeem.builder_creds.key,
                    secret=redeem.builder_creds.secret,
                    passphrase=redeem.builder_creds.passphrase,
                )
            )
        else:
            from py_builder_signing_sdk.sdk_types import RemoteBuilderConfig

            builder_config = BuilderConfig(
                remote_builder_config=RemoteBuilderConfig(
                    url=redeem.builder_signing_url,
                    token=redeem.builder_signing_token,
                )
            )

        client = RelayClient(
            relayer_url=redeem.relayer_url,
            chain_id=venue.chain_id,
            private_key=venue.private_key,
            builder_config=builder_config,
        )
        logger.info(f"Relayer redemption enabled via {redeem.relayer_url}")
        return cls(client)

    def build_transaction(self, instruction: RedemptionInstruction) -> Any:
        from py_builder_relayer_client.models import OperationType, SafeTransaction

        target, data = self._calls.encode(instruction)
        return SafeTransaction(to=target, operation=OperationType.Call, data=data, value="0")

    def submit(self, instruction: RedemptionInstruction) -> SettlementResult:
        cid = instruction.condition_id
        try:
            tx = self.build_transaction(instruction)
            response = self._client.execute([tx], f"redeem {cid}")
            result = response.wait()
        except Exception as e:
            logger.warning(f"Relayer redeem failed for {cid}: {e}")
            return SettlementResult(success=False, condition_id=cid, error=str(e))

        tx_hash = _field(result, "transactionHash") or _field(result, "transaction_hash")
        if not tx_hash:
            return SettlementResult(success=False, condition_id=cid, error=f"Relayer returned no transaction: {result}")
        return SettlementResult(success=True, condition_id=cid, tx_hash=tx_hash)


def _field(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def create_settlement_submitter(config: MirrorConfig) -> SettlementSubmitter:
    """
    Factory: pick the submitter that redeems from the wallet holding the positions.

    SIGNATURE_TYPE 0 -> key's own address, PROXY -> proxy factory, SAFE -> relayer.
    """
    if config.dry_run:
        return DryRunSettlementSubmitter()

    tx_type = config.redeem_tx_type
    if tx_type is RelayerTxType.SAFE:
        return RelayerSettlementSubmitter.from_config(config.redeem, config.venue)
    return Web3SettlementSubmitter.from_rpc(
        config.redeem.rpc_url,
        config.venue.private_key,
        config.venue.chain_id,
        via_proxy_factory=tx_type is RelayerTxType.PROXY,
    )
