import asyncio
import logging
from typing import Dict, Optional, Sequence

from strikegrid.exec.fees import FeePlan
from strikegrid.networks import NetworkProfile
from strikegrid.onchain.eth import is_duplicate_submission, local_tx_hash
from strikegrid.onchain.executor_abi import build_call
from strikegrid.onchain.relay import RelayClient, first_revert, simulation_ok
from strikegrid.runtime.noise import log_fault
from strikegrid.strategy.grid import GridTier
from strikegrid.strategy.trust import TrustLedger
from strikegrid.types import ExecutionOutcome, SettlementStatus

logger = logging.getLogger("strikegrid.exec")

PING_GAS = 21_000


class WalletLocks:
    """One asyncio.Lock per signing address, shared by every worker."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def get(self, address: str) -> asyncio.Lock:
        key = address.lower()
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]


class Executor:
    def __init__(
        self,
        profile: NetworkProfile,
        chain,
        ledger: TrustLedger,
        executor_address: str,
        relay: Optional[RelayClient] = None,
        locks: Optional[WalletLocks] = None,
        gas_limit: int = 1_500_000,
        receipt_timeout: float = 120.0,
    ):
        self.profile = profile
        self.chain = chain
        self.ledger = ledger
        self.executor_address = executor_address
        self.relay = relay if profile.uses_relay else None
        self.locks = locks or WalletLocks()
        self.gas_limit = gas_limit
        self.receipt_timeout = receipt_timeout

    @property
    def name(self) -> str:
        return self.profile.name

    def build_tx(self, tier: GridTier, path: Sequence[str], fees: FeePlan, nonce: int) -> dict:
        tx = build_call(self.chain.address, self.executor_address, path, tier.amount, tier.flash)
        tx.pop("from")
        tx.update(
            {
                "gas": self.gas_limit,
                "maxFeePerGas": fees.execution_fee,
                "maxPriorityFeePerGas": fees.priority_fee,
                "type": 2,
                "chainId": self.profile.chain_id,
                "nonce": nonce,
            }
        )
        return tx

    async def execute(
        self, tier: GridTier, path: Sequence[str], source: str, fees: FeePlan
    ) -> ExecutionOutcome:
        async with self.locks.get(self.chain.address):
            if self.relay is not None:
                return await self._execute_relay(tier, path, source, fees)
            return await self._execute_public(tier, path, source, fees)

    def _outcome(self, tier, path_kind, source, status, **kw) -> ExecutionOutcome:
        return ExecutionOutcome(
            network=self.name,
            tier=tier.label,
            amount=tier.amount,
            path=path_kind,
            source=source,
            status=status,
            **kw,
        )

    def _settle(self, outcome: ExecutionOutcome, success: bool) -> ExecutionOutcome:
        self.ledger.update(outcome.source, success)
        outcome.credited = success
        return outcome

    async def _sign(self, tier, path, fees, source, path_kind):
        """Return (raw, None) or (None, outcome) when the tx could not be built."""
        try:
            nonce = await asyncio.to_thread(self.chain.nonce)
        except Exception as e:
            log_fault(logger, f"[{self.name}] nonce unavailable:", e)
            out = self._outcome(tier, path_kind, source, SettlementStatus.REJECTED, error=str(e))
            return None, out
        try:
            return self.chain.sign(self.build_tx(tier, path, fees, nonce)), None
        except Exception as e:
            logger.error(f"[{self.name}] signing failed: {e}")
            out = self._outcome(tier, path_kind, source, SettlementStatus.FAILED, error=str(e))
            return None, self._settle(out, False)

    async def _execute_relay(self, tier, path, source, fees) -> ExecutionOutcome:
        raw, failed = await self._sign(tier, path, fees, source, "relay")
        if failed is not None:
            return failed

        try:
            block = await asyncio.to_thread(self.chain.block_number) + 1
            sim = await asyncio.to_thread(self.relay.simulate, [raw], block)
        except Exception as e:
            logger.warning(f"[{self.name}] bundle simulation unavailable: {e}")
            return self._outcome(tier, "relay", source, SettlementStatus.REJECTED, error=str(e))

        if not simulation_ok(sim):
            reason = sim.get("error") or first_revert(sim)
            logger.info(f"[{self.name}] bundle rejected in simulation: {reason}")
            return self._outcome(tier, "relay", source, SettlementStatus.REJECTED, error=str(reason))

        try:
            res = await asyncio.to_thread(self.relay.send_bundle, [raw], block)
        except Exception as e:
            logger.error(f"[{self.name}] bundle submission failed: {e}")
            out = self._outcome(tier, "relay", source, SettlementStatus.FAILED, error=str(e))
            return self._settle(out, False)

        logger.info(f"[{self.name}] bundle sent for block {block} ({tier.label})")
        out = self._outcome(
            tier, "relay", source, SettlementStatus.PENDING, tx_ref=res.get("bundleHash")
        )
        return self._settle(out, True)

    async def _redundant_send(self, raw: bytes) -> None:
        try:
            await asyncio.to_thread(self.chain.send_raw_direct, raw)
        except Exception as e:
            logger.debug(f"[{self.name}] redundant channel: {e}")

    async def _execute_public(self, tier, path, source, fees) -> ExecutionOutcome:
        raw, failed = await self._sign(tier, path, fees, source, "public")
        if failed is not None:
            return failed

        # the redundant copy goes out only after the primary submission settles
        tx_hash = local_tx_hash(raw)
        try:
            tx_hash = await asyncio.to_thread(self.chain.broadcast, raw)
        except Exception as e:
            if not is_duplicate_submission(e):
                logger.error(f"[{self.name}] broadcast failed: {e}")
                out = self._outcome(tier, "public", source, SettlementStatus.FAILED, error=str(e))
                return self._settle(out, False)
            logger.info(f"[{self.name}] {tx_hash} already submitted: {e}")
        await self._redundant_send(raw)

        logger.info(f"[{self.name}] tx sent {tx_hash} ({tier.label})")
        try:
            receipt = await asyncio.to_thread(
                self.chain.wait_for_receipt, tx_hash, self.receipt_timeout
            )
        except Exception as e:
            logger.error(f"[{self.name}] confirmation failed for {tx_hash}: {e}")
            out = self._outcome(
                tier, "public", source, SettlementStatus.FAILED, tx_ref=tx_hash, error=str(e)
            )
            return self._settle(out, False)

        if receipt.get("status") == 1:
            logger.info(f"[{self.name}] confirmed {tx_hash}")
            out = self._outcome(tier, "public", source, SettlementStatus.CONFIRMED, tx_ref=tx_hash)
            return self._settle(out, True)
        logger.warning(f"[{self.name}] reverted {tx_hash}")
        out = self._outcome(
            tier, "public", source, SettlementStatus.FAILED, tx_ref=tx_hash, error="reverted"
        )
        return self._settle(out, False)

    async def ping(self, fees: FeePlan, min_balance: int) -> Optional[str]:
        """Zero-value self transfer used as a startup diagnostic."""
        async with self.locks.get(self.chain.address):
            return await self._ping(fees, min_balance)

    async def _ping(self, fees: FeePlan, min_balance: int) -> Optional[str]:
        try:
            balance = await asyncio.to_thread(self.chain.get_balance)
            if balance < min_balance:
                logger.warning(f"[{self.name}] ping skipped: low balance")
                return None
            nonce = await asyncio.to_thread(self.chain.nonce)
            tx = {
                "to": self.chain.address,
                "value": 0,
                "gas": PING_GAS,
                "maxFeePerGas": fees.execution_fee,
                "maxPriorityFeePerGas": fees.priority_fee,
                "type": 2,
                "chainId": self.profile.chain_id,
                "nonce": nonce,
            }
            tx_hash = await asyncio.to_thread(self.chain.broadcast, self.chain.sign(tx))
        except Exception as e:
            logger.error(f"[{self.name}] ping error: {e}")
            return None
        logger.info(f"[{self.name}] ping sent {tx_hash}")
        return tx_hash
