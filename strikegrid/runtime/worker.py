import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import websockets

from strikegrid.config import Settings, settings
from strikegrid.exec.executor import Executor, WalletLocks
from strikegrid.exec.fees import FeePlan, fee_plan
from strikegrid.ingest.board import SignalBoard
from strikegrid.ingest.sentiment import SignalAcquisition, pick_target
from strikegrid.networks import NetworkProfile
from strikegrid.onchain.eth import ChainClient
from strikegrid.onchain.executor_abi import build_call, strike_path
from strikegrid.onchain.relay import connect_relay
from strikegrid.runtime.noise import log_fault
from strikegrid.strategy import grid
from strikegrid.strategy.probe import ProbeResult, SimulationProbe
from strikegrid.strategy.select import select
from strikegrid.strategy.trust import TrustLedger
from strikegrid.types import ExecutionOutcome

logger = logging.getLogger("strikegrid.worker")

SUBSCRIBE = {
    "jsonrpc": "2.0",
    "id": 1,
    "method": "eth_subscribe",
    "params": ["newPendingTransactions"],
}


class WorkerState(str, Enum):
    IDLE = "idle"
    ACQUIRING_SIGNAL = "acquiring_signal"
    PLANNING = "planning"
    PROBING = "probing"
    SELECTING = "selecting"
    EXECUTING = "executing"


@dataclass
class CycleReport:
    network: str
    balance: int = 0
    ticker: Optional[str] = None
    source: Optional[str] = None
    fees: Optional[FeePlan] = None
    tiers: List[grid.GridTier] = field(default_factory=list)
    results: List[ProbeResult] = field(default_factory=list)
    chosen: Optional[grid.GridTier] = None
    outcome: Optional[ExecutionOutcome] = None
    skipped: Optional[str] = None


def is_pending_notification(message) -> bool:
    if isinstance(message, bytes):
        message = message.decode("utf-8", errors="replace")
    try:
        payload = json.loads(message)
    except ValueError:
        return False
    params = payload.get("params") if isinstance(payload, dict) else None
    return bool(isinstance(params, dict) and params.get("result"))


class ChainWorker:
    """Trigger loop and strike cycle for one network."""

    def __init__(
        self,
        profile: NetworkProfile,
        chain,
        executor: Executor,
        acquisition: Optional[SignalAcquisition] = None,
        board: Optional[SignalBoard] = None,
        cfg: Settings = settings,
        connect=None,
        signal_sink: Optional[SignalBoard] = None,
    ):
        self.profile = profile
        self.chain = chain
        self.executor = executor
        self.acquisition = acquisition
        self.board = board
        self.signal_sink = signal_sink
        self.cfg = cfg
        self.connect = connect or websockets.connect
        self.probe = SimulationProbe(chain.estimate_call, self._probe_call)
        self.state = WorkerState.IDLE
        self.cycles = 0
        self.coalesced = 0
        self.last_report: Optional[CycleReport] = None
        self._stop = asyncio.Event()
        self._cycle_task: Optional[asyncio.Task] = None

    @property
    def name(self) -> str:
        return self.profile.name

    def _probe_call(self, tier: grid.GridTier, path) -> dict:
        return build_call(
            self.chain.address, self.executor.executor_address, path, tier.amount, tier.flash
        )

    async def _signals(self):
        if self.board is not None:
            return list(self.board.read().signals)
        if self.acquisition is not None:
            signals = await asyncio.to_thread(self.acquisition.scan)
            if self.signal_sink is not None:
                self.signal_sink.publish(signals)
            return signals
        return []

    async def run_cycle(self) -> CycleReport:
        report = CycleReport(self.profile.name)
        try:
            report.balance = await asyncio.to_thread(self.chain.get_balance)
            if report.balance < self.cfg.min_reserve_wei:
                report.skipped = "low_balance"
                return report

            self.state = WorkerState.ACQUIRING_SIGNAL
            signals = await self._signals()
            report.ticker, report.source = pick_target(signals, self.cfg.default_ticker)

            self.state = WorkerState.PLANNING
            gas_price = await asyncio.to_thread(self.chain.gas_price)
            report.fees = fee_plan(
                self.profile, gas_price, self.cfg.gas_limit, self.cfg.gas_buffer_pct
            )
            report.tiers = grid.plan(report.balance, self.cfg.min_reserve_wei, report.fees.overhead)
            if not report.tiers:
                report.skipped = "below_overhead"
                return report

            self.state = WorkerState.PROBING
            path = strike_path(self.cfg.base_asset, report.ticker)
            report.results = await self.probe.probe(report.tiers, path)

            self.state = WorkerState.SELECTING
            report.chosen = select(report.results)
            if report.chosen is None:
                report.skipped = "no_viable_tier"
                logger.debug(f"[{self.name}] no viable tier for {report.ticker}")
                return report

            self.state = WorkerState.EXECUTING
            logger.info(
                f"[{self.name}] strike {report.ticker} | {report.chosen.label} "
                f"amount={report.chosen.amount} | src={report.source}"
            )
            report.outcome = await self.executor.execute(
                report.chosen, path, report.source, report.fees
            )
            return report
        finally:
            self.state = WorkerState.IDLE

    async def _guarded_cycle(self) -> Optional[CycleReport]:
        try:
            report = await self.run_cycle()
        except Exception as e:
            log_fault(logger, f"[{self.name}] cycle error:", e)
            return None
        self.cycles += 1
        self.last_report = report
        return report

    def trigger(self) -> bool:
        """Start a cycle unless one is already in flight."""
        if self._cycle_task is not None and not self._cycle_task.done():
            self.coalesced += 1
            return False
        self._cycle_task = asyncio.create_task(self._guarded_cycle())
        return True

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    async def _sleep(self, seconds: float) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)

    async def run(self) -> None:
        if self.cfg.startup_ping:
            gas_price = await asyncio.to_thread(self.chain.gas_price)
            await self.executor.ping(
                fee_plan(self.profile, gas_price, self.cfg.gas_limit, self.cfg.gas_buffer_pct),
                self.cfg.ping_min_balance_wei,
            )
        try:
            if self.cfg.trigger == "stream" and self.profile.wss:
                await self._run_stream()
            else:
                if self.cfg.trigger == "stream":
                    logger.warning(f"[{self.name}] no stream endpoint, polling instead")
                await self._run_interval()
        finally:
            if self._cycle_task is not None and not self._cycle_task.done():
                await self._cycle_task

    async def _run_interval(self) -> None:
        while not self.stopped:
            await self._guarded_cycle()
            await self._sleep(self.cfg.cycle_interval)

    async def _consume(self, url: str) -> None:
        async with self.connect(url) as ws:
            logger.info(f"[{self.name}] stream connected {url}")
            await ws.send(json.dumps(SUBSCRIBE))
            async for message in ws:
                if is_pending_notification(message):
                    self.trigger()

    async def _run_stream(self) -> None:
        attempt = 0
        while not self.stopped:
            url = self.profile.wss[attempt % len(self.profile.wss)]
            consume = asyncio.create_task(self._consume(url))
            stopper = asyncio.create_task(self._stop.wait())
            done, _ = await asyncio.wait({consume, stopper}, return_when=asyncio.FIRST_COMPLETED)
            stopper.cancel()
            if consume not in done:
                consume.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await consume
                break
            exc = consume.exception()
            if exc is not None:
                log_fault(logger, f"[{self.name}] stream error:", exc)
            else:
                logger.warning(f"[{self.name}] stream closed")
            attempt += 1
            await self._sleep(self.cfg.reconnect_delay)


def make_worker(
    profile: NetworkProfile,
    cfg: Settings,
    ledger: TrustLedger,
    locks: WalletLocks,
    acquisition: Optional[SignalAcquisition] = None,
    board: Optional[SignalBoard] = None,
    signal_sink: Optional[SignalBoard] = None,
) -> ChainWorker:
    fallback = profile.rpc[1] if len(profile.rpc) > 1 else None
    chain = ChainClient(profile.rpc[0], cfg.private_key, fallback_url=fallback)
    executor = Executor(
        profile,
        chain,
        ledger,
        cfg.executor_address,
        relay=connect_relay(profile.relay, profile.name),
        locks=locks,
        gas_limit=cfg.gas_limit,
        receipt_timeout=cfg.receipt_timeout,
    )
    return ChainWorker(
        profile,
        chain,
        executor,
        acquisition=acquisition,
        board=board,
        cfg=cfg,
        signal_sink=signal_sink,
    )
