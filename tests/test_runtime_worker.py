import asyncio
import json

import pytest
from conftest import EXECUTOR, FakeChain
from eth_abi import decode

from strikegrid.exec.executor import Executor
from strikegrid.ingest.board import SignalBoard
from strikegrid.networks import NetworkProfile, load_network
from strikegrid.runtime import worker as worker_mod
from strikegrid.runtime.worker import ChainWorker, WorkerState, is_pending_notification
from strikegrid.strategy.trust import TrustLedger
from strikegrid.types import SettlementStatus, Signal

BASE = load_network("BASE", env={})


class FakeAcquisition:
    def __init__(self, signals):
        self.signals = signals
        self.calls = 0

    def scan(self):
        self.calls += 1
        return list(self.signals)


class SpyExecutor(Executor):
    def __init__(self, *a, **kw):
        super().__init__(*a, **kw)
        self.calls = []

    async def execute(self, tier, path, source, fees):
        self.calls.append((tier, list(path), source))
        return await super().execute(tier, path, source, fees)


def decoded_path(call):
    path, _ = decode(["string[]", "uint256"], bytes.fromhex(call["data"][10:]))
    return list(path)


def make_worker(
    cfg, tmp_path, chain=None, signals=(), board=None, profile=BASE, connect=None, sink=None
):
    chain = chain or FakeChain()
    ledger = TrustLedger(tmp_path / "trust.json")
    ex = SpyExecutor(profile, chain, ledger, EXECUTOR)
    acq = FakeAcquisition(list(signals))
    w = ChainWorker(
        profile, chain, ex, acquisition=acq, board=board, cfg=cfg, connect=connect, signal_sink=sink
    )
    return w, chain, ex, ledger


@pytest.mark.asyncio
async def test_cycle_executes_largest_viable_tier(cfg, tmp_path):
    chain = FakeChain(reject=lambda tx: tx["value"] == 0)  # flash tiers revert
    sig = Signal(ticker="PEPE", sentiment=0.6, source="WEB_AI")
    w, chain, ex, ledger = make_worker(cfg, tmp_path, chain=chain, signals=[sig])

    report = await w.run_cycle()

    assert len(chain.estimates) == 7
    assert report.ticker == "PEPE"
    assert report.chosen.label == "MAX (100%)"
    assert report.outcome.status == SettlementStatus.CONFIRMED
    assert ex.calls[0][1] == ["ETH", "PEPE", "ETH"]
    assert ledger.get("WEB_AI") == pytest.approx(0.85 * 1.05)
    assert w.state == WorkerState.IDLE


@pytest.mark.asyncio
async def test_tiers_sized_after_reserve_and_overhead(cfg, tmp_path):
    w, chain, _, _ = make_worker(cfg, tmp_path)
    report = await w.run_cycle()
    safe = report.balance - cfg.min_reserve_wei - report.fees.overhead
    assert report.tiers[4].amount == safe


@pytest.mark.asyncio
async def test_no_signal_uses_discovery_ticker(cfg, tmp_path):
    w, chain, ex, _ = make_worker(cfg, tmp_path, signals=[])
    report = await w.run_cycle()
    assert report.ticker == "WETH"
    assert report.source == "DISCOVERY"
    assert decoded_path(chain.estimates[0]) == ["ETH", "WETH", "ETH"]


@pytest.mark.asyncio
async def test_all_probes_fail_no_execution_no_trust_update(cfg, tmp_path):
    chain = FakeChain(reject=lambda tx: True)
    w, chain, ex, _ = make_worker(cfg, tmp_path, chain=chain)
    report = await w.run_cycle()
    assert report.chosen is None
    assert report.skipped == "no_viable_tier"
    assert ex.calls == []
    assert chain.signed == []
    assert not (tmp_path / "trust.json").exists()


@pytest.mark.asyncio
async def test_low_balance_skips_cycle(cfg, tmp_path):
    chain = FakeChain(balance=cfg.min_reserve_wei - 1)
    w, chain, _, _ = make_worker(cfg, tmp_path, chain=chain)
    report = await w.run_cycle()
    assert report.skipped == "low_balance"
    assert report.tiers == []
    assert chain.estimates == []


@pytest.mark.asyncio
async def test_balance_below_overhead_builds_no_tiers(cfg, tmp_path):
    chain = FakeChain(balance=cfg.min_reserve_wei + 1)
    w, chain, _, _ = make_worker(cfg, tmp_path, chain=chain)
    report = await w.run_cycle()
    assert report.skipped == "below_overhead"
    assert chain.estimates == []


@pytest.mark.asyncio
async def test_board_snapshot_takes_precedence(cfg, tmp_path):
    board = SignalBoard()
    board.publish([Signal(ticker="DOGE", sentiment=0.3, source="B")])
    w, _, _, _ = make_worker(cfg, tmp_path, board=board, signals=[Signal(ticker="PEPE", source="A")])
    report = await w.run_cycle()
    assert (report.ticker, report.source) == ("DOGE", "B")
    assert w.acquisition.calls == 0


@pytest.mark.asyncio
async def test_direct_scan_is_published_to_sink(cfg, tmp_path):
    sink = SignalBoard()
    sig = Signal(ticker="PEPE", sentiment=0.4, source="A")
    w, _, _, _ = make_worker(cfg, tmp_path, signals=[sig], sink=sink)
    report = await w.run_cycle()
    assert report.ticker == "PEPE"
    assert sink.read().generation == 1
    assert sink.read().signals == (sig,)


@pytest.mark.asyncio
async def test_cycle_errors_are_contained(cfg, tmp_path):
    class Broken(FakeChain):
        def get_balance(self):
            raise RuntimeError("boom")

    w, _, _, _ = make_worker(cfg, tmp_path, chain=Broken())
    assert await w._guarded_cycle() is None
    assert w.state == WorkerState.IDLE


@pytest.mark.asyncio
async def test_trigger_coalesces_while_cycle_in_flight(cfg, tmp_path):
    w, _, _, _ = make_worker(cfg, tmp_path, chain=FakeChain(settle_delay=0.05))
    assert w.trigger() is True
    assert w.trigger() is False
    assert w.coalesced == 1
    await w._cycle_task
    assert w.trigger() is True
    await w._cycle_task


@pytest.mark.asyncio
async def test_interval_worker_stops_on_signal(cfg, tmp_path):
    cfg.cycle_interval = 30
    w, _, _, _ = make_worker(cfg, tmp_path)
    task = asyncio.create_task(w.run())
    for _ in range(200):
        if w.cycles:
            break
        await asyncio.sleep(0.01)
    w.stop()
    await asyncio.wait_for(task, timeout=2)
    assert w.cycles >= 1


def test_is_pending_notification():
    note = {"jsonrpc": "2.0", "method": "eth_subscription", "params": {"result": "0xdead"}}
    assert is_pending_notification(json.dumps(note))
    assert is_pending_notification(json.dumps(note).encode())
    assert not is_pending_notification(json.dumps({"id": 1, "result": "0xsubid"}))
    assert not is_pending_notification("not json")


class FakeSocket:
    def __init__(self, messages, fail=None):
        self.messages = messages
        self.fail = fail
        self.sent = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def send(self, msg):
        self.sent.append(json.loads(msg))

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for m in self.messages:
            yield m
        if self.fail:
            raise self.fail


@pytest.mark.asyncio
async def test_stream_subscribes_triggers_and_reconnects(cfg, tmp_path):
    cfg.trigger = "stream"
    profile = NetworkProfile(
        "BASE", 8453, ("http://rpc",), ("wss://one", "wss://two"), "0.1", "0.001"
    )
    note = json.dumps({"method": "eth_subscription", "params": {"result": "0x1"}})
    urls, sockets = [], []

    def connect(url):
        urls.append(url)
        sock = FakeSocket([note], fail=ConnectionError("network down") if len(urls) == 1 else None)
        sockets.append(sock)
        return sock

    w, _, _, _ = make_worker(
        cfg, tmp_path, chain=FakeChain(reject=lambda tx: True), board=SignalBoard(),
        profile=profile, connect=connect,
    )
    task = asyncio.create_task(w.run())
    for _ in range(200):
        if len(urls) >= 3:
            break
        await asyncio.sleep(0.01)
    w.stop()
    await asyncio.wait_for(task, timeout=2)

    assert urls[:3] == ["wss://one", "wss://two", "wss://one"]
    assert sockets[0].sent[0]["method"] == "eth_subscribe"
    assert sockets[0].sent[0]["params"] == ["newPendingTransactions"]
    assert w.cycles >= 1


@pytest.mark.asyncio
async def test_stream_without_endpoints_polls(cfg, tmp_path):
    cfg.trigger = "stream"
    cfg.cycle_interval = 30
    profile = NetworkProfile("BASE", 8453, ("http://rpc",), (), "0.1", "0.001")
    w, _, _, _ = make_worker(cfg, tmp_path, profile=profile)
    task = asyncio.create_task(w.run())
    for _ in range(200):
        if w.cycles:
            break
        await asyncio.sleep(0.01)
    w.stop()
    await asyncio.wait_for(task, timeout=2)
    assert w.cycles >= 1


def test_make_worker_wires_relay_for_relay_networks(cfg):
    eth_worker = worker_mod.make_worker(
        load_network("ETHEREUM", env={}), cfg, TrustLedger("unused.json"), worker_mod.WalletLocks()
    )
    base_worker = worker_mod.make_worker(BASE, cfg, TrustLedger("unused.json"), worker_mod.WalletLocks())
    assert eth_worker.executor.relay is not None
    assert base_worker.executor.relay is None
    assert eth_worker.chain.rpc_url == "https://eth.llamarpc.com"
