import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

from strikegrid.config import Settings, settings
from strikegrid.ingest.board import SignalBoard
from strikegrid.ingest.sentiment import SignalAcquisition
from strikegrid.networks import NetworkProfile
from strikegrid.runtime.noise import log_fault
from strikegrid.runtime.worker import ChainWorker

logger = logging.getLogger("strikegrid.supervisor")


@dataclass
class WorkerHandle:
    profile: NetworkProfile
    task: Optional[asyncio.Task] = None
    worker: Optional[ChainWorker] = None
    restarts: int = 0
    last_error: Optional[str] = None


class Orchestrator:
    """Runs one supervised worker per network and restarts it after failure.

    Restarts reuse the profile stored in the supervision table and back off
    from `restart_base_delay` up to `restart_max_delay`.
    """

    def __init__(
        self,
        profiles: Mapping[str, NetworkProfile],
        worker_factory: Callable[[NetworkProfile], ChainWorker],
        board: Optional[SignalBoard] = None,
        acquisition: Optional[SignalAcquisition] = None,
        cfg: Settings = settings,
    ):
        self.table: Dict[str, WorkerHandle] = {
            name: WorkerHandle(profile) for name, profile in profiles.items()
        }
        self.worker_factory = worker_factory
        self.board = board
        self.acquisition = acquisition
        self.cfg = cfg
        self._stop = asyncio.Event()
        self._scanner: Optional[asyncio.Task] = None

    async def start(self) -> None:
        for name, handle in self.table.items():
            handle.task = asyncio.create_task(self._supervise(name), name=f"worker-{name}")
        if self.board is not None and self.acquisition is not None:
            self._scanner = asyncio.create_task(self._scan_loop(), name="signal-scanner")
        logger.info(f"[supervisor] started {', '.join(self.table)}")

    async def _sleep(self, seconds: float) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)

    async def _supervise(self, name: str) -> None:
        handle = self.table[name]
        delay = self.cfg.restart_base_delay
        while not self._stop.is_set():
            worker = None
            try:
                worker = handle.worker = self.worker_factory(handle.profile)
                await worker.run()
                if self._stop.is_set():
                    break
                logger.warning(f"[{name}] worker exited; restarting")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                handle.last_error = str(e)
                log_fault(logger, f"[{name}] worker crashed:", e)
            # a worker that completed cycles was healthy; start the backoff over
            if worker is not None and worker.cycles > 0:
                delay = self.cfg.restart_base_delay
            handle.restarts += 1
            await self._sleep(delay)
            delay = min(self.cfg.restart_max_delay, max(self.cfg.restart_base_delay, delay * 1.5))

    async def _scan_loop(self) -> None:
        while not self._stop.is_set():
            try:
                signals = await asyncio.to_thread(self.acquisition.scan)
                self.board.publish(signals)
            except Exception as e:
                log_fault(logger, "[scanner] scan failed:", e)
            await self._sleep(self.cfg.scan_interval)

    def _tasks(self):
        tasks = [h.task for h in self.table.values() if h.task is not None]
        if self._scanner is not None:
            tasks.append(self._scanner)
        return tasks

    async def wait(self) -> None:
        await asyncio.gather(*self._tasks(), return_exceptions=True)

    async def stop(self) -> None:
        self._stop.set()
        for handle in self.table.values():
            if handle.worker is not None:
                handle.worker.stop()
        await self.wait()
        logger.info("[supervisor] stopped")

    def status(self) -> Dict[str, dict]:
        out = {}
        for name, handle in self.table.items():
            worker = handle.worker
            out[name] = {
                "state": worker.state.value if worker else "starting",
                "cycles": worker.cycles if worker else 0,
                "restarts": handle.restarts,
                "last_error": handle.last_error,
            }
        return out
