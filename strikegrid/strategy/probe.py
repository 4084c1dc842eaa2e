import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from strikegrid.strategy.grid import GridTier

logger = logging.getLogger("strikegrid.probe")


@dataclass(frozen=True)
class ProbeResult:
    tier: GridTier
    ok: bool
    error: Optional[str] = None


class SimulationProbe:
    """Dry-runs every tier concurrently and collects all outcomes.

    `estimate` is a blocking callable taking the call dict; it raises when
    the contract rejects the call. `build` maps a tier and the asset path to that call dict.
    """

    def __init__(self, estimate: Callable[[dict], int], build: Callable[[GridTier, Sequence[str]], dict]):
        self.estimate = estimate
        self.build = build

    async def _one(self, tier: GridTier, path: Sequence[str]) -> ProbeResult:
        try:
            await asyncio.to_thread(self.estimate, self.build(tier, path))
        except Exception as e:  # any revert or transport error marks the tier unviable
            return ProbeResult(tier, False, str(e))
        return ProbeResult(tier, True)

    async def probe(self, tiers: Sequence[GridTier], path: Sequence[str]) -> List[ProbeResult]:
        results = await asyncio.gather(*(self._one(t, path) for t in tiers))
        ok = sum(1 for r in results if r.ok)
        logger.debug(f"[probe] {ok}/{len(results)} tiers viable")
        return list(results)
