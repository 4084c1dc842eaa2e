from typing import Optional, Sequence

from strikegrid.strategy.grid import GridTier
from strikegrid.strategy.probe import ProbeResult


def select(results: Sequence[ProbeResult]) -> Optional[GridTier]:
    """Largest notional among the tiers whose dry-run was accepted.

    Ties keep the earliest tier in ladder order.
    """
    best: Optional[GridTier] = None
    for res in results:
        if not res.ok:
            continue
        if best is None or res.tier.amount > best.amount:
            best = res.tier
    return best
