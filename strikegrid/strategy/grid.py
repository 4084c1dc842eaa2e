from dataclasses import dataclass
from typing import List, Tuple


@dataclass(frozen=True)
class GridTier:
    label: str
    pct: int  # numerator over 100
    flash: bool
    amount: int  # wei


# (label, pct, flash); order is the ladder order
LADDER: Tuple[Tuple[str, int, bool], ...] = (
    ("MICRO (10%)", 10, False),
    ("SMALL (25%)", 25, False),
    ("HALF (50%)", 50, False),
    ("LARGE (75%)", 75, False),
    ("MAX (100%)", 100, False),
    ("LEVERAGE (10x)", 1000, True),
    ("LEVERAGE (100x)", 10000, True),
)


def safe_capital(balance: int, reserve: int, overhead: int = 0) -> int:
    return balance - reserve - overhead


def plan(balance: int, reserve: int, overhead: int = 0) -> List[GridTier]:
    """Build the tier ladder; empty when nothing is left above reserve + overhead."""
    safe = safe_capital(balance, reserve, overhead)
    if safe <= 0:
        return []
    # floor division: non-flash tiers never exceed safe capital
    return [GridTier(label, pct, flash, safe * pct // 100) for label, pct, flash in LADDER]
