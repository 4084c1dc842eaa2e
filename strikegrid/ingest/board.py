import time
from dataclasses import dataclass, field
from typing import Tuple

from strikegrid.types import Signal


@dataclass(frozen=True)
class SignalSnapshot:
    generation: int
    signals: Tuple[Signal, ...] = ()
    taken_at: float = field(default_factory=time.time)


class SignalBoard:
    """Latest-signals hand-off between the scanner and the workers.

    Readers always get one whole generation; publishing swaps the reference.
    """

    def __init__(self):
        self._current = SignalSnapshot(generation=0)

    def publish(self, signals) -> SignalSnapshot:
        snap = SignalSnapshot(
            generation=self._current.generation + 1, signals=tuple(signals)
        )
        self._current = snap
        return snap

    def read(self) -> SignalSnapshot:
        return self._current
