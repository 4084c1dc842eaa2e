import json
import logging
from pathlib import Path
from typing import Dict

logger = logging.getLogger("strikegrid.trust")

TRUST_MIN = 0.10
TRUST_MAX = 0.99
DEFAULT_WEIGHT = 0.50
REWARD = 1.05
PENALTY = 0.90
SEED_DEFAULTS: Dict[str, float] = {"WEB_AI": 0.85}


def _clamp(weight: float) -> float:
    return max(TRUST_MIN, min(TRUST_MAX, weight))


class TrustLedger:
    """Per-source reliability weights, persisted to a flat JSON file.

    Every update rewrites the whole file. Several processes sharing the file
    are not coordinated; the last writer wins.
    """

    def __init__(self, path: str | Path = "trust_scores.json"):
        self.path = Path(path)
        self._scores: Dict[str, float] = self._load()

    def _load(self) -> Dict[str, float]:
        if not self.path.exists():
            return dict(SEED_DEFAULTS)
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("trust file is not a JSON object")
            return {str(k): _clamp(float(v)) for k, v in raw.items()}
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"[trust] unreadable {self.path} ({e}), using defaults")
            return dict(SEED_DEFAULTS)

    def get(self, source: str) -> float:
        return self._scores.get(source, DEFAULT_WEIGHT)

    def update(self, source: str, success: bool) -> float:
        current = self.get(source)
        if success:
            current = min(TRUST_MAX, current * REWARD)
        else:
            current = max(TRUST_MIN, current * PENALTY)
        self._scores[source] = current
        self._save()
        logger.info(f"[trust] {source} {'+' if success else '-'} -> {current:.4f}")
        return current

    def snapshot(self) -> Dict[str, float]:
        return dict(self._scores)

    def _save(self) -> None:
        self.path.write_text(json.dumps(self._scores), encoding="utf-8")
