import json
import logging
import re
from typing import Callable, List, Optional, Sequence, Tuple

import requests
from textblob import TextBlob

from strikegrid.config import settings, parse_sources
from strikegrid.types import Signal

logger = logging.getLogger("strikegrid.signals")

TICKER_RE = re.compile(r"\$([A-Z]+)")
DISCOVERY_SOURCE = "DISCOVERY"


def score_text(text: str) -> float:
    """Polarity in [-1, 1]."""
    return float(TextBlob(text).sentiment.polarity)


def extract_ticker(text: str) -> Optional[str]:
    m = TICKER_RE.search(text)
    return m.group(1) if m else None


def fetch_text(url: str, timeout: float) -> str:
    r = requests.get(url, timeout=timeout)
    r.raise_for_status()
    ctype = r.headers.get("Content-Type", "")
    if "json" in ctype:
        return json.dumps(r.json())
    return r.text


class SignalAcquisition:
    def __init__(
        self,
        sources: Sequence[Tuple[str, str]] | None = None,
        timeout: float | None = None,
        threshold: float | None = None,
        scorer: Callable[[str], float] = score_text,
    ):
        self.sources = list(sources) if sources is not None else parse_sources(settings.signal_sources)
        self.timeout = settings.signal_timeout if timeout is None else timeout
        self.threshold = settings.sentiment_threshold if threshold is None else threshold
        self.scorer = scorer

    def scan(self) -> List[Signal]:
        signals: List[Signal] = []
        seen = set()
        for name, url in self.sources:
            try:
                text = fetch_text(url, self.timeout)
            except (requests.RequestException, ValueError) as e:
                logger.debug(f"[signals] skip {name} {url}: {e}")
                continue
            ticker = extract_ticker(text)
            if not ticker or ticker in seen:
                continue
            score = self.scorer(text)
            if score <= self.threshold:
                continue
            seen.add(ticker)
            signals.append(Signal(ticker=ticker, sentiment=score, source=name))
        if signals:
            logger.info(f"[signals] targeting [{', '.join(s.ticker for s in signals)}]")
        return signals


def pick_target(signals: Sequence[Signal], default_ticker: str | None = None) -> Tuple[str, str]:
    """(ticker, source) of the strongest hint, or discovery mode."""
    if signals:
        return signals[0].ticker, signals[0].source
    return (default_ticker or settings.default_ticker), DISCOVERY_SOURCE
