import json
from typing import List, Tuple

DEFAULT_SOURCE_NAME = "WEB_AI"

DEFAULT_SOURCES = [
    "https://api.crypto-ai-signals.com/v1/latest",
    "https://top-trading-ai-blog.com/alerts",
]


def _parse_list(val: str | None) -> List[str]:
    """Parse env var into list. Accepts comma-separated or JSON array."""
    if not val:
        return []
    val = val.strip()
    try:
        if val.startswith("["):
            return [str(x) for x in json.loads(val)]
    except ValueError:
        pass
    return [x.strip() for x in val.split(",") if x.strip()]


def parse_sources(raw: str | None) -> List[Tuple[str, str]]:
    """Return (source_name, url) pairs; entries are NAME=URL or a bare URL."""
    entries = _parse_list(raw) or list(DEFAULT_SOURCES)
    sources: List[Tuple[str, str]] = []
    for entry in entries:
        name, sep, url = entry.partition("=")
        if sep and not name.lower().startswith("http"):
            sources.append((name.strip().upper(), url.strip()))
        else:
            sources.append((DEFAULT_SOURCE_NAME, entry.strip()))
    return sources
