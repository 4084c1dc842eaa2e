import logging

NOISE_PATTERNS = ("429", "32005", "coalesce", "network")


def is_noise(exc: BaseException | str) -> bool:
    """Rate-limit codes and generic transport chatter from public endpoints."""
    msg = str(exc).lower()
    return any(p in msg for p in NOISE_PATTERNS)


def log_fault(logger: logging.Logger, prefix: str, exc: BaseException) -> None:
    if is_noise(exc):
        logger.debug(f"{prefix} {exc}")
    else:
        logger.error(f"{prefix} {exc}", exc_info=exc)
