"""
Thread-safe rate-limited logging.

Confirmation polling can emit the same warning every few seconds for a
minute; this keeps one line per interval per message.
"""
import logging
import threading
from typing import Dict, Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)

# One TTL cache per interval so that the interval argument is honoured
_caches: Dict[int, TTLCache] = {}
_lock = threading.RLock()


def rate_limited_log(
    message: str,
    level: str = "warning",
    interval: int = 60,
    logger_instance: Optional[logging.Logger] = None,
    key: Optional[str] = None
) -> bool:
    """
    Log a message at most once per ``interval`` seconds.

    Args:
        message: Message to log
        level: Log level name (debug, info, warning, error, critical)
        interval: Minimum seconds between two lines with the same key
        logger_instance: Logger to use (defaults to this module's logger)
        key: Deduplication key; defaults to the level and message

    Returns:
        True if the message was emitted, False if it was suppressed
    """
    log_instance = logger_instance or logger
    log_method = getattr(log_instance, level.lower(), log_instance.warning)
    dedup_key = key or f"{level}:{message}"

    with _lock:
        cache = _caches.get(interval)
        if cache is None:
            cache = _caches[interval] = TTLCache(maxsize=256, ttl=interval)
        if dedup_key in cache:
            return False
        cache[dedup_key] = True
        log_method(message)
        return True


def reset() -> None:
    """Forget everything that was logged"""
    with _lock:
        _caches.clear()
