"""Exponential backoff for flaky external calls (Claude, Gemini, ElevenLabs, YouTube)."""

import functools
import time

from .errors import ValidationError
from .log import get_logger

MAX_DELAY = 60.0


def backoff_delay(attempt: int, base_delay: float, max_delay: float = MAX_DELAY) -> float:
    """base_delay * 2^attempt, capped."""
    return min(max_delay, base_delay * (2 ** attempt))


def with_retry(max_retries: int = 3, base_delay: float = 2.0, no_retry=(ValidationError,)):
    """Decorator: up to max_retries extra attempts after the first one.

    Exceptions listed in no_retry are caller errors and re-raise at once.
    Once the attempts run out the last exception propagates unchanged.
    """
    def decorator(func):
        name = getattr(func, "__name__", repr(func))

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger()
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except no_retry:
                    raise
                except Exception as e:
                    if attempt >= max_retries:
                        if max_retries:
                            logger.error("%s gave up after %d attempts: %s", name, attempt + 1, e)
                        raise
                    delay = backoff_delay(attempt, base_delay)
                    attempt += 1
                    logger.warning(
                        "%s failed (attempt %d/%d): %s; next try in %.1fs",
                        name, attempt, max_retries + 1, e, delay,
                    )
                    time.sleep(delay)
        return wrapper
    return decorator
