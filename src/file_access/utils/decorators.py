"""Decorator utilities for cross-cutting concerns."""
import time
import logging
import functools
import threading
from typing import Any, Callable, TypeVar, cast

# Setup logging
logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])


def log_execution_time(func: F) -> F:
    """Decorator to log function execution time.

    Args:
        func: The function to decorate

    Returns:
        Decorated function that logs execution time
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        try:
            result = func(*args, **kwargs)
            duration = time.time() - start_time
            logger.debug(f"{func.__qualname__} completed in {duration:.2f}s")
            return result
        except Exception as e:
            duration = time.time() - start_time
            logger.error(f"{func.__qualname__} failed after {duration:.2f}s: {str(e)}")
            raise
    return cast(F, wrapper)


def synchronized(func: F) -> F:
    """Serialize calls to a method on the instance's ``_lock`` attribute.

    The instance must provide a re-entrant ``_lock``.
    """
    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        lock: threading.RLock = self._lock
        with lock:
            return func(self, *args, **kwargs)
    return cast(F, wrapper)
