"""Retry decorator with exponential backoff for flaky upstream calls."""

import time
from functools import wraps
from typing import Any, Callable, Tuple, Type, TypeVar, cast

from signalcheck.core.logger import logger

F = TypeVar('F', bound=Callable[..., Any])


def with_retries(
    max_retries: int = 3,
    initial_delay: float = 2,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[F], F]:
    """
    Retry the decorated callable when it raises one of ``exceptions``.

    The last failure is re-raised, so callers still decide how a permanent
    failure degrades.

    Args:
        max_retries (int): Retry attempts after the first call.
        initial_delay (float): Seconds before the first retry; doubles afterwards.
        exceptions (tuple): Exception types that trigger a retry. Anything else
                            propagates immediately.
        sleep (Callable): Sleep function, replaceable in tests.

    Returns:
        Callable: The decorated function.
    """
    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            retries_left = max_retries
            delay = initial_delay
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as exc:
                    if retries_left <= 0:
                        logger.error(
                            f"retry: {func.__qualname__} gave up after {max_retries} retries "
                            f"({type(exc).__name__}: {exc})"
                        )
                        raise
                    retries_left -= 1
                    logger.warning(
                        f"retry: {func.__qualname__} raised {type(exc).__name__}: {exc}; "
                        f"retry {max_retries - retries_left}/{max_retries} in {delay}s"
                    )
                    sleep(delay)
                    delay *= 2
        return cast(F, wrapper)
    return decorator
