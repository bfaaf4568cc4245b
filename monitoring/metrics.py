"""
Core metrics and monitoring decorators for the chat relay.

This module defines Prometheus metrics and decorators for tracking:
- Dispatch outcomes (arithmetic, provider reply, exhausted)
- Provider latency and failures
- Error rates
- Number of sessions held in memory
"""

import inspect
import time
import functools
import logging
from typing import Optional, Callable, Tuple, Type
from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)

DISPATCH_COUNT = Counter(
    'relay_dispatch_total',
    'Total number of dispatched messages by outcome',
    ['outcome']  # arithmetic, provider, exhausted
)

# Error metrics
ERROR_COUNT = Counter(
    'relay_error_total',
    'Total number of errors',
    ['type', 'location']  # type: e.g., 'http', 'dispatch'; location: specific component
)

PROVIDER_REQUEST_TIME = Histogram(
    'relay_provider_request_duration_seconds',
    'Time spent waiting for a provider completion',
    ['provider'],
    buckets=[0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0, float("inf")]
)

PROVIDER_FAILURES = Counter(
    'relay_provider_failures_total',
    'Provider attempts that did not produce a reply',
    ['provider', 'reason']  # reason: timeout, error
)

PROVIDER_SKIPS = Counter(
    'relay_provider_skips_total',
    'Providers passed over without an attempt because they are not configured',
    ['provider']
)

ACTIVE_SESSIONS = Gauge(
    'relay_active_sessions',
    'Number of sessions currently held by the session store'
)

def track_latency(metric: Histogram, labels: Optional[Callable] = None) -> Callable:
    """
    A decorator factory that tracks the execution time of a function using a Prometheus Histogram.

    Works for both plain functions and coroutine functions.

    Args:
        metric (Histogram): The Prometheus Histogram to record the timing in
        labels (Callable, optional): Function of the first positional argument (usually
            'self') that returns the metric labels dictionary

    Returns:
        Callable: The decorated function
    """
    def observe(args, start_time: float, func_name: str) -> None:
        duration = time.time() - start_time
        if labels and args:
            metric.labels(**labels(args[0])).observe(duration)
        else:
            metric.observe(duration)
        logger.debug(f"Function {func_name} execution time: {duration:.2f} seconds")

    def decorator(func: Callable) -> Callable:
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return await func(*args, **kwargs)
                finally:
                    observe(args, start_time, func.__name__)
            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                return func(*args, **kwargs)
            finally:
                observe(args, start_time, func.__name__)
        return wrapper
    return decorator

def track_errors(error_type: str, location: str, expected: Tuple[Type[BaseException], ...] = ()) -> Callable:
    """
    A decorator factory that counts and logs unexpected errors raised by a coroutine.

    Args:
        error_type (str): Type of error (e.g., 'http', 'dispatch')
        location (str): Where the error occurred
        expected (tuple): Exception types that are part of the normal contract; they
            are re-raised without being counted

    Returns:
        Callable: The decorated coroutine function

    Example:
        @track_errors('dispatch', 'engine', expected=(ValidationError,))
        async def dispatch(self, message: str):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except expected:
                raise
            except Exception as e:
                ERROR_COUNT.labels(
                    type=error_type,
                    location=location
                ).inc()
                logger.error(f"Error in {location} ({error_type}): {str(e)}")
                raise  # Re-raise the exception after tracking
        return wrapper
    return decorator
