"""
Monitoring package initializer.

This package exposes Prometheus metrics and helper decorators for tracking
dispatch outcomes and provider performance.
"""

from .metrics import (
    DISPATCH_COUNT,
    ERROR_COUNT,
    PROVIDER_REQUEST_TIME,
    PROVIDER_FAILURES,
    PROVIDER_SKIPS,
    ACTIVE_SESSIONS,
    track_latency,
    track_errors,
)

__all__ = [
    'DISPATCH_COUNT',
    'ERROR_COUNT',
    'PROVIDER_REQUEST_TIME',
    'PROVIDER_FAILURES',
    'PROVIDER_SKIPS',
    'ACTIVE_SESSIONS',
    'track_latency',
    'track_errors',
]
