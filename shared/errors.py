"""
shared/errors.py

Exception taxonomy for the relay.

Only ValidationError and AllProvidersExhaustedError ever reach the HTTP layer.
ProviderError is raised by adapters and absorbed by the dispatcher, which moves
on to the next provider in the ordering.
"""

from typing import Optional, Sequence


class RelayError(Exception):
    """Base class for all errors raised deliberately by the relay."""


class ValidationError(RelayError):
    """The inbound message was missing or blank. No state has been touched."""

    def __init__(self, message: str = "Message required"):
        super().__init__(message)


class ProviderError(RelayError):
    """
    A single provider could not produce a reply.

    Raised for empty or malformed responses. Transport and SDK exceptions are not
    wrapped; the dispatcher treats every exception from an adapter the same way.
    """

    def __init__(self, provider_id: str, reason: str):
        super().__init__(f"{provider_id}: {reason}")
        self.provider_id = provider_id
        self.reason = reason


class AllProvidersExhaustedError(RelayError):
    """
    Every provider in the selected ordering failed or was unconfigured.

    The session keeps the unanswered user turn so the next request replays it.
    """

    def __init__(self, session_id: str, attempted: Optional[Sequence[str]] = None):
        super().__init__("All AI providers failed.")
        self.session_id = session_id
        self.attempted = list(attempted or [])
