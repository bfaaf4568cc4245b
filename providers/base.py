"""
Base class for all provider adapters.

Every backend the relay can answer from is wrapped in a ProviderAdapter that
exposes a single coroutine, `complete(transcript, options)`. Adapters decide
at construction time whether they are configured (usually: whether a
credential was supplied) so the dispatcher can skip them without an
error-shaped control path. Each adapter owns the way it flattens a transcript
into its wire format.
"""

from abc import ABC, abstractmethod
import logging
from dataclasses import replace
from typing import Optional, Sequence

from shared.errors import ProviderError
from shared.models import CompletionOptions, Turn
from monitoring.metrics import PROVIDER_REQUEST_TIME, track_latency

logger = logging.getLogger(__name__)


class ProviderAdapter(ABC):
    """
    Abstract base class for completion providers.

    Subclasses implement `_complete` and, when they have requirements beyond an API
    key, override `_check_configured`. Failures are opaque to the caller: any
    exception raised by `complete` means "this provider did not answer".

    Args:
        provider_id (str): Identifier reported back to clients when this provider answers.
        api_key (Optional[str]): Credential; an empty or missing key leaves the adapter unconfigured.
        model (str): Model name sent to the backend.
        temperature (Optional[float]): Overrides the per-request temperature when set.
        max_tokens (Optional[int]): Overrides the per-request token limit when set.
    """

    def __init__(
        self,
        provider_id: str,
        api_key: Optional[str],
        model: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self.provider_id = provider_id
        self.api_key = api_key or None
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._configured = self._check_configured()
        if self._configured:
            self.setup()
            self.logger.info(f"[{provider_id}] Provider configured with model {model}")
        else:
            self.logger.info(f"[{provider_id}] Provider unconfigured; it will be skipped")

    @property
    def is_configured(self) -> bool:
        """Whether the adapter can be attempted at all."""
        return self._configured

    def _check_configured(self) -> bool:
        return self.api_key is not None

    def setup(self) -> None:
        """Create SDK clients. Only called for configured adapters."""

    def resolve_options(self, options: CompletionOptions) -> CompletionOptions:
        """Apply adapter-level overrides on top of the per-request options."""
        overrides = {}
        if self.temperature is not None:
            overrides["temperature"] = self.temperature
        if self.max_tokens is not None:
            overrides["max_tokens"] = self.max_tokens
        return replace(options, **overrides) if overrides else options

    @track_latency(PROVIDER_REQUEST_TIME, lambda self: {'provider': self.provider_id})
    async def complete(self, transcript: Sequence[Turn], options: CompletionOptions) -> str:
        """
        Produce a reply for the transcript.

        Args:
            transcript (Sequence[Turn]): The session's turns in order, ending with the user turn
                being answered.
            options (CompletionOptions): Generation settings for this request.

        Returns:
            str: The reply text, stripped of surrounding whitespace.

        Raises:
            ProviderError: If the adapter is unconfigured or the backend returned no text.
            Exception: Any transport or SDK error is propagated unchanged.
        """
        if not self._configured:
            raise ProviderError(self.provider_id, "provider is not configured")

        reply = await self._complete(transcript, self.resolve_options(options))
        if not isinstance(reply, str) or not reply.strip():
            raise ProviderError(self.provider_id, "empty response")
        return reply.strip()

    @abstractmethod
    async def _complete(self, transcript: Sequence[Turn], options: CompletionOptions) -> Optional[str]:
        """Make the wire call and return the raw reply text."""

    def __repr__(self) -> str:
        state = "configured" if self._configured else "unconfigured"
        return f"{self.__class__.__name__}(id={self.provider_id!r}, model={self.model!r}, {state})"
