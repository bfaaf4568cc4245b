"""
core/dispatcher.py

Central dispatch engine for answering user messages.

This module contains the coordination logic that:
1. Answers bare arithmetic deterministically, without touching session memory
2. Records the user turn in the session transcript
3. Classifies the message and selects an ordered list of providers
4. Tries providers strictly one after another until one replies
5. Records the reply and optionally labels the exchange with an emotion

Requests on the same session are serialized for the whole cycle, so two
in-flight requests can never interleave their turns.
"""

import asyncio
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from config.logging_config import get_logger
from core.arithmetic import evaluate_expression, render_reply
from core.classifier import IntentClassifier
from core.emotion import EmotionAnnotator
from monitoring.metrics import DISPATCH_COUNT, PROVIDER_FAILURES, PROVIDER_SKIPS, track_errors
from providers.base import ProviderAdapter
from services.session_store import SessionStore
from shared.errors import AllProvidersExhaustedError, ValidationError
from shared.models import (
    ARITHMETIC_PROVIDER_ID,
    CompletionOptions,
    DispatchResult,
    IntentTag,
    Role,
    Turn,
)

logger = get_logger(__name__)

DEFAULT_ORDERINGS = {
    IntentTag.GENERAL: ("groq", "gemini"),
    IntentTag.CODING: ("coding", "groq", "gemini"),
    IntentTag.ARITHMETIC: ("groq", "gemini"),
}


def generate_session_id() -> str:
    """Return a new globally unique session identifier (UUID4)."""
    return str(uuid.uuid4())


def orderings_from_config(raw: Mapping[str, Sequence[str]]) -> Dict[IntentTag, Tuple[str, ...]]:
    """
    Convert the `dispatch.orderings` config section into an ordering table.

    Tags missing from the config fall back to the general ordering.
    """
    orderings = {}
    for tag in IntentTag:
        if tag.value in raw:
            orderings[tag] = tuple(raw[tag.value])
    general = orderings.get(IntentTag.GENERAL, DEFAULT_ORDERINGS[IntentTag.GENERAL])
    for tag in IntentTag:
        orderings.setdefault(tag, general)
    return orderings


class DispatchEngine:
    """
    Answers messages using arithmetic, then an ordered chain of providers.

    Responsibilities:
    - Arithmetic short-circuit with no session or provider side effects
    - Session transcript updates (exactly one user turn, at most one assistant turn)
    - Intent-driven provider ordering and sequential fallback
    - Skipping unconfigured providers and bounding each attempt with a timeout

    Args:
        store (SessionStore): Owner of all transcripts.
        providers (Mapping[str, ProviderAdapter]): Adapters keyed by provider id.
        classifier (IntentClassifier): Strategy mapping messages to intent tags.
        orderings (Optional[Mapping[IntentTag, Sequence[str]]]): Provider ids to try per tag.
        options (Optional[CompletionOptions]): Generation settings passed to providers.
        provider_timeout_s (Optional[float]): Upper bound for one provider attempt; None disables it.
        annotator (Optional[EmotionAnnotator]): Emotion labeller; omitted or unconfigured
            means results carry no emotion.
    """

    def __init__(
        self,
        store: SessionStore,
        providers: Mapping[str, ProviderAdapter],
        classifier: IntentClassifier,
        orderings: Optional[Mapping[IntentTag, Sequence[str]]] = None,
        options: Optional[CompletionOptions] = None,
        provider_timeout_s: Optional[float] = 20,
        annotator: Optional[EmotionAnnotator] = None,
    ):
        self.store = store
        self.providers = dict(providers)
        self.classifier = classifier
        self.orderings = {tag: tuple(ids) for tag, ids in (orderings or DEFAULT_ORDERINGS).items()}
        self.options = options or CompletionOptions()
        self.provider_timeout_s = provider_timeout_s
        self.annotator = annotator

        logger.info("Initialized with %d providers", len(self.providers))

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        store: SessionStore,
        providers: Mapping[str, ProviderAdapter],
        classifier: IntentClassifier,
        annotator: Optional[EmotionAnnotator] = None,
    ) -> "DispatchEngine":
        """Build an engine using the `providers` and `dispatch` config sections."""
        providers_cfg = config.get("providers", {}) or {}
        defaults = providers_cfg.get("defaults", {}) or {}
        return cls(
            store=store,
            providers=providers,
            classifier=classifier,
            orderings=orderings_from_config((config.get("dispatch", {}) or {}).get("orderings", {})),
            options=CompletionOptions(
                temperature=defaults.get("temperature", 0.1),
                max_tokens=defaults.get("max_tokens", 400),
            ),
            provider_timeout_s=providers_cfg.get("timeout_s", 20),
            annotator=annotator,
        )

    def ordering_for(self, tag: IntentTag) -> Tuple[str, ...]:
        """Return the provider ids to try, in order, for an intent tag."""
        return self.orderings.get(tag, self.orderings.get(IntentTag.GENERAL, ()))

    @track_errors('dispatch', 'engine', expected=(ValidationError, AllProvidersExhaustedError))
    async def dispatch(self, message: Optional[str], session_id: Optional[str] = None) -> DispatchResult:
        """
        Main entry point: answer one user message.

        Args:
            message (Optional[str]): Raw user input.
            session_id (Optional[str]): Session to continue; a new id is generated when absent.

        Returns:
            DispatchResult: The reply, the id of the provider that produced it (or the
            arithmetic engine marker), the session id and an optional emotion label.

        Raises:
            ValidationError: If the message is missing or blank. Nothing is recorded.
            AllProvidersExhaustedError: If no provider in the ordering answered. The user
                turn stays in the transcript without an assistant reply.
        """
        if message is None or not message.strip():
            raise ValidationError()

        session_id = session_id or generate_session_id()
        request_logger = get_logger(__name__, session_id=session_id)

        # 1. Arithmetic short-circuit: no memory, no providers
        outcome = evaluate_expression(message)
        if outcome.matched:
            DISPATCH_COUNT.labels(outcome="arithmetic").inc()
            request_logger.info("Answered by arithmetic engine (valid=%s)", outcome.valid)
            return DispatchResult(
                reply=render_reply(outcome),
                provider_id=ARITHMETIC_PROVIDER_ID,
                session_id=session_id,
            )

        async with self.store.exclusive(session_id):
            # 2. Record the user turn before any provider is attempted
            transcript = self.store.append(session_id, Turn(Role.USER, message))

            # 3. Pick the provider ordering
            tag = self.classifier.classify(message)
            ordering = self.ordering_for(tag)
            request_logger.info(
                "Message classified as %s; provider ordering: %s", tag.value, ", ".join(ordering)
            )

            # 4. Try providers in priority order
            reply, provider_id = await self._attempt_providers(ordering, transcript, request_logger)
            if reply is None:
                DISPATCH_COUNT.labels(outcome="exhausted").inc()
                request_logger.error("All providers failed for ordering: %s", ", ".join(ordering))
                raise AllProvidersExhaustedError(session_id, attempted=ordering)

            # 5. Record the reply
            self.store.append(session_id, Turn(Role.ASSISTANT, reply))

        DISPATCH_COUNT.labels(outcome="provider").inc()
        emotion = await self._annotate(message, reply)
        return DispatchResult(reply=reply, provider_id=provider_id, session_id=session_id, emotion=emotion)

    async def _attempt_providers(
        self,
        ordering: Sequence[str],
        transcript: Sequence[Turn],
        request_logger,
    ) -> Tuple[Optional[str], Optional[str]]:
        """
        Invoke providers one at a time and return the first reply.

        Provider k+1 is only started after provider k's failure has been observed.
        Unconfigured providers are skipped without being called.

        Returns:
            Tuple[Optional[str], Optional[str]]: (reply, provider_id), or (None, None) when
            every provider failed or was skipped.
        """
        for provider_id in ordering:
            provider = self.providers.get(provider_id)
            if provider is None:
                request_logger.warning("Unknown provider '%s' in ordering; skipping", provider_id)
                continue
            if not provider.is_configured:
                PROVIDER_SKIPS.labels(provider=provider_id).inc()
                request_logger.info("Provider %s is not configured; skipping", provider_id)
                continue

            try:
                reply = await asyncio.wait_for(
                    provider.complete(transcript, self.options),
                    timeout=self.provider_timeout_s,
                )
            except asyncio.TimeoutError:
                PROVIDER_FAILURES.labels(provider=provider_id, reason="timeout").inc()
                request_logger.warning(
                    "Provider %s timed out after %ss; trying next", provider_id, self.provider_timeout_s
                )
                continue
            except Exception as e:
                PROVIDER_FAILURES.labels(provider=provider_id, reason="error").inc()
                request_logger.warning(
                    "Provider %s failed (%s: %s); trying next", provider_id, type(e).__name__, e
                )
                continue

            request_logger.info("Provider %s answered (%d chars)", provider_id, len(reply))
            return reply, provider_id

        return None, None

    async def _annotate(self, message: str, reply: str) -> Optional[str]:
        if self.annotator is None or not self.annotator.is_configured:
            return None
        return await self.annotator.annotate(f"{message}\n{reply}")

    def get_provider_info(self) -> Dict[str, Any]:
        """
        Describe the registered providers and orderings, for diagnostics.

        Returns:
            Dict[str, Any]: Provider configured state and the ordering per intent tag.
        """
        return {
            "providers": {
                provider_id: {
                    "class": provider.__class__.__name__,
                    "configured": provider.is_configured,
                }
                for provider_id, provider in self.providers.items()
            },
            "orderings": {tag.value: list(ids) for tag, ids in self.orderings.items()},
        }
