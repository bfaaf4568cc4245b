"""
core/classifier.py

Intent classification for provider routing.

The classifier assigns each message a coarse intent tag which the dispatcher
maps to an ordered list of providers. Classification is a swappable strategy:
the dispatcher only depends on `IntentClassifier.classify`, so the keyword
matcher below can be replaced without touching the dispatch logic.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional, Tuple

from shared.models import IntentTag
from core.arithmetic import is_arithmetic

logger = logging.getLogger(__name__)

DEFAULT_CODING_KEYWORDS = (
    "code", "function", "api", "class", "debug", "error", "compile", "script", "program",
    "python", "javascript", "typescript", "java", "rust", "golang", "c++", "c#",
    "ruby", "php", "sql", "kotlin", "swift", "html", "css",
)


class IntentClassifier(ABC):
    """Strategy interface for intent classification."""

    @abstractmethod
    def classify(self, message: str) -> IntentTag:
        """Return the intent tag for a raw user message."""


class KeywordIntentClassifier(IntentClassifier):
    """
    Keyword-containment classifier.

    A message is tagged CODING when any vocabulary entry occurs in it as a
    case-insensitive substring, ARITHMETIC when the whole message has the shape of
    an arithmetic expression, and GENERAL otherwise. Substring matching means
    "classic" counts as coding because it contains "class"; such false positives
    only change which provider is tried first.
    """

    def __init__(self, keywords: Optional[Iterable[str]] = None):
        self.keywords: Tuple[str, ...] = tuple(
            k.lower() for k in (keywords if keywords is not None else DEFAULT_CODING_KEYWORDS) if k
        )
        logger.info("[KeywordIntentClassifier] Initialized with %d keywords", len(self.keywords))

    def classify(self, message: str) -> IntentTag:
        if is_arithmetic(message):
            return IntentTag.ARITHMETIC

        lowered = message.lower()
        for keyword in self.keywords:
            if keyword in lowered:
                logger.debug("[KeywordIntentClassifier] Matched keyword '%s'", keyword)
                return IntentTag.CODING
        return IntentTag.GENERAL
