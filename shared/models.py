"""
shared/models.py

Common data models and type definitions used across the relay.

This module contains the shared data structures that standardize communication
between the dispatcher, the session store, the provider adapters and the API
layer. Transcript entries are immutable so that a snapshot handed to a provider
can never be altered behind its back.
"""

from dataclasses import dataclass
from typing import Dict, Any, Optional
from enum import Enum
from pydantic import BaseModel, Field

ARITHMETIC_PROVIDER_ID = "math-engine"

class Role(Enum):
    """Speaker of a transcript turn."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

class IntentTag(Enum):
    """
    Coarse intent categories used to select a provider ordering.

    - ARITHMETIC: Text shaped like a bare arithmetic expression
    - CODING: Programming questions routed to a code-specialized provider first
    - GENERAL: Everything else
    """
    ARITHMETIC = "arithmetic"
    CODING = "coding"
    GENERAL = "general"

@dataclass(frozen=True)
class Turn:
    """One role-tagged message unit in a transcript."""
    role: Role
    content: str

    def to_message(self) -> Dict[str, str]:
        """Render the turn in the role/content shape chat-completion APIs accept."""
        return {"role": self.role.value, "content": self.content}

@dataclass(frozen=True)
class CompletionOptions:
    """Generation settings passed to every provider call."""
    temperature: float = 0.1
    max_tokens: int = 400

@dataclass(frozen=True)
class ArithmeticOutcome:
    """
    Result of running the expression evaluator over raw input.

    `matched` is False when the text is not arithmetic at all. When it matched but
    could not be evaluated, `valid` is False and `value` is None.
    """
    matched: bool
    valid: bool = False
    value: Optional[str] = None

@dataclass
class DispatchResult:
    """
    Result of dispatching one user message.

    Transient: it is rendered into the API response and never persisted.
    """
    reply: str
    provider_id: str
    session_id: str
    emotion: Optional[str] = None

    def to_api_response(self) -> Dict[str, Any]:
        """
        Render the result in the camelCase dictionary returned to HTTP clients.

        Returns:
            Dict[str, Any]: 'reply', 'provider' and 'sessionId', plus 'emotion' when an
            annotator produced a label.
        """
        payload = {
            "reply": self.reply,
            "provider": self.provider_id,
            "sessionId": self.session_id,
        }
        if self.emotion is not None:
            payload["emotion"] = self.emotion
        return payload

class ChatRequest(BaseModel):
    """
    Inbound chat payload.

    `message` is optional at the schema level so the endpoint can answer a missing
    message with its own fixed 400 error instead of a framework validation error.
    """
    message: Optional[str] = Field(None, description="User message to answer")
    sessionId: Optional[str] = Field(None, description="Session to continue; generated when absent")

class ResetRequest(BaseModel):
    """Payload for clearing a session transcript."""
    sessionId: Optional[str] = Field(None, description="Session to clear")
