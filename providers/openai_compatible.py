"""
OpenAI-compatible chat providers.

Groq and most code-specialized backends expose the OpenAI chat-completions
API, so both adapters here drive the official `openai` SDK's async client and
differ only in base URL, model and system prompt. The transcript is sent as
structured role-tagged messages, preceded by the adapter's system prompt.
"""

from typing import List, Dict, Optional, Sequence

from openai import AsyncOpenAI

from providers.base import ProviderAdapter
from shared.models import CompletionOptions, Turn

GROQ_BASE_URL = "https://api.groq.com/openai/v1"
OPENAI_BASE_URL = "https://api.openai.com/v1"


class OpenAICompatibleProvider(ProviderAdapter):
    """
    Adapter for any endpoint speaking the OpenAI chat-completions protocol.

    Args:
        provider_id (str): Identifier reported when this provider answers.
        api_key (Optional[str]): Bearer credential for the endpoint.
        model (str): Model name.
        base_url (str): API root, e.g. "https://api.groq.com/openai/v1".
        system_prompt (Optional[str]): Prepended as a system message on every call.
        timeout_s (float): SDK-level request timeout in seconds.
    """

    def __init__(
        self,
        provider_id: str,
        api_key: Optional[str],
        model: str,
        base_url: str,
        system_prompt: Optional[str] = None,
        timeout_s: float = 20,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        self.base_url = base_url
        self.system_prompt = system_prompt
        self.timeout_s = timeout_s
        self.client: Optional[AsyncOpenAI] = None
        super().__init__(provider_id, api_key, model, temperature=temperature, max_tokens=max_tokens)

    def setup(self) -> None:
        # Retries are disabled: a failed call moves the dispatcher to the next provider.
        self.client = AsyncOpenAI(
            base_url=self.base_url,
            api_key=self.api_key,
            timeout=self.timeout_s,
            max_retries=0,
        )

    def build_messages(self, transcript: Sequence[Turn]) -> List[Dict[str, str]]:
        """Prepend the system prompt to the role-tagged transcript."""
        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.extend(turn.to_message() for turn in transcript)
        return messages

    async def _complete(self, transcript: Sequence[Turn], options: CompletionOptions) -> Optional[str]:
        completion = await self.client.chat.completions.create(
            model=self.model,
            messages=self.build_messages(transcript),
            temperature=options.temperature,
            max_tokens=options.max_tokens,
        )
        if not completion.choices:
            return None
        return completion.choices[0].message.content


class GroqProvider(OpenAICompatibleProvider):
    """Fast first-choice provider backed by Groq."""

    def __init__(self, api_key: Optional[str], model: str = "llama-3.1-8b-instant",
                 base_url: str = GROQ_BASE_URL, **kwargs):
        super().__init__("groq", api_key, model, base_url, **kwargs)


class CodingProvider(OpenAICompatibleProvider):
    """Optional code-specialized provider, tried first for coding questions."""

    def __init__(self, api_key: Optional[str], model: str = "gpt-4o-mini",
                 base_url: str = OPENAI_BASE_URL, **kwargs):
        super().__init__("coding", api_key, model, base_url, **kwargs)
