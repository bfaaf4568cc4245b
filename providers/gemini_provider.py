"""
Gemini fallback provider.

Gemini is called with a single text blob rather than role-tagged turns: the
transcript contents are joined with newlines, oldest first. The adapter owns
this flattening so every call serializes the transcript the same way.
"""

from typing import Optional, Sequence

from google import genai
from google.genai import types

from providers.base import ProviderAdapter
from shared.models import CompletionOptions, Turn


def flatten_transcript(transcript: Sequence[Turn]) -> str:
    """Join turn contents with newlines, in transcript order."""
    return "\n".join(turn.content for turn in transcript)


class GeminiProvider(ProviderAdapter):
    """
    Slower fallback provider using the Google Gen AI SDK's async surface.

    Args:
        api_key (Optional[str]): GEMINI_API_KEY value; unconfigured when missing.
        model (str): Gemini model name.
    """

    def __init__(self, api_key: Optional[str], model: str = "gemini-1.5-flash",
                 temperature: Optional[float] = None, max_tokens: Optional[int] = None):
        self.client: Optional[genai.Client] = None
        super().__init__("gemini", api_key, model, temperature=temperature, max_tokens=max_tokens)

    def setup(self) -> None:
        self.client = genai.Client(api_key=self.api_key)

    async def _complete(self, transcript: Sequence[Turn], options: CompletionOptions) -> Optional[str]:
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=flatten_transcript(transcript),
            config=types.GenerateContentConfig(
                temperature=options.temperature,
                max_output_tokens=options.max_tokens,
            ),
        )
        return response.text
