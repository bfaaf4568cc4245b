"""
core/emotion.py

Emotion annotation of finished exchanges.

After a provider has answered, the dispatcher may label the exchange with the
dominant emotion reported by a Hugging Face text-classification endpoint. The
annotator never raises: when the service is unreachable, slow, or returns
something unexpected, the label degrades to "neutral".
"""

import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

NEUTRAL = "neutral"
DEFAULT_EMOTION_URL = "https://api-inference.huggingface.co/models/j-hartmann/emotion-english-distilroberta-base"


def pick_label(payload: Any) -> Optional[str]:
    """
    Return the highest-scoring label from a text-classification response.

    Accepts both the nested shape `[[{"label": ..., "score": ...}, ...]]` and the flat
    shape `[{"label": ..., "score": ...}, ...]`. Returns None when no usable entry exists.
    """
    if isinstance(payload, list) and payload and isinstance(payload[0], list):
        payload = payload[0]
    if not isinstance(payload, list):
        return None

    candidates = [
        item for item in payload
        if isinstance(item, dict) and isinstance(item.get("label"), str)
        and isinstance(item.get("score"), (int, float))
    ]
    if not candidates:
        return None
    best = max(candidates, key=lambda item: item["score"])
    return best["label"].strip().lower() or None


class EmotionAnnotator:
    """
    Labels text with a single emotion from the model's taxonomy.

    Args:
        api_key (Optional[str]): Hugging Face token. Without it the annotator is unconfigured.
        url (str): Inference endpoint for the classification model.
        timeout_s (float): Per-call timeout in seconds.
        enabled (bool): Feature flag; a disabled annotator is treated as unconfigured.
        transport (Optional[httpx.AsyncBaseTransport]): Custom transport, used by tests.
    """

    def __init__(
        self,
        api_key: Optional[str],
        url: str = DEFAULT_EMOTION_URL,
        timeout_s: float = 5,
        enabled: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or None
        self.url = url
        self.timeout_s = timeout_s
        self.enabled = enabled
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return self.enabled and self.api_key is not None

    async def annotate(self, text: str) -> str:
        """
        Classify `text` and return its dominant emotion label.

        Returns:
            str: A lower-case label such as "joy" or "sadness", or "neutral" on any failure.
        """
        if not self.is_configured or not text.strip():
            return NEUTRAL

        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                response = await client.post(
                    self.url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={"inputs": text},
                )
                response.raise_for_status()
                label = pick_label(response.json())
        except Exception as e:
            logger.warning(f"[annotate] Emotion lookup failed, using neutral: {e}")
            return NEUTRAL

        if label is None:
            logger.warning("[annotate] Emotion response had no usable label, using neutral")
            return NEUTRAL
        return label
