"""
Provider factory: builds every adapter the dispatcher may route to.

This module centralizes provider construction. It reads model names, base
URLs and generation overrides from the `providers` section of CONFIG and
credentials from the ENV mapping, and returns adapters keyed by their
identifier. A missing credential never raises here: the adapter is still
built, reports itself as unconfigured, and the dispatcher skips it.

Adding a provider means implementing `ProviderAdapter` and registering a
builder in `PROVIDER_BUILDERS`; orderings in config can then reference its id.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from .base import ProviderAdapter
from .gemini_provider import GeminiProvider
from .openai_compatible import CodingProvider, GroqProvider, GROQ_BASE_URL, OPENAI_BASE_URL

logger = logging.getLogger(__name__)


def _overrides(provider_cfg: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "temperature": provider_cfg.get("temperature"),
        "max_tokens": provider_cfg.get("max_tokens"),
    }


def _build_groq(config: Dict[str, Any], env: Mapping[str, Optional[str]]) -> ProviderAdapter:
    providers_cfg = config.get("providers", {}) or {}
    groq_cfg = providers_cfg.get("groq", {}) or {}
    return GroqProvider(
        api_key=env.get("GROQ_API_KEY"),
        model=groq_cfg.get("model", "llama-3.1-8b-instant"),
        base_url=groq_cfg.get("base_url", GROQ_BASE_URL),
        system_prompt=config.get("system_prompt"),
        timeout_s=providers_cfg.get("timeout_s", 20),
        **_overrides(groq_cfg),
    )


def _build_gemini(config: Dict[str, Any], env: Mapping[str, Optional[str]]) -> ProviderAdapter:
    gemini_cfg = (config.get("providers", {}) or {}).get("gemini", {}) or {}
    return GeminiProvider(
        api_key=env.get("GEMINI_API_KEY"),
        model=gemini_cfg.get("model", "gemini-1.5-flash"),
        **_overrides(gemini_cfg),
    )


def _build_coding(config: Dict[str, Any], env: Mapping[str, Optional[str]]) -> ProviderAdapter:
    providers_cfg = config.get("providers", {}) or {}
    coding_cfg = providers_cfg.get("coding", {}) or {}
    return CodingProvider(
        api_key=env.get("CODING_API_KEY"),
        model=coding_cfg.get("model", "gpt-4o-mini"),
        base_url=coding_cfg.get("base_url", OPENAI_BASE_URL),
        system_prompt=config.get("coding_system_prompt") or config.get("system_prompt"),
        timeout_s=providers_cfg.get("timeout_s", 20),
        **_overrides(coding_cfg),
    )


PROVIDER_BUILDERS: Dict[str, Callable[[Dict[str, Any], Mapping[str, Optional[str]]], ProviderAdapter]] = {
    "groq": _build_groq,
    "gemini": _build_gemini,
    "coding": _build_coding,
}


def build_providers(config: Dict[str, Any], env: Mapping[str, Optional[str]]) -> Dict[str, ProviderAdapter]:
    """
    Construct all known provider adapters.

    Args:
        config (Dict[str, Any]): The global CONFIG mapping (not just the providers section).
        env (Mapping[str, Optional[str]]): Credential mapping, normally `config.ENV`.

    Returns:
        Dict[str, ProviderAdapter]: Adapters keyed by provider id, configured or not.
    """
    providers = {name: builder(config, env) for name, builder in PROVIDER_BUILDERS.items()}
    configured = [name for name, adapter in providers.items() if adapter.is_configured]
    logger.info(
        "Providers built: %s (configured: %s)",
        ", ".join(providers),
        ", ".join(configured) if configured else "none",
    )
    return providers
