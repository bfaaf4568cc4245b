"""
Providers package for the chat relay.

This package houses the provider adapters (one per completion backend) and
the factory that builds them from configuration. It keeps external SDK wiring
separate from the dispatch logic, which only depends on `ProviderAdapter`.
"""

from .base import ProviderAdapter
from .factory import build_providers

__all__ = ["ProviderAdapter", "build_providers"]
