"""
shared/__init__.py

Shared models and errors used across multiple modules.

This package contains common definitions used by the dispatcher, the
providers, the session store and the API layer:
- models: Turns, dispatch results, intent tags and request schemas
- errors: The relay's exception taxonomy
"""
