"""
core/__init__.py

Core dispatch and classification modules.

This package contains the decision logic of the relay:
- arithmetic: Deterministic answers for bare arithmetic expressions
- classifier: Intent classification for provider routing
- dispatcher: Provider ordering, fallback and transcript updates
- emotion: Optional emotion labelling of finished exchanges
"""
