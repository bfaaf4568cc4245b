"""
services/__init__.py

Stateful services used by the dispatcher:
- session_store: Session transcripts, per-session serialization and eviction
"""
