"""
conftest.py – central pytest configuration and test bootstrap.

Pytest imports this module before it collects any test files, which lets us:
1) Extend `sys.path` with the project root so absolute-style imports like `from core ...`
   and `from shared ...` resolve without an editable install, and with this directory so
   test modules can import the shared doubles in `fakes.py`.
2) Clear provider credentials so importing `config` and `main` never builds clients that
   could reach a real backend. Tests that need configured providers use `FakeProvider`.
"""

import os
import sys
from pathlib import Path

# Ensure project root is on sys.path for direct imports like `core`, `shared`, etc.
TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
for path in (PROJECT_ROOT, TESTS_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

# Blank credentials leave every real provider unconfigured
for key in ("GROQ_API_KEY", "GEMINI_API_KEY", "CODING_API_KEY", "HF_API_KEY"):
    os.environ[key] = ""
