"""
Health endpoints for the chat relay.

Two liveness checks are exposed: a plain-text banner at "/" for humans and
uptime probes, and a small JSON payload at "/health" with a UTC timestamp.
Neither touches providers or the session store, so they stay reliable while
backends are down.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter()

BANNER = "Chat relay backend running"


@router.get("/", response_class=PlainTextResponse)
def root() -> str:
    """Return a constant banner confirming the process accepts requests."""
    return BANNER


@router.get("/health")
def health() -> Dict[str, str]:
    """
    Return a simple health status payload.

    Returns:
        Dict[str, str]: A JSON-serializable dictionary with keys "status" and
        "timestamp" (ISO-8601, UTC).
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
