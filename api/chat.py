"""
api/chat.py (both CHAT and RESET endpoints)

Handles the conversational endpoints of the relay.

Endpoints:
  - POST /chat: Receives a user message (and optional session id), dispatches it through
                the DispatchEngine and returns the reply with the provider that produced it.
  - POST /reset: Clears the transcript of one session.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from core.dispatcher import DispatchEngine
from shared.errors import AllProvidersExhaustedError, ValidationError
from shared.models import ChatRequest, ResetRequest

# Get a logger instance for this module
logger = logging.getLogger(__name__)

router = APIRouter()


def get_engine(request: Request) -> DispatchEngine:
    """Return the process-wide engine built at application startup."""
    return request.app.state.engine


@router.post("/chat")
async def handle_chat(payload: Optional[ChatRequest] = None, engine: DispatchEngine = Depends(get_engine)):
    """
    Answer one user message and return a JSON reply.

    Args:
        payload (ChatRequest): JSON body with 'message' and an optional 'sessionId'.

    Returns:
        JSONResponse:
            - 200 with 'reply', 'provider', 'sessionId' and, when available, 'emotion'.
            - 400 with a fixed error when the message is missing or blank.
            - 500 with a fixed error when every provider failed; the session keeps the
              unanswered user turn.
            - 500 carrying the fault description for any unexpected error.
    """
    payload = payload or ChatRequest()
    logger.info(f"[handle_chat] Received message for session: {payload.sessionId or 'new'}")

    try:
        result = await engine.dispatch(payload.message, payload.sessionId)
    except ValidationError as e:
        logger.warning(f"[handle_chat] Rejected request: {e}")
        return JSONResponse({"error": str(e)}, status_code=400)
    except AllProvidersExhaustedError as e:
        logger.error(f"[handle_chat] All providers failed for session {e.session_id}")
        return JSONResponse({"error": str(e)}, status_code=500)
    except Exception as e:
        logger.error(f"[handle_chat] Unexpected error: {e}", exc_info=True)
        return JSONResponse({"error": str(e)}, status_code=500)

    logger.info(f"[handle_chat] Reply from {result.provider_id} for session {result.session_id}")
    return JSONResponse(result.to_api_response())


@router.post("/reset")
async def reset_conversation(payload: ResetRequest, engine: DispatchEngine = Depends(get_engine)):
    """
    Clear the transcript of a session.

    Resetting an unknown session is treated as success so clients can call it
    unconditionally.

    Returns:
        JSONResponse: 200 with 'response' and a human-readable 'message', or 400 when
            'sessionId' is missing.
    """
    if not payload.sessionId:
        logger.warning("[reset_conversation] Received reset request WITHOUT sessionId")
        return JSONResponse({"error": "sessionId required"}, status_code=400)

    existed = await engine.store.reset(payload.sessionId)
    message = "Session cleared" if existed else "No active session"
    logger.info(f"[reset_conversation] {message}: {payload.sessionId}")
    return JSONResponse({"response": "ok", "message": message})
