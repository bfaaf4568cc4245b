""" main.py: FastAPI application entry point and runtime configuration.

This module builds the ASGI app, wires the dispatch engine with its session store, providers,
classifier and emotion annotator, mounts the API routers, configures CORS and exposes a Prometheus
metrics endpoint. When executed directly, it starts a Uvicorn server using host/port values from
configuration (PORT in the environment wins, defaulting to 10000).
"""

from typing import Optional
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from config import CONFIG, ENV
from core.classifier import KeywordIntentClassifier
from core.dispatcher import DispatchEngine
from core.emotion import EmotionAnnotator, DEFAULT_EMOTION_URL
from providers import build_providers
from services.session_store import InMemorySessionStore
from version import __version__

# --- Router Imports ---
from api import chat as chat_router
from api import health as health_router

# Get a logger instance for this module
logger = logging.getLogger(__name__)


def build_engine(config: dict = CONFIG, env: dict = ENV) -> DispatchEngine:
    """
    Assemble the dispatch engine from configuration and credentials.

    Args:
        config (dict): The global CONFIG mapping.
        env (dict): Credential mapping; missing keys leave the matching provider unconfigured.

    Returns:
        DispatchEngine: Engine with an in-memory session store bounded by the `sessions` section.
    """
    sessions_cfg = config.get('sessions', {}) or {}
    store = InMemorySessionStore(
        max_sessions=sessions_cfg.get('max_sessions'),
        max_idle_s=sessions_cfg.get('max_idle_s'),
    )

    classifier_cfg = config.get('classifier', {}) or {}
    classifier = KeywordIntentClassifier(keywords=classifier_cfg.get('keywords'))

    emotion_cfg = config.get('emotion', {}) or {}
    annotator = EmotionAnnotator(
        api_key=env.get('HF_API_KEY'),
        url=emotion_cfg.get('url', DEFAULT_EMOTION_URL),
        timeout_s=emotion_cfg.get('timeout_s', 5),
        enabled=emotion_cfg.get('enabled', True),
    )

    return DispatchEngine.from_config(
        config,
        store=store,
        providers=build_providers(config, env),
        classifier=classifier,
        annotator=annotator,
    )


def create_app(engine: Optional[DispatchEngine] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        engine (Optional[DispatchEngine]): Pre-built engine, mainly for tests. Built from
            CONFIG and ENV when omitted.

    Returns:
        FastAPI: App with the chat routes mounted at both "/" and "/api", health routes,
        CORS middleware and a "/metrics" endpoint.
    """
    app = FastAPI(title="Chat Relay", version=__version__)
    app.state.engine = engine or build_engine()

    # Include routers
    app.include_router(health_router.router, tags=["Health"])
    app.include_router(chat_router.router, tags=["Chat"])
    app.include_router(chat_router.router, prefix="/api", tags=["Chat"])

    # Add Prometheus metrics endpoint
    app.mount("/metrics", make_asgi_app())

    # Configure CORS
    allow_origins = CONFIG.get('cors', {}).get('allow_origins', ["*"])
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    logger.info("[create_app] Chat relay app created")
    return app


app = create_app()

# The uvicorn server is used to run the FastAPI application.
if __name__ == '__main__':
    import uvicorn
    logger.info("[__main__] Starting Uvicorn server for main.py\n")
    uvicorn.run(
        app,
        host=CONFIG.get('server', {}).get('host', '0.0.0.0'),
        port=int(CONFIG.get('server', {}).get('port', 10000)),
    )
