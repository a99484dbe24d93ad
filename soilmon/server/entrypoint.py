"""Application factory for the live feed server."""

from typing import Any

import uvicorn
from starlette.applications import Starlette
from starlette.routing import Route, WebSocketRoute

from soilmon.lib.config import get_settings

from .health import health_check
from .websockets import ws_readings


def create_app(subscriber: Any = None) -> Starlette:
    """Create and configure the Starlette application.

    Args:
        subscriber: The running MQTT subscriber, reported by /health.

    Returns:
        Configured Starlette application instance.
    """
    routes = [
        Route("/health", health_check),
        WebSocketRoute("/readings", ws_readings),
    ]
    app = Starlette(routes=routes)
    app.state.subscriber = subscriber
    return app


def create_server(app: Starlette) -> uvicorn.Server:
    """Create a uvicorn server bound to the configured live feed port.

    The server is served from the caller's event loop with ``serve()``, so
    the feed shares the loop with the ingestion pipeline.
    """
    cfg = get_settings().server
    config = uvicorn.Config(
        app,
        host=cfg.host,
        port=cfg.port,
        log_config=None,
        lifespan="off",
    )
    return uvicorn.Server(config)
