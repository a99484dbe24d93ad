"""Health check endpoint for monitoring service status."""

import asyncio
from typing import Any

import aiosqlite
from starlette.requests import Request
from starlette.responses import JSONResponse

from soilmon.lib.db import count_readings
from soilmon.lib.exceptions import DatabaseError
from soilmon.lib.utils import utcnow
from soilmon.logging import get_logger
from soilmon.server.websockets import connection_manager

logger = get_logger("server.health")

_DB_ERRORS = (DatabaseError, aiosqlite.Error, OSError)


async def _check_database() -> tuple[bool, str]:
    """Check the reading store is reachable and report its size."""
    try:
        return True, f"{await count_readings()} readings stored"
    except _DB_ERRORS as e:
        logger.error("Database health check failed: %s", e)
        return False, str(e)


async def _check_mqtt(request: Request) -> tuple[bool, str]:
    """Check the MQTT subscriber is connected to the broker."""
    subscriber: Any = getattr(request.app.state, "subscriber", None)
    if subscriber is None:
        return False, "not started"
    if subscriber.is_connected:
        return True, "connected"
    return False, "disconnected"


async def health_check(request: Request) -> JSONResponse:
    """Report database and broker health plus live observer count."""
    (db_ok, db_status), (mqtt_ok, mqtt_status) = await asyncio.gather(
        _check_database(),
        _check_mqtt(request),
    )
    is_healthy = db_ok and mqtt_ok

    return JSONResponse(
        {
            "status": "healthy" if is_healthy else "unhealthy",
            "timestamp": utcnow().isoformat(),
            "checks": {
                "database": {"ok": db_ok, "status": db_status},
                "mqtt": {"ok": mqtt_ok, "status": mqtt_status},
                "observers": connection_manager.connection_count(),
            },
        },
        status_code=200 if is_healthy else 503,
    )
