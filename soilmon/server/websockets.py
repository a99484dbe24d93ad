"""WebSocket live feed for accepted readings.

Observers connect to ``/readings`` and receive every reading accepted by
the ingestion pipeline from then on, one JSON object per message. There is
no replay: a newly connected observer only sees readings broadcast after it
was registered.
"""
import asyncio
import itertools
from contextlib import suppress
from typing import Any, Protocol

from starlette.websockets import WebSocket, WebSocketDisconnect

from soilmon.logging import get_logger

_logger = get_logger("server.websockets")


class Observer(Protocol):
    """Anything that can receive a JSON message (a WebSocket in practice)."""

    async def send_json(self, data: Any) -> None: ...


class ConnectionManager:
    """Tracks live observers and fans readings out to them."""

    def __init__(self) -> None:
        self._observers: dict[int, Observer] = {}
        self._handles = itertools.count(1)

    def register(self, observer: Observer) -> int:
        """Start delivering broadcasts to an observer.

        Returns:
            A handle to pass to unregister().
        """
        handle = next(self._handles)
        self._observers[handle] = observer
        _logger.info(
            "Observer %d connected (total: %d)", handle, len(self._observers)
        )
        return handle

    def unregister(self, handle: int) -> None:
        """Stop delivering broadcasts to an observer."""
        if self._observers.pop(handle, None) is not None:
            _logger.info(
                "Observer %d disconnected (remaining: %d)",
                handle,
                len(self._observers),
            )

    def connection_count(self) -> int:
        """Get the number of registered observers."""
        return len(self._observers)

    async def _send(self, handle: int, observer: Observer, data: Any) -> bool:
        try:
            await observer.send_json(data)
            return True
        except Exception as e:
            # Closed or broken transport, drop it without affecting others
            _logger.debug("Dropping observer %d: %r", handle, e)
            self.unregister(handle)
            return False

    async def broadcast(self, data: Any) -> int:
        """Send data to every registered observer concurrently.

        Returns:
            The number of observers that received the message.
        """
        if not self._observers:
            return 0
        observers = list(self._observers.items())
        results = await asyncio.gather(
            *(self._send(handle, obs, data) for handle, obs in observers)
        )
        return sum(results)


# Global connection manager
connection_manager = ConnectionManager()


async def ws_readings(websocket: WebSocket) -> None:
    """Stream accepted readings to a live observer.

    Messages sent by the client are ignored; the loop only exists to notice
    the disconnect.
    """
    await websocket.accept()
    handle = connection_manager.register(websocket)
    try:
        async for _ in websocket.iter_text():
            pass
    except WebSocketDisconnect:
        pass
    except asyncio.CancelledError:
        _logger.info("Connection to observer %d cancelled (shutdown)", handle)
        raise
    finally:
        connection_manager.unregister(handle)
        with suppress(Exception):
            await websocket.close()
