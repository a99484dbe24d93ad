"""MQTT subscription for inbound telemetry.

paho-mqtt runs its network loop in a background thread; every received
payload is handed over to the asyncio loop and queued in arrival order for
the single ingestion worker.
"""

import asyncio
from typing import Any

import paho.mqtt.client as mqtt

from soilmon.lib.config import get_settings
from soilmon.logging import get_logger

logger = get_logger("ingest.mqtt")


class MqttSubscriber:
    """Subscribes to the telemetry topic and queues raw payloads."""

    def __init__(self, queue: asyncio.Queue[bytes]) -> None:
        self._cfg = get_settings().mqtt
        self._queue = queue
        self._loop: asyncio.AbstractEventLoop | None = None
        self._connected = asyncio.Event()
        self._client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self._cfg.client_id,
            protocol=mqtt.MQTTv311,
        )
        if self._cfg.username:
            self._client.username_pw_set(
                self._cfg.username, self._cfg.password.get_secret_value()
            )
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    async def connect(self) -> None:
        """Connect to the broker and wait for the subscription.

        Raises:
            ConnectionError: If the broker cannot be reached in time.
        """
        self._loop = asyncio.get_running_loop()
        logger.info(
            "Connecting to MQTT broker %s:%d", self._cfg.host, self._cfg.port
        )
        try:
            await asyncio.to_thread(
                self._client.connect,
                self._cfg.host,
                self._cfg.port,
                self._cfg.keepalive_sec,
            )
        except OSError as e:
            raise ConnectionError(
                f"Cannot reach MQTT broker {self._cfg.host}:{self._cfg.port}: {e}"
            ) from e

        self._client.loop_start()
        try:
            await asyncio.wait_for(
                self._connected.wait(), self._cfg.connect_timeout_sec
            )
        except TimeoutError:
            self._client.loop_stop()
            raise ConnectionError(
                f"MQTT broker {self._cfg.host}:{self._cfg.port} did not "
                f"accept the connection within {self._cfg.connect_timeout_sec}s"
            ) from None

    def disconnect(self) -> None:
        """Stop the network loop and disconnect from the broker."""
        self._client.loop_stop()
        self._client.disconnect()
        self._set_connected(False)
        logger.info("Disconnected from MQTT broker")

    def _set_connected(self, connected: bool) -> None:
        # asyncio.Event is not thread-safe, flip it on the loop thread
        setter = self._connected.set if connected else self._connected.clear
        if self._loop is None or self._loop.is_closed():
            setter()
        else:
            self._loop.call_soon_threadsafe(setter)

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        if reason_code.is_failure:
            logger.error("MQTT connection refused: %s", reason_code)
            return
        # Subscribing here also restores the subscription after a reconnect
        client.subscribe(self._cfg.topic, qos=1)
        logger.info("Connected to MQTT broker, subscribed to %s", self._cfg.topic)
        self._set_connected(True)

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        self._set_connected(False)
        logger.warning("Disconnected from MQTT broker: %s", reason_code)

    def _on_message(
        self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage
    ) -> None:
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, msg.payload)
