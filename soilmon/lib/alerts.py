"""Low moisture alert debouncing.

Tracks a small state machine per sensor and invokes a callback only when a
low moisture condition warrants a notification. Two debounce policies are
available:

- ``sustained``: the level must stay below the threshold for ``alert_delay``
  before one alert fires; further alerts are suppressed until a reading at
  or above the threshold is observed.
- ``cooldown``: every low reading may alert, as long as the previous alert
  for that sensor is older than ``alert_interval``.

The reading's arrival time is the clock, so for a given sequence of readings
the emitted alerts are always the same.

Thread-safe: state mutations are protected by a lock, callbacks run outside
of it.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum, auto

from soilmon.lib.config import AlertPolicy
from soilmon.lib.reading import Reading
from soilmon.logging import get_logger

logger = get_logger("lib.alerts")


class AlertState(Enum):
    """Possible alert states for a sensor."""

    NORMAL = auto()
    PENDING = auto()
    ALERTED = auto()


@dataclass(frozen=True, slots=True)
class SensorState:
    """Debounce state of a single sensor."""

    state: AlertState = AlertState.NORMAL
    below_threshold_since: datetime | None = None
    last_alert_sent_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class AlertEvent:
    """Details about an alert that should be delivered."""

    sensor_id: str
    moisture_level: int
    threshold: int
    observed_at: datetime
    policy: AlertPolicy


type AlertCallback = Callable[[AlertEvent], None]

_NORMAL = SensorState()


class AlertDebouncer:
    """Decides when a sensor's low moisture level should raise an alert.

    One SensorState is kept per sensor_id, created lazily on the first
    reading and never removed.
    """

    def __init__(
        self,
        policy: AlertPolicy = AlertPolicy.SUSTAINED,
        threshold: int = 25,
        alert_delay: timedelta = timedelta(minutes=5),
        alert_interval: timedelta = timedelta(minutes=5),
    ) -> None:
        self.policy = policy
        self.threshold = threshold
        self.alert_delay = alert_delay
        self.alert_interval = alert_interval
        self._lock = threading.Lock()
        self._states: dict[str, SensorState] = {}
        self._callback: AlertCallback | None = None

    def register_callback(self, callback: AlertCallback) -> None:
        """Register the function called whenever an alert fires."""
        with self._lock:
            self._callback = callback
        logger.debug("Registered alert callback %r", callback)

    def _next_sustained(
        self, reading: Reading, previous: SensorState
    ) -> tuple[SensorState, bool]:
        now = reading.observed_at
        if reading.moisture_level >= self.threshold:
            return _NORMAL, False

        if previous.state == AlertState.ALERTED:
            return previous, False

        since = previous.below_threshold_since
        if previous.state == AlertState.NORMAL or since is None:
            since = now

        if now - since >= self.alert_delay:
            return SensorState(state=AlertState.ALERTED), True
        return SensorState(AlertState.PENDING, below_threshold_since=since), False

    def _next_cooldown(
        self, reading: Reading, previous: SensorState
    ) -> tuple[SensorState, bool]:
        now = reading.observed_at
        if reading.moisture_level >= self.threshold:
            return previous, False

        last = previous.last_alert_sent_at
        if last is None or now - last > self.alert_interval:
            return (
                SensorState(AlertState.ALERTED, last_alert_sent_at=now),
                True,
            )
        return previous, False

    def check(self, reading: Reading) -> SensorState:
        """Evaluate a reading and fire the callback if an alert is due.

        Returns:
            The sensor's state after this reading.
        """
        with self._lock:
            previous = self._states.get(reading.sensor_id, _NORMAL)
            if self.policy == AlertPolicy.COOLDOWN:
                new, fire = self._next_cooldown(reading, previous)
            else:
                new, fire = self._next_sustained(reading, previous)
            self._states[reading.sensor_id] = new
            callback = self._callback

        if (
            self.policy == AlertPolicy.SUSTAINED
            and previous.state != AlertState.NORMAL
            and new.state == AlertState.NORMAL
        ):
            logger.info(
                "Moisture for sensor %s is back to normal: %d%%",
                reading.sensor_id,
                reading.moisture_level,
            )
        elif previous.state == AlertState.NORMAL and new.state == AlertState.PENDING:
            logger.info(
                "Sensor %s dropped below threshold: %d%% (threshold: %d%%)",
                reading.sensor_id,
                reading.moisture_level,
                self.threshold,
            )

        if fire:
            logger.warning(
                "Sensor %s moisture too low: %d%% (threshold: %d%%)",
                reading.sensor_id,
                reading.moisture_level,
                self.threshold,
            )
            # Call callback outside of lock to prevent deadlocks
            if callback is not None:
                callback(
                    AlertEvent(
                        sensor_id=reading.sensor_id,
                        moisture_level=reading.moisture_level,
                        threshold=self.threshold,
                        observed_at=reading.observed_at,
                        policy=self.policy,
                    )
                )
        return new

    def get_state(self, sensor_id: str) -> SensorState:
        """Get the current debounce state for a sensor."""
        with self._lock:
            return self._states.get(sensor_id, _NORMAL)

    def known_sensors(self) -> list[str]:
        """Return the ids of every sensor seen so far."""
        with self._lock:
            return sorted(self._states)

    def reset(self, sensor_id: str | None = None) -> None:
        """Reset state for one sensor, or for all sensors."""
        with self._lock:
            if sensor_id is None:
                self._states.clear()
            else:
                self._states.pop(sensor_id, None)


def from_settings() -> AlertDebouncer:
    """Build a debouncer from the configured alert settings."""
    from soilmon.lib.config import get_settings

    cfg = get_settings().alerts
    return AlertDebouncer(
        policy=cfg.policy,
        threshold=cfg.threshold,
        alert_delay=timedelta(seconds=cfg.delay_sec),
        alert_interval=timedelta(seconds=cfg.interval_sec),
    )
