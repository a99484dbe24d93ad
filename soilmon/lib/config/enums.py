"""Enumerations for the soil monitor."""

from enum import StrEnum


class AlertPolicy(StrEnum):
    """Debounce policy used to decide when a low reading raises an alert."""

    SUSTAINED = "sustained"  # Alert once the low level persists for a delay
    COOLDOWN = "cooldown"  # Alert on low readings, spaced by an interval


class ArchiveBackend(StrEnum):
    S3 = "s3"
    LOCAL = "local"
