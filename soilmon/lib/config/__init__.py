"""Centralized configuration for the soil monitor.

This package provides:
- Enums for alert policies and archive backends
- Pydantic settings models for configuration
"""

from .enums import AlertPolicy, ArchiveBackend
from .settings import (
    MOISTURE_BOUNDS,
    AlertSettings,
    ArchiveSettings,
    IngestSettings,
    MqttSettings,
    S3Settings,
    ServerSettings,
    Settings,
    TelegramSettings,
    get_settings,
    parse_chat_ids,
)

__all__ = [
    # Enums
    "AlertPolicy",
    "ArchiveBackend",
    # Settings models
    "AlertSettings",
    "ArchiveSettings",
    "IngestSettings",
    "MqttSettings",
    "S3Settings",
    "ServerSettings",
    "Settings",
    "TelegramSettings",
    # Constants
    "MOISTURE_BOUNDS",
    # Functions
    "get_settings",
    "parse_chat_ids",
]
