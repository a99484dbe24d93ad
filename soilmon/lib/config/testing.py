"""Test utilities for configuration.

This module provides helpers for overriding settings in tests. It should NOT
be imported in production code.
"""

from typing import Any

import soilmon.lib.config.settings as _settings_module
from soilmon.lib.config.enums import ArchiveBackend
from soilmon.lib.config.settings import Settings, _load_settings


def set_settings(settings: Settings | None) -> None:
    """Set or clear the global settings override for testing.

    Pass a Settings instance to override the global settings, or None to
    clear the override and revert to environment-based settings.
    """
    _settings_module._settings_override = settings
    _load_settings.cache_clear()


def use_settings(**fields: Any) -> Settings:
    """Build Settings from field values and install them as the override.

    Archives go to the local backend unless ``archive_backend`` is given,
    so no S3 bucket has to be configured.
    """
    settings = Settings(**{"archive_backend": ArchiveBackend.LOCAL, **fields})
    set_settings(settings)
    return settings
