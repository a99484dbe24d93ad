"""Log output for the ingestion service, live feed and archiver.

Every soilmon module logs under the ``soilmon`` namespace via
:func:`get_logger`. Entry points call :func:`configure` once at startup to
attach a single stderr handler.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s - %(message)s"

# Third-party loggers held at WARNING: per-connection websocket chatter
# duplicates soilmon.server.websockets, and paho reports every packet.
QUIET_LOGGERS = ("uvicorn.protocols.websockets", "paho")

_handler: logging.Handler | None = None


def configure(level: int = logging.INFO) -> None:
    """Send soilmon and uvicorn records to stderr in one format.

    Only the first call has an effect.
    """
    global _handler
    if _handler is not None:
        return

    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(logging.Formatter(LOG_FORMAT))

    app_logger = logging.getLogger("soilmon")
    app_logger.setLevel(level)
    app_logger.addHandler(_handler)

    # uvicorn installs its own handlers; replace them with ours
    server_logger = logging.getLogger("uvicorn")
    server_logger.handlers.clear()
    server_logger.addHandler(_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return the ``soilmon.<name>`` logger, e.g. ``get_logger("archiver")``."""
    return logging.getLogger(f"soilmon.{name}")
