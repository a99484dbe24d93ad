"""Service runner utility for long-running async services."""

import asyncio
import signal
from collections.abc import Awaitable, Callable

from soilmon.logging import configure, get_logger


def run_service(
    main: Callable[[], Awaitable[None]],
    *,
    name: str = "service",
) -> int:
    """Run an async service with signal handling.

    Provides a standard entry point for services that:
    - Configures logging
    - Cancels the service on SIGTERM/SIGINT so it can clean up
    - Reports startup or runtime failures through the exit code

    Args:
        main: Async function to run (typically named ``run``).
        name: Service name for logging.

    Returns:
        Process exit code: 0 on a clean shutdown, 1 if the service failed.
    """
    logger = get_logger(f"{name}.service")

    configure()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    task = loop.create_task(main())  # type: ignore[arg-type]

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, task.cancel)

    try:
        loop.run_until_complete(task)
    except asyncio.CancelledError:
        logger.info("%s service stopped", name.capitalize())
    except Exception:
        logger.exception("%s service failed", name.capitalize())
        return 1
    finally:
        loop.close()
    return 0
