"""
Reference Server - Application Entry Point
==========================================

Bootstrap
---------
- Config validation
- ApplicationContext initialization (config, event bus, Engine adapters,
  reference cache preload, push channel)
- Run until SIGTERM / keyboard interrupt
- Graceful shutdown
"""

import asyncio
import signal
import sys

from src.core.config.config import Config
from src.core.infra.application_context import ApplicationContext
from src.core.logging.logger import get_logger, shutdown_logging

logger = get_logger(__name__)


# ============================================================================
# Application Entrypoint
# ============================================================================

async def main(stop_event: asyncio.Event) -> None:
    """
    Lifecycle:
        1. Validate configuration
        2. Initialize the application context
        3. Wait for a stop signal
        4. Shut down gracefully
    """
    logger.info("========== %s START ==========", Config.SERVER_NAME.upper())

    try:
        Config.validate()
        logger.info("Configuration validated", extra={"config": Config.get_config_summary()})
    except Exception as exc:
        logger.critical(f"Configuration validation failed: {exc}")
        raise

    context = ApplicationContext()
    try:
        await context.initialize()
        await stop_event.wait()

    except asyncio.CancelledError:
        logger.warning("Asyncio task cancellation received; shutting down gracefully.")
        raise

    finally:
        await context.shutdown()
        logger.info("========== SHUTDOWN COMPLETE ==========")


# ============================================================================
# Process Startup
# ============================================================================

def _install_signal_handlers(loop: asyncio.AbstractEventLoop, stop_event: asyncio.Event) -> None:
    """Install SIGTERM / SIGINT handlers that request a graceful stop."""
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            logger.debug("Signal handlers not supported on this platform (likely Windows)")
            return
    logger.debug("Signal handlers installed")


def run() -> None:
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    stop_event = asyncio.Event()
    _install_signal_handlers(loop, stop_event)

    try:
        loop.run_until_complete(main(stop_event))
    except KeyboardInterrupt:
        logger.info("Server manually stopped via keyboard interrupt.")
    except Exception as exc:
        logger.critical(f"Startup failure: {exc}", exc_info=True)
        sys.exit(1)
    finally:
        loop.close()
        logger.info("Event loop closed.")
        shutdown_logging()


if __name__ == "__main__":
    run()
