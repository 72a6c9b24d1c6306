"""
Application Context (Kernel) - Reference Server Orchestration
=============================================================

Purpose
-------
Central dependency injection kernel that initializes and shuts down the
server's infrastructure and domain services in dependency order.

Responsibilities
----------------
- Initialize ConfigManager (YAML defaults)
- Build the process EventBus
- Build the Engine API client and the ReferenceService
- Preload the reference cache, then start the push-channel socket
- Coordinate graceful shutdown in reverse order
- Provide structured lifecycle logging with timing

Non-Responsibilities
--------------------
- Business logic (delegated to domain services)
- Session lifecycle (other modules publish `session.*` events on the bus)

Initialization Order (Critical):
    1. ConfigManager
    2. EventBus
    3. EngineApiClient
    4. ReferenceService.initialize() (definitions + category preload)
    5. EngineSocket.start()

The socket starts last so no delta can arrive before the preload it would
patch has been committed.

Shutdown Order (Reverse):
    1. EngineSocket.stop()
    2. ReferenceService.dispose()
    3. EngineApiClient.aclose()
    4. EventBus.clear()
"""

from __future__ import annotations

import time
from typing import Optional

from src.core.config.manager import ConfigManager
from src.core.engine.client import EngineApiClient
from src.core.engine.socket import EngineSocket
from src.core.event.bus import EventBus
from src.core.logging.logger import get_logger
from src.modules.reference.service import ReferenceService

logger = get_logger(__name__)


class ApplicationContext:
    """
    Kernel for infrastructure orchestration and dependency injection.

    Usage:
        context = ApplicationContext()
        await context.initialize()
        ...
        await context.shutdown()

    Collaborators may be injected (tests pass a fake API client and disable
    the socket); anything not injected is built from configuration.
    """

    def __init__(
        self,
        api_client: Optional[EngineApiClient] = None,
        socket: Optional[EngineSocket] = None,
        enable_socket: Optional[bool] = None,
    ) -> None:
        self._config_manager = ConfigManager
        self._event_bus: Optional[EventBus] = None
        self._api_client = api_client
        self._socket = socket
        self._enable_socket = enable_socket
        self._reference_service: Optional[ReferenceService] = None
        self._initialized: bool = False

        logger.debug("ApplicationContext created")

    # ========================================================================
    # INITIALIZATION
    # ========================================================================

    async def initialize(self) -> None:
        """
        Initialize all components in dependency order.

        Raises:
            RuntimeError: If already initialized or initialization fails
        """
        if self._initialized:
            raise RuntimeError("ApplicationContext already initialized")

        logger.info("=" * 70)
        logger.info("APPLICATION CONTEXT INITIALIZATION")
        logger.info("=" * 70)

        start_time = time.perf_counter()

        try:
            # Step 1: ConfigManager
            step_start = time.perf_counter()
            self._config_manager.initialize()
            logger.info(
                "ConfigManager initialized (%.2fms)",
                (time.perf_counter() - step_start) * 1000,
            )

            # Step 2: EventBus
            self._event_bus = EventBus(config_manager=self._config_manager)

            # Step 3: Engine API client
            if self._api_client is None:
                self._api_client = EngineApiClient.from_config()

            # Step 4: Reference cache
            step_start = time.perf_counter()
            self._reference_service = ReferenceService(
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                api_client=self._api_client,
                logger=get_logger("src.modules.reference.service"),
            )
            await self._reference_service.initialize()
            logger.info(
                "ReferenceService initialized (%.2fms)",
                (time.perf_counter() - step_start) * 1000,
            )

            # Step 5: Push channel
            if self._socket_enabled():
                if self._socket is None:
                    self._socket = EngineSocket.from_config(
                        self._event_bus, self._config_manager
                    )
                await self._socket.start()
                logger.info("EngineSocket connected")
            else:
                logger.info("EngineSocket disabled by configuration")

            self._initialized = True
            logger.info("=" * 70)
            logger.info("Application context initialized successfully")
            logger.info("  Total time: %.2fms", (time.perf_counter() - start_time) * 1000)
            logger.info("=" * 70)

        except Exception as exc:
            logger.critical(
                "Application context initialization failed",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            await self._emergency_shutdown()
            raise RuntimeError("Failed to initialize application context") from exc

    def _socket_enabled(self) -> bool:
        if self._enable_socket is not None:
            return self._enable_socket
        return bool(self._config_manager.get("socket.enabled", True))

    # ========================================================================
    # GRACEFUL SHUTDOWN
    # ========================================================================

    async def shutdown(self) -> None:
        """Shut down all components in reverse dependency order."""
        if not self._initialized:
            logger.warning("ApplicationContext not initialized, nothing to shut down")
            return

        logger.info("=" * 70)
        logger.info("APPLICATION CONTEXT SHUTDOWN")
        logger.info("=" * 70)

        if self._socket is not None:
            try:
                await self._socket.stop()
                logger.info("EngineSocket stopped")
            except Exception as exc:
                logger.error(
                    "Error stopping engine socket",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )

        if self._reference_service is not None:
            try:
                await self._reference_service.dispose()
                logger.info("ReferenceService disposed")
            except Exception as exc:
                logger.error(
                    "Error disposing reference service",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )

        if self._api_client is not None:
            try:
                await self._api_client.aclose()
                logger.info("EngineApiClient closed")
            except Exception as exc:
                logger.error(
                    "Error closing engine API client",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )

        if self._event_bus is not None:
            self._event_bus.clear()

        self._initialized = False
        logger.info("Application context shutdown complete")

    async def _emergency_shutdown(self) -> None:
        """
        Best-effort cleanup when initialization fails partway through.
        Cleanup errors are logged, never raised.
        """
        logger.warning("Performing emergency shutdown")

        if self._socket is not None:
            try:
                await self._socket.stop()
            except Exception as exc:
                logger.warning("Socket cleanup failed", extra={"error": str(exc)})

        if self._reference_service is not None:
            try:
                await self._reference_service.dispose()
            except Exception as exc:
                logger.warning("Reference service cleanup failed", extra={"error": str(exc)})

        if self._api_client is not None:
            try:
                await self._api_client.aclose()
            except Exception as exc:
                logger.warning("API client cleanup failed", extra={"error": str(exc)})

    # ========================================================================
    # PROPERTIES
    # ========================================================================

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def event_bus(self) -> EventBus:
        if self._event_bus is None:
            raise RuntimeError("EventBus not initialized")
        return self._event_bus

    @property
    def reference_service(self) -> ReferenceService:
        if self._reference_service is None:
            raise RuntimeError("ReferenceService not initialized")
        return self._reference_service
