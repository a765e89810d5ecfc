"""
Recurrence maintenance daemon.

Runs the background maintenance loop that keeps every active recurring
series of every active tenant materialized ahead of time.

Usage:
    python -m clubcal.src.main
"""

import asyncio
import signal
import sys
from typing import Optional

from clubcal.src.config.settings import RecurrenceSettings, get_settings
from clubcal.src.db.database import SessionLocal, TenantSessionFactory, dispose_engine
from clubcal.src.services.maintenance_loop import RecurrenceMaintenanceLoop
from clubcal.src.utils.logging_config import get_logger, init_logging


class MaintenanceRunner:
    """
    Wires settings, sessions and signal handling around the maintenance loop.

    SIGINT and SIGTERM request a graceful shutdown: the loop finishes the
    tenant it is working on and stops.
    """

    def __init__(self, settings: Optional[RecurrenceSettings] = None):
        self.settings = settings or get_settings()
        self.logger = get_logger("scheduler")
        self._loop: Optional[RecurrenceMaintenanceLoop] = None

    def build_loop(self) -> RecurrenceMaintenanceLoop:
        return RecurrenceMaintenanceLoop(
            catalog_session_factory=SessionLocal,
            tenant_sessions=TenantSessionFactory(SessionLocal),
            settings=self.settings,
        )

    async def run(self) -> int:
        """
        Run the maintenance loop until a shutdown signal arrives.

        Returns:
            Exit code
        """
        self._loop = self.build_loop()

        # Signal handlers must be installed inside the running event loop
        event_loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            event_loop.add_signal_handler(sig, self.request_shutdown)

        try:
            return await self._loop.run()
        finally:
            dispose_engine()
            self.logger.info("Recurrence maintenance stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self.logger.info("Shutdown requested")
        if self._loop:
            self._loop.request_shutdown()


def main() -> int:
    """
    Entry point of the maintenance daemon.

    Returns:
        Exit code
    """
    init_logging()
    runner = MaintenanceRunner()
    return asyncio.run(runner.run())


if __name__ == "__main__":
    sys.exit(main())
