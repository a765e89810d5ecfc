"""
Background maintenance loop for recurring series.

On every tick the loop enumerates the active tenants, opens a store handle
per tenant and, for each active recurring master, extends its horizon when
it is running short. Optionally it also cleans up old completed occurrences
and runs an integrity scan per tenant.

Failure isolation:
- a failing master is rolled back and logged; the tenant's other masters
  are still processed
- a failing tenant is logged; the remaining tenants are still processed
- a failing cycle (e.g. the tenant directory is unreachable) is logged and
  the next cycle starts after the shorter error-retry delay

The loop is sequential across tenants and masters. Shutdown is observed at
the top of each iteration, between tenants, and during the wait between
cycles; a tenant's in-flight work is never interrupted.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from clubcal.src.config.settings import RecurrenceSettings, get_settings
from clubcal.src.db.database import TenantSessionFactory
from clubcal.src.models.tenant import Tenant
from clubcal.src.services.recurrence_manager import IntegrityReport, RecurrenceManager
from clubcal.src.services.tenant_service import TenantService
from clubcal.src.utils.logging_config import get_logger
from clubcal.src.utils.time_utils import utc_now


logger = get_logger("scheduler")


@dataclass
class TenantMaintenanceStats:
    """
    Outcome of one tenant's maintenance.

    Attributes:
        tenant_id: Tenant processed
        masters_processed: Masters whose extension check succeeded
        masters_failed: Masters whose extension raised
        occurrences_created: Occurrences added by extensions
        occurrences_cleaned: Completed occurrences removed by cleanup
        integrity: Integrity scan findings (None when disabled or failed)
        errors: Error messages of isolated failures
    """
    tenant_id: int
    masters_processed: int = 0
    masters_failed: int = 0
    occurrences_created: int = 0
    occurrences_cleaned: int = 0
    integrity: Optional[IntegrityReport] = None
    errors: List[str] = field(default_factory=list)


@dataclass
class MaintenanceCycleStats:
    """Aggregated outcome of one maintenance cycle."""
    started_at: datetime
    tenants_processed: int = 0
    tenants_failed: int = 0
    masters_processed: int = 0
    masters_failed: int = 0
    occurrences_created: int = 0
    occurrences_cleaned: int = 0
    interrupted: bool = False
    errors: List[str] = field(default_factory=list)

    def add(self, tenant_stats: TenantMaintenanceStats) -> None:
        """Fold a tenant's stats into the cycle totals."""
        self.tenants_processed += 1
        self.masters_processed += tenant_stats.masters_processed
        self.masters_failed += tenant_stats.masters_failed
        self.occurrences_created += tenant_stats.occurrences_created
        self.occurrences_cleaned += tenant_stats.occurrences_cleaned
        self.errors.extend(tenant_stats.errors)


class RecurrenceMaintenanceLoop:
    """
    Long-running maintenance loop with cooperative shutdown.

    Store work is synchronous (SQLAlchemy), so each tenant's unit of work
    runs in a worker thread while the event loop only waits.

    Attributes:
        catalog_session_factory: Opens sessions on the tenant directory
        tenant_sessions: Opens per-tenant store handles
        settings: Intervals, thresholds and feature switches
    """

    def __init__(
        self,
        catalog_session_factory: Callable[[], Session],
        tenant_sessions: TenantSessionFactory,
        settings: Optional[RecurrenceSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the maintenance loop.

        Args:
            catalog_session_factory: Callable returning a catalog Session
            tenant_sessions: Factory for per-tenant sessions
            settings: Recurrence settings (defaults to get_settings())
            clock: Source of the reference time of each tenant run
        """
        self.catalog_session_factory = catalog_session_factory
        self.tenant_sessions = tenant_sessions
        self.settings = settings or get_settings()
        self._clock = clock
        self._shutdown_event = asyncio.Event()
        self._last_cycle_stats: Optional[MaintenanceCycleStats] = None

    async def run(self) -> int:
        """
        Run maintenance cycles until shutdown is requested.

        Returns:
            Exit code (0 on graceful shutdown or cancellation)
        """
        logger.info(
            f"Starting recurrence maintenance loop "
            f"(interval: {self.settings.maintenance_interval_minutes}m, "
            f"retry: {self.settings.error_retry_minutes}m)"
        )

        try:
            while not self._shutdown_event.is_set():
                try:
                    self._last_cycle_stats = await self.run_cycle()
                    delay = self.settings.maintenance_interval_seconds
                except Exception as e:
                    logger.error(
                        f"Maintenance cycle failed: {e}",
                        exc_info=True
                    )
                    delay = self.settings.error_retry_seconds

                await self._wait(delay)

        except asyncio.CancelledError:
            logger.info("Maintenance loop cancelled")
            return 0

        logger.info("Maintenance loop stopped")
        return 0

    async def run_cycle(self) -> MaintenanceCycleStats:
        """
        Run one maintenance pass over all active tenants.

        Returns:
            MaintenanceCycleStats for the pass

        Raises:
            Exception: If the tenant directory cannot be read
        """
        stats = MaintenanceCycleStats(started_at=self._clock())
        tenants = await asyncio.to_thread(self._load_active_tenants)

        logger.info(
            "Starting maintenance cycle",
            extra={"tenants": len(tenants)}
        )

        for tenant in tenants:
            if self._shutdown_event.is_set():
                stats.interrupted = True
                logger.info("Shutdown requested, ending maintenance cycle early")
                break

            try:
                tenant_stats = await asyncio.to_thread(self.maintain_tenant, tenant)
                stats.add(tenant_stats)
            except Exception as e:
                error_msg = f"Maintenance failed for tenant {tenant.id}: {e}"
                logger.error(error_msg, extra={"tenant_id": tenant.id}, exc_info=True)
                stats.tenants_failed += 1
                stats.errors.append(error_msg)

        logger.info(
            "Maintenance cycle completed",
            extra={
                "tenants_processed": stats.tenants_processed,
                "tenants_failed": stats.tenants_failed,
                "masters_processed": stats.masters_processed,
                "masters_failed": stats.masters_failed,
                "occurrences_created": stats.occurrences_created,
                "occurrences_cleaned": stats.occurrences_cleaned,
            }
        )
        return stats

    def maintain_tenant(self, tenant: Tenant) -> TenantMaintenanceStats:
        """
        Extend every active series of one tenant, then run housekeeping.

        Per-master failures are rolled back and recorded; failures to open
        the tenant's store or enumerate its masters propagate.

        Args:
            tenant: Active tenant from the directory

        Returns:
            TenantMaintenanceStats for the tenant
        """
        stats = TenantMaintenanceStats(tenant_id=tenant.id)
        now = self._clock()

        with self.tenant_sessions.open(tenant) as db:
            manager = RecurrenceManager(db, tenant.id, self.settings)

            for master in manager.list_active_masters():
                master_id = master.id
                try:
                    created = manager.extend(master, now=now)
                    stats.masters_processed += 1
                    stats.occurrences_created += len(created)
                except Exception as e:
                    db.rollback()
                    error_msg = f"Extension failed for master event {master_id}: {e}"
                    logger.error(
                        error_msg,
                        extra={"tenant_id": tenant.id, "master_event_id": master_id}
                    )
                    stats.masters_failed += 1
                    stats.errors.append(error_msg)

            if self.settings.enable_cleanup:
                try:
                    stats.occurrences_cleaned = manager.cleanup_old_occurrences(now=now)
                except Exception as e:
                    db.rollback()
                    error_msg = f"Cleanup failed for tenant {tenant.id}: {e}"
                    logger.error(error_msg, extra={"tenant_id": tenant.id})
                    stats.errors.append(error_msg)

            if self.settings.enable_integrity_check:
                try:
                    stats.integrity = manager.validate_integrity()
                except Exception as e:
                    db.rollback()
                    error_msg = f"Integrity check failed for tenant {tenant.id}: {e}"
                    logger.error(error_msg, extra={"tenant_id": tenant.id})
                    stats.errors.append(error_msg)

        return stats

    def _load_active_tenants(self) -> List[Tenant]:
        db = self.catalog_session_factory()
        try:
            return TenantService(db).list_active_tenants()
        finally:
            db.close()

    async def _wait(self, seconds: float) -> None:
        """Wait for the given delay or until shutdown is requested."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            # Normal timeout, start the next cycle
            pass

    def request_shutdown(self) -> None:
        """Request graceful shutdown of the maintenance loop."""
        self._shutdown_event.set()

    @property
    def last_cycle_stats(self) -> Optional[MaintenanceCycleStats]:
        """Stats of the most recent successful cycle, if any."""
        return self._last_cycle_stats

    @property
    def is_running(self) -> bool:
        """Check if the maintenance loop has not been asked to stop."""
        return not self._shutdown_event.is_set()
