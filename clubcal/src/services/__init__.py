"""
Service layer for the ClubCal recurrence engine.

- occurrence_generator: pure occurrence generation for a pattern and window
- recurrence_manager: horizon extension, cleanup and integrity scans
- recurrence_update_service: pattern reconciliation and single-occurrence edits
- tenant_service: tenant directory
- maintenance_loop: background maintenance scheduler
"""

from clubcal.src.services.exceptions import (
    ServiceError,
    NotFoundError,
    ConflictError,
    ValidationError,
)
from clubcal.src.services.occurrence_generator import (
    generate_occurrences,
    validate_pattern,
)
from clubcal.src.services.recurrence_manager import IntegrityReport, RecurrenceManager
from clubcal.src.services.recurrence_update_service import (
    ReconciliationPlan,
    RecurrenceUpdateService,
)
from clubcal.src.services.tenant_service import TenantService
from clubcal.src.services.maintenance_loop import (
    MaintenanceCycleStats,
    RecurrenceMaintenanceLoop,
    TenantMaintenanceStats,
)

__all__ = [
    "ServiceError",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "generate_occurrences",
    "validate_pattern",
    "IntegrityReport",
    "RecurrenceManager",
    "ReconciliationPlan",
    "RecurrenceUpdateService",
    "TenantService",
    "MaintenanceCycleStats",
    "RecurrenceMaintenanceLoop",
    "TenantMaintenanceStats",
]
