"""
Tenant service for the tenant directory.

The maintenance loop enumerates active tenants through this service and
opens one store handle per tenant.

Design:
- Tenant names, slugs and domains must be unique
- Slugs are auto-generated from names
- Tenants cannot be hard-deleted (use is_active=false)
"""

from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clubcal.src.models.tenant import Tenant
from clubcal.src.services.exceptions import ConflictError, NotFoundError, ValidationError
from clubcal.src.utils.logging_config import get_logger


logger = get_logger("services")


class TenantService:
    """
    Service for reading and registering tenants.

    Usage:
        >>> service = TenantService(db_session)
        >>> tenant = service.create_tenant("Riverside Tennis Club", "riverside.example")
        >>> [t.slug for t in service.list_active_tenants()]
        ['riverside-tennis-club']
    """

    def __init__(self, db: Session):
        """
        Initialize tenant service.

        Args:
            db: SQLAlchemy session on the catalog database
        """
        self.db = db

    def list_active_tenants(self) -> List[Tenant]:
        """Active tenants in enumeration (id) order."""
        return (
            self.db.query(Tenant)
            .filter(Tenant.is_active.is_(True))
            .order_by(Tenant.id)
            .all()
        )

    def get_by_guid(self, guid: str) -> Tenant:
        """
        Get a tenant by GUID.

        Args:
            guid: Tenant GUID (ten_xxx format)

        Raises:
            NotFoundError: If the GUID is malformed or unknown
        """
        uuid_value = Tenant.try_parse_guid(guid)
        if uuid_value is None:
            raise NotFoundError("Tenant", guid)

        tenant = self.db.query(Tenant).filter(Tenant.uuid == uuid_value).first()
        if not tenant:
            raise NotFoundError("Tenant", guid)
        return tenant

    def create_tenant(
        self,
        name: str,
        domain: str,
        schema_name: Optional[str] = None,
        is_active: bool = True,
    ) -> Tenant:
        """
        Register a new tenant.

        Args:
            name: Display name (must be unique)
            domain: Routing domain/identifier (must be unique)
            schema_name: Optional dedicated database schema
            is_active: Whether the tenant is serviced by maintenance

        Returns:
            Created Tenant instance

        Raises:
            ValidationError: If name or domain is empty
            ConflictError: If name, slug or domain already exists
        """
        if not name or not name.strip():
            raise ValidationError("Tenant name cannot be empty", field="name")
        if not domain or not domain.strip():
            raise ValidationError("Tenant domain cannot be empty", field="domain")

        name = name.strip()
        domain = domain.strip().lower()
        slug = Tenant.generate_slug(name)
        if not slug:
            raise ValidationError(
                "Could not generate valid slug from tenant name", field="name"
            )

        existing = (
            self.db.query(Tenant)
            .filter(or_(
                func.lower(Tenant.name) == func.lower(name),
                Tenant.slug == slug,
                Tenant.domain == domain,
            ))
            .first()
        )
        if existing:
            raise ConflictError(
                f"Tenant with name '{name}', slug '{slug}' or domain '{domain}' already exists"
            )

        try:
            tenant = Tenant(
                name=name,
                slug=slug,
                domain=domain,
                schema_name=schema_name,
                is_active=is_active,
            )
            self.db.add(tenant)
            self.db.commit()
            self.db.refresh(tenant)
        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"Failed to create tenant '{name}': {e}")
            raise ConflictError(f"Tenant '{name}' already exists")

        logger.info(f"Created tenant: {tenant.name} ({tenant.guid})")
        return tenant
