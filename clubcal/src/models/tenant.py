"""
Tenant model for the tenant directory.

Each tenant is one organization (club) whose events and registrations are
logically isolated from every other tenant. The maintenance loop walks the
active tenants of this directory and opens a store handle per tenant.

Design Rationale:
- slug is auto-generated for URL-safe identification
- domain is the identifier the surrounding application routes requests by
- schema_name, when set, selects a dedicated database schema for the
  tenant's rows; when NULL the tenant shares the default schema and is
  isolated by tenant_id filtering alone
- Soft-disable only via is_active=false (no hard delete)
"""

import re

from sqlalchemy import Column, Integer, String, Boolean, DateTime

from clubcal.src.models import Base
from clubcal.src.models.mixins import GuidMixin
from clubcal.src.utils.time_utils import utc_now


class Tenant(Base, GuidMixin):
    """
    Tenant directory entry.

    Attributes:
        id: Primary key (internal, never exposed)
        uuid: UUIDv7 for external identification (inherited from GuidMixin)
        guid: GUID string property (ten_xxx, inherited from GuidMixin)
        name: Display name (unique)
        slug: URL-safe identifier (auto-generated from name)
        domain: Routing domain/identifier of the tenant
        schema_name: Optional dedicated database schema
        is_active: Whether the tenant is serviced (maintenance skips inactive)
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "tenants"

    GUID_PREFIX = "ten"

    id = Column(Integer, primary_key=True, autoincrement=True)

    name = Column(String(255), unique=True, nullable=False, index=True)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    domain = Column(String(255), unique=True, nullable=False)
    schema_name = Column(String(63), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(
        DateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    @staticmethod
    def generate_slug(name: str) -> str:
        """
        Generate a URL-safe slug from a tenant name.

        Example:
            >>> Tenant.generate_slug("Riverside Tennis Club!")
            'riverside-tennis-club'
        """
        if not name:
            return ""

        slug = name.lower().strip()
        slug = re.sub(r'[\s_]+', '-', slug)
        slug = re.sub(r'[^a-z0-9-]', '', slug)
        slug = re.sub(r'-+', '-', slug)
        return slug.strip('-')

    def __repr__(self) -> str:
        return (
            f"<Tenant("
            f"id={self.id}, "
            f"slug='{self.slug}', "
            f"schema={self.schema_name}, "
            f"active={self.is_active}"
            f")>"
        )

    def __str__(self) -> str:
        return self.name
