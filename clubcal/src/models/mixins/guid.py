"""
GUID mixin for SQLAlchemy models.

Every externally addressable entity (tenants, events, registrations) carries
a UUIDv7 column and exposes it as a prefixed Crockford Base32 string. Internal
integer primary keys never leave the service layer.

GUID Format: {prefix}_{base32_uuid}
Examples:
    - ten_01hgw2bbg0000000000000000 (Tenant)
    - evt_01hgw2bbg0000000000000001 (Event: master or occurrence)
    - reg_01hgw2bbg0000000000000002 (Registration)
"""

import uuid as uuid_module
from typing import ClassVar, Optional

import base32_crockford
from sqlalchemy import Column, TypeDecorator, LargeBinary
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from uuid_extensions import uuid7


# Length of a Base32-encoded 128-bit value
GUID_BODY_LENGTH = 26


class UUIDType(TypeDecorator):
    """
    Platform-independent UUID type.

    Native UUID on PostgreSQL, 16-byte LargeBinary elsewhere (SQLite tests).
    Always presents as a Python UUID object.
    """

    impl = LargeBinary
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(LargeBinary(16))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if not isinstance(value, uuid_module.UUID):
            value = (
                uuid_module.UUID(bytes=value)
                if isinstance(value, bytes)
                else uuid_module.UUID(str(value))
            )
        if dialect.name == 'postgresql':
            return value
        return value.bytes

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid_module.UUID):
            return value
        if isinstance(value, bytes):
            return uuid_module.UUID(bytes=value)
        return uuid_module.UUID(str(value))


class GuidMixin:
    """
    Mixin providing GUID support for entities.

    Adds:
    - uuid: UUIDv7 column (time-ordered, generated on insert)
    - guid: prefixed Base32 string property
    - parse_guid / try_parse_guid: decode GUID strings back to UUIDs

    Usage:
        class Event(Base, GuidMixin):
            GUID_PREFIX = "evt"

        event.guid  # evt_01hgw2bbg...
    """

    # Subclasses define their 3-character prefix
    GUID_PREFIX: ClassVar[str]

    uuid = Column(
        UUIDType(),
        nullable=False,
        unique=True,
        index=True,
        default=uuid7,
    )

    @property
    def guid(self) -> Optional[str]:
        """
        Prefixed GUID string, or None before the row has a UUID.

        The UUID is assigned by the column default at flush time; objects
        that were never flushed (e.g. generator output) have no GUID yet.
        """
        if self.uuid is None:
            return None

        uuid_bytes = self.uuid if isinstance(self.uuid, bytes) else self.uuid.bytes
        encoded = base32_crockford.encode(int.from_bytes(uuid_bytes, "big"))
        return f"{self.GUID_PREFIX}_{encoded.zfill(GUID_BODY_LENGTH).lower()}"

    @classmethod
    def parse_guid(cls, guid: str) -> uuid_module.UUID:
        """
        Parse a GUID string to a UUID object.

        Args:
            guid: GUID string (e.g., "evt_01hgw2bbg...")

        Returns:
            UUID object

        Raises:
            ValueError: If the GUID is empty, has the wrong prefix or length,
                or is not valid Crockford Base32
        """
        if not guid:
            raise ValueError("GUID cannot be empty")

        expected_prefix = f"{cls.GUID_PREFIX}_"
        if not guid.lower().startswith(expected_prefix):
            raise ValueError(
                f"Invalid prefix for {cls.__name__}. "
                f"Expected '{cls.GUID_PREFIX}', got '{guid.split('_')[0]}'"
            )

        encoded_part = guid[len(expected_prefix):]
        if len(encoded_part) != GUID_BODY_LENGTH:
            raise ValueError(
                f"Invalid GUID length. Expected {GUID_BODY_LENGTH} characters "
                f"after prefix, got {len(encoded_part)}"
            )

        try:
            uuid_int = base32_crockford.decode(encoded_part.upper())
            return uuid_module.UUID(bytes=uuid_int.to_bytes(16, "big"))
        except (ValueError, OverflowError) as e:
            raise ValueError(f"Invalid GUID encoding: {e}")

    @classmethod
    def try_parse_guid(cls, guid: str) -> Optional[uuid_module.UUID]:
        """Parse a GUID, returning None instead of raising on bad input."""
        try:
            return cls.parse_guid(guid)
        except ValueError:
            return None
