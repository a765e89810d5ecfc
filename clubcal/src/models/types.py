"""
Custom SQLAlchemy types for cross-database compatibility.

Production runs on PostgreSQL; the test suite runs on SQLite.
"""

from sqlalchemy import TypeDecorator, JSON
from sqlalchemy.dialects.postgresql import JSONB


class JSONBType(TypeDecorator):
    """
    JSONB on PostgreSQL, plain JSON everywhere else.

    Used for the serialized recurrence pattern on master events and the
    required-equipment list copied onto every occurrence.
    """

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())
