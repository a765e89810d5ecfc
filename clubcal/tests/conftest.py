"""
Pytest configuration and fixtures for recurrence engine tests.

Provides shared fixtures for:
- Test database engine, sessions and session factory
- Deterministic reference time and settings
- Sample data factories (tenants, masters, occurrences, registrations)
"""

import os
import pytest
from datetime import datetime, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app modules
os.environ['CLUBCAL_DB_URL'] = 'sqlite:///:memory:'
os.environ.setdefault('CLUBCAL_LOG_LEVEL', 'WARNING')

from clubcal.src.config.settings import RecurrenceSettings
from clubcal.src.models import (
    Base, Tenant, Event, EventStatus, RecurrenceStatus, Registration
)
from clubcal.src.schemas.recurrence import RecurrencePattern, RecurrenceType, DayOfWeek


# Monday, 2 March 2026, 09:00 UTC
REFERENCE_NOW = datetime(2026, 3, 2, 9, 0)


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture(scope='function')
def test_db_engine():
    """Create an in-memory SQLite database engine for testing."""
    from sqlalchemy import event

    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )

    # Registrations cascade with their event only when FKs are enforced
    def _fk_pragma_on_connect(dbapi_con, con_record):
        dbapi_con.execute('pragma foreign_keys=ON')

    event.listen(engine, 'connect', _fk_pragma_on_connect)

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope='function')
def test_session_factory(test_db_engine):
    """Session factory bound to the test engine (for code that opens its own sessions)."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_db_engine
    )


@pytest.fixture(scope='function')
def test_db_session(test_session_factory):
    """Create a test database session."""
    session = test_session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def now():
    """Fixed reference time (a Monday morning)."""
    return REFERENCE_NOW


@pytest.fixture
def recurrence_settings():
    """Default recurrence settings, independent of the environment."""
    return RecurrenceSettings(_env_file=None)


# ============================================================================
# Sample Data Factories
# ============================================================================

@pytest.fixture
def sample_tenant(test_db_session):
    """Factory for creating tenants."""
    def _create(name='Riverside Tennis Club', domain=None, schema_name=None, is_active=True):
        tenant = Tenant(
            name=name,
            slug=Tenant.generate_slug(name),
            domain=domain or f"{Tenant.generate_slug(name)}.example",
            schema_name=schema_name,
            is_active=is_active,
        )
        test_db_session.add(tenant)
        test_db_session.commit()
        test_db_session.refresh(tenant)
        return tenant
    return _create


@pytest.fixture
def test_tenant(sample_tenant):
    """Default tenant for tests."""
    return sample_tenant()


@pytest.fixture
def weekly_monday_pattern():
    return RecurrencePattern(type=RecurrenceType.WEEKLY, days_of_week=[DayOfWeek.MONDAY])


@pytest.fixture
def sample_master(test_db_session, test_tenant, now):
    """Factory for creating recurring master events."""
    def _create(
        pattern=None,
        start_time=None,
        duration=timedelta(hours=1),
        generated_until=None,
        recurrence_status=RecurrenceStatus.ACTIVE,
        tenant=None,
        title='Junior Squad Training',
        **kwargs
    ):
        start_time = start_time or now
        master = Event(
            tenant_id=(tenant or test_tenant).id,
            title=title,
            start_time=start_time,
            end_time=start_time + duration,
            max_capacity=12,
            is_recurring_master=True,
            recurrence_status=recurrence_status,
            generated_until=generated_until,
            **kwargs
        )
        master.recurrence = pattern or RecurrencePattern(type=RecurrenceType.DAILY)
        test_db_session.add(master)
        test_db_session.commit()
        test_db_session.refresh(master)
        return master
    return _create


@pytest.fixture
def sample_occurrence(test_db_session):
    """Factory for creating persisted occurrences of a master."""
    def _create(
        master,
        start_time,
        occurrence_number,
        status=EventStatus.SCHEDULED,
        participants=(),
    ):
        occurrence = Event(
            tenant_id=master.tenant_id,
            title=master.title,
            start_time=start_time,
            end_time=start_time + master.duration,
            max_capacity=master.max_capacity,
            status=status,
            master_event_id=master.id,
            occurrence_number=occurrence_number,
        )
        for name in participants:
            occurrence.registrations.append(
                Registration(tenant_id=master.tenant_id, participant_name=name)
            )
        test_db_session.add(occurrence)
        test_db_session.commit()
        test_db_session.refresh(occurrence)
        return occurrence
    return _create
