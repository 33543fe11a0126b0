"""
Pytest configuration and fixtures for the planning engine test suite

Markers:
    - unit: Fast unit tests on pure calculations
    - property: Property-based tests (Hypothesis)
    - integration: Tests that go through the database session
    - golden: Reference scenarios with known expected numbers
"""

import pytest
import sys
import os
from datetime import date
from decimal import Decimal

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models
import planning_models  # noqa: F401  (registers the planning tables)
from planning_catalog import bootstrap_catalog, get_segment_by_code, get_metrics_for_segment
from planning_models import PlanningDailyValue


# ═══════════════════════════════════════════════════════════════════════════════
# PYTEST CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "property: Property-based tests (Hypothesis)")
    config.addinivalue_line("markers", "integration: Tests that use the database session")
    config.addinivalue_line("markers", "golden: Reference scenarios with known expected numbers")


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test"""
    # Use in-memory SQLite for tests
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    models.Base.metadata.create_all(engine)

    Session = sessionmaker(bind=engine)
    session = Session()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def seeded_catalog(db_session):
    """All segments and metrics, with default plans for February 2026"""
    return bootstrap_catalog(db_session, 2026, 2)


@pytest.fixture
def add_values(db_session):
    """
    Store raw daily values directly, bypassing editability checks.

    Usage: add_values("TRUCK_DISPATCH", date(2026, 1, 1), {"truck_received": 5})
    """
    def _add(segment_code, day, values_by_code):
        segment = get_segment_by_code(db_session, segment_code)
        metrics = {m.code: m for m in get_metrics_for_segment(db_session, segment.id)}
        for code, value in values_by_code.items():
            db_session.add(PlanningDailyValue(
                date=day,
                segment_id=segment.id,
                metric_id=metrics[code].id,
                value=None if value is None else Decimal(str(value)),
            ))
        db_session.commit()

    return _add


@pytest.fixture
def add_series(add_values):
    """Store one value per day starting at the 1st: add_series(code, 2026, 2, {metric: [1, None, 3]})"""
    def _add(segment_code, year, month, series_by_code):
        days = max(len(v) for v in series_by_code.values())
        for i in range(days):
            day_values = {
                code: values[i]
                for code, values in series_by_code.items()
                if i < len(values) and values[i] is not None
            }
            if day_values:
                add_values(segment_code, date(year, month, i + 1), day_values)

    return _add
