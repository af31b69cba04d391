"""
Shared fixtures for the engine and API tests.
"""
from datetime import datetime, timezone

import pytest

from evm_insights.schema import Project, Task


AS_OF = datetime(2026, 1, 6, tzinfo=timezone.utc)


@pytest.fixture
def as_of():
    """Halfway through the standard 10-day project window."""
    return AS_OF


@pytest.fixture
def make_project():
    """Factory for projects spanning 2026-01-01 .. 2026-01-11."""
    def _make(**overrides):
        fields = {
            "id": "P-1",
            "name": "Website Redesign",
            "start_date": "2026-01-01",
            "end_date": "2026-01-11",
            "progress": 50,
            "budget": 100000,
            "status": "active",
            "priority": "high",
            "assigned_to": ["u1", "u2"],
        }
        fields.update(overrides)
        return Project(**fields)
    return _make


@pytest.fixture
def scenario_a(make_project):
    """Budget 100k, 50% elapsed, 40% done, 500h estimated, 300h logged."""
    project = make_project(progress=40)
    tasks = [
        Task(id="t1", status="in-progress", estimated_hours=200, actual_hours=150),
        Task(id="t2", status="in-progress", estimated_hours=300, actual_hours=150),
    ]
    return project, tasks
