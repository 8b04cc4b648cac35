"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from learnstate.adaptive.models import (  # noqa: E402
    CognitiveTraits,
    EventKind,
    EventPayload,
    Grade,
    LearnerProfile,
    LearningEvent,
    Tier,
    TimeConstraints,
)

T0 = datetime(2026, 1, 5, 16, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (multiple components)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self.now += timedelta(seconds=seconds, **kwargs)
        return self.now


def make_profile(
    grade: Grade = Grade.FIFTH,
    tier: Tier = Tier.STANDARD,
    recent_accuracy: float = 0.7,
    attention_span_minutes: float = 25,
    daily_minutes: int = 60,
    study_days_per_week: int = 5,
    session_minutes: int = 30,
) -> LearnerProfile:
    return LearnerProfile(
        learner_id="learner-001",
        grade=grade,
        target_tier=tier,
        subjects=("math",),
        traits=CognitiveTraits(
            processing_speed=0.6,
            working_memory_capacity=0.7,
            attention_span_minutes=attention_span_minutes,
        ),
        time_constraints=TimeConstraints(
            daily_minutes=daily_minutes,
            study_days_per_week=study_days_per_week,
            session_minutes=session_minutes,
        ),
        recent_accuracy=recent_accuracy,
    )


def submit(problem_id: str = "p1", is_correct: bool | None = True, **payload) -> LearningEvent:
    return LearningEvent(
        kind=EventKind.SUBMIT,
        problem_id=problem_id,
        payload=EventPayload(is_correct=is_correct, **payload),
    )


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    """Fresh fake clock starting at T0."""
    return FakeClock()


@pytest.fixture
def profile():
    """Default 5th grade / standard learner."""
    return make_profile()
