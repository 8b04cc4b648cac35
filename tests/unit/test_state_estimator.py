"""
Unit tests for the learning-state estimator.
"""

import pytest

from conftest import T0, submit
from learnstate.adaptive.errors import MissingDataError
from learnstate.adaptive.event_buffer import EventBuffer
from learnstate.adaptive.models import EventKind, EventPayload, LearningEvent
from learnstate.adaptive.state_estimator import StateEstimator, is_increasing


@pytest.fixture
def estimator():
    return StateEstimator()


def _stamped(clock, *events, step=5):
    """Record events into a buffer, ``step`` seconds apart."""
    buffer = EventBuffer(clock=clock)
    for event in events:
        buffer.record(event)
        clock.advance(step)
    return buffer.snapshot()


class TestSparseData:
    """Empty slices never raise out of ``estimate``."""

    def test_empty_buffer_yields_neutral_snapshot(self, estimator):
        snapshot = estimator.estimate([])

        assert snapshot.is_default
        assert snapshot.accuracy == 0.5
        assert snapshot.fatigue == 0.0

    def test_compute_raises_on_empty_slice(self, estimator):
        with pytest.raises(MissingDataError):
            estimator.compute([])

    def test_empty_slice_reuses_last_snapshot(self, estimator, clock):
        last = estimator.compute(_stamped(clock, submit("p1")))
        assert estimator.estimate([], last=last) is last


class TestSnapshotComputation:
    """Indicator formulas over a known event slice."""

    def test_idempotent(self, estimator, clock):
        events = _stamped(
            clock,
            submit("p1", time_spent_ms=20000, topic="fractions"),
            LearningEvent(kind=EventKind.HINT_REQUEST, problem_id="p2"),
            submit("p2", is_correct=False, time_spent_ms=70000, hesitation_count=2),
        )

        assert estimator.compute(events) == estimator.compute(events)

    def test_timestamp_is_newest_event(self, estimator, clock):
        events = _stamped(clock, submit("p1"), submit("p2"), step=10)
        snapshot = estimator.compute(events)
        assert snapshot.timestamp == events[-1].timestamp
        assert snapshot.timestamp > T0

    def test_accuracy_counts_graded_submits(self, estimator, clock):
        events = _stamped(
            clock,
            submit("p1", is_correct=True),
            submit("p2", is_correct=True),
            submit("p3", is_correct=False),
            submit("p4", is_correct=None),
        )
        assert estimator.compute(events).accuracy == pytest.approx(2 / 3)

    def test_ungraded_submits_keep_neutral_accuracy(self, estimator, clock):
        events = _stamped(clock, submit("p1", is_correct=None))
        assert estimator.compute(events).accuracy == 0.5

    def test_fatigue_from_processing_time(self, estimator, clock):
        events = _stamped(clock, submit("p1", time_spent_ms=30000))
        load = estimator.compute(events).cognitive_load

        assert load.processing_time_ratio == pytest.approx(1.0)
        assert load.fatigue == pytest.approx(0.3)

    def test_fatigue_is_bounded(self, estimator, clock):
        events = _stamped(
            clock,
            submit("p1", time_spent_ms=600000, hesitation_count=10, mouse_moves=500),
        )
        assert estimator.compute(events).fatigue == 1.0

    def test_revisions_count_resubmits(self, estimator, clock):
        events = _stamped(
            clock,
            submit("p1", is_correct=False),
            submit("p1", is_correct=True),
            submit("p2"),
        )
        assert estimator.compute(events).cognitive_load.revision_count == 1

    def test_frustration_from_slow_events_and_hints(self, estimator, clock):
        events = _stamped(
            clock,
            submit("p1", is_correct=False, time_spent_ms=90000),
            LearningEvent(kind=EventKind.HINT_REQUEST, problem_id="p1"),
        )
        emotional = estimator.compute(events).emotional
        assert emotional.frustration == pytest.approx(0.3)

    def test_topic_mastery(self, estimator, clock):
        events = _stamped(
            clock,
            submit("p1", is_correct=True, topic="fractions"),
            submit("p2", is_correct=True, topic="fractions"),
            submit("p3", is_correct=False, topic="ratios"),
        )
        mastery = estimator.compute(events).topic_mastery
        assert mastery["fractions"] == pytest.approx(0.7)
        assert mastery["ratios"] == pytest.approx(0.4)


class TestImmediateWarnings:
    """Warnings raised on a single event."""

    def test_long_processing(self, estimator, clock):
        buffer = EventBuffer(clock=clock)
        event = buffer.record(LearningEvent(
            kind=EventKind.SUBMIT,
            problem_id="p1",
            payload=EventPayload(time_spent_ms=301000),
        ))

        warnings = estimator.immediate_warnings(event, buffer.snapshot())

        assert [w.kind for w in warnings] == ["long_processing"]

    def test_excessive_hints(self, estimator, clock):
        buffer = EventBuffer(clock=clock)
        warnings = []
        for _ in range(4):
            event = buffer.record(LearningEvent(kind=EventKind.HINT_REQUEST, problem_id="p1"))
            warnings = estimator.immediate_warnings(event, buffer.snapshot())
            clock.advance(30)

        assert [w.kind for w in warnings] == ["excessive_hints"]

    def test_spread_out_hints_do_not_warn(self, estimator, clock):
        buffer = EventBuffer(clock=clock)
        warnings = []
        for _ in range(4):
            event = buffer.record(LearningEvent(kind=EventKind.HINT_REQUEST, problem_id="p1"))
            warnings = estimator.immediate_warnings(event, buffer.snapshot())
            clock.advance(200)

        assert warnings == []


class TestTrendHelpers:

    def test_is_increasing(self):
        assert is_increasing([0.1, 0.2, 0.3, 0.4])
        assert not is_increasing([0.4, 0.3, 0.5, 0.2])
        assert not is_increasing([0.5])
