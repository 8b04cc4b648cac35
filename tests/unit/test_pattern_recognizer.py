"""
Unit tests for the error pattern catalog and PatternRecognizer.
"""

import pytest

from conftest import T0, make_profile
from learnstate.adaptive.error_patterns import (
    ERROR_PATTERNS,
    ErrorPattern,
    PatternContext,
    PatternSignals,
    get_pattern,
    validate_catalog,
)
from learnstate.adaptive.models import (
    CognitiveLoad,
    EmotionalState,
    ErrorType,
    PerformanceMetrics,
    StateSnapshot,
)
from learnstate.adaptive.pattern_recognizer import PatternRecognizer


def _snapshot(accuracy=0.7, fatigue=0.2, attention=0.0):
    return StateSnapshot(
        timestamp=T0,
        cognitive_load=CognitiveLoad(fatigue=fatigue, attention_fluctuation=attention),
        emotional=EmotionalState(),
        performance=PerformanceMetrics(accuracy=accuracy),
        event_count=4,
    )


def _pattern(pattern_id, triggers=(), signals=(), severity=0.5):
    return ErrorPattern(
        pattern_id=pattern_id,
        error_type=ErrorType.ATTENTION,
        description=pattern_id,
        triggers=tuple(triggers),
        signals=PatternSignals(behavioral=tuple(signals)),
        frequency=0.1,
        severity=severity,
        prevention_strategies=("first", "second", "third"),
    )


def _context(fatigue=0.9, elapsed=0.0):
    return PatternContext(
        snapshot=_snapshot(fatigue=fatigue),
        events=[],
        profile=make_profile(),
        elapsed_seconds=elapsed,
    )


class TestCatalog:
    """The built-in catalog is consistent with the detector registry."""

    def test_builtin_catalog_is_valid(self):
        validate_catalog()
        assert len(ERROR_PATTERNS) == 6
        assert get_pattern("fraction_concept_error").severity == 0.9
        assert get_pattern("nope") is None

    def test_unknown_detector_rejected(self):
        with pytest.raises(ValueError, match="unknown detectors"):
            validate_catalog([_pattern("bad", triggers=("no_such_detector",))])

    def test_duplicate_ids_rejected(self):
        pattern = _pattern("dup", triggers=("fatigued",))
        with pytest.raises(ValueError, match="Duplicate"):
            validate_catalog([pattern, pattern])


class TestScoring:
    """Weighted trigger/signal scoring."""

    def test_full_match_scores_one(self):
        recognizer = PatternRecognizer(patterns=[])
        pattern = _pattern(
            "tired",
            triggers=("fatigued", "no_visual_support"),
            signals=("accumulated_fatigue",),
        )

        match = recognizer.score(pattern, _context(fatigue=0.9))

        assert match.score == pytest.approx(1.0)
        assert match.satisfied_triggers == ["fatigued", "no_visual_support"]
        assert match.detected_signals == ["accumulated_fatigue"]

    def test_partial_trigger_match(self):
        recognizer = PatternRecognizer(patterns=[])
        pattern = _pattern(
            "long",
            triggers=("long_session", "no_visual_support"),
            signals=("fatigued",),
        )

        match = recognizer.score(pattern, _context(fatigue=0.9, elapsed=0))

        assert match.score == pytest.approx(0.2 + 0.6)

    def test_trigger_only_pattern_is_normalized(self):
        recognizer = PatternRecognizer(patterns=[])
        pattern = _pattern("triggers_only", triggers=("fatigued", "long_session"))

        assert recognizer.score(pattern, _context()).score == pytest.approx(0.5)


class TestRecognition:
    """Threshold, ranking and cap."""

    def test_score_at_threshold_is_not_recognized(self):
        pattern = _pattern("edge", triggers=("long_session",), signals=("fatigued",))
        recognizer = PatternRecognizer(patterns=[pattern])

        assert recognizer.score(pattern, _context()).score == pytest.approx(0.6)
        assert recognizer.recognize(_context()) == []

    def test_ranked_by_score_times_severity(self):
        strong = _pattern(
            "strong",
            triggers=("fatigued", "no_visual_support"),
            signals=("accumulated_fatigue",),
            severity=0.5,
        )
        severe = _pattern(
            "severe",
            triggers=("long_session", "no_visual_support"),
            signals=("fatigued",),
            severity=0.9,
        )
        recognizer = PatternRecognizer(patterns=[strong, severe])

        matches = recognizer.recognize(_context())

        assert [m.pattern_id for m in matches] == ["severe", "strong"]
        assert matches[0].rank == pytest.approx(0.8 * 0.9)

    def test_capped_at_five(self):
        patterns = [_pattern(f"p{i}", triggers=("fatigued",)) for i in range(7)]
        recognizer = PatternRecognizer(patterns=patterns)

        assert len(recognizer.recognize(_context())) == 5

    def test_rested_learner_matches_nothing(self):
        recognizer = PatternRecognizer(
            patterns=[_pattern("tired", triggers=("fatigued",), signals=("accumulated_fatigue",))]
        )
        assert recognizer.recognize(_context(fatigue=0.1)) == []


class TestTrajectory:
    """Trajectory recognition over snapshot history."""

    @pytest.fixture
    def recognizer(self):
        return PatternRecognizer()

    def test_needs_four_observed_snapshots(self, recognizer):
        history = [_snapshot(0.5), _snapshot(0.6), _snapshot(0.9), StateSnapshot.neutral(T0)]
        assert recognizer.trajectory(history) == []

    def test_rapid_mastery(self, recognizer):
        history = [_snapshot(a) for a in (0.5, 0.6, 0.75, 0.9)]
        assert recognizer.trajectory(history) == ["rapid_mastery"]

    def test_steady_improvement(self, recognizer):
        history = [_snapshot(a) for a in (0.6, 0.65, 0.7, 0.75)]
        assert recognizer.trajectory(history) == ["steady_improvement"]

    def test_plateau_struggle(self, recognizer):
        history = [_snapshot(a) for a in (0.4, 0.42, 0.41, 0.4)]
        assert recognizer.trajectory(history) == ["plateau_struggle"]

    def test_burnout_decline(self, recognizer):
        history = [
            _snapshot(accuracy=a, fatigue=f)
            for a, f in ((0.9, 0.2), (0.8, 0.4), (0.7, 0.6), (0.6, 0.8))
        ]
        assert recognizer.trajectory(history) == ["burnout_decline", "increasing_fatigue"]
