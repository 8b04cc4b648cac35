"""
Unit tests for the ErrorPredictor.
"""

from datetime import timedelta

import pytest

from conftest import T0, make_profile
from learnstate.adaptive.error_patterns import ErrorPattern, PatternContext, PatternSignals
from learnstate.adaptive.error_predictor import ErrorPredictor, PredictorConfig
from learnstate.adaptive.models import (
    CognitiveLoad,
    EmotionalState,
    ErrorPrediction,
    ErrorType,
    PerformanceMetrics,
    PredictionSource,
    StateSnapshot,
)
from learnstate.adaptive.pattern_recognizer import PatternMatch


def _snapshot(fatigue=0.2, accuracy=0.8):
    return StateSnapshot(
        timestamp=T0,
        cognitive_load=CognitiveLoad(fatigue=fatigue),
        emotional=EmotionalState(),
        performance=PerformanceMetrics(accuracy=accuracy),
        event_count=3,
    )


def _context(fatigue=0.2, accuracy=0.8, elapsed=0.0):
    return PatternContext(
        snapshot=_snapshot(fatigue, accuracy),
        events=[],
        profile=make_profile(attention_span_minutes=25),
        elapsed_seconds=elapsed,
    )


def _match(pattern_id, score=0.9):
    pattern = ErrorPattern(
        pattern_id=pattern_id,
        error_type=ErrorType.PROCEDURAL,
        description=pattern_id,
        triggers=("fatigued",),
        signals=PatternSignals(),
        frequency=0.1,
        severity=0.5,
        prevention_strategies=("check", "slow down", "visualize"),
    )
    return PatternMatch(pattern=pattern, score=score)


class TestPredictionValidity:

    def test_probability_out_of_range(self):
        with pytest.raises(ValueError, match="probability"):
            ErrorPrediction(
                pattern_id="x",
                error_type=ErrorType.MEMORY,
                source=PredictionSource.PATTERN,
                probability=1.2,
                confidence=0.8,
                time_to_error_s=10,
                intervention_window_s=10,
                created_at=T0,
            )

    def test_window_open(self):
        prediction = ErrorPrediction(
            pattern_id="x",
            error_type=ErrorType.MEMORY,
            source=PredictionSource.PATTERN,
            probability=0.7,
            confidence=0.8,
            time_to_error_s=30,
            intervention_window_s=20,
            created_at=T0,
        )
        assert prediction.window_open(T0 + timedelta(seconds=20))
        assert not prediction.window_open(T0 + timedelta(seconds=21))


class TestDetectionMethods:
    """Each detection method in isolation."""

    @pytest.fixture
    def predictor(self):
        return ErrorPredictor()

    def test_cognitive_overload(self, predictor):
        predictions = predictor.predict(_context(fatigue=0.9, accuracy=0.5), [], T0)

        assert len(predictions) == 1
        overload = predictions[0]
        assert overload.pattern_id == "cognitive_overload"
        assert overload.error_type == ErrorType.MEMORY
        assert overload.probability == pytest.approx(0.9)
        assert overload.confidence == 0.85
        assert overload.time_to_error_s == 30
        assert overload.intervention_window_s == 20

    def test_session_fatigue_after_attention_span(self, predictor):
        predictions = predictor.predict(_context(elapsed=1800), [], T0)

        assert [p.pattern_id for p in predictions] == ["session_fatigue"]
        assert predictions[0].probability == pytest.approx(0.9)
        assert predictions[0].error_type == ErrorType.ATTENTION

    def test_rested_learner_predicts_nothing(self, predictor):
        assert predictor.predict(_context(), [], T0) == []

    def test_risk_score_rises_with_fatigue(self, predictor):
        calm = predictor.risk_probability(_context(fatigue=0.1, accuracy=0.9))
        strained = predictor.risk_probability(_context(fatigue=0.9, accuracy=0.3))
        assert 0.0 < calm < strained < 1.0

    def test_pattern_predictions_carry_actions(self, predictor):
        predictions = predictor.predict(_context(), [_match("slip")], T0)

        assert predictions[0].source == PredictionSource.PATTERN
        assert predictions[0].actions["immediate"] == ["check", "slow down"]
        assert predictions[0].actions["proactive"] == ["visualize"]

    def test_low_probability_matches_filtered(self, predictor):
        assert predictor.predict(_context(), [_match("weak", score=0.6)], T0) == []

    def test_capped_and_sorted(self, predictor):
        matches = [_match(f"p{i}", score=0.65 + i * 0.04) for i in range(7)]

        predictions = predictor.predict(_context(), matches, T0)

        assert len(predictions) == 5
        probabilities = [p.probability for p in predictions]
        assert probabilities == sorted(probabilities, reverse=True)
        assert predictions[0].pattern_id == "p6"


class TestActiveSet:
    """Active predictions expire and stay bounded."""

    def test_predictions_expire_after_ttl(self):
        predictor = ErrorPredictor(PredictorConfig(ttl_seconds=300))
        predictor.update(_context(fatigue=0.9, accuracy=0.5), [], T0)

        assert len(predictor.active_predictions(T0 + timedelta(seconds=299))) == 1
        assert predictor.active_predictions(T0 + timedelta(seconds=301)) == []

    def test_newer_prediction_replaces_older(self):
        predictor = ErrorPredictor()
        predictor.update(_context(fatigue=0.9, accuracy=0.5), [], T0)
        later = T0 + timedelta(seconds=60)
        predictor.update(_context(fatigue=0.95, accuracy=0.5), [], later)

        active = predictor.active_predictions(later)
        assert len(active) == 1
        assert active[0].created_at == later
        assert len(predictor.history) == 2

    def test_outcome_resolution(self):
        predictor = ErrorPredictor()
        predictor.update(_context(fatigue=0.9, accuracy=0.5), [], T0)

        assert predictor.accuracy is None
        assert predictor.observe_outcome(is_correct=False) == 1
        assert predictor.accuracy == 1.0
        assert predictor.observe_outcome(is_correct=True) == 0

    def test_record_outcome_by_id(self):
        predictor = ErrorPredictor()
        predictions = predictor.update(_context(fatigue=0.9, accuracy=0.5), [], T0)
        prediction_id = predictions[0].prediction_id

        assert predictor.record_outcome(prediction_id, error_occurred=False)
        assert predictor.accuracy == 0.0
        assert not predictor.record_outcome(prediction_id, error_occurred=True)
        assert not predictor.record_outcome("unknown", error_occurred=True)


class TestForecast:

    def test_tired_accurate_learner(self):
        forecast = ErrorPredictor().forecast(_snapshot(fatigue=0.6, accuracy=0.9))

        assert forecast.break_minutes == 5
        assert forecast.difficulty_delta == 0.5
        assert 0.0 <= forecast.success_probability <= 0.95
