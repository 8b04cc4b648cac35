"""
Error Predictor.

Combines several detection methods into ranked ErrorPredictions:

1. Pattern-based: one prediction per recognized error pattern
2. Cognitive overload: fatigue above 0.8 predicts a memory error
3. Session fatigue: elapsed time beyond the learner's attention span
   predicts an attention error
4. Risk score: logistic combination of difficulty, fatigue, event density,
   accuracy and time pressure (lowest confidence of the four)

Confidence is fixed per detection method. Predictions are merged, filtered
to probability > 0.6, sorted by probability and capped at five. Active
predictions expire after five minutes.
"""
from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass
from datetime import datetime

from loguru import logger

from learnstate.adaptive.error_patterns import PatternContext
from learnstate.adaptive.models import (
    ErrorPrediction,
    ErrorType,
    PredictionSource,
    StateSnapshot,
)
from learnstate.adaptive.pattern_recognizer import PatternMatch
from learnstate.adaptive.state_estimator import clamp

# Confidence per detection method
METHOD_CONFIDENCE = {
    PredictionSource.PATTERN: 0.8,
    PredictionSource.COGNITIVE_LOAD: 0.85,
    PredictionSource.SESSION_FATIGUE: 0.9,
    PredictionSource.RISK_SCORE: 0.75,
}

THRESHOLDS = {
    "pattern_window_s": 30,
    "pattern_min_time_to_error_s": 10,
    "overload_fatigue": 0.8,
    "overload_time_to_error_s": 30,
    "overload_window_s": 20,
    "session_fatigue_probability_cap": 0.9,
    "session_fatigue_time_to_error_s": 15,
    "session_fatigue_window_s": 10,
    "risk_emit_probability": 0.7,
    "risk_time_to_error_s": 45,
    "risk_window_s": 30,
    "risk_event_density_events": 20,   # slice size treated as fully dense
    "risk_time_pressure_s": 300,
}

# Logistic weights over normalized features (difficulty / 10, fatigue,
# event density, accuracy, time pressure flag)
RISK_WEIGHTS = {
    "bias": -0.5,
    "difficulty": 1.5,
    "fatigue": 2.0,
    "event_density": 0.5,
    "accuracy": -2.5,
    "time_pressure": 1.0,
}

REINFORCEMENT_ACTIONS = ["Check understanding", "Practice a similar problem"]


@dataclass
class PredictorConfig:
    """Configuration for prediction lifetime and ranking."""
    probability_threshold: float = 0.6
    ttl_seconds: float = 300.0
    max_active: int = 5
    history_size: int = 500

    @classmethod
    def from_settings(cls, settings) -> PredictorConfig:
        return cls(
            ttl_seconds=settings.prediction_ttl_seconds,
            max_active=settings.max_active_predictions,
            history_size=settings.audit_log_size,
        )


@dataclass
class LearningForecast:
    """Short-horizon outlook for the current learner state."""
    success_probability: float
    break_minutes: int
    frustration_risk: float
    difficulty_delta: float

    def to_dict(self) -> dict:
        return {
            "success_probability": self.success_probability,
            "break_minutes": self.break_minutes,
            "frustration_risk": self.frustration_risk,
            "difficulty_delta": self.difficulty_delta,
        }


class ErrorPredictor:
    """
    Produce and track error predictions for one session.

    ``predict`` is stateless; ``update`` maintains the active set and the
    bounded prediction history.
    """

    def __init__(self, config: PredictorConfig | None = None):
        self.config = config or PredictorConfig()
        self._active: dict[str, ErrorPrediction] = {}
        self._history: deque[ErrorPrediction] = deque(maxlen=self.config.history_size)
        self._unresolved: deque[str] = deque(maxlen=self.config.history_size)
        self._hits = 0
        self._misses = 0

    @property
    def history(self) -> list[ErrorPrediction]:
        return list(self._history)

    # =========================================================================
    # Prediction
    # =========================================================================

    def predict(
        self,
        context: PatternContext,
        matches: list[PatternMatch],
        now: datetime,
    ) -> list[ErrorPrediction]:
        """
        Combine all detection methods into ranked predictions.

        Returns:
            At most ``max_active`` predictions with probability above the
            threshold, highest probability first, one per pattern id
        """
        candidates: list[ErrorPrediction] = []
        candidates.extend(self._from_patterns(matches, now))

        overload = self._cognitive_overload(context.snapshot, now)
        if overload:
            candidates.append(overload)

        fatigue = self._session_fatigue(context, now)
        if fatigue:
            candidates.append(fatigue)

        risk = self._risk_score(context, now)
        if risk:
            candidates.append(risk)

        merged: dict[str, ErrorPrediction] = {}
        for prediction in candidates:
            current = merged.get(prediction.pattern_id)
            if current is None or prediction.probability > current.probability:
                merged[prediction.pattern_id] = prediction

        ranked = sorted(
            (p for p in merged.values() if p.probability > self.config.probability_threshold),
            key=lambda p: p.probability,
            reverse=True,
        )
        return ranked[: self.config.max_active]

    def update(
        self,
        context: PatternContext,
        matches: list[PatternMatch],
        now: datetime,
    ) -> list[ErrorPrediction]:
        """
        Run one prediction cycle and refresh the active set.

        Expired predictions are purged first; a new prediction replaces an
        older one for the same pattern.
        """
        self._purge(now)
        fresh = self.predict(context, matches, now)
        for prediction in fresh:
            self._active[prediction.pattern_id] = prediction
            self._history.append(prediction)
            self._unresolved.append(prediction.prediction_id)

        active = self._ranked_active()
        for pattern_id in set(self._active) - {p.pattern_id for p in active}:
            del self._active[pattern_id]

        if fresh:
            logger.debug(
                f"Predictions: {len(fresh)} new, {len(active)} active "
                f"(top={active[0].pattern_id}:{active[0].probability:.2f})"
            )
        return active

    def active_predictions(self, now: datetime) -> list[ErrorPrediction]:
        """Currently valid predictions, highest probability first."""
        self._purge(now)
        return self._ranked_active()

    def _ranked_active(self) -> list[ErrorPrediction]:
        ranked = sorted(self._active.values(), key=lambda p: p.probability, reverse=True)
        return ranked[: self.config.max_active]

    def _purge(self, now: datetime) -> None:
        expired = [
            pattern_id for pattern_id, p in self._active.items()
            if p.is_expired(now, self.config.ttl_seconds)
        ]
        for pattern_id in expired:
            del self._active[pattern_id]
        if expired:
            logger.debug(f"Purged expired predictions: {expired}")

    # =========================================================================
    # Detection methods
    # =========================================================================

    def _from_patterns(self, matches: list[PatternMatch], now: datetime) -> list[ErrorPrediction]:
        predictions = []
        for match in matches:
            pattern = match.pattern
            strategies = list(pattern.prevention_strategies)
            predictions.append(ErrorPrediction(
                pattern_id=pattern.pattern_id,
                error_type=pattern.error_type,
                source=PredictionSource.PATTERN,
                probability=clamp(match.score),
                confidence=METHOD_CONFIDENCE[PredictionSource.PATTERN],
                time_to_error_s=max(
                    THRESHOLDS["pattern_min_time_to_error_s"],
                    60 * (1 - pattern.severity),
                ),
                intervention_window_s=THRESHOLDS["pattern_window_s"],
                created_at=now,
                actions={
                    "immediate": strategies[:2],
                    "proactive": strategies[2:],
                    "reinforcement": list(REINFORCEMENT_ACTIONS),
                },
            ))
        return predictions

    def _cognitive_overload(self, snapshot: StateSnapshot, now: datetime) -> ErrorPrediction | None:
        if snapshot.fatigue <= THRESHOLDS["overload_fatigue"]:
            return None
        return ErrorPrediction(
            pattern_id="cognitive_overload",
            error_type=ErrorType.MEMORY,
            source=PredictionSource.COGNITIVE_LOAD,
            probability=clamp(snapshot.fatigue),
            confidence=METHOD_CONFIDENCE[PredictionSource.COGNITIVE_LOAD],
            time_to_error_s=THRESHOLDS["overload_time_to_error_s"],
            intervention_window_s=THRESHOLDS["overload_window_s"],
            created_at=now,
            actions={
                "immediate": ["Pause and organize information", "Reduce problem complexity"],
                "proactive": ["Chunk the remaining work"],
                "reinforcement": list(REINFORCEMENT_ACTIONS),
            },
        )

    def _session_fatigue(self, context: PatternContext, now: datetime) -> ErrorPrediction | None:
        span = context.profile.attention_span_seconds
        if context.elapsed_seconds <= span:
            return None
        ratio = context.elapsed_seconds / span
        return ErrorPrediction(
            pattern_id="session_fatigue",
            error_type=ErrorType.ATTENTION,
            source=PredictionSource.SESSION_FATIGUE,
            probability=min(THRESHOLDS["session_fatigue_probability_cap"], ratio),
            confidence=METHOD_CONFIDENCE[PredictionSource.SESSION_FATIGUE],
            time_to_error_s=THRESHOLDS["session_fatigue_time_to_error_s"],
            intervention_window_s=THRESHOLDS["session_fatigue_window_s"],
            created_at=now,
            actions={
                "immediate": ["Suggest a break", "Refocus prompt"],
                "proactive": ["Shorten the remaining work"],
                "reinforcement": list(REINFORCEMENT_ACTIONS),
            },
        )

    def risk_probability(self, context: PatternContext) -> float:
        """Logistic error risk for the current context."""
        snapshot = context.snapshot
        difficulty = (context.difficulty or 0.0) / 10
        density = min(1.0, len(context.events) / THRESHOLDS["risk_event_density_events"])
        pressure = (
            1.0
            if context.time_remaining_seconds is not None
            and context.time_remaining_seconds < THRESHOLDS["risk_time_pressure_s"]
            else 0.0
        )
        z = (
            RISK_WEIGHTS["bias"]
            + RISK_WEIGHTS["difficulty"] * difficulty
            + RISK_WEIGHTS["fatigue"] * snapshot.fatigue
            + RISK_WEIGHTS["event_density"] * density
            + RISK_WEIGHTS["accuracy"] * snapshot.accuracy
            + RISK_WEIGHTS["time_pressure"] * pressure
        )
        return 1 / (1 + math.exp(-z))

    def _risk_score(self, context: PatternContext, now: datetime) -> ErrorPrediction | None:
        probability = self.risk_probability(context)
        if probability <= THRESHOLDS["risk_emit_probability"]:
            return None
        return ErrorPrediction(
            pattern_id="general_error_risk",
            error_type=ErrorType.PROCEDURAL,
            source=PredictionSource.RISK_SCORE,
            probability=probability,
            confidence=METHOD_CONFIDENCE[PredictionSource.RISK_SCORE],
            time_to_error_s=THRESHOLDS["risk_time_to_error_s"],
            intervention_window_s=THRESHOLDS["risk_window_s"],
            created_at=now,
            actions={
                "immediate": ["Slow down and re-read the problem"],
                "proactive": ["Offer a worked example"],
                "reinforcement": list(REINFORCEMENT_ACTIONS),
            },
        )

    # =========================================================================
    # Outcome tracking
    # =========================================================================

    def observe_outcome(self, is_correct: bool) -> int:
        """
        Resolve outstanding predictions against an answer outcome.

        An incorrect answer confirms every unresolved prediction; a correct
        one refutes them.

        Returns:
            Number of predictions resolved
        """
        resolved = len(self._unresolved)
        if is_correct:
            self._misses += resolved
        else:
            self._hits += resolved
        self._unresolved.clear()
        return resolved

    def record_outcome(self, prediction_id: str, error_occurred: bool) -> bool:
        """
        Resolve a single prediction.

        Returns:
            False if the prediction is unknown or already resolved
        """
        if prediction_id not in self._unresolved:
            logger.debug(f"No unresolved prediction {prediction_id}")
            return False
        self._unresolved.remove(prediction_id)
        if error_occurred:
            self._hits += 1
        else:
            self._misses += 1
        return True

    @property
    def accuracy(self) -> float | None:
        """Fraction of resolved predictions that were confirmed."""
        total = self._hits + self._misses
        return self._hits / total if total else None

    # =========================================================================
    # Forecast
    # =========================================================================

    def forecast(self, snapshot: StateSnapshot) -> LearningForecast:
        """Success probability, break need and frustration risk."""
        accuracy = snapshot.accuracy
        confidence = snapshot.emotional.confidence
        fatigue = snapshot.fatigue

        success = min(0.95, accuracy * 0.6 + confidence * 0.3 + (1 - fatigue) * 0.1)
        if fatigue > 0.7:
            break_minutes = 10
        elif fatigue > 0.5:
            break_minutes = 5
        else:
            break_minutes = 0

        if accuracy > 0.85:
            delta = 0.5
        elif accuracy < 0.6:
            delta = -0.5
        else:
            delta = 0.0

        return LearningForecast(
            success_probability=clamp(success),
            break_minutes=break_minutes,
            frustration_risk=clamp(snapshot.emotional.frustration * 0.7 + fatigue * 0.3),
            difficulty_delta=delta,
        )
