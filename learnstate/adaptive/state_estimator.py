"""
Learning-State Estimator.

Derives a StateSnapshot from a slice of recent interaction events:

1. Cognitive load - processing time, hesitation, attention fluctuation, fatigue
2. Emotional indicators - frustration, confidence, engagement, motivation
3. Performance - accuracy, speed, efficiency, consistency
4. Per-topic mastery

The computation is deterministic and side-effect free: the same slice always
produces the same snapshot. An empty slice is not an error for callers;
``estimate`` falls back to the last known snapshot (or a neutral default).

The weighted sums below are the actual scoring rules, not placeholders for a
trained model. Weights live in ``WEIGHTS`` so they can be tuned in one place.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger

from learnstate.adaptive.errors import MissingDataError
from learnstate.adaptive.models import (
    CognitiveLoad,
    EmotionalState,
    EventKind,
    LearningEvent,
    PerformanceMetrics,
    StateSnapshot,
)


# Thresholds for event classification (milliseconds unless noted)
THRESHOLDS = {
    "baseline_processing_ms": 30000,   # processing_time_ratio == 1.0 at this mean
    "activity_count": 50,              # > 50 mouse moves / keystrokes = fluctuating attention
    "slow_event_ms": 60000,            # frustration signal
    "quick_submit_ms": 30000,          # confidence signal
    "focused_mouse_moves": 20,         # < 20 moves = engaged, not wandering
    "speed_reference_ms": 60000,       # speed == 0 at this mean submit time

    # Immediate warnings
    "long_processing_ms": 300000,      # 5 minutes on one event
    "hint_burst_count": 3,             # more than 3 hints ...
    "hint_burst_window_ms": 300000,    # ... within 5 minutes

    # Trend detection
    "increasing_step_ratio": 0.6,      # > 60% of steps rising = increasing trend
}

WEIGHTS = {
    "fatigue_processing": 0.3,
    "fatigue_hesitation": 0.3,
    "fatigue_attention": 0.4,
    "frustration_slow_event": 0.2,
    "frustration_hint": 0.1,
    "confidence_quick_submit": 0.3,
    "engagement_focused_event": 0.2,
    "mastery_start": 0.5,
    "mastery_correct": 0.1,
    "mastery_incorrect": -0.1,
    "mastery_hint": -0.05,
}


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def variance(values: Sequence[float]) -> float:
    """Population variance (0.0 for fewer than two values)."""
    if len(values) < 2:
        return 0.0
    avg = mean(values)
    return sum((v - avg) ** 2 for v in values) / len(values)


def is_increasing(values: Sequence[float]) -> bool:
    """True when more than 60% of consecutive steps rise."""
    if len(values) < 2:
        return False
    rises = sum(1 for a, b in zip(values, values[1:]) if b > a)
    return rises / (len(values) - 1) > THRESHOLDS["increasing_step_ratio"]


def is_decreasing(values: Sequence[float]) -> bool:
    if len(values) < 2:
        return False
    falls = sum(1 for a, b in zip(values, values[1:]) if b < a)
    return falls / (len(values) - 1) > THRESHOLDS["increasing_step_ratio"]


@dataclass(frozen=True)
class ImmediateWarning:
    """Raised on a single event, before the next analysis cycle."""
    kind: str          # long_processing, excessive_hints
    problem_id: str
    value: float
    message: str

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "problem_id": self.problem_id,
            "value": self.value,
            "message": self.message,
        }


class StateEstimator:
    """
    Compute learner state snapshots from event slices.

    The estimator holds no session state; the caller passes the last known
    snapshot to ``estimate`` for the sparse-data fallback.
    """

    def compute(
        self,
        events: Sequence[LearningEvent],
        as_of: datetime | None = None,
    ) -> StateSnapshot:
        """
        Compute a snapshot from a non-empty event slice.

        Args:
            events: Recent events, oldest first
            as_of: Snapshot timestamp (default: timestamp of the newest event)

        Raises:
            MissingDataError: If the slice is empty
        """
        if not events:
            raise MissingDataError("Event slice is empty")

        timestamp = as_of or max(
            (e.timestamp for e in events if e.timestamp is not None),
            default=None,
        )
        load = self._cognitive_load(events)
        emotional = self._emotional_state(events)
        performance = self._performance(events)
        mastery = self._topic_mastery(events)

        snapshot = StateSnapshot(
            timestamp=timestamp,
            cognitive_load=load,
            emotional=emotional,
            performance=performance,
            topic_mastery=mastery,
            event_count=len(events),
        )
        logger.debug(
            f"State snapshot: fatigue={load.fatigue:.2f} accuracy={performance.accuracy:.2f} "
            f"frustration={emotional.frustration:.2f} events={len(events)}"
        )
        return snapshot

    def estimate(
        self,
        events: Sequence[LearningEvent],
        last: StateSnapshot | None = None,
        as_of: datetime | None = None,
    ) -> StateSnapshot:
        """
        Compute a snapshot, degrading gracefully on sparse data.

        Returns the last known snapshot unchanged for an empty slice, or the
        neutral default when no snapshot exists yet.
        """
        try:
            return self.compute(events, as_of=as_of)
        except MissingDataError:
            if last is not None:
                logger.debug("Empty event slice - reusing last snapshot")
                return last
            logger.debug("Empty event slice and no history - using neutral snapshot")
            return StateSnapshot.neutral(as_of)

    # =========================================================================
    # Cognitive load
    # =========================================================================

    def _cognitive_load(self, events: Sequence[LearningEvent]) -> CognitiveLoad:
        n = len(events)
        processing_time = mean([e.payload.time_spent_ms for e in events])
        ratio = processing_time / THRESHOLDS["baseline_processing_ms"]
        hesitation_rate = sum(e.payload.hesitation_count for e in events) / n
        attention_fluctuation = sum(1 for e in events if _is_restless(e)) / n

        fatigue = clamp(
            WEIGHTS["fatigue_processing"] * ratio
            + WEIGHTS["fatigue_hesitation"] * hesitation_rate
            + WEIGHTS["fatigue_attention"] * attention_fluctuation
        )

        submits = [e for e in events if e.kind == EventKind.SUBMIT]
        incorrect = sum(1 for e in submits if e.payload.is_correct is False)

        return CognitiveLoad(
            processing_time_ms=processing_time,
            processing_time_ratio=ratio,
            hesitation_rate=hesitation_rate,
            error_frequency=incorrect / n,
            revision_count=_count_revisions(submits),
            attention_fluctuation=attention_fluctuation,
            fatigue=fatigue,
        )

    # =========================================================================
    # Emotional indicators
    # =========================================================================

    def _emotional_state(self, events: Sequence[LearningEvent]) -> EmotionalState:
        frustration = 0.0
        confidence = 0.0
        engagement = 0.0

        for event in events:
            payload = event.payload
            if payload.time_spent_ms > THRESHOLDS["slow_event_ms"]:
                frustration += WEIGHTS["frustration_slow_event"]
            if event.kind == EventKind.HINT_REQUEST:
                frustration += WEIGHTS["frustration_hint"]
            if (
                event.kind == EventKind.SUBMIT
                and payload.time_spent_ms < THRESHOLDS["quick_submit_ms"]
                and payload.is_correct is not False
            ):
                confidence += WEIGHTS["confidence_quick_submit"]
            if payload.mouse_moves is not None and payload.mouse_moves < THRESHOLDS["focused_mouse_moves"]:
                engagement += WEIGHTS["engagement_focused_event"]

        frustration = clamp(frustration)
        confidence = clamp(confidence)
        return EmotionalState(
            frustration=frustration,
            confidence=confidence,
            engagement=clamp(engagement),
            motivation=clamp((1 - frustration + confidence) / 2),
        )

    # =========================================================================
    # Performance
    # =========================================================================

    def _performance(self, events: Sequence[LearningEvent]) -> PerformanceMetrics:
        submits = [e for e in events if e.kind == EventKind.SUBMIT]
        if not submits:
            return PerformanceMetrics()

        graded = [e for e in submits if e.payload.is_correct is not None]
        accuracy = (
            sum(1 for e in graded if e.payload.is_correct) / len(graded)
            if graded else 0.5
        )

        times = [float(e.payload.time_spent_ms) for e in submits]
        avg_time = mean(times)
        speed = max(0.0, 1 - avg_time / THRESHOLDS["speed_reference_ms"])

        if avg_time > 0:
            consistency = max(0.0, 1 - variance(times) / avg_time ** 2)
        else:
            consistency = 1.0

        return PerformanceMetrics(
            accuracy=accuracy,
            speed=speed,
            efficiency=accuracy * speed,
            consistency=consistency,
        )

    def _topic_mastery(self, events: Sequence[LearningEvent]) -> dict[str, float]:
        mastery: dict[str, float] = {}
        for event in events:
            topic = event.payload.topic
            if not topic:
                continue
            current = mastery.get(topic, WEIGHTS["mastery_start"])
            if event.kind == EventKind.SUBMIT:
                if event.payload.is_correct is False:
                    current += WEIGHTS["mastery_incorrect"]
                else:
                    current += WEIGHTS["mastery_correct"]
            elif event.kind == EventKind.HINT_REQUEST:
                current += WEIGHTS["mastery_hint"]
            mastery[topic] = clamp(current)
        return mastery

    # =========================================================================
    # Immediate warnings
    # =========================================================================

    def immediate_warnings(
        self,
        event: LearningEvent,
        recent: Sequence[LearningEvent],
    ) -> list[ImmediateWarning]:
        """
        Check a freshly recorded event for conditions that should not wait
        for the next analysis cycle.

        Args:
            event: The event just recorded (stamped)
            recent: Buffered events, including ``event``
        """
        warnings = []

        if event.payload.time_spent_ms > THRESHOLDS["long_processing_ms"]:
            minutes = event.payload.time_spent_ms / 60000
            warnings.append(ImmediateWarning(
                kind="long_processing",
                problem_id=event.problem_id,
                value=event.payload.time_spent_ms,
                message=f"Learner has spent {minutes:.0f} minutes on one problem",
            ))

        if event.kind == EventKind.HINT_REQUEST and event.timestamp is not None:
            cutoff = event.timestamp - timedelta(milliseconds=THRESHOLDS["hint_burst_window_ms"])
            hints = sum(
                1 for e in recent
                if e.kind == EventKind.HINT_REQUEST
                and e.timestamp is not None
                and e.timestamp >= cutoff
            )
            if hints > THRESHOLDS["hint_burst_count"]:
                warnings.append(ImmediateWarning(
                    kind="excessive_hints",
                    problem_id=event.problem_id,
                    value=hints,
                    message=f"{hints} hint requests in the last 5 minutes",
                ))

        return warnings


def _is_restless(event: LearningEvent) -> bool:
    """Mouse or keyboard activity above the fluctuation threshold."""
    limit = THRESHOLDS["activity_count"]
    payload = event.payload
    return (payload.mouse_moves or 0) > limit or (payload.keystrokes or 0) > limit


def _count_revisions(submits: Sequence[LearningEvent]) -> int:
    """Submits for a problem that was already submitted earlier in the slice."""
    seen: set[str] = set()
    revisions = 0
    for event in submits:
        if event.problem_id in seen:
            revisions += 1
        seen.add(event.problem_id)
    return revisions
