"""
Pattern Recognizer.

Matches the current learner state and recent events against the static error
pattern catalog. Each pattern gets a match score in [0, 1]:

    score = TRIGGER_WEIGHT * (satisfied triggers / triggers)
          + SIGNAL_WEIGHT  * (detected signals / signals)

A pattern is recognized when its score exceeds the match threshold. Recognized
patterns are ranked by ``score * severity``.

Also recognizes performance trajectories over the snapshot history
(steady improvement, plateau, burnout, ...), which feed learning insights.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from loguru import logger

from learnstate.adaptive.error_patterns import (
    DETECTORS,
    ERROR_PATTERNS,
    ErrorPattern,
    PatternContext,
)
from learnstate.adaptive.models import StateSnapshot
from learnstate.adaptive.state_estimator import is_decreasing, is_increasing, mean, variance

TRIGGER_WEIGHT = 0.4
SIGNAL_WEIGHT = 0.6
MATCH_THRESHOLD = 0.6
MAX_MATCHES = 5

# Trajectory thresholds
TRAJECTORY = {
    "min_snapshots": 4,
    "window": 8,
    "flat_variance": 0.01,
    "high_variance": 0.05,
    "rapid_gain": 0.3,
    "mastery_accuracy": 0.85,
    "plateau_accuracy": 0.6,
}


@dataclass
class PatternMatch:
    """Result of scoring one pattern against the current context."""
    pattern: ErrorPattern
    score: float
    satisfied_triggers: list[str] = field(default_factory=list)
    detected_signals: list[str] = field(default_factory=list)

    @property
    def pattern_id(self) -> str:
        return self.pattern.pattern_id

    @property
    def rank(self) -> float:
        return self.score * self.pattern.severity

    def to_dict(self) -> dict:
        return {
            "pattern_id": self.pattern_id,
            "error_type": self.pattern.error_type.value,
            "score": self.score,
            "rank": self.rank,
            "satisfied_triggers": list(self.satisfied_triggers),
            "detected_signals": list(self.detected_signals),
        }


class PatternRecognizer:
    """
    Score error patterns and recognize performance trajectories.

    Holds only the read-only catalog, so one instance may be shared by
    several sessions.
    """

    def __init__(
        self,
        patterns: Sequence[ErrorPattern] = ERROR_PATTERNS,
        threshold: float = MATCH_THRESHOLD,
        max_matches: int = MAX_MATCHES,
    ):
        self.patterns = tuple(patterns)
        self.threshold = threshold
        self.max_matches = max_matches

    def score(self, pattern: ErrorPattern, context: PatternContext) -> PatternMatch:
        """Compute the weighted match score for a single pattern."""
        triggers = [key for key in pattern.triggers if DETECTORS[key](context)]
        signal_keys = pattern.signals.all()
        signals = [key for key in signal_keys if DETECTORS[key](context)]

        weighted = 0.0
        total_weight = 0.0
        if pattern.triggers:
            weighted += TRIGGER_WEIGHT * len(triggers) / len(pattern.triggers)
            total_weight += TRIGGER_WEIGHT
        if signal_keys:
            weighted += SIGNAL_WEIGHT * len(signals) / len(signal_keys)
            total_weight += SIGNAL_WEIGHT

        score = weighted / total_weight if total_weight else 0.0
        return PatternMatch(
            pattern=pattern,
            score=min(1.0, max(0.0, score)),
            satisfied_triggers=triggers,
            detected_signals=signals,
        )

    def recognize(self, context: PatternContext) -> list[PatternMatch]:
        """
        Return recognized patterns, best first.

        Only patterns scoring above the threshold are returned, ranked by
        ``score * severity``, deduplicated by pattern id, capped at
        ``max_matches``.
        """
        best: dict[str, PatternMatch] = {}
        for pattern in self.patterns:
            match = self.score(pattern, context)
            if match.score <= self.threshold:
                continue
            current = best.get(match.pattern_id)
            if current is None or match.rank > current.rank:
                best[match.pattern_id] = match

        ranked = sorted(best.values(), key=lambda m: m.rank, reverse=True)[: self.max_matches]
        if ranked:
            logger.debug(
                "Recognized patterns: "
                + ", ".join(f"{m.pattern_id}={m.score:.2f}" for m in ranked)
            )
        return ranked

    def trajectory(self, history: Sequence[StateSnapshot]) -> list[str]:
        """
        Recognize performance trajectories over recent snapshots.

        Returns names from: steady_improvement, rapid_mastery, plateau_struggle,
        zigzag_progress, burnout_decline, increasing_fatigue,
        attention_fluctuation. Default (no-data) snapshots are ignored.
        """
        observed = [s for s in history if not s.is_default][-TRAJECTORY["window"]:]
        if len(observed) < TRAJECTORY["min_snapshots"]:
            return []

        accuracy = [s.accuracy for s in observed]
        fatigue = [s.fatigue for s in observed]
        attention = [s.cognitive_load.attention_fluctuation for s in observed]
        accuracy_variance = variance(accuracy)

        found = []
        if accuracy[-1] - accuracy[0] >= TRAJECTORY["rapid_gain"] and accuracy[-1] >= TRAJECTORY["mastery_accuracy"]:
            found.append("rapid_mastery")
        elif is_increasing(accuracy):
            found.append("steady_improvement")

        if accuracy_variance < TRAJECTORY["flat_variance"] and mean(accuracy) < TRAJECTORY["plateau_accuracy"]:
            found.append("plateau_struggle")
        elif accuracy_variance > TRAJECTORY["high_variance"] and not is_increasing(accuracy):
            found.append("zigzag_progress")

        if is_decreasing(accuracy) and is_increasing(fatigue):
            found.append("burnout_decline")
        if is_increasing(fatigue):
            found.append("increasing_fatigue")
        if variance(attention) > TRAJECTORY["high_variance"]:
            found.append("attention_fluctuation")

        return found
