"""
Intervention Executor.

Decides whether and how to intervene, from error predictions and learner
state. Each practice step moves through a small state machine:

    preparation -> engagement -> consolidation -> evaluation -> transition

Phases advance on explicit completion. The only time-based move is a forced
jump to ``transition`` when the current phase overruns its time budget.

Prediction-driven interventions fire only during ``engagement``:
- probability > 0.8         -> warning
- conceptual error type     -> scaffolding
- attention error type      -> redirection
- otherwise                 -> guidance

Each prediction fires at most once per intervention window. Emitted
interventions go to the telemetry sink and a bounded audit log; they are not
stored long-term.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger

from learnstate.adaptive.errors import LowConfidencePrediction
from learnstate.adaptive.models import (
    DifficultyRecommendation,
    ErrorPrediction,
    ErrorType,
    Intervention,
    InterventionKind,
    InterventionTiming,
    SessionPhase,
    StateSnapshot,
    Tier,
)
from learnstate.delivery.telemetry import (
    INTERVENTION,
    PHASE_CHANGE,
    LoguruTelemetrySink,
    TelemetrySink,
)

PHASE_ORDER = (
    SessionPhase.PREPARATION,
    SessionPhase.ENGAGEMENT,
    SessionPhase.CONSOLIDATION,
    SessionPhase.EVALUATION,
    SessionPhase.TRANSITION,
)

# Share of the step time budget each phase may use (transition has none)
PHASE_BUDGET_SHARE = {
    SessionPhase.PREPARATION: 0.10,
    SessionPhase.ENGAGEMENT: 0.60,
    SessionPhase.CONSOLIDATION: 0.15,
    SessionPhase.EVALUATION: 0.15,
}

BASE_EFFECTIVENESS = 0.7
KIND_MULTIPLIER = {
    InterventionKind.WARNING: 0.8,
    InterventionKind.SCAFFOLDING: 0.9,
    InterventionKind.GUIDANCE: 0.75,
    InterventionKind.REDIRECTION: 0.7,
    InterventionKind.REINFORCEMENT: 0.7,
}

MESSAGES = {
    ErrorType.PROCEDURAL: "Hold on! Check the calculation steps.",
    ErrorType.CONCEPTUAL: "Shall we review the basic idea once more?",
    ErrorType.ATTENTION: "Focus! Take another look at the problem.",
    ErrorType.MEMORY: "Organize the information before moving on.",
}
DEFAULT_MESSAGE = "Take it step by step."

ACTIONS = {
    InterventionKind.WARNING: ["Show attention prompt", "Adjust pace"],
    InterventionKind.SCAFFOLDING: ["Step-by-step support", "Check the basics"],
    InterventionKind.GUIDANCE: ["Show a hint", "Suggest a direction"],
    InterventionKind.REDIRECTION: ["Attention prompt", "Encourage focus"],
}


@dataclass
class ExecutorConfig:
    """Thresholds for firing interventions."""
    probability_threshold: float = 0.7
    warning_probability: float = 0.8
    min_confidence: float = 0.8
    cooldown_seconds: float = 300.0
    tier_reevaluation_streak: int = 3
    break_fatigue: float = 0.8
    encouragement_frustration: float = 0.7
    audit_size: int = 500

    @classmethod
    def from_settings(cls, settings) -> ExecutorConfig:
        return cls(
            probability_threshold=settings.intervention_probability_threshold,
            min_confidence=settings.prediction_min_confidence,
            cooldown_seconds=settings.intervention_cooldown_seconds,
            tier_reevaluation_streak=settings.tier_reevaluation_streak,
            audit_size=settings.audit_log_size,
        )


def select_kind(prediction: ErrorPrediction, warning_probability: float = 0.8) -> InterventionKind:
    if prediction.probability > warning_probability:
        return InterventionKind.WARNING
    if prediction.error_type == ErrorType.CONCEPTUAL:
        return InterventionKind.SCAFFOLDING
    if prediction.error_type == ErrorType.ATTENTION:
        return InterventionKind.REDIRECTION
    return InterventionKind.GUIDANCE


def select_timing(prediction: ErrorPrediction) -> InterventionTiming:
    if prediction.time_to_error_s < 30:
        return InterventionTiming.IMMEDIATE
    if prediction.time_to_error_s < 60:
        return InterventionTiming.JUST_IN_TIME
    return InterventionTiming.PROACTIVE


def estimate_effectiveness(kind: InterventionKind) -> float:
    return BASE_EFFECTIVENESS * KIND_MULTIPLIER.get(kind, 0.7)


class InterventionExecutor:
    """Per-session intervention state machine."""

    def __init__(
        self,
        config: ExecutorConfig | None = None,
        sink: TelemetrySink | None = None,
        session_id: str | None = None,
    ):
        self.config = config or ExecutorConfig()
        self.sink = sink or LoguruTelemetrySink()
        self.session_id = session_id

        self._phase = SessionPhase.PREPARATION
        self._phase_started: datetime | None = None
        self._step_budget_s: float | None = None

        self._fired_until: dict[str, datetime] = {}
        self._state_cooldowns: dict[str, datetime] = {}
        self._audit: deque[Intervention] = deque(maxlen=self.config.audit_size)
        self._suppressed: deque[ErrorPrediction] = deque(maxlen=self.config.audit_size)

    # =========================================================================
    # State machine
    # =========================================================================

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def audit_log(self) -> list[Intervention]:
        return list(self._audit)

    @property
    def suppressed(self) -> list[ErrorPrediction]:
        """Predictions withheld for low confidence."""
        return list(self._suppressed)

    def start_step(self, time_budget_minutes: float, now: datetime) -> None:
        """Begin a new practice step in ``preparation`` with the given budget."""
        self._step_budget_s = time_budget_minutes * 60
        self._set_phase(SessionPhase.PREPARATION, now, reason="step_start")

    def phase_budget_seconds(self, phase: SessionPhase | None = None) -> float | None:
        share = PHASE_BUDGET_SHARE.get(phase or self._phase)
        if share is None or self._step_budget_s is None:
            return None
        return self._step_budget_s * share

    def complete_phase(self, now: datetime) -> SessionPhase:
        """Advance on an explicit completion event. Transition wraps to preparation."""
        index = PHASE_ORDER.index(self._phase)
        next_phase = PHASE_ORDER[(index + 1) % len(PHASE_ORDER)]
        self._set_phase(next_phase, now, reason="completed")
        return next_phase

    def check_budget(self, now: datetime) -> bool:
        """
        Force ``transition`` if the current phase overran its budget.

        Returns:
            True if a forced transition happened
        """
        budget = self.phase_budget_seconds()
        if budget is None or self._phase_started is None:
            return False
        elapsed = (now - self._phase_started).total_seconds()
        if elapsed <= budget:
            return False
        logger.info(
            f"Phase {self._phase.value} exceeded budget ({elapsed:.0f}s > {budget:.0f}s) - "
            f"forcing transition"
        )
        self._set_phase(SessionPhase.TRANSITION, now, reason="budget_exceeded")
        return True

    def _set_phase(self, phase: SessionPhase, now: datetime, reason: str) -> None:
        previous = self._phase
        self._phase = phase
        self._phase_started = now
        self.sink.emit(
            PHASE_CHANGE,
            {"from": previous.value, "to": phase.value, "reason": reason},
            self.session_id,
            now,
        )

    # =========================================================================
    # Prediction-driven interventions
    # =========================================================================

    def evaluate(self, predictions: list[ErrorPrediction], now: datetime) -> list[Intervention]:
        """
        Emit interventions for eligible predictions.

        Only during ``engagement``. A prediction is eligible when its
        probability exceeds the threshold, its intervention window is still
        open and its pattern has not already fired within that window.
        """
        if self._phase != SessionPhase.ENGAGEMENT:
            return []

        self._prune(now)
        emitted = []
        for prediction in predictions:
            if prediction.probability <= self.config.probability_threshold:
                continue
            if not prediction.window_open(now):
                continue
            fired_until = self._fired_until.get(prediction.pattern_id)
            if fired_until is not None and now < fired_until:
                continue
            try:
                self._ensure_usable(prediction)
            except LowConfidencePrediction as e:
                logger.debug(f"Suppressed intervention: {e}")
                self._suppressed.append(prediction)
                continue

            intervention = self._from_prediction(prediction, now)
            self._fired_until[prediction.pattern_id] = now + timedelta(
                seconds=prediction.intervention_window_s
            )
            self._emit(intervention)
            emitted.append(intervention)
        return emitted

    def _ensure_usable(self, prediction: ErrorPrediction) -> None:
        if prediction.confidence < self.config.min_confidence:
            raise LowConfidencePrediction(prediction, self.config.min_confidence)

    def _from_prediction(self, prediction: ErrorPrediction, now: datetime) -> Intervention:
        kind = select_kind(prediction, self.config.warning_probability)
        return Intervention(
            kind=kind,
            timing=select_timing(prediction),
            message=MESSAGES.get(prediction.error_type, DEFAULT_MESSAGE),
            actions=list(ACTIONS[kind]) + list(prediction.actions.get("immediate", [])),
            estimated_effectiveness=estimate_effectiveness(kind),
            reason=f"predicted:{prediction.pattern_id}",
            created_at=now,
            prediction_id=prediction.prediction_id,
        )

    def _prune(self, now: datetime) -> None:
        expired = [key for key, until in self._fired_until.items() if until <= now]
        for key in expired:
            del self._fired_until[key]

    # =========================================================================
    # State-driven interventions
    # =========================================================================

    def evaluate_state(
        self,
        snapshot: StateSnapshot,
        recommendation: DifficultyRecommendation | None,
        below_target_streak: int,
        now: datetime,
    ) -> list[Intervention]:
        """
        Emit interventions that follow from learner state rather than a
        specific prediction: break suggestion, encouragement, pacing change
        and elite tier re-evaluation. Each reason respects a cooldown.
        """
        if self._phase == SessionPhase.TRANSITION:
            return []

        candidates: list[tuple[str, InterventionKind, InterventionTiming, str, list[str]]] = []
        if snapshot.fatigue > self.config.break_fatigue:
            candidates.append((
                "break_suggestion",
                InterventionKind.REDIRECTION,
                InterventionTiming.IMMEDIATE,
                "You've been working hard. Take a short break.",
                ["Suggest a break"],
            ))
        if snapshot.emotional.frustration > self.config.encouragement_frustration:
            candidates.append((
                "encouragement",
                InterventionKind.REINFORCEMENT,
                InterventionTiming.JUST_IN_TIME,
                "Every mistake is part of learning. You're making progress.",
                ["Offer encouragement", "Ease the pace"],
            ))
        if recommendation is not None:
            if "pace_slow" in recommendation.warnings:
                candidates.append((
                    "pacing",
                    InterventionKind.GUIDANCE,
                    InterventionTiming.PROACTIVE,
                    "Let's try working a little more briskly.",
                    ["Adjust pace"],
                ))
            if (
                recommendation.tier == Tier.ELITE
                and below_target_streak >= self.config.tier_reevaluation_streak
            ):
                candidates.append((
                    "tier_reevaluation",
                    InterventionKind.GUIDANCE,
                    InterventionTiming.PROACTIVE,
                    "Performance has stayed below the elite target. Consider re-evaluating the target tier.",
                    ["Recommend tier re-evaluation"],
                ))

        emitted = []
        for reason, kind, timing, message, actions in candidates:
            until = self._state_cooldowns.get(reason)
            if until is not None and now < until:
                continue
            intervention = Intervention(
                kind=kind,
                timing=timing,
                message=message,
                actions=actions,
                estimated_effectiveness=estimate_effectiveness(kind),
                reason=reason,
                created_at=now,
            )
            self._state_cooldowns[reason] = now + timedelta(seconds=self.config.cooldown_seconds)
            self._emit(intervention)
            emitted.append(intervention)
        return emitted

    def _emit(self, intervention: Intervention) -> None:
        self._audit.append(intervention)
        self.sink.emit(INTERVENTION, intervention.to_dict(), self.session_id, intervention.created_at)
        logger.debug(f"Intervention {intervention.kind.value}: {intervention.message}")
