"""
Error Pattern Catalog.

Static catalog of named error patterns, each a template of trigger conditions
and predictive signals historically associated with one kind of mistake.

Triggers and signals are detector keys. Each key maps to a predicate over a
PatternContext (current snapshot, snapshot history, recent events, learner
profile, session clock). The catalog is loaded once at import, validated
against the detector registry, and never mutated afterwards.

Patterns:
- math_operation_confusion (procedural)
- fraction_concept_error (conceptual)
- word_problem_misinterpretation (transfer)
- attention_slip_error (attention)
- working_memory_overload (memory)
- perfectionism_paralysis (emotional)
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable

from learnstate.adaptive.models import (
    ErrorType,
    EventKind,
    LearnerProfile,
    LearningEvent,
    StateSnapshot,
    Tier,
)
from learnstate.adaptive.state_estimator import is_increasing, mean


# =============================================================================
# Pattern Context
# =============================================================================


@dataclass
class PatternContext:
    """
    Everything a detector may look at.

    Attributes:
        snapshot: State computed in the current cycle
        events: Recent event slice, oldest first
        profile: Learner profile
        history: Earlier snapshots, oldest first (excluding ``snapshot``)
        elapsed_seconds: Time since the session started
        current_difficulty: Difficulty of the item in progress, if known
        current_topic: Topic of the item in progress, if known
        time_remaining_seconds: Time left in the current step, if known
    """
    snapshot: StateSnapshot
    events: Sequence[LearningEvent]
    profile: LearnerProfile
    history: Sequence[StateSnapshot] = ()
    elapsed_seconds: float = 0.0
    current_difficulty: float | None = None
    current_topic: str | None = None
    time_remaining_seconds: float | None = None

    @property
    def previous(self) -> StateSnapshot | None:
        return self.history[-1] if self.history else None

    @property
    def difficulty(self) -> float | None:
        if self.current_difficulty is not None:
            return self.current_difficulty
        for event in reversed(self.events):
            if event.payload.difficulty is not None:
                return event.payload.difficulty
        return None

    @property
    def topic(self) -> str | None:
        if self.current_topic:
            return self.current_topic
        for event in reversed(self.events):
            if event.payload.topic:
                return event.payload.topic
        return None

    def count(self, kind: EventKind) -> int:
        return sum(1 for e in self.events if e.kind == kind)


# =============================================================================
# Detector Registry
# =============================================================================

Detector = Callable[[PatternContext], bool]

DETECTORS: dict[str, Detector] = {}


def detector(key: str) -> Callable[[Detector], Detector]:
    """Register a predicate under a detector key."""
    def register(func: Detector) -> Detector:
        if key in DETECTORS:
            raise ValueError(f"Duplicate detector key: {key}")
        DETECTORS[key] = func
        return func
    return register


def _difficulty_at_least(ctx: PatternContext, level: float) -> bool:
    difficulty = ctx.difficulty
    return difficulty is not None and difficulty >= level


def _topic_contains(ctx: PatternContext, fragment: str) -> bool:
    topic = ctx.topic
    return topic is not None and fragment in topic.lower()


def _declared_confidence(ctx: PatternContext) -> float | None:
    values = [
        e.payload.declared_confidence for e in ctx.events
        if e.payload.declared_confidence is not None
    ]
    return mean(values) if values else None


# --- Session / item triggers -------------------------------------------------

@detector("complex_calculation")
def _complex_calculation(ctx: PatternContext) -> bool:
    return _difficulty_at_least(ctx, 6)


@detector("multiple_conditions")
def _multiple_conditions(ctx: PatternContext) -> bool:
    return _difficulty_at_least(ctx, 7)


@detector("numeric_complexity")
def _numeric_complexity(ctx: PatternContext) -> bool:
    return _difficulty_at_least(ctx, 8)


@detector("time_pressure")
def _time_pressure(ctx: PatternContext) -> bool:
    return ctx.time_remaining_seconds is not None and ctx.time_remaining_seconds < 300


@detector("fatigued")
def _fatigued(ctx: PatternContext) -> bool:
    return ctx.snapshot.fatigue > 0.6


@detector("accumulated_fatigue")
def _accumulated_fatigue(ctx: PatternContext) -> bool:
    return ctx.snapshot.fatigue > 0.5


@detector("long_session")
def _long_session(ctx: PatternContext) -> bool:
    return ctx.elapsed_seconds > ctx.profile.attention_span_seconds


@detector("monotonous_work")
def _monotonous_work(ctx: PatternContext) -> bool:
    topics = {e.payload.topic for e in ctx.events}
    return len(ctx.events) >= 5 and len(topics) == 1 and None not in topics


@detector("fraction_problem")
def _fraction_problem(ctx: PatternContext) -> bool:
    return _topic_contains(ctx, "fraction")


@detector("word_problem")
def _word_problem(ctx: PatternContext) -> bool:
    return _topic_contains(ctx, "word")


@detector("low_topic_mastery")
def _low_topic_mastery(ctx: PatternContext) -> bool:
    topic = ctx.topic
    if topic is None or topic not in ctx.snapshot.topic_mastery:
        return False
    return ctx.snapshot.topic_mastery[topic] < 0.4


@detector("no_visual_support")
def _no_visual_support(ctx: PatternContext) -> bool:
    return ctx.profile.learning_style != "visual"


@detector("multi_step_calculation")
def _multi_step_calculation(ctx: PatternContext) -> bool:
    return _difficulty_at_least(ctx, 6) and ctx.snapshot.cognitive_load.processing_time_ratio > 1.5


@detector("low_working_memory")
def _low_working_memory(ctx: PatternContext) -> bool:
    return ctx.profile.traits.working_memory_capacity < 0.4


@detector("long_problems")
def _long_problems(ctx: PatternContext) -> bool:
    return ctx.snapshot.cognitive_load.processing_time_ms > 90000


@detector("high_expectation")
def _high_expectation(ctx: PatternContext) -> bool:
    return ctx.profile.target_tier in (Tier.ADVANCED, Tier.ELITE)


@detector("perfectionist_tendency")
def _perfectionist_tendency(ctx: PatternContext) -> bool:
    return ctx.snapshot.accuracy >= 0.8 and ctx.snapshot.cognitive_load.revision_count >= 1


@detector("anxiety")
def _anxiety(ctx: PatternContext) -> bool:
    declared = _declared_confidence(ctx)
    return declared is not None and declared < 0.4


# --- Behavioral signals ------------------------------------------------------

@detector("answer_hesitation")
def _answer_hesitation(ctx: PatternContext) -> bool:
    return ctx.snapshot.cognitive_load.hesitation_rate >= 1.0


@detector("multiple_revisions")
def _multiple_revisions(ctx: PatternContext) -> bool:
    return ctx.snapshot.cognitive_load.revision_count >= 2


@detector("keystroke_burst")
def _keystroke_burst(ctx: PatternContext) -> bool:
    return any((e.payload.keystrokes or 0) > 100 for e in ctx.events)


@detector("rushing")
def _rushing(ctx: PatternContext) -> bool:
    return any(
        e.kind == EventKind.SUBMIT
        and e.payload.time_spent_ms < 10000
        and e.payload.is_correct is False
        for e in ctx.events
    )


@detector("repeated_wrong_answers")
def _repeated_wrong_answers(ctx: PatternContext) -> bool:
    return ctx.snapshot.cognitive_load.error_frequency > 0.3


@detector("hint_reliance")
def _hint_reliance(ctx: PatternContext) -> bool:
    return ctx.count(EventKind.HINT_REQUEST) >= 2


@detector("rereading")
def _rereading(ctx: PatternContext) -> bool:
    return ctx.count(EventKind.VIEW_EXPLANATION) >= 1


@detector("restless_pointer")
def _restless_pointer(ctx: PatternContext) -> bool:
    return ctx.snapshot.cognitive_load.attention_fluctuation > 0.5


@detector("pause_taken")
def _pause_taken(ctx: PatternContext) -> bool:
    return ctx.count(EventKind.PAUSE) >= 1


@detector("overlong_deliberation")
def _overlong_deliberation(ctx: PatternContext) -> bool:
    return any(e.payload.time_spent_ms > 180000 for e in ctx.events)


@detector("submit_hesitation")
def _submit_hesitation(ctx: PatternContext) -> bool:
    return any(
        e.kind == EventKind.SUBMIT
        and e.payload.declared_confidence is not None
        and e.payload.declared_confidence < 0.3
        for e in ctx.events
    )


# --- Temporal signals --------------------------------------------------------

@detector("double_processing_time")
def _double_processing_time(ctx: PatternContext) -> bool:
    return ctx.snapshot.cognitive_load.processing_time_ratio >= 2.0


@detector("long_stall")
def _long_stall(ctx: PatternContext) -> bool:
    return ctx.count(EventKind.PAUSE) >= 1 or any(
        e.payload.time_spent_ms > 120000 for e in ctx.events
    )


@detector("slow_on_topic")
def _slow_on_topic(ctx: PatternContext) -> bool:
    topic = ctx.topic
    times = [e.payload.time_spent_ms for e in ctx.events if topic and e.payload.topic == topic]
    return bool(times) and mean(times) > 60000


@detector("long_reading_time")
def _long_reading_time(ctx: PatternContext) -> bool:
    return any(
        e.kind in (EventKind.START, EventKind.VIEW_EXPLANATION) and e.payload.time_spent_ms > 90000
        for e in ctx.events
    )


@detector("irregular_timing")
def _irregular_timing(ctx: PatternContext) -> bool:
    return ctx.snapshot.performance.consistency < 0.5


@detector("processing_spike")
def _processing_spike(ctx: PatternContext) -> bool:
    previous = ctx.previous
    if previous is None or previous.cognitive_load.processing_time_ms <= 0:
        return False
    return ctx.snapshot.cognitive_load.processing_time_ms > 1.5 * previous.cognitive_load.processing_time_ms


@detector("slow_decisions")
def _slow_decisions(ctx: PatternContext) -> bool:
    return ctx.snapshot.cognitive_load.processing_time_ratio >= 3.0


# --- Cognitive signals -------------------------------------------------------

@detector("scattered_attention")
def _scattered_attention(ctx: PatternContext) -> bool:
    return ctx.snapshot.cognitive_load.attention_fluctuation > 0.3


@detector("high_cognitive_load")
def _high_cognitive_load(ctx: PatternContext) -> bool:
    load = ctx.snapshot.cognitive_load
    return load.processing_time_ratio > 1.5 or load.fatigue > 0.6


@detector("concept_confusion")
def _concept_confusion(ctx: PatternContext) -> bool:
    return ctx.count(EventKind.VIEW_EXPLANATION) >= 1 and ctx.snapshot.cognitive_load.error_frequency > 0


@detector("procedure_unclear")
def _procedure_unclear(ctx: PatternContext) -> bool:
    load = ctx.snapshot.cognitive_load
    return load.hesitation_rate >= 1.0 and load.error_frequency > 0.2


@detector("disorganized_work")
def _disorganized_work(ctx: PatternContext) -> bool:
    load = ctx.snapshot.cognitive_load
    return load.revision_count >= 1 and load.error_frequency > 0.2


@detector("focus_decline")
def _focus_decline(ctx: PatternContext) -> bool:
    series = [s.cognitive_load.attention_fluctuation for s in ctx.history[-4:]]
    series.append(ctx.snapshot.cognitive_load.attention_fluctuation)
    return len(series) >= 3 and is_increasing(series)


@detector("over_checking")
def _over_checking(ctx: PatternContext) -> bool:
    return ctx.snapshot.cognitive_load.revision_count >= 2 and ctx.snapshot.accuracy >= 0.7


@detector("indecision")
def _indecision(ctx: PatternContext) -> bool:
    return ctx.snapshot.cognitive_load.hesitation_rate >= 2.0


# --- Emotional signals -------------------------------------------------------

@detector("irritation")
def _irritation(ctx: PatternContext) -> bool:
    return ctx.snapshot.emotional.frustration > 0.5


@detector("low_confidence")
def _low_confidence(ctx: PatternContext) -> bool:
    return ctx.snapshot.emotional.confidence < 0.3


@detector("bewilderment")
def _bewilderment(ctx: PatternContext) -> bool:
    emotional = ctx.snapshot.emotional
    return emotional.frustration > 0.3 and emotional.confidence < 0.4


@detector("giving_up")
def _giving_up(ctx: PatternContext) -> bool:
    emotional = ctx.snapshot.emotional
    return emotional.engagement < 0.3 and emotional.motivation < 0.4


@detector("boredom")
def _boredom(ctx: PatternContext) -> bool:
    return ctx.snapshot.emotional.engagement < 0.3


@detector("overwhelmed")
def _overwhelmed(ctx: PatternContext) -> bool:
    return ctx.snapshot.emotional.frustration > 0.6


@detector("panic")
def _panic(ctx: PatternContext) -> bool:
    return ctx.snapshot.emotional.frustration > 0.5 and ctx.snapshot.cognitive_load.hesitation_rate >= 1.0


@detector("fixation_on_perfection")
def _fixation_on_perfection(ctx: PatternContext) -> bool:
    return ctx.snapshot.accuracy >= 0.8 and ctx.snapshot.emotional.confidence < 0.3


# =============================================================================
# Catalog
# =============================================================================


@dataclass(frozen=True)
class PatternSignals:
    behavioral: tuple[str, ...] = ()
    temporal: tuple[str, ...] = ()
    cognitive: tuple[str, ...] = ()
    emotional: tuple[str, ...] = ()

    def all(self) -> tuple[str, ...]:
        return self.behavioral + self.temporal + self.cognitive + self.emotional


@dataclass(frozen=True)
class ErrorPattern:
    """
    Named template of conditions associated with a specific mistake type.

    Attributes:
        pattern_id: Stable identifier
        error_type: Cognitive category of the mistake
        description: Human-readable summary
        triggers: Detector keys describing the situation
        signals: Detector keys describing observed behavior, by channel
        frequency: Base rate of the mistake among learners (0-1)
        severity: Cost of the mistake when it happens (0-1)
        prevention_strategies: Ordered strategies; the first two are immediate
    """
    pattern_id: str
    error_type: ErrorType
    description: str
    triggers: tuple[str, ...]
    signals: PatternSignals
    frequency: float
    severity: float
    prevention_strategies: tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            "pattern_id": self.pattern_id,
            "error_type": self.error_type.value,
            "description": self.description,
            "triggers": list(self.triggers),
            "signals": {
                "behavioral": list(self.signals.behavioral),
                "temporal": list(self.signals.temporal),
                "cognitive": list(self.signals.cognitive),
                "emotional": list(self.signals.emotional),
            },
            "frequency": self.frequency,
            "severity": self.severity,
            "prevention_strategies": list(self.prevention_strategies),
        }


ERROR_PATTERNS: tuple[ErrorPattern, ...] = (
    ErrorPattern(
        pattern_id="math_operation_confusion",
        error_type=ErrorType.PROCEDURAL,
        description="Mixing up arithmetic operators",
        triggers=("complex_calculation", "time_pressure", "fatigued"),
        signals=PatternSignals(
            behavioral=("answer_hesitation", "multiple_revisions", "keystroke_burst"),
            temporal=("double_processing_time", "long_stall"),
            cognitive=("scattered_attention", "high_cognitive_load"),
            emotional=("rushing", "irritation"),
        ),
        frequency=0.15,
        severity=0.7,
        prevention_strategies=(
            "Prompt to double-check the operator",
            "Step-by-step calculation support",
            "Visually highlight operators",
        ),
    ),
    ErrorPattern(
        pattern_id="fraction_concept_error",
        error_type=ErrorType.CONCEPTUAL,
        description="Misunderstanding the fraction concept",
        triggers=("fraction_problem", "low_topic_mastery", "no_visual_support"),
        signals=PatternSignals(
            behavioral=("repeated_wrong_answers", "hint_reliance"),
            temporal=("slow_on_topic",),
            cognitive=("concept_confusion", "procedure_unclear"),
            emotional=("low_confidence", "bewilderment"),
        ),
        frequency=0.25,
        severity=0.9,
        prevention_strategies=(
            "Show fractions visually",
            "Review the basic fraction concept",
            "Graduated practice",
        ),
    ),
    ErrorPattern(
        pattern_id="word_problem_misinterpretation",
        error_type=ErrorType.TRANSFER,
        description="Misreading a word problem",
        triggers=("word_problem", "multiple_conditions", "numeric_complexity"),
        signals=PatternSignals(
            behavioral=("rereading", "repeated_wrong_answers"),
            temporal=("long_reading_time",),
            cognitive=("disorganized_work", "concept_confusion"),
            emotional=("bewilderment", "giving_up"),
        ),
        frequency=0.35,
        severity=0.8,
        prevention_strategies=(
            "Structure the problem statement",
            "Highlight key words",
            "Draw a diagram",
        ),
    ),
    ErrorPattern(
        pattern_id="attention_slip_error",
        error_type=ErrorType.ATTENTION,
        description="Careless slip from drifting attention",
        triggers=("accumulated_fatigue", "long_session", "monotonous_work"),
        signals=PatternSignals(
            behavioral=("restless_pointer", "pause_taken", "multiple_revisions"),
            temporal=("irregular_timing",),
            cognitive=("scattered_attention", "focus_decline"),
            emotional=("boredom", "fatigued"),
        ),
        frequency=0.20,
        severity=0.5,
        prevention_strategies=(
            "Attention prompt",
            "Suggest a short break",
            "Change the problem format",
        ),
    ),
    ErrorPattern(
        pattern_id="working_memory_overload",
        error_type=ErrorType.MEMORY,
        description="Working memory overload on multi-step work",
        triggers=("multi_step_calculation", "low_working_memory", "long_problems"),
        signals=PatternSignals(
            behavioral=("rushing",),
            temporal=("processing_spike",),
            cognitive=("high_cognitive_load", "disorganized_work"),
            emotional=("overwhelmed", "panic"),
        ),
        frequency=0.18,
        severity=0.8,
        prevention_strategies=(
            "Chunk the problem",
            "Write intermediate results down",
            "Split into smaller steps",
        ),
    ),
    ErrorPattern(
        pattern_id="perfectionism_paralysis",
        error_type=ErrorType.EMOTIONAL,
        description="Stalling from perfectionism",
        triggers=("high_expectation", "perfectionist_tendency", "anxiety"),
        signals=PatternSignals(
            behavioral=("overlong_deliberation", "submit_hesitation"),
            temporal=("slow_decisions",),
            cognitive=("over_checking", "indecision"),
            emotional=("low_confidence", "fixation_on_perfection"),
        ),
        frequency=0.12,
        severity=0.6,
        prevention_strategies=(
            "Set a gentle time limit",
            "Accept imperfect attempts",
            "Emphasize progress over perfection",
        ),
    ),
)


def validate_catalog(patterns: Sequence[ErrorPattern] = ERROR_PATTERNS) -> None:
    """
    Check the catalog against the detector registry.

    Raises:
        ValueError: On unknown detector keys, duplicate ids or out-of-range rates
    """
    seen: set[str] = set()
    for pattern in patterns:
        if pattern.pattern_id in seen:
            raise ValueError(f"Duplicate error pattern id: {pattern.pattern_id}")
        seen.add(pattern.pattern_id)

        if not pattern.triggers and not pattern.signals.all():
            raise ValueError(f"Pattern {pattern.pattern_id} has no triggers or signals")
        unknown = [k for k in pattern.triggers + pattern.signals.all() if k not in DETECTORS]
        if unknown:
            raise ValueError(f"Pattern {pattern.pattern_id} references unknown detectors: {unknown}")
        for name in ("frequency", "severity"):
            value = getattr(pattern, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"Pattern {pattern.pattern_id} {name} out of range: {value}")


def get_pattern(pattern_id: str) -> ErrorPattern | None:
    return PATTERNS_BY_ID.get(pattern_id)


validate_catalog()

PATTERNS_BY_ID: Mapping[str, ErrorPattern] = MappingProxyType(
    {p.pattern_id: p for p in ERROR_PATTERNS}
)
