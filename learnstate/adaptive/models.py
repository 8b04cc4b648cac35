"""
Data models for the adaptive learning-state engine.

Inputs that arrive from outside the engine (learner profiles, interaction
events) are pydantic models validated at construction, so a malformed profile
fails immediately instead of silently defaulting nested fields.

Everything the engine produces is a plain dataclass with ``to_dict()``:
- StateSnapshot: cognitive load + emotional indicators + performance
- ErrorPrediction: a forecast error with its intervention window
- DifficultyRecommendation: bounded target difficulty with reasoning
- ProblemDescriptor: problem metadata returned by the repository
- Intervention: an emitted pedagogical command
- LearningPathStep / LearningPlan: the phase-ordered plan
"""
from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# Enumerations
# =============================================================================


class Grade(str, Enum):
    """School grade of the learner."""
    FOURTH = "4th"
    FIFTH = "5th"
    SIXTH = "6th"


class Tier(str, Enum):
    """Target-school difficulty band."""
    BASIC = "basic"
    STANDARD = "standard"
    ADVANCED = "advanced"
    ELITE = "elite"


class EventKind(str, Enum):
    """Kind of learner interaction."""
    START = "start"
    SUBMIT = "submit"
    HINT_REQUEST = "hint_request"
    VIEW_EXPLANATION = "view_explanation"
    PAUSE = "pause"
    RESUME = "resume"


class ErrorType(str, Enum):
    """Cognitive category of a predicted mistake."""
    PROCEDURAL = "procedural"      # Wrong operation or step order
    CONCEPTUAL = "conceptual"      # Misunderstood the idea itself
    TRANSFER = "transfer"          # Could not map the idea onto a new context
    ATTENTION = "attention"        # Careless slip
    MEMORY = "memory"              # Working memory overflow
    EMOTIONAL = "emotional"        # Anxiety / perfectionism


class PredictionSource(str, Enum):
    """Detection method that produced a prediction."""
    PATTERN = "pattern"
    COGNITIVE_LOAD = "cognitive_load"
    SESSION_FATIGUE = "session_fatigue"
    RISK_SCORE = "risk_score"


class InterventionKind(str, Enum):
    WARNING = "warning"
    GUIDANCE = "guidance"
    SCAFFOLDING = "scaffolding"
    REDIRECTION = "redirection"
    REINFORCEMENT = "reinforcement"


class InterventionTiming(str, Enum):
    IMMEDIATE = "immediate"
    JUST_IN_TIME = "just_in_time"
    PROACTIVE = "proactive"


class Phase(str, Enum):
    """Stage of a multi-week learning plan."""
    FOUNDATION = "foundation"
    DEVELOPMENT = "development"
    MASTERY = "mastery"
    APPLICATION = "application"
    EXAM_PREP = "exam_prep"


class SessionPhase(str, Enum):
    """Stage of a single practice step, driven by the intervention executor."""
    PREPARATION = "preparation"
    ENGAGEMENT = "engagement"
    CONSOLIDATION = "consolidation"
    EVALUATION = "evaluation"
    TRANSITION = "transition"


class StepKind(str, Enum):
    CONCEPT_INTRO = "concept_intro"
    SKILL_PRACTICE = "skill_practice"
    APPLICATION = "application"
    ASSESSMENT = "assessment"
    REMEDIATION = "remediation"


class StepStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"


def short_id() -> str:
    return uuid.uuid4().hex[:12]


# =============================================================================
# Input Records (validated)
# =============================================================================


class CognitiveTraits(BaseModel):
    """Learner traits supplied by the profile service."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    processing_speed: float = Field(..., ge=0.0, le=1.0, description="Relative processing speed (0-1)")
    working_memory_capacity: float = Field(..., ge=0.0, le=1.0, description="Working memory capacity (0-1)")
    attention_span_minutes: float = Field(..., gt=0, description="Declared sustainable attention span")


class TimeConstraints(BaseModel):
    """How much study time the learner has."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    daily_minutes: int = Field(..., gt=0, description="Study minutes available per study day")
    study_days_per_week: int = Field(..., ge=1, le=7)
    session_minutes: int = Field(..., gt=0, description="Length of a single sitting")

    @model_validator(mode="after")
    def _session_fits_day(self) -> TimeConstraints:
        if self.session_minutes > self.daily_minutes:
            raise ValueError(
                f"session_minutes ({self.session_minutes}) exceeds daily_minutes ({self.daily_minutes})"
            )
        return self


class LearnerProfile(BaseModel):
    """
    Read-only learner profile, supplied once per session.

    The engine never mutates it; only the external profile service does.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    learner_id: str = Field(..., min_length=1)
    grade: Grade
    target_tier: Tier
    subjects: tuple[str, ...] = Field(..., min_length=1)
    traits: CognitiveTraits
    time_constraints: TimeConstraints
    learning_style: str = Field(default="mixed", description="Learning-style tag (visual, verbal, ...)")
    recent_accuracy: float = Field(default=0.5, ge=0.0, le=1.0, description="Accuracy carried in from past sessions")

    @property
    def attention_span_seconds(self) -> float:
        return self.traits.attention_span_minutes * 60


class EventPayload(BaseModel):
    """Measurements attached to a learning event. All counters are optional."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    time_spent_ms: int = Field(default=0, ge=0)
    answer: str | None = None
    is_correct: bool | None = None
    mouse_moves: int | None = Field(default=None, ge=0)
    keystrokes: int | None = Field(default=None, ge=0)
    hesitation_count: int = Field(default=0, ge=0)
    declared_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    topic: str | None = None
    difficulty: float | None = Field(default=None, ge=1.0, le=10.0)


class LearningEvent(BaseModel):
    """A single learner interaction. Immutable once recorded."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: EventKind
    problem_id: str = Field(..., min_length=1)
    payload: EventPayload = Field(default_factory=EventPayload)
    timestamp: datetime | None = None

    def stamped(self, at: datetime) -> LearningEvent:
        """Return a copy carrying the recording timestamp."""
        return self.model_copy(update={"timestamp": at})

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


# =============================================================================
# State Snapshot
# =============================================================================


@dataclass(frozen=True)
class CognitiveLoad:
    """Processing-strain indicators derived from an event slice."""
    processing_time_ms: float = 0.0
    processing_time_ratio: float = 0.0
    hesitation_rate: float = 0.0
    error_frequency: float = 0.0
    revision_count: int = 0
    attention_fluctuation: float = 0.0
    fatigue: float = 0.0


@dataclass(frozen=True)
class EmotionalState:
    """Emotional indicators, each in [0, 1]."""
    frustration: float = 0.0
    confidence: float = 0.5
    engagement: float = 0.5
    motivation: float = 0.5


@dataclass(frozen=True)
class PerformanceMetrics:
    """Rolling performance over submit events."""
    accuracy: float = 0.5
    speed: float = 0.5
    efficiency: float = 0.5
    consistency: float = 0.5


@dataclass(frozen=True)
class StateSnapshot:
    """
    Learner state at the end of one analysis cycle.

    Snapshots are appended to the session history and never mutated.

    Attributes:
        timestamp: Time of the newest event in the analysed slice
        cognitive_load: Processing-strain indicators
        emotional: Frustration / confidence / engagement / motivation
        performance: Accuracy / speed / efficiency / consistency
        topic_mastery: Per-topic mastery estimate (0-1)
        event_count: Number of events in the analysed slice
        is_default: True for the neutral snapshot used before any data exists
    """
    timestamp: datetime | None
    cognitive_load: CognitiveLoad
    emotional: EmotionalState
    performance: PerformanceMetrics
    topic_mastery: dict[str, float] = field(default_factory=dict)
    event_count: int = 0
    is_default: bool = False

    @classmethod
    def neutral(cls, timestamp: datetime | None = None) -> StateSnapshot:
        """Neutral starting state: accuracy 0.5, no fatigue."""
        return cls(
            timestamp=timestamp,
            cognitive_load=CognitiveLoad(),
            emotional=EmotionalState(),
            performance=PerformanceMetrics(),
            is_default=True,
        )

    @property
    def fatigue(self) -> float:
        return self.cognitive_load.fatigue

    @property
    def accuracy(self) -> float:
        return self.performance.accuracy

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "cognitive_load": asdict(self.cognitive_load),
            "emotional": asdict(self.emotional),
            "performance": asdict(self.performance),
            "topic_mastery": dict(self.topic_mastery),
            "event_count": self.event_count,
            "is_default": self.is_default,
        }

    def to_record(self) -> dict[str, Any]:
        """Flat, timestamp-keyed record for replay/audit."""
        record: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "event_count": self.event_count,
            "is_default": self.is_default,
        }
        record.update(asdict(self.cognitive_load))
        record.update(asdict(self.emotional))
        record.update(asdict(self.performance))
        record["topic_mastery"] = dict(self.topic_mastery)
        return record


# =============================================================================
# Predictions & Interventions
# =============================================================================


@dataclass
class ErrorPrediction:
    """
    A forecast mistake with the window during which it can be pre-empted.

    Probability and confidence are validated into [0, 1] on creation.
    """
    pattern_id: str
    error_type: ErrorType
    source: PredictionSource
    probability: float
    confidence: float
    time_to_error_s: float
    intervention_window_s: float
    created_at: datetime
    actions: dict[str, list[str]] = field(default_factory=dict)
    prediction_id: str = field(default_factory=short_id)

    def __post_init__(self) -> None:
        for name in ("probability", "confidence"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")

    def age_seconds(self, now: datetime) -> float:
        return (now - self.created_at).total_seconds()

    def is_expired(self, now: datetime, ttl_seconds: float) -> bool:
        return self.age_seconds(now) > ttl_seconds

    def window_open(self, now: datetime) -> bool:
        """Whether the error can still be pre-empted."""
        return now <= self.created_at + timedelta(seconds=self.intervention_window_s)

    def to_dict(self) -> dict[str, Any]:
        return {
            "prediction_id": self.prediction_id,
            "pattern_id": self.pattern_id,
            "error_type": self.error_type.value,
            "source": self.source.value,
            "probability": self.probability,
            "confidence": self.confidence,
            "time_to_error_s": self.time_to_error_s,
            "intervention_window_s": self.intervention_window_s,
            "created_at": self.created_at.isoformat(),
            "actions": {k: list(v) for k, v in self.actions.items()},
        }


@dataclass
class Intervention:
    """A pedagogical command emitted to the host application."""
    kind: InterventionKind
    timing: InterventionTiming
    message: str
    actions: list[str]
    estimated_effectiveness: float
    reason: str
    created_at: datetime
    prediction_id: str | None = None
    intervention_id: str = field(default_factory=short_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "intervention_id": self.intervention_id,
            "kind": self.kind.value,
            "timing": self.timing.value,
            "message": self.message,
            "actions": list(self.actions),
            "estimated_effectiveness": self.estimated_effectiveness,
            "reason": self.reason,
            "prediction_id": self.prediction_id,
            "created_at": self.created_at.isoformat(),
        }


# =============================================================================
# Difficulty & Content
# =============================================================================


@dataclass(frozen=True)
class DifficultyMatrixEntry:
    """Static difficulty band for one (grade, tier) pair, on a 1-10 scale."""
    grade: Grade
    tier: Tier
    base: float
    min_difficulty: float
    max_difficulty: float
    time_allocation_minutes: int
    allowed_topics: tuple[str, ...] = ()
    forbidden_topics: tuple[str, ...] = ()

    def clamp(self, value: float) -> float:
        return max(self.min_difficulty, min(self.max_difficulty, value))

    def to_dict(self) -> dict[str, Any]:
        return {
            "grade": self.grade.value,
            "tier": self.tier.value,
            "base": self.base,
            "min": self.min_difficulty,
            "max": self.max_difficulty,
            "time_allocation_minutes": self.time_allocation_minutes,
            "allowed_topics": list(self.allowed_topics),
            "forbidden_topics": list(self.forbidden_topics),
        }


@dataclass
class DifficultyRecommendation:
    """
    Bounded difficulty target for the next item.

    ``advisory`` is set to ``"not_recommended"`` when the grade/tier pairing is
    developmentally inappropriate; the value is still computed.
    """
    grade: Grade
    tier: Tier
    value: float
    min_difficulty: float
    max_difficulty: float
    reasoning: str
    time_allocation_minutes: int
    target_accuracy: float
    advisory: str | None = None
    below_target: bool = False
    warnings: list[str] = field(default_factory=list)

    def window(self, half_width: float) -> tuple[float, float]:
        """Difficulty window around the target, kept inside the entry bounds."""
        low = max(self.min_difficulty, self.value - half_width)
        high = min(self.max_difficulty, self.value + half_width)
        return low, high

    def to_dict(self) -> dict[str, Any]:
        return {
            "grade": self.grade.value,
            "tier": self.tier.value,
            "value": self.value,
            "min": self.min_difficulty,
            "max": self.max_difficulty,
            "reasoning": self.reasoning,
            "time_allocation_minutes": self.time_allocation_minutes,
            "target_accuracy": self.target_accuracy,
            "advisory": self.advisory,
            "below_target": self.below_target,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class ProblemDescriptor:
    """Problem metadata as served by the external repository."""
    id: str
    difficulty: float
    topic: str
    subtopic: str = ""
    expected_time_s: int = 0
    required_skills: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProblemDescriptor:
        """Parse a descriptor from a repository payload."""
        return cls(
            id=str(data["id"]),
            difficulty=float(data["difficulty"]),
            topic=data.get("topic", ""),
            subtopic=data.get("subtopic", ""),
            expected_time_s=int(data.get("expected_time", data.get("expected_time_s", 0))),
            required_skills=tuple(data.get("required_skills", ())),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "difficulty": self.difficulty,
            "topic": self.topic,
            "subtopic": self.subtopic,
            "expected_time": self.expected_time_s,
            "required_skills": list(self.required_skills),
        }


# =============================================================================
# Learning Plan
# =============================================================================


@dataclass(frozen=True)
class SuccessCriteria:
    min_accuracy: float
    max_time_minutes: float


@dataclass
class LearningPathStep:
    """
    One step of a learning plan.

    Prerequisites reference step ids that appear earlier in the plan.
    """
    step_id: str
    phase: Phase
    kind: StepKind
    topic: str
    difficulty: float
    time_budget_minutes: float
    success_criteria: SuccessCriteria
    prerequisites: tuple[str, ...] = ()
    problem_ids: tuple[str, ...] = ()
    status: StepStatus = StepStatus.PENDING
    accuracy: float | None = None
    warnings: tuple[str, ...] = ()

    @property
    def is_open(self) -> bool:
        """Still ahead of the learner (may be replanned)."""
        return self.status == StepStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "phase": self.phase.value,
            "kind": self.kind.value,
            "topic": self.topic,
            "difficulty": self.difficulty,
            "time_budget_minutes": self.time_budget_minutes,
            "success_criteria": asdict(self.success_criteria),
            "prerequisites": list(self.prerequisites),
            "problem_ids": list(self.problem_ids),
            "status": self.status.value,
            "accuracy": self.accuracy,
            "warnings": list(self.warnings),
        }


@dataclass
class PlanForecast:
    """Expected outcome of a plan."""
    success_probability: float
    risk_factors: list[str] = field(default_factory=list)


@dataclass
class LearningPlan:
    """Phase-ordered learning plan for one learner and subject."""
    learner_id: str
    subject: str
    grade: Grade
    tier: Tier
    total_minutes: float
    steps: list[LearningPathStep]
    phase_minutes: dict[Phase, float]
    forecast: PlanForecast | None = None
    plan_id: str = field(default_factory=short_id)

    def index_of(self, step_id: str) -> int:
        for i, step in enumerate(self.steps):
            if step.step_id == step_id:
                return i
        raise KeyError(step_id)

    def step(self, step_id: str) -> LearningPathStep:
        return self.steps[self.index_of(step_id)]

    def next_pending_index(self) -> int | None:
        for i, step in enumerate(self.steps):
            if step.is_open:
                return i
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "learner_id": self.learner_id,
            "subject": self.subject,
            "grade": self.grade.value,
            "tier": self.tier.value,
            "total_minutes": self.total_minutes,
            "phase_minutes": {p.value: m for p, m in self.phase_minutes.items()},
            "steps": [s.to_dict() for s in self.steps],
            "forecast": asdict(self.forecast) if self.forecast else None,
        }
