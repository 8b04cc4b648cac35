"""
Learning Path Orchestrator.

Builds a phase-ordered, multi-week LearningPlan from a learner profile:

1. Total time = weeks x study days x daily minutes
2. Split into five phases (foundation 25%, development 35%, mastery 25%,
   application 10%, exam prep 5%)
3. Each phase becomes one step per sitting, with a step kind chosen by
   progress through the phase
4. Step difficulty = recommended difficulty + phase offset + progress ramp,
   always clamped to the grade/tier bounds
5. Candidate problems come from the Problem Selector

Replanning adjusts only steps still ahead of the learner: completed and
skipped steps are never touched.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field, replace

from loguru import logger

from learnstate.adaptive.difficulty_controller import NOT_RECOMMENDED, DifficultyController
from learnstate.adaptive.difficulty_matrix import get_entry
from learnstate.adaptive.errors import NoAvailableContent, PlanValidationError
from learnstate.adaptive.models import (
    Grade,
    LearnerProfile,
    LearningPathStep,
    LearningPlan,
    Phase,
    PlanForecast,
    StepKind,
    StepStatus,
    SuccessCriteria,
    Tier,
)
from learnstate.adaptive.problem_selector import ProblemSelector
from learnstate.adaptive.state_estimator import clamp, mean

PHASE_PROPORTIONS = {
    Phase.FOUNDATION: 0.25,
    Phase.DEVELOPMENT: 0.35,
    Phase.MASTERY: 0.25,
    Phase.APPLICATION: 0.10,
    Phase.EXAM_PREP: 0.05,
}

# Difficulty offset from the recommended value at the start of each phase
PHASE_OFFSET = {
    Phase.FOUNDATION: -1.0,
    Phase.DEVELOPMENT: -0.5,
    Phase.MASTERY: 0.0,
    Phase.APPLICATION: 0.5,
    Phase.EXAM_PREP: 0.5,
}
PROGRESS_RAMP = 0.5            # Extra difficulty reached by the end of a phase

PHASE_MIN_ACCURACY = {
    Phase.FOUNDATION: 0.80,
    Phase.DEVELOPMENT: 0.75,
    Phase.MASTERY: 0.85,
    Phase.APPLICATION: 0.80,
    Phase.EXAM_PREP: 0.90,
}
MAX_TIME_FACTOR = 1.2

SELECTION = {
    "half_width": 0.5,
    "widened_half_width": 1.5,
    "problems_per_step": 3,
}

REPLAN = {
    "low_accuracy": 0.6,
    "high_accuracy": 0.9,
    "step": 0.5,
    "remediation_minutes": 15.0,
}

FORECAST = {
    "floor": 0.1,
    "risk_penalty": 0.1,
    "low_accuracy": 0.6,
    "min_daily_minutes": 30,
}


@dataclass
class OrchestratorConfig:
    replan_window: int = 10

    @classmethod
    def from_settings(cls, settings) -> OrchestratorConfig:
        return cls(replan_window=settings.replan_window)


@dataclass
class ReplanResult:
    """Outcome of a replanning pass."""
    plan: LearningPlan
    modifications: list[str] = field(default_factory=list)
    reasoning: str = ""

    @property
    def changed(self) -> bool:
        return bool(self.modifications)


def step_kind(progress: float) -> StepKind:
    """Step kind by progress through its phase (0-1)."""
    if progress < 0.3:
        return StepKind.CONCEPT_INTRO
    if progress < 0.7:
        return StepKind.SKILL_PRACTICE
    if progress < 0.9:
        return StepKind.APPLICATION
    return StepKind.ASSESSMENT


def validate_plan(steps: Sequence[LearningPathStep]) -> None:
    """
    Check that step ids are unique and every prerequisite refers to an
    earlier step, which makes the prerequisite graph acyclic.

    Raises:
        PlanValidationError: On a duplicate id or an unknown/forward prerequisite
    """
    seen: set[str] = set()
    for step in steps:
        if step.step_id in seen:
            raise PlanValidationError(f"Duplicate step id: {step.step_id}")
        for prerequisite in step.prerequisites:
            if prerequisite not in seen:
                raise PlanValidationError(
                    f"Step {step.step_id} depends on {prerequisite}, which does not precede it"
                )
        seen.add(step.step_id)


class PathOrchestrator:
    """Build and maintain learning plans."""

    def __init__(
        self,
        selector: ProblemSelector,
        controller: DifficultyController | None = None,
        config: OrchestratorConfig | None = None,
    ):
        self.selector = selector
        self.controller = controller or selector.controller
        self.config = config or OrchestratorConfig()

    # =========================================================================
    # Plan construction
    # =========================================================================

    def build_plan(self, profile: LearnerProfile, subject: str, weeks: int) -> LearningPlan:
        """
        Build a plan for one subject.

        Args:
            profile: Learner profile
            subject: Subject to plan
            weeks: Plan length in weeks

        Returns:
            LearningPlan with a validated prerequisite chain and forecast
        """
        if weeks < 1:
            raise ValueError(f"weeks must be >= 1, got {weeks}")

        grade, tier = profile.grade, profile.target_tier
        constraints = profile.time_constraints
        total_minutes = float(weeks * constraints.study_days_per_week * constraints.daily_minutes)
        phase_minutes = {
            phase: total_minutes * share for phase, share in PHASE_PROPORTIONS.items()
        }

        advisory = None
        allowed, _ = self.controller.topics(grade, tier)
        topics = allowed or (subject,)

        steps: list[LearningPathStep] = []
        for phase, minutes in phase_minutes.items():
            count = max(1, round(minutes / constraints.session_minutes))
            budget = minutes / count
            for i in range(count):
                progress = i / count
                recommendation = self.controller.recommend(grade, tier, profile.recent_accuracy)
                advisory = recommendation.advisory
                difficulty = self.controller.clamp(
                    grade,
                    tier,
                    recommendation.value + PHASE_OFFSET[phase] + PROGRESS_RAMP * progress,
                )
                topic = topics[len(steps) % len(topics)]
                problem_ids, warnings = self._candidates(grade, tier, subject, topic, difficulty)
                steps.append(LearningPathStep(
                    step_id=f"{phase.value}-{i + 1}",
                    phase=phase,
                    kind=step_kind(progress),
                    topic=topic,
                    difficulty=difficulty,
                    time_budget_minutes=round(budget, 1),
                    success_criteria=SuccessCriteria(
                        min_accuracy=PHASE_MIN_ACCURACY[phase],
                        max_time_minutes=round(budget * MAX_TIME_FACTOR, 1),
                    ),
                    prerequisites=(steps[-1].step_id,) if steps else (),
                    problem_ids=problem_ids,
                    warnings=warnings,
                ))

        validate_plan(steps)
        plan = LearningPlan(
            learner_id=profile.learner_id,
            subject=subject,
            grade=grade,
            tier=tier,
            total_minutes=total_minutes,
            steps=steps,
            phase_minutes=phase_minutes,
        )
        plan.forecast = self.forecast(profile, plan, advisory)
        logger.info(
            f"Built plan {plan.plan_id} for {profile.learner_id}: {len(steps)} steps, "
            f"{total_minutes:.0f} minutes, success={plan.forecast.success_probability:.2f}"
        )
        return plan

    def _candidates(
        self,
        grade: Grade,
        tier: Tier,
        subject: str,
        topic: str,
        difficulty: float,
    ) -> tuple[tuple[str, ...], tuple[str, ...]]:
        """Problem ids for a step, retrying once with a wider window."""
        entry = get_entry(grade, tier)
        for half_width in (SELECTION["half_width"], SELECTION["widened_half_width"]):
            window = (
                max(entry.min_difficulty, difficulty - half_width),
                min(entry.max_difficulty, difficulty + half_width),
            )
            try:
                problems = self.selector.select(
                    grade, tier, subject, difficulty, window, mark=False
                )
            except NoAvailableContent as e:
                logger.debug(f"Step candidates: {e}")
                continue
            # Same-topic problems first, selector ranking otherwise preserved
            problems.sort(key=lambda p: p.topic != topic)
            chosen = [p.id for p in problems[: SELECTION["problems_per_step"]]]
            self.selector.mark_served(chosen)
            return tuple(chosen), ()

        logger.warning(f"No content for {subject} step at difficulty {difficulty:.1f}")
        return (), ("no_content",)

    def forecast(
        self,
        profile: LearnerProfile,
        plan: LearningPlan,
        advisory: str | None = None,
    ) -> PlanForecast:
        """Success probability and risk factors for a plan."""
        traits = profile.traits
        base = mean([profile.recent_accuracy, traits.working_memory_capacity, traits.processing_speed])

        risks = []
        if profile.recent_accuracy < FORECAST["low_accuracy"]:
            risks.append("low_accuracy")
        if profile.time_constraints.daily_minutes < FORECAST["min_daily_minutes"]:
            risks.append("limited_study_time")
        if traits.attention_span_minutes < profile.time_constraints.session_minutes:
            risks.append("short_attention_span")
        if advisory == NOT_RECOMMENDED:
            risks.append("developmentally_early")
        if any("no_content" in s.warnings for s in plan.steps):
            risks.append("missing_content")

        probability = max(FORECAST["floor"], base - FORECAST["risk_penalty"] * len(risks))
        return PlanForecast(success_probability=round(clamp(probability), 2), risk_factors=risks)

    # =========================================================================
    # Progress & replanning
    # =========================================================================

    def complete_step(self, plan: LearningPlan, step_id: str, accuracy: float) -> LearningPathStep:
        """Mark a step completed with its observed accuracy."""
        index = plan.index_of(step_id)
        step = plan.steps[index]
        if not step.is_open:
            raise ValueError(f"Step {step_id} is already {step.status.value}")
        completed = replace(step, status=StepStatus.COMPLETED, accuracy=clamp(accuracy))
        plan.steps[index] = completed
        return completed

    def replan(self, plan: LearningPlan, recent_performance: Sequence[bool | float]) -> ReplanResult:
        """
        Adjust future steps from recent outcomes.

        Args:
            plan: Plan to adjust in place
            recent_performance: Outcomes, oldest first; booleans or accuracies

        Returns:
            ReplanResult listing the modifications made
        """
        window = list(recent_performance)[-self.config.replan_window:]
        if not window:
            return ReplanResult(plan, [], "no recent performance")

        accuracy = mean([float(v) for v in window])
        next_index = plan.next_pending_index()
        if next_index is None:
            return ReplanResult(plan, [], f"accuracy {accuracy:.0%}; no pending steps")

        modifications: list[str] = []
        if accuracy < REPLAN["low_accuracy"]:
            reasoning = f"accuracy {accuracy:.0%} below {REPLAN['low_accuracy']:.0%}: easing and remediating"
            modifications += self._shift_difficulty(plan, next_index, -REPLAN["step"])
            modifications.append(self._insert_remediation(plan, next_index))
        elif accuracy > REPLAN["high_accuracy"]:
            reasoning = f"accuracy {accuracy:.0%} above {REPLAN['high_accuracy']:.0%}: accelerating"
            modifications += self._shift_difficulty(plan, next_index, REPLAN["step"])
            skipped = self._skip_next_intro(plan, next_index)
            if skipped:
                modifications.append(skipped)
        else:
            reasoning = f"accuracy {accuracy:.0%} on track"

        validate_plan(plan.steps)
        if modifications:
            logger.info(f"Replanned {plan.plan_id}: {reasoning} ({len(modifications)} changes)")
        return ReplanResult(plan, modifications, reasoning)

    def _shift_difficulty(self, plan: LearningPlan, start: int, delta: float) -> list[str]:
        changes = []
        for i in range(start, len(plan.steps)):
            step = plan.steps[i]
            if not step.is_open:
                continue
            value = self.controller.clamp(plan.grade, plan.tier, step.difficulty + delta)
            if value != step.difficulty:
                plan.steps[i] = replace(step, difficulty=value)
                changes.append(f"{step.step_id}: difficulty {step.difficulty} -> {value}")
        return changes

    def _insert_remediation(self, plan: LearningPlan, index: int) -> str:
        """Insert a remediation step before ``plan.steps[index]`` and rewire prerequisites."""
        following = plan.steps[index]
        count = sum(1 for s in plan.steps if s.kind == StepKind.REMEDIATION)
        minutes = REPLAN["remediation_minutes"]
        remediation = LearningPathStep(
            step_id=f"remediation-{count + 1}",
            phase=following.phase,
            kind=StepKind.REMEDIATION,
            topic=following.topic,
            difficulty=self.controller.clamp(plan.grade, plan.tier, following.difficulty - REPLAN["step"]),
            time_budget_minutes=minutes,
            success_criteria=SuccessCriteria(
                min_accuracy=PHASE_MIN_ACCURACY[following.phase],
                max_time_minutes=minutes * MAX_TIME_FACTOR,
            ),
            prerequisites=following.prerequisites,
        )
        plan.steps.insert(index, remediation)
        plan.steps[index + 1] = replace(following, prerequisites=(remediation.step_id,))
        return f"inserted {remediation.step_id} before {following.step_id}"

    def _skip_next_intro(self, plan: LearningPlan, start: int) -> str | None:
        for i in range(start, len(plan.steps)):
            step = plan.steps[i]
            if step.is_open and step.kind == StepKind.CONCEPT_INTRO:
                plan.steps[i] = replace(step, status=StepStatus.SKIPPED)
                return f"skipped {step.step_id}"
        return None
