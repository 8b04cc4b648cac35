"""
Unit tests for the PathOrchestrator: plan building, forecast and replanning.
"""

from dataclasses import replace

import pytest

from conftest import make_profile
from learnstate.adaptive.difficulty_controller import DifficultyController
from learnstate.adaptive.errors import PlanValidationError
from learnstate.adaptive.models import Grade, Phase, StepKind, StepStatus, Tier
from learnstate.adaptive.path_orchestrator import (
    PathOrchestrator,
    step_kind,
    validate_plan,
)
from learnstate.adaptive.problem_selector import (
    InMemoryProblemRepository,
    ProblemRepository,
    ProblemSelector,
)


class EmptyRepository(ProblemRepository):
    def query(self, grade, tier, subject, difficulty_min, difficulty_max, exclude_ids):
        return []


@pytest.fixture
def orchestrator(clock):
    selector = ProblemSelector(InMemoryProblemRepository.sample(), clock=clock)
    yield PathOrchestrator(selector)
    selector.close()


@pytest.fixture
def plan(orchestrator, profile):
    return orchestrator.build_plan(profile, "math", weeks=2)


class TestBuildPlan:
    """Plan structure for a 5th grade / standard learner over two weeks."""

    def test_total_and_phase_minutes(self, plan):
        assert plan.total_minutes == 600
        assert plan.phase_minutes[Phase.FOUNDATION] == pytest.approx(150)
        assert plan.phase_minutes[Phase.EXAM_PREP] == pytest.approx(30)

    def test_one_step_per_sitting(self, plan):
        counts = {phase: sum(1 for s in plan.steps if s.phase == phase) for phase in Phase}
        assert counts == {
            Phase.FOUNDATION: 5,
            Phase.DEVELOPMENT: 7,
            Phase.MASTERY: 5,
            Phase.APPLICATION: 2,
            Phase.EXAM_PREP: 1,
        }

    def test_phases_in_order_with_chained_prerequisites(self, plan):
        phases = [s.phase for s in plan.steps]
        assert phases == sorted(phases, key=list(Phase).index)
        assert plan.steps[0].prerequisites == ()
        for previous, step in zip(plan.steps, plan.steps[1:]):
            assert step.prerequisites == (previous.step_id,)
        validate_plan(plan.steps)

    def test_difficulty_within_bounds_and_ramps(self, plan):
        assert all(4.0 <= s.difficulty <= 6.0 for s in plan.steps)
        assert plan.step("foundation-1").difficulty == 4.0
        assert plan.step("mastery-1").difficulty == 5.0
        assert plan.step("exam_prep-1").difficulty == 5.5

    def test_steps_have_candidate_problems(self, plan):
        for step in plan.steps:
            assert len(step.problem_ids) == 3
            assert step.warnings == ()

    def test_success_criteria(self, plan):
        step = plan.step("exam_prep-1")
        assert step.success_criteria.min_accuracy == 0.9
        assert step.success_criteria.max_time_minutes == pytest.approx(36.0)

    def test_forecast(self, plan):
        assert plan.forecast.risk_factors == ["short_attention_span"]
        assert plan.forecast.success_probability == pytest.approx(0.57)

    def test_developmentally_early_risk(self, orchestrator):
        profile = make_profile(grade=Grade.FOURTH, tier=Tier.ELITE, attention_span_minutes=40)
        plan = orchestrator.build_plan(profile, "math", weeks=1)
        assert "developmentally_early" in plan.forecast.risk_factors

    def test_difficulty_recommended_per_step(self, profile, clock):
        class CountingController(DifficultyController):
            calls = 0

            def recommend(self, *args, **kwargs):
                CountingController.calls += 1
                return super().recommend(*args, **kwargs)

        controller = CountingController()
        selector = ProblemSelector(InMemoryProblemRepository.sample(), controller=controller, clock=clock)

        plan = PathOrchestrator(selector).build_plan(profile, "math", weeks=2)

        assert CountingController.calls == len(plan.steps) == 20
        selector.close()

    def test_invalid_weeks(self, orchestrator, profile):
        with pytest.raises(ValueError):
            orchestrator.build_plan(profile, "math", weeks=0)

    def test_missing_content_is_flagged(self, profile, clock):
        orchestrator = PathOrchestrator(ProblemSelector(EmptyRepository(), clock=clock))

        plan = orchestrator.build_plan(profile, "math", weeks=1)

        assert all(s.warnings == ("no_content",) for s in plan.steps)
        assert all(s.problem_ids == () for s in plan.steps)
        assert "missing_content" in plan.forecast.risk_factors
        orchestrator.selector.close()


class TestStepKind:

    @pytest.mark.parametrize(
        "progress,expected",
        [
            (0.0, StepKind.CONCEPT_INTRO),
            (0.5, StepKind.SKILL_PRACTICE),
            (0.8, StepKind.APPLICATION),
            (0.95, StepKind.ASSESSMENT),
        ],
    )
    def test_kind_by_progress(self, progress, expected):
        assert step_kind(progress) == expected


class TestValidatePlan:

    def test_duplicate_ids(self, plan):
        with pytest.raises(PlanValidationError, match="Duplicate"):
            validate_plan([plan.steps[0], plan.steps[0]])

    def test_forward_prerequisite(self, plan):
        steps = list(plan.steps)
        steps[1] = replace(steps[1], prerequisites=("exam_prep-1",))
        with pytest.raises(PlanValidationError, match="does not precede"):
            validate_plan(steps)


class TestReplan:
    """Replanning only touches steps still ahead of the learner."""

    def test_low_accuracy_eases_and_remediates(self, orchestrator, plan):
        orchestrator.complete_step(plan, "foundation-1", 0.5)
        orchestrator.complete_step(plan, "foundation-2", 0.4)
        completed = plan.steps[:2]

        result = orchestrator.replan(plan, [False, False, True])

        assert result.changed
        assert plan.steps[:2] == completed
        remediation = plan.steps[2]
        assert remediation.step_id == "remediation-1"
        assert remediation.kind == StepKind.REMEDIATION
        assert remediation.prerequisites == ("foundation-2",)
        assert plan.step("foundation-3").prerequisites == ("remediation-1",)
        assert plan.step("foundation-3").difficulty == 4.0
        validate_plan(plan.steps)

    def test_high_accuracy_accelerates(self, orchestrator, plan):
        before = plan.step("mastery-1").difficulty

        result = orchestrator.replan(plan, [True] * 6)

        assert plan.step("mastery-1").difficulty == before + 0.5
        assert plan.step("foundation-1").status == StepStatus.SKIPPED
        assert "skipped foundation-1" in result.modifications

    def test_on_track_changes_nothing(self, orchestrator, plan):
        result = orchestrator.replan(plan, [0.75, 0.8])
        assert not result.changed
        assert "on track" in result.reasoning

    def test_only_recent_window_counts(self, orchestrator, plan):
        result = orchestrator.replan(plan, [False] * 20 + [True] * 10)
        assert "above" in result.reasoning

    def test_empty_performance(self, orchestrator, plan):
        assert not orchestrator.replan(plan, []).changed

    def test_completing_twice_fails(self, orchestrator, plan):
        orchestrator.complete_step(plan, "foundation-1", 0.9)
        with pytest.raises(ValueError):
            orchestrator.complete_step(plan, "foundation-1", 0.9)
