"""
Unit tests for the tier-aware DifficultyController.
"""

import pytest

from learnstate.adaptive.difficulty_controller import NOT_RECOMMENDED, DifficultyController
from learnstate.adaptive.difficulty_matrix import ELITE_FLOOR, get_entry
from learnstate.adaptive.models import Grade, Tier


@pytest.fixture
def controller():
    return DifficultyController()


class TestRecommend:
    """Target difficulty for known pairings."""

    def test_sixth_elite_high_accuracy(self, controller):
        rec = controller.recommend(Grade.SIXTH, Tier.ELITE, recent_accuracy=0.9)

        assert rec.value == 9.5
        assert (rec.min_difficulty, rec.max_difficulty) == (8.0, 10.0)
        assert rec.advisory is None
        assert "+0.5" in rec.reasoning

    def test_fourth_elite_is_capped_and_flagged(self, controller):
        rec = controller.recommend(Grade.FOURTH, Tier.ELITE, recent_accuracy=0.9)

        assert rec.value == 8.0
        assert rec.advisory == NOT_RECOMMENDED
        assert "cognitive-load ceiling" in rec.reasoning

    def test_on_target_accuracy_keeps_base(self, controller):
        rec = controller.recommend(Grade.FIFTH, Tier.STANDARD, recent_accuracy=0.75)
        assert rec.value == 5.0
        assert not rec.below_target

    def test_low_accuracy_steps_down(self, controller):
        rec = controller.recommend(Grade.FIFTH, Tier.STANDARD, recent_accuracy=0.4)
        assert rec.value == 4.5
        assert rec.below_target

    def test_basic_floor_clamps(self, controller):
        rec = controller.recommend(Grade.FOURTH, Tier.BASIC, recent_accuracy=0.1)
        assert rec.value == 2.0
        assert "clamped" in rec.reasoning

    def test_elite_never_lowered(self, controller):
        rec = controller.recommend(Grade.FIFTH, Tier.ELITE, recent_accuracy=0.1)

        assert rec.value == 8.5
        assert rec.below_target
        assert "re-evaluation" in rec.reasoning

    def test_slow_pace_warning(self, controller):
        rec = controller.recommend(
            Grade.FIFTH, Tier.STANDARD, recent_accuracy=0.75, recent_time_on_task_s=2400,
        )
        assert "pace_slow" in rec.warnings

    def test_normal_pace_has_no_warning(self, controller):
        rec = controller.recommend(
            Grade.FIFTH, Tier.STANDARD, recent_accuracy=0.75, recent_time_on_task_s=600,
        )
        assert rec.warnings == []

    def test_window_stays_in_band(self, controller):
        rec = controller.recommend(Grade.SIXTH, Tier.ELITE, recent_accuracy=0.9)
        assert rec.window(0.5) == (9.0, 10.0)
        assert rec.window(2.0) == (8.0, 10.0)


class TestBounds:
    """Every recommendation stays within its pairing's bounds."""

    @pytest.mark.parametrize("grade", list(Grade))
    @pytest.mark.parametrize("tier", list(Tier))
    @pytest.mark.parametrize("accuracy", [0.0, 0.3, 0.55, 0.75, 0.9, 1.0])
    def test_within_entry_bounds(self, controller, grade, tier, accuracy):
        entry = get_entry(grade, tier)
        rec = controller.recommend(grade, tier, recent_accuracy=accuracy)

        assert entry.min_difficulty <= rec.value <= entry.max_difficulty
        assert rec.value <= max(entry.min_difficulty, controller.ceiling(grade, entry))
        if tier == Tier.ELITE:
            assert rec.value >= ELITE_FLOOR


class TestRealtimeAdjustment:

    def test_fast_accurate_answer_steps_up(self, controller):
        assert controller.adjust_realtime(
            Grade.FIFTH, Tier.STANDARD, 5.0, response_time_s=20, accuracy=0.9,
        ) == 5.5

    def test_frustrated_slow_answer_steps_down_twice(self, controller):
        assert controller.adjust_realtime(
            Grade.FIFTH, Tier.STANDARD, 5.0, response_time_s=400, accuracy=0.6, frustration=0.8,
        ) == 4.0

    def test_elite_floor_holds(self, controller):
        assert controller.adjust_realtime(
            Grade.SIXTH, Tier.ELITE, 8.0, response_time_s=400, accuracy=0.2,
        ) == 8.0


class TestFit:

    def test_fourth_elite_not_appropriate(self, controller):
        fit = controller.check_fit(Grade.FOURTH, Tier.ELITE)
        assert not fit.appropriate
        assert fit.recommendations

    def test_sixth_any_tier_appropriate(self, controller):
        assert all(controller.check_fit(Grade.SIXTH, tier).appropriate for tier in Tier)

    def test_is_appropriate(self, controller):
        assert controller.is_appropriate(Grade.FIFTH, Tier.STANDARD, 5.5)
        assert not controller.is_appropriate(Grade.FIFTH, Tier.STANDARD, 6.5)
