"""
Tier-Aware Difficulty Controller.

Maps (grade, target tier, recent accuracy) to a bounded target difficulty:

1. Look up the matrix entry for (grade, tier)
2. Start from its base difficulty
3. Nudge +0.5 when accuracy is well above the tier target, -0.5 when well
   below (never for elite: the elite floor is absolute, and persistent low
   performance is reported through ``below_target`` instead)
4. Clamp into the entry's [min, max]
5. Clamp by the grade's cognitive-load ceiling (never below the entry min)

The controller is stateless and safe to share between sessions.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from learnstate.adaptive.difficulty_matrix import (
    GRADE_CHARACTERISTICS,
    TIER_REQUIREMENTS,
    get_entry,
)
from learnstate.adaptive.models import (
    DifficultyMatrixEntry,
    DifficultyRecommendation,
    Grade,
    Tier,
)

NOT_RECOMMENDED = "not_recommended"

ADJUSTMENT = {
    "step": 0.5,                 # Difficulty change per adjustment
    "accuracy_margin": 0.15,     # Distance from target accuracy that triggers a change
    "slow_pace_factor": 1.5,     # Time-on-task beyond 1.5x allocation = slow pace
}

# Real-time adjustment thresholds (per answered item)
REALTIME = {
    "fast_response_s": 30,
    "slow_response_s": 300,
    "high_accuracy": 0.8,
    "low_accuracy": 0.5,
    "high_frustration": 0.7,
}


@dataclass
class FitCheck:
    """Whether a grade/tier pairing is developmentally appropriate."""
    grade: Grade
    tier: Tier
    appropriate: bool
    reasoning: str
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "grade": self.grade.value,
            "tier": self.tier.value,
            "appropriate": self.appropriate,
            "reasoning": self.reasoning,
            "recommendations": list(self.recommendations),
        }


class DifficultyController:
    """Compute bounded, grade-and-tier-aware difficulty targets."""

    def target_accuracy(self, tier: Tier) -> float:
        return TIER_REQUIREMENTS[tier].target_accuracy

    def ceiling(self, grade: Grade, entry: DifficultyMatrixEntry) -> float:
        """Grade cognitive-load ceiling, never below the entry minimum."""
        return max(entry.min_difficulty, GRADE_CHARACTERISTICS[grade].max_cognitive_load)

    def clamp(self, grade: Grade, tier: Tier, value: float) -> float:
        """Clamp any difficulty into the (grade, tier) bounds, rounded to one decimal."""
        entry = get_entry(grade, tier)
        bounded = min(entry.clamp(value), self.ceiling(grade, entry))
        return round(bounded, 1)

    def recommend(
        self,
        grade: Grade,
        tier: Tier,
        recent_accuracy: float,
        recent_time_on_task_s: float | None = None,
    ) -> DifficultyRecommendation:
        """
        Compute the target difficulty for the next item.

        Args:
            grade: Learner grade
            tier: Target-school tier
            recent_accuracy: Windowed accuracy (0-1)
            recent_time_on_task_s: Time spent on recent work, if known

        Returns:
            DifficultyRecommendation, with ``advisory="not_recommended"`` for
            developmentally inappropriate pairings
        """
        entry = get_entry(grade, tier)
        target = self.target_accuracy(tier)
        step = ADJUSTMENT["step"]
        margin = ADJUSTMENT["accuracy_margin"]
        reasons = [f"base {entry.base:.1f} for {grade.value} x {tier.value}"]
        warnings: list[str] = []

        value = entry.base
        below_target = recent_accuracy < target - margin
        if recent_accuracy > target + margin:
            value += step
            reasons.append(f"accuracy {recent_accuracy:.0%} above target {target:.0%}: +{step}")
        elif below_target:
            if tier == Tier.ELITE:
                reasons.append(
                    f"accuracy {recent_accuracy:.0%} below target {target:.0%}: "
                    f"held at elite floor, tier re-evaluation advised if persistent"
                )
            else:
                value -= step
                reasons.append(f"accuracy {recent_accuracy:.0%} below target {target:.0%}: -{step}")

        bounded = entry.clamp(value)
        if bounded != value:
            reasons.append(f"clamped to tier band [{entry.min_difficulty}, {entry.max_difficulty}]")

        ceiling = self.ceiling(grade, entry)
        if bounded > ceiling:
            bounded = ceiling
            reasons.append(f"capped at {grade.value} cognitive-load ceiling {ceiling}")

        advisory = None
        if grade == Grade.FOURTH and tier == Tier.ELITE:
            advisory = NOT_RECOMMENDED
            warnings.append("4th grade elite preparation is developmentally early")

        if recent_time_on_task_s is not None:
            allocation_s = entry.time_allocation_minutes * 60
            if recent_time_on_task_s > allocation_s * ADJUSTMENT["slow_pace_factor"]:
                warnings.append("pace_slow")

        recommendation = DifficultyRecommendation(
            grade=grade,
            tier=tier,
            value=round(bounded, 1),
            min_difficulty=entry.min_difficulty,
            max_difficulty=entry.max_difficulty,
            reasoning="; ".join(reasons),
            time_allocation_minutes=entry.time_allocation_minutes,
            target_accuracy=target,
            advisory=advisory,
            below_target=below_target,
            warnings=warnings,
        )
        logger.debug(
            f"Difficulty {grade.value}x{tier.value}: {recommendation.value} "
            f"(accuracy={recent_accuracy:.2f}, advisory={advisory})"
        )
        return recommendation

    def adjust_realtime(
        self,
        grade: Grade,
        tier: Tier,
        current: float,
        response_time_s: float,
        accuracy: float,
        frustration: float = 0.0,
    ) -> float:
        """
        Adjust difficulty after a single answered item.

        Fast, accurate answers push difficulty up; slow or inaccurate answers
        and high frustration pull it down. The result stays in the
        (grade, tier) bounds, so elite never drops below its floor.
        """
        value = current
        if response_time_s < REALTIME["fast_response_s"] and accuracy > REALTIME["high_accuracy"]:
            value += ADJUSTMENT["step"]
        elif response_time_s > REALTIME["slow_response_s"] or accuracy < REALTIME["low_accuracy"]:
            value -= ADJUSTMENT["step"]
        if frustration > REALTIME["high_frustration"]:
            value -= ADJUSTMENT["step"]
        return self.clamp(grade, tier, value)

    def is_appropriate(self, grade: Grade, tier: Tier, difficulty: float) -> bool:
        """Whether a problem difficulty falls inside the (grade, tier) bounds."""
        entry = get_entry(grade, tier)
        return entry.min_difficulty <= difficulty <= min(entry.max_difficulty, self.ceiling(grade, entry))

    def topics(self, grade: Grade, tier: Tier) -> tuple[tuple[str, ...], tuple[str, ...]]:
        """(allowed, forbidden) topic tags for the pairing."""
        entry = get_entry(grade, tier)
        return entry.allowed_topics, entry.forbidden_topics

    def check_fit(self, grade: Grade, tier: Tier) -> FitCheck:
        """Developmental appropriateness of a grade/tier pairing."""
        if grade == Grade.FOURTH:
            if tier == Tier.ELITE:
                return FitCheck(
                    grade=grade,
                    tier=tier,
                    appropriate=False,
                    reasoning="Elite preparation in 4th grade is likely too early developmentally",
                    recommendations=[
                        "Start with foundation-focused study",
                        "Consider full elite preparation from 5th grade",
                    ],
                )
            if tier == Tier.ADVANCED:
                return FitCheck(
                    grade=grade,
                    tier=tier,
                    appropriate=True,
                    reasoning="Advanced targets are possible in 4th grade within reason",
                    recommendations=["Build fundamentals first, then step up gradually"],
                )
            return FitCheck(grade, tier, True, "Appropriate level for 4th grade")

        if grade == Grade.FIFTH:
            if tier == Tier.ELITE:
                return FitCheck(
                    grade=grade,
                    tier=tier,
                    appropriate=True,
                    reasoning="Elite targets suit 5th grade with a staged approach",
                    recommendations=[
                        "Confirm fundamentals before moving to applied problems",
                        "Build up steadily without overloading",
                    ],
                )
            return FitCheck(grade, tier, True, "Appropriate level for 5th grade")

        recommendations = []
        if tier == Tier.ELITE:
            recommendations = ["Prioritize time-efficient study", "Target weak areas intensively"]
        return FitCheck(
            grade=grade,
            tier=tier,
            appropriate=True,
            reasoning="6th grade can prepare seriously at any tier",
            recommendations=recommendations,
        )
