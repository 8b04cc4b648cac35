"""
Grade x Tier Difficulty Matrix.

Static table of DifficultyMatrixEntry records, one for every (grade, tier)
pair, on a 1-10 scale. Tier bands are shared across grades:

    basic [2, 4]   standard [4, 6]   advanced [6, 8]   elite [8, 10]

The base difficulty rises with grade inside each band. Grade characteristics
add a cognitive-load ceiling that is tighter than the band for young grades.

Philosophy (fail fast):
- The engine must NOT start with a broken matrix
- No runtime fallback for a missing (grade, tier) pair
- ``validate_matrix()`` runs at import time
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from loguru import logger

from learnstate.adaptive.errors import InvalidGradeTierConfiguration
from learnstate.adaptive.models import DifficultyMatrixEntry, Grade, Tier

ELITE_FLOOR = 8.0
BASIC_CEILING = 4.0


@dataclass(frozen=True)
class GradeCharacteristics:
    """Developmental profile of a school grade."""
    grade: Grade
    max_cognitive_load: float       # Difficulty ceiling for this grade
    typical_study_hours: float      # Per study day
    developmental_stage: str


@dataclass(frozen=True)
class TierRequirements:
    """What a target-school tier expects."""
    tier: Tier
    min_difficulty: float
    max_difficulty: float
    target_accuracy: float          # Accuracy at which difficulty is "right"
    required_skills: tuple[str, ...]


GRADE_CHARACTERISTICS: Mapping[Grade, GradeCharacteristics] = MappingProxyType({
    Grade.FOURTH: GradeCharacteristics(
        grade=Grade.FOURTH,
        max_cognitive_load=8.0,
        typical_study_hours=1.5,
        developmental_stage="Concrete operations, forming basic concepts",
    ),
    Grade.FIFTH: GradeCharacteristics(
        grade=Grade.FIFTH,
        max_cognitive_load=9.0,
        typical_study_hours=2.5,
        developmental_stage="Abstract thinking emerging, applying concepts",
    ),
    Grade.SIXTH: GradeCharacteristics(
        grade=Grade.SIXTH,
        max_cognitive_load=10.0,
        typical_study_hours=3.5,
        developmental_stage="Logical reasoning, integrated understanding",
    ),
})

TIER_REQUIREMENTS: Mapping[Tier, TierRequirements] = MappingProxyType({
    Tier.BASIC: TierRequirements(
        tier=Tier.BASIC,
        min_difficulty=2.0,
        max_difficulty=4.0,
        target_accuracy=0.85,
        required_skills=("basic_calculation", "reading_comprehension", "basic_geometry"),
    ),
    Tier.STANDARD: TierRequirements(
        tier=Tier.STANDARD,
        min_difficulty=4.0,
        max_difficulty=6.0,
        target_accuracy=0.75,
        required_skills=("applied_calculation", "logical_thinking", "word_problems", "composite_figures"),
    ),
    Tier.ADVANCED: TierRequirements(
        tier=Tier.ADVANCED,
        min_difficulty=6.0,
        max_difficulty=8.0,
        target_accuracy=0.65,
        required_skills=("advanced_application", "creative_thinking", "complex_reasoning", "cross_domain"),
    ),
    Tier.ELITE: TierRequirements(
        tier=Tier.ELITE,
        min_difficulty=ELITE_FLOOR,
        max_difficulty=10.0,
        target_accuracy=0.55,
        required_skills=("top_level_reasoning", "original_solutions", "time_efficiency", "full_integration"),
    ),
})


def _entry(
    grade: Grade,
    tier: Tier,
    base: float,
    minutes: int,
    allowed: tuple[str, ...],
    forbidden: tuple[str, ...],
) -> DifficultyMatrixEntry:
    band = TIER_REQUIREMENTS[tier]
    return DifficultyMatrixEntry(
        grade=grade,
        tier=tier,
        base=base,
        min_difficulty=band.min_difficulty,
        max_difficulty=band.max_difficulty,
        time_allocation_minutes=minutes,
        allowed_topics=allowed,
        forbidden_topics=forbidden,
    )


_ENTRIES = (
    # --- 4th grade ------------------------------------------------------------
    _entry(Grade.FOURTH, Tier.BASIC, 2.0, 15,
           ("basic_calculation", "basic_geometry", "basic_word_problems", "time_and_length"),
           ("percentages", "ratios", "speed", "complex_figures")),
    _entry(Grade.FOURTH, Tier.STANDARD, 4.0, 20,
           ("calculation_strategies", "figure_properties", "simple_word_problems", "number_properties"),
           ("complex_percentages", "advanced_ratios", "solid_figures")),
    _entry(Grade.FOURTH, Tier.ADVANCED, 6.0, 25,
           ("advanced_calculation", "applied_geometry", "logic_puzzles", "number_patterns"),
           ("advanced_speed", "complex_combinatorics")),
    _entry(Grade.FOURTH, Tier.ELITE, 8.0, 30,
           ("calculation_techniques", "discovery_geometry", "creative_problem_solving"),
           ("top_tier_composite_problems",)),
    # --- 5th grade ------------------------------------------------------------
    _entry(Grade.FIFTH, Tier.BASIC, 3.0, 20,
           ("fractions_decimals", "basic_percentages", "figure_area", "basic_speed"),
           ("complex_ratios", "advanced_geometry", "combinatorics")),
    _entry(Grade.FIFTH, Tier.STANDARD, 5.0, 25,
           ("applied_percentages", "basic_ratios", "applied_geometry", "applied_speed"),
           ("top_level_geometry", "complex_combinatorics")),
    _entry(Grade.FIFTH, Tier.ADVANCED, 7.0, 30,
           ("ratio_percentage_integration", "geometry_extension", "applied_speed", "number_properties"),
           ("top_tier_integrated_problems",)),
    _entry(Grade.FIFTH, Tier.ELITE, 8.5, 35,
           ("advanced_ratios", "complex_figures", "speed_extension", "logical_reasoning"),
           ("sixth_grade_top_tier_problems",)),
    # --- 6th grade ------------------------------------------------------------
    _entry(Grade.SIXTH, Tier.BASIC, 4.0, 25,
           ("comprehensive_calculation", "geometry_review", "applied_word_problems"),
           ("hardest_problems",)),
    _entry(Grade.SIXTH, Tier.STANDARD, 6.0, 30,
           ("standard_exam_problems", "composite_word_problems", "applied_geometry"),
           ("top_tier_problems",)),
    _entry(Grade.SIXTH, Tier.ADVANCED, 8.0, 35,
           ("upper_exam_problems", "complex_figures", "advanced_word_problems", "combinatorics"),
           ("special_top_school_problems",)),
    _entry(Grade.SIXTH, Tier.ELITE, 9.0, 45,
           ("top_tier_exam_problems", "creative_solutions", "cross_domain_integration", "timed_problems"),
           ()),
)

DIFFICULTY_MATRIX: Mapping[tuple[Grade, Tier], DifficultyMatrixEntry] = MappingProxyType(
    {(e.grade, e.tier): e for e in _ENTRIES}
)


def validate_matrix(
    matrix: Mapping[tuple[Grade, Tier], DifficultyMatrixEntry] = DIFFICULTY_MATRIX,
    grades: Mapping[Grade, GradeCharacteristics] = GRADE_CHARACTERISTICS,
) -> None:
    """
    Check that the matrix is complete and every entry respects its bounds.

    Raises:
        InvalidGradeTierConfiguration: On the first set of violations found
    """
    problems = []
    for grade in Grade:
        if grade not in grades:
            problems.append(f"missing grade characteristics for {grade.value}")
        for tier in Tier:
            entry = matrix.get((grade, tier))
            if entry is None:
                problems.append(f"missing entry {grade.value} x {tier.value}")
                continue
            label = f"{grade.value} x {tier.value}"
            if not entry.min_difficulty <= entry.base <= entry.max_difficulty:
                problems.append(
                    f"{label}: base {entry.base} outside [{entry.min_difficulty}, {entry.max_difficulty}]"
                )
            if tier == Tier.ELITE and entry.min_difficulty < ELITE_FLOOR:
                problems.append(f"{label}: elite min {entry.min_difficulty} < {ELITE_FLOOR}")
            if tier == Tier.BASIC and entry.max_difficulty > BASIC_CEILING:
                problems.append(f"{label}: basic max {entry.max_difficulty} > {BASIC_CEILING}")
            if entry.time_allocation_minutes <= 0:
                problems.append(f"{label}: non-positive time allocation")
            if set(entry.allowed_topics) & set(entry.forbidden_topics):
                problems.append(f"{label}: topic both allowed and forbidden")
            characteristics = grades.get(grade)
            if characteristics and characteristics.max_cognitive_load < entry.min_difficulty:
                problems.append(
                    f"{label}: grade ceiling {characteristics.max_cognitive_load} "
                    f"below entry min {entry.min_difficulty}"
                )

    if problems:
        for problem in problems:
            logger.error(f"DIFFICULTY MATRIX: {problem}")
        raise InvalidGradeTierConfiguration(
            f"Difficulty matrix is invalid: {problems}"
        )


def get_entry(grade: Grade, tier: Tier) -> DifficultyMatrixEntry:
    """Matrix lookup. Every pair exists once the module has imported."""
    return DIFFICULTY_MATRIX[(grade, tier)]


validate_matrix()
