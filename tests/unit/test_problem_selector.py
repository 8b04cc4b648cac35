"""
Unit tests for the ProblemSelector and in-memory repository.
"""

import threading
from datetime import timedelta

import pytest

from learnstate.adaptive.errors import NoAvailableContent, RepositoryUnavailable
from learnstate.adaptive.models import Grade, ProblemDescriptor, Tier
from learnstate.adaptive.problem_selector import (
    InMemoryProblemRepository,
    ProblemRepository,
    ProblemSelector,
)


def _problem(problem_id, difficulty, topic="applied_percentages"):
    return ProblemDescriptor(id=problem_id, difficulty=difficulty, topic=topic)


class EmptyRepository(ProblemRepository):
    def query(self, grade, tier, subject, difficulty_min, difficulty_max, exclude_ids):
        return []


class BrokenRepository(ProblemRepository):
    def query(self, grade, tier, subject, difficulty_min, difficulty_max, exclude_ids):
        raise RepositoryUnavailable("connection refused")


class BlockingRepository(ProblemRepository):
    def __init__(self):
        self.release = threading.Event()

    def query(self, grade, tier, subject, difficulty_min, difficulty_max, exclude_ids):
        self.release.wait(timeout=5)
        return []


@pytest.fixture
def repository():
    return InMemoryProblemRepository({
        "math": [
            _problem("far", 6.0),
            _problem("near-b", 5.5),
            _problem("exact", 5.0),
            _problem("near-a", 4.5),
            _problem("forbidden", 5.0, topic="top_level_geometry"),
        ],
    })


@pytest.fixture
def selector(repository, clock):
    selector = ProblemSelector(repository, clock=clock)
    yield selector
    selector.close()


class TestSelection:
    """Ordering and filtering of candidates."""

    def test_sorted_by_distance_then_id(self, selector):
        problems = selector.select(Grade.FIFTH, Tier.STANDARD, "math", 5.0, (4.0, 6.0))
        assert [p.id for p in problems] == ["exact", "near-a", "near-b", "far"]

    def test_forbidden_topics_removed(self, selector):
        problems = selector.select(Grade.FIFTH, Tier.STANDARD, "math", 5.0, (4.0, 6.0))
        assert "forbidden" not in {p.id for p in problems}

    def test_excluded_ids_and_limit(self, selector):
        problems = selector.select(
            Grade.FIFTH, Tier.STANDARD, "math", 5.0, (4.0, 6.0),
            exclude_ids=["exact"], limit=2,
        )
        assert [p.id for p in problems] == ["near-a", "near-b"]

    def test_window_is_respected(self, selector):
        problems = selector.select(Grade.FIFTH, Tier.STANDARD, "math", 5.0, (4.5, 5.0))
        assert {p.id for p in problems} == {"exact", "near-a"}

    def test_never_served_first(self, selector, clock):
        selector.mark_served(["near-a"])
        problems = selector.select(Grade.FIFTH, Tier.STANDARD, "math", 5.0, (4.0, 6.0))
        assert [p.id for p in problems][1:3] == ["near-b", "near-a"]

    def test_least_recently_served_first(self, selector, clock):
        selector.mark_served(["near-b"])
        clock.advance(60)
        selector.mark_served(["near-a"])
        assert selector.last_served("near-a") - selector.last_served("near-b") == timedelta(seconds=60)

        problems = selector.select(Grade.FIFTH, Tier.STANDARD, "math", 5.0, (4.0, 6.0))

        assert [p.id for p in problems][1:3] == ["near-b", "near-a"]

    def test_returned_ids_marked_served(self, selector, clock):
        problems = selector.select(Grade.FIFTH, Tier.STANDARD, "math", 5.0, (4.0, 6.0), limit=2)

        assert [selector.last_served(p.id) for p in problems] == [clock(), clock()]
        assert selector.last_served("near-b") is None

    def test_mark_false_leaves_recency_alone(self, selector):
        selector.select(Grade.FIFTH, Tier.STANDARD, "math", 5.0, (4.0, 6.0), mark=False)
        assert selector.last_served("exact") is None

    def test_repeated_selection_rotates_ties(self, selector):
        first = selector.select(Grade.FIFTH, Tier.STANDARD, "math", 5.0, (4.5, 5.5), limit=2)
        second = selector.select(Grade.FIFTH, Tier.STANDARD, "math", 5.0, (4.5, 5.5), limit=2)

        # exact stays first; the unserved 5.5 overtakes the served 4.5
        assert [p.id for p in first] == ["exact", "near-a"]
        assert [p.id for p in second] == ["exact", "near-b"]

    def test_inverted_window(self, selector):
        with pytest.raises(ValueError):
            selector.select(Grade.FIFTH, Tier.STANDARD, "math", 5.0, (6.0, 4.0))


class TestNoContent:
    """Every failure path surfaces as NoAvailableContent."""

    def test_empty_repository(self, clock):
        selector = ProblemSelector(EmptyRepository(), clock=clock)

        with pytest.raises(NoAvailableContent) as exc_info:
            selector.select(Grade.SIXTH, Tier.ELITE, "math", 9.5, (9.0, 10.0))

        assert exc_info.value.reason == "no_candidates"
        assert exc_info.value.window == (9.0, 10.0)
        selector.close()

    def test_unknown_subject(self, selector):
        with pytest.raises(NoAvailableContent):
            selector.select(Grade.FIFTH, Tier.STANDARD, "science", 5.0, (4.0, 6.0))

    def test_repository_unavailable(self, clock):
        selector = ProblemSelector(BrokenRepository(), clock=clock)

        with pytest.raises(NoAvailableContent) as exc_info:
            selector.select(Grade.FIFTH, Tier.STANDARD, "math", 5.0, (4.0, 6.0))

        assert exc_info.value.reason == "repository_unavailable"
        selector.close()

    def test_repository_timeout(self, clock):
        repository = BlockingRepository()
        selector = ProblemSelector(repository, timeout_seconds=0.05, clock=clock)

        with pytest.raises(NoAvailableContent) as exc_info:
            selector.select(Grade.FIFTH, Tier.STANDARD, "math", 5.0, (4.0, 6.0))

        assert exc_info.value.reason == "timeout"
        repository.release.set()
        selector.close()


class TestSampleRepository:

    def test_sample_covers_every_band(self):
        repository = InMemoryProblemRepository.sample()

        for low, high in ((2.0, 4.0), (4.0, 6.0), (6.0, 8.0), (8.0, 10.0)):
            found = repository.query(Grade.SIXTH, Tier.ELITE, "math", low, high, [])
            assert found
            assert all(low <= p.difficulty <= high for p in found)
