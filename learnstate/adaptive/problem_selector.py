"""
Problem Selector.

Pure adapter over an external problem repository. Given (grade, tier,
subject, difficulty window, exclusions) it queries the repository and returns
candidates sorted by distance from the target difficulty, then by how long
ago each problem was last served (never-served first).

The selector owns no content. It never widens the window on its own: an
empty result raises NoAvailableContent and the caller decides what to do.
The repository call is the engine's only I/O boundary and runs with a timeout.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime

from loguru import logger

from learnstate.adaptive.difficulty_controller import DifficultyController
from learnstate.adaptive.difficulty_matrix import DIFFICULTY_MATRIX
from learnstate.adaptive.errors import NoAvailableContent, RepositoryUnavailable
from learnstate.adaptive.event_buffer import Clock, utc_now
from learnstate.adaptive.models import Grade, ProblemDescriptor, Tier

MAX_TRACKED_SERVED = 2000


# =============================================================================
# Repository Port
# =============================================================================


class ProblemRepository(ABC):
    """External source of problem metadata."""

    @abstractmethod
    def query(
        self,
        grade: Grade,
        tier: Tier,
        subject: str,
        difficulty_min: float,
        difficulty_max: float,
        exclude_ids: Sequence[str],
    ) -> list[ProblemDescriptor]:
        """
        Return problems for the subject within [difficulty_min, difficulty_max].

        Raises:
            RepositoryUnavailable: If the repository cannot answer
        """
        ...


class InMemoryProblemRepository(ProblemRepository):
    """Problem repository backed by an in-process mapping of subject -> problems."""

    def __init__(self, problems: Mapping[str, Iterable[ProblemDescriptor]] | None = None):
        self._problems: dict[str, list[ProblemDescriptor]] = {
            subject: list(items) for subject, items in (problems or {}).items()
        }

    def add(self, subject: str, problem: ProblemDescriptor) -> None:
        self._problems.setdefault(subject, []).append(problem)

    def query(
        self,
        grade: Grade,
        tier: Tier,
        subject: str,
        difficulty_min: float,
        difficulty_max: float,
        exclude_ids: Sequence[str],
    ) -> list[ProblemDescriptor]:
        excluded = set(exclude_ids)
        return [
            p for p in self._problems.get(subject, [])
            if difficulty_min <= p.difficulty <= difficulty_max and p.id not in excluded
        ]

    @classmethod
    def sample(cls, subject: str = "math") -> InMemoryProblemRepository:
        """
        Synthetic problem bank covering every allowed topic of the matrix
        at half-point difficulty steps. Used by the CLI and demos.
        """
        repository = cls()
        seen: set[str] = set()
        for entry in DIFFICULTY_MATRIX.values():
            for topic in entry.allowed_topics:
                steps = int((entry.max_difficulty - entry.min_difficulty) / 0.5) + 1
                for i in range(steps):
                    difficulty = entry.min_difficulty + i * 0.5
                    problem_id = f"{topic}-{difficulty:.1f}"
                    if problem_id in seen:
                        continue
                    seen.add(problem_id)
                    repository.add(subject, ProblemDescriptor(
                        id=problem_id,
                        difficulty=difficulty,
                        topic=topic,
                        expected_time_s=int(60 + difficulty * 30),
                        required_skills=(topic,),
                    ))
        return repository


# =============================================================================
# Selector
# =============================================================================


class ProblemSelector:
    """
    Query the repository and rank candidates for one session.

    Tracks when each problem was last served so unused problems come first.
    """

    def __init__(
        self,
        repository: ProblemRepository,
        controller: DifficultyController | None = None,
        timeout_seconds: float = 3.0,
        clock: Clock | None = None,
    ):
        self.repository = repository
        self.controller = controller or DifficultyController()
        self.timeout_seconds = timeout_seconds
        self._clock = clock or utc_now
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="problem-repo")
        self._served: OrderedDict[str, datetime] = OrderedDict()

    def close(self) -> None:
        """Release the repository worker thread."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def mark_served(self, problem_ids: Iterable[str]) -> None:
        """Record that problems were presented to the learner."""
        now = self._clock()
        for problem_id in problem_ids:
            self._served[problem_id] = now
            self._served.move_to_end(problem_id)
        while len(self._served) > MAX_TRACKED_SERVED:
            self._served.popitem(last=False)

    def last_served(self, problem_id: str) -> datetime | None:
        return self._served.get(problem_id)

    def select(
        self,
        grade: Grade,
        tier: Tier,
        subject: str,
        target: float,
        window: tuple[float, float],
        exclude_ids: Sequence[str] = (),
        limit: int | None = None,
        mark: bool = True,
    ) -> list[ProblemDescriptor]:
        """
        Return ranked candidates for the difficulty window.

        Returned ids are marked as served unless ``mark`` is False; callers
        that keep only a subset mark their choice with ``mark_served``.

        Args:
            grade: Learner grade
            tier: Target-school tier
            subject: Subject to query
            target: Target difficulty used for ranking
            window: (min, max) difficulty, passed to the repository unchanged
            exclude_ids: Problem ids the caller does not want
            limit: Maximum candidates to return (None = all)
            mark: Record the returned ids as served

        Raises:
            NoAvailableContent: On zero candidates, timeout or repository failure
        """
        low, high = window
        if low > high:
            raise ValueError(f"Invalid difficulty window: [{low}, {high}]")

        problems = self._query(grade, tier, subject, window, exclude_ids)

        excluded = set(exclude_ids)
        _, forbidden = self.controller.topics(grade, tier)
        candidates = [
            p for p in problems
            if p.id not in excluded
            and p.topic not in forbidden
            and low <= p.difficulty <= high
        ]
        if not candidates:
            logger.info(
                f"No candidates for {grade.value}/{tier.value}/{subject} in [{low:.1f}, {high:.1f}] "
                f"({len(problems)} returned before filtering)"
            )
            raise NoAvailableContent(grade.value, tier.value, subject, window)

        candidates.sort(key=lambda p: self._rank_key(p, target))
        if limit is not None:
            candidates = candidates[:limit]
        if mark:
            self.mark_served(p.id for p in candidates)
        logger.debug(
            f"Selected {len(candidates)} candidates for {subject} around {target:.1f}"
        )
        return candidates

    def _query(
        self,
        grade: Grade,
        tier: Tier,
        subject: str,
        window: tuple[float, float],
        exclude_ids: Sequence[str],
    ) -> list[ProblemDescriptor]:
        future = self._executor.submit(
            self.repository.query,
            grade,
            tier,
            subject,
            window[0],
            window[1],
            list(exclude_ids),
        )
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeout:
            future.cancel()
            logger.warning(
                f"Problem repository timed out after {self.timeout_seconds:.1f}s "
                f"({grade.value}/{tier.value}/{subject})"
            )
            raise NoAvailableContent(grade.value, tier.value, subject, window, reason="timeout") from None
        except RepositoryUnavailable as e:
            logger.warning(f"Problem repository unavailable: {e}")
            raise NoAvailableContent(
                grade.value, tier.value, subject, window, reason="repository_unavailable"
            ) from e

    def _rank_key(self, problem: ProblemDescriptor, target: float) -> tuple[float, int, float, str]:
        served = self._served.get(problem.id)
        return (
            abs(problem.difficulty - target),
            0 if served is None else 1,
            served.timestamp() if served else 0.0,
            problem.id,
        )
