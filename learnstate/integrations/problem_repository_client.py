"""
HTTP problem repository client.

Queries an external problem service for candidate problems:

    GET {base_url}/problems?grade=5th&tier=elite&subject=math
        &difficulty_min=8.0&difficulty_max=9.0&exclude=p1,p2

The response is either a JSON list of problem objects or an object with a
``problems`` list. Each problem carries ``id``, ``difficulty``, ``topic``,
``subtopic``, ``expected_time`` and ``required_skills``.

Transport failures are reported as RepositoryUnavailable; the Problem
Selector turns them into NoAvailableContent for the caller.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import Any

import httpx
from loguru import logger

from learnstate.adaptive.errors import RepositoryUnavailable
from learnstate.adaptive.models import Grade, ProblemDescriptor, Tier
from learnstate.adaptive.problem_selector import ProblemRepository


class HttpProblemRepository(ProblemRepository):
    """Problem repository backed by an HTTP API."""

    def __init__(
        self,
        base_url: str,
        timeout_ms: int = 3000,
        retry_attempts: int = 2,
        backoff_seconds: float = 0.1,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Base URL of the problem service
            timeout_ms: Request timeout in milliseconds
            retry_attempts: Attempts per query (timeouts and 5xx are retried)
            backoff_seconds: Initial backoff, doubled per retry
            transport: Optional transport override (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_ms / 1000.0
        self.retry_attempts = max(1, retry_attempts)
        self.backoff_seconds = backoff_seconds
        self.client = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout_seconds),
            follow_redirects=True,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings=None) -> HttpProblemRepository:
        if settings is None:
            from config import get_settings
            settings = get_settings()
        if not settings.problem_repository_url:
            raise ValueError("PROBLEM_REPOSITORY_URL is not configured")
        # Every attempt must fit inside the selector's overall query timeout
        attempts = settings.problem_repository_retry_attempts
        return cls(
            settings.problem_repository_url,
            timeout_ms=max(1, settings.problem_repository_timeout_ms // attempts),
            retry_attempts=attempts,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> HttpProblemRepository:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def query(
        self,
        grade: Grade,
        tier: Tier,
        subject: str,
        difficulty_min: float,
        difficulty_max: float,
        exclude_ids: Sequence[str],
    ) -> list[ProblemDescriptor]:
        params: dict[str, Any] = {
            "grade": grade.value,
            "tier": tier.value,
            "subject": subject,
            "difficulty_min": difficulty_min,
            "difficulty_max": difficulty_max,
        }
        if exclude_ids:
            params["exclude"] = ",".join(exclude_ids)

        data = self._get("/problems", params)
        items = data.get("problems", []) if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise RepositoryUnavailable(f"Unexpected problem payload: {type(items).__name__}")
        return self._parse(items)

    def _get(self, path: str, params: dict[str, Any]) -> Any:
        last_error: Exception | None = None

        for attempt in range(self.retry_attempts):
            try:
                response = self.client.get(path, params=params)
                response.raise_for_status()
                return response.json()

            except httpx.TimeoutException as e:
                last_error = e
                logger.warning(
                    f"Problem repository timeout on attempt {attempt + 1}/{self.retry_attempts}"
                )

            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code < 500:
                    # Don't retry on 4xx client errors
                    logger.error(f"Problem repository client error: {e.response.status_code}")
                    raise RepositoryUnavailable(
                        f"Problem repository rejected query: {e.response.status_code}"
                    ) from e
                logger.warning(
                    f"Problem repository server error {e.response.status_code} on attempt "
                    f"{attempt + 1}/{self.retry_attempts}"
                )

            except httpx.RequestError as e:
                last_error = e
                logger.warning(
                    f"Problem repository request error on attempt "
                    f"{attempt + 1}/{self.retry_attempts}: {e}"
                )

            except ValueError as e:
                raise RepositoryUnavailable(f"Problem repository returned invalid JSON: {e}") from e

            if attempt < self.retry_attempts - 1:
                time.sleep(self.backoff_seconds * 2 ** attempt)

        raise RepositoryUnavailable(
            f"Problem repository failed after {self.retry_attempts} attempts: {last_error}"
        ) from last_error

    def _parse(self, items: list[Any]) -> list[ProblemDescriptor]:
        problems = []
        for item in items:
            try:
                problems.append(ProblemDescriptor.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed problem record {item!r}: {e}")
        return problems

    def health_check(self) -> bool:
        """
        Check if the problem service is reachable.

        Returns:
            True if API is healthy, False otherwise
        """
        try:
            response = self.client.get("/health", timeout=2.0)
            return response.status_code == 200
        except httpx.HTTPError:
            return False
