"""
Engine exception taxonomy.

- MissingDataError: empty event slice; recovered by reusing the last snapshot
- InvalidGradeTierConfiguration: broken static difficulty matrix; fatal at import
- NoAvailableContent: repository returned nothing usable; surfaced to the caller
- LowConfidencePrediction: prediction too uncertain to drive an intervention
- StaleSession: tick after cancellation; handled inside the engine
- RepositoryUnavailable: problem repository failed; converted to NoAvailableContent
- PlanValidationError: plan prerequisites reference a missing or later step
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from learnstate.adaptive.models import ErrorPrediction


class EngineError(Exception):
    """Base class for learnstate engine errors."""
    pass


class MissingDataError(EngineError):
    """Raised when the analysed event slice is empty."""
    pass


class InvalidGradeTierConfiguration(EngineError):
    """Raised when the difficulty matrix is incomplete or violates its bounds."""
    pass


class NoAvailableContent(EngineError):
    """Raised when no candidate problem matches the requested window."""

    def __init__(
        self,
        grade: str,
        tier: str,
        subject: str,
        window: tuple[float, float],
        reason: str = "no_candidates",
    ):
        self.grade = grade
        self.tier = tier
        self.subject = subject
        self.window = window
        self.reason = reason
        super().__init__(
            f"No content for {grade}/{tier}/{subject} in difficulty "
            f"[{window[0]:.1f}, {window[1]:.1f}] ({reason})"
        )


class LowConfidencePrediction(EngineError):
    """Raised when a prediction is below the usability confidence threshold."""

    def __init__(self, prediction: ErrorPrediction, threshold: float):
        self.prediction = prediction
        self.threshold = threshold
        super().__init__(
            f"Prediction {prediction.pattern_id} confidence "
            f"{prediction.confidence:.2f} < {threshold:.2f}"
        )


class StaleSession(EngineError):
    """Raised internally when a tick fires after the session was stopped."""
    pass


class RepositoryUnavailable(EngineError):
    """Raised by a problem repository that could not answer a query."""
    pass


class PlanValidationError(EngineError):
    """Raised when a learning plan's prerequisites do not form an ordered DAG."""
    pass
