"""
Adaptive Learning-State Engine.

Real-time analysis of learner interaction events with tier-aware difficulty.

Components:
- EventBuffer: Bounded ring of interaction events per session
- StateEstimator: Cognitive load, emotional and performance snapshots
- PatternRecognizer: Scores the error pattern catalog and trajectories
- ErrorPredictor: Ranked, expiring error predictions
- DifficultyController: Grade x tier bounded difficulty targets
- ProblemSelector: Ranks candidates from an external problem repository
- InterventionExecutor: Phase state machine emitting interventions
- PathOrchestrator: Multi-week plans with replanning
- LearningSessionEngine: Wires the above into a periodic analysis cycle
"""
from learnstate.adaptive.difficulty_controller import DifficultyController
from learnstate.adaptive.difficulty_matrix import DIFFICULTY_MATRIX, get_entry, validate_matrix
from learnstate.adaptive.error_patterns import ERROR_PATTERNS, PatternContext, get_pattern
from learnstate.adaptive.error_predictor import ErrorPredictor, PredictorConfig
from learnstate.adaptive.errors import (
    EngineError,
    InvalidGradeTierConfiguration,
    LowConfidencePrediction,
    MissingDataError,
    NoAvailableContent,
    PlanValidationError,
    RepositoryUnavailable,
    StaleSession,
)
from learnstate.adaptive.event_buffer import EventBuffer
from learnstate.adaptive.intervention_executor import ExecutorConfig, InterventionExecutor
from learnstate.adaptive.models import (
    CognitiveTraits,
    DifficultyRecommendation,
    ErrorPrediction,
    EventKind,
    EventPayload,
    Grade,
    Intervention,
    LearnerProfile,
    LearningEvent,
    LearningPathStep,
    LearningPlan,
    ProblemDescriptor,
    StateSnapshot,
    Tier,
    TimeConstraints,
)
from learnstate.adaptive.path_orchestrator import OrchestratorConfig, PathOrchestrator, ReplanResult
from learnstate.adaptive.pattern_recognizer import PatternMatch, PatternRecognizer
from learnstate.adaptive.problem_selector import (
    InMemoryProblemRepository,
    ProblemRepository,
    ProblemSelector,
)
from learnstate.adaptive.session_engine import CycleResult, LearningSessionEngine
from learnstate.adaptive.state_estimator import StateEstimator

__all__ = [
    # Main engine
    "LearningSessionEngine",
    "CycleResult",
    # Component classes
    "EventBuffer",
    "StateEstimator",
    "PatternRecognizer",
    "PatternMatch",
    "ErrorPredictor",
    "PredictorConfig",
    "DifficultyController",
    "ProblemSelector",
    "ProblemRepository",
    "InMemoryProblemRepository",
    "InterventionExecutor",
    "ExecutorConfig",
    "PathOrchestrator",
    "OrchestratorConfig",
    "ReplanResult",
    # Catalogs
    "DIFFICULTY_MATRIX",
    "ERROR_PATTERNS",
    "PatternContext",
    "get_entry",
    "get_pattern",
    "validate_matrix",
    # Data models
    "CognitiveTraits",
    "TimeConstraints",
    "LearnerProfile",
    "EventKind",
    "EventPayload",
    "LearningEvent",
    "StateSnapshot",
    "ErrorPrediction",
    "DifficultyRecommendation",
    "ProblemDescriptor",
    "Intervention",
    "LearningPathStep",
    "LearningPlan",
    "Grade",
    "Tier",
    # Errors
    "EngineError",
    "MissingDataError",
    "InvalidGradeTierConfiguration",
    "NoAvailableContent",
    "LowConfidencePrediction",
    "StaleSession",
    "RepositoryUnavailable",
    "PlanValidationError",
]
