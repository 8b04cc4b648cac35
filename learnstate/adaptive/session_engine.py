"""
Learning Session Engine.

Wires the components of one learner session into a periodic analysis cycle:

    record(event) -> EventBuffer (+ immediate warnings)
    tick():
        1. StateEstimator        -> StateSnapshot
        2. PatternRecognizer     -> PatternMatch list
        3. ErrorPredictor        -> active ErrorPredictions
        4. DifficultyController  -> DifficultyRecommendation
        5. InterventionExecutor  -> Interventions
        6. Trajectory insights

Every collaborator is injected (there are no process-wide singletons), so
several sessions can run side by side. ``record`` and ``tick`` are serialized
with a per-session lock. ``start``/``stop`` drive ``tick`` from a cancellable
background timer; a tick that fires after ``stop`` is a logged no-op.
"""
from __future__ import annotations

import threading
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger

from learnstate.adaptive.difficulty_controller import DifficultyController
from learnstate.adaptive.error_patterns import PatternContext
from learnstate.adaptive.error_predictor import ErrorPredictor, PredictorConfig
from learnstate.adaptive.errors import StaleSession
from learnstate.adaptive.event_buffer import Clock, EventBuffer, utc_now
from learnstate.adaptive.intervention_executor import ExecutorConfig, InterventionExecutor
from learnstate.adaptive.models import (
    DifficultyRecommendation,
    ErrorPrediction,
    EventKind,
    Intervention,
    LearnerProfile,
    LearningEvent,
    ProblemDescriptor,
    SessionPhase,
    StateSnapshot,
    Tier,
    short_id,
)
from learnstate.adaptive.pattern_recognizer import PatternMatch, PatternRecognizer
from learnstate.adaptive.problem_selector import ProblemRepository, ProblemSelector
from learnstate.adaptive.state_estimator import ImmediateWarning, StateEstimator, mean
from learnstate.delivery.telemetry import (
    IMMEDIATE_WARNING,
    INSIGHT,
    PREDICTION,
    RECOMMENDATION,
    SESSION_START,
    SESSION_STOP,
    SNAPSHOT,
    STALE_TICK,
    LoguruTelemetrySink,
    TelemetrySink,
)

SELECTION_HALF_WIDTH = 0.5
OUTCOME_WINDOW = 10


@dataclass
class CycleResult:
    """Everything one analysis cycle produced."""
    snapshot: StateSnapshot
    matches: list[PatternMatch]
    predictions: list[ErrorPrediction]
    recommendation: DifficultyRecommendation
    interventions: list[Intervention] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "snapshot": self.snapshot.to_dict(),
            "matches": [m.to_dict() for m in self.matches],
            "predictions": [p.to_dict() for p in self.predictions],
            "recommendation": self.recommendation.to_dict(),
            "interventions": [i.to_dict() for i in self.interventions],
            "insights": list(self.insights),
        }


@dataclass
class ProblemRecommendation:
    """Difficulty target plus ranked candidate problems."""
    recommendation: DifficultyRecommendation
    problems: list[ProblemDescriptor]


class LearningSessionEngine:
    """
    Real-time analysis loop for one learner session.

    Example:
        engine = LearningSessionEngine(profile, selector=ProblemSelector(repo))
        engine.record(LearningEvent(kind=EventKind.SUBMIT, problem_id="p1", ...))
        result = engine.tick()
    """

    def __init__(
        self,
        profile: LearnerProfile,
        selector: ProblemSelector,
        buffer: EventBuffer | None = None,
        estimator: StateEstimator | None = None,
        recognizer: PatternRecognizer | None = None,
        predictor: ErrorPredictor | None = None,
        controller: DifficultyController | None = None,
        executor: InterventionExecutor | None = None,
        sink: TelemetrySink | None = None,
        clock: Clock | None = None,
        analysis_window_ms: int = 60000,
        history_size: int = 720,
        tick_interval_seconds: float = 5.0,
        session_id: str | None = None,
    ):
        self.profile = profile
        self.session_id = session_id or short_id()
        self.sink = sink or LoguruTelemetrySink()
        self._clock = clock or utc_now

        self.buffer = buffer or EventBuffer(clock=self._clock)
        self.estimator = estimator or StateEstimator()
        self.recognizer = recognizer or PatternRecognizer()
        self.predictor = predictor or ErrorPredictor()
        self.controller = controller or selector.controller
        self.selector = selector
        self.executor = executor or InterventionExecutor(sink=self.sink, session_id=self.session_id)

        self.analysis_window_ms = analysis_window_ms
        self.tick_interval_seconds = tick_interval_seconds

        self._lock = threading.RLock()
        self._history: deque[StateSnapshot] = deque(maxlen=history_size)
        self._outcomes: deque[bool] = deque(maxlen=OUTCOME_WINDOW)
        self._below_target_streak = 0
        self._started_at: datetime | None = None

        self._timer: threading.Timer | None = None
        self._generation = 0
        self._stopped = False

    @classmethod
    def from_settings(
        cls,
        profile: LearnerProfile,
        repository: ProblemRepository,
        settings=None,
        sink: TelemetrySink | None = None,
        clock: Clock | None = None,
    ) -> LearningSessionEngine:
        """Build a session with every tunable taken from Settings."""
        if settings is None:
            from config import get_settings
            settings = get_settings()

        session_id = short_id()
        sink = sink or LoguruTelemetrySink()
        controller = DifficultyController()
        return cls(
            profile=profile,
            selector=ProblemSelector(
                repository,
                controller=controller,
                timeout_seconds=settings.problem_repository_timeout_seconds,
                clock=clock,
            ),
            buffer=EventBuffer(settings.event_buffer_capacity, clock=clock),
            recognizer=PatternRecognizer(threshold=settings.pattern_match_threshold),
            predictor=ErrorPredictor(PredictorConfig.from_settings(settings)),
            controller=controller,
            executor=InterventionExecutor(
                ExecutorConfig.from_settings(settings), sink=sink, session_id=session_id
            ),
            sink=sink,
            clock=clock,
            analysis_window_ms=settings.analysis_window_ms,
            history_size=settings.snapshot_history_size,
            tick_interval_seconds=settings.tick_interval_seconds,
            session_id=session_id,
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def history(self) -> list[StateSnapshot]:
        with self._lock:
            return list(self._history)

    @property
    def last_snapshot(self) -> StateSnapshot | None:
        with self._lock:
            return self._history[-1] if self._history else None

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._stopped

    @property
    def phase(self) -> SessionPhase:
        return self.executor.phase

    @property
    def recent_accuracy(self) -> float:
        """Windowed accuracy over recent answers, or the profile's carried-in value."""
        with self._lock:
            if self._outcomes:
                return mean([1.0 if o else 0.0 for o in self._outcomes])
            return self.profile.recent_accuracy

    def _elapsed_seconds(self, now: datetime) -> float:
        """Session time since start(), or since the first event for manual ticks."""
        if self._started_at is None:
            self._started_at = now
        return (now - self._started_at).total_seconds()

    # =========================================================================
    # Event intake
    # =========================================================================

    def record(self, event: LearningEvent) -> list[ImmediateWarning]:
        """
        Record an event and return any warnings that cannot wait for a tick.
        """
        with self._lock:
            stamped = self.buffer.record(event)
            if self._started_at is None:
                self._started_at = stamped.timestamp
            warnings = self.estimator.immediate_warnings(
                stamped, self.buffer.recent(self.analysis_window_ms)
            )
            for warning in warnings:
                self.sink.emit(
                    IMMEDIATE_WARNING, warning.to_dict(), self.session_id, stamped.timestamp
                )

            if stamped.kind == EventKind.SUBMIT and stamped.payload.is_correct is not None:
                self._outcomes.append(stamped.payload.is_correct)
                self.predictor.observe_outcome(stamped.payload.is_correct)
            return warnings

    # =========================================================================
    # Step lifecycle
    # =========================================================================

    def begin_step(self, time_budget_minutes: float) -> None:
        with self._lock:
            self.executor.start_step(time_budget_minutes, self._clock())

    def complete_phase(self) -> SessionPhase:
        with self._lock:
            return self.executor.complete_phase(self._clock())

    # =========================================================================
    # Analysis cycle
    # =========================================================================

    def tick(self) -> CycleResult | None:
        """
        Run one analysis cycle.

        Returns:
            CycleResult, or None when the session was stopped
        """
        return self._tick(None)

    def _tick(self, generation: int | None) -> CycleResult | None:
        with self._lock:
            try:
                if self._stopped or (generation is not None and generation != self._generation):
                    raise StaleSession(f"Session {self.session_id} is stopped")
                return self._cycle()
            except StaleSession as e:
                logger.debug(f"Ignoring tick: {e}")
                self.sink.emit(STALE_TICK, {"reason": str(e)}, self.session_id, self._clock())
                return None

    def _cycle(self) -> CycleResult:
        now = self._clock()
        events = self.buffer.recent(self.analysis_window_ms)
        last = self._history[-1] if self._history else None

        snapshot = self.estimator.estimate(events, last)
        if snapshot.timestamp is None:
            snapshot = StateSnapshot.neutral(now)

        context = PatternContext(
            snapshot=snapshot,
            events=events,
            profile=self.profile,
            history=tuple(self._history),
            elapsed_seconds=self._elapsed_seconds(now),
        )
        matches = self.recognizer.recognize(context)
        predictions = self.predictor.update(context, matches, now)

        recommendation = self.controller.recommend(
            self.profile.grade,
            self.profile.target_tier,
            self.recent_accuracy,
            recent_time_on_task_s=context.elapsed_seconds,
        )
        if not snapshot.is_default:
            if recommendation.tier == Tier.ELITE and recommendation.below_target:
                self._below_target_streak += 1
            else:
                self._below_target_streak = 0

        self.executor.check_budget(now)
        interventions = self.executor.evaluate(predictions, now)
        interventions += self.executor.evaluate_state(
            snapshot, recommendation, self._below_target_streak, now
        )

        if snapshot is not last:
            self._history.append(snapshot)
        insights = self.recognizer.trajectory(self._history)

        self._emit_cycle(snapshot, predictions, recommendation, insights, now)
        return CycleResult(
            snapshot=snapshot,
            matches=matches,
            predictions=predictions,
            recommendation=recommendation,
            interventions=interventions,
            insights=insights,
            timestamp=now,
        )

    def _emit_cycle(
        self,
        snapshot: StateSnapshot,
        predictions: Sequence[ErrorPrediction],
        recommendation: DifficultyRecommendation,
        insights: Sequence[str],
        now: datetime,
    ) -> None:
        self.sink.emit(SNAPSHOT, snapshot.to_record(), self.session_id, snapshot.timestamp or now)
        for prediction in predictions:
            if prediction.created_at == now:
                self.sink.emit(PREDICTION, prediction.to_dict(), self.session_id, now)
        self.sink.emit(RECOMMENDATION, recommendation.to_dict(), self.session_id, now)
        for insight in insights:
            self.sink.emit(INSIGHT, {"kind": insight}, self.session_id, now)

    # =========================================================================
    # Periodic scheduling
    # =========================================================================

    def start(self, interval_seconds: float | None = None) -> None:
        """Start (or resume) the periodic analysis timer."""
        with self._lock:
            if self.running:
                return
            if interval_seconds is not None:
                self.tick_interval_seconds = interval_seconds
            self._stopped = False
            if self._started_at is None:
                self._started_at = self._clock()
            self._generation += 1
            self._schedule(self._generation)
            self.sink.emit(
                SESSION_START,
                {"learner_id": self.profile.learner_id, "interval_s": self.tick_interval_seconds},
                self.session_id,
                self._clock(),
            )
            logger.info(f"Session {self.session_id} started ({self.tick_interval_seconds}s ticks)")

    def stop(self) -> None:
        """Cancel the periodic timer. Buffered events are left untouched."""
        with self._lock:
            self._stopped = True
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self.sink.emit(
                SESSION_STOP, {"events": len(self.buffer)}, self.session_id, self._clock()
            )
            logger.info(f"Session {self.session_id} stopped")

    def close(self) -> None:
        self.stop()
        self.selector.close()

    def _schedule(self, generation: int) -> None:
        timer = threading.Timer(self.tick_interval_seconds, self._run, args=(generation,))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _run(self, generation: int) -> None:
        try:
            self._tick(generation)
        except Exception as e:
            logger.exception(f"Analysis cycle failed for session {self.session_id}: {e}")
        with self._lock:
            if not self._stopped and generation == self._generation:
                self._schedule(generation)

    # =========================================================================
    # Content
    # =========================================================================

    def next_problems(
        self,
        subject: str,
        exclude_ids: Sequence[str] = (),
        limit: int | None = None,
    ) -> ProblemRecommendation:
        """
        Current difficulty target and ranked candidates.

        Raises:
            NoAvailableContent: If the repository has nothing in the window
        """
        with self._lock:
            recommendation = self.controller.recommend(
                self.profile.grade, self.profile.target_tier, self.recent_accuracy
            )
            problems = self.selector.select(
                self.profile.grade,
                self.profile.target_tier,
                subject,
                recommendation.value,
                recommendation.window(SELECTION_HALF_WIDTH),
                exclude_ids=exclude_ids,
                limit=limit,
            )
            return ProblemRecommendation(recommendation, problems)
