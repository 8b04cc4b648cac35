"""
Bounded, time-ordered store of interaction events for one learner session.

The buffer is a ring: once ``capacity`` events are held, recording a new one
evicts the oldest. Events are never mutated or removed any other way.
"""
from __future__ import annotations

import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Callable

from loguru import logger

from learnstate.adaptive.models import LearningEvent

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventBuffer:
    """
    Ring buffer of LearningEvents.

    ``record`` and ``recent`` are serialized with a per-buffer lock so the host
    application may push events while an analysis tick is reading them.
    """

    def __init__(self, capacity: int = 1000, clock: Clock | None = None):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._events: deque[LearningEvent] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._clock = clock or utc_now
        self._evicted = 0

    @property
    def capacity(self) -> int:
        return self._events.maxlen or 0

    @property
    def evicted(self) -> int:
        """Total events dropped by ring eviction."""
        return self._evicted

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def now(self) -> datetime:
        return self._clock()

    def record(self, event: LearningEvent) -> LearningEvent:
        """
        Append an event stamped with the current time.

        Returns:
            The stamped (immutable) event that was stored
        """
        stamped = event.stamped(self._clock())
        with self._lock:
            if len(self._events) == self._events.maxlen:
                self._evicted += 1
            self._events.append(stamped)
        return stamped

    def recent(self, window_ms: int) -> list[LearningEvent]:
        """Events recorded within the last ``window_ms`` milliseconds, oldest first."""
        cutoff = self._clock() - timedelta(milliseconds=window_ms)
        with self._lock:
            events = [e for e in self._events if e.timestamp is not None and e.timestamp >= cutoff]
        logger.debug(f"EventBuffer.recent({window_ms}ms) -> {len(events)} events")
        return events

    def snapshot(self) -> list[LearningEvent]:
        """All buffered events, oldest first."""
        with self._lock:
            return list(self._events)
