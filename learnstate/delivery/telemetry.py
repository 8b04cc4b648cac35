"""
Session Telemetry Sinks.

The engine never prints: every observable event (snapshots, predictions,
interventions, warnings, lifecycle changes) goes through a TelemetrySink.

Sinks:
- LoguruTelemetrySink: structured loguru records (default)
- MemoryTelemetrySink: bounded in-memory list, for hosts and tests
- JSONTelemetryRecorder (json_telemetry.py): flat JSONL files for replay
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from loguru import logger

# =============================================================================
# Event Types
# =============================================================================

SESSION_START = "session_start"
SESSION_STOP = "session_stop"
SNAPSHOT = "snapshot"
PREDICTION = "prediction"
INTERVENTION = "intervention"
IMMEDIATE_WARNING = "immediate_warning"
RECOMMENDATION = "recommendation"
INSIGHT = "insight"
PHASE_CHANGE = "phase_change"
STALE_TICK = "stale_tick"

# Event types logged above DEBUG by the loguru sink
_LEVELS = {
    INTERVENTION: "INFO",
    IMMEDIATE_WARNING: "WARNING",
    SESSION_START: "INFO",
    SESSION_STOP: "INFO",
    STALE_TICK: "DEBUG",
}


@dataclass
class TelemetryRecord:
    """One emitted telemetry event."""

    event_type: str
    payload: dict[str, Any]
    session_id: str | None = None
    timestamp: datetime | None = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc)

    def to_flat_dict(self) -> dict[str, Any]:
        """Flat, timestamp-keyed representation."""
        record = {
            "timestamp": self.timestamp.isoformat(),
            "session_id": self.session_id,
            "event_type": self.event_type,
        }
        for key, value in self.payload.items():
            if key not in record:
                record[key] = value
        return record


# =============================================================================
# Sink Port
# =============================================================================


class TelemetrySink(ABC):
    """Destination for engine telemetry."""

    @abstractmethod
    def emit(
        self,
        event_type: str,
        payload: dict[str, Any],
        session_id: str | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        """
        Record a single event.

        ``timestamp`` is the engine-clock time of the event; sinks fall back
        to the wall clock when it is omitted.
        """
        ...

    def close(self) -> None:
        """Flush and release resources."""
        return None


class LoguruTelemetrySink(TelemetrySink):
    """Route telemetry to loguru with the event bound as structured extra data."""

    def emit(
        self,
        event_type: str,
        payload: dict[str, Any],
        session_id: str | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        level = _LEVELS.get(event_type, "DEBUG")
        bound = logger.bind(
            session_id=session_id,
            event_type=event_type,
            event_time=timestamp.isoformat() if timestamp else None,
            payload=payload,
        )
        summary = payload.get("message") or payload.get("kind") or ""
        bound.log(level, f"[{session_id or '-'}] {event_type} {summary}".rstrip())


class MemoryTelemetrySink(TelemetrySink):
    """Keep the most recent records in memory."""

    def __init__(self, max_records: int = 1000):
        self._records: deque[TelemetryRecord] = deque(maxlen=max_records)

    def emit(
        self,
        event_type: str,
        payload: dict[str, Any],
        session_id: str | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        self._records.append(TelemetryRecord(event_type, dict(payload), session_id, timestamp))

    @property
    def records(self) -> list[TelemetryRecord]:
        return list(self._records)

    def of_type(self, event_type: str) -> list[TelemetryRecord]:
        return [r for r in self._records if r.event_type == event_type]


class FanOutTelemetrySink(TelemetrySink):
    """Send every event to several sinks."""

    def __init__(self, *sinks: TelemetrySink):
        self.sinks = list(sinks)

    def emit(
        self,
        event_type: str,
        payload: dict[str, Any],
        session_id: str | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        for sink in self.sinks:
            sink.emit(event_type, payload, session_id, timestamp)

    def close(self) -> None:
        for sink in self.sinks:
            sink.close()
