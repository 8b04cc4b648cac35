"""
JSON Telemetry Recorder for replay and offline analysis.

Writes engine telemetry as flat JSONL, one timestamp-keyed record per line,
so a session's snapshots, predictions and interventions can be replayed or
loaded straight into a dataframe.

File Structure:
    ~/.learnstate/telemetry/
        sessions/
            2026-10-19_session_abc123.jsonl  # One record per line
        summaries/
            2026-10-19_daily.json            # Daily aggregations

Record layout:
    {"timestamp": ..., "session_id": ..., "event_type": ..., **payload}
"""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Iterable, Iterator
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from learnstate.delivery.telemetry import (
    INTERVENTION,
    PREDICTION,
    SNAPSHOT,
    TelemetryRecord,
    TelemetrySink,
)


@dataclass
class ReplaySummary:
    """Aggregate view of a recorded session file."""

    path: str
    records: int = 0
    sessions: list[str] = field(default_factory=list)
    first_timestamp: str | None = None
    last_timestamp: str | None = None
    event_counts: dict[str, int] = field(default_factory=dict)
    intervention_kinds: dict[str, int] = field(default_factory=dict)
    prediction_patterns: dict[str, int] = field(default_factory=dict)
    mean_fatigue: float | None = None
    mean_accuracy: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


# =============================================================================
# Recorder
# =============================================================================


class JSONTelemetryRecorder(TelemetrySink):
    """
    Telemetry sink writing flat JSONL session files.

    Each session id gets its own file. Files rotate past a size limit, and a
    daily summary is updated when the recorder is closed.
    """

    def __init__(
        self,
        log_dir: Path | None = None,
        rotation_size_mb: int = 10,
    ):
        """
        Initialize the recorder.

        Args:
            log_dir: Directory for telemetry files (default: ~/.learnstate/telemetry)
            rotation_size_mb: Max file size before rotation (default: 10MB)
        """
        self.log_dir = log_dir or (Path.home() / ".learnstate" / "telemetry")
        self.sessions_dir = self.log_dir / "sessions"
        self.summaries_dir = self.log_dir / "summaries"
        self.rotation_size_bytes = rotation_size_mb * 1024 * 1024

        self._files: dict[str, Path] = {}
        self._counts: dict[str, Counter] = {}
        self._started = datetime.now(timezone.utc)

        self._ensure_directories()

    @classmethod
    def from_settings(cls, settings=None) -> JSONTelemetryRecorder:
        if settings is None:
            from config import get_settings
            settings = get_settings()
        return cls(log_dir=settings.get_telemetry_dir())

    def _ensure_directories(self) -> None:
        """Create telemetry directories if they don't exist."""
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.summaries_dir.mkdir(parents=True, exist_ok=True)

    def session_file(self, session_id: str | None) -> Path:
        """File for a session, created on first use."""
        key = session_id or "default"
        path = self._files.get(key)
        if path is None:
            date_str = datetime.now(timezone.utc).strftime("%Y-%m-%d")
            path = self.sessions_dir / f"{date_str}_session_{key}.jsonl"
            self._files[key] = path
            self._counts[key] = Counter()
            logger.debug(f"Telemetry session file: {path.name}")
        return path

    def emit(
        self,
        event_type: str,
        payload: dict[str, Any],
        session_id: str | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        record = TelemetryRecord(event_type, dict(payload), session_id, timestamp)
        path = self.session_file(session_id)
        try:
            with open(path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record.to_flat_dict(), default=str) + "\n")
            self._counts[session_id or "default"][event_type] += 1
            self._rotate_if_needed(path)
        except OSError as e:
            logger.error(f"Failed to write telemetry record: {e}")

    def record_many(self, records: Iterable[TelemetryRecord]) -> int:
        """Write pre-built records (e.g. drained from a MemoryTelemetrySink)."""
        written = 0
        for record in records:
            self.emit(record.event_type, record.payload, record.session_id, record.timestamp)
            written += 1
        return written

    def _rotate_if_needed(self, path: Path) -> None:
        """Rotate file if it exceeds size limit."""
        if not path.exists() or path.stat().st_size <= self.rotation_size_bytes:
            return
        timestamp = datetime.now(timezone.utc).strftime("%H%M%S")
        rotated = path.with_suffix(f".{timestamp}.jsonl")
        path.rename(rotated)
        path.touch()
        logger.debug(f"Rotated telemetry file: {rotated.name}")

    def close(self) -> None:
        """Fold this recorder's sessions into the daily summary."""
        if not self._counts:
            return
        self._update_daily_summary()
        self._counts = {key: Counter() for key in self._counts}

    def _update_daily_summary(self) -> None:
        date_str = self._started.strftime("%Y-%m-%d")
        summary_file = self.summaries_dir / f"{date_str}_daily.json"

        daily: dict[str, Any]
        if summary_file.exists():
            try:
                daily = json.loads(summary_file.read_text())
            except json.JSONDecodeError:
                daily = self._create_empty_daily()
        else:
            daily = self._create_empty_daily()

        for session_id, counts in self._counts.items():
            if session_id not in daily["sessions"]:
                daily["sessions"].append(session_id)
            for event_type, count in counts.items():
                daily["event_counts"][event_type] = daily["event_counts"].get(event_type, 0) + count
        daily["last_updated"] = datetime.now(timezone.utc).isoformat()

        try:
            summary_file.write_text(json.dumps(daily, indent=2))
        except OSError as e:
            logger.error(f"Failed to update daily summary: {e}")

    def _create_empty_daily(self) -> dict[str, Any]:
        return {
            "date": self._started.strftime("%Y-%m-%d"),
            "sessions": [],
            "event_counts": {},
            "last_updated": datetime.now(timezone.utc).isoformat(),
        }

    def get_daily_summary_path(self, date: datetime | None = None) -> Path:
        d = date or datetime.now(timezone.utc)
        return self.summaries_dir / f"{d.strftime('%Y-%m-%d')}_daily.json"


# =============================================================================
# Replay
# =============================================================================


def read_records(path: Path) -> Iterator[dict[str, Any]]:
    """
    Yield records from a JSONL telemetry file, oldest first.

    Malformed lines are logged and skipped.
    """
    with open(path, encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"{path.name}:{line_number}: skipping malformed record ({e})")


def summarize_records(path: Path) -> ReplaySummary:
    """Aggregate a recorded session file for display."""
    summary = ReplaySummary(path=str(path))
    events: Counter = Counter()
    interventions: Counter = Counter()
    predictions: Counter = Counter()
    fatigue: list[float] = []
    accuracy: list[float] = []
    sessions: list[str] = []

    for record in read_records(path):
        summary.records += 1
        timestamp = record.get("timestamp")
        if summary.first_timestamp is None:
            summary.first_timestamp = timestamp
        summary.last_timestamp = timestamp

        session_id = record.get("session_id")
        if session_id and session_id not in sessions:
            sessions.append(session_id)

        event_type = record.get("event_type", "unknown")
        events[event_type] += 1
        if event_type == INTERVENTION:
            interventions[record.get("kind", "unknown")] += 1
        elif event_type == PREDICTION:
            predictions[record.get("pattern_id", "unknown")] += 1
        elif event_type == SNAPSHOT and not record.get("is_default"):
            if "fatigue" in record:
                fatigue.append(float(record["fatigue"]))
            if "accuracy" in record:
                accuracy.append(float(record["accuracy"]))

    summary.sessions = sessions
    summary.event_counts = dict(events)
    summary.intervention_kinds = dict(interventions)
    summary.prediction_patterns = dict(predictions)
    summary.mean_fatigue = round(sum(fatigue) / len(fatigue), 3) if fatigue else None
    summary.mean_accuracy = round(sum(accuracy) / len(accuracy), 3) if accuracy else None
    return summary


__all__ = [
    "JSONTelemetryRecorder",
    "ReplaySummary",
    "read_records",
    "summarize_records",
]
