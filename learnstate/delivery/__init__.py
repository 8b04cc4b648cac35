"""
Telemetry delivery for the learnstate engine.

Components:
- TelemetrySink: Port every engine event goes through
- LoguruTelemetrySink: Structured loguru records (default)
- MemoryTelemetrySink: Bounded in-memory records
- JSONTelemetryRecorder: Flat JSONL session files for replay
"""

from .json_telemetry import JSONTelemetryRecorder, read_records, summarize_records
from .telemetry import (
    FanOutTelemetrySink,
    LoguruTelemetrySink,
    MemoryTelemetrySink,
    TelemetryRecord,
    TelemetrySink,
)

__all__ = [
    "TelemetrySink",
    "TelemetryRecord",
    "LoguruTelemetrySink",
    "MemoryTelemetrySink",
    "FanOutTelemetrySink",
    "JSONTelemetryRecorder",
    "read_records",
    "summarize_records",
]
