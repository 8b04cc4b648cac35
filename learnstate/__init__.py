"""
learnstate: adaptive difficulty & learning-state analytics engine.

Subpackages:
- adaptive: state estimation, error prediction, difficulty control, planning
- delivery: telemetry sinks (loguru, in-memory, JSONL)
- integrations: HTTP problem repository client
- cli: typer command-line interface
"""

__version__ = "0.1.0"
