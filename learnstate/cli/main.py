"""
learnstate CLI - inspect and exercise the adaptive engine from the terminal.

Usage:
    learnstate matrix                              # Show the grade x tier difficulty matrix
    learnstate recommend --grade 6th --tier elite --accuracy 0.9
    learnstate plan --grade 5th --tier advanced --weeks 4
    learnstate simulate --grade 5th --tier elite --record
    learnstate replay ~/.learnstate/telemetry/sessions/2026-10-19_session_abc123.jsonl
"""

from __future__ import annotations

import json
import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import get_settings
from learnstate.adaptive.difficulty_controller import DifficultyController
from learnstate.adaptive.difficulty_matrix import DIFFICULTY_MATRIX
from learnstate.adaptive.models import (
    CognitiveTraits,
    EventKind,
    EventPayload,
    Grade,
    LearnerProfile,
    LearningEvent,
    Tier,
    TimeConstraints,
)
from learnstate.adaptive.path_orchestrator import PathOrchestrator
from learnstate.adaptive.problem_selector import (
    InMemoryProblemRepository,
    ProblemRepository,
    ProblemSelector,
)
from learnstate.adaptive.session_engine import LearningSessionEngine
from learnstate.delivery.json_telemetry import JSONTelemetryRecorder, summarize_records
from learnstate.delivery.telemetry import FanOutTelemetrySink, MemoryTelemetrySink, TelemetrySink
from learnstate.integrations.problem_repository_client import HttpProblemRepository

LOG_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}"

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="learnstate",
    help="Adaptive difficulty & learning-state analytics engine",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()


@app.callback()
def main_callback(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show engine debug logging")
    ] = False,
) -> None:
    if verbose:
        logger.remove()
        logger.add(sys.stderr, level="DEBUG", format=LOG_FORMAT)


def _profile(
    grade: Grade,
    tier: Tier,
    subject: str,
    accuracy: float,
    daily_minutes: int,
    days: int,
    session_minutes: int,
) -> LearnerProfile:
    try:
        return LearnerProfile(
            learner_id="cli",
            grade=grade,
            target_tier=tier,
            subjects=(subject,),
            traits=CognitiveTraits(
                processing_speed=0.6,
                working_memory_capacity=0.6,
                attention_span_minutes=max(20, session_minutes),
            ),
            time_constraints=TimeConstraints(
                daily_minutes=daily_minutes,
                study_days_per_week=days,
                session_minutes=session_minutes,
            ),
            recent_accuracy=accuracy,
        )
    except ValidationError as e:
        console.print(f"[red]Invalid learner profile:[/red]\n{e}")
        raise typer.Exit(1)


def _repository(repo_url: str | None, subject: str) -> ProblemRepository:
    if repo_url:
        return HttpProblemRepository(repo_url, timeout_ms=get_settings().problem_repository_timeout_ms)
    return InMemoryProblemRepository.sample(subject)


# =============================================================================
# Difficulty Commands
# =============================================================================


@app.command()
def matrix() -> None:
    """Show the grade x tier difficulty matrix."""
    table = Table(title="Difficulty Matrix (1-10)", show_header=True)
    table.add_column("Grade", style="cyan")
    table.add_column("Tier", style="magenta")
    table.add_column("Base", justify="right")
    table.add_column("Range", justify="center")
    table.add_column("Minutes", justify="right")
    table.add_column("Allowed topics", style="green")
    table.add_column("Forbidden topics", style="red")

    for (grade, tier), entry in DIFFICULTY_MATRIX.items():
        table.add_row(
            grade.value,
            tier.value,
            f"{entry.base:.1f}",
            f"{entry.min_difficulty:.1f} - {entry.max_difficulty:.1f}",
            str(entry.time_allocation_minutes),
            ", ".join(entry.allowed_topics),
            ", ".join(entry.forbidden_topics) or "-",
        )
    console.print(table)


@app.command()
def recommend(
    grade: Annotated[Grade, typer.Option("--grade", "-g", help="Learner grade")],
    tier: Annotated[Tier, typer.Option("--tier", "-t", help="Target-school tier")],
    accuracy: Annotated[
        float, typer.Option("--accuracy", "-a", min=0.0, max=1.0, help="Recent accuracy (0-1)")
    ] = 0.75,
    time_on_task: Annotated[
        float | None, typer.Option("--time-on-task", help="Recent time on task in seconds")
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print JSON instead of a panel")] = False,
) -> None:
    """Recommend a bounded difficulty for a grade/tier pairing."""
    controller = DifficultyController()
    result = controller.recommend(grade, tier, accuracy, time_on_task)

    if as_json:
        console.print_json(json.dumps(result.to_dict()))
        return

    lines = [
        f"[bold]Difficulty:[/bold] {result.value:.1f}  "
        f"[dim](range {result.min_difficulty:.1f} - {result.max_difficulty:.1f})[/dim]",
        f"[bold]Target accuracy:[/bold] {result.target_accuracy:.0%}",
        f"[bold]Time allocation:[/bold] {result.time_allocation_minutes} min",
        f"[bold]Reasoning:[/bold] {result.reasoning}",
    ]
    if result.advisory:
        lines.append(f"[yellow]Advisory: {result.advisory}[/yellow]")
    for warning in result.warnings:
        lines.append(f"[yellow]! {warning}[/yellow]")

    fit = controller.check_fit(grade, tier)
    border = "green" if fit.appropriate else "yellow"
    console.print(Panel("\n".join(lines), title=f"{grade.value} x {tier.value}", border_style=border))


# =============================================================================
# Planning Commands
# =============================================================================


@app.command()
def plan(
    grade: Annotated[Grade, typer.Option("--grade", "-g", help="Learner grade")],
    tier: Annotated[Tier, typer.Option("--tier", "-t", help="Target-school tier")],
    weeks: Annotated[int, typer.Option("--weeks", "-w", min=1, help="Plan length in weeks")] = 4,
    subject: Annotated[str, typer.Option("--subject", "-s", help="Subject to plan")] = "math",
    accuracy: Annotated[float, typer.Option("--accuracy", "-a", min=0.0, max=1.0)] = 0.7,
    daily_minutes: Annotated[int, typer.Option("--daily-minutes", help="Study minutes per day")] = 60,
    days: Annotated[int, typer.Option("--days", help="Study days per week")] = 5,
    session_minutes: Annotated[int, typer.Option("--session-minutes", help="Minutes per sitting")] = 30,
    repo_url: Annotated[
        str | None, typer.Option("--repo-url", help="Problem repository URL (default: built-in sample)")
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the plan as JSON")] = False,
) -> None:
    """Build a multi-week learning plan."""
    profile = _profile(grade, tier, subject, accuracy, daily_minutes, days, session_minutes)
    repository = _repository(repo_url, subject)
    selector = ProblemSelector(repository, timeout_seconds=get_settings().problem_repository_timeout_seconds)
    try:
        learning_plan = PathOrchestrator(selector).build_plan(profile, subject, weeks)
    finally:
        selector.close()
        if isinstance(repository, HttpProblemRepository):
            repository.close()

    if as_json:
        console.print_json(json.dumps(learning_plan.to_dict()))
        return

    table = Table(
        title=f"{subject} plan: {grade.value} x {tier.value}, {weeks} weeks "
        f"({learning_plan.total_minutes:.0f} min)",
        show_header=True,
    )
    table.add_column("Step", style="cyan")
    table.add_column("Kind")
    table.add_column("Topic", style="green")
    table.add_column("Difficulty", justify="right")
    table.add_column("Minutes", justify="right")
    table.add_column("Min acc.", justify="right")
    table.add_column("Problems", style="dim")

    for step in learning_plan.steps:
        problems = ", ".join(step.problem_ids) if step.problem_ids else "[yellow]no content[/yellow]"
        table.add_row(
            step.step_id,
            step.kind.value,
            step.topic,
            f"{step.difficulty:.1f}",
            f"{step.time_budget_minutes:.0f}",
            f"{step.success_criteria.min_accuracy:.0%}",
            problems,
        )
    console.print(table)

    forecast = learning_plan.forecast
    if forecast:
        risks = ", ".join(forecast.risk_factors) or "none"
        console.print(
            f"[bold]Forecast:[/bold] success {forecast.success_probability:.0%}  "
            f"[dim]risks: {risks}[/dim]"
        )


# =============================================================================
# Session Commands
# =============================================================================


@app.command()
def simulate(
    grade: Annotated[Grade, typer.Option("--grade", "-g", help="Learner grade")] = Grade.FIFTH,
    tier: Annotated[Tier, typer.Option("--tier", "-t", help="Target-school tier")] = Tier.STANDARD,
    events: Annotated[int, typer.Option("--events", "-n", min=1, help="Submissions to simulate")] = 30,
    accuracy: Annotated[
        float, typer.Option("--accuracy", "-a", min=0.0, max=1.0, help="Simulated success rate")
    ] = 0.6,
    seed: Annotated[int, typer.Option("--seed", help="Random seed")] = 7,
    record: Annotated[bool, typer.Option("--record", help="Write telemetry to JSONL")] = False,
) -> None:
    """Run a synthetic session through the engine on a simulated clock."""
    rng = random.Random(seed)
    now = [datetime(2026, 1, 5, 16, 0, tzinfo=timezone.utc)]

    def clock() -> datetime:
        return now[0]

    memory = MemoryTelemetrySink()
    recorder = JSONTelemetryRecorder.from_settings() if record else None
    sink: TelemetrySink = FanOutTelemetrySink(memory, recorder) if recorder else memory

    profile = _profile(grade, tier, "math", accuracy, 60, 5, 30)
    engine = LearningSessionEngine.from_settings(
        profile, InMemoryProblemRepository.sample("math"), sink=sink, clock=clock
    )
    engine.begin_step(30)
    engine.complete_phase()

    interventions = 0
    try:
        for i in range(events):
            problem_id = f"sim-{i}"
            now[0] += timedelta(seconds=rng.randint(5, 20))
            engine.record(LearningEvent(kind=EventKind.START, problem_id=problem_id))
            now[0] += timedelta(seconds=rng.randint(20, 120))
            engine.record(LearningEvent(
                kind=EventKind.SUBMIT,
                problem_id=problem_id,
                payload=EventPayload(
                    time_spent_ms=rng.randint(20000, 120000),
                    is_correct=rng.random() < accuracy,
                    hesitation_count=rng.randint(0, 3),
                    mouse_moves=rng.randint(5, 80),
                    topic="fractions",
                ),
            ))
            result = engine.tick()
            if result:
                interventions += len(result.interventions)
    finally:
        engine.close()
        sink.close()

    last = engine.last_snapshot
    table = Table(title=f"Simulated session {engine.session_id}", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Submissions", str(events))
    table.add_row("Snapshots", str(len(engine.history)))
    table.add_row("Predictions", str(len(engine.predictor.history)))
    table.add_row("Interventions", str(interventions))
    if last:
        table.add_row("Final accuracy", f"{last.accuracy:.0%}")
        table.add_row("Final fatigue", f"{last.fatigue:.2f}")
    console.print(table)
    if recorder:
        console.print(f"[dim]Telemetry: {recorder.session_file(engine.session_id)}[/dim]")


@app.command()
def replay(
    path: Annotated[Path, typer.Argument(help="JSONL telemetry file")],
    as_json: Annotated[bool, typer.Option("--json", help="Print the summary as JSON")] = False,
) -> None:
    """Summarize a recorded telemetry session."""
    if not path.exists():
        console.print(f"[red]File not found:[/red] {path}")
        raise typer.Exit(1)

    summary = summarize_records(path)
    if as_json:
        console.print_json(json.dumps(summary.to_dict()))
        return

    table = Table(title=f"Replay: {path.name}", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Records", str(summary.records))
    table.add_row("Sessions", ", ".join(summary.sessions) or "-")
    table.add_row("Span", f"{summary.first_timestamp or '-'} .. {summary.last_timestamp or '-'}")
    for event_type, count in sorted(summary.event_counts.items()):
        table.add_row(f"  {event_type}", str(count))
    for kind, count in sorted(summary.intervention_kinds.items()):
        table.add_row(f"  intervention:{kind}", str(count))
    if summary.mean_accuracy is not None:
        table.add_row("Mean accuracy", f"{summary.mean_accuracy:.0%}")
    if summary.mean_fatigue is not None:
        table.add_row("Mean fatigue", f"{summary.mean_fatigue:.2f}")
    console.print(table)


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Entry point for the CLI."""
    logger.remove()
    logger.add(sys.stderr, level=get_settings().log_level, format=LOG_FORMAT)
    app()


if __name__ == "__main__":
    main()
