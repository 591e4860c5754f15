# ABOUTME: Operator CLI around the adaptive engine facade on a village hub.
# ABOUTME: Seeds lessons, selects and records observations, and syncs bandit summaries.

"""
LMS Hub CLI

Usage:
    python -m scripts.lms_hub status
    python -m scripts.lms_hub seed --index data/lesson_index.json
    python -m scripts.lms_hub select --student px-1 --candidate L1 --candidate L2
    python -m scripts.lms_hub record --student px-1 --lesson L1 --probe L1:1
    python -m scripts.lms_hub export-summary --output reports/bandit_summary.json
    python -m scripts.lms_hub merge-summary --summary regional_summary.json
"""

import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from src.common.config import load_config
from src.common.persistence import atomic_write_json
from src.lms_engine import AdaptiveEngine

console = Console()
app = typer.Typer(help="Adaptive lesson selection engine for a village hub.")

CONFIG_OPTION = typer.Option(None, "--config", help="Path to hub config YAML.")


def _engine(config: Optional[Path]) -> AdaptiveEngine:
    return AdaptiveEngine.from_config(load_config(config))


def _parse_probe(value: str) -> dict:
    probe_id, sep, outcome = value.rpartition(":")
    if not sep or outcome not in {"0", "1"}:
        raise typer.BadParameter(f"Expected PROBE_ID:0|1, got {value!r}", param_hint="--probe")
    return {"probeId": probe_id, "correct": outcome == "1"}


@app.command()
def status(config: Optional[Path] = CONFIG_OPTION) -> None:
    """Show counts and dimensions of the persisted engine state."""

    engine = _engine(config)
    table = Table(title="LMS Engine Status")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    for key, value in engine.get_status().items():
        table.add_row(key, str(value))
    console.print(table)


@app.command()
def seed(
    index: Path = typer.Option(..., "--index", exists=True, help="JSON list of {lessonId, difficulty, skill}."),
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Register lessons from the compiled lesson index."""

    entries = json.loads(index.read_text(encoding="utf-8"))
    if isinstance(entries, dict):
        entries = entries.get("lessons", [])
    seeded = _engine(config).seed_lessons(entries)
    console.print(f"[green]Seeded {seeded} new lesson(s) from {index}[/green]")


@app.command()
def select(
    student: str = typer.Option(..., "--student", help="Pseudonymous student id."),
    candidate: List[str] = typer.Option(..., "--candidate", help="Eligible lesson id (repeatable)."),
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Pick the next lesson among prerequisite-eligible candidates."""

    engine = _engine(config)
    selected = engine.select_best_lesson(student, candidate)
    if selected is None:
        console.print("[yellow]No candidate lessons to choose from.[/yellow]")
        raise typer.Exit(code=1)
    console.print(f"[bold]Selected:[/] {selected}")
    estimate = engine.get_student_ability(student)
    if estimate is not None:
        console.print(f"[dim]ability={estimate['ability']:.3f} variance={estimate['variance']:.3f}[/dim]")


@app.command()
def record(
    student: str = typer.Option(..., "--student", help="Pseudonymous student id."),
    lesson: str = typer.Option(..., "--lesson", help="Completed lesson id."),
    probe: List[str] = typer.Option([], "--probe", help="PROBE_ID:0|1 (repeatable)."),
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Record a completed lesson and its post-lesson probe answers."""

    results = [_parse_probe(p) for p in probe]
    gain = _engine(config).record_observation(student, lesson, results)
    sign = "+" if gain >= 0 else "-"
    console.print(f"[green]Recorded[/green] {student} on {lesson}: gain {sign}{abs(gain):.3f}")


@app.command()
def ability(
    student: str = typer.Option(..., "--student", help="Pseudonymous student id."),
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Print a student's Rasch ability estimate."""

    result = _engine(config).get_student_ability(student)
    if result is None:
        console.print(f"[yellow]No observations for {student}.[/yellow]")
        raise typer.Exit(code=1)
    console.print_json(data=result)


@app.command("export-summary")
def export_summary(
    output: Path = typer.Option(Path("reports/bandit_summary.json"), "--output", help="Where to write the summary."),
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Write the bandit posterior summary for a regional sync."""

    summary = _engine(config).export_bandit_summary()
    atomic_write_json(output, summary.to_dict())
    console.print(f"[green]✅ Summary ({summary.sample_size} observations) written to {output}[/green]")


@app.command("merge-summary")
def merge_summary(
    summary: Path = typer.Option(..., "--summary", exists=True, help="Remote hub summary JSON."),
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Merge a remote hub's bandit summary into local state."""

    engine = _engine(config)
    merged = engine.merge_remote_summary(json.loads(summary.read_text(encoding="utf-8")))
    console.print(f"[green]Merged.[/green] Total observations: {merged.sample_size}")


if __name__ == "__main__":
    app()
