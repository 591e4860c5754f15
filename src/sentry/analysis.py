# ABOUTME: Runs one resumable Sentry analysis pass over unread event-log lines.
# ABOUTME: Provides the Typer CLI for ingesting events, analysing, and rebuilding mastery.

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import typer

from src.common import logs
from src.common.config import HubConfig, load_config
from src.common.persistence import atomic_write_json, preserve_corrupt, read_json
from src.common.schemas import CompletionEvent, SkillGraphEdge

from .cohort import cluster_students, largest_cohort, mastery_vectors
from .contingency import ContingencyTables, process_event
from .events import CursorStore, LogLine, append_events, iter_unread, parse_line, validate_event
from .graph import compute_edges, graph_document
from .mastery import MasteryMap, build_mastery_summary, mastery_document, mastery_from_document

COMPONENT = "sentry"

app = typer.Typer(help="Village Sentry: event ingestion and skill-collapse mining.")


class SentryLog:
    """Console log plus a timestamped append-only sentry.log file."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path

    def __call__(self, message: str) -> None:
        logs.log(COMPONENT, message)
        if self.path is None:
            return
        line = f"{datetime.now(timezone.utc).isoformat()}  {message}\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line)
        except OSError as exc:
            logs.warn(COMPONENT, f"Could not append to {self.path}: {exc}")


@dataclass
class SentryState:
    tables: ContingencyTables = field(default_factory=ContingencyTables)
    mastery: MasteryMap = field(default_factory=dict)
    cursors: Dict[str, int] = field(default_factory=dict)


@dataclass
class AnalysisReport:
    events_processed: int = 0
    malformed_lines: int = 0
    cells_updated: int = 0
    published: bool = False
    skip_reason: Optional[str] = None
    cohort_signature: Optional[str] = None
    cohort_size: int = 0
    edges: List[SkillGraphEdge] = field(default_factory=list)


def load_sentry_state(config: HubConfig) -> SentryState:
    """
    Load cells, mastery and cursors together.

    If any of the three is unreadable, all three are backed up and the pass
    starts from empty state with zeroed cursors, so the whole event log is
    folded again and the files are rebuilt consistently.
    """

    paths = [config.sentry_path(key) for key in ("contingency_file", "mastery_file", "cursor_file")]
    try:
        return SentryState(
            tables=ContingencyTables.from_dict(read_json(paths[0], default={})),
            mastery=mastery_from_document(read_json(paths[1], default={})),
            cursors=CursorStore(paths[2]).load(),
        )
    except (ValueError, TypeError, AttributeError) as exc:
        backups = [str(preserve_corrupt(p)) for p in paths if p.exists()]
        logs.error(
            COMPONENT,
            f"Failed to load sentry state: {exc}; rebuilding from the event log. Corrupt copies: {', '.join(backups)}",
        )
        return SentryState()


def save_sentry_state(config: HubConfig, state: SentryState, now: Optional[datetime] = None) -> None:
    # Cursors go last so they never run ahead of the cells they describe.
    atomic_write_json(config.sentry_path("contingency_file"), state.tables.to_dict())
    atomic_write_json(config.sentry_path("mastery_file"), mastery_document(state.mastery, now=now))
    CursorStore(config.sentry_path("cursor_file")).save(state.cursors)


def _counts_as_event(line: LogLine) -> bool:
    # Blank lines are padding; undecodable bytes are a malformed event.
    return line.text is None or bool(line.text.strip())


def fold_unread_events(config: HubConfig, state: SentryState, report: AnalysisReport) -> None:
    """Fold every unread, well-formed line into cells and mastery, advancing cursors."""

    for line in iter_unread(config.events_dir, state.cursors):
        record = parse_line(line.text)
        event: Optional[CompletionEvent] = None
        if record is not None:
            try:
                event = CompletionEvent.from_dict(record)
            except ValueError:
                event = None
        if event is None:
            if _counts_as_event(line):
                report.malformed_lines += 1
        else:
            report.cells_updated += process_event(
                state.tables,
                state.mastery,
                event,
                mastery_threshold=config.sentry.mastery_threshold,
                pass_threshold=config.sentry.pass_threshold,
            )
            report.events_processed += 1
        state.cursors[line.source] = line.offset


def publish_graph(config: HubConfig, state: SentryState, report: AnalysisReport, now: Optional[datetime] = None) -> None:
    """Recompute and replace the published graph, unless the cohort is too small."""

    min_size = config.sentry.min_cohort_size
    if len(state.mastery) < min_size:
        report.skip_reason = f"student pool {len(state.mastery)} below {min_size}"
        return

    _, vectors = mastery_vectors(state.mastery, config.sentry.mastery_threshold)
    cohort = largest_cohort(cluster_students(vectors, threshold=config.sentry.jaccard_threshold))
    if cohort is None or cohort.size < min_size:
        report.skip_reason = f"largest cohort {cohort.size if cohort else 0} below {min_size}"
        return

    edges = compute_edges(state.tables, cohort.members, min_samples=config.sentry.min_pair_samples)
    graph_path = config.sentry_path("graph_file")
    previous = read_json(graph_path, default=None)
    document = graph_document(
        edges,
        cohort_signature=cohort.signature,
        cohort_size=cohort.size,
        level=config.graph_level,
        hub_id=config.hub_id,
        previous=previous if isinstance(previous, dict) else None,
        now=now,
    )
    atomic_write_json(graph_path, document)
    report.published = True
    report.cohort_signature = cohort.signature
    report.cohort_size = cohort.size
    report.edges = edges


def run_analysis(config: HubConfig, now: Optional[datetime] = None) -> AnalysisReport:
    """
    One analysis pass: fold unread lines, persist once, then republish the graph.

    A pass that finds no new events leaves every file untouched.
    """

    log = SentryLog(config.sentry_path("log_file"))
    log("Running analysis...")
    state = load_sentry_state(config)
    report = AnalysisReport()
    fold_unread_events(config, state, report)

    if report.malformed_lines:
        log(f"Skipped {report.malformed_lines} malformed line(s)")
    if report.events_processed == 0:
        if report.malformed_lines:
            CursorStore(config.sentry_path("cursor_file")).save(state.cursors)
        log("No new events to analyse.")
        return report

    save_sentry_state(config, state, now=now)
    log(
        f"Folded {report.events_processed} event(s) into {report.cells_updated} cell update(s); "
        f"{config.sentry.mastery_file} updated: {len(state.mastery)} students"
    )

    publish_graph(config, state, report, now=now)
    if report.published:
        log(
            f"Graph published: {len(report.edges)} edge(s), cohort {report.cohort_signature} "
            f"({report.cohort_size} students)"
        )
    else:
        log(f"Graph not published: {report.skip_reason}")
    return report


def count_unread(config: HubConfig) -> int:
    cursors = load_sentry_state(config).cursors
    return sum(1 for line in iter_unread(config.events_dir, cursors) if _counts_as_event(line))


def analysis_due(config: HubConfig) -> bool:
    """True once the unread backlog on disk reaches the configured threshold."""

    return count_unread(config) >= config.sentry.analyse_after


def _read_all_events(config: HubConfig) -> List[CompletionEvent]:
    events = []
    for line in iter_unread(config.events_dir, {}):
        record = parse_line(line.text)
        if record is None:
            continue
        try:
            events.append(CompletionEvent.from_dict(record))
        except ValueError:
            continue
    return events


@app.command()
def ingest(
    payload: Path = typer.Option(..., "--payload", exists=True, help="JSON file with an event or {events: [...]}."),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to hub config YAML."),
) -> None:
    """Validate device events and append them to today's log."""

    cfg = load_config(config)
    body = json.loads(payload.read_text(encoding="utf-8"))
    raw = body["events"] if isinstance(body, dict) and isinstance(body.get("events"), list) else [body]
    valid = [e for e in (validate_event(r) for r in raw) if e is not None]
    if not valid:
        typer.echo("[sentry] No valid events", err=True)
        raise typer.Exit(code=1)

    target = append_events(cfg.events_dir, valid)
    SentryLog(cfg.sentry_path("log_file"))(f"Received {len(valid)} event(s) into {target.name}")
    if analysis_due(cfg):
        run_analysis(cfg)


@app.command()
def analyse(config: Optional[Path] = typer.Option(None, "--config", help="Path to hub config YAML.")) -> None:
    """Fold new events and republish the skill graph."""

    report = run_analysis(load_config(config))
    typer.echo(
        f"[sentry] events={report.events_processed} malformed={report.malformed_lines} "
        f"published={report.published} edges={len(report.edges)}"
    )


@app.command()
def mastery(
    config: Optional[Path] = typer.Option(None, "--config", help="Path to hub config YAML."),
    output: Path = typer.Option(..., "--output", help="Where to write the rebuilt summary."),
) -> None:
    """Rebuild the mastery summary from the whole event log, for auditing the live one."""

    cfg = load_config(config)
    summary = build_mastery_summary(_read_all_events(cfg))
    atomic_write_json(output, mastery_document(summary))
    typer.echo(f"[sentry] Wrote mastery for {len(summary)} students to {output}")


if __name__ == "__main__":
    app()
