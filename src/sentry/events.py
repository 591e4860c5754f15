# ABOUTME: Validates incoming completion events and appends them to per-day NDJSON files.
# ABOUTME: Replays unread lines through persisted per-file cursors so no line is folded twice.

from __future__ import annotations

import json
import random
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from src.common.persistence import atomic_write_json, read_json

SCHEMA_VERSION = "1.7.0"
EVENT_SUFFIX = ".ndjson"
_ANON_ALPHABET = string.ascii_lowercase + string.digits


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(ts: datetime) -> str:
    return ts.isoformat().replace("+00:00", "Z")


def validate_event(raw: Any, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """
    Normalize one device-submitted event, or return None if it is unusable.

    Only whitelisted fields are kept. A missing pseudoId gets an anonymous one.
    """

    if not isinstance(raw, Mapping):
        return None
    if not raw.get("lessonId") or not raw.get("completedAt"):
        return None
    mastery = raw.get("mastery")
    if isinstance(mastery, bool) or not isinstance(mastery, (int, float)) or not 0 <= mastery <= 1:
        return None
    if not isinstance(raw.get("steps"), list):
        return None

    ts = now or _utc_now()
    pseudo_id = raw.get("pseudoId") or "px-anon-" + "".join(random.choices(_ANON_ALPHABET, k=8))

    def _number(key: str) -> float:
        try:
            return float(raw.get(key) or 0)
        except (TypeError, ValueError):
            return 0.0

    return {
        "eventId": raw.get("eventId") or f"ev-{int(ts.timestamp() * 1000)}",
        "schemaVersion": raw.get("schemaVersion") or SCHEMA_VERSION,
        "pseudoId": str(pseudo_id),
        "lessonId": str(raw["lessonId"]),
        "lessonVersion": raw.get("lessonVersion") or "1.0.0",
        "difficulty": _number("difficulty"),
        "language": str(raw.get("language") or "en"),
        "skillsRequired": raw["skillsRequired"] if isinstance(raw.get("skillsRequired"), list) else [],
        "skillsProvided": raw["skillsProvided"] if isinstance(raw.get("skillsProvided"), list) else [],
        "mastery": mastery,
        "steps": raw["steps"],
        "durationMs": _number("durationMs"),
        "completedAt": raw["completedAt"],
        "receivedAt": _iso(ts),
    }


def day_file(events_dir: Path, day: Optional[datetime] = None) -> Path:
    return Path(events_dir) / f"{(day or _utc_now()).strftime('%Y-%m-%d')}{EVENT_SUFFIX}"


def append_events(events_dir: Path, events: Iterable[Mapping[str, Any]], day: Optional[datetime] = None) -> Path:
    """Append events to the day's log, one JSON object per line."""

    target = day_file(events_dir, day)
    target.parent.mkdir(parents=True, exist_ok=True)
    lines = [json.dumps(dict(e)) for e in events]
    if lines:
        with open(target, "a", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")
    return target


def list_sources(events_dir: Path) -> List[str]:
    events_dir = Path(events_dir)
    if not events_dir.exists():
        return []
    return sorted(p.name for p in events_dir.iterdir() if p.is_file() and p.name.endswith(EVENT_SUFFIX))


@dataclass(frozen=True)
class LogLine:
    source: str
    offset: int  # cursor value once this line has been folded
    text: Optional[str]  # None when the bytes are not valid UTF-8


def iter_unread(events_dir: Path, cursors: Mapping[str, int]) -> Iterator[LogLine]:
    """
    Yield lines past each file's cursor, file by file in name order.

    A trailing line without a newline is still being written and is left
    for the next pass. Lines are decoded one at a time so a single bad
    byte sequence cannot stall the cursor.
    """

    for source in list_sources(events_dir):
        start = int(cursors.get(source, 0))
        with open(Path(events_dir) / source, "rb") as f:
            for index, raw in enumerate(f):
                if index < start:
                    continue
                if not raw.endswith(b"\n"):
                    break
                try:
                    text: Optional[str] = raw.decode("utf-8")
                except UnicodeDecodeError:
                    text = None
                yield LogLine(source=source, offset=index + 1, text=text)


def parse_line(text: Optional[str]) -> Optional[Dict[str, Any]]:
    if not text or not text.strip():
        return None
    try:
        record = json.loads(text)
    except ValueError:
        return None
    return record if isinstance(record, dict) else None


class CursorStore:
    """Persisted {source file -> line offset} map."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> Dict[str, int]:
        raw = read_json(self.path, default={}) or {}
        return {str(k): int(v) for k, v in (raw.get("cursors") or {}).items()}

    def save(self, cursors: Mapping[str, int]) -> None:
        atomic_write_json(self.path, {"cursors": dict(sorted(cursors.items()))})
