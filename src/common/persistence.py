# ABOUTME: Reads and writes JSON state documents with write-temp-then-rename semantics.
# ABOUTME: Readers only ever observe a fully-old or fully-new file.

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path
from typing import Any, Optional


def temp_path_for(path: Path) -> Path:
    return path.with_name(path.name + ".tmp")


def backup_path_for(path: Path) -> Path:
    return path.with_name(path.name + ".bak")


def atomic_write_json(path: Path, payload: Any) -> None:
    """
    Serialize payload next to path, then rename over it.

    Raises OSError on failure; callers decide whether a failed save is fatal.
    """

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = temp_path_for(path)
    tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    os.replace(tmp, path)


def read_json(path: Path, default: Optional[Any] = None) -> Any:
    """Return parsed JSON, or default when the file does not exist."""

    path = Path(path)
    if not path.exists():
        return default
    return json.loads(path.read_text(encoding="utf-8"))


def preserve_corrupt(path: Path) -> Optional[Path]:
    """Copy an unreadable state file to its .bak sibling. Returns the backup path."""

    path = Path(path)
    backup = backup_path_for(path)
    try:
        shutil.copyfile(path, backup)
    except OSError:
        return None
    return backup
