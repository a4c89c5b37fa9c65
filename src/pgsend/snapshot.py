"""
A collected pgmetrics snapshot and the temp file it briefly lives in.

The payload is opaque -- we never parse it, just read the bytes the
collector wrote and ship them.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

log = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass(frozen=True)
class Snapshot:
    """One JSON payload produced by a single collection run."""

    payload: bytes

    @property
    def size(self) -> int:
        return len(self.payload)

    @property
    def size_mb(self) -> float:
        return self.size / 1024 / 1024


def snapshot_path(identity: str, directory: Optional[str] = None) -> Path:
    """Unique temp path for one collection attempt.

    Identity plus a nanosecond timestamp keeps concurrent senders (and
    back-to-back attempts) from ever sharing a file.
    """
    safe_identity = _UNSAFE_CHARS.sub("_", identity) or "unknown"
    base = Path(directory or tempfile.gettempdir())
    return base / f"pgmetrics_{safe_identity}_{time.time_ns()}.json"


def remove_quietly(path: Path) -> bool:
    """Best-effort delete. Returns True if a file was actually removed."""
    try:
        os.unlink(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        log.warning("Could not remove temp snapshot %s: %s", path, e)
        return False


@contextmanager
def temporary_snapshot(path: Path) -> Iterator[Path]:
    """Yield `path` and guarantee it is gone on exit, whatever happened."""
    try:
        yield path
    finally:
        if remove_quietly(path):
            log.debug("Removed temp snapshot %s", path)


def read_snapshot(path: Path) -> Snapshot:
    with open(path, "rb") as f:
        return Snapshot(payload=f.read())
