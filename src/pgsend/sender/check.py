"""
One-shot validation: run the collector once, measure, delete, done.
No HTTP client is ever created here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pgsend.collector.base import CollectionError, SnapshotCollector
from pgsend.snapshot import read_snapshot, snapshot_path, temporary_snapshot

log = logging.getLogger(__name__)


@dataclass
class CheckResult:
    path: Path
    size: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def size_mb(self) -> float:
        return (self.size or 0) / 1024 / 1024


def run_check(
    collector: SnapshotCollector,
    identity: str,
    temp_dir: Optional[str] = None,
) -> CheckResult:
    path = snapshot_path(identity, temp_dir)
    result = CheckResult(path=path)

    with temporary_snapshot(path):
        try:
            collector.collect(path)
            result.size = read_snapshot(path).size
        except (CollectionError, OSError) as e:
            log.debug("Validation collection failed: %s", e)
            result.error = str(e)
    return result
