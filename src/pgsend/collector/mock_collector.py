"""
Collector that writes a synthetic pgmetrics-style report.
Used for local development on machines without Postgres or pgmetrics.
"""

from __future__ import annotations

import json
import random
import time
from pathlib import Path
from typing import Sequence

from pgsend.collector.base import SnapshotCollector


class MockCollector(SnapshotCollector):
    """Writes fake but plausibly shaped JSON, advancing a counter each call."""

    def __init__(self, seed: int = 42, databases: Sequence[str] = ("postgres", "app")):
        self._rng = random.Random(seed)
        self._databases = list(databases) or ["postgres"]
        self._tick = 0
        self._xact_commit = 0

    def _report(self) -> dict:
        self._tick += 1
        self._xact_commit += self._rng.randint(500, 5000)

        return {
            "meta": {
                "version": "1.16",
                "at": int(time.time()),
                "collected_dbs": self._databases,
                "local": True,
            },
            "start_time": int(time.time()) - 86400,
            "databases": [
                {
                    "name": db,
                    "xact_commit": self._xact_commit,
                    "xact_rollback": self._rng.randint(0, 50),
                    "blks_hit": self._rng.randint(10_000, 1_000_000),
                    "blks_read": self._rng.randint(100, 10_000),
                    "numbackends": self._rng.randint(1, 40),
                    "size": self._rng.randint(8, 4096) * 1024 * 1024,
                }
                for db in self._databases
            ],
            "tick": self._tick,
        }

    def collect(self, destination: Path) -> None:
        with open(destination, "w") as f:
            json.dump(self._report(), f)

    def name(self) -> str:
        return f"Mock pgmetrics ({', '.join(self._databases)})"
