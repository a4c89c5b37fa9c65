"""
Collector that shells out to the pgmetrics binary.

The password goes into the child's environment (PGPASSWORD), never onto
the command line where `ps` could show it.
"""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, List

from pgsend.collector.base import CollectionError, SnapshotCollector
from pgsend.config import CollectionSettings, ConnectionSettings

log = logging.getLogger(__name__)


class PgmetricsCollector(SnapshotCollector):

    def __init__(
        self,
        connection: ConnectionSettings,
        collection: CollectionSettings,
        binary: str = "pgmetrics",
    ):
        self._connection = connection
        self._collection = collection
        self._binary = binary

    def build_args(self, destination: Path) -> List[str]:
        conn = self._connection
        opts = self._collection

        args = [
            self._binary,
            "-h", conn.host,
            "-p", str(conn.port),
            "-U", conn.user,
            "-w",
        ]
        if opts.all_databases:
            args.append("--all-dbs")
        args += [
            "--timeout", str(opts.timeout_seconds),
            "--omit", opts.omit,
            "--sql-length", str(opts.sql_length),
            "--statements-limit", str(opts.statements_limit),
            "-f", "json",
            "-o", str(destination),
        ]
        # Explicit databases go last as positional args
        args += [db.strip() for db in opts.databases if db.strip()]
        return args

    def build_env(self) -> Dict[str, str]:
        env = dict(os.environ)
        env["PGUSER"] = self._connection.user
        env["PGHOST"] = self._connection.host
        env["PGPORT"] = str(self._connection.port)
        if self._connection.password:
            env["PGPASSWORD"] = self._connection.password
        return env

    def collect(self, destination: Path) -> None:
        """Run pgmetrics once, blocking until it exits."""
        args = self.build_args(destination)
        log.debug("Running %s", " ".join(args))

        try:
            result = subprocess.run(
                args,
                env=self.build_env(),
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                errors="replace",
            )
        except OSError as e:
            raise CollectionError(f"Could not launch {self._binary}: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise CollectionError(
                stderr or f"{self._binary} failed with exit status {result.returncode}"
            )

    def name(self) -> str:
        return f"pgmetrics ({self._connection.describe()})"
