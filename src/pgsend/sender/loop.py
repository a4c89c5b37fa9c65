"""
The send loop: admission -> collect -> request target -> upload -> confirm.

Copyright (c) 2026 JL -- see NOTICE and LICENSE files.

Runs strictly one iteration at a time and never exits on its own. Every
path ends in a backoff (server-advised or fixed) before the next
admission check. Nothing survives a restart; a fresh process always
starts at the admission check.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from pgsend.client.admission import AdmissionClient, Deny
from pgsend.client.upload import UploadClient
from pgsend.collector.base import SnapshotCollector
from pgsend.snapshot import read_snapshot, snapshot_path, temporary_snapshot

log = logging.getLogger(__name__)

# Denial waits are max(hint, this) rather than hint plus this
MIN_YIELD_SECONDS = 0.25
# Pause after a completed cycle, a missing upload target, or an error
RETRY_SECONDS = 1.0


class LoopState(str, Enum):
    CHECKING_ADMISSION = "checking_admission"
    COLLECTING = "collecting"
    REQUESTING_TARGET = "requesting_target"
    UPLOADING = "uploading"
    CONFIRMING = "confirming"


@dataclass
class IterationResult:
    """How far one iteration got and how long to back off afterwards."""

    state: LoopState
    wait_seconds: float
    denial: Optional[Deny] = None
    snapshot_size: Optional[int] = None
    upload_url: Optional[str] = None
    uploaded: Optional[bool] = None
    confirmed: Optional[bool] = None
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.state == LoopState.CONFIRMING and self.error is None


class SendLoop:

    def __init__(
        self,
        identity: str,
        admission: AdmissionClient,
        uploader: UploadClient,
        collector: SnapshotCollector,
        sleep: Callable[[float], None] = time.sleep,
        temp_dir: Optional[str] = None,
    ):
        self._identity = identity
        self._admission = admission
        self._uploader = uploader
        self._collector = collector
        self._sleep = sleep
        self._temp_dir = temp_dir
        self.state = LoopState.CHECKING_ADMISSION

    def _enter(self, state: LoopState):
        self.state = state
        log.debug("-> %s", state.value)

    def run_once(self) -> IterationResult:
        """One pass through the state machine. Doesn't sleep; may raise."""
        self._enter(LoopState.CHECKING_ADMISSION)
        decision = self._admission.check()
        if isinstance(decision, Deny):
            wait = MIN_YIELD_SECONDS
            if decision.wait_ms is not None:
                wait = max(MIN_YIELD_SECONDS, decision.wait_ms / 1000)
            log.info("Pre-check failed: %s, waiting %.1fs", decision.reason, wait)
            return IterationResult(self.state, wait, denial=decision)

        self._enter(LoopState.COLLECTING)
        log.info(
            "Admission granted -- collecting pgmetrics for %s at %s",
            self._identity, datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        )
        path = snapshot_path(self._identity, self._temp_dir)
        # File is deleted on leaving this block, before any network call
        with temporary_snapshot(path):
            self._collector.collect(path)
            snapshot = read_snapshot(path)
        log.info("Size: %.2f MB for %s", snapshot.size_mb, self._identity)

        self._enter(LoopState.REQUESTING_TARGET)
        url = self._uploader.request_upload_target(snapshot.size)
        if not url:
            return IterationResult(self.state, RETRY_SECONDS, snapshot_size=snapshot.size)
        log.info("URL: %s", url)

        self._enter(LoopState.UPLOADING)
        uploaded = self._uploader.upload(url, snapshot.payload)
        log.info("Uploaded: %s for %s", uploaded, self._identity)

        # Confirm runs even when the PUT failed.
        self._enter(LoopState.CONFIRMING)
        confirmed = self._uploader.confirm_upload(url)
        log.info("Finished: %s for %s", confirmed, self._identity)

        return IterationResult(
            self.state,
            RETRY_SECONDS,
            snapshot_size=snapshot.size,
            upload_url=url,
            uploaded=uploaded,
            confirmed=confirmed,
        )

    def step(self) -> IterationResult:
        """run_once() behind the error boundary, followed by its backoff."""
        try:
            result = self.run_once()
        except Exception as e:
            log.error("Error during %s: %s", self.state.value, e)
            result = IterationResult(self.state, RETRY_SECONDS, error=str(e) or repr(e))

        self._sleep(result.wait_seconds)
        return result

    def run_forever(self):
        while True:
            self.step()
