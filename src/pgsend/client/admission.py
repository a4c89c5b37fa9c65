"""
Admission check: asks the service "may I send a snapshot now?"

Copyright (c) 2026 JL -- see NOTICE and LICENSE files.

Never raises. Every failure mode becomes a Deny with a wait so the send
loop always knows how long to back off. Waits are server-advised where
the response carries `nextCollectionAt` (epoch ms), fixed otherwise.
"""

from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

import httpx

from pgsend.client.base import ServiceClient

log = logging.getLogger(__name__)

ADMISSION_PATH = "/request-upload"

SHORT_WAIT_MS = 2500
# Account-level problems (suspended, unknown id) won't clear up in seconds
LONG_WAIT_MS = 30000


@dataclass(frozen=True)
class Proceed:
    pass


@dataclass(frozen=True)
class Deny:
    reason: str
    wait_ms: Optional[int] = None
    status: Optional[int] = None    # None for transport failures


AdmissionDecision = Union[Proceed, Deny]


def wait_until(next_collection_at, now_ms: float) -> Optional[int]:
    """Milliseconds until `next_collection_at`, floored at zero.

    Returns None when the value isn't a usable timestamp.
    """
    if isinstance(next_collection_at, bool) or not isinstance(next_collection_at, (int, float)):
        return None
    try:
        delta = float(next_collection_at) - now_ms
    except OverflowError:
        return None
    if not math.isfinite(delta):
        return None
    return max(0, int(delta))


class AdmissionClient(ServiceClient):

    def __init__(
        self,
        base_url: str,
        identity: str,
        timeout_seconds: float = 30.0,
        client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(base_url, identity, timeout_seconds=timeout_seconds, client=client)
        self._clock = clock

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def check(self) -> AdmissionDecision:
        try:
            response = self._get(ADMISSION_PATH)
        except Exception as e:
            return self._transport_failure(e)
        return self.interpret(response)

    def interpret(self, response: httpx.Response) -> AdmissionDecision:
        """Map a status-coded response onto Proceed / Deny."""
        status = response.status_code
        if 200 <= status < 300:
            return Proceed()

        data = self._json(response)
        error = data.get("error")

        if status == 403:
            reason = str(error or "Forbidden")
            if data.get("reason"):
                reason += f" ({data['reason']})"
            return Deny(reason, LONG_WAIT_MS, status)

        if status == 404:
            return Deny(str(error or "User not found"), LONG_WAIT_MS, status)

        if status == 429:
            wait_ms = wait_until(data.get("nextCollectionAt"), self._now_ms())
            return Deny(
                str(error or "Rate limit exceeded"),
                SHORT_WAIT_MS if wait_ms is None else wait_ms,
                status,
            )

        return Deny(str(error or f"HTTP {status}"), SHORT_WAIT_MS, status)

    def _transport_failure(self, exc: Exception) -> Deny:
        message = str(exc) or exc.__class__.__name__

        # Some proxies hand back the service's JSON as the error text;
        # honour its nextCollectionAt when it's there.
        try:
            parsed = json.loads(message)
        except ValueError:
            parsed = None

        if isinstance(parsed, dict):
            wait_ms = wait_until(parsed.get("nextCollectionAt"), self._now_ms())
            if wait_ms is not None:
                return Deny(str(parsed.get("error") or "Rate limit exceeded"), wait_ms)

        log.debug("Admission request failed: %r", exc)
        return Deny(message, SHORT_WAIT_MS)
