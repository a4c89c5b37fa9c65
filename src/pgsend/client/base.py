"""
Shared plumbing for talking to the collection service: one httpx client,
the identity header, and forgiving JSON parsing of response bodies.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

import httpx

log = logging.getLogger(__name__)

IDENTITY_HEADER = "x-server-id"


class ServiceClient:

    def __init__(
        self,
        base_url: str,
        identity: str,
        timeout_seconds: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._identity = identity
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout_seconds)

    @property
    def identity(self) -> str:
        return self._identity

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _get(self, path: str, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        all_headers = {IDENTITY_HEADER: self._identity}
        if headers:
            all_headers.update(headers)
        return self._client.get(self._url(path), headers=all_headers)

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        """Body as a dict, or {} if it isn't a JSON object."""
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def close(self):
        if self._owns_client:
            self._client.close()
