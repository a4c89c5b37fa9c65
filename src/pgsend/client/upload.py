"""
Upload handshake: get a write URL, PUT the snapshot, confirm completion.

Copyright (c) 2026 JL -- see NOTICE and LICENSE files.

None of these retry. Each returns a plain outcome and the send loop
decides what to do about it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

import httpx

from pgsend.client.base import ServiceClient

log = logging.getLogger(__name__)

UPLOAD_URL_PATH = "/request-upload-url"
FINISHED_PATH = "/finished-upload"


@dataclass(frozen=True)
class StorageLocation:
    key: str
    bucket: str


def storage_location(url: str) -> StorageLocation:
    """Derive the storage key and bucket from an upload URL.

    key    = path without the leading slash, up to the first "."
    bucket = host, up to the first "."

    e.g. https://bucket1.storage.example/abc123.json?sig=x -> (abc123, bucket1)
    """
    parts = urlsplit(url)
    key = parts.path[1:].split(".")[0]
    bucket = parts.netloc.split(".")[0]
    return StorageLocation(key=key, bucket=bucket)


class UploadClient(ServiceClient):

    def request_upload_target(self, size: int) -> Optional[str]:
        """Ask for a URL to PUT `size` bytes to. None means no target this cycle."""
        try:
            response = self._get(UPLOAD_URL_PATH, {"x-content-length": str(size)})
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log.warning("Get upload url failed: %s", e)
            return None

        data = self._json(response)
        status = response.status_code

        if status == 403:
            reason = f" ({data['reason']})" if data.get("reason") else ""
            log.warning("Get upload url failed: %s%s", data.get("error") or "Forbidden", reason)
            return None
        if status == 404:
            log.warning("Get upload url failed: %s", data.get("error") or "User not found")
            return None
        if not response.is_success:
            log.warning("Get upload url failed: %s", data.get("error") or f"HTTP {status}")
            return None

        url = data.get("url")
        if not url or not isinstance(url, str):
            log.warning("Get upload url failed: response had no url")
            return None
        return url

    def upload(self, url: str, payload: bytes) -> bool:
        """Single PUT of the raw payload. True if storage accepted it."""
        try:
            response = self._client.put(
                url,
                content=payload,
                headers={"Content-Type": "application/json"},
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log.warning("Upload file failed: %s", e)
            return False

        if not response.is_success:
            log.warning("Upload file failed: HTTP %d", response.status_code)
        return response.is_success

    def confirm_upload(self, url: str) -> bool:
        try:
            location = storage_location(url)
            response = self._get(
                FINISHED_PATH,
                {"x-key": location.key, "x-bucket": location.bucket},
            )
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            log.warning("Finished upload failed: %s", e)
            return False
        return response.is_success
