"""
Fake collection service for running the sender without the real backend.

    python -m pgsend.mock.fake_service
    pgsend --mock --server-id dev --api-base-url http://127.0.0.1:9200

Serves the admission, upload-url and finished-upload endpoints, and acts
as the storage host the issued upload URLs point at.
"""

from __future__ import annotations

import json
import threading
import time
import uuid
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlsplit


class ServiceState:
    """Knobs for the fake's behaviour plus a record of what it saw."""

    def __init__(
        self,
        admission_status: int = 200,
        admission_body: Optional[dict] = None,
        target_status: int = 200,
        upload_status: int = 200,
        finish_status: int = 200,
        rate_limit_ms: int = 0,
    ):
        self.admission_status = admission_status
        self.admission_body = admission_body
        self.target_status = target_status
        self.upload_status = upload_status
        self.finish_status = finish_status
        # If > 0, admit one upload per window and 429 the rest
        self.rate_limit_ms = rate_limit_ms

        self.lock = threading.Lock()
        self.requests: List[Tuple[str, str, Dict[str, str]]] = []
        self.issued: Dict[str, int] = {}        # key -> announced size
        self.uploads: Dict[str, bytes] = {}     # key -> payload
        self.finished: List[Tuple[str, str]] = []
        self._next_allowed_ms = 0.0


class FakeServiceServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: Tuple[str, int], state: Optional[ServiceState] = None):
        super().__init__(address, _ServiceHandler)
        self.state = state or ServiceState()

    @property
    def base_url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"


class _ServiceHandler(BaseHTTPRequestHandler):
    server: FakeServiceServer

    def _send_json(self, status: int, body: Optional[dict] = None):
        data = json.dumps(body or {}).encode()
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def _record(self):
        state = self.server.state
        with state.lock:
            state.requests.append((self.command, self.path, dict(self.headers.items())))

    def do_GET(self):
        self._record()
        path = urlsplit(self.path).path
        server_id = self.headers.get("x-server-id")

        if path == "/request-upload":
            self._admission(server_id)
        elif path == "/request-upload-url":
            self._upload_url(server_id)
        elif path == "/finished-upload":
            self._finished(server_id)
        else:
            self._send_json(404, {"error": "Not found"})

    def do_PUT(self):
        self._record()
        state = self.server.state
        key = urlsplit(self.path).path[1:].split(".")[0]
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length)

        if key not in state.issued:
            self._send_json(403, {"error": "Unknown upload key"})
            return
        if 200 <= state.upload_status < 300:
            with state.lock:
                state.uploads[key] = body
        self._send_json(state.upload_status)

    def _admission(self, server_id: Optional[str]):
        state = self.server.state
        if not server_id:
            self._send_json(404, {"error": "User not found"})
            return
        if state.admission_status != 200:
            self._send_json(state.admission_status, state.admission_body)
            return

        if state.rate_limit_ms:
            now_ms = time.time() * 1000
            with state.lock:
                if now_ms < state._next_allowed_ms:
                    self._send_json(429, {
                        "error": "Rate limit exceeded",
                        "nextCollectionAt": int(state._next_allowed_ms),
                    })
                    return
                state._next_allowed_ms = now_ms + state.rate_limit_ms
        self._send_json(200, {"ok": True})

    def _upload_url(self, server_id: Optional[str]):
        state = self.server.state
        if state.target_status != 200:
            self._send_json(state.target_status, {"error": f"HTTP {state.target_status}"})
            return

        key = uuid.uuid4().hex
        with state.lock:
            state.issued[key] = int(self.headers.get("x-content-length") or 0)
        url = f"{self.server.base_url}/{key}.json?sig=fake-{server_id}"
        self._send_json(200, {"url": url})

    def _finished(self, server_id: Optional[str]):
        state = self.server.state
        key = self.headers.get("x-key", "")
        bucket = self.headers.get("x-bucket", "")
        with state.lock:
            state.finished.append((key, bucket))
        self._send_json(state.finish_status, {"ok": 200 <= state.finish_status < 300})

    def log_message(self, format, *args):
        pass  # Suppress request logging noise


def start_in_thread(state: Optional[ServiceState] = None, port: int = 0) -> FakeServiceServer:
    """Start a fake service on 127.0.0.1 (ephemeral port by default)."""
    server = FakeServiceServer(("127.0.0.1", port), state)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server


def run_fake_service(host: str = "127.0.0.1", port: int = 9200):
    server = FakeServiceServer((host, port), ServiceState(rate_limit_ms=10_000))
    print(f"Fake collection service running at {server.base_url}")
    print("Admitting one upload every 10s. Press Ctrl+C to stop.\n")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    server.server_close()
    print(f"\nServer stopped. {len(server.state.uploads)} uploads received.")


if __name__ == "__main__":
    run_fake_service()
