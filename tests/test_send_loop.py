"""Tests for the send loop state machine, using in-memory fakes."""

from pathlib import Path

import pytest

from pgsend.client.admission import LONG_WAIT_MS, Deny, Proceed
from pgsend.collector.base import CollectionError, SnapshotCollector
from pgsend.sender.loop import MIN_YIELD_SECONDS, RETRY_SECONDS, LoopState, SendLoop

TARGET = "https://bucket1.storage.example/abc123.json?sig=x"


class _FakeAdmission:
    def __init__(self, *decisions):
        self._decisions = list(decisions) or [Proceed()]
        self.calls = 0

    def check(self):
        self.calls += 1
        decision = self._decisions[min(self.calls, len(self._decisions)) - 1]
        if isinstance(decision, BaseException):
            raise decision
        return decision


class _FakeUploader:
    def __init__(self, url=TARGET, uploaded=True, confirmed=True):
        self.url = url
        self.uploaded = uploaded
        self.confirmed = confirmed
        self.events = []

    def request_upload_target(self, size):
        self.events.append(("target", size))
        return self.url

    def upload(self, url, payload):
        self.events.append(("upload", url, payload))
        return self.uploaded

    def confirm_upload(self, url):
        self.events.append(("confirm", url))
        return self.confirmed


class _FakeCollector(SnapshotCollector):
    def __init__(self, payload=b'{"ok": true}', error=None, partial=False):
        self.payload = payload
        self.error = error
        self.partial = partial
        self.paths = []

    def collect(self, destination: Path) -> None:
        self.paths.append(destination)
        if self.partial:
            destination.write_bytes(b"{")
        if self.error:
            raise CollectionError(self.error)
        destination.write_bytes(self.payload)

    def name(self) -> str:
        return "fake"


def _make_loop(tmp_path, admission=None, uploader=None, collector=None):
    sleeps = []
    loop = SendLoop(
        "srv-1",
        admission or _FakeAdmission(),
        uploader or _FakeUploader(),
        collector or _FakeCollector(),
        sleep=sleeps.append,
        temp_dir=str(tmp_path),
    )
    return loop, sleeps


def test_happy_path_runs_every_stage(tmp_path):
    payload = b'{"databases": []}' * 100
    uploader = _FakeUploader()
    collector = _FakeCollector(payload=payload)
    loop, sleeps = _make_loop(tmp_path, uploader=uploader, collector=collector)

    result = loop.step()

    assert result.completed
    assert result.state == LoopState.CONFIRMING
    assert result.snapshot_size == len(payload)
    assert result.uploaded is True
    assert result.confirmed is True
    assert uploader.events == [
        ("target", len(payload)),
        ("upload", TARGET, payload),
        ("confirm", TARGET),
    ]
    assert sleeps == [RETRY_SECONDS]
    assert not collector.paths[0].exists()
    assert list(tmp_path.iterdir()) == []


def test_temp_file_gone_before_any_network_call(tmp_path):
    collector = _FakeCollector()
    seen_exists = []

    class _CheckingUploader(_FakeUploader):
        def request_upload_target(self, size):
            seen_exists.append(collector.paths[-1].exists())
            return super().request_upload_target(size)

    loop, _ = _make_loop(tmp_path, uploader=_CheckingUploader(), collector=collector)
    loop.step()

    assert seen_exists == [False]


def test_temp_path_is_unique_per_attempt(tmp_path):
    collector = _FakeCollector()
    loop, _ = _make_loop(tmp_path, collector=collector)

    loop.step()
    loop.step()

    assert collector.paths[0] != collector.paths[1]
    assert "srv-1" in collector.paths[0].name


def test_forbidden_waits_and_skips_collection(tmp_path):
    collector = _FakeCollector()
    uploader = _FakeUploader()
    admission = _FakeAdmission(Deny("Forbidden (suspended)", LONG_WAIT_MS, 403))
    loop, sleeps = _make_loop(tmp_path, admission, uploader, collector)

    result = loop.step()

    assert result.state == LoopState.CHECKING_ADMISSION
    assert result.denial.reason == "Forbidden (suspended)"
    assert sleeps == [pytest.approx(30.0)]
    assert collector.paths == []
    assert uploader.events == []


def test_denial_without_wait_yields_minimum(tmp_path):
    loop, sleeps = _make_loop(tmp_path, _FakeAdmission(Deny("nope", None)))
    loop.step()
    assert sleeps == [MIN_YIELD_SECONDS]


def test_zero_wait_is_floored(tmp_path):
    loop, sleeps = _make_loop(tmp_path, _FakeAdmission(Deny("Rate limit exceeded", 0, 429)))
    loop.step()
    assert sleeps == [MIN_YIELD_SECONDS]


def test_identical_denials_give_identical_sleeps(tmp_path):
    denial = Deny("Rate limit exceeded", 5000, 429)
    loop, sleeps = _make_loop(tmp_path, _FakeAdmission(denial, denial, denial))
    for _ in range(3):
        loop.step()
    assert sleeps == [5.0, 5.0, 5.0]


def test_collection_failure_skips_upload_and_cleans_up(tmp_path):
    collector = _FakeCollector(error="connection refused", partial=True)
    uploader = _FakeUploader()
    loop, sleeps = _make_loop(tmp_path, uploader=uploader, collector=collector)

    result = loop.step()

    assert result.state == LoopState.COLLECTING
    assert result.error == "connection refused"
    assert uploader.events == []
    assert sleeps == [RETRY_SECONDS]
    assert not collector.paths[0].exists()


def test_no_upload_target_retries_after_short_wait(tmp_path):
    uploader = _FakeUploader(url=None)
    loop, sleeps = _make_loop(tmp_path, uploader=uploader)

    result = loop.step()

    assert result.state == LoopState.REQUESTING_TARGET
    assert result.error is None
    assert [e[0] for e in uploader.events] == ["target"]
    assert sleeps == [RETRY_SECONDS]


def test_failed_upload_still_confirms(tmp_path):
    uploader = _FakeUploader(uploaded=False, confirmed=False)
    loop, sleeps = _make_loop(tmp_path, uploader=uploader)

    result = loop.step()

    assert result.uploaded is False
    assert result.confirmed is False
    assert [e[0] for e in uploader.events] == ["target", "upload", "confirm"]
    assert sleeps == [RETRY_SECONDS]


def test_unexpected_error_is_contained(tmp_path):
    loop, sleeps = _make_loop(tmp_path, _FakeAdmission(RuntimeError("kaboom"), Proceed()))

    first = loop.step()
    second = loop.step()

    assert first.error == "kaboom"
    assert sleeps[0] == RETRY_SECONDS
    assert second.completed


def test_run_once_restarts_at_admission(tmp_path):
    admission = _FakeAdmission()
    loop, _ = _make_loop(tmp_path, admission)
    loop.run_once()
    loop.run_once()
    assert admission.calls == 2


def test_keyboard_interrupt_is_not_swallowed(tmp_path):
    loop, _ = _make_loop(tmp_path, _FakeAdmission(KeyboardInterrupt()))
    with pytest.raises(KeyboardInterrupt):
        loop.step()
