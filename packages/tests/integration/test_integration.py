"""Integration tests — replaying a recorded session under virtual time.

Validates the complete flow: derive the base time from a HAR recording
→ install the controller → advance virtual time → replay entries with
shifted timestamps → let client code relying on the controller's clock
and timers react to them.

Test Techniques Used:
    - Integration Testing: end-to-end replay via ReplayHarness and the
      HAR adapter.
    - State-based Testing: client state after timers fire.
    - Protocol Conformance: the controller's clock satisfies ClockPort.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator
from datetime import datetime, timedelta
from typing import Any

import pytest

from chronoplay import (
    ClockPort,
    TimeController,
    TimerHandle,
    recording_start,
    replay_har_entry,
)
from chronoplay.testing import ReplayHarness

pytestmark = pytest.mark.integration

# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------


def _entry(started: str, url: str, body: dict[str, Any]) -> dict[str, Any]:
    return {
        "startedDateTime": started,
        "time": 42,
        "request": {"method": "GET", "url": url, "headers": []},
        "response": {
            "status": 200,
            "content": {"mimeType": "application/json", "text": json.dumps(body)},
        },
    }


RECORDING = [
    _entry(
        "2025-01-15T10:00:05.000Z",
        "https://api.example.com/me",
        {
            "name": "Ada",
            "birthDate": "1990-05-01T00:00:00.000Z",
            "lastSeen": "2025-01-15T09:59:00.000Z",
        },
    ),
    _entry(
        "2025-01-15T10:00:00.000Z",
        "https://api.example.com/login",
        {
            "token": "abc",
            "issuedAt": "2025-01-15T10:00:00.000Z",
            "expiresAt": "2025-01-15T11:00:00.000Z",
        },
    ),
]

# ---------------------------------------------------------------------------
# Client under test
# ---------------------------------------------------------------------------


class TokenSession:
    """Minimal API client session that refreshes its token before expiry."""

    REFRESH_MARGIN = timedelta(minutes=1)

    def __init__(self, clock: ClockPort, controller: TimeController) -> None:
        self._clock = clock
        self._controller = controller
        self._refresh: TimerHandle | None = None
        self.expires_at: datetime | None = None
        self.refreshes = 0

    def accept(self, login_body: str) -> None:
        payload = json.loads(login_body)
        self.expires_at = datetime.fromisoformat(payload["expiresAt"])
        self._controller.cancel(self._refresh)
        self._refresh = self._controller.call_at(
            self.expires_at - self.REFRESH_MARGIN, self._on_refresh
        )

    def is_valid(self) -> bool:
        return self.expires_at is not None and self._clock.now() < self.expires_at

    def _on_refresh(self) -> None:
        self.refreshes += 1


@pytest.fixture
def harness() -> Iterator[ReplayHarness]:
    h = ReplayHarness.create(
        captured_at=recording_start(RECORDING), exclude_keys=["birthDate"]
    )
    yield h
    h.close()


def _replayed(harness: ReplayHarness, url_suffix: str) -> dict[str, Any]:
    entry = next(e for e in RECORDING if e["request"]["url"].endswith(url_suffix))
    replayed = replay_har_entry(entry, harness.virtualizer)
    return json.loads(replayed["response"]["content"]["text"])


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestRecordingBase:
    """Base time comes from the earliest entry, not the first listed."""

    def test_installed_at_recording_start(self, harness: ReplayHarness) -> None:
        assert harness.controller.now() == datetime.fromisoformat(
            "2025-01-15T10:00:00+00:00"
        )

    def test_clock_is_clock_port(self, harness: ReplayHarness) -> None:
        assert isinstance(harness.controller.clock, ClockPort)


class TestTokenExpiry:
    """A replayed token stays valid for the recorded lifetime."""

    async def test_token_relative_to_virtual_now(self, harness: ReplayHarness) -> None:
        session = TokenSession(harness.controller.clock, harness.controller)
        await harness.time.advance("30 minutes")

        login = _replayed(harness, "/login")
        session.accept(json.dumps(login))

        assert login["issuedAt"] == "2025-01-15T10:30:00.000Z"
        assert login["expiresAt"] == "2025-01-15T11:30:00.000Z"
        assert session.is_valid()

    async def test_refresh_fires_before_expiry(self, harness: ReplayHarness) -> None:
        session = TokenSession(harness.controller.clock, harness.controller)
        await harness.time.advance("30m")
        session.accept(json.dumps(_replayed(harness, "/login")))

        await harness.time.advance("58 minutes")
        assert session.refreshes == 0

        await harness.time.advance("1 minute")
        assert session.refreshes == 1
        assert session.is_valid()

        await harness.time.advance("1 minute")
        assert not session.is_valid()
        assert harness.controller.pending_timers == 0

    async def test_re_login_reschedules(self, harness: ReplayHarness) -> None:
        session = TokenSession(harness.controller.clock, harness.controller)
        session.accept(json.dumps(_replayed(harness, "/login")))

        await harness.time.advance("30m")
        session.accept(json.dumps(_replayed(harness, "/login")))
        await harness.time.flush()

        assert session.refreshes == 1
        assert harness.controller.now_ms() == (
            harness.captured_at_ms + 30 * 60_000 + 59 * 60_000
        )


class TestExclusions:
    """Historical fields keep their recorded values."""

    async def test_birth_date_untouched(self, harness: ReplayHarness) -> None:
        await harness.time.advance("1 day")

        profile = _replayed(harness, "/me")

        assert profile["birthDate"] == "1990-05-01T00:00:00.000Z"
        # captured 5s after recording start, replayed one day later
        assert profile["lastSeen"] == "2025-01-16T09:58:55.000Z"
        assert profile["name"] == "Ada"

    def test_recording_not_mutated(self, harness: ReplayHarness) -> None:
        before = json.dumps(RECORDING)
        _replayed(harness, "/me")
        assert json.dumps(RECORDING) == before


class TestConcurrentClients:
    """Tasks sleeping on the controller wake only when time is advanced."""

    async def test_poller_and_sleeper(self, virtual_clock: TimeController) -> None:
        polls: list[int | float] = []
        woke_at: list[int | float] = []

        def poll() -> None:
            polls.append(virtual_clock.elapsed())

        async def backoff() -> None:
            await virtual_clock.sleep("5s")
            woke_at.append(virtual_clock.elapsed())

        poller = virtual_clock.call_every("2s", poll)
        task = asyncio.create_task(backoff())
        await asyncio.sleep(0)

        await virtual_clock.advance("4s")
        assert len(polls) == 2
        assert woke_at == []

        await virtual_clock.advance("2s")
        await task
        virtual_clock.cancel(poller)

        assert woke_at == [5000]
        assert polls == [2000, 4000, 6000]
        assert virtual_clock.pending_timers == 0

    async def test_refresh_loop_with_io_between_sleeps(
        self, harness: ReplayHarness
    ) -> None:
        """A client awaiting replayed I/O between sleeps keeps its cadence."""
        controller = harness.controller
        refreshed_at: list[int | float] = []

        async def fetch_login() -> dict[str, Any]:
            # stands in for the HTTP round trip the replay layer serves
            for _ in range(3):
                await asyncio.sleep(0)
            return _replayed(harness, "/login")

        async def refresher() -> None:
            for _ in range(3):
                login = await fetch_login()
                expires_at = datetime.fromisoformat(login["expiresAt"])
                refreshed_at.append(controller.elapsed())
                wait = expires_at - controller.now() - timedelta(minutes=1)
                await controller.sleep(int(wait.total_seconds() * 1000))

        task = asyncio.create_task(refresher())
        await harness.time.advance("3 hours")

        assert refreshed_at == [0, 59 * 60_000, 2 * 59 * 60_000]
        assert task.done()
        await task
        assert controller.pending_timers == 0
