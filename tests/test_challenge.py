"""Challenge state machine: headless fails fast, headful retries exactly once."""

import asyncio

import pytest

from browser_tools.challenge import (
    ChallengeError,
    ChallengeHandler,
    ChallengeState,
    describe_challenge,
)
from fakes import FakePage, SignalRecorder, make_capture
from ozon_card.extraction import build_snapshot

pytestmark = pytest.mark.unit

CHALLENGE = build_snapshot(make_capture(title="Antibot Challenge Page", token="tok-42"))
CLEAN = build_snapshot(make_capture(title="Кеды adidas"))


class ScriptedCapture:
    """Returns the queued snapshots in order, repeating the last one"""

    def __init__(self, *snapshots):
        self.snapshots = list(snapshots)
        self.calls = 0

    async def __call__(self, page):
        self.calls += 1
        if len(self.snapshots) > 1:
            return self.snapshots.pop(0)
        return self.snapshots[0]


def make_handler(capture, headless, signal=None, page=None):
    return ChallengeHandler(
        page or FakePage(),
        capture,
        headless=headless,
        timeout_ms=50,
        wait_for_signal=signal or SignalRecorder(),
    )


class TestHeadless:
    def test_raises_without_waiting(self):
        capture = ScriptedCapture(CLEAN)
        signal = SignalRecorder()
        handler = make_handler(capture, headless=True, signal=signal)

        with pytest.raises(ChallengeError) as excinfo:
            asyncio.run(handler.resolve(CHALLENGE))

        assert "token tok-42" in str(excinfo.value)
        assert "residential proxies" in str(excinfo.value)
        assert excinfo.value.token == "tok-42"
        assert not excinfo.value.still_active
        assert signal.calls == 0
        assert capture.calls == 0
        assert handler.state is ChallengeState.FATAL

    def test_clean_page_passes_through(self):
        handler = make_handler(ScriptedCapture(CLEAN), headless=True)
        assert asyncio.run(handler.resolve(CLEAN)) is CLEAN
        assert handler.state is ChallengeState.NORMAL

    def test_captures_when_no_snapshot_given(self):
        capture = ScriptedCapture(CLEAN)
        handler = make_handler(capture, headless=True)
        asyncio.run(handler.resolve())
        assert capture.calls == 1


class TestHeadful:
    def test_cleared_after_manual_retry(self):
        page = FakePage()
        capture = ScriptedCapture(CLEAN)
        signal = SignalRecorder()
        handler = make_handler(capture, headless=False, signal=signal, page=page)

        result = asyncio.run(handler.resolve(CHALLENGE))

        assert result is CLEAN
        assert signal.calls == 1
        assert capture.calls == 1
        assert page.brought_to_front == 1
        assert [event["state"] for event in handler.trace] == [
            "challenge_detected",
            "awaiting_manual_resolution",
            "retried",
            "normal",
        ]

    def test_still_active_after_single_retry(self):
        capture = ScriptedCapture(CHALLENGE)
        signal = SignalRecorder()
        handler = make_handler(capture, headless=False, signal=signal)

        with pytest.raises(ChallengeError) as excinfo:
            asyncio.run(handler.resolve(CHALLENGE))

        assert "still active after manual retry" in str(excinfo.value).lower()
        assert excinfo.value.still_active
        assert signal.calls == 1
        assert capture.calls == 1
        assert handler.trace[-1]["state"] == "fatal"

    def test_navigation_timeout_after_signal_is_ignored(self):
        page = FakePage(navigation_times_out=True)
        handler = make_handler(ScriptedCapture(CLEAN), headless=False, page=page)
        assert asyncio.run(handler.resolve(CHALLENGE)) is CLEAN

    def test_reevaluation_follows_signal(self):
        order = []

        async def signal():
            order.append("signal")

        async def capture(page):
            order.append("capture")
            return CLEAN

        handler = make_handler(capture, headless=False, signal=signal)
        asyncio.run(handler.resolve(CHALLENGE))
        assert order == ["signal", "capture"]


def test_describe_challenge():
    assert describe_challenge("x1") == "Encountered antibot challenge (token x1)."
    assert describe_challenge(None) == "Encountered antibot challenge."
