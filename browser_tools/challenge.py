# -*- coding: utf-8 -*-
"""Anti-bot challenge handler

Detects an anti-bot interstitial on a freshly captured page snapshot and,
when a human is available (headful mode), pauses for manual resolution
before re-checking exactly once.

    NORMAL -> CHALLENGE_DETECTED -> FATAL                      (headless)
                                 -> AWAITING_MANUAL_RESOLUTION -> RETRIED -> NORMAL | FATAL
"""

import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from browser_tools import utils
from browser_tools.manual import wait_for_user_signal

HEADLESS_HINT = (
    "Try running with residential proxies, solving the challenge in a browser "
    "and reusing cookies, or slowing down navigation."
)
MANUAL_HINT = "Solve it manually in the opened browser, then press Enter here to retry."
STILL_ACTIVE_HINT = (
    "Still active after manual retry. Try re-running once the challenge is fully cleared."
)


class ChallengeState(str, Enum):
    NORMAL = "normal"
    CHALLENGE_DETECTED = "challenge_detected"
    AWAITING_MANUAL_RESOLUTION = "awaiting_manual_resolution"
    RETRIED = "retried"
    FATAL = "fatal"


class ChallengeError(RuntimeError):
    """Anti-bot interstitial that could not be cleared"""

    def __init__(self, message: str, token: Optional[str] = None, still_active: bool = False):
        super().__init__(message)
        self.token = token
        self.still_active = still_active


def describe_challenge(token: Optional[str]) -> str:
    if token:
        return f"Encountered antibot challenge (token {token})."
    return "Encountered antibot challenge."


class ChallengeHandler:
    """Drive one page through the challenge state machine"""

    def __init__(
        self,
        page: Page,
        capture: Callable[[Page], Awaitable[Any]],
        headless: bool,
        timeout_ms: int,
        wait_for_signal: Callable[[], Awaitable[None]] = wait_for_user_signal,
    ):
        self.page = page
        self.capture = capture
        self.headless = headless
        self.timeout_ms = timeout_ms
        self.wait_for_signal = wait_for_signal
        self.state = ChallengeState.NORMAL
        self.trace: list[dict[str, Any]] = []
        self._started_at: float = 0.0

    def _transition(self, state: ChallengeState, note: str = "") -> None:
        self.state = state
        event: dict[str, Any] = {
            "state": state.value,
            "note": note,
            "ts": round(time.time(), 3),
        }
        if self._started_at > 0:
            event["elapsed_sec"] = round(max(0.0, time.monotonic() - self._started_at), 3)
        self.trace.append(event)
        utils.logger.debug(f"[ChallengeHandler] -> {state.value} {note}".rstrip())

    def _fail(self, message: str, token: Optional[str], still_active: bool = False) -> ChallengeError:
        self._transition(ChallengeState.FATAL, note=message)
        return ChallengeError(message, token=token, still_active=still_active)

    async def _wait_for_navigation(self) -> None:
        try:
            async with self.page.expect_navigation(wait_until="domcontentloaded", timeout=self.timeout_ms):
                pass
        except PlaywrightError:
            # re-evaluated regardless
            utils.logger.debug("[ChallengeHandler] No navigation after manual signal")

    async def resolve(self, snapshot: Any = None) -> Any:
        """
        Return a challenge-free snapshot or raise ChallengeError

        Args:
            snapshot: Snapshot captured right after navigation; captured
                here when omitted. Must expose is_challenge and
                challenge_token.

        Returns:
            The snapshot extraction should run against
        """
        self.trace = []
        self._started_at = time.monotonic()
        self.state = ChallengeState.NORMAL
        if snapshot is None:
            snapshot = await self.capture(self.page)

        if not snapshot.is_challenge:
            self._transition(ChallengeState.NORMAL, note="no challenge")
            return snapshot

        token = snapshot.challenge_token
        details = describe_challenge(token)
        self._transition(ChallengeState.CHALLENGE_DETECTED, note=details)

        if self.headless:
            raise self._fail(f"{details} {HEADLESS_HINT}", token)

        utils.logger.warning(f"[ChallengeHandler] {details} {MANUAL_HINT}")
        self._transition(ChallengeState.AWAITING_MANUAL_RESOLUTION, note="waiting for operator")
        try:
            await self.page.bring_to_front()
        except PlaywrightError as e:
            utils.logger.debug(f"[ChallengeHandler] Failed to bring window to front: {utils.describe_error(e)}")
        await self.wait_for_signal()

        await self._wait_for_navigation()
        snapshot = await self.capture(self.page)
        self._transition(ChallengeState.RETRIED, note="re-captured after manual signal")

        if snapshot.is_challenge:
            raise self._fail(f"{details} {STILL_ACTIVE_HINT}", snapshot.challenge_token or token, still_active=True)

        utils.logger.info("[ChallengeHandler] Challenge cleared after manual retry")
        self._transition(ChallengeState.NORMAL, note="cleared after manual retry")
        return snapshot
