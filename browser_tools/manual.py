# -*- coding: utf-8 -*-
"""Operator hand-off helpers

Blocking points where a human works in the headful browser window and the
terminal waits for a signal to continue.
"""

import asyncio
import sys
import threading
from typing import Any, Optional, TextIO

from browser_tools import utils

USER_SIGNAL_FALLBACK_SEC = 30.0
HEADFUL_FALLBACK_SEC = 120.0


def is_interactive(stream: Optional[TextIO] = None) -> bool:
    stream = stream or sys.stdin
    try:
        return bool(stream.isatty())
    except (AttributeError, ValueError):
        return False


def _read_line_in_background(stream: TextIO) -> "asyncio.Future[str]":
    """
    Read one line on a daemon thread

    A blocked readline() cannot be cancelled, so it must not live in the
    loop's default executor (that would stall interpreter shutdown).
    """
    loop = asyncio.get_running_loop()
    future: "asyncio.Future[str]" = loop.create_future()

    def _deliver(line: str) -> None:
        if not future.done():
            future.set_result(line)

    def _reader() -> None:
        try:
            line = stream.readline()
        except (OSError, ValueError):
            line = ""
        try:
            loop.call_soon_threadsafe(_deliver, line)
        except RuntimeError:
            # loop already closed
            return

    threading.Thread(target=_reader, name="operator-signal", daemon=True).start()
    return future


async def wait_for_user_signal(
    stream: Optional[TextIO] = None,
    fallback_delay_sec: float = USER_SIGNAL_FALLBACK_SEC,
) -> None:
    """Wait for one line on an interactive terminal, else sleep a fixed delay"""
    stream = stream or sys.stdin
    if not is_interactive(stream):
        utils.logger.info(
            f"[Operator] Non-interactive terminal, waiting {fallback_delay_sec:.0f}s before retrying"
        )
        await asyncio.sleep(fallback_delay_sec)
        return
    await _read_line_in_background(stream)


async def wait_for_headful_browser(
    browser: Any,
    stream: Optional[TextIO] = None,
    fallback_delay_sec: float = HEADFUL_FALLBACK_SEC,
) -> None:
    """
    Keep a headful browser open until the operator is done with it

    Resumes on the first of: a line of terminal input, the browser
    disconnecting, or (non-interactive terminal) the fallback delay.
    """
    stream = stream or sys.stdin
    utils.logger.info(
        "[Operator] Headful mode enabled. Interact with the browser window. "
        "Press Enter here (or close the browser) to continue."
    )

    loop = asyncio.get_running_loop()
    disconnected: "asyncio.Future[None]" = loop.create_future()

    def _on_disconnected(*_: Any) -> None:
        if not disconnected.done():
            disconnected.set_result(None)

    browser.on("disconnected", _on_disconnected)
    if not browser.is_connected():
        _on_disconnected()

    if is_interactive(stream):
        signal: "asyncio.Future[Any]" = _read_line_in_background(stream)
    else:
        signal = asyncio.ensure_future(asyncio.sleep(fallback_delay_sec))

    try:
        await asyncio.wait({disconnected, signal}, return_when=asyncio.FIRST_COMPLETED)
        if signal.done() and not disconnected.done() and not is_interactive(stream):
            utils.logger.warning(
                f"[Operator] Non-interactive terminal detected. Auto-closing browser after {fallback_delay_sec:.0f}s."
            )
    finally:
        for pending in (disconnected, signal):
            if not pending.done():
                pending.cancel()
        try:
            browser.remove_listener("disconnected", _on_disconnected)
        except Exception:
            utils.logger.debug("[Operator] Disconnect listener already removed")
