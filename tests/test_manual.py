"""Operator waits: terminal signal, non-interactive fallback, browser disconnect."""

import asyncio
import io

import pytest

from browser_tools.manual import is_interactive, wait_for_headful_browser, wait_for_user_signal
from fakes import FakeBrowser

pytestmark = pytest.mark.unit


class TtyStream(io.StringIO):
    def isatty(self):
        return True


def test_is_interactive():
    assert is_interactive(TtyStream())
    assert not is_interactive(io.StringIO())


def test_user_signal_reads_one_line():
    stream = TtyStream("\n")
    asyncio.run(asyncio.wait_for(wait_for_user_signal(stream), timeout=5))
    assert stream.tell() == 1


def test_user_signal_falls_back_to_delay():
    asyncio.run(asyncio.wait_for(wait_for_user_signal(io.StringIO(), fallback_delay_sec=0.01), timeout=5))


class TestHeadfulWait:
    def test_returns_on_disconnect(self):
        browser = FakeBrowser()

        async def scenario():
            waiter = asyncio.ensure_future(
                wait_for_headful_browser(browser, io.StringIO(), fallback_delay_sec=60)
            )
            await asyncio.sleep(0)
            await browser.close()
            await asyncio.wait_for(waiter, timeout=5)

        asyncio.run(scenario())
        assert browser.removed_listeners == ["disconnected"]

    def test_already_disconnected_returns_immediately(self):
        browser = FakeBrowser(connected=False)
        asyncio.run(asyncio.wait_for(
            wait_for_headful_browser(browser, io.StringIO(), fallback_delay_sec=60), timeout=5
        ))

    def test_non_interactive_fallback(self, caplog):
        browser = FakeBrowser()
        with caplog.at_level("WARNING", logger="ozon_card"):
            asyncio.run(wait_for_headful_browser(browser, io.StringIO(), fallback_delay_sec=0.01))
        assert "Auto-closing browser" in caplog.text
        assert browser.listeners["disconnected"] == []

    def test_enter_resumes(self):
        browser = FakeBrowser()
        asyncio.run(asyncio.wait_for(
            wait_for_headful_browser(browser, TtyStream("\n"), fallback_delay_sec=60), timeout=5
        ))
        assert browser.close_calls == 0
