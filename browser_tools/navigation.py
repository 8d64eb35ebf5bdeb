# -*- coding: utf-8 -*-
"""Anchor navigation

Instead of page.goto(target), load a blank document, inject a hidden <a>
pointing at the target and click it. The browser then records a
user-initiated navigation rather than a scripted one.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Optional, Type

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from browser_tools import utils

BLANK_URL = "about:blank"
SETTLE_DELAY_SEC = 1.0

SAME_TAB = "same-tab"
NEW_TAB = "new-tab"

CLICK_ANCHOR_JS = """
({ url, newTab }) => {
  const anchor = document.createElement('a');
  anchor.href = url;
  if (newTab) {
    anchor.target = '_blank';
    anchor.rel = 'noopener noreferrer';
  }
  anchor.style.display = 'none';
  (document.body || document.documentElement).appendChild(anchor);
  anchor.click();
  return true;
}
"""

DOM_READY_JS = "() => document.readyState === 'interactive' || document.readyState === 'complete'"


class NavigationTimeout(TimeoutError):
    """No page came out of a navigation the caller cannot do without"""


class AnchorNavigator:
    """Base strategy: blank pre-load, settle delay, synthetic anchor click"""

    name = ""
    new_tab = False

    def __init__(
        self,
        timeout_ms: int,
        settle_delay_sec: float = SETTLE_DELAY_SEC,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.timeout_ms = timeout_ms
        self.settle_delay_sec = settle_delay_sec
        self._sleep = sleep

    async def navigate(self, page: Page, url: str) -> Optional[Page]:
        raise NotImplementedError

    async def _prepare(self, page: Page) -> None:
        try:
            await page.goto(BLANK_URL, wait_until="domcontentloaded", timeout=self.timeout_ms)
        except PlaywrightError as e:
            utils.logger.warning(f"[Navigation] {BLANK_URL} pre-nav failed (continuing): {utils.describe_error(e)}")
        await self._sleep(self.settle_delay_sec)

    async def _click_anchor(self, page: Page, url: str) -> None:
        try:
            await page.evaluate(CLICK_ANCHOR_JS, {"url": url, "newTab": self.new_tab})
        except PlaywrightTimeoutError:
            raise
        except PlaywrightError as e:
            # the click may tear down the execution context it ran in
            utils.logger.debug(f"[Navigation] Anchor click evaluation interrupted: {utils.describe_error(e)}")


class SameTabNavigator(AnchorNavigator):
    """Navigate in place; a timeout is logged and the page is returned anyway"""

    name = SAME_TAB
    new_tab = False

    async def navigate(self, page: Page, url: str) -> Optional[Page]:
        await self._prepare(page)
        try:
            async with page.expect_navigation(wait_until="domcontentloaded", timeout=self.timeout_ms):
                await self._click_anchor(page, url)
        except PlaywrightTimeoutError as e:
            utils.logger.warning(
                f"[Navigation] Timed out waiting for page to load via anchor ({url}): {utils.describe_error(e)}"
            )
        return page


class NewTabNavigator(AnchorNavigator):
    """Open the target in a new tab; returns None when no tab shows up in time"""

    name = NEW_TAB
    new_tab = True

    async def navigate(self, page: Page, url: str) -> Optional[Page]:
        await self._prepare(page)
        context = page.context
        try:
            # listener is registered on entry, before the click is dispatched
            async with context.expect_page(timeout=self.timeout_ms) as page_info:
                await self._click_anchor(page, url)
            new_page = await page_info.value
        except PlaywrightError as e:
            utils.logger.warning(f"[Navigation] Failed to capture tab for {url}: {utils.describe_error(e)}")
            return None

        try:
            await new_page.bring_to_front()
        except PlaywrightError:
            utils.logger.debug("[Navigation] bring_to_front failed, ignoring")

        await self._wait_dom_ready(new_page, url)
        return new_page

    async def _wait_dom_ready(self, page: Page, url: str) -> None:
        try:
            await page.wait_for_load_state("domcontentloaded", timeout=self.timeout_ms)
            return
        except PlaywrightError:
            utils.logger.debug(f"[Navigation] Load state wait failed on {url}, polling readyState")
        try:
            await page.wait_for_function(DOM_READY_JS, timeout=self.timeout_ms)
        except PlaywrightError as e:
            utils.logger.warning(f"[Navigation] Timeout waiting DOM on {url}: {utils.describe_error(e)}")


NAVIGATORS: Dict[str, Type[AnchorNavigator]] = {
    SAME_TAB: SameTabNavigator,
    NEW_TAB: NewTabNavigator,
}


def get_navigator(strategy: str, timeout_ms: int, **kwargs) -> AnchorNavigator:
    try:
        navigator_cls = NAVIGATORS[strategy]
    except KeyError:
        raise ValueError(f"Unknown navigation strategy: {strategy}") from None
    return navigator_cls(timeout_ms, **kwargs)


def require_page(page: Optional[Page], url: str) -> Page:
    """Turn a missing navigation result into a NavigationTimeout"""
    if page is None:
        raise NavigationTimeout(f"Failed to navigate to {url}: no page was opened in time")
    return page
