"""Scenario runner: composes session, navigation, challenge handling and extraction."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from browser_tools import (
    BrowserSession,
    BrowserSessionManager,
    ChallengeHandler,
    get_navigator,
    require_page,
    wait_for_headful_browser,
    wait_for_user_signal,
)
from browser_tools.utils import describe_error
from ozon_card.config import (
    EXTRA_HEADERS,
    REACHABILITY_FALLBACK_TITLE,
    REACHABILITY_SELECTOR,
    REACHABILITY_SELECTOR_TIMEOUT_MS,
    REACHABILITY_URL,
    ROOT_SETTLE_SEC,
    SCENARIO_CHECK_GOOGLE,
    SCENARIO_OPEN_FIRST_PRODUCT,
    SCENARIO_OPEN_PRODUCT,
    SCENARIO_OPEN_ROOT,
    SCENARIO_PARSE_FIRST_PRODUCT,
    SCENARIO_PARSE_PRODUCT,
    RunConfig,
)
from ozon_card.data import ProductRecord
from ozon_card.extraction import ExtractionEngine

LOG = logging.getLogger("ozon_card")


class ProductLinkNotFound(LookupError):
    """Site root carried no anchor matching the product path pattern."""


def site_root(url: str) -> str:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Cannot derive site root from URL: {url}")
    return f"{parsed.scheme}://{parsed.netloc}"


async def build_simple_record(page: Page, url: str) -> ProductRecord:
    try:
        title = await page.title()
    except PlaywrightError as exc:
        LOG.warning("Could not read page title for %s: %s", url, describe_error(exc))
        title = ""
    return ProductRecord.minimal(title, url)


class ScenarioRunner:
    """
    Runs one named scenario against one browser session.

    The session is released on every exit path: closed when this process
    launched the browser, only disconnected when it attached to one.
    """

    def __init__(
        self,
        config: RunConfig,
        session_manager: BrowserSessionManager | None = None,
        extraction: ExtractionEngine | None = None,
        wait_for_signal: Callable[[], Awaitable[None]] = wait_for_user_signal,
        wait_for_operator: Callable[[Any], Awaitable[None]] = wait_for_headful_browser,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.session_manager = session_manager or BrowserSessionManager()
        self.extraction = extraction or ExtractionEngine()
        self.wait_for_signal = wait_for_signal
        self.wait_for_operator = wait_for_operator
        self._sleep = sleep
        self.challenge_trace: list[dict[str, Any]] = []
        self._scenarios: dict[str, Callable[[BrowserSession], Awaitable[ProductRecord]]] = {
            SCENARIO_PARSE_PRODUCT: self.parse_product,
            SCENARIO_CHECK_GOOGLE: self.check_reachability,
            SCENARIO_OPEN_PRODUCT: self.open_product,
            SCENARIO_OPEN_ROOT: self.open_root,
            SCENARIO_OPEN_FIRST_PRODUCT: self.open_first_product,
            SCENARIO_PARSE_FIRST_PRODUCT: self.parse_first_product,
        }

    @property
    def timeout_ms(self) -> int:
        return self.config.effective_timeout_ms

    async def run(self) -> ProductRecord:
        self.config.validate()
        scenario = self._scenarios[self.config.scenario]
        LOG.info("Running scenario %s for %s", self.config.scenario, self.config.url)

        async with self.session_manager.session(
            headless=self.config.headless,
            proxy=self.config.proxy,
            connect_endpoint=self.config.connect_endpoint,
            connect_port=self.config.connect_port,
        ) as session:
            try:
                return await scenario(session)
            finally:
                await self._await_operator(session)

    async def _await_operator(self, session: BrowserSession) -> None:
        if not (session.owned and self.config.waits_for_operator and session.is_connected()):
            return
        try:
            await self.wait_for_operator(session.browser)
        except Exception as exc:
            LOG.warning("Operator wait failed: %s", describe_error(exc))

    async def _open_page(self, session: BrowserSession) -> Page:
        return await session.new_page(
            extra_headers=EXTRA_HEADERS,
            http_credentials=self.config.proxy_credentials,
            timeout_ms=self.timeout_ms,
        )

    async def _navigate(self, page: Page, url: str) -> Page:
        navigator = get_navigator(self.config.navigation_strategy, self.timeout_ms, sleep=self._sleep)
        LOG.info("Navigating to %s (%s)", url, navigator.name)
        return require_page(await navigator.navigate(page, url), url)

    async def _extract(self, page: Page, url: str) -> ProductRecord:
        snapshot = await self.extraction.capture(page)
        handler = ChallengeHandler(
            page,
            self.extraction.capture,
            headless=self.config.headless,
            timeout_ms=self.timeout_ms,
            wait_for_signal=self.wait_for_signal,
        )
        try:
            snapshot = await handler.resolve(snapshot)
        finally:
            self.challenge_trace = list(handler.trace)
            trace = json.dumps(self.challenge_trace, ensure_ascii=False, default=str)
            LOG.debug("Challenge trace: %s", trace)
        return self.extraction.extract(snapshot, url)

    async def _discover_product(self, session: BrowserSession) -> tuple[Page, str]:
        root_url = site_root(self.config.url)
        page = await self._open_page(session)
        root_page = await self._navigate(page, root_url)
        await self._sleep(ROOT_SETTLE_SEC)

        product_url = await self.extraction.find_product_link(root_page)
        if not product_url:
            raise ProductLinkNotFound(
                f"Could not find a product link on the root page ({root_page.url})."
            )
        LOG.info("Found product URL: %s", product_url)
        product_page = await self._navigate(root_page, product_url)
        return product_page, product_url

    async def parse_product(self, session: BrowserSession) -> ProductRecord:
        page = await self._open_page(session)
        page = await self._navigate(page, self.config.url)
        return await self._extract(page, self.config.url)

    async def check_reachability(self, session: BrowserSession) -> ProductRecord:
        page = await self._open_page(session)
        page = await self._navigate(page, REACHABILITY_URL)
        try:
            await page.wait_for_selector(REACHABILITY_SELECTOR, timeout=REACHABILITY_SELECTOR_TIMEOUT_MS)
        except PlaywrightError as exc:
            LOG.warning("Reachability page loaded but search box not found: %s", describe_error(exc))
        record = await build_simple_record(page, REACHABILITY_URL)
        if record.title == REACHABILITY_URL:
            return ProductRecord.minimal(REACHABILITY_FALLBACK_TITLE, REACHABILITY_URL)
        return record

    async def open_product(self, session: BrowserSession) -> ProductRecord:
        page = await self._open_page(session)
        page = await self._navigate(page, self.config.url)
        return await build_simple_record(page, self.config.url)

    async def open_root(self, session: BrowserSession) -> ProductRecord:
        root_url = site_root(self.config.url)
        page = await self._open_page(session)
        page = await self._navigate(page, root_url)
        return await build_simple_record(page, root_url)

    async def open_first_product(self, session: BrowserSession) -> ProductRecord:
        product_page, product_url = await self._discover_product(session)
        return await build_simple_record(product_page, product_url)

    async def parse_first_product(self, session: BrowserSession) -> ProductRecord:
        product_page, product_url = await self._discover_product(session)
        return await self._extract(product_page, product_url)


async def run_scenario(config: RunConfig, **kwargs: Any) -> ProductRecord:
    return await ScenarioRunner(config, **kwargs).run()
