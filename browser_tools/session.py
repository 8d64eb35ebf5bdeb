# -*- coding: utf-8 -*-
"""Browser session acquisition: launch a local Chromium or attach over CDP"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import httpx
from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    async_playwright,
)
from playwright_stealth import Stealth

from browser_tools import utils

DEFAULT_LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-infobars",
    "--no-sandbox",
    "--disable-setuid-sandbox",
]
IGNORED_DEFAULT_ARGS = ["--enable-automation"]
DISCOVERY_HOST = "127.0.0.1"
DISCOVERY_TIMEOUT_SEC = 5.0
WS_DEBUGGER_FIELD = "webSocketDebuggerUrl"


class BrowserConnectionError(ConnectionError):
    """Remote debugging endpoint unreachable or its discovery response unusable"""


def wire_console(page: Page) -> None:
    """Forward page console output to the debug log"""

    def _on_console(message: Any) -> None:
        try:
            utils.logger.debug(f"[PageConsole] {message.type}: {message.text}")
        except PlaywrightError:
            return

    page.on("console", _on_console)


@dataclass
class BrowserSession:
    """
    A controllable browser plus the ownership flag that decides teardown.

    owned=True means this process launched the browser and must close it.
    owned=False means we attached to somebody else's browser and may only
    disconnect from it.
    """

    playwright: Playwright
    browser: Browser
    owned: bool
    endpoint: str = ""
    stealth: Optional[Stealth] = field(default=None, repr=False)
    _created_contexts: List[BrowserContext] = field(default_factory=list, repr=False)
    _prepared_contexts: List[BrowserContext] = field(default_factory=list, repr=False)

    @property
    def handle(self) -> Browser:
        return self.browser

    def is_connected(self) -> bool:
        try:
            return bool(self.browser.is_connected())
        except PlaywrightError:
            return False

    async def _pick_context(self, http_credentials: Optional[Dict[str, str]]) -> BrowserContext:
        if http_credentials:
            context = await self.browser.new_context(http_credentials=http_credentials)
            self._created_contexts.append(context)
            utils.logger.info("[BrowserSession] Created context with basic auth credentials")
            return context

        contexts = self.browser.contexts
        if contexts:
            utils.logger.info("[BrowserSession] Using existing context")
            return contexts[0]

        context = await self.browser.new_context()
        self._created_contexts.append(context)
        utils.logger.info("[BrowserSession] Created new context")
        return context

    async def new_page(
        self,
        extra_headers: Optional[Dict[str, str]] = None,
        http_credentials: Optional[Dict[str, str]] = None,
        timeout_ms: Optional[int] = None,
    ) -> Page:
        """
        Open a fresh page configured for a scenario run

        Args:
            extra_headers: Headers sent with every request of the page
            http_credentials: Basic auth credentials (proxy or origin)
            timeout_ms: Default action and navigation timeout for the page

        Returns:
            Page: The new page
        """
        context = await self._pick_context(http_credentials)
        await self._prepare_context(context)
        page = await context.new_page()
        if extra_headers:
            await page.set_extra_http_headers(extra_headers)
        if timeout_ms:
            page.set_default_navigation_timeout(timeout_ms)
            page.set_default_timeout(timeout_ms)
        wire_console(page)
        return page

    async def _prepare_context(self, context: BrowserContext) -> None:
        """Stealth init scripts and console forwarding, once per context"""
        if any(prepared is context for prepared in self._prepared_contexts):
            return
        self._prepared_contexts.append(context)
        if self.stealth is not None:
            try:
                await self.stealth.apply_stealth_async(context)
                utils.logger.info("[BrowserSession] Applied stealth init scripts")
            except PlaywrightError as e:
                utils.logger.warning(f"[BrowserSession] Failed to add stealth: {utils.describe_error(e)}")
        context.on("page", wire_console)

    async def close(self) -> None:
        """Destructive teardown: shut the browser down, then stop the driver"""
        try:
            if self.is_connected():
                await self.browser.close()
                utils.logger.info("[BrowserSession] Browser closed")
        except PlaywrightError:
            utils.logger.debug("[BrowserSession] Browser already closed")
        finally:
            await self._stop_driver()

    async def disconnect(self) -> None:
        """Non-destructive teardown: drop our contexts and the CDP connection only"""
        for context in self._created_contexts:
            try:
                await context.close()
            except PlaywrightError:
                utils.logger.debug("[BrowserSession] Context already closed")
        self._created_contexts.clear()
        await self._stop_driver()
        utils.logger.info(f"[BrowserSession] Disconnected from {self.endpoint or 'browser'} (left running)")

    async def release(self) -> None:
        """Close if owned, otherwise disconnect"""
        if self.owned:
            await self.close()
        else:
            await self.disconnect()

    async def _stop_driver(self) -> None:
        try:
            await self.playwright.stop()
        except Exception as e:
            utils.logger.debug(f"[BrowserSession] Driver stop failed: {utils.describe_error(e)}")


class BrowserSessionManager:
    """
    Obtains a controllable browser: launches one locally, or attaches to a
    remote debugging endpoint given directly or resolved from a port.
    """

    def __init__(
        self,
        playwright_factory: Callable[[], Any] = async_playwright,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        discovery_timeout_sec: float = DISCOVERY_TIMEOUT_SEC,
        launch_args: Optional[List[str]] = None,
        stealth: Optional[Stealth] = None,
        use_stealth: bool = True,
    ):
        self.playwright_factory = playwright_factory
        self.http_transport = http_transport
        self.discovery_timeout_sec = discovery_timeout_sec
        self.launch_args = list(launch_args or DEFAULT_LAUNCH_ARGS)
        self.stealth = (stealth or Stealth()) if use_stealth else None

    async def resolve_endpoint_from_port(self, port: int) -> str:
        """
        Resolve the WebSocket debugger URL from http://127.0.0.1:<port>/json/version

        Raises:
            BrowserConnectionError: on transport failure, timeout, non-2xx
                status, unparsable body or a missing/empty debugger field
        """
        url = f"http://{DISCOVERY_HOST}:{port}/json/version"
        try:
            async with httpx.AsyncClient(
                transport=self.http_transport, timeout=self.discovery_timeout_sec
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException as e:
            raise self._discovery_failed(f"Timed out fetching /json/version from port {port}") from e
        except httpx.HTTPError as e:
            raise self._discovery_failed(
                f"Unable to reach browser on port {port}: {utils.describe_error(e)}"
            ) from e

        if not response.is_success:
            raise self._discovery_failed(
                f"Received status {response.status_code} when fetching /json/version from port {port}."
            )

        try:
            data = response.json()
        except ValueError as e:
            raise self._discovery_failed(
                f"Failed to parse /json/version response from port {port}: {e}"
            ) from e

        ws_url = data.get(WS_DEBUGGER_FIELD) if isinstance(data, dict) else None
        if not isinstance(ws_url, str) or not ws_url:
            raise self._discovery_failed(f"Missing {WS_DEBUGGER_FIELD} in response from port {port}.")
        return ws_url

    @staticmethod
    def _discovery_failed(message: str) -> BrowserConnectionError:
        utils.logger.error(f"[BrowserSessionManager] {message}")
        return BrowserConnectionError(message)

    async def acquire(
        self,
        headless: bool = True,
        proxy: Optional[str] = None,
        connect_endpoint: Optional[str] = None,
        connect_port: Optional[int] = None,
    ) -> BrowserSession:
        """
        Acquire a browser session

        An explicit endpoint wins over a port; with neither, a local browser
        is launched. Endpoint/port conflicts are rejected earlier, by the
        run configuration.

        Returns:
            BrowserSession: owned=False only when attached to a remote browser
        """
        if connect_endpoint or connect_port is not None:
            endpoint = connect_endpoint or await self.resolve_endpoint_from_port(connect_port)
            return await self._attach(endpoint)
        return await self._launch(headless, proxy)

    async def _start_driver(self) -> Playwright:
        return await self.playwright_factory().start()

    async def _attach(self, endpoint: str) -> BrowserSession:
        utils.logger.info(f"[BrowserSessionManager] Connecting to existing browser at {endpoint}")
        playwright = await self._start_driver()
        try:
            browser = await playwright.chromium.connect_over_cdp(endpoint)
        except PlaywrightError as e:
            await self._stop_quietly(playwright)
            message = f"CDP connection to {endpoint} failed: {utils.describe_error(e)}"
            utils.logger.error(f"[BrowserSessionManager] {message}")
            raise BrowserConnectionError(message) from e

        if not browser.is_connected():
            await self._stop_quietly(playwright)
            raise BrowserConnectionError(f"CDP connection to {endpoint} failed")

        utils.logger.info("[BrowserSessionManager] Connected successfully")
        return BrowserSession(
            playwright=playwright, browser=browser, owned=False, endpoint=endpoint, stealth=self.stealth
        )

    async def _launch(self, headless: bool, proxy: Optional[str]) -> BrowserSession:
        args = list(self.launch_args)
        if proxy:
            args.append(f"--proxy-server={proxy}")
            utils.logger.info(f"[BrowserSessionManager] Using proxy: {utils.mask_credentials(proxy)}")

        playwright = await self._start_driver()
        try:
            browser = await playwright.chromium.launch(
                headless=headless, args=args, ignore_default_args=IGNORED_DEFAULT_ARGS
            )
        except Exception as e:
            utils.logger.error(f"[BrowserSessionManager] Browser launch failed: {utils.describe_error(e)}")
            await self._stop_quietly(playwright)
            raise

        utils.logger.info(f"[BrowserSessionManager] Launched local browser (headless={headless})")
        return BrowserSession(playwright=playwright, browser=browser, owned=True, stealth=self.stealth)

    @staticmethod
    async def _stop_quietly(playwright: Playwright) -> None:
        try:
            await playwright.stop()
        except Exception as e:
            utils.logger.debug(f"[BrowserSessionManager] Driver stop failed: {utils.describe_error(e)}")

    @asynccontextmanager
    async def session(self, **options: Any) -> AsyncIterator[BrowserSession]:
        """Scoped acquisition: the session is released on every exit path"""
        browser_session = await self.acquire(**options)
        try:
            yield browser_session
        finally:
            try:
                await browser_session.release()
            except Exception as e:
                utils.logger.warning(f"[BrowserSessionManager] Session teardown failed: {utils.describe_error(e)}")
