"""Global constants, regular expressions, selectors, and the run configuration."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

LOG = logging.getLogger("ozon_card")

DEFAULT_PRODUCT_URL = (
    "https://www.ozon.ru/product/kedy-adidas-sportswear-grand-court-base-2-0-1066650955/"
)
DEFAULT_TIMEOUT_MS = 60_000
GOOGLE_CHECK_TIMEOUT_MS = 30_000
ROOT_SETTLE_SEC = 1.0

ACCEPT_LANGUAGE = "ru-RU,ru;q=0.9,en-US;q=0.8,en;q=0.7"
EXTRA_HEADERS = {"Accept-Language": ACCEPT_LANGUAGE}

SCENARIO_PARSE_PRODUCT = "parse-product"
SCENARIO_CHECK_GOOGLE = "check-google"
SCENARIO_OPEN_PRODUCT = "open-product"
SCENARIO_OPEN_ROOT = "open-root"
SCENARIO_OPEN_FIRST_PRODUCT = "open-first-product"
SCENARIO_PARSE_FIRST_PRODUCT = "parse-first-product"
SCENARIOS = (
    SCENARIO_PARSE_PRODUCT,
    SCENARIO_CHECK_GOOGLE,
    SCENARIO_OPEN_PRODUCT,
    SCENARIO_OPEN_ROOT,
    SCENARIO_OPEN_FIRST_PRODUCT,
    SCENARIO_PARSE_FIRST_PRODUCT,
)
PARSE_SCENARIOS = {SCENARIO_PARSE_PRODUCT, SCENARIO_PARSE_FIRST_PRODUCT}

NAVIGATION_SAME_TAB = "same-tab"
NAVIGATION_NEW_TAB = "new-tab"
NAVIGATION_STRATEGIES = (NAVIGATION_SAME_TAB, NAVIGATION_NEW_TAB)
DEFAULT_NAVIGATION = {
    SCENARIO_PARSE_PRODUCT: NAVIGATION_SAME_TAB,
    SCENARIO_CHECK_GOOGLE: NAVIGATION_SAME_TAB,
    SCENARIO_OPEN_PRODUCT: NAVIGATION_SAME_TAB,
    SCENARIO_OPEN_ROOT: NAVIGATION_SAME_TAB,
    SCENARIO_OPEN_FIRST_PRODUCT: NAVIGATION_NEW_TAB,
    SCENARIO_PARSE_FIRST_PRODUCT: NAVIGATION_NEW_TAB,
}

OUTPUT_TEXT = "text"
OUTPUT_JSON = "json"
OUTPUT_FORMATS = (OUTPUT_TEXT, OUTPUT_JSON)

REACHABILITY_URL = "https://www.google.com/"
REACHABILITY_SELECTOR = 'input[name="q"]'
REACHABILITY_SELECTOR_TIMEOUT_MS = 10_000
REACHABILITY_FALLBACK_TITLE = "Google"

LINKED_DATA_SELECTOR = 'script[type="application/ld+json"]'
HEADING_SELECTORS = ('[data-widget="webProductHeading"] h1', "h1")
PRICE_SELECTORS = ('[data-widget="webPrice"]', '[data-widget="webSale"]')
CHALLENGE_TOKEN_SELECTOR = "#challenge"
PRODUCT_LINK_SELECTOR = 'a[href*="/product/"]'

CHALLENGE_TITLE_MARKERS = ("antibot",)
CURRENCY_SYMBOLS = (("₽", "RUB"), ("$", "USD"), ("€", "EUR"))
UNKNOWN_PRODUCT_TITLE = "Unknown product"

WHITESPACE_RE = re.compile(r"\s+")
MULTI_SPACE_RE = re.compile(r"\s{2,}")
NON_NUMERIC_RE = re.compile(r"[^\d.,]")

FALSE_VALUES = {"false", "0"}


class ConfigurationConflict(ValueError):
    """Mutually exclusive options supplied together"""


def load_simple_dotenv(path: Path) -> None:
    if not path.exists():
        return
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return
    loaded = 0
    for line in raw.splitlines():
        item = line.strip()
        if not item or item.startswith("#") or "=" not in item:
            continue
        key, value = item.split("=", 1)
        env_key = key.strip().lstrip("\ufeff")
        env_val = value.strip().strip('"').strip("'")
        if env_key and env_key not in os.environ:
            os.environ[env_key] = env_val
            loaded += 1
    LOG.debug("Loaded %d variable(s) from %s", loaded, path)


def parse_optional_int(value: str | None) -> int | None:
    if value is None or not str(value).strip():
        return None
    try:
        return int(float(str(value).strip()))
    except ValueError:
        return None


def env_headless(env: Mapping[str, str]) -> bool:
    return (env.get("PARSER_HEADLESS", "") or "").strip().lower() not in FALSE_VALUES


def env_proxy(env: Mapping[str, str]) -> str | None:
    return env.get("PARSER_PROXY") or env.get("HTTPS_PROXY") or env.get("HTTP_PROXY") or None


@dataclass
class RunConfig:
    url: str = DEFAULT_PRODUCT_URL
    headless: bool = True
    timeout_ms: int | None = None
    proxy: str | None = None
    proxy_username: str | None = None
    proxy_password: str | None = None
    connect_endpoint: str | None = None
    connect_port: int | None = None
    scenario: str = SCENARIO_PARSE_PRODUCT
    keep_browser_open: bool = False
    output: str = OUTPUT_TEXT
    verbose: bool = False
    navigation: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "RunConfig":
        env = os.environ if env is None else env
        headless = env_headless(env)
        output = (env.get("PARSER_OUTPUT", "") or "").strip().lower()
        return cls(
            url=env.get("PARSER_PRODUCT_URL") or DEFAULT_PRODUCT_URL,
            headless=headless,
            timeout_ms=parse_optional_int(env.get("PARSER_TIMEOUT")),
            proxy=env_proxy(env),
            proxy_username=env.get("PARSER_PROXY_USERNAME") or None,
            proxy_password=env.get("PARSER_PROXY_PASSWORD") or None,
            connect_endpoint=env.get("PARSER_CONNECT_ENDPOINT") or None,
            connect_port=parse_optional_int(env.get("PARSER_CONNECT_PORT")),
            scenario=env.get("PARSER_SCENARIO") or SCENARIO_PARSE_PRODUCT,
            keep_browser_open=not headless,
            output=OUTPUT_JSON if output == OUTPUT_JSON else OUTPUT_TEXT,
            navigation=env.get("PARSER_NAVIGATION") or None,
        )

    def validate(self) -> "RunConfig":
        if self.connect_endpoint and self.connect_port is not None:
            raise ConfigurationConflict(
                "Provide either --connect-endpoint or --connect-port, not both."
            )
        if not self.url:
            raise ValueError("Missing product URL. Provide it via --url or PARSER_PRODUCT_URL")
        if self.scenario not in SCENARIOS:
            raise ValueError(f"Unknown scenario: {self.scenario}")
        if self.output not in OUTPUT_FORMATS:
            raise ValueError(f"Unknown output format: {self.output}")
        if self.navigation is not None and self.navigation not in NAVIGATION_STRATEGIES:
            raise ValueError(f"Unknown navigation strategy: {self.navigation}")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError(f"Invalid timeout value: {self.timeout_ms}")
        if self.connect_port is not None and not 0 < self.connect_port < 65536:
            raise ValueError(f"Invalid port value: {self.connect_port}")
        return self

    @property
    def effective_timeout_ms(self) -> int:
        if self.timeout_ms:
            return int(self.timeout_ms)
        if self.scenario == SCENARIO_CHECK_GOOGLE:
            return GOOGLE_CHECK_TIMEOUT_MS
        return DEFAULT_TIMEOUT_MS

    @property
    def navigation_strategy(self) -> str:
        return self.navigation or DEFAULT_NAVIGATION.get(self.scenario, NAVIGATION_SAME_TAB)

    @property
    def proxy_credentials(self) -> dict[str, str] | None:
        if not (self.proxy_username or self.proxy_password):
            return None
        return {
            "username": self.proxy_username or "",
            "password": self.proxy_password or "",
        }

    @property
    def waits_for_operator(self) -> bool:
        """Full-parse runs in a headful browser we own pause before teardown."""
        return (
            self.keep_browser_open
            and not self.headless
            and self.scenario in PARSE_SCENARIOS
        )
