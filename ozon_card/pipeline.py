"""CLI definition and entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import traceback
from pathlib import Path

from browser_tools.utils import init_logging_config
from ozon_card.config import (
    DEFAULT_PRODUCT_URL,
    NAVIGATION_STRATEGIES,
    OUTPUT_JSON,
    OUTPUT_TEXT,
    SCENARIOS,
    RunConfig,
    load_simple_dotenv,
)
from ozon_card.report import emit, print_json
from ozon_card.scenarios import ScenarioRunner

LOG = logging.getLogger("ozon_card")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

EPILOG = """Environment variables:
  PARSER_PRODUCT_URL       Default product URL
  PARSER_OUTPUT            Default output format ('json' | 'text')
  PARSER_HEADLESS          Set to 'false' to disable headless mode
  PARSER_TIMEOUT           Default timeout in milliseconds
  PARSER_PROXY             Proxy URL (fallback to HTTPS_PROXY / HTTP_PROXY)
  PARSER_PROXY_USERNAME    Proxy basic auth username
  PARSER_PROXY_PASSWORD    Proxy basic auth password
  PARSER_CONNECT_ENDPOINT  Browser WebSocket endpoint
  PARSER_CONNECT_PORT      Browser remote debugging port
  PARSER_SCENARIO          Default scenario
  PARSER_NAVIGATION        Default navigation strategy
"""


def build_parser(defaults: RunConfig | None = None) -> argparse.ArgumentParser:
    defaults = defaults or RunConfig.from_env()
    log_level_default = (os.getenv("LOG_LEVEL", "INFO") or "INFO").strip().upper()
    if log_level_default not in LOG_LEVELS:
        log_level_default = "INFO"

    parser = argparse.ArgumentParser(
        prog="ozon-card",
        description="Open a product page in a real browser and extract a normalized product card.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("target_url", nargs="?", default=None, help="Product URL (same as --url)")
    parser.add_argument(
        "-u",
        "--url",
        default=defaults.url,
        help=f"Product URL to parse (default: {DEFAULT_PRODUCT_URL})",
    )
    parser.add_argument(
        "--json", dest="output", action="store_const", const=OUTPUT_JSON,
        help="Output JSON instead of formatted text",
    )
    parser.add_argument(
        "--text", dest="output", action="store_const", const=OUTPUT_TEXT,
        help="Force formatted text output",
    )
    parser.add_argument(
        "--timeout",
        dest="timeout_ms",
        type=int,
        default=defaults.timeout_ms,
        help="Override navigation timeout in ms (default: 60000, 30000 for check-google)",
    )
    parser.add_argument(
        "--headless", dest="headless", action="store_true", default=defaults.headless,
        help="Explicitly enable headless mode",
    )
    parser.add_argument(
        "--no-headless", dest="headless", action="store_false",
        help="Disable headless mode (useful for debugging and manual challenges)",
    )
    parser.add_argument(
        "--keep-browser-open", dest="keep_browser_open", action="store_const", const=True, default=None,
        help="Keep the browser open after finishing until Enter is pressed",
    )
    parser.add_argument(
        "--auto-close", dest="keep_browser_open", action="store_const", const=False,
        help="Close the browser automatically even in headful mode",
    )
    parser.add_argument("--proxy", default=defaults.proxy, help="HTTP/HTTPS/SOCKS proxy URL")
    parser.add_argument(
        "--proxy-username", default=defaults.proxy_username,
        help="Username for proxy authentication",
    )
    parser.add_argument(
        "--proxy-password", default=defaults.proxy_password,
        help="Password for proxy authentication",
    )
    parser.add_argument(
        "--connect-endpoint", default=defaults.connect_endpoint,
        help="Connect to an existing browser via WebSocket endpoint",
    )
    parser.add_argument(
        "--connect-port",
        type=int,
        default=defaults.connect_port,
        help="Resolve WebSocket endpoint from http://127.0.0.1:<port>/json/version",
    )
    parser.add_argument("--scenario", default=defaults.scenario, choices=list(SCENARIOS))
    parser.add_argument(
        "--navigation",
        default=defaults.navigation,
        choices=list(NAVIGATION_STRATEGIES),
        help="Override the scenario's navigation strategy",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Print stack traces on error")
    parser.add_argument(
        "--log-level",
        default=log_level_default,
        choices=list(LOG_LEVELS),
    )
    parser.set_defaults(output=defaults.output)
    return parser


def config_from_args(args: argparse.Namespace) -> RunConfig:
    headless = bool(args.headless)
    keep_browser_open = (not headless) if args.keep_browser_open is None else bool(args.keep_browser_open)
    return RunConfig(
        url=args.target_url or args.url,
        headless=headless,
        timeout_ms=args.timeout_ms,
        proxy=args.proxy or None,
        proxy_username=args.proxy_username or None,
        proxy_password=args.proxy_password or None,
        connect_endpoint=args.connect_endpoint or None,
        connect_port=args.connect_port,
        scenario=args.scenario,
        keep_browser_open=keep_browser_open,
        output=args.output,
        verbose=bool(args.verbose),
        navigation=args.navigation,
    )


def main(argv: list[str] | None = None) -> int:
    load_simple_dotenv(Path(".env"))
    parser = build_parser()
    args = parser.parse_args(argv)
    level = logging.DEBUG if args.verbose else getattr(logging, args.log_level)
    init_logging_config(level)

    try:
        config = config_from_args(args).validate()
    except ValueError as exc:
        LOG.error("Argument error: %s", exc)
        parser.print_usage(sys.stderr)
        return 1

    try:
        record = asyncio.run(ScenarioRunner(config).run())
    except Exception as exc:
        LOG.error("%s: %s", type(exc).__name__, exc)
        if config.verbose:
            LOG.error("Traceback:\n%s", traceback.format_exc())
        else:
            LOG.debug("Traceback:\n%s", traceback.format_exc())
        if config.output == OUTPUT_JSON:
            print_json({"success": False, "error_type": type(exc).__name__, "error": str(exc)})
        return 2

    emit(record, config.scenario, config.output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
