"""Run a single extraction from the command line.

Usage::

    khoj-scrape https://example.com/products \\
        --container ".item" \\
        --field title=h2 --field price=.price --field image=img@src \\
        [--engine auto|http|browser|stealth-browser] [--timeout 20] \\
        [--max-retries 2] [--screenshot page.png] [--cookie consent=yes]

Prints the result (records and metadata) as JSON on stdout.

Exit codes:
    0 - Success.
    1 - All attempts failed.
    2 - Invalid arguments.
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import json
import sys
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from khoj_scraper.config.settings import get_settings
from khoj_scraper.core.exceptions import RetriesExhausted
from khoj_scraper.core.logging_config import configure_logging
from khoj_scraper.extraction.orchestrator import Extractor


def _pair(value: str) -> tuple[str, str]:
    name, sep, rest = value.partition("=")
    if not sep or not name.strip() or not rest.strip():
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {value!r}")
    return name.strip(), rest.strip()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="khoj-scrape",
        description="Fetch a page and extract structured records with CSS selectors.",
    )
    parser.add_argument("url", help="Page to scrape.")
    parser.add_argument("--container", default="body", help="Selector of the repeated item element.")
    parser.add_argument(
        "--field",
        dest="fields",
        action="append",
        type=_pair,
        default=[],
        metavar="NAME=SELECTOR",
        help="Field selector; append @attr to read an attribute.  Repeatable.",
    )
    parser.add_argument(
        "--engine",
        default="auto",
        choices=["auto", "http", "browser", "stealth-browser"],
    )
    parser.add_argument("--timeout", type=float, default=None, help="Fetch timeout in seconds.")
    parser.add_argument("--max-retries", type=int, default=None)
    parser.add_argument("--proxy", action="append", default=[], help="Proxy URI.  Repeatable.")
    parser.add_argument("--rotate-proxies", action="store_true")
    parser.add_argument("--user-agent", action="append", default=[], dest="user_agents")
    parser.add_argument(
        "--cookie",
        dest="cookies",
        action="append",
        type=_pair,
        default=[],
        metavar="NAME=VALUE",
    )
    parser.add_argument("--stealth", action="store_true", help="Request stealth browser fingerprinting.")
    parser.add_argument("--screenshot", metavar="PATH", help="Write a full-page PNG here (browser engines).")
    return parser


def _options_from_args(args: argparse.Namespace) -> dict[str, Any]:
    options: dict[str, Any] = {
        "engine": args.engine,
        "screenshot": bool(args.screenshot),
        "timeout": args.timeout,
        "maxRetries": args.max_retries,
    }
    if args.proxy:
        options["proxyConfig"] = {
            "enabled": True,
            "rotation": args.rotate_proxies,
            "providers": args.proxy,
        }
    if args.user_agents or args.cookies or args.stealth:
        options["antiBotConfig"] = {
            "stealth": args.stealth,
            "userAgents": args.user_agents,
            "cookies": dict(args.cookies),
        }
    return options


async def _run(args: argparse.Namespace) -> int:
    selector_spec = {"container": args.container, "fields": dict(args.fields)}
    async with Extractor() as extractor:
        try:
            result = await extractor.extract(args.url, selector_spec, _options_from_args(args))
        except ValidationError as exc:
            print(f"[khoj-scrape] ERROR: invalid request:\n{exc}", file=sys.stderr)
            return 2
        except RetriesExhausted as exc:
            print(f"[khoj-scrape] ERROR: {exc}", file=sys.stderr)
            return 1

    payload = result.model_dump(by_alias=True)
    screenshot = payload["metadata"].pop("screenshotBase64", None)
    if args.screenshot and screenshot:
        with open(args.screenshot, "wb") as fh:
            fh.write(base64.b64decode(screenshot))
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if not args.fields:
        print("[khoj-scrape] ERROR: at least one --field is required.", file=sys.stderr)
        return 2
    configure_logging(get_settings().log_level)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
