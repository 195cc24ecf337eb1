#!/usr/bin/env python3
"""
CLI entry point for the self-healing mobile test runner.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="selfheal-run",
        description="Run natural-language mobile tests with cached, self-healing selectors.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Execute a test against a new Appium session.")
    run.add_argument("--config", required=True, help="Path to the run config JSON.")
    run.add_argument(
        "--steps",
        default="",
        help="Path to a steps file (one step per line). Overrides 'steps_path' in the config.",
    )

    cache = sub.add_parser("cache", help="Print the selector cache for a platform.")
    cache.add_argument("--platform", default="android", help="android or ios (default: android).")
    cache.add_argument("--cache-dir", default=".", help="Directory holding pom_<platform>.json.")
    cache.add_argument("--app-id", default="", help="Only show entries for this app id.")

    classify = sub.add_parser("classify", help="Show how a selector would be classified and queried.")
    classify.add_argument("selector")
    classify.add_argument("--embedded", action="store_true", help="Resolve as if a WEBVIEW were active.")
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(asctime)s] [%(levelname)s] %(message)s",
    )


def _cmd_run(args: argparse.Namespace) -> int:
    from selfheal_service.mobile.runner import run_nl_test

    steps_text = None
    if args.steps:
        try:
            steps_text = Path(args.steps).read_text(encoding="utf-8")
        except FileNotFoundError:
            print(f"ERROR: steps file not found: {args.steps}", file=sys.stderr)
            return 1

    result = run_nl_test(config_json_path=args.config, steps_text=steps_text)
    if result.passed:
        print(f"\n✓ Test finished successfully ({result.total_steps} step(s))")
        return 0
    print(f"\n✗ Test failed at step: {result.failed_step}", file=sys.stderr)
    return 1


def _cmd_cache(args: argparse.Namespace) -> int:
    from selfheal_service.mobile.selector_cache import SelectorCache

    cache = SelectorCache.load(args.platform, cache_dir=args.cache_dir, app_id=args.app_id or None)
    print(json.dumps(cache.entries(args.app_id or None), indent=2, ensure_ascii=False))
    return 0


def _cmd_classify(args: argparse.Namespace) -> int:
    from selfheal_service.mobile.element_resolver import build_query
    from selfheal_service.mobile.errors import ResolutionError
    from selfheal_service.mobile.locators import classify_selector
    from selfheal_service.mobile.models import Surface

    surface = Surface.EMBEDDED if args.embedded else Surface.NATIVE
    print(f"strategy: {classify_selector(args.selector).value}")
    try:
        locator = build_query(args.selector, surface)
    except ResolutionError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    print(f"query:    {locator.using} -> {locator.value}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if args.command == "run":
        return _cmd_run(args)
    if args.command == "cache":
        return _cmd_cache(args)
    return _cmd_classify(args)


if __name__ == "__main__":
    raise SystemExit(main())
