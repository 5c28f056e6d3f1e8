#!/usr/bin/env python3
"""
main.py

Control center for Chimplet. Reads the configuration, drives the facade and
prints the result.

    python -m chimplet.main                     # account overview (default)
    python -m chimplet.main --ping              # is the stored API key valid?
    python -m chimplet.main --set-api-key KEY   # validate and store a new key
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import config
from .facade import ListServiceFacade
from .overview import build_overview, render_overview

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="chimplet", description="MailChimp list service control center")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--overview", action="store_true", help="print the account overview (default)")
    mode.add_argument("--ping", action="store_true", help="check that the stored API key is valid")
    mode.add_argument("--set-api-key", metavar="KEY", help="validate KEY and store it in the settings file")
    parser.add_argument("--settings-file", default=None, help=f"settings file (default: {config.SETTINGS_FILE})")
    parser.add_argument("--no-progress", action="store_true", help="hide progress bars")
    return parser.parse_args(argv)


def run_ping(settings) -> int:
    facade = ListServiceFacade()
    if facade.is_api_key_valid(settings["api_key"], settings["user_options"]):
        print("✅ API key is valid")
        return 0
    print("❌ API key is missing or invalid")
    return 1


def run_set_api_key(api_key: str, settings_file: Optional[str]) -> int:
    user_options = {"timeout": config.MAILCHIMP_TIMEOUT,
                    "data_center": config.get_mailchimp_datacenter(api_key)}
    facade = ListServiceFacade()
    if not facade.is_api_key_valid(api_key, user_options):
        print("❌ API key rejected by MailChimp - nothing saved")
        return 1

    config.save_option("mailchimp.api_key", api_key, settings_file=settings_file)
    logger.info("🔑 Stored a new MailChimp API key")
    print("✅ API key saved")
    return 0


def run_overview(settings, show_progress: bool = True) -> int:
    with ListServiceFacade() as facade:
        report = build_overview(facade, settings["api_key"], settings["user_options"],
                                show_progress=show_progress)
    print(render_overview(report))
    return 0 if report["api_key_valid"] else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main execution function"""
    args = parse_args(argv)
    config.setup_logging()

    if args.set_api_key:
        return run_set_api_key(args.set_api_key, args.settings_file)

    settings = config.load_settings(args.settings_file)
    if args.ping:
        return run_ping(settings)
    return run_overview(settings, show_progress=not args.no_progress)


if __name__ == "__main__":
    sys.exit(main())
