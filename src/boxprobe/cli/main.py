# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""boxprobe CLI."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from ..config import load_settings
from ..errors import ConfigError, UnknownProberError
from ..exporter import render_text
from ..log import LOG_FORMATS, setup_logging
from ..runtime import BoxProbe

EXIT_OK = 0
EXIT_PROBE_FAILED = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="boxprobe",
        description="Run one blackbox probe (http, tcp, dns, icmp) against a target",
    )
    parser.add_argument("target", nargs="?", help="Target to probe (URL, host:port or host)")
    parser.add_argument(
        "--config.file",
        dest="config_file",
        default=None,
        help="Probe configuration file (default: $BOXPROBE_CONFIG_FILE or blackbox.yml)",
    )
    parser.add_argument(
        "--config.check",
        dest="config_check",
        action="store_true",
        help="Validate the configuration file and exit",
    )
    parser.add_argument("--module", default="http_2xx", help="Module to run (default: http_2xx)")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Scrape timeout in seconds; caps the module timeout",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output JSON instead of the Prometheus text format",
    )
    parser.add_argument("--log.level", dest="log_level", default=None, help="Logging level (e.g. DEBUG, INFO)")
    parser.add_argument(
        "--log.format",
        dest="log_format",
        choices=LOG_FORMATS,
        default=None,
        help="Log line format (default: $BOXPROBE_LOG_FORMAT or logfmt)",
    )
    return parser


def _print_json(data: dict[str, Any] | Any) -> None:
    payload = data.to_dict() if hasattr(data, "to_dict") else data
    json.dump(payload, sys.stdout, indent=2, sort_keys=True)
    sys.stdout.write("\n")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level, args.log_format)

    settings = load_settings()
    if args.config_file:
        settings.config_file = args.config_file

    box = BoxProbe(settings)
    try:
        box.reload()
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_CONFIG_ERROR

    if args.config_check:
        print(f"Config file {settings.config_file} is ok")
        return EXIT_OK

    if not args.target:
        parser.error("a target is required unless --config.check is given")

    try:
        result = box.probe(args.module, args.target, scrape_timeout=args.timeout)
    except UnknownProberError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_CONFIG_ERROR

    if args.json:
        _print_json(result)
    else:
        sys.stdout.write(render_text(result))

    return EXIT_OK if result.success else EXIT_PROBE_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
