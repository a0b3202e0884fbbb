"""Command-line interface for edge-agent."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from . import constants
from .app import EdgeAgentApp
from .config import load_config, save_config

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="edge-agent",
        description="Edge agent bridging MQTT commands with local services",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("start", help="Start the edge agent")

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    add_parser = subparsers.add_parser(
        "add-config", help="Install a configuration file as the agent configuration"
    )
    add_parser.add_argument("source", type=Path, help="Configuration file to install")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "add-config":
        if not args.source.exists():
            LOGGER.error("Configuration file not found: %s", args.source)
            return 1
        source = load_config(args.source)
        save_config(replace(source, path=args.config))
        print(f"Configuration written to {args.config!s}")
        return 0

    config = load_config(args.config)

    if args.command == "start":
        return EdgeAgentApp.start(config)

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
