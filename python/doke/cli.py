"""CLI entry point for doke: parse documents and print their value graphs."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .errors import DokeError
from .grammar.types import value_to_dict
from .pipeline import DokeParser


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="doke",
        description="Parse Markdown documents into typed value graphs using a project's grammar definitions",
    )
    parser.add_argument(
        "config",
        help="Path to the project config (YAML)",
    )
    parser.add_argument(
        "files",
        nargs="+",
        help="Documents to parse",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Print every rule attempt to stderr",
    )
    parser.add_argument(
        "--jobs", "-j",
        type=int,
        default=None,
        help="Number of documents parsed in parallel (default: executor default)",
    )
    parser.add_argument(
        "--indent",
        type=int,
        default=2,
        help="JSON indentation (default: 2)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )

    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")

    config_path = Path(args.config)
    if not config_path.exists():
        print(f"Error: config not found: {config_path}", file=sys.stderr)
        sys.exit(1)

    try:
        doke_parser = DokeParser.from_config_file(config_path, debug=args.debug)
    except DokeError as e:
        print(f"Error loading {config_path}: {e}", file=sys.stderr)
        sys.exit(1)

    outcomes = doke_parser.parse_many([Path(f) for f in args.files], max_workers=args.jobs)

    output: dict[str, object] = {}
    failed = False
    for outcome in outcomes:
        if outcome.result is not None and outcome.result.trace is not None:
            print(f"# {outcome.source}", file=sys.stderr)
            print(outcome.result.trace.format(), file=sys.stderr)
        if not outcome.ok:
            failed = True
            print(f"Error parsing {outcome.source}: {outcome.error}", file=sys.stderr)
            continue
        output[outcome.source] = value_to_dict(outcome.result.value)

    if len(args.files) == 1 and output:
        (value,) = output.values()
        print(json.dumps(value, indent=args.indent, ensure_ascii=False))
    elif output:
        print(json.dumps(output, indent=args.indent, ensure_ascii=False))

    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
