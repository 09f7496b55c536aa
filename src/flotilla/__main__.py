"""Command-line entry point: resolve one step snapshot and print the commands.

Usage:
    flotilla resolve SNAPSHOT.json [--time-budget S] [--log-level LEVEL]
"""

from __future__ import annotations

import argparse
import json
import sys

from loguru import logger

from flotilla.config import settings
from flotilla.navigation.scheduler import ConflictScheduler
from flotilla.scenario import ScenarioError, load_step_scenario


def _resolve(args: argparse.Namespace) -> int:
    cfg = settings
    if args.time_budget is not None:
        cfg = settings.model_copy(update={"time_budget_s": args.time_budget})

    try:
        scenario = load_step_scenario(args.snapshot)
        world = scenario.build_world()
    except ScenarioError as e:
        logger.error(str(e))
        return 2

    try:
        scheduler = ConflictScheduler(world, settings=cfg)
        result = scheduler.resolve(scenario.build_requests())
    except (KeyError, ValueError) as e:
        logger.error(f"Rejected snapshot: {e}")
        return 2

    json.dump(result.to_dict(), sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="flotilla",
        description="Collision-free fleet navigation for one step",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    resolve = sub.add_parser("resolve", help="Resolve a step snapshot and print commands as JSON")
    resolve.add_argument("snapshot", help="Path to a step snapshot JSON file")
    resolve.add_argument(
        "--time-budget",
        type=float,
        default=None,
        help=f"Seconds before degraded mode (default: {settings.time_budget_s})",
    )
    resolve.add_argument(
        "--log-level",
        default=settings.log_level,
        help=f"Log level for stderr output (default: {settings.log_level})",
    )
    args = parser.parse_args(argv)

    logger.remove()
    logger.add(sys.stderr, level=args.log_level.upper())

    if args.command == "resolve":
        return _resolve(args)
    return 1


if __name__ == "__main__":
    sys.exit(main())
