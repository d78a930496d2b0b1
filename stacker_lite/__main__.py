"""Command-line entry for stacker_lite.

Runs projection or a persisted rollover against a JSON task store, mostly
for inspecting what the engine would show on a given day.
"""

from __future__ import annotations

import argparse
import datetime
import json
import logging
import sys
from typing import Optional

from . import _init_logging
from .config_manager import DEFAULT_STORE_PATH, ConfigManager, EngineConfig
from .lite_datetime_utils import parse_iso_date, today
from .lite_exceptions import StackerError
from .lite_logging import configure_lite_logging
from .lite_service import PlannerService
from .lite_store import JsonTaskStore

logger = logging.getLogger(__name__)


def _iso_date(value: str) -> datetime.date:
    try:
        return parse_iso_date(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from exc


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for stacker_lite CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="stacker_lite",
        description="Stacker Lite - recurring task projection and rollover",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m stacker_lite project --store tasks.json --start 2024-01-10 --days 7
  python -m stacker_lite rollover --store tasks.json --today 2024-01-10
        """,
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    project_parser = subparsers.add_parser("project", help="Print occurrences visible in a window as JSON")
    project_parser.add_argument("--store", metavar="PATH", help="Task store JSON file (default: STACKER_STORE_PATH)")
    project_parser.add_argument("--start", type=_iso_date, metavar="DATE", help="First day of the view (default: today)")
    project_parser.add_argument("--days", type=int, default=1, metavar="N", help="Number of days in the view")
    project_parser.add_argument("--lookback", type=int, metavar="N", help="Rollover lookback in days (0 disables)")
    project_parser.add_argument("--today", type=_iso_date, metavar="DATE", help="Override today")

    rollover_parser = subparsers.add_parser("rollover", help="Persist rollover of missed tasks to today")
    rollover_parser.add_argument("--store", metavar="PATH", help="Task store JSON file (default: STACKER_STORE_PATH)")
    rollover_parser.add_argument("--today", type=_iso_date, metavar="DATE", help="Override today")
    rollover_parser.add_argument("--lookback", type=int, metavar="N", help="Rollover lookback in days")

    return parser


def _build_service(args: argparse.Namespace, cfg: dict) -> PlannerService:
    settings = EngineConfig.from_settings(cfg)
    if args.lookback is not None:
        settings.lookback_days = max(args.lookback, 0)
    current = args.today or today()
    store_path = args.store or cfg.get("store_path", DEFAULT_STORE_PATH)
    return PlannerService(JsonTaskStore(store_path, clock=lambda: current), clock=lambda: current, settings=settings)


def main(argv: Optional[list[str]] = None) -> int:
    """Run the stacker_lite CLI.

    Returns:
        Process exit code
    """
    args = _create_parser().parse_args(argv)

    cfg = ConfigManager().load_full_config()
    _init_logging(cfg.get("log_level"))
    configure_lite_logging(debug_mode=args.debug)

    service = _build_service(args, cfg)
    try:
        if args.command == "project":
            result = service.visible_occurrences(args.start, args.days)
            print(json.dumps([o.to_record() for o in result.occurrences], indent=2))
            for warning in result.warnings:
                logger.warning("%s", warning)
        else:
            actions = service.run_rollover()
            print(f"Rolled over {len(actions.updates)} task updates and {len(actions.creations)} detached occurrences")
    except StackerError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
