"""
Command-line entry point for the planning engine.

    planning-report init-db
    planning-report bootstrap --year 2026 --month 2
    planning-report report CONTAINER_EAST --year 2026 --month 2 --as-of 2026-02-04
    planning-report summary --year 2026 --month 2 --detailed
    planning-report year-totals --year 2026
    planning-report set-base-plan TRUCK_DISPATCH TRUCK_PLAN --year 2026 --month 3 --value 260

Every command prints JSON to stdout.
"""

import argparse
import json
import logging
import sys
from datetime import date
from typing import List, Optional

from database import init_db, session_scope
from logging_conf import configure_logging
from planning_catalog import bootstrap_catalog
from planning_config import PLANNING_LOG_LEVEL
from planning_errors import PlanningError
from planning_report_service import PlanningReportService
from planning_totals_service import PlanningTotalsService
from utils import parse_iso_date

logger = logging.getLogger(__name__)


def _print_json(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def build_parser() -> argparse.ArgumentParser:
    today = date.today()

    parser = argparse.ArgumentParser(prog="planning-report", description="Operational planning reports")
    parser.add_argument("--log-level", default=PLANNING_LOG_LEVEL)
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create all tables")

    p = sub.add_parser("bootstrap", help="Seed segments, metrics and default monthly plans")
    p.add_argument("--year", type=int, default=today.year)
    p.add_argument("--month", type=int, default=today.month)

    p = sub.add_parser("report", help="Daily grid and dashboard for one segment")
    p.add_argument("segment")
    p.add_argument("--year", type=int, default=today.year)
    p.add_argument("--month", type=int, default=today.month)
    p.add_argument("--as-of", default=None, help="YYYY-MM-DD, defaults to today")

    p = sub.add_parser("summary", help="KPI rows across segments")
    p.add_argument("--year", type=int, default=today.year)
    p.add_argument("--month", type=int, default=today.month)
    p.add_argument("--as-of", default=None)
    p.add_argument("--detailed", action="store_true")
    p.add_argument("--segment", action="append", dest="segments", default=None)

    p = sub.add_parser("year-totals", help="Plan vs fact with carry-over for a year")
    p.add_argument("--year", type=int, default=today.year)
    p.add_argument("--segment", action="append", dest="segments", default=None)
    p.add_argument("--ensure-metrics", action="store_true")

    p = sub.add_parser("set-base-plan", help="Set a month's base plan and recompute carry plans")
    p.add_argument("segment")
    p.add_argument("plan_metric")
    p.add_argument("--year", type=int, required=True)
    p.add_argument("--month", type=int, required=True)
    p.add_argument("--value", required=True)
    p.add_argument("--user", default=None)

    return parser


def run(args: argparse.Namespace) -> int:
    if args.command == "init-db":
        init_db()
        _print_json({"status": "ok"})
        return 0

    with session_scope() as db:
        if args.command == "bootstrap":
            segments = bootstrap_catalog(db, args.year, args.month)
            _print_json({"segments": [s.code.value for s in segments]})

        elif args.command == "report":
            report = PlanningReportService(db).build_segment_report(
                args.segment, args.year, args.month, parse_iso_date(args.as_of)
            )
            _print_json(report.to_dict())

        elif args.command == "summary":
            rows = PlanningReportService(db).get_summary_across_segments(
                args.year, args.month, parse_iso_date(args.as_of),
                detailed=args.detailed, allowed_segment_codes=args.segments,
            )
            _print_json([r.to_dict() for r in rows])

        elif args.command == "year-totals":
            rows = PlanningTotalsService(db).get_year_totals(
                args.year, allowed_segment_codes=args.segments, ensure_metrics=args.ensure_metrics
            )
            _print_json([r.to_dict() for r in rows])

        elif args.command == "set-base-plan":
            carry_plans = PlanningTotalsService(db).update_base_plan(
                args.year, args.month, args.segment, args.plan_metric, args.value, changed_by=args.user
            )
            _print_json({"carry_plans": [str(v) for v in carry_plans]})

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        return run(args)
    except PlanningError as e:
        logger.error("%s", e)
        _print_json({"error": type(e).__name__, "detail": str(e)})
        return 2


if __name__ == "__main__":
    sys.exit(main())
