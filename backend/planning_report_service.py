"""
Planning Report Service

Builds one month of a segment's daily grid (day x metric with month
totals) and its dashboard, and the cross-segment summary used by the
reporting screens and the daily email.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Union
import logging

from sqlalchemy.orm import Session

from daily_value_store import DailyValueStore
from planning_catalog import (
    WAITING_METRIC_CODES,
    get_segment_by_code, get_metrics_for_segment, find_monthly_plan, list_segments, parse_segment_code
)
from planning_dashboard import SegmentDashboard, TruckDispatchDashboard, compute_dashboard
from planning_formulas import apply_formula_rows
from planning_models import PlanningMetric, MetricAggregation, SegmentCode
from utils import (
    ZERO, clamp, days_in_month, decimal_str, last_until, month_bounds, parse_iso_date, pct,
    sum_until, sum_values, validate_period
)
from waiting_balance import WaitingBalanceResolver, WaitingStart

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# RESULT TYPES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class GridRow:
    """One metric of the daily grid. None in day_values means no data."""
    metric_code: str
    name: str
    is_editable: bool
    aggregation: MetricAggregation
    day_values: List[Optional[Decimal]]
    month_total: Decimal

    def to_dict(self) -> Dict:
        return {
            "metric_code": self.metric_code,
            "name": self.name,
            "is_editable": self.is_editable,
            "aggregation": self.aggregation.value,
            "day_values": [decimal_str(v) for v in self.day_values],
            "month_total": str(self.month_total),
        }


@dataclass
class SegmentReport:
    segment_code: SegmentCode
    segment_name: str
    year: int
    month: int
    as_of_date: date
    days_in_month: int
    grid_rows: List[GridRow]
    dashboard: SegmentDashboard
    waiting_start: Optional[WaitingStart] = None

    def row(self, metric_code: str) -> Optional[GridRow]:
        for grid_row in self.grid_rows:
            if grid_row.metric_code == metric_code:
                return grid_row
        return None

    def month_total(self, metric_code: str) -> Decimal:
        grid_row = self.row(metric_code)
        return grid_row.month_total if grid_row else ZERO

    def to_dict(self) -> Dict:
        return {
            "segment": {"code": self.segment_code.value, "name": self.segment_name},
            "year": self.year,
            "month": self.month,
            "as_of_date": self.as_of_date.isoformat(),
            "days_in_month": self.days_in_month,
            "grid_rows": [r.to_dict() for r in self.grid_rows],
            "dashboard": self.dashboard.to_dict(),
            "waiting_start": self.waiting_start.to_dict() if self.waiting_start else None,
        }


@dataclass
class SummaryRow:
    segment_code: SegmentCode
    segment_name: str
    plan_month: Decimal
    fact_to_date: Decimal
    month_fact: Decimal
    completion_to_date: Decimal
    completion_month: Decimal
    parent_segment_code: Optional[SegmentCode] = None
    detail_code: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "segment_code": self.segment_code.value,
            "segment_name": self.segment_name,
            "parent_segment_code": self.parent_segment_code.value if self.parent_segment_code else None,
            "detail_code": self.detail_code,
            "plan_month": str(self.plan_month),
            "fact_to_date": str(self.fact_to_date),
            "month_fact": str(self.month_fact),
            "completion_to_date": str(self.completion_to_date),
            "completion_month": str(self.completion_month),
        }


# Consolidated display names for the summary table
SUMMARY_NAMES: Dict[SegmentCode, str] = {
    SegmentCode.CONTAINER_EAST: "Containers",
    SegmentCode.CONTAINER_CENTRAL: "Containers",
    SegmentCode.RAIL: "Rail",
    SegmentCode.MAINTENANCE: "Truck Maintenance",
}

# Segments shown only through their detail rows in detailed mode
DETAILED_SEGMENTS = frozenset([SegmentCode.TRUCK_DISPATCH, SegmentCode.EXTRA_SERVICES, SegmentCode.RAIL])

EXTRA_DETAIL_ROWS = (
    ("extra_groupage", "Groupage cargo", "EXTRA_GROUPAGE"),
    ("extra_curtains", "Curtains (tents)", "EXTRA_CURTAINS"),
    ("extra_forwarding", "Forwarding", "EXTRA_FORWARDING"),
    ("extra_repack", "Repacking/reinforcement", "EXTRA_REPACK"),
)


def month_total_for(metric: PlanningMetric, day_values: List[Optional[Decimal]]) -> Decimal:
    """Stock-like rows report their latest known value; everything else is summed."""
    if metric.aggregation == MetricAggregation.LAST or metric.code in WAITING_METRIC_CODES:
        return last_until(day_values, len(day_values))
    return sum_values(day_values)


class PlanningReportService:
    """
    Orchestrates catalog, daily value store, formula evaluator and waiting
    balance resolver into segment reports.
    """

    def __init__(self, db: Session, waiting_resolver: Optional[WaitingBalanceResolver] = None):
        self.db = db
        self.store = DailyValueStore(db)
        self.waiting_resolver = waiting_resolver or WaitingBalanceResolver(self.store)

    # ═══════════════════════════════════════════════════════════════════════════
    # SEGMENT REPORT
    # ═══════════════════════════════════════════════════════════════════════════

    def build_segment_report(
        self,
        segment_code: Union[str, SegmentCode],
        year: int,
        month: int,
        as_of_date: Optional[date] = None,
    ) -> SegmentReport:
        validate_period(year, month)
        segment = get_segment_by_code(self.db, segment_code)
        metrics = get_metrics_for_segment(self.db, segment.id)

        dim = days_in_month(year, month)
        first, last = month_bounds(year, month)
        effective_as_of = min(max(parse_iso_date(as_of_date) or date.today(), first), last)
        completed_days = clamp(effective_as_of.day - 1, 0, dim)

        series = self.store.load_month_series(segment.id, metrics, year, month)
        monthly_plan = find_monthly_plan(self.db, segment.id, year, month)

        waiting_start = None
        if segment.code == SegmentCode.TRUCK_DISPATCH:
            waiting_start = self.waiting_resolver.resolve_start(segment.id, metrics, year, month)
            if not waiting_start.history_found:
                logger.warning(
                    "No waiting history within %d months before %04d-%02d for %s, starting from zero",
                    self.waiting_resolver.max_depth + 1, year, month, segment.code.value
                )

        apply_formula_rows(
            segment.code,
            series,
            dim,
            waiting_start=waiting_start.balances if waiting_start else None,
            plan_params=monthly_plan.params if monthly_plan else None,
        )

        grid_rows = [
            GridRow(
                metric_code=metric.code,
                name=metric.name,
                is_editable=metric.is_editable,
                aggregation=metric.aggregation,
                day_values=series[metric.code],
                month_total=month_total_for(metric, series[metric.code]),
            )
            for metric in metrics
        ]

        dashboard = compute_dashboard(
            segment.code, series, monthly_plan, dim, completed_days, effective_as_of
        )

        logger.debug(
            "Built %s report for %04d-%02d as of %s: %d rows",
            segment.code.value, year, month, effective_as_of, len(grid_rows)
        )

        return SegmentReport(
            segment_code=segment.code,
            segment_name=segment.name,
            year=year,
            month=month,
            as_of_date=effective_as_of,
            days_in_month=dim,
            grid_rows=grid_rows,
            dashboard=dashboard,
            waiting_start=waiting_start,
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # SUMMARY
    # ═══════════════════════════════════════════════════════════════════════════

    def get_summary_across_segments(
        self,
        year: int,
        month: int,
        as_of_date: Optional[date] = None,
        detailed: bool = False,
        allowed_segment_codes: Optional[Iterable[Union[str, SegmentCode]]] = None,
    ) -> List[SummaryRow]:
        """
        One row per segment, ordered by segment name. In detailed mode the
        truck-dispatch, extra-services and rail segments are broken out into
        their detail rows instead.
        """
        validate_period(year, month)
        allowed = None
        if allowed_segment_codes is not None:
            allowed = {parse_segment_code(code) for code in allowed_segment_codes}

        rows: List[SummaryRow] = []
        for segment in list_segments(self.db):
            if allowed is not None and segment.code not in allowed:
                continue

            report = self.build_segment_report(segment.code, year, month, as_of_date)

            if not detailed or segment.code not in DETAILED_SEGMENTS:
                rows.append(self._top_level_row(report))
                continue

            if segment.code == SegmentCode.TRUCK_DISPATCH:
                rows.extend(self._truck_dispatch_rows(report))
            elif segment.code == SegmentCode.EXTRA_SERVICES:
                rows.extend(self._extra_services_rows(report))
            elif segment.code == SegmentCode.RAIL:
                rows.append(self._detail_row(
                    report, "To/From Vladivostok", "RAIL_TOTAL_FLOW",
                    plan_month=report.dashboard.plan_month,
                    fact_to_date=report.dashboard.fact_to_date,
                    month_fact=report.dashboard.month_fact,
                    completion_to_date=report.dashboard.completion_to_date_pct,
                    completion_month=report.dashboard.completion_month_pct,
                ))

        return rows

    def _top_level_row(self, report: SegmentReport) -> SummaryRow:
        dashboard = report.dashboard
        return SummaryRow(
            segment_code=report.segment_code,
            segment_name=SUMMARY_NAMES.get(report.segment_code, report.segment_name),
            plan_month=dashboard.plan_month,
            fact_to_date=dashboard.fact_to_date,
            month_fact=dashboard.month_fact,
            completion_to_date=pct(dashboard.fact_to_date, dashboard.plan_to_date),
            completion_month=pct(dashboard.month_fact, dashboard.plan_month),
        )

    def _detail_row(self, report: SegmentReport, name: str, detail_code: str, **values) -> SummaryRow:
        return SummaryRow(
            segment_code=report.segment_code,
            segment_name=name,
            parent_segment_code=report.segment_code,
            detail_code=detail_code,
            **values,
        )

    def _truck_dispatch_rows(self, report: SegmentReport) -> List[SummaryRow]:
        dashboard = report.dashboard
        if not isinstance(dashboard, TruckDispatchDashboard):
            raise TypeError(f"Unexpected dashboard type for {report.segment_code.value}")

        truck, container_truck = dashboard.truck, dashboard.container_truck
        return [
            self._detail_row(
                report, "Car carriers / Curtains", "TRUCK_CURTAIN",
                plan_month=truck.plan_month,
                fact_to_date=truck.fact_to_date,
                month_fact=report.month_total("truck_sent") + report.month_total("curtain_sent"),
                completion_to_date=truck.completion_to_date_pct,
                completion_month=truck.completion_month_pct,
            ),
            self._detail_row(
                report, "Cars in containers", "CONTAINER_TRUCK",
                plan_month=container_truck.plan_month,
                fact_to_date=container_truck.fact_to_date,
                month_fact=report.month_total("container_truck_sent"),
                completion_to_date=container_truck.completion_to_date_pct,
                completion_month=container_truck.completion_month_pct,
            ),
        ]

    def _extra_services_rows(self, report: SegmentReport) -> List[SummaryRow]:
        rows = []
        for metric_code, name, detail_code in EXTRA_DETAIL_ROWS:
            grid_row = report.row(metric_code)
            day_values = grid_row.day_values if grid_row else []
            # Detail rows sum completed days only, without the as-of day
            rows.append(self._detail_row(
                report, name, detail_code,
                plan_month=ZERO,
                fact_to_date=sum_until(day_values, report.dashboard.completed_days),
                month_fact=report.month_total(metric_code),
                completion_to_date=ZERO,
                completion_month=ZERO,
            ))
        return rows
