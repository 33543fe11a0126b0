"""
Segment Dashboard KPIs

Pure projection of a filled month of daily series plus the month's plan
onto the headline numbers shown for each segment:

- plan_to_date: straight-line pro-ration of the month plan over completed days
- fact_to_date: sum over the data window (completed days + the as-of day)
- completion %: fact / plan * 100, zero when the plan is not positive

Nothing here reads the database or mutates its inputs.
"""

from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence

from planning_catalog import CONTAINER_PREFIXES
from planning_models import PlanningMonthlyPlan, PlanMetricCode, SegmentCode
from utils import ZERO, avg_until, clamp, last_until, pct, safe_number, sum_until, sum_values


DaySeries = Mapping[str, Sequence[Optional[Decimal]]]


# ═══════════════════════════════════════════════════════════════════════════════
# RESULT TYPES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class SegmentDashboard:
    """Headline KPIs shared by every segment."""
    as_of_date: date
    days_in_month: int
    completed_days: int
    plan_month: Decimal
    plan_to_date: Decimal
    fact_to_date: Decimal
    month_fact: Decimal
    completion_month_pct: Decimal
    completion_to_date_pct: Decimal
    avg_per_day: Decimal

    def to_dict(self) -> Dict:
        return {
            "as_of_date": self.as_of_date.isoformat(),
            "days_in_month": self.days_in_month,
            "completed_days": self.completed_days,
            "plan_month": str(self.plan_month),
            "plan_to_date": str(self.plan_to_date),
            "fact_to_date": str(self.fact_to_date),
            "month_fact": str(self.month_fact),
            "completion_month_pct": str(self.completion_month_pct),
            "completion_to_date_pct": str(self.completion_to_date_pct),
            "avg_per_day": str(self.avg_per_day),
        }


@dataclass
class PlanTrack:
    """One plan-vs-fact track inside a segment."""
    plan_month: Decimal
    plan_to_date: Decimal
    fact_to_date: Decimal
    month_fact: Decimal
    completion_month_pct: Decimal
    completion_to_date_pct: Decimal
    avg_per_day: Decimal

    def to_dict(self) -> Dict:
        return {
            "plan_month": str(self.plan_month),
            "plan_to_date": str(self.plan_to_date),
            "fact_to_date": str(self.fact_to_date),
            "month_fact": str(self.month_fact),
            "completion_month_pct": str(self.completion_month_pct),
            "completion_to_date_pct": str(self.completion_to_date_pct),
            "avg_per_day": str(self.avg_per_day),
        }


@dataclass
class ContainerDashboard(SegmentDashboard):
    gross_total: Decimal
    gross_avg_per_day: Decimal
    trucks_avg_on_line: Decimal

    def to_dict(self) -> Dict:
        result = super().to_dict()
        result.update({
            "gross_total": str(self.gross_total),
            "gross_avg_per_day": str(self.gross_avg_per_day),
            "trucks_avg_on_line": str(self.trucks_avg_on_line),
        })
        return result


@dataclass
class TruckDispatchDashboard(SegmentDashboard):
    truck: PlanTrack             # car carriers + curtains
    container_truck: PlanTrack   # cars shipped in containers
    waiting_total: Decimal
    waiting_truck: Decimal
    waiting_container_truck: Decimal
    waiting_curtain: Decimal
    debt_overload: Decimal
    debt_cashback: Decimal

    def to_dict(self) -> Dict:
        result = super().to_dict()
        result.update({
            "truck": self.truck.to_dict(),
            "container_truck": self.container_truck.to_dict(),
            "waiting_total": str(self.waiting_total),
            "waiting_truck": str(self.waiting_truck),
            "waiting_container_truck": str(self.waiting_container_truck),
            "waiting_curtain": str(self.waiting_curtain),
            "debt_overload": str(self.debt_overload),
            "debt_cashback": str(self.debt_cashback),
        })
        return result


@dataclass
class PlanTrackDashboard(SegmentDashboard):
    """Single-track segments (rail, maintenance)."""
    pass


@dataclass
class ExtraServicesDashboard(SegmentDashboard):
    groupage: Decimal
    curtains: Decimal
    forwarding: Decimal
    repack: Decimal

    def to_dict(self) -> Dict:
        result = super().to_dict()
        result.update({
            "groupage": str(self.groupage),
            "curtains": str(self.curtains),
            "forwarding": str(self.forwarding),
            "repack": str(self.repack),
        })
        return result


# ═══════════════════════════════════════════════════════════════════════════════
# CALCULATION
# ═══════════════════════════════════════════════════════════════════════════════

def data_days_for(days_in_month: int, completed_days: int) -> int:
    """Window for to-date sums: completed days plus the as-of day, at least one."""
    return max(1, min(days_in_month, completed_days + 1))


def prorate(plan_month: Decimal, days_in_month: int, completed_days: int) -> Decimal:
    if days_in_month <= 0:
        return ZERO
    return plan_month / days_in_month * completed_days


def get_plan_value(monthly_plan: Optional[PlanningMonthlyPlan], code: PlanMetricCode) -> Decimal:
    """Carried plan when set, else the base plan, else zero."""
    if monthly_plan is None:
        return ZERO
    for plan_metric in monthly_plan.plan_metrics:
        if plan_metric.code != code:
            continue
        if plan_metric.carry_plan is not None:
            return safe_number(plan_metric.carry_plan)
        return safe_number(plan_metric.base_plan)
    return ZERO


def _series(series: DaySeries, code: str) -> List[Optional[Decimal]]:
    return list(series.get(code) or [])


def _track(plan_month, days_in_month, completed_days, data_days, fact_to_date, month_fact) -> PlanTrack:
    plan_to_date = prorate(plan_month, days_in_month, completed_days)
    return PlanTrack(
        plan_month=plan_month,
        plan_to_date=plan_to_date,
        fact_to_date=fact_to_date,
        month_fact=month_fact,
        completion_month_pct=pct(month_fact, plan_month),
        completion_to_date_pct=pct(fact_to_date, plan_to_date),
        avg_per_day=fact_to_date / data_days,
    )


def compute_dashboard(
    segment_code: SegmentCode,
    series: DaySeries,
    monthly_plan: Optional[PlanningMonthlyPlan],
    days_in_month: int,
    completed_days: int,
    as_of_date: date,
) -> SegmentDashboard:
    completed_days = clamp(completed_days, 0, days_in_month)
    data_days = data_days_for(days_in_month, completed_days)

    def single_track(plan_code: Optional[PlanMetricCode], fact_code: str) -> dict:
        values = _series(series, fact_code)
        plan_month = get_plan_value(monthly_plan, plan_code) if plan_code else ZERO
        track = _track(
            plan_month, days_in_month, completed_days, data_days,
            sum_until(values, data_days), sum_values(values),
        )
        return dict(
            as_of_date=as_of_date,
            days_in_month=days_in_month,
            completed_days=completed_days,
            **asdict(track),
        )

    if segment_code in CONTAINER_PREFIXES:
        prefix = CONTAINER_PREFIXES[segment_code]
        gross_total = last_until(_series(series, f"{prefix}_gross_value"), data_days)
        return ContainerDashboard(
            **single_track(PlanMetricCode.CONTAINER_REQUESTS, f"{prefix}_fact_total_per_day"),
            gross_total=gross_total,
            gross_avg_per_day=gross_total / data_days,
            trucks_avg_on_line=avg_until(_series(series, f"{prefix}_trucks_on_line"), data_days),
        )

    if segment_code == SegmentCode.TRUCK_DISPATCH:
        return _truck_dispatch_dashboard(series, monthly_plan, days_in_month, completed_days, data_days, as_of_date)

    if segment_code == SegmentCode.RAIL:
        return PlanTrackDashboard(**single_track(PlanMetricCode.RAIL_PLAN, "rail_total"))

    if segment_code == SegmentCode.MAINTENANCE:
        return PlanTrackDashboard(**single_track(PlanMetricCode.MAINTENANCE_PLAN, "maintenance_count"))

    if segment_code == SegmentCode.EXTRA_SERVICES:
        return ExtraServicesDashboard(
            **single_track(None, "extra_total"),
            groupage=sum_until(_series(series, "extra_groupage"), data_days),
            curtains=sum_until(_series(series, "extra_curtains"), data_days),
            forwarding=sum_until(_series(series, "extra_forwarding"), data_days),
            repack=sum_until(_series(series, "extra_repack"), data_days),
        )

    raise ValueError(f"No dashboard defined for segment {segment_code}")


def _truck_dispatch_dashboard(
    series: DaySeries,
    monthly_plan: Optional[PlanningMonthlyPlan],
    days_in_month: int,
    completed_days: int,
    data_days: int,
    as_of_date: date,
) -> TruckDispatchDashboard:
    truck_sent = _series(series, "truck_sent")
    curtain_sent = _series(series, "curtain_sent")
    container_truck_sent = _series(series, "container_truck_sent")

    # Car carriers and curtains are reported as one track
    truck = _track(
        get_plan_value(monthly_plan, PlanMetricCode.TRUCK_PLAN),
        days_in_month, completed_days, data_days,
        sum_until(truck_sent, data_days) + sum_until(curtain_sent, data_days),
        sum_values(truck_sent) + sum_values(curtain_sent),
    )
    container_truck = _track(
        get_plan_value(monthly_plan, PlanMetricCode.CONTAINER_TRUCK_PLAN),
        days_in_month, completed_days, data_days,
        sum_until(container_truck_sent, data_days),
        sum_values(container_truck_sent),
    )

    plan_month = truck.plan_month + container_truck.plan_month
    plan_to_date = truck.plan_to_date + container_truck.plan_to_date
    fact_to_date = truck.fact_to_date + container_truck.fact_to_date
    month_fact = truck.month_fact + container_truck.month_fact

    return TruckDispatchDashboard(
        as_of_date=as_of_date,
        days_in_month=days_in_month,
        completed_days=completed_days,
        plan_month=plan_month,
        plan_to_date=plan_to_date,
        fact_to_date=fact_to_date,
        month_fact=month_fact,
        completion_month_pct=pct(month_fact, plan_month),
        completion_to_date_pct=pct(fact_to_date, plan_to_date),
        avg_per_day=fact_to_date / data_days,
        truck=truck,
        container_truck=container_truck,
        waiting_total=last_until(_series(series, "dispatch_total_waiting"), data_days),
        waiting_truck=last_until(_series(series, "truck_waiting"), data_days),
        waiting_container_truck=last_until(_series(series, "container_truck_waiting"), data_days),
        waiting_curtain=last_until(_series(series, "curtain_waiting"), data_days),
        debt_overload=last_until(_series(series, "dispatch_debt_overload"), data_days),
        debt_cashback=last_until(_series(series, "dispatch_debt_cashback"), data_days),
    )
