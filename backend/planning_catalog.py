"""
Planning Catalog

Static definition of segments, their daily metrics and default monthly plans,
plus the read helpers every report goes through. The catalog is seeded once
by bootstrap_catalog and treated as read-only input afterwards.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Union
import logging

from sqlalchemy.orm import Session

from planning_errors import SegmentNotFoundError, NotFoundError
from utils import validate_period
from planning_models import (
    PlanningSegment, PlanningMetric, PlanningMonthlyPlan, PlanningMonthlyPlanMetric,
    SegmentCode, MetricValueType, MetricAggregation, PlanMetricCode, FormulaKind,
    CarryMode, WaitingLane
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricSeed:
    code: str
    name: str
    is_editable: bool
    value_type: MetricValueType
    aggregation: MetricAggregation
    formula: Optional[FormulaKind]
    order_index: int


@dataclass(frozen=True)
class PlanSeed:
    metrics: Tuple[Tuple[PlanMetricCode, Decimal], ...]
    params: Optional[dict] = None


def _raw(code, name, order_index, aggregation=MetricAggregation.SUM, value_type=MetricValueType.INT):
    return MetricSeed(code, name, True, value_type, aggregation, None, order_index)


def _derived(code, name, formula, order_index):
    return MetricSeed(code, name, False, MetricValueType.INT, MetricAggregation.FORMULA, formula, order_index)


def _container_metrics(prefix: str) -> Tuple[MetricSeed, ...]:
    return (
        _raw(f"{prefix}_plan_unload_load", "Unload/load - plan", 5),
        _raw(f"{prefix}_plan_move", "Moves - plan", 6),
        _derived(f"{prefix}_plan_total_per_day", "Total per day - plan", FormulaKind.CONTAINER_PLAN_TOTAL_PER_DAY, 7),
        _raw(f"{prefix}_fact_unload_load", "Unload/load (fact)", 10),
        _raw(f"{prefix}_fact_move", "Moves (fact)", 20),
        _derived(f"{prefix}_fact_total_per_day", "Total per day (fact)", FormulaKind.CONTAINER_FACT_TOTAL_PER_DAY, 30),
        _raw(f"{prefix}_trucks_on_line", "Vehicles on line (fact)", 40, aggregation=MetricAggregation.AVG),
        _raw(f"{prefix}_gross_value", "Gross value", 50, value_type=MetricValueType.CURRENCY),
    )


SEGMENT_NAMES: Dict[SegmentCode, str] = {
    SegmentCode.CONTAINER_EAST: "Container Traffic - Vladivostok",
    SegmentCode.CONTAINER_CENTRAL: "Container Traffic - Moscow",
    SegmentCode.TRUCK_DISPATCH: "Truck Dispatch",
    SegmentCode.RAIL: "Rail",
    SegmentCode.EXTRA_SERVICES: "Extra Services",
    SegmentCode.MAINTENANCE: "Truck Maintenance",
}

CONTAINER_PREFIXES: Dict[SegmentCode, str] = {
    SegmentCode.CONTAINER_EAST: "container_east",
    SegmentCode.CONTAINER_CENTRAL: "container_central",
}

METRIC_SEEDS: Dict[SegmentCode, Tuple[MetricSeed, ...]] = {
    SegmentCode.CONTAINER_EAST: _container_metrics("container_east"),
    SegmentCode.CONTAINER_CENTRAL: _container_metrics("container_central"),
    SegmentCode.TRUCK_DISPATCH: (
        _raw("truck_received", "Car carrier - received", 10),
        _raw("truck_sent", "Car carrier - sent", 20),
        _derived("truck_waiting", "Car carrier - waiting", FormulaKind.WAITING_TRUCK, 30),
        _raw("container_truck_received", "In container - received", 40),
        _raw("container_truck_sent", "In container - sent", 50),
        _derived("container_truck_waiting", "In container - waiting", FormulaKind.WAITING_CONTAINER_TRUCK, 60),
        _raw("curtain_received", "Curtain - received", 70),
        _raw("curtain_sent", "Curtain - sent", 80),
        _derived("curtain_waiting", "Curtain - waiting", FormulaKind.WAITING_CURTAIN, 90),
        _derived("dispatch_total_received", "Total - received", FormulaKind.DISPATCH_TOTAL_RECEIVED, 100),
        _derived("dispatch_total_sent", "Total - sent", FormulaKind.DISPATCH_TOTAL_SENT, 110),
        _derived("dispatch_total_waiting", "Total - waiting", FormulaKind.DISPATCH_TOTAL_WAITING, 120),
        _raw("dispatch_debt_overload", "Overload debt", 200,
             aggregation=MetricAggregation.LAST, value_type=MetricValueType.CURRENCY),
        _raw("dispatch_debt_cashback", "Cashback debt", 210,
             aggregation=MetricAggregation.LAST, value_type=MetricValueType.CURRENCY),
    ),
    SegmentCode.RAIL: (
        _raw("rail_outbound_20", "From Vladivostok - 20ft", 10),
        _raw("rail_outbound_40", "From Vladivostok - 40ft", 20),
        _derived("rail_outbound_total", "From Vladivostok - total", FormulaKind.RAIL_OUTBOUND_TOTAL, 30),
        _raw("rail_inbound_20", "To Vladivostok - 20ft", 40),
        _raw("rail_inbound_40", "To Vladivostok - 40ft", 50),
        _derived("rail_inbound_total", "To Vladivostok - total", FormulaKind.RAIL_INBOUND_TOTAL, 60),
        _derived("rail_total", "Rail - total", FormulaKind.RAIL_TOTAL, 70),
    ),
    SegmentCode.EXTRA_SERVICES: (
        _raw("extra_groupage", "Groupage cargo", 10),
        _raw("extra_curtains", "Curtains (tents)", 20),
        _raw("extra_forwarding", "Forwarding", 30),
        _raw("extra_repack", "Repacking/reinforcement", 40),
        _derived("extra_total", "Total", FormulaKind.EXTRA_TOTAL, 50),
    ),
    SegmentCode.MAINTENANCE: (
        _raw("maintenance_count", "Truck maintenance (fact)", 10),
    ),
}

# Per-lane (received, sent, waiting) metric codes of the truck-dispatch segment
WAITING_LANE_METRICS: Dict[WaitingLane, Tuple[str, str, str]] = {
    WaitingLane.TRUCK: ("truck_received", "truck_sent", "truck_waiting"),
    WaitingLane.CONTAINER_TRUCK: ("container_truck_received", "container_truck_sent", "container_truck_waiting"),
    WaitingLane.CURTAIN: ("curtain_received", "curtain_sent", "curtain_waiting"),
}

# Stock-like rows: month totals take the latest value instead of a sum
WAITING_METRIC_CODES = frozenset(
    [waiting for _, _, waiting in WAITING_LANE_METRICS.values()] + ["dispatch_total_waiting"]
)

DEFAULT_PLANS: Dict[SegmentCode, PlanSeed] = {
    SegmentCode.CONTAINER_EAST: PlanSeed(metrics=((PlanMetricCode.CONTAINER_REQUESTS, Decimal("850")),)),
    SegmentCode.CONTAINER_CENTRAL: PlanSeed(metrics=((PlanMetricCode.CONTAINER_REQUESTS, Decimal("392")),)),
    SegmentCode.TRUCK_DISPATCH: PlanSeed(
        metrics=(
            (PlanMetricCode.TRUCK_PLAN, Decimal("258")),
            (PlanMetricCode.CONTAINER_TRUCK_PLAN, Decimal("162")),
        ),
        params={"waiting_start": {"truck": 51, "container_truck": 11, "curtain": 1}},
    ),
    SegmentCode.RAIL: PlanSeed(metrics=((PlanMetricCode.RAIL_PLAN, Decimal("91")),)),
    SegmentCode.EXTRA_SERVICES: PlanSeed(metrics=()),
    SegmentCode.MAINTENANCE: PlanSeed(metrics=((PlanMetricCode.MAINTENANCE_PLAN, Decimal("50")),)),
}


# ═══════════════════════════════════════════════════════════════════════════════
# LOOKUPS
# ═══════════════════════════════════════════════════════════════════════════════

def parse_segment_code(raw: Union[str, SegmentCode]) -> SegmentCode:
    if isinstance(raw, SegmentCode):
        return raw
    try:
        return SegmentCode(str(raw).strip().upper())
    except ValueError:
        raise SegmentNotFoundError(raw)


def parse_plan_metric_code(raw: Union[str, PlanMetricCode]) -> PlanMetricCode:
    if isinstance(raw, PlanMetricCode):
        return raw
    try:
        return PlanMetricCode(str(raw).strip().upper())
    except ValueError:
        raise NotFoundError(f"Unknown plan metric code: {raw}")


def find_segment(db: Session, segment_code: Union[str, SegmentCode]) -> Optional[PlanningSegment]:
    code = parse_segment_code(segment_code)
    return db.query(PlanningSegment).filter(PlanningSegment.code == code).first()


def get_segment_by_code(db: Session, segment_code: Union[str, SegmentCode]) -> PlanningSegment:
    segment = find_segment(db, segment_code)
    if not segment:
        raise SegmentNotFoundError(segment_code)
    return segment


def list_segments(db: Session) -> List[PlanningSegment]:
    return db.query(PlanningSegment).order_by(PlanningSegment.name.asc()).all()


def get_metrics_for_segment(db: Session, segment_id: int) -> List[PlanningMetric]:
    return (
        db.query(PlanningMetric)
        .filter(PlanningMetric.segment_id == segment_id)
        .order_by(PlanningMetric.order_index.asc())
        .all()
    )


def find_monthly_plan(db: Session, segment_id: int, year: int, month: int) -> Optional[PlanningMonthlyPlan]:
    return db.query(PlanningMonthlyPlan).filter(
        PlanningMonthlyPlan.segment_id == segment_id,
        PlanningMonthlyPlan.year == year,
        PlanningMonthlyPlan.month == month,
    ).first()


def get_or_create_monthly_plan(db: Session, segment_id: int, year: int, month: int) -> PlanningMonthlyPlan:
    plan = find_monthly_plan(db, segment_id, year, month)
    if plan is None:
        plan = PlanningMonthlyPlan(segment_id=segment_id, year=year, month=month, params=None)
        db.add(plan)
        db.flush()
    return plan


def find_monthly_plan_metric(db: Session, plan_id: int, code: PlanMetricCode) -> Optional[PlanningMonthlyPlanMetric]:
    return db.query(PlanningMonthlyPlanMetric).filter(
        PlanningMonthlyPlanMetric.plan_monthly_id == plan_id,
        PlanningMonthlyPlanMetric.code == code,
    ).first()


def get_or_create_monthly_plan_metric(db: Session, plan_id: int, code: PlanMetricCode) -> PlanningMonthlyPlanMetric:
    metric = find_monthly_plan_metric(db, plan_id, code)
    if metric is None:
        metric = PlanningMonthlyPlanMetric(
            plan_monthly_id=plan_id,
            code=code,
            base_plan=Decimal("0"),
            carry_plan=Decimal("0"),
            carry_mode=CarryMode.ROLL_OVER.value,
            meta=None,
        )
        db.add(metric)
        db.flush()
    return metric


# ═══════════════════════════════════════════════════════════════════════════════
# BOOTSTRAP
# ═══════════════════════════════════════════════════════════════════════════════

def bootstrap_catalog(db: Session, year: int, month: int) -> List[PlanningSegment]:
    """
    Upsert all segments and metrics, and the default monthly plan of the
    given period. Safe to run repeatedly.
    """
    validate_period(year, month)
    try:
        segments = [_bootstrap_segment(db, code, name, year, month) for code, name in SEGMENT_NAMES.items()]
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Planning catalog bootstrapped: %d segments, plans for %04d-%02d", len(segments), year, month)
    return segments


def _bootstrap_segment(db: Session, code: SegmentCode, name: str, year: int, month: int) -> PlanningSegment:
    segment = find_segment(db, code)
    if segment is None:
        segment = PlanningSegment(code=code, name=name)
        db.add(segment)
        db.flush()
    else:
        segment.name = name

    existing = {m.code: m for m in get_metrics_for_segment(db, segment.id)}
    for seed in METRIC_SEEDS[code]:
        metric = existing.get(seed.code)
        if metric is None:
            metric = PlanningMetric(segment_id=segment.id, code=seed.code)
            db.add(metric)
        metric.name = seed.name
        metric.is_editable = seed.is_editable
        metric.value_type = seed.value_type
        metric.aggregation = seed.aggregation
        metric.formula = seed.formula
        metric.order_index = seed.order_index

    plan_seed = DEFAULT_PLANS[code]
    monthly_plan = get_or_create_monthly_plan(db, segment.id, year, month)
    if plan_seed.params:
        monthly_plan.params = dict(plan_seed.params)

    for plan_code, base_plan in plan_seed.metrics:
        plan_metric = get_or_create_monthly_plan_metric(db, monthly_plan.id, plan_code)
        plan_metric.base_plan = base_plan
        plan_metric.carry_plan = base_plan
        plan_metric.carry_mode = CarryMode.NONE.value

    return segment
