"""
Formula Row Evaluator

Fills the derived ("formula") daily series of a segment from its raw series.
Each segment has an ordered rule set; every rule is one of two variants:

- SumOfParts: target[day] = sum of source[day], no data counted as zero
- WaitingBalance: target[day] = target[day - 1] + received[day] - sent[day],
  seeded with the lane's start-of-month balance

Derived rows are overwritten from their sources on every run, so evaluating
an already-derived set of series gives the same result again.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Tuple, Union
import logging

from planning_catalog import CONTAINER_PREFIXES, WAITING_LANE_METRICS
from planning_models import SegmentCode, FormulaKind, WaitingLane
from utils import ZERO, safe_number

logger = logging.getLogger(__name__)

Series = Dict[str, List[Optional[Decimal]]]
WaitingStart = Mapping[WaitingLane, Decimal]


@dataclass(frozen=True)
class SumOfParts:
    kind: FormulaKind
    target: str
    sources: Tuple[str, ...]


@dataclass(frozen=True)
class WaitingBalance:
    kind: FormulaKind
    lane: WaitingLane
    received: str
    sent: str
    target: str


FormulaRule = Union[SumOfParts, WaitingBalance]


def _container_rules(prefix: str) -> Tuple[FormulaRule, ...]:
    return (
        SumOfParts(FormulaKind.CONTAINER_PLAN_TOTAL_PER_DAY, f"{prefix}_plan_total_per_day",
                   (f"{prefix}_plan_unload_load", f"{prefix}_plan_move")),
        SumOfParts(FormulaKind.CONTAINER_FACT_TOTAL_PER_DAY, f"{prefix}_fact_total_per_day",
                   (f"{prefix}_fact_unload_load", f"{prefix}_fact_move")),
    )


def _waiting_rule(kind: FormulaKind, lane: WaitingLane) -> WaitingBalance:
    received, sent, waiting = WAITING_LANE_METRICS[lane]
    return WaitingBalance(kind, lane, received, sent, waiting)


# Order matters: totals that read other derived rows come after them
SEGMENT_RULES: Dict[SegmentCode, Tuple[FormulaRule, ...]] = {
    SegmentCode.CONTAINER_EAST: _container_rules(CONTAINER_PREFIXES[SegmentCode.CONTAINER_EAST]),
    SegmentCode.CONTAINER_CENTRAL: _container_rules(CONTAINER_PREFIXES[SegmentCode.CONTAINER_CENTRAL]),
    SegmentCode.TRUCK_DISPATCH: (
        _waiting_rule(FormulaKind.WAITING_TRUCK, WaitingLane.TRUCK),
        _waiting_rule(FormulaKind.WAITING_CONTAINER_TRUCK, WaitingLane.CONTAINER_TRUCK),
        _waiting_rule(FormulaKind.WAITING_CURTAIN, WaitingLane.CURTAIN),
        SumOfParts(FormulaKind.DISPATCH_TOTAL_RECEIVED, "dispatch_total_received",
                   ("truck_received", "container_truck_received", "curtain_received")),
        SumOfParts(FormulaKind.DISPATCH_TOTAL_SENT, "dispatch_total_sent",
                   ("truck_sent", "container_truck_sent", "curtain_sent")),
        SumOfParts(FormulaKind.DISPATCH_TOTAL_WAITING, "dispatch_total_waiting",
                   ("truck_waiting", "container_truck_waiting", "curtain_waiting")),
    ),
    SegmentCode.RAIL: (
        SumOfParts(FormulaKind.RAIL_OUTBOUND_TOTAL, "rail_outbound_total", ("rail_outbound_20", "rail_outbound_40")),
        SumOfParts(FormulaKind.RAIL_INBOUND_TOTAL, "rail_inbound_total", ("rail_inbound_20", "rail_inbound_40")),
        SumOfParts(FormulaKind.RAIL_TOTAL, "rail_total", ("rail_outbound_total", "rail_inbound_total")),
    ),
    SegmentCode.EXTRA_SERVICES: (
        SumOfParts(FormulaKind.EXTRA_TOTAL, "extra_total",
                   ("extra_groupage", "extra_curtains", "extra_forwarding", "extra_repack")),
    ),
    SegmentCode.MAINTENANCE: (),
}


def check_rule_coverage(rules: Mapping[SegmentCode, Tuple[FormulaRule, ...]] = SEGMENT_RULES) -> None:
    """Every segment has a rule set and every formula kind is computed by some rule."""
    missing_segments = set(SegmentCode) - set(rules)
    if missing_segments:
        raise RuntimeError(f"No formula rule set for segments: {sorted(s.value for s in missing_segments)}")

    handled = {rule.kind for segment_rules in rules.values() for rule in segment_rules}
    unhandled = set(FormulaKind) - handled
    if unhandled:
        raise RuntimeError(f"Formula kinds without a rule: {sorted(k.value for k in unhandled)}")


check_rule_coverage()


def waiting_start_from_params(params: Optional[dict]) -> Dict[WaitingLane, Decimal]:
    """Read per-lane opening balances from a monthly plan's params."""
    seeds = (params or {}).get("waiting_start") or {}
    return {lane: safe_number(seeds.get(lane.value)) for lane in WaitingLane}


def fill_daily_sum(series: Series, target: str, sources: Tuple[str, ...], days_in_month: int) -> None:
    values = series.get(target)
    if values is None:
        return

    for day in range(days_in_month):
        total = ZERO
        for source in sources:
            source_values = series.get(source)
            if source_values is not None and day < len(source_values):
                total += safe_number(source_values[day])
        values[day] = total


def fill_waiting(series: Series, rule: WaitingBalance, start: Decimal, days_in_month: int) -> None:
    waiting = series.get(rule.target)
    if waiting is None:
        return

    received = series.get(rule.received) or []
    sent = series.get(rule.sent) or []
    carry = safe_number(start)
    for day in range(days_in_month):
        day_received = received[day] if day < len(received) else None
        day_sent = sent[day] if day < len(sent) else None
        carry = carry + safe_number(day_received) - safe_number(day_sent)
        waiting[day] = carry


def apply_formula_rows(
    segment_code: SegmentCode,
    series: Series,
    days_in_month: int,
    waiting_start: Optional[WaitingStart] = None,
    plan_params: Optional[dict] = None,
) -> Series:
    """
    Evaluate the segment's rule set in place and return the series.

    The waiting-balance seed is the resolved start when given, else the
    monthly plan's params, else zero for every lane.
    """
    if waiting_start is None:
        waiting_start = waiting_start_from_params(plan_params)

    for rule in SEGMENT_RULES[segment_code]:
        if isinstance(rule, WaitingBalance):
            fill_waiting(series, rule, waiting_start.get(rule.lane, ZERO), days_in_month)
        else:
            fill_daily_sum(series, rule.target, rule.sources, days_in_month)

    return series
