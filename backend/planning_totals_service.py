"""
Year Totals Service

Year-long plan vs fact table per configured (segment, plan-metric) pair,
and base-plan edits that re-run the carry-over fold for the whole year.

Facts for a month come from the segment report's month totals, so year
totals always agree with what the monthly grid shows.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union
import logging

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import Session

from audit_service import log_base_plan_change, log_planning_action
from carry_over import MONTHS_IN_YEAR, build_classic_carry_plans, compute_carry_over
from planning_catalog import (
    find_segment, find_monthly_plan, find_monthly_plan_metric, get_segment_by_code,
    get_or_create_monthly_plan, get_or_create_monthly_plan_metric,
    parse_plan_metric_code, parse_segment_code
)
from planning_errors import InvalidPlanValueError, PlanMetricNotConfiguredError
from planning_models import (
    PlanningMonthlyPlanMetric, PlanningSegment, CarryMode, PlanMetricCode, SegmentCode
)
from planning_report_service import PlanningReportService
from utils import ZERO, decimal_str, pct, quantize_cents, safe_number, validate_period

logger = logging.getLogger(__name__)

PLAN_FLOW = "PLAN_FLOW"
FACT_ONLY = "FACT_ONLY"


# ═══════════════════════════════════════════════════════════════════════════════
# CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TotalsConfig:
    """One row of the year totals table."""
    segment_code: SegmentCode
    segment_name: str
    plan_metric_code: Optional[PlanMetricCode]
    plan_metric_name: str
    fact_metric_codes: Tuple[str, ...]
    kind: str = PLAN_FLOW

    @property
    def row_id(self) -> str:
        key = self.plan_metric_code.value if self.plan_metric_code else "+".join(self.fact_metric_codes)
        return f"{self.segment_code.value}:{key}"


TOTALS_CONFIG: Tuple[TotalsConfig, ...] = (
    TotalsConfig(SegmentCode.CONTAINER_EAST, "Container Traffic - Vladivostok",
                 PlanMetricCode.CONTAINER_REQUESTS, "Request plan (containers, Vladivostok)",
                 ("container_east_fact_total_per_day",)),
    TotalsConfig(SegmentCode.CONTAINER_CENTRAL, "Container Traffic - Moscow",
                 PlanMetricCode.CONTAINER_REQUESTS, "Request plan (containers, Moscow)",
                 ("container_central_fact_total_per_day",)),
    TotalsConfig(SegmentCode.TRUCK_DISPATCH, "Truck Dispatch",
                 PlanMetricCode.TRUCK_PLAN, "Monthly plan, car carriers (carriers + curtains)",
                 ("truck_sent", "curtain_sent")),
    TotalsConfig(SegmentCode.TRUCK_DISPATCH, "Truck Dispatch",
                 PlanMetricCode.CONTAINER_TRUCK_PLAN, "Monthly plan, cars in containers",
                 ("container_truck_sent",)),
    TotalsConfig(SegmentCode.RAIL, "Rail",
                 PlanMetricCode.RAIL_PLAN, "Monthly plan, rail",
                 ("rail_total",)),
    TotalsConfig(SegmentCode.MAINTENANCE, "Truck Maintenance",
                 PlanMetricCode.MAINTENANCE_PLAN, "Monthly plan, truck maintenance",
                 ("maintenance_count",)),
    TotalsConfig(SegmentCode.EXTRA_SERVICES, "Extra Services", None, "Groupage cargo",
                 ("extra_groupage",), FACT_ONLY),
    TotalsConfig(SegmentCode.EXTRA_SERVICES, "Extra Services", None, "Curtains (tents)",
                 ("extra_curtains",), FACT_ONLY),
    TotalsConfig(SegmentCode.EXTRA_SERVICES, "Extra Services", None, "Forwarding",
                 ("extra_forwarding",), FACT_ONLY),
    TotalsConfig(SegmentCode.EXTRA_SERVICES, "Extra Services", None, "Repacking/reinforcement",
                 ("extra_repack",), FACT_ONLY),
)


class BasePlanUpdate(BaseModel):
    """Validated input for a base-plan edit."""
    year: int
    month: int = Field(..., ge=1, le=12)
    segment_code: SegmentCode
    plan_metric_code: PlanMetricCode
    base_plan: Decimal = Field(..., ge=0)
    changed_by: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════════════
# RESULT TYPES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class YearTotalsMonthCell:
    month: int
    base_plan: Decimal
    carry_plan: Decimal
    fact: Decimal
    completion_pct: Decimal

    def to_dict(self) -> Dict:
        return {
            "month": self.month,
            "base_plan": str(self.base_plan),
            "carry_plan": str(self.carry_plan),
            "fact": str(self.fact),
            "completion_pct": str(self.completion_pct),
        }


@dataclass
class YearTotalsRow:
    row_id: str
    segment_code: SegmentCode
    segment_name: str
    plan_metric_code: Optional[PlanMetricCode]
    plan_metric_name: str
    kind: str
    months: List[YearTotalsMonthCell] = field(default_factory=list)
    yearly_base_plan: Decimal = ZERO
    yearly_carry_plan: Decimal = ZERO
    yearly_fact: Decimal = ZERO
    yearly_completion_pct: Decimal = ZERO

    def to_dict(self) -> Dict:
        return {
            "row_id": self.row_id,
            "segment_code": self.segment_code.value,
            "segment_name": self.segment_name,
            "plan_metric_code": self.plan_metric_code.value if self.plan_metric_code else None,
            "plan_metric_name": self.plan_metric_name,
            "kind": self.kind,
            "months": [m.to_dict() for m in self.months],
            "yearly_base_plan": str(self.yearly_base_plan),
            "yearly_carry_plan": str(self.yearly_carry_plan),
            "yearly_fact": str(self.yearly_fact),
            "yearly_completion_pct": str(self.yearly_completion_pct),
        }


# ═══════════════════════════════════════════════════════════════════════════════
# SERVICE
# ═══════════════════════════════════════════════════════════════════════════════

class PlanningTotalsService:
    """
    Year totals and carry-plan persistence.

    The totals table is passed in, never read from module state inside the
    methods, so alternative tables can be used for a single call site.
    """

    def __init__(
        self,
        db: Session,
        totals_config: Sequence[TotalsConfig] = TOTALS_CONFIG,
        report_service: Optional[PlanningReportService] = None,
    ):
        self.db = db
        self.totals_config = tuple(totals_config)
        self.report_service = report_service or PlanningReportService(db)

    def get_config(
        self,
        segment_code: Union[str, SegmentCode],
        plan_metric_code: Union[str, PlanMetricCode],
    ) -> TotalsConfig:
        segment = parse_segment_code(segment_code)
        plan_metric = parse_plan_metric_code(plan_metric_code)
        for config in self.totals_config:
            if config.segment_code == segment and config.plan_metric_code == plan_metric and config.kind == PLAN_FLOW:
                return config
        raise PlanMetricNotConfiguredError(segment.value, plan_metric.value)

    # ═══════════════════════════════════════════════════════════════════════════
    # YEAR TOTALS
    # ═══════════════════════════════════════════════════════════════════════════

    def get_year_totals(
        self,
        year: int,
        allowed_segment_codes: Optional[Iterable[Union[str, SegmentCode]]] = None,
        ensure_metrics: bool = False,
    ) -> List[YearTotalsRow]:
        """
        One row per configured pair with 12 monthly cells and yearly sums.

        Read-only unless ensure_metrics is set, which creates (and commits)
        the missing monthly plan rows of every plan-tracked pair.
        """
        validate_period(year)
        allowed = None
        if allowed_segment_codes is not None:
            allowed = {parse_segment_code(code) for code in allowed_segment_codes}

        fact_cache: Dict[Tuple[SegmentCode, int], object] = {}
        rows = []
        try:
            for config in self.totals_config:
                if allowed is not None and config.segment_code not in allowed:
                    continue

                segment = find_segment(self.db, config.segment_code)
                if segment is None:
                    logger.warning("Segment %s is not seeded, skipping year totals row", config.segment_code.value)
                    continue

                rows.append(self._build_row(segment, config, year, ensure_metrics, fact_cache))

            if ensure_metrics:
                self.db.commit()
        except Exception:
            if ensure_metrics:
                self.db.rollback()
            raise

        return rows

    def _build_row(self, segment: PlanningSegment, config: TotalsConfig, year: int,
                   ensure_metrics: bool, fact_cache: Dict) -> YearTotalsRow:
        facts = self._facts_for_year(config, year, fact_cache)

        if config.kind == PLAN_FLOW:
            if ensure_metrics:
                plan_metrics = self._ensure_year_plan_metrics(segment, year, config.plan_metric_code)
            else:
                plan_metrics = self._find_year_plan_metrics(segment, year, config.plan_metric_code)
            base_plans = [
                safe_number(plan_metrics[m].base_plan) if plan_metrics.get(m) else ZERO
                for m in range(1, MONTHS_IN_YEAR + 1)
            ]
            carry = compute_carry_over(base_plans, facts)
            carry_plans, completion_pcts = carry.carry_plans, carry.completion_pcts
        else:
            base_plans = [ZERO] * MONTHS_IN_YEAR
            carry_plans = [ZERO] * MONTHS_IN_YEAR
            completion_pcts = [ZERO] * MONTHS_IN_YEAR

        months = [
            YearTotalsMonthCell(
                month=i + 1,
                base_plan=base_plans[i],
                carry_plan=carry_plans[i],
                fact=facts[i],
                completion_pct=completion_pcts[i],
            )
            for i in range(MONTHS_IN_YEAR)
        ]

        yearly_base_plan = sum(base_plans, ZERO)
        # The year total reports the sum of base plans, not a compounded carry
        yearly_carry_plan = yearly_base_plan if config.kind == PLAN_FLOW else ZERO
        yearly_fact = sum(facts, ZERO)

        return YearTotalsRow(
            row_id=config.row_id,
            segment_code=config.segment_code,
            segment_name=config.segment_name,
            plan_metric_code=config.plan_metric_code,
            plan_metric_name=config.plan_metric_name,
            kind=config.kind,
            months=months,
            yearly_base_plan=yearly_base_plan,
            yearly_carry_plan=yearly_carry_plan,
            yearly_fact=yearly_fact,
            yearly_completion_pct=pct(yearly_fact, yearly_carry_plan) if config.kind == PLAN_FLOW else ZERO,
        )

    def _facts_for_year(self, config: TotalsConfig, year: int, fact_cache: Optional[Dict] = None) -> List[Decimal]:
        """Sum of the configured metrics' month totals, one report per month."""
        if fact_cache is None:
            fact_cache = {}

        facts = []
        for month in range(1, MONTHS_IN_YEAR + 1):
            key = (config.segment_code, month)
            report = fact_cache.get(key)
            if report is None:
                report = self.report_service.build_segment_report(config.segment_code, year, month)
                fact_cache[key] = report
            facts.append(sum((report.month_total(code) for code in config.fact_metric_codes), ZERO))
        return facts

    def _find_year_plan_metrics(self, segment: PlanningSegment, year: int,
                                code: PlanMetricCode) -> Dict[int, Optional[PlanningMonthlyPlanMetric]]:
        result = {}
        for month in range(1, MONTHS_IN_YEAR + 1):
            plan = find_monthly_plan(self.db, segment.id, year, month)
            result[month] = find_monthly_plan_metric(self.db, plan.id, code) if plan else None
        return result

    def _ensure_year_plan_metrics(self, segment: PlanningSegment, year: int,
                                  code: PlanMetricCode) -> Dict[int, PlanningMonthlyPlanMetric]:
        result = {}
        for month in range(1, MONTHS_IN_YEAR + 1):
            plan = get_or_create_monthly_plan(self.db, segment.id, year, month)
            result[month] = get_or_create_monthly_plan_metric(self.db, plan.id, code)
        return result

    # ═══════════════════════════════════════════════════════════════════════════
    # BASE PLAN EDITS
    # ═══════════════════════════════════════════════════════════════════════════

    def update_base_plan(
        self,
        year: int,
        month: int,
        segment_code: Union[str, SegmentCode],
        plan_metric_code: Union[str, PlanMetricCode],
        base_plan,
        changed_by: Optional[str] = None,
    ) -> List[Decimal]:
        """
        Set one month's base plan and re-persist the carry plan of all 12
        months, with an audit entry, in a single transaction.

        Returns the new carry plan series.
        """
        validate_period(year, month)
        config = self.get_config(segment_code, plan_metric_code)
        try:
            update = BasePlanUpdate(
                year=year,
                month=month,
                segment_code=config.segment_code,
                plan_metric_code=config.plan_metric_code,
                base_plan=base_plan,
                changed_by=changed_by,
            )
        except ValidationError as e:
            raise InvalidPlanValueError(f"Invalid base plan {base_plan!r}: {e}") from e

        segment = get_segment_by_code(self.db, update.segment_code)

        try:
            plan_metrics = self._ensure_year_plan_metrics(segment, year, update.plan_metric_code)
            target = plan_metrics[month]
            old_base_plan = decimal_str(target.base_plan)
            target.base_plan = quantize_cents(update.base_plan)

            carry_plans = self._persist_carry_plans(segment, config, year, plan_metrics)

            log_base_plan_change(
                self.db,
                update.changed_by,
                plan_metric_id=target.id,
                segment_code=segment.code.value,
                plan_metric_code=update.plan_metric_code.value,
                year=year,
                month=month,
                old_base_plan=old_base_plan,
                new_base_plan=str(target.base_plan),
                carry_plans={m: str(v) for m, v in enumerate(carry_plans, start=1)},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Base plan %s/%s %04d-%02d set to %s by %s",
            segment.code.value, update.plan_metric_code.value, year, month,
            update.base_plan, update.changed_by or "system"
        )
        return carry_plans

    def recalculate_carry_plans(
        self,
        year: int,
        segment_code: Union[str, SegmentCode],
        plan_metric_code: Union[str, PlanMetricCode],
        changed_by: Optional[str] = None,
    ) -> List[Decimal]:
        """Re-persist the carry plan series of one pair from current facts."""
        validate_period(year)
        config = self.get_config(segment_code, plan_metric_code)
        segment = get_segment_by_code(self.db, config.segment_code)

        try:
            plan_metrics = self._ensure_year_plan_metrics(segment, year, config.plan_metric_code)
            carry_plans = self._persist_carry_plans(segment, config, year, plan_metrics)
            log_planning_action(
                self.db,
                changed_by,
                action="Recalculate",
                resource_type="MonthlyPlanMetric",
                changes={
                    "segment_code": segment.code.value,
                    "plan_metric_code": config.plan_metric_code.value,
                    "year": year,
                    "carry_plans": {str(m): str(v) for m, v in enumerate(carry_plans, start=1)},
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Carry plans recalculated for %s/%s %04d", segment.code.value, config.plan_metric_code.value, year)
        return carry_plans

    def _persist_carry_plans(self, segment: PlanningSegment, config: TotalsConfig, year: int,
                             plan_metrics: Dict[int, PlanningMonthlyPlanMetric]) -> List[Decimal]:
        """Write the carry fold onto the 12 rows, month 1 to 12. Does not commit."""
        facts = self._facts_for_year(config, year)
        base_plans = [safe_number(plan_metrics[m].base_plan) for m in range(1, MONTHS_IN_YEAR + 1)]
        carry_plans = [quantize_cents(v) for v in build_classic_carry_plans(base_plans, facts)]

        for month in range(1, MONTHS_IN_YEAR + 1):
            plan_metric = plan_metrics[month]
            plan_metric.carry_plan = carry_plans[month - 1]
            plan_metric.carry_mode = CarryMode.ROLL_OVER.value
        self.db.flush()

        logger.debug("Carry plans for %s %04d: %s", segment.code.value, year, [str(v) for v in carry_plans])
        return carry_plans
