"""
Operational Planning Models

SQLAlchemy models for the planning catalog (segments and their daily
metrics), the per-day observations entered by segment managers, and the
monthly plans with their carried-over targets.
"""

from datetime import datetime
import enum

from sqlalchemy import (
    Column, Integer, String, DateTime, Date, Boolean, ForeignKey, Numeric,
    JSON, Enum as SQLEnum, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship

from models import Base


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════════

class SegmentCode(str, enum.Enum):
    """Business lines tracked independently."""
    CONTAINER_EAST = "CONTAINER_EAST"        # Container traffic, Vladivostok terminal
    CONTAINER_CENTRAL = "CONTAINER_CENTRAL"  # Container traffic, Moscow terminal
    TRUCK_DISPATCH = "TRUCK_DISPATCH"
    RAIL = "RAIL"
    EXTRA_SERVICES = "EXTRA_SERVICES"
    MAINTENANCE = "MAINTENANCE"


class MetricValueType(str, enum.Enum):
    """Display type of a metric. Not used for arithmetic."""
    INT = "INT"
    DECIMAL = "DECIMAL"
    CURRENCY = "CURRENCY"


class MetricAggregation(str, enum.Enum):
    SUM = "SUM"
    AVG = "AVG"
    LAST = "LAST"
    FORMULA = "FORMULA"


class PlanMetricCode(str, enum.Enum):
    """Month-level planned flows, one per plan-tracked quantity."""
    CONTAINER_REQUESTS = "CONTAINER_REQUESTS"
    TRUCK_PLAN = "TRUCK_PLAN"                      # car carriers + curtains
    CONTAINER_TRUCK_PLAN = "CONTAINER_TRUCK_PLAN"  # cars shipped inside containers
    RAIL_PLAN = "RAIL_PLAN"
    MAINTENANCE_PLAN = "MAINTENANCE_PLAN"


class FormulaKind(str, enum.Enum):
    """Closed set of derived daily computations."""
    CONTAINER_PLAN_TOTAL_PER_DAY = "CONTAINER_PLAN_TOTAL_PER_DAY"
    CONTAINER_FACT_TOTAL_PER_DAY = "CONTAINER_FACT_TOTAL_PER_DAY"
    WAITING_TRUCK = "WAITING_TRUCK"
    WAITING_CONTAINER_TRUCK = "WAITING_CONTAINER_TRUCK"
    WAITING_CURTAIN = "WAITING_CURTAIN"
    DISPATCH_TOTAL_RECEIVED = "DISPATCH_TOTAL_RECEIVED"
    DISPATCH_TOTAL_SENT = "DISPATCH_TOTAL_SENT"
    DISPATCH_TOTAL_WAITING = "DISPATCH_TOTAL_WAITING"
    RAIL_OUTBOUND_TOTAL = "RAIL_OUTBOUND_TOTAL"
    RAIL_INBOUND_TOTAL = "RAIL_INBOUND_TOTAL"
    RAIL_TOTAL = "RAIL_TOTAL"
    EXTRA_TOTAL = "EXTRA_TOTAL"


class CarryMode(str, enum.Enum):
    NONE = "NONE"
    ROLL_OVER = "ROLL_OVER"


class WaitingLane(str, enum.Enum):
    """Truck-dispatch lanes that keep a running stock of units waiting to ship."""
    TRUCK = "truck"
    CONTAINER_TRUCK = "container_truck"
    CURTAIN = "curtain"


# ═══════════════════════════════════════════════════════════════════════════════
# CATALOG
# ═══════════════════════════════════════════════════════════════════════════════

class PlanningSegment(Base):
    __tablename__ = "planning_segments"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(SQLEnum(SegmentCode), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    metrics = relationship("PlanningMetric", back_populates="segment", cascade="all, delete-orphan")
    monthly_plans = relationship("PlanningMonthlyPlan", back_populates="segment", cascade="all, delete-orphan")


class PlanningMetric(Base):
    """
    A named per-day quantity within a segment.

    Editable metrics are entered by hand; FORMULA metrics are always derived
    by the formula evaluator and never stored as authoritative input.
    """
    __tablename__ = "planning_metrics"

    id = Column(Integer, primary_key=True, index=True)
    segment_id = Column(Integer, ForeignKey("planning_segments.id", ondelete="CASCADE"), nullable=False, index=True)

    code = Column(String(120), nullable=False)
    name = Column(String(255), nullable=False)
    is_editable = Column(Boolean, default=False, nullable=False)
    value_type = Column(SQLEnum(MetricValueType), nullable=False)
    aggregation = Column(SQLEnum(MetricAggregation), nullable=False)
    formula = Column(SQLEnum(FormulaKind), nullable=True)
    order_index = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    segment = relationship("PlanningSegment", back_populates="metrics")

    __table_args__ = (
        UniqueConstraint('segment_id', 'code', name='uq_planning_metric_segment_code'),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# OBSERVATIONS
# ═══════════════════════════════════════════════════════════════════════════════

class PlanningDailyValue(Base):
    """
    One observation per (date, metric). A NULL value means "no data",
    which is distinct from an explicit zero.
    """
    __tablename__ = "planning_daily_values"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False)
    segment_id = Column(Integer, ForeignKey("planning_segments.id", ondelete="CASCADE"), nullable=False)
    metric_id = Column(Integer, ForeignKey("planning_metrics.id", ondelete="CASCADE"), nullable=False)

    value = Column(Numeric(14, 2), nullable=True)

    updated_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('date', 'metric_id', name='uq_planning_daily_value_date_metric'),
        Index('ix_planning_daily_values_segment_date', 'segment_id', 'date'),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# MONTHLY PLANS
# ═══════════════════════════════════════════════════════════════════════════════

class PlanningMonthlyPlan(Base):
    __tablename__ = "planning_monthly_plans"

    id = Column(Integer, primary_key=True, index=True)
    segment_id = Column(Integer, ForeignKey("planning_segments.id", ondelete="CASCADE"), nullable=False, index=True)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)

    # Free-form seed parameters, e.g. {"waiting_start": {"truck": 51, ...}}
    params = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    segment = relationship("PlanningSegment", back_populates="monthly_plans")
    plan_metrics = relationship("PlanningMonthlyPlanMetric", back_populates="monthly_plan", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('segment_id', 'year', 'month', name='uq_planning_monthly_plan_period'),
        CheckConstraint('month >= 1 AND month <= 12', name='check_planning_month'),
    )


class PlanningMonthlyPlanMetric(Base):
    """
    Target for one plan-metric in one month.

    carry_plan is always the output of the classic carry-over fold over the
    whole year; it is never assigned independently of its sibling months.
    """
    __tablename__ = "planning_monthly_plan_metrics"

    id = Column(Integer, primary_key=True, index=True)
    plan_monthly_id = Column(Integer, ForeignKey("planning_monthly_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    code = Column(SQLEnum(PlanMetricCode), nullable=False)

    base_plan = Column(Numeric(14, 2), nullable=True)
    carry_plan = Column(Numeric(14, 2), nullable=True)
    carry_mode = Column(String(32), nullable=True)
    meta = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    monthly_plan = relationship("PlanningMonthlyPlan", back_populates="plan_metrics")

    __table_args__ = (
        UniqueConstraint('plan_monthly_id', 'code', name='uq_planning_plan_metric_code'),
    )
