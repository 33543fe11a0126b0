"""
Daily Value Store

Reads stored per-day observations for the report builder and the waiting
balance resolver, and writes raw values entered by segment managers.
"""

import datetime
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Union
import logging

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from planning_catalog import get_segment_by_code, get_metrics_for_segment
from planning_errors import InvalidPeriodError, InvalidPlanValueError
from planning_models import PlanningDailyValue, PlanningMetric, SegmentCode
from utils import days_in_month, month_bounds, quantize_cents, validate_period

logger = logging.getLogger(__name__)

MonthSeries = Dict[str, List[Optional[Decimal]]]


class DailyValueUpdate(BaseModel):
    """One raw value edit. value=None clears the stored observation."""
    date: datetime.date
    metric_code: str
    value: Optional[Decimal] = None


class DailyValueStore:
    """Range reads and batch writes of PlanningDailyValue rows."""

    def __init__(self, db: Session):
        self.db = db

    def get_daily_values(self, segment_id: int, date_from: date, date_to: date) -> List[PlanningDailyValue]:
        """All stored observations of a segment with date_from <= date <= date_to."""
        return (
            self.db.query(PlanningDailyValue)
            .filter(
                PlanningDailyValue.segment_id == segment_id,
                PlanningDailyValue.date >= date_from,
                PlanningDailyValue.date <= date_to,
            )
            .order_by(PlanningDailyValue.date.asc())
            .all()
        )

    def load_month_series(
        self,
        segment_id: int,
        metrics: Sequence[PlanningMetric],
        year: int,
        month: int,
    ) -> MonthSeries:
        """
        Bucket a month of stored values into one day-array per metric code.

        Every array has exactly days_in_month slots; a day without a stored
        value is None. Rows pointing at metrics missing from the catalog are
        ignored.
        """
        dim = days_in_month(year, month)
        series: MonthSeries = {m.code: [None] * dim for m in metrics}
        code_by_id = {m.id: m.code for m in metrics}

        first, last = month_bounds(year, month)
        orphaned = 0
        for row in self.get_daily_values(segment_id, first, last):
            code = code_by_id.get(row.metric_id)
            if code is None:
                orphaned += 1
                continue
            series[code][row.date.day - 1] = None if row.value is None else Decimal(row.value)

        if orphaned:
            logger.debug(
                "Skipped %d daily values with unknown metrics for segment %s, %04d-%02d",
                orphaned, segment_id, year, month
            )
        return series

    def get_values_by_month(self, segment_code: Union[str, SegmentCode], year: int, month: int) -> List[Dict]:
        """Flat list of stored observations for one segment and month."""
        validate_period(year, month)
        segment = get_segment_by_code(self.db, segment_code)
        code_by_id = {m.id: m.code for m in get_metrics_for_segment(self.db, segment.id)}

        first, last = month_bounds(year, month)
        return [
            {
                "date": row.date.isoformat(),
                "metric_code": code_by_id[row.metric_id],
                "value": None if row.value is None else str(row.value),
            }
            for row in self.get_daily_values(segment.id, first, last)
            if row.metric_id in code_by_id
        ]

    def upsert_values(
        self,
        segment_code: Union[str, SegmentCode],
        year: int,
        month: int,
        updates: Sequence[Union[DailyValueUpdate, dict]],
        updated_by: Optional[str] = None,
    ) -> int:
        """
        Write a batch of raw values for one segment and month.

        Only editable metrics are written; derived or unknown codes are
        skipped. A None value deletes the stored observation. Returns the
        number of rows written or deleted.
        """
        validate_period(year, month)
        segment = get_segment_by_code(self.db, segment_code)

        try:
            parsed = [u if isinstance(u, DailyValueUpdate) else DailyValueUpdate(**u) for u in updates]
        except ValidationError as e:
            raise InvalidPlanValueError(f"Invalid daily value update: {e}") from e

        first, last = month_bounds(year, month)
        for update in parsed:
            if not first <= update.date <= last:
                raise InvalidPeriodError(f"Date {update.date} is outside {year:04d}-{month:02d}")

        editable = {
            m.code: m for m in get_metrics_for_segment(self.db, segment.id) if m.is_editable
        }

        written = 0
        try:
            for update in parsed:
                metric = editable.get(update.metric_code)
                if metric is None:
                    logger.debug("Skipping non-editable metric %s for %s", update.metric_code, segment.code.value)
                    continue

                existing = self.db.query(PlanningDailyValue).filter(
                    PlanningDailyValue.date == update.date,
                    PlanningDailyValue.metric_id == metric.id,
                ).first()

                if update.value is None:
                    if existing is not None:
                        self.db.delete(existing)
                        self.db.flush()
                        written += 1
                    continue

                value = quantize_cents(update.value)
                if existing is None:
                    self.db.add(PlanningDailyValue(
                        date=update.date,
                        segment_id=segment.id,
                        metric_id=metric.id,
                        value=value,
                        updated_by=updated_by,
                    ))
                    self.db.flush()
                else:
                    existing.value = value
                    existing.updated_by = updated_by
                written += 1

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Saved %d daily values for %s, %04d-%02d", written, segment.code.value, year, month
        )
        return written
