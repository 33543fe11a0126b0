"""
Daily Value Store Tests
"""

import pytest
from datetime import date
from decimal import Decimal

from daily_value_store import DailyValueStore, DailyValueUpdate
from planning_catalog import get_segment_by_code, get_metrics_for_segment
from planning_errors import InvalidPeriodError, InvalidPlanValueError, SegmentNotFoundError
from planning_models import PlanningDailyValue, PlanningMetric


@pytest.fixture
def store(db_session, seeded_catalog):
    return DailyValueStore(db_session)


@pytest.mark.integration
class TestLoadMonthSeries:

    def test_arrays_have_one_slot_per_day(self, db_session, store, add_values):
        add_values("RAIL", date(2026, 2, 3), {"rail_outbound_20": 4})
        segment = get_segment_by_code(db_session, "RAIL")
        metrics = get_metrics_for_segment(db_session, segment.id)

        series = store.load_month_series(segment.id, metrics, 2026, 2)

        assert set(series) == {m.code for m in metrics}
        assert all(len(v) == 28 for v in series.values())
        assert series["rail_outbound_20"][2] == 4
        assert series["rail_outbound_20"][0] is None

    def test_explicit_zero_is_not_no_data(self, db_session, store, add_values):
        add_values("RAIL", date(2026, 2, 1), {"rail_outbound_20": 0})
        segment = get_segment_by_code(db_session, "RAIL")

        series = store.load_month_series(segment.id, get_metrics_for_segment(db_session, segment.id), 2026, 2)

        assert series["rail_outbound_20"][0] == 0
        assert series["rail_outbound_20"][0] is not None

    def test_orphaned_metric_rows_are_ignored(self, db_session, store, add_values):
        segment = get_segment_by_code(db_session, "RAIL")
        metrics = get_metrics_for_segment(db_session, segment.id)
        orphan = PlanningMetric(segment_id=segment.id, code="rail_retired", name="Retired",
                                is_editable=True, value_type=metrics[0].value_type,
                                aggregation=metrics[0].aggregation, order_index=999)
        db_session.add(orphan)
        db_session.flush()
        db_session.add(PlanningDailyValue(date=date(2026, 2, 1), segment_id=segment.id,
                                          metric_id=orphan.id, value=Decimal("5")))
        db_session.commit()

        # The catalog snapshot taken before the orphan existed
        series = store.load_month_series(segment.id, metrics, 2026, 2)

        assert "rail_retired" not in series
        assert all(v is None for values in series.values() for v in values)

    def test_other_months_are_excluded(self, db_session, store, add_values):
        add_values("RAIL", date(2026, 1, 31), {"rail_outbound_20": 1})
        add_values("RAIL", date(2026, 3, 1), {"rail_outbound_20": 1})
        segment = get_segment_by_code(db_session, "RAIL")

        series = store.load_month_series(segment.id, get_metrics_for_segment(db_session, segment.id), 2026, 2)

        assert series["rail_outbound_20"] == [None] * 28


@pytest.mark.integration
class TestUpsertValues:

    def test_writes_editable_metrics(self, db_session, store):
        written = store.upsert_values("EXTRA_SERVICES", 2026, 2, [
            {"date": "2026-02-01", "metric_code": "extra_groupage", "value": 3},
            {"date": "2026-02-02", "metric_code": "extra_groupage", "value": "1.005"},
        ], updated_by="manager")

        assert written == 2
        values = store.get_values_by_month("EXTRA_SERVICES", 2026, 2)
        assert [(v["date"], v["metric_code"]) for v in values] == [
            ("2026-02-01", "extra_groupage"), ("2026-02-02", "extra_groupage")
        ]
        assert Decimal(values[1]["value"]) == Decimal("1.01")

    def test_skips_derived_and_unknown_metrics(self, db_session, store):
        written = store.upsert_values("EXTRA_SERVICES", 2026, 2, [
            DailyValueUpdate(date=date(2026, 2, 1), metric_code="extra_total", value=Decimal("10")),
            DailyValueUpdate(date=date(2026, 2, 1), metric_code="no_such_metric", value=Decimal("1")),
        ])

        assert written == 0
        assert db_session.query(PlanningDailyValue).count() == 0

    def test_updates_existing_row(self, db_session, store):
        store.upsert_values("RAIL", 2026, 2, [{"date": "2026-02-05", "metric_code": "rail_inbound_40", "value": 1}])
        store.upsert_values("RAIL", 2026, 2, [{"date": "2026-02-05", "metric_code": "rail_inbound_40", "value": 7}],
                            updated_by="editor")

        rows = db_session.query(PlanningDailyValue).all()
        assert len(rows) == 1
        assert rows[0].value == Decimal("7")
        assert rows[0].updated_by == "editor"

    def test_none_value_removes_row(self, db_session, store):
        store.upsert_values("RAIL", 2026, 2, [{"date": "2026-02-05", "metric_code": "rail_inbound_40", "value": 1}])

        written = store.upsert_values("RAIL", 2026, 2, [
            {"date": "2026-02-05", "metric_code": "rail_inbound_40", "value": None}
        ])

        assert written == 1
        assert db_session.query(PlanningDailyValue).count() == 0

    def test_date_outside_month_rejects_whole_batch(self, db_session, store):
        with pytest.raises(InvalidPeriodError):
            store.upsert_values("RAIL", 2026, 2, [
                {"date": "2026-02-05", "metric_code": "rail_inbound_40", "value": 1},
                {"date": "2026-03-01", "metric_code": "rail_inbound_40", "value": 1},
            ])

        assert db_session.query(PlanningDailyValue).count() == 0

    def test_invalid_value_rejected(self, db_session, store):
        with pytest.raises(InvalidPlanValueError):
            store.upsert_values("RAIL", 2026, 2, [
                {"date": "2026-02-05", "metric_code": "rail_inbound_40", "value": "lots"}
            ])

    def test_invalid_period_and_segment(self, store):
        with pytest.raises(InvalidPeriodError):
            store.upsert_values("RAIL", 2026, 13, [])
        with pytest.raises(InvalidPeriodError):
            store.get_values_by_month("RAIL", 1999, 1)
        with pytest.raises(SegmentNotFoundError):
            store.upsert_values("UNKNOWN", 2026, 2, [])
