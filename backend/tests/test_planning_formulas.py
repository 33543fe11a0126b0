"""
Formula Row Evaluator Tests

Sum-of-parts rows, waiting balances and idempotence of derived rows.
"""

import copy
import pytest
from decimal import Decimal
from hypothesis import given, strategies as st, settings

from planning_formulas import (
    SEGMENT_RULES, SumOfParts, WaitingBalance,
    apply_formula_rows, check_rule_coverage, fill_daily_sum, waiting_start_from_params
)
from planning_models import SegmentCode, FormulaKind, WaitingLane


def blank(n=3):
    return [None] * n


def truck_dispatch_series(**overrides):
    series = {
        "truck_received": [0, 0, 0], "truck_sent": [0, 0, 0], "truck_waiting": blank(),
        "container_truck_received": [0, 0, 0], "container_truck_sent": [0, 0, 0], "container_truck_waiting": blank(),
        "curtain_received": [0, 0, 0], "curtain_sent": [0, 0, 0], "curtain_waiting": blank(),
        "dispatch_total_received": blank(), "dispatch_total_sent": blank(), "dispatch_total_waiting": blank(),
    }
    series.update(overrides)
    return series


@pytest.mark.unit
class TestSumOfParts:

    def test_container_plan_and_fact_totals_per_day(self):
        series = {
            "container_east_plan_unload_load": [2, 3, 4],
            "container_east_plan_move": [1, 1, 2],
            "container_east_plan_total_per_day": blank(),
            "container_east_fact_unload_load": [1, 2, 3],
            "container_east_fact_move": [2, 2, 2],
            "container_east_fact_total_per_day": blank(),
        }

        apply_formula_rows(SegmentCode.CONTAINER_EAST, series, 3)

        assert series["container_east_plan_total_per_day"] == [3, 4, 6]
        assert series["container_east_fact_total_per_day"] == [3, 4, 5]

    def test_no_data_counts_as_zero(self):
        series = {
            "container_central_plan_unload_load": [1, None, 3],
            "container_central_plan_move": [None, 2, None],
            "container_central_plan_total_per_day": blank(),
            "container_central_fact_unload_load": [0, 2, None],
            "container_central_fact_move": [1, None, 1],
            "container_central_fact_total_per_day": blank(),
        }

        apply_formula_rows(SegmentCode.CONTAINER_CENTRAL, series, 3)

        assert series["container_central_plan_total_per_day"] == [1, 2, 3]
        assert series["container_central_fact_total_per_day"] == [1, 2, 1]

    def test_rail_totals_chain_through_derived_rows(self):
        series = {
            "rail_outbound_20": [1, 2, 3],
            "rail_outbound_40": [4, 5, 6],
            "rail_outbound_total": blank(),
            "rail_inbound_20": [2, 0, 1],
            "rail_inbound_40": [1, 3, 2],
            "rail_inbound_total": blank(),
            "rail_total": blank(),
        }

        apply_formula_rows(SegmentCode.RAIL, series, 3)

        assert series["rail_outbound_total"] == [5, 7, 9]
        assert series["rail_inbound_total"] == [3, 3, 3]
        assert series["rail_total"] == [8, 10, 12]

    def test_extra_services_total(self):
        series = {
            "extra_groupage": [1, 2, 3],
            "extra_curtains": [0, 1, 0],
            "extra_forwarding": [2, 2, 2],
            "extra_repack": [3, 0, 1],
            "extra_total": blank(),
        }

        apply_formula_rows(SegmentCode.EXTRA_SERVICES, series, 3)

        assert series["extra_total"] == [6, 5, 6]

    def test_missing_target_row_is_left_alone(self):
        series = {"extra_groupage": [1, 2, 3]}

        fill_daily_sum(series, "extra_total", ("extra_groupage",), 3)

        assert "extra_total" not in series

    def test_missing_source_row_counts_as_zero(self):
        series = {"extra_groupage": [1, 2, 3], "extra_total": blank()}

        apply_formula_rows(SegmentCode.EXTRA_SERVICES, series, 3)

        assert series["extra_total"] == [1, 2, 3]

    def test_maintenance_has_no_derived_rows(self):
        series = {"maintenance_count": [1, None, 2]}

        apply_formula_rows(SegmentCode.MAINTENANCE, series, 3)

        assert series == {"maintenance_count": [1, None, 2]}


@pytest.mark.unit
class TestWaitingBalance:

    def test_waiting_with_monthly_start_params(self):
        series = truck_dispatch_series(
            truck_received=[3, 0, 2], truck_sent=[1, 2, 0],
            container_truck_received=[2, 1, 1], container_truck_sent=[1, 0, 3],
            curtain_received=[1, 0, 0], curtain_sent=[0, 1, 0],
        )
        params = {"waiting_start": {"truck": 10, "container_truck": 5, "curtain": 1}}

        apply_formula_rows(SegmentCode.TRUCK_DISPATCH, series, 3, plan_params=params)

        assert series["truck_waiting"] == [12, 10, 12]
        assert series["container_truck_waiting"] == [6, 7, 5]
        assert series["curtain_waiting"] == [2, 1, 1]
        assert series["dispatch_total_received"] == [6, 1, 3]
        assert series["dispatch_total_sent"] == [2, 3, 3]
        assert series["dispatch_total_waiting"] == [20, 18, 18]

    def test_waiting_with_no_data_gaps(self):
        series = truck_dispatch_series(truck_received=[1, None, 2], truck_sent=[None, 1, None])

        apply_formula_rows(
            SegmentCode.TRUCK_DISPATCH, series, 3,
            plan_params={"waiting_start": {"truck": 5}},
        )

        assert series["truck_waiting"] == [6, 5, 7]

    def test_resolved_start_wins_over_plan_params(self):
        series = truck_dispatch_series(truck_received=[1, 0, 0])
        resolved = {WaitingLane.TRUCK: Decimal("100"), WaitingLane.CONTAINER_TRUCK: Decimal("0"),
                    WaitingLane.CURTAIN: Decimal("0")}

        apply_formula_rows(
            SegmentCode.TRUCK_DISPATCH, series, 3,
            waiting_start=resolved,
            plan_params={"waiting_start": {"truck": 51}},
        )

        assert series["truck_waiting"] == [101, 101, 101]

    def test_no_start_anywhere_starts_from_zero(self):
        series = truck_dispatch_series(curtain_received=[2, 0, 0], curtain_sent=[0, 1, 0])

        apply_formula_rows(SegmentCode.TRUCK_DISPATCH, series, 3)

        assert series["curtain_waiting"] == [2, 1, 1]
        assert series["truck_waiting"] == [0, 0, 0]

    def test_waiting_can_go_negative(self):
        series = truck_dispatch_series(truck_sent=[2, 0, 1])

        apply_formula_rows(SegmentCode.TRUCK_DISPATCH, series, 3)

        assert series["truck_waiting"] == [-2, -2, -3]

    def test_waiting_start_from_params_defaults_missing_lanes(self):
        start = waiting_start_from_params({"waiting_start": {"truck": 51, "curtain": None}})

        assert start == {
            WaitingLane.TRUCK: Decimal("51"),
            WaitingLane.CONTAINER_TRUCK: Decimal("0"),
            WaitingLane.CURTAIN: Decimal("0"),
        }
        assert waiting_start_from_params(None)[WaitingLane.TRUCK] == 0


@pytest.mark.unit
class TestRuleSets:

    def test_every_formula_kind_has_a_rule(self):
        kinds = [rule.kind for rules in SEGMENT_RULES.values() for rule in rules]
        assert set(kinds) == set(FormulaKind)

    def test_no_kind_repeats_within_a_segment(self):
        # Container kinds are shared by both container segments, once each
        for rules in SEGMENT_RULES.values():
            assert len({rule.kind for rule in rules}) == len(rules)

    def test_coverage_check_rejects_unhandled_kind(self):
        rules = dict(SEGMENT_RULES)
        rules[SegmentCode.EXTRA_SERVICES] = ()

        with pytest.raises(RuntimeError, match="EXTRA_TOTAL"):
            check_rule_coverage(rules)

    def test_coverage_check_rejects_missing_segment(self):
        rules = dict(SEGMENT_RULES)
        del rules[SegmentCode.MAINTENANCE]

        with pytest.raises(RuntimeError, match="MAINTENANCE"):
            check_rule_coverage(rules)

    def test_waiting_rules_precede_the_total_that_reads_them(self):
        rules = SEGMENT_RULES[SegmentCode.TRUCK_DISPATCH]
        positions = {rule.kind: i for i, rule in enumerate(rules)}

        assert all(isinstance(r, WaitingBalance) for r in rules[:3])
        assert isinstance(rules[-1], SumOfParts)
        assert positions[FormulaKind.DISPATCH_TOTAL_WAITING] > positions[FormulaKind.WAITING_CURTAIN]


day_value = st.one_of(st.none(), st.integers(min_value=-1000, max_value=1000))


@pytest.mark.property
class TestFormulaProperties:

    @given(
        parts=st.lists(st.tuples(day_value, day_value), min_size=1, max_size=31)
    )
    @settings(max_examples=50, deadline=None)
    def test_sum_of_parts_is_elementwise_sum(self, parts):
        n = len(parts)
        series = {
            "container_east_plan_unload_load": [a for a, _ in parts],
            "container_east_plan_move": [b for _, b in parts],
            "container_east_plan_total_per_day": [None] * n,
        }

        apply_formula_rows(SegmentCode.CONTAINER_EAST, series, n)

        expected = [(a or 0) + (b or 0) for a, b in parts]
        assert series["container_east_plan_total_per_day"] == expected

    @given(
        received=st.lists(day_value, min_size=5, max_size=5),
        sent=st.lists(day_value, min_size=5, max_size=5),
        start=st.integers(min_value=-50, max_value=50),
    )
    @settings(max_examples=50, deadline=None)
    def test_evaluation_is_idempotent(self, received, sent, start):
        series = truck_dispatch_series(
            truck_received=received, truck_sent=sent,
            truck_waiting=blank(5), container_truck_waiting=blank(5), curtain_waiting=blank(5),
            container_truck_received=[0] * 5, container_truck_sent=[0] * 5,
            curtain_received=[0] * 5, curtain_sent=[0] * 5,
            dispatch_total_received=blank(5), dispatch_total_sent=blank(5), dispatch_total_waiting=blank(5),
        )
        params = {"waiting_start": {"truck": start}}

        apply_formula_rows(SegmentCode.TRUCK_DISPATCH, series, 5, plan_params=params)
        first = copy.deepcopy(series)
        apply_formula_rows(SegmentCode.TRUCK_DISPATCH, series, 5, plan_params=params)

        assert series == first
        assert first["truck_waiting"][-1] == start + sum(r or 0 for r in received) - sum(s or 0 for s in sent)
