"""
Waiting Balance Resolver

Resolves the opening stock of each truck-dispatch lane for a month: the
closing balance of the previous month with data, which is itself that
month's opening balance plus its net received minus sent.

Unrolled, the opening balance is the sum of (received - sent) over every
populated month in the look-back window, so the walk below visits months
newest to oldest with an explicit depth counter and adds each month's net
exactly once. No stored seed is added on top of a resolved start.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Sequence, Tuple
import logging

from daily_value_store import DailyValueStore
from planning_catalog import WAITING_LANE_METRICS
from planning_config import PLANNING_WAITING_MAX_DEPTH
from planning_models import PlanningMetric, WaitingLane
from utils import ZERO, month_bounds, safe_number, shift_month

logger = logging.getLogger(__name__)


@dataclass
class WaitingStart:
    """Per-lane opening balance of a month."""
    balances: Dict[WaitingLane, Decimal] = field(
        default_factory=lambda: {lane: ZERO for lane in WaitingLane}
    )
    history_found: bool = False
    months_used: int = 0

    def to_dict(self) -> Dict:
        return {
            "balances": {lane.value: str(value) for lane, value in self.balances.items()},
            "history_found": self.history_found,
            "months_used": self.months_used,
        }


class WaitingBalanceResolver:

    def __init__(self, store: DailyValueStore, max_depth: int = PLANNING_WAITING_MAX_DEPTH):
        if max_depth < 0:
            raise ValueError("max_depth must be non-negative")
        self.store = store
        self.max_depth = max_depth

    def resolve_start(
        self,
        segment_id: int,
        metrics: Sequence[PlanningMetric],
        year: int,
        month: int,
    ) -> WaitingStart:
        """
        Opening balances for (year, month).

        Looks back at most max_depth + 1 months. When no month in that window
        has stored data the result is all zeros with history_found=False.
        """
        result = WaitingStart()

        id_to_code = {m.id: m.code for m in metrics}
        lane_codes: Dict[str, Tuple[WaitingLane, int]] = {}
        for lane, (received, sent, _) in WAITING_LANE_METRICS.items():
            lane_codes[received] = (lane, 1)
            lane_codes[sent] = (lane, -1)

        oldest = shift_month(year, month, -(self.max_depth + 1))
        newest = shift_month(year, month, -1)
        window_start, _ = month_bounds(*oldest)
        _, window_end = month_bounds(*newest)

        populated = set()
        net_by_month: Dict[Tuple[int, int], Dict[WaitingLane, Decimal]] = defaultdict(
            lambda: {lane: ZERO for lane in WaitingLane}
        )
        for row in self.store.get_daily_values(segment_id, window_start, window_end):
            period = (row.date.year, row.date.month)
            populated.add(period)
            lane_sign = lane_codes.get(id_to_code.get(row.metric_id))
            if lane_sign is None:
                continue
            lane, sign = lane_sign
            net_by_month[period][lane] += sign * safe_number(row.value)

        depth = 0
        period = newest
        while depth <= self.max_depth:
            if period in populated:
                for lane, net in net_by_month[period].items():
                    result.balances[lane] += net
                result.months_used += 1
            period = shift_month(period[0], period[1], -1)
            depth += 1

        result.history_found = result.months_used > 0
        logger.debug(
            "Waiting start for segment %s, %04d-%02d: %s (%d months of history)",
            segment_id, year, month,
            {lane.value: str(v) for lane, v in result.balances.items()}, result.months_used
        )
        return result
