"""
Classic Carry-Over Plan Calculator

Shortfall against a month's plan becomes debt added to the next month's
plan. Over-delivery only drains existing debt down to zero; it never builds
a credit. The fold runs January to December and cannot be computed for one
month in isolation.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Union

from utils import ZERO, pct, safe_number

MONTHS_IN_YEAR = 12

Number = Union[int, float, Decimal]


@dataclass
class CarryOverResult:
    base_plans: List[Decimal] = field(default_factory=list)
    facts: List[Decimal] = field(default_factory=list)
    carry_plans: List[Decimal] = field(default_factory=list)
    completion_pcts: List[Decimal] = field(default_factory=list)
    closing_debt: Decimal = ZERO

    def to_dict(self) -> Dict:
        return {
            "base_plans": [str(v) for v in self.base_plans],
            "facts": [str(v) for v in self.facts],
            "carry_plans": [str(v) for v in self.carry_plans],
            "completion_pcts": [str(v) for v in self.completion_pcts],
            "closing_debt": str(self.closing_debt),
        }


def _year_of(values: Sequence[Optional[Number]], label: str) -> List[Decimal]:
    if len(values) != MONTHS_IN_YEAR:
        raise ValueError(f"{label} must have {MONTHS_IN_YEAR} months, got {len(values)}")
    return [safe_number(v) for v in values]


def build_classic_carry_plans(
    base_plans: Sequence[Optional[Number]],
    facts: Sequence[Optional[Number]],
) -> List[Decimal]:
    """carry[m] = base[m] + debt; debt = max(0, carry[m] - fact[m])"""
    base = _year_of(base_plans, "base_plans")
    fact = _year_of(facts, "facts")

    carry_plans = []
    debt = ZERO
    for month_base, month_fact in zip(base, fact):
        carry = month_base + debt
        carry_plans.append(carry)
        debt = max(ZERO, carry - month_fact)
    return carry_plans


def compute_carry_over(
    base_plans: Sequence[Optional[Number]],
    facts: Sequence[Optional[Number]],
) -> CarryOverResult:
    """
    Carry plans plus completion % per month.

    January's completion is measured against its base plan; later months
    against their carry plan.
    """
    base = _year_of(base_plans, "base_plans")
    fact = _year_of(facts, "facts")
    carry_plans = build_classic_carry_plans(base, fact)

    completion_pcts = [
        pct(fact[i], base[i] if i == 0 else carry_plans[i])
        for i in range(MONTHS_IN_YEAR)
    ]

    return CarryOverResult(
        base_plans=base,
        facts=fact,
        carry_plans=carry_plans,
        completion_pcts=completion_pcts,
        closing_debt=max(ZERO, carry_plans[-1] - fact[-1]),
    )
