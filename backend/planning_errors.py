"""
Planning Engine Errors

NotFound errors are fatal for the single call. Invalid periods and values
are rejected before any computation or write begins.
"""


class PlanningError(Exception):
    """Base class for planning engine errors"""
    pass


class NotFoundError(PlanningError):
    pass


class SegmentNotFoundError(NotFoundError):
    """Raised when a segment code is unknown or not seeded in the catalog"""

    def __init__(self, segment_code):
        self.segment_code = segment_code
        super().__init__(f"Segment not found: {segment_code}")


class PlanMetricNotConfiguredError(NotFoundError):
    """Raised when a (segment, plan-metric) pair has no year-totals configuration"""

    def __init__(self, segment_code, plan_metric_code):
        self.segment_code = segment_code
        self.plan_metric_code = plan_metric_code
        super().__init__(
            f"Plan metric {plan_metric_code} is not configured for segment {segment_code}"
        )


class InvalidPeriodError(PlanningError, ValueError):
    """Raised for a month outside 1-12, a year outside the supported range, or a date outside the period"""
    pass


class InvalidPlanValueError(PlanningError, ValueError):
    """Raised when a plan or daily value fails validation"""
    pass
