"""
Audit Logging Service
Records plan edits and recalculations so every change to a target can be traced.

Entries are added to the caller's session and committed with the caller's
transaction; nothing here commits on its own.
"""

from sqlalchemy.orm import Session
from datetime import datetime
import models
from typing import Optional, Dict, Any

from planning_config import PLANNING_SYSTEM_USER


def log_planning_action(
    db: Session,
    user: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[int] = None,
    changes: Optional[Dict[str, Any]] = None
) -> models.AuditLog:
    """Add a generic planning audit entry to the session"""
    log = models.AuditLog(
        timestamp=datetime.utcnow(),
        user=user or PLANNING_SYSTEM_USER,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        changes=changes
    )
    db.add(log)
    return log


def log_base_plan_change(
    db: Session,
    user: Optional[str],
    plan_metric_id: int,
    segment_code: str,
    plan_metric_code: str,
    year: int,
    month: int,
    old_base_plan: Optional[str],
    new_base_plan: str,
    carry_plans: Optional[Dict[int, str]] = None
) -> models.AuditLog:
    """Log a base-plan edit with old/new values and the resulting carry series"""
    log_data = {
        "segment_code": segment_code,
        "plan_metric_code": plan_metric_code,
        "year": year,
        "month": month,
        "old_base_plan": old_base_plan,
        "new_base_plan": new_base_plan,
    }
    if carry_plans:
        log_data["carry_plans"] = {str(m): v for m, v in carry_plans.items()}

    return log_planning_action(
        db,
        user,
        action="Update",
        resource_type="MonthlyPlanMetric",
        resource_id=plan_metric_id,
        changes=log_data
    )
