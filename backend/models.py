from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.orm import declarative_base
import datetime

Base = declarative_base()


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime, default=datetime.datetime.utcnow)
    user = Column(String)
    action = Column(String)  # Create, Update, Recalculate
    resource_type = Column(String)  # MonthlyPlanMetric
    resource_id = Column(Integer, nullable=True)
    changes = Column(JSON, nullable=True)  # Old/New value map
