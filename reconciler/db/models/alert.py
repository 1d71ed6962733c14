"""
Alert database model
Operational counters shown to operators
"""

from sqlalchemy import Column, Integer, String
from reconciler.db.base import Base


class Alert(Base):
    """Counter row, one per fixed key"""
    __tablename__ = "alerts"

    KEY_MANUAL_TASK = "manual_task"
    KEY_FAILED_JOBS = "failed_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(50), nullable=False, unique=True)
    route = Column(String(255), nullable=False)  # operator page the alert links to
    level = Column(String(20), nullable=False)
    count = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<Alert(key='{self.key}', count={self.count})>"
