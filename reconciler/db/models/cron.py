"""
Cron claim database model
Single-flight execution slots for the externally triggered cron
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, UniqueConstraint
from reconciler.db.base import Base


class CronState:
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


# constraint_key values of the two single-occupancy states;
# terminal rows use their own id instead
CONSTRAINT_PENDING = 0
CONSTRAINT_PROCESSING = -1


class CronJob(Base):
    """
    One scheduled cron execution.
    
    The unique (state, constraint_key) pair allows at most one pending
    and at most one processing row at any time.
    """
    __tablename__ = "cron_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    security_token = Column(String(36), nullable=False, index=True)
    state = Column(String(20), nullable=False)
    constraint_key = Column(Integer, nullable=False)

    date_scheduled = Column(DateTime(timezone=True), nullable=True)
    date_started = Column(DateTime(timezone=True), nullable=True)
    date_completed = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint('state', 'constraint_key', name='uq_cron_jobs_state_constraint_key'),
    )

    def __repr__(self):
        return f"<CronJob(id={self.id}, state='{self.state}')>"
