"""
Job database models
Durable records of capture, refund and void operations against the gateway
"""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, BigInteger, String, Boolean, Numeric, DateTime, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from reconciler.db.base import Base

# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobState:
    """Job lifecycle states"""
    CREATED = "CREATED"
    SENT = "SENT"
    SUCCESS = "SUCCESS"
    FAILED_CHECK = "FAILED_CHECK"
    FAILED_DONE = "FAILED_DONE"

    # Jobs in these states no longer block new operations on the order
    TERMINAL = (SUCCESS, FAILED_CHECK, FAILED_DONE)
    # Jobs in these states may be handed to the gateway
    SENDABLE = (CREATED, FAILED_CHECK)


class AbstractJob(Base):
    """
    Columns shared by every job kind.
    
    Each concrete kind gets its own table; rows are never deleted,
    terminal states mark them as finished.
    """
    __abstract__ = True

    # Kind name used in logs, API paths and the registry in job_store
    kind = None

    # Primary key
    id = Column(Integer, primary_key=True, autoincrement=True)

    # Remote operation id, set when the gateway accepts the job
    job_id = Column(BigInteger, nullable=True, index=True)

    # Correlation
    space_id = Column(BigInteger, nullable=False, index=True)
    transaction_id = Column(BigInteger, nullable=False, index=True)
    order_id = Column(Integer, nullable=False, index=True)

    state = Column(String(20), nullable=False, index=True, default=JobState.CREATED)
    labels = Column(JSONType, nullable=False, default=dict)  # label id -> label value
    failure_reason = Column(JSONType, nullable=True)  # language code -> message

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), default=utcnow, onupdate=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<{type(self).__name__}(id={self.id}, order_id={self.order_id}, state='{self.state}')>"


class CompletionJob(AbstractJob):
    """Capture of an authorized transaction"""
    __tablename__ = "completion_jobs"
    kind = "completion"

    amount = Column(Numeric(19, 8), nullable=True)


class RefundJob(AbstractJob):
    """Refund of (part of) a completed transaction"""
    __tablename__ = "refund_jobs"
    kind = "refund"

    external_id = Column(String(100), nullable=True, index=True)  # r-{order_id}-{n}
    restock = Column(Boolean, nullable=False, default=False)
    reduction_items = Column(JSONType, nullable=False, default=list)  # [{line_item_id, quantity, unit_price}]
    amount = Column(Numeric(19, 8), nullable=True)


class VoidJob(AbstractJob):
    """Cancellation of an authorization"""
    __tablename__ = "void_jobs"
    kind = "void"
