"""
Transaction info database model
Local copy of the gateway transaction belonging to an order
"""

from sqlalchemy import Column, Integer, BigInteger, String, Numeric, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from reconciler.db.base import Base
from reconciler.db.models.job import JSONType, utcnow


class TransactionState:
    """Remote transaction states the job engine cares about"""
    AUTHORIZED = "AUTHORIZED"
    COMPLETED = "COMPLETED"
    FULFILL = "FULFILL"
    DECLINE = "DECLINE"
    VOIDED = "VOIDED"
    FAILED = "FAILED"


class TransactionInfo(Base):
    """
    Row locked with SELECT ... FOR UPDATE to serialize all job work
    on one remote transaction.
    """
    __tablename__ = "transaction_infos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    space_id = Column(BigInteger, nullable=False)
    transaction_id = Column(BigInteger, nullable=False)
    order_id = Column(Integer, nullable=False, index=True)

    state = Column(String(30), nullable=False)
    currency = Column(String(3), nullable=True)
    authorization_amount = Column(Numeric(19, 8), nullable=True)
    language = Column(String(10), nullable=True)
    labels = Column(JSONType, nullable=False, default=dict)
    failure_reason = Column(JSONType, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('space_id', 'transaction_id', name='uq_transaction_infos_space_transaction'),
    )

    def __repr__(self):
        return f"<TransactionInfo(space_id={self.space_id}, transaction_id={self.transaction_id}, state='{self.state}')>"
