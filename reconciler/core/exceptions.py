"""
Exception types raised by the job engine and the gateway client
"""

from typing import Optional


class ReconcilerError(Exception):
    """Base class for all service errors"""


class JobServiceError(ReconcilerError):
    """A job could not be created or sent; nothing was persisted"""


class ConflictingOperationError(JobServiceError):
    """Another operation with different parameters is already pending for the order"""


class ActionNotPossibleError(ReconcilerError):
    """The transaction state or a running job forbids the requested action"""


class GatewayError(ReconcilerError):
    """Transport-level failure talking to the payment gateway"""


class GatewayRejectedError(GatewayError):
    """The gateway answered and definitively refused the operation"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
