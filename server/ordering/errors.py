# Order engine error taxonomy
# Each error carries the HTTP status the API layer maps it to

from typing import Optional


class OrderingError(Exception):
    """Base class for errors raised by the order engine"""

    status_code = 400
    expose_reason = True

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class OrderValidationError(OrderingError):
    """Composition or input rule violated; the caller fixes the input"""

    status_code = 400


class IdentityConflictError(OrderingError):
    """Guest checkout email belongs to a real account"""

    status_code = 409


class AuthenticationRequiredError(OrderingError):
    status_code = 401


class PermissionDeniedError(OrderingError):
    status_code = 403


class NotFoundError(OrderingError):
    status_code = 404


class OrderStateError(OrderingError):
    """Illegal status/payment-status transition or edit of a terminal order"""

    status_code = 400


class RefundError(OrderingError):
    status_code = 400


class PaymentDeclinedError(OrderingError):
    """The processor answered and rejected the charge or refund"""

    status_code = 402


class ProcessorError(OrderingError):
    """The processor could not be reached or answered something unusable"""

    status_code = 502
    expose_reason = False


class ConfigurationError(OrderingError):
    """Operational setup problem: missing pricing config, unknown or unpublished menu"""

    status_code = 500
    expose_reason = False


class ReconciliationError(OrderingError):
    """
    The processor confirmed a money movement but the local ledger write failed.

    Never retried automatically; an operator must reconcile by hand.
    """

    status_code = 500
    expose_reason = False

    def __init__(self, reason: str, order_id: Optional[int] = None,
                 processor_reference: Optional[str] = None):
        super().__init__(reason)
        self.order_id = order_id
        self.processor_reference = processor_reference


GENERIC_ERROR_MESSAGE = "Something went wrong, please try again"


def public_message(error: OrderingError) -> str:
    """Message safe to show to the end user"""
    return error.reason if error.expose_reason else GENERIC_ERROR_MESSAGE
