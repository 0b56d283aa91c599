"""
Domain errors for the return lifecycle.

Every error raised by the services is a ReturnDeskError subclass so callers
can branch on kind. The HTTP layer maps `status_code` and `code` directly.
"""

from typing import Any, Dict, Optional


class ReturnDeskError(Exception):
    """Base class for all return desk errors."""

    status_code: int = 400
    code: str = "return_desk_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# ==================== VALIDATION ====================

class ValidationFailed(ReturnDeskError):
    """Missing or malformed input. Nothing was mutated."""
    status_code = 422
    code = "validation_failed"


class InvalidPhone(ValidationFailed):
    code = "invalid_phone"


# ==================== NOT FOUND ====================

class NotFound(ReturnDeskError):
    status_code = 404
    code = "not_found"


class ReturnNotFound(NotFound):
    code = "return_not_found"

    def __init__(self, return_id: str):
        super().__init__(f"Return request {return_id} not found", {"return_id": return_id})


class OrderNotFound(NotFound):
    code = "order_not_found"

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found", {"order_id": order_id})


class ShipmentNotFound(NotFound):
    code = "shipment_not_found"


class NoCapturedPayment(NotFound):
    code = "no_captured_payment"


# ==================== STATE CONFLICT ====================

class StateConflict(ReturnDeskError):
    """The operation does not apply to the current state. It was a no-op."""
    status_code = 409
    code = "state_conflict"


class InvalidTransition(StateConflict):
    code = "invalid_transition"

    def __init__(self, current_status: str, attempted: str):
        self.current_status = current_status
        self.attempted = attempted
        super().__init__(
            f"Cannot {attempted} return with status: {current_status}",
            {"current_status": current_status, "attempted": attempted},
        )


class NotEligible(StateConflict):
    code = "not_eligible"


class WindowExpired(NotEligible):
    code = "window_expired"


class DuplicatePending(NotEligible):
    code = "duplicate_pending"


class AlreadySubmitted(StateConflict):
    code = "already_submitted"

    def __init__(self, order_no: str):
        self.order_no = order_no
        super().__init__(
            f"Return shipping already submitted with order number: {order_no}",
            {"order_no": order_no},
        )


class NotSubmitted(StateConflict):
    code = "not_submitted"


class RefundNotAllowed(StateConflict):
    code = "refund_not_allowed"


class ReplacementNotAllowed(StateConflict):
    code = "replacement_not_allowed"


class ConcurrentModification(StateConflict):
    """The return request changed since the caller read it."""
    code = "concurrent_modification"


# ==================== UPSTREAM ====================

class UpstreamError(ReturnDeskError):
    """
    An external system failed. The return request may carry a partial
    mutation (e.g. refund_status = failed); re-fetch it before retrying.
    """
    status_code = 502
    code = "upstream_error"


class CarrierError(UpstreamError):
    code = "carrier_error"

    def __init__(self, remark: str, details: Optional[Dict[str, Any]] = None):
        self.remark = remark
        super().__init__(remark, details)


class InsufficientCarrierCredit(CarrierError):
    status_code = 402
    code = "insufficient_carrier_credit"


class PaymentGatewayError(UpstreamError):
    code = "payment_gateway_error"


class CollaboratorError(UpstreamError):
    """Order store, catalog or points ledger call failed."""
    code = "collaborator_error"


class ConfigurationError(ReturnDeskError):
    status_code = 503
    code = "configuration_error"
