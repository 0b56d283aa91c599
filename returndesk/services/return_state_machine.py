"""
Return Request State Machine

This module is the SINGLE SOURCE OF TRUTH for return request status changes.
Every transition is looked up in RETURN_TRANSITIONS and applied by
apply_event(); nothing else writes `status`.

Lifecycle:

    requested  --approve-->  approved
    requested  --reject-->   rejected      (terminal)
    approved   --ship-->     in_transit
    in_transit --receive-->  received
    received   --inspect-->  inspecting
    received / inspecting   --complete--> completed   (terminal)
    requested / approved    --cancel-->   cancelled   (terminal)
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from returndesk.services.errors import ConcurrentModification, InvalidTransition, ValidationFailed

logger = logging.getLogger(__name__)


# =============================================================================
# STATUS / EVENT DEFINITIONS
# =============================================================================

class ReturnStatus:
    """Return status constants - use these instead of strings."""
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_TRANSIT = "in_transit"
    RECEIVED = "received"
    INSPECTING = "inspecting"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def all(cls) -> List[str]:
        return [
            cls.REQUESTED, cls.APPROVED, cls.REJECTED, cls.IN_TRANSIT,
            cls.RECEIVED, cls.INSPECTING, cls.COMPLETED, cls.CANCELLED,
        ]


class ReturnEvent:
    APPROVE = "approve"
    REJECT = "reject"
    SHIP = "ship"
    RECEIVE = "receive"
    INSPECT = "inspect"
    COMPLETE = "complete"
    CANCEL = "cancel"

    @classmethod
    def all(cls) -> List[str]:
        return [
            cls.APPROVE, cls.REJECT, cls.SHIP, cls.RECEIVE,
            cls.INSPECT, cls.COMPLETE, cls.CANCEL,
        ]


# Non-terminal statuses; an order with a return in any of these cannot open another
PENDING_STATUSES = frozenset({
    ReturnStatus.REQUESTED,
    ReturnStatus.APPROVED,
    ReturnStatus.IN_TRANSIT,
    ReturnStatus.RECEIVED,
    ReturnStatus.INSPECTING,
})

TERMINAL_STATUSES = frozenset({
    ReturnStatus.REJECTED,
    ReturnStatus.COMPLETED,
    ReturnStatus.CANCELLED,
})


# =============================================================================
# TRANSITION TABLE
# =============================================================================

# (current_status, event) -> new_status
RETURN_TRANSITIONS: Dict[Tuple[str, str], str] = {
    (ReturnStatus.REQUESTED, ReturnEvent.APPROVE): ReturnStatus.APPROVED,
    (ReturnStatus.REQUESTED, ReturnEvent.REJECT): ReturnStatus.REJECTED,
    (ReturnStatus.APPROVED, ReturnEvent.SHIP): ReturnStatus.IN_TRANSIT,
    (ReturnStatus.IN_TRANSIT, ReturnEvent.RECEIVE): ReturnStatus.RECEIVED,
    (ReturnStatus.RECEIVED, ReturnEvent.INSPECT): ReturnStatus.INSPECTING,
    (ReturnStatus.RECEIVED, ReturnEvent.COMPLETE): ReturnStatus.COMPLETED,
    (ReturnStatus.INSPECTING, ReturnEvent.COMPLETE): ReturnStatus.COMPLETED,
    (ReturnStatus.REQUESTED, ReturnEvent.CANCEL): ReturnStatus.CANCELLED,
    (ReturnStatus.APPROVED, ReturnEvent.CANCEL): ReturnStatus.CANCELLED,
}

# Human-readable action names, used in logs and error messages
EVENT_ACTIONS: Dict[str, str] = {
    ReturnEvent.APPROVE: "approve",
    ReturnEvent.REJECT: "reject",
    ReturnEvent.SHIP: "mark as in transit",
    ReturnEvent.RECEIVE: "mark as received",
    ReturnEvent.INSPECT: "start inspection",
    ReturnEvent.COMPLETE: "complete",
    ReturnEvent.CANCEL: "cancel",
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_apply(current_status: str, event: str) -> bool:
    """Check if an event is legal from the given status."""
    return (current_status, event) in RETURN_TRANSITIONS


def allowed_events(current_status: str) -> List[str]:
    """Events that may be applied from the given status."""
    return [event for (status, event) in RETURN_TRANSITIONS if status == current_status]


def next_status(current_status: str, event: str) -> str:
    """Resolve the target status or raise InvalidTransition."""
    try:
        return RETURN_TRANSITIONS[(current_status, event)]
    except KeyError:
        raise InvalidTransition(current_status, EVENT_ACTIONS.get(event, event)) from None


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def ensure_version(return_request, expected_version: Optional[int]) -> None:
    """Raise ConcurrentModification if the caller read an older version."""
    if expected_version is not None and expected_version != return_request.version:
        raise ConcurrentModification(
            f"Return request {return_request.id} has changed "
            f"(version {return_request.version}, expected {expected_version}). Reload and retry.",
            {
                "return_id": return_request.id,
                "current_version": return_request.version,
                "expected_version": expected_version,
            },
        )


def _required(payload: dict, field: str) -> str:
    value = payload.get(field)
    if value is None or not str(value).strip():
        raise ValidationFailed(f"{field} is required", {"field": field})
    return str(value).strip()


# =============================================================================
# SIDE EFFECTS PER EVENT
# =============================================================================

def _on_approve(return_request, now: datetime, payload: dict) -> None:
    return_request.approved_at = now
    return_request.admin_notes = payload.get("admin_notes") or return_request.admin_notes


def _on_reject(return_request, now: datetime, payload: dict) -> None:
    return_request.rejected_at = now
    return_request.rejection_reason = payload["reason"]


def _on_ship(return_request, now: datetime, payload: dict) -> None:
    return_request.return_courier = payload["courier"]
    return_request.return_tracking_number = payload["tracking_number"]


def _on_receive(return_request, now: datetime, payload: dict) -> None:
    return_request.received_at = now


def _on_complete(return_request, now: datetime, payload: dict) -> None:
    return_request.completed_at = now
    return_request.admin_notes = payload.get("admin_notes") or return_request.admin_notes


def _on_cancel(return_request, now: datetime, payload: dict) -> None:
    reason = payload.get("reason")
    if not reason:
        return
    note = f"Cancelled: {reason}"
    existing = return_request.admin_notes
    return_request.admin_notes = f"{existing}\n{note}" if existing else note


_SIDE_EFFECTS: Dict[str, Callable] = {
    ReturnEvent.APPROVE: _on_approve,
    ReturnEvent.REJECT: _on_reject,
    ReturnEvent.SHIP: _on_ship,
    ReturnEvent.RECEIVE: _on_receive,
    ReturnEvent.COMPLETE: _on_complete,
    ReturnEvent.CANCEL: _on_cancel,
}

# Payload fields that must be present and non-blank per event
_REQUIRED_FIELDS: Dict[str, Tuple[str, ...]] = {
    ReturnEvent.REJECT: ("reason",),
    ReturnEvent.SHIP: ("courier", "tracking_number"),
}


# =============================================================================
# TRANSITION EXECUTOR
# =============================================================================

def apply_event(return_request, event: str, now: Optional[datetime] = None, **payload) -> str:
    """
    Apply a lifecycle event to a return request.

    The guard and the payload are validated before anything is written, so a
    rejected event leaves status and timestamps untouched.

    Args:
        return_request: ReturnRequest instance
        event: One of ReturnEvent
        now: Timestamp to record (defaults to current UTC time)
        **payload: Event data (admin_notes, reason, courier, tracking_number)

    Returns:
        The previous status.

    Raises:
        InvalidTransition: event is not legal from the current status
        ValidationFailed: required payload is missing
    """
    current_status = return_request.status
    new_status = next_status(current_status, event)

    cleaned = dict(payload)
    for field in _REQUIRED_FIELDS.get(event, ()):
        cleaned[field] = _required(payload, field)

    now = now or datetime.now(timezone.utc)
    side_effect = _SIDE_EFFECTS.get(event)
    if side_effect:
        side_effect(return_request, now, cleaned)
    return_request.status = new_status

    logger.info(f"Return {return_request.id}: {current_status} -> {new_status}")
    return current_status
