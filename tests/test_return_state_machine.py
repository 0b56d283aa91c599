from datetime import datetime, timezone

import pytest

from returndesk.models import ReturnRequest
from returndesk.services.errors import ConcurrentModification, InvalidTransition, ValidationFailed
from returndesk.services.return_state_machine import (
    RETURN_TRANSITIONS,
    ReturnEvent,
    ReturnStatus,
    allowed_events,
    apply_event,
    can_apply,
    ensure_version,
    is_terminal,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

PAYLOADS = {
    ReturnEvent.REJECT: {"reason": "duplicate order"},
    ReturnEvent.SHIP: {"courier": "DHL", "tracking_number": "T1"},
}

TIMESTAMPS = ("approved_at", "rejected_at", "received_at", "completed_at")


def _return(status: str) -> ReturnRequest:
    return ReturnRequest(id="ret_test", order_id="order_01", status=status, version=1)


def test_transition_table_has_only_documented_edges():
    assert RETURN_TRANSITIONS == {
        ("requested", "approve"): "approved",
        ("requested", "reject"): "rejected",
        ("approved", "ship"): "in_transit",
        ("in_transit", "receive"): "received",
        ("received", "inspect"): "inspecting",
        ("received", "complete"): "completed",
        ("inspecting", "complete"): "completed",
        ("requested", "cancel"): "cancelled",
        ("approved", "cancel"): "cancelled",
    }


@pytest.mark.parametrize("status", ReturnStatus.all())
@pytest.mark.parametrize("event", ReturnEvent.all())
def test_every_status_event_pair(status, event):
    return_request = _return(status)

    if can_apply(status, event):
        previous = apply_event(return_request, event, now=NOW, **PAYLOADS.get(event, {}))
        assert previous == status
        assert return_request.status == RETURN_TRANSITIONS[(status, event)]
    else:
        with pytest.raises(InvalidTransition) as exc_info:
            apply_event(return_request, event, now=NOW, **PAYLOADS.get(event, {}))
        assert exc_info.value.current_status == status
        assert return_request.status == status
        for field in TIMESTAMPS:
            assert getattr(return_request, field) is None


@pytest.mark.parametrize("status", ["rejected", "completed", "cancelled"])
def test_terminal_statuses_allow_nothing(status):
    assert is_terminal(status)
    assert allowed_events(status) == []


def test_approve_keeps_notes_when_none_given():
    return_request = _return("requested")
    return_request.admin_notes = "customer called"

    apply_event(return_request, ReturnEvent.APPROVE, now=NOW)

    assert return_request.approved_at == NOW
    assert return_request.admin_notes == "customer called"


def test_approve_replaces_notes_when_given():
    return_request = _return("requested")
    return_request.admin_notes = "customer called"

    apply_event(return_request, ReturnEvent.APPROVE, now=NOW, admin_notes="approved by ops")

    assert return_request.admin_notes == "approved by ops"


def test_reject_records_reason_and_time():
    return_request = _return("requested")

    apply_event(return_request, ReturnEvent.REJECT, now=NOW, reason="duplicate order")

    assert return_request.status == "rejected"
    assert return_request.rejected_at == NOW
    assert return_request.rejection_reason == "duplicate order"


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_reject_requires_reason(reason):
    return_request = _return("requested")

    with pytest.raises(ValidationFailed):
        apply_event(return_request, ReturnEvent.REJECT, now=NOW, reason=reason)

    assert return_request.status == "requested"
    assert return_request.rejected_at is None


@pytest.mark.parametrize("payload", [
    {"courier": "DHL"},
    {"tracking_number": "T1"},
    {"courier": "", "tracking_number": "T1"},
])
def test_ship_requires_courier_and_tracking(payload):
    return_request = _return("approved")

    with pytest.raises(ValidationFailed):
        apply_event(return_request, ReturnEvent.SHIP, now=NOW, **payload)

    assert return_request.status == "approved"
    assert return_request.return_courier is None


def test_ship_sets_carrier_fields():
    return_request = _return("approved")

    apply_event(return_request, ReturnEvent.SHIP, now=NOW, courier="DHL", tracking_number="T1")

    assert return_request.return_courier == "DHL"
    assert return_request.return_tracking_number == "T1"


def test_cancel_writes_reason_to_notes():
    return_request = _return("approved")

    apply_event(return_request, ReturnEvent.CANCEL, now=NOW, reason="customer changed mind")

    assert return_request.status == "cancelled"
    assert return_request.admin_notes == "Cancelled: customer changed mind"


def test_cancel_keeps_earlier_notes():
    return_request = _return("requested")
    apply_event(return_request, ReturnEvent.APPROVE, now=NOW, admin_notes="photos look fine")

    apply_event(return_request, ReturnEvent.CANCEL, now=NOW, reason="customer kept the item")

    assert return_request.admin_notes == "photos look fine\nCancelled: customer kept the item"


def test_cancel_without_reason_leaves_notes():
    return_request = _return("requested")
    return_request.admin_notes = "called customer"

    apply_event(return_request, ReturnEvent.CANCEL, now=NOW)

    assert return_request.admin_notes == "called customer"


def test_invalid_transition_message():
    with pytest.raises(InvalidTransition, match="Cannot approve return with status: rejected"):
        apply_event(_return("rejected"), ReturnEvent.APPROVE, now=NOW)


def test_ensure_version():
    return_request = _return("requested")
    return_request.version = 3

    ensure_version(return_request, None)
    ensure_version(return_request, 3)
    with pytest.raises(ConcurrentModification):
        ensure_version(return_request, 2)
