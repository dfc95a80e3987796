# purchases/state_machine.py
"""
Purchase-request lifecycle.

    draft -> submitted -> approved -> funded -> po_generated -> completed
                 \\            \\
                  +-> rejected +

Delivery runs alongside: not_dispatched -> dispatched -> delivered, with a
dispute flag that can be raised while the dispute window is open.

Functions mutate the request (and its items) in place and raise a FundingError
subclass when the move is not legal. Persistence is the caller's job.
"""
from datetime import timedelta
from decimal import Decimal

from utils.errors import Conflict, PreconditionFailed, ValidationError
from utils.money import ZERO, money

DRAFT = "draft"
SUBMITTED = "submitted"
APPROVED = "approved"
FUNDED = "funded"
PO_GENERATED = "po_generated"
COMPLETED = "completed"
REJECTED = "rejected"

STATUSES = (DRAFT, SUBMITTED, APPROVED, FUNDED, PO_GENERATED, COMPLETED, REJECTED)
# once reached, a request never moves back and cannot be re-approved or re-vendored
LOCKED_STATUSES = frozenset({FUNDED, PO_GENERATED, COMPLETED})
REVIEWABLE_STATUSES = frozenset({SUBMITTED, APPROVED})

NOT_DISPATCHED = "not_dispatched"
DISPATCHED = "dispatched"
DELIVERED = "delivered"

ITEM_PENDING = "pending"
ITEM_APPROVED = "approved"
ITEM_ORDERED = "ordered"
ITEM_REJECTED = "rejected"

DEFAULT_TOLERANCE = Decimal("0.01")


def estimated_total(request) -> Decimal:
    return money(sum((item.line_total for item in request.items), ZERO))


def remaining_amount(request, snapshot) -> Decimal:
    return max(estimated_total(request) - snapshot.funded_amount, ZERO)


def evaluate_implicit_transition(request, snapshot, investor_due=None, tolerance=DEFAULT_TOLERANCE):
    """
    Status the ledger state implies for `request`, or None when nothing changes.

    Repayment reaching investor_due completes a funded request; deployments
    reaching the estimated total fund a request still under review. Rejected
    and completed requests never move.
    """
    if request.status in (REJECTED, COMPLETED):
        return None

    if request.status in LOCKED_STATUSES:
        if (
            investor_due is not None
            and snapshot.funded_amount > 0
            and snapshot.returned_amount >= investor_due - tolerance
        ):
            return COMPLETED
        return None

    if request.status not in REVIEWABLE_STATUSES:
        return None
    total = estimated_total(request)
    if total > 0 and snapshot.funded_amount >= total - tolerance:
        return FUNDED
    return None


def _set_items(request, status, copy_requested=False, clear_approved=False):
    for item in request.items:
        item.status = status
        if copy_requested:
            item.approved_qty = item.requested_qty
        elif clear_approved:
            item.approved_qty = None


def _require(request, allowed, action):
    if request.status not in allowed:
        raise Conflict(
            f"Cannot {action.replace('_', ' ')} a purchase request in '{request.status}' status",
            status=request.status,
        )


def submit(request, now):
    _require(request, {DRAFT}, "submit")
    if not request.items:
        raise ValidationError("Purchase request has no items")
    request.status = SUBMITTED
    request.submitted_at = now


def approve_for_purchase(request, now, notes=None):
    _require(request, {SUBMITTED}, "approve_for_purchase")
    if request.vendor_id is None:
        raise PreconditionFailed("Assign a vendor before approving the purchase request")
    request.status = APPROVED
    request.approved_at = now
    if notes is not None:
        request.approval_notes = notes
    _set_items(request, ITEM_APPROVED, copy_requested=True)


def approve_for_funding(request, now, notes=None):
    _require(request, REVIEWABLE_STATUSES, "approve_for_funding")
    mark_funded(request, now)
    if notes is not None:
        request.approval_notes = notes


def reject(request, now, notes=None):
    _require(request, REVIEWABLE_STATUSES, "reject")
    request.status = REJECTED
    if notes is not None:
        request.approval_notes = notes
    _set_items(request, ITEM_REJECTED, clear_approved=True)


def assign_vendor(request, vendor_id, now):
    if request.status in LOCKED_STATUSES:
        raise Conflict(
            f"Vendor cannot be changed once the request is '{request.status}'",
            status=request.status,
        )
    if request.delivery_status != NOT_DISPATCHED:
        raise Conflict(
            f"Vendor cannot be changed after dispatch (delivery status '{request.delivery_status}')",
            delivery_status=request.delivery_status,
        )
    request.vendor_id = vendor_id


def mark_funded(request, now):
    request.status = FUNDED
    request.funded_at = now
    if request.approved_at is None:
        request.approved_at = now
    _set_items(request, ITEM_ORDERED)


def mark_completed(request, now):
    request.status = COMPLETED
    request.completed_at = now


def generate_purchase_order(request, now):
    _require(request, {FUNDED}, "generate_purchase_order")
    request.status = PO_GENERATED
    request.po_generated_at = now


def clamp_dispute_window(hours, default, minimum, maximum) -> int:
    try:
        value = int(hours) if hours is not None else default
    except (TypeError, ValueError):
        value = default
    if value <= 0:
        value = default
    return min(max(value, minimum), maximum)


def mark_dispatched(request, now, window_hours):
    if request.status not in LOCKED_STATUSES:
        raise Conflict(
            f"Cannot dispatch a purchase request in '{request.status}' status",
            status=request.status,
        )
    if request.delivery_status != NOT_DISPATCHED:
        raise Conflict(
            f"Cannot dispatch: current status is '{request.delivery_status}'",
            delivery_status=request.delivery_status,
        )
    request.delivery_status = DISPATCHED
    request.dispatched_at = now
    request.dispute_deadline = now + timedelta(hours=window_hours)


def raise_dispute(request, reason, now):
    if request.delivery_status != DISPATCHED:
        raise Conflict(
            f"Cannot dispute delivery in '{request.delivery_status}' status",
            delivery_status=request.delivery_status,
        )
    if request.dispute_deadline is not None and now > request.dispute_deadline:
        raise Conflict("Dispute window has closed")
    if request.is_disputed:
        raise Conflict("A dispute is already open for this purchase request")
    request.dispute_raised_at = now
    request.dispute_reason = reason


def confirm_delivery(request, now, deemed=False):
    if request.delivery_status != DISPATCHED:
        raise Conflict(
            f"Cannot confirm delivery in '{request.delivery_status}' status",
            delivery_status=request.delivery_status,
        )
    request.delivery_status = DELIVERED
    request.delivered_at = now
    request.deemed_delivery = deemed


def is_deemed_delivered(request, now) -> bool:
    return (
        request.delivery_status == DISPATCHED
        and not request.is_disputed
        and request.dispute_deadline is not None
        and request.dispute_deadline < now
    )
