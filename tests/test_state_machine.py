"""
test_state_machine.py - Purchase-request lifecycle and delivery tracking
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from capital.ledger import LedgerSnapshot
from purchases import state_machine as sm
from utils.errors import Conflict, PreconditionFailed, ValidationError
from tests.fakes import make_request

NOW = datetime(2026, 4, 1, 10, 0)


def snapshot(funded="0", returned="0"):
    return LedgerSnapshot(purchase_request_id=1, funded_amount=Decimal(funded),
                          returned_amount=Decimal(returned))


class TestEstimatedTotal:

    def test_includes_tax(self):
        request = make_request(items=((10, "100.00", 18), (2, "50.00", 0)))
        assert sm.estimated_total(request) == Decimal("1280.00")

    def test_remaining_never_negative(self):
        request = make_request(items=((1, "100.00", 0),))
        assert sm.remaining_amount(request, snapshot("40")) == Decimal("60.00")
        assert sm.remaining_amount(request, snapshot("150")) == 0


class TestAdminTransitions:

    def test_vendor_gate(self):
        request = make_request()
        with pytest.raises(PreconditionFailed):
            sm.approve_for_purchase(request, NOW)
        assert request.status == sm.SUBMITTED
        assert request.approved_at is None

    def test_approve_for_purchase_fans_out_to_items(self):
        request = make_request(items=((4, "10", 0), (2.5, "8", 0)), vendor_id=1)
        sm.approve_for_purchase(request, NOW, notes="ok")
        assert request.status == sm.APPROVED
        assert request.approved_at == NOW
        assert request.approval_notes == "ok"
        assert [i.status for i in request.items] == [sm.ITEM_APPROVED, sm.ITEM_APPROVED]
        assert [i.approved_qty for i in request.items] == [Decimal("4"), Decimal("2.5")]

    def test_approve_for_purchase_only_from_submitted(self):
        request = make_request(status=sm.DRAFT, vendor_id=1)
        with pytest.raises(Conflict):
            sm.approve_for_purchase(request, NOW)

    def test_approve_for_funding_backfills_approved_at(self):
        request = make_request()
        sm.approve_for_funding(request, NOW)
        assert request.status == sm.FUNDED
        assert request.funded_at == NOW
        assert request.approved_at == NOW
        assert all(i.status == sm.ITEM_ORDERED for i in request.items)

    def test_approve_for_funding_keeps_existing_approved_at(self):
        request = make_request(vendor_id=1)
        sm.approve_for_purchase(request, NOW)
        later = NOW + timedelta(days=2)
        sm.approve_for_funding(request, later)
        assert request.approved_at == NOW
        assert request.funded_at == later

    def test_reject_clears_approved_quantities(self):
        request = make_request(vendor_id=1)
        sm.approve_for_purchase(request, NOW)
        sm.reject(request, NOW, notes="over budget")
        assert request.status == sm.REJECTED
        assert all(i.approved_qty is None for i in request.items)
        assert all(i.status == sm.ITEM_REJECTED for i in request.items)

    @pytest.mark.parametrize("status", [sm.FUNDED, sm.PO_GENERATED, sm.COMPLETED])
    def test_locked_statuses_never_move_back(self, status):
        request = make_request(status=status, vendor_id=1)
        for move in (sm.approve_for_purchase, sm.approve_for_funding, sm.reject):
            with pytest.raises(Conflict):
                move(request, NOW)
        assert request.status == status

    @pytest.mark.parametrize("status", [sm.FUNDED, sm.PO_GENERATED, sm.COMPLETED])
    def test_assign_vendor_blocked_once_locked(self, status):
        request = make_request(status=status, vendor_id=1)
        with pytest.raises(Conflict):
            sm.assign_vendor(request, 2, NOW)
        assert request.vendor_id == 1

    def test_assign_vendor_blocked_after_dispatch(self):
        request = make_request(status=sm.APPROVED, delivery_status=sm.DISPATCHED)
        with pytest.raises(Conflict):
            sm.assign_vendor(request, 2, NOW)

    def test_submit(self):
        request = make_request(status=sm.DRAFT)
        sm.submit(request, NOW)
        assert request.status == sm.SUBMITTED
        assert request.submitted_at == NOW
        with pytest.raises(Conflict):
            sm.submit(request, NOW)

    def test_submit_requires_items(self):
        request = make_request(status=sm.DRAFT, items=())
        with pytest.raises(ValidationError):
            sm.submit(request, NOW)

    def test_purchase_order_only_after_funding(self):
        request = make_request(status=sm.APPROVED)
        with pytest.raises(Conflict):
            sm.generate_purchase_order(request, NOW)
        request.status = sm.FUNDED
        sm.generate_purchase_order(request, NOW)
        assert request.status == sm.PO_GENERATED


class TestImplicitTransitions:

    def test_funded_within_tolerance(self):
        request = make_request(items=((1, "1000.00", 0),))
        assert sm.evaluate_implicit_transition(request, snapshot("999.99")) == sm.FUNDED
        assert sm.evaluate_implicit_transition(request, snapshot("999.98")) is None

    def test_no_funded_transition_once_locked(self):
        request = make_request(items=((1, "1000.00", 0),), status=sm.PO_GENERATED)
        assert sm.evaluate_implicit_transition(request, snapshot("1000")) is None

    def test_zero_estimate_never_funds(self):
        request = make_request(items=((0, "10", 0),))
        assert sm.evaluate_implicit_transition(request, snapshot("10")) is None

    def test_completed_when_returns_cover_investor_due(self):
        request = make_request(status=sm.PO_GENERATED)
        snap = snapshot("1000", "1039.99")
        assert sm.evaluate_implicit_transition(request, snap, investor_due=Decimal("1040.00")) == sm.COMPLETED
        short = snapshot("1000", "1039.98")
        assert sm.evaluate_implicit_transition(request, short, investor_due=Decimal("1040.00")) is None

    def test_completed_is_terminal(self):
        request = make_request(status=sm.COMPLETED)
        snap = snapshot("1000", "2000")
        assert sm.evaluate_implicit_transition(request, snap, investor_due=Decimal("1000")) is None

    def test_rejected_request_never_completes(self):
        request = make_request(vendor_id=1)
        sm.approve_for_purchase(request, NOW)
        sm.reject(request, NOW)
        snap = snapshot("400", "400")
        assert sm.evaluate_implicit_transition(request, snap, investor_due=Decimal("400")) is None
        assert request.status == sm.REJECTED

    @pytest.mark.parametrize("status", [sm.SUBMITTED, sm.APPROVED])
    def test_partly_funded_request_does_not_skip_funded(self, status):
        request = make_request(items=((1, "1000.00", 0),), status=status)
        snap = snapshot("400", "400")
        assert sm.evaluate_implicit_transition(request, snap, investor_due=Decimal("400")) is None

    def test_draft_is_never_funded_implicitly(self):
        request = make_request(items=((1, "1000.00", 0),), status=sm.DRAFT)
        assert sm.evaluate_implicit_transition(request, snapshot("1000")) is None

    @pytest.mark.parametrize("status", [sm.FUNDED, sm.PO_GENERATED])
    def test_funded_requests_complete_on_repayment(self, status):
        request = make_request(status=status)
        snap = snapshot("1000", "1000")
        assert sm.evaluate_implicit_transition(request, snap, investor_due=Decimal("1000")) == sm.COMPLETED


class TestDelivery:

    @pytest.mark.parametrize("hours,expected", [(None, 48), (10, 24), (100, 72), (36, 36), ("x", 48), (0, 48)])
    def test_dispute_window_clamp(self, hours, expected):
        assert sm.clamp_dispute_window(hours, 48, 24, 72) == expected

    def test_dispatch_requires_funding(self):
        request = make_request(status=sm.APPROVED)
        with pytest.raises(Conflict):
            sm.mark_dispatched(request, NOW, 48)

    def test_dispatch_dispute_confirm(self):
        request = make_request(status=sm.FUNDED)
        sm.mark_dispatched(request, NOW, 24)
        assert request.delivery_status == sm.DISPATCHED
        assert request.dispute_deadline == NOW + timedelta(hours=24)
        with pytest.raises(Conflict):
            sm.mark_dispatched(request, NOW, 24)

        sm.raise_dispute(request, "short delivery", NOW + timedelta(hours=3))
        assert request.is_disputed
        with pytest.raises(Conflict):
            sm.raise_dispute(request, "again", NOW + timedelta(hours=4))

        sm.confirm_delivery(request, NOW + timedelta(hours=30))
        assert request.delivery_status == sm.DELIVERED
        assert request.deemed_delivery is False

    def test_dispute_after_deadline_rejected(self):
        request = make_request(status=sm.FUNDED)
        sm.mark_dispatched(request, NOW, 24)
        with pytest.raises(Conflict):
            sm.raise_dispute(request, "late", NOW + timedelta(hours=25))

    def test_deemed_delivery_eligibility(self):
        request = make_request(status=sm.PO_GENERATED)
        sm.mark_dispatched(request, NOW, 48)
        assert not sm.is_deemed_delivered(request, NOW + timedelta(hours=47))
        assert sm.is_deemed_delivered(request, NOW + timedelta(hours=49))

        disputed = make_request(status=sm.PO_GENERATED)
        sm.mark_dispatched(disputed, NOW, 48)
        sm.raise_dispute(disputed, "damaged", NOW + timedelta(hours=1))
        assert not sm.is_deemed_delivered(disputed, NOW + timedelta(hours=49))
