"""
test_orchestrator.py - Funding use cases against in-memory collaborators

Covers threshold tolerance, balance protection, atomic writes, pro-rata
returns, implicit transitions, delivery jobs and payment-submission review.
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest
from hypothesis import given, settings, strategies as st

from capital.orchestrator import FundingOrchestrator
from capital.schemas import CapitalTransactionRequest, PaymentReview, PaymentSubmissionDraft
from purchases import state_machine as sm
from purchases.schemas import (
    DispatchRequest, ItemDraft, PurchaseRequestAction, PurchaseRequestDraft,
)
from utils.errors import (
    AllocationError, AlreadyFunded, Conflict, ExceedsRemaining, InsufficientBalance, NotFound,
    PreconditionFailed, ValidationError,
)
from tests.fakes import Clock, FakeDirectory, FakeRepository, make_request


def txn(transaction_type, amount, investor_id=1, purchase_request_id=None, **extra):
    return CapitalTransactionRequest(
        transaction_type=transaction_type,
        amount=Decimal(str(amount)),
        description=f"{transaction_type} test",
        investor_id=investor_id,
        purchase_request_id=purchase_request_id,
        **extra,
    )


def funded_investor(orchestrator, investor_id=1, amount="10000"):
    orchestrator.record_transaction(txn("inflow", amount, investor_id))


@pytest.fixture
def pr(repo):
    # estimated total 1000.00
    request = make_request(pr_id=1, items=((10, "100.00", 0),), vendor_id=1, project_id=1)
    repo.requests[1] = request
    return request


class TestInflowWithdrawal:

    def test_inflow_creates_account_and_credits(self, orchestrator, repo):
        result = orchestrator.record_transaction(txn("inflow", "2500.50"))
        assert repo.balances[1] == Decimal("2500.50")
        assert result.transactions[0].amount == Decimal("2500.50")
        assert result.transactions[0].status == "completed"

    def test_withdrawal_beyond_balance_rejected(self, orchestrator, repo):
        funded_investor(orchestrator, amount="100")
        with pytest.raises(InsufficientBalance) as exc:
            orchestrator.record_transaction(txn("withdrawal", "150"))
        body = exc.value.to_dict()
        assert body["shortfall"] == 50.0
        assert body["available_balance"] == 100.0
        assert body["required_amount"] == 150.0
        assert repo.balances[1] == Decimal("100")
        assert len(repo.transactions) == 1

    def test_unknown_investor(self, orchestrator):
        with pytest.raises(NotFound):
            orchestrator.record_transaction(txn("inflow", "10", investor_id=99))


class TestDeployment:

    def test_full_deployment_funds_request(self, orchestrator, repo, pr, clock):
        funded_investor(orchestrator)
        result = orchestrator.record_transaction(txn("deployment", "1000", purchase_request_id=1))
        assert result.transition == sm.FUNDED
        assert pr.status == sm.FUNDED
        assert pr.funded_at == clock.now
        assert repo.balances[1] == Decimal("9000")
        assert [n.to for n in result.notifications] == ["ops@northwind.test"]
        # project and contractor default from the request
        assert result.transactions[0].project_id == 1
        assert result.transactions[0].contractor_id == 1
        assert len(repo.project_deployments) == 1

    def test_partial_deployments_fund_on_threshold(self, orchestrator, repo, pr):
        funded_investor(orchestrator, 1)
        funded_investor(orchestrator, 2)
        first = orchestrator.record_transaction(txn("deployment", "600", 1, purchase_request_id=1))
        assert first.transition is None
        assert pr.status == sm.SUBMITTED
        second = orchestrator.record_transaction(txn("deployment", "400", 2, purchase_request_id=1))
        assert second.transition == sm.FUNDED

    def test_within_tolerance_accepted(self, orchestrator, pr):
        funded_investor(orchestrator)
        result = orchestrator.record_transaction(txn("deployment", "1000.01", purchase_request_id=1))
        assert result.transition == sm.FUNDED

    def test_exceeds_remaining_reports_remaining(self, orchestrator, repo, pr):
        funded_investor(orchestrator)
        orchestrator.record_transaction(txn("deployment", "250", purchase_request_id=1))
        with pytest.raises(ExceedsRemaining) as exc:
            orchestrator.record_transaction(txn("deployment", "750.02", purchase_request_id=1))
        assert exc.value.remaining == Decimal("750.00")
        assert exc.value.to_dict()["remaining_amount"] == 750.0
        assert repo.balances[1] == Decimal("9750")

    def test_already_funded_rejected(self, orchestrator, repo, pr):
        funded_investor(orchestrator)
        orchestrator.record_transaction(txn("deployment", "1000", purchase_request_id=1))
        with pytest.raises(AlreadyFunded):
            orchestrator.record_transaction(txn("deployment", "1", purchase_request_id=1))
        assert repo.balances[1] == Decimal("9000")
        assert len(repo.transactions) == 2

    @pytest.mark.parametrize("status", [sm.DRAFT, sm.REJECTED])
    def test_request_outside_review_cannot_be_funded(self, orchestrator, repo, pr, status):
        funded_investor(orchestrator)
        pr.status = status
        with pytest.raises(Conflict):
            orchestrator.record_transaction(txn("deployment", "1000", purchase_request_id=1))
        assert pr.status == status
        assert pr.submitted_at is None
        assert repo.balances[1] == Decimal("10000")
        assert len(repo.transactions) == 1

    def test_insufficient_balance_checked_first(self, orchestrator, repo, pr):
        funded_investor(orchestrator, amount="100")
        with pytest.raises(InsufficientBalance):
            orchestrator.record_transaction(txn("deployment", "500", purchase_request_id=1))
        assert len(repo.transactions) == 1

    def test_unknown_request(self, orchestrator):
        funded_investor(orchestrator)
        with pytest.raises(NotFound):
            orchestrator.record_transaction(txn("deployment", "10", purchase_request_id=42))

    def test_deployment_without_request(self, orchestrator, repo):
        funded_investor(orchestrator)
        result = orchestrator.record_transaction(txn("deployment", "10"))
        assert result.request is None
        assert repo.project_deployments == []


class TestReturns:

    def _fund(self, orchestrator, clock):
        funded_investor(orchestrator, 1)
        funded_investor(orchestrator, 2)
        orchestrator.record_transaction(txn("deployment", "600", 1, purchase_request_id=1))
        orchestrator.record_transaction(txn("deployment", "400", 2, purchase_request_id=1))

    def test_pro_rata_split(self, orchestrator, repo, pr, clock):
        self._fund(orchestrator, clock)
        result = orchestrator.record_transaction(
            txn("return", "333.33", None, purchase_request_id=1, reference_number="RPY-1")
        )
        assert [(t.investor_id, t.amount) for t in result.transactions] == [
            (1, Decimal("200.00")), (2, Decimal("133.33")),
        ]
        assert {t.reference_number for t in result.transactions} == {"RPY-1"}
        assert repo.balances[1] == Decimal("9600.00")
        assert repo.balances[2] == Decimal("9733.33")
        assert result.transition is None
        # investor notifications plus the contractor
        assert sorted(n.to for n in result.notifications) == [
            "asha@investors.test", "bilal@investors.test", "ops@northwind.test",
        ]

    def test_return_completes_when_investor_due_is_covered(self, orchestrator, pr, clock):
        self._fund(orchestrator, clock)
        clock.now = clock.now + timedelta(days=40)
        # 1000 principal + 1000 * 0.001 * 40 participation
        partial = orchestrator.record_transaction(txn("return", "1000", None, purchase_request_id=1))
        assert partial.fees.investor_due == Decimal("1040.00")
        assert partial.transition is None
        final = orchestrator.record_transaction(txn("return", "39.99", None, purchase_request_id=1))
        assert final.transition == sm.COMPLETED
        assert pr.status == sm.COMPLETED
        assert pr.completed_at == clock.now

    def test_repayment_on_rejected_request_keeps_it_rejected(self, orchestrator, repo, pr):
        funded_investor(orchestrator)
        orchestrator.transition_purchase_request(
            PurchaseRequestAction(purchase_request_id=1, action="approve_for_purchase"))
        orchestrator.record_transaction(txn("deployment", "400", purchase_request_id=1))
        orchestrator.transition_purchase_request(
            PurchaseRequestAction(purchase_request_id=1, action="reject"))

        result = orchestrator.record_transaction(txn("return", "400", None, purchase_request_id=1))
        assert result.transition is None
        assert pr.status == sm.REJECTED
        assert pr.completed_at is None
        assert repo.balances[1] == Decimal("10000")

    def test_partly_funded_request_is_not_completed_by_returns(self, orchestrator, pr):
        funded_investor(orchestrator)
        orchestrator.record_transaction(txn("deployment", "400", purchase_request_id=1))
        result = orchestrator.record_transaction(txn("return", "400", None, purchase_request_id=1))
        assert result.transition is None
        assert pr.status == sm.SUBMITTED

    def test_return_requires_request(self, orchestrator):
        with pytest.raises(ValidationError):
            orchestrator.record_transaction(txn("return", "10", None))

    def test_return_without_deployments(self, orchestrator, repo, pr):
        with pytest.raises(AllocationError) as exc:
            orchestrator.record_transaction(txn("return", "10", None, purchase_request_id=1))
        assert exc.value.reason == AllocationError.NO_DEPLOYMENTS
        assert repo.transactions == []


class TestPurchaseRequestActions:

    def test_vendor_gate_through_orchestrator(self, orchestrator, repo):
        repo.requests[1] = make_request(pr_id=1)
        with pytest.raises(PreconditionFailed):
            orchestrator.transition_purchase_request(
                PurchaseRequestAction(purchase_request_id=1, action="approve_for_purchase"))

        orchestrator.transition_purchase_request(
            PurchaseRequestAction(purchase_request_id=1, action="assign_vendor", vendor_id=1))
        result = orchestrator.transition_purchase_request(
            PurchaseRequestAction(purchase_request_id=1, action="approve_for_purchase", admin_notes="go"))
        assert result.transition == sm.APPROVED
        assert result.notifications[0].to == "ops@northwind.test"
        assert repo.flushes == 2  # the rejected approval never flushed

    def test_unknown_vendor(self, orchestrator, repo):
        repo.requests[1] = make_request(pr_id=1)
        with pytest.raises(NotFound):
            orchestrator.transition_purchase_request(
                PurchaseRequestAction(purchase_request_id=1, action="assign_vendor", vendor_id=9))

    def test_create_and_submit(self, orchestrator, repo):
        draft = PurchaseRequestDraft(
            contractor_id=1,
            items=(ItemDraft("Cement", Decimal("50"), Decimal("7.20"), Decimal("5")),),
        )
        result = orchestrator.create_purchase_request(draft)
        assert result.request.status == sm.DRAFT
        assert sm.estimated_total(result.request) == Decimal("378.00")
        submitted = orchestrator.submit(result.request.id)
        assert submitted.request.status == sm.SUBMITTED

    def test_create_for_unknown_contractor(self, orchestrator):
        draft = PurchaseRequestDraft(contractor_id=5, items=(ItemDraft("x", Decimal("1"), Decimal("1")),))
        with pytest.raises(NotFound):
            orchestrator.create_purchase_request(draft)


class TestDelivery:

    def test_dispatch_clamps_window_and_notifies(self, orchestrator, repo, pr, clock):
        pr.status = sm.FUNDED
        result = orchestrator.mark_dispatched(DispatchRequest(purchase_request_id=1, dispute_window_hours=5))
        assert pr.dispute_deadline == clock.now + timedelta(hours=24)
        assert result.notifications[0].ntype == "delivery"

    def test_dispute_requires_reason(self, orchestrator, pr):
        pr.status = sm.FUNDED
        orchestrator.mark_dispatched(DispatchRequest(purchase_request_id=1))
        with pytest.raises(ValidationError):
            orchestrator.raise_dispute(1, "  ")
        result = orchestrator.raise_dispute(1, "wrong grade of steel")
        assert pr.dispute_reason == "wrong grade of steel"
        assert result.notifications[0].to == "orders@steel.test"

    def test_deemed_delivery_job(self, orchestrator, repo, clock):
        quiet = make_request(pr_id=1, status=sm.PO_GENERATED)
        disputed = make_request(pr_id=2, status=sm.PO_GENERATED)
        repo.requests.update({1: quiet, 2: disputed})
        orchestrator.mark_dispatched(DispatchRequest(purchase_request_id=1, dispute_window_hours=24))
        orchestrator.mark_dispatched(DispatchRequest(purchase_request_id=2, dispute_window_hours=24))
        orchestrator.raise_dispute(2, "missing bundle")

        clock.now = clock.now + timedelta(hours=25)
        assert orchestrator.run_deemed_delivery() == [1]
        assert quiet.delivery_status == sm.DELIVERED
        assert quiet.deemed_delivery is True
        assert disputed.delivery_status == sm.DISPATCHED


class UnreachableDirectory(FakeDirectory):
    """Directory whose address lookups fail, as when the directory service is down."""

    def contractor_email(self, contractor_id):
        raise RuntimeError("directory unavailable")

    def investor_email(self, investor_id):
        raise RuntimeError("directory unavailable")


class TestNotificationFailures:

    def test_committed_deployment_survives_lookup_failure(self, repo, clock):
        orchestrator = FundingOrchestrator(repo, UnreachableDirectory(), clock=clock)
        repo.requests[1] = make_request(pr_id=1, items=((10, "100.00", 0),))
        orchestrator.record_transaction(txn("inflow", "5000"))

        result = orchestrator.record_transaction(txn("deployment", "1000", purchase_request_id=1))
        assert result.transition == sm.FUNDED
        assert result.notifications == []
        assert repo.balances[1] == Decimal("4000")

    def test_committed_return_and_action_survive_lookup_failure(self, repo, clock):
        orchestrator = FundingOrchestrator(repo, UnreachableDirectory(), clock=clock)
        request = make_request(pr_id=1, items=((10, "100.00", 0),), vendor_id=1)
        repo.requests[1] = request
        orchestrator.record_transaction(txn("inflow", "5000"))
        orchestrator.record_transaction(txn("deployment", "1000", purchase_request_id=1))

        result = orchestrator.record_transaction(txn("return", "1000", None, purchase_request_id=1))
        assert result.transition == sm.COMPLETED
        assert result.notifications == []
        assert repo.balances[1] == Decimal("5000")

        repo.requests[2] = make_request(pr_id=2, vendor_id=1)
        moved = orchestrator.transition_purchase_request(
            PurchaseRequestAction(purchase_request_id=2, action="approve_for_purchase"))
        assert moved.transition == sm.APPROVED
        assert moved.notifications == []


def payment_draft(investor_id=1, amount="2500.00", **extra):
    return PaymentSubmissionDraft(investor_id=investor_id, amount=Decimal(amount),
                                  payment_date=date(2026, 2, 27), **extra)


class TestPaymentSubmissions:

    def test_submission_starts_pending(self, orchestrator, repo):
        result = orchestrator.submit_payment(payment_draft(payment_reference="NEFT-88"))
        assert result.submission.status == "pending"
        assert result.submission.id == 1
        assert repo.balances == {}

    def test_submission_for_unknown_investor(self, orchestrator):
        with pytest.raises(NotFound):
            orchestrator.submit_payment(payment_draft(investor_id=99))

    def test_approval_credits_an_inflow(self, orchestrator, repo, clock):
        orchestrator.submit_payment(payment_draft(payment_reference="NEFT-88"))
        result = orchestrator.review_payment_submission(
            PaymentReview(submission_id=1, action="approve", review_notes="matched statement"),
            admin_user_id="9",
        )
        submission = result.submission
        assert submission.status == "approved"
        assert submission.reviewed_at == clock.now
        assert submission.reviewed_by == "9"
        [inflow] = result.transactions
        assert submission.capital_transaction_id == inflow.id
        assert inflow.transaction_type == "inflow"
        assert inflow.reference_number == "NEFT-88"
        assert inflow.description == "Investor payment confirmation (bank_transfer)"
        assert repo.balances[1] == Decimal("2500.00")
        assert [n.to for n in result.notifications] == ["asha@investors.test"]

    def test_rejection_moves_no_money(self, orchestrator, repo):
        orchestrator.submit_payment(payment_draft())
        result = orchestrator.review_payment_submission(
            PaymentReview(submission_id=1, action="reject", review_notes="no such transfer"))
        assert result.submission.status == "rejected"
        assert result.transactions == []
        assert repo.transactions == []
        assert result.submission.capital_transaction_id is None

    @pytest.mark.parametrize("first", ["approve", "reject"])
    def test_reviewed_submission_is_refused(self, orchestrator, repo, first):
        orchestrator.submit_payment(payment_draft())
        orchestrator.review_payment_submission(PaymentReview(submission_id=1, action=first))
        with pytest.raises(Conflict):
            orchestrator.review_payment_submission(PaymentReview(submission_id=1, action="approve"))
        assert len(repo.transactions) == (1 if first == "approve" else 0)

    def test_unknown_submission(self, orchestrator):
        with pytest.raises(NotFound):
            orchestrator.review_payment_submission(PaymentReview(submission_id=5, action="approve"))


operations = st.lists(
    st.tuples(
        st.sampled_from(["inflow", "withdrawal", "deployment"]),
        st.integers(min_value=1, max_value=3),
        st.decimals(min_value=Decimal("0.01"), max_value=Decimal("5000"), places=2),
    ),
    min_size=1,
    max_size=40,
)


class TestBalanceProperties:

    @settings(max_examples=150, deadline=None)
    @given(ops=operations)
    def test_balances_never_negative_and_match_ledger(self, ops):
        repo = FakeRepository(clock=Clock())
        orchestrator = FundingOrchestrator(repo, FakeDirectory(), clock=repo.clock)
        for kind, investor_id, amount in ops:
            before = (dict(repo.balances), len(repo.transactions))
            try:
                orchestrator.record_transaction(txn(kind, amount, investor_id))
            except InsufficientBalance:
                # rejected debits leave no trace
                assert (repo.balances, len(repo.transactions)) == before
            assert all(balance >= 0 for balance in repo.balances.values())

        for investor_id, balance in repo.balances.items():
            assert repo.replay_balance(investor_id) == balance

    @settings(max_examples=100, deadline=None)
    @given(amounts=st.lists(st.decimals(min_value=Decimal("0.01"), max_value=Decimal("600"), places=2),
                            min_size=1, max_size=15))
    def test_funding_never_exceeds_estimate_beyond_tolerance(self, amounts):
        repo = FakeRepository(clock=Clock())
        orchestrator = FundingOrchestrator(repo, FakeDirectory(), clock=repo.clock)
        request = make_request(pr_id=1, items=((10, "100.00", 0),))
        repo.requests[1] = request
        orchestrator.record_transaction(txn("inflow", "100000"))

        seen_locked = False
        for amount in amounts:
            try:
                orchestrator.record_transaction(txn("deployment", amount, purchase_request_id=1))
            except (ExceedsRemaining, AlreadyFunded):
                pass
            funded = repo.ledger_snapshot(1).funded_amount
            assert funded <= Decimal("1000.01")
            if seen_locked:
                assert request.status == sm.FUNDED
            seen_locked = seen_locked or request.status == sm.FUNDED
