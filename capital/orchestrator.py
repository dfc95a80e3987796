# capital/orchestrator.py
"""
Funding use cases.

The orchestrator is the only place that moves money or request status. It
validates an instruction against ledger aggregates and request state, writes
ledger entries through the injected repository, advances the purchase-request
state machine, and hands back the notifications the caller should send.
It performs no I/O of its own beyond the repository.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from capital.allocation import allocate_return
from capital.fees import FeeBreakdown, fees_for_terms
from capital.ledger import NewTransaction
from capital.models import (
    DEPLOYMENT, INFLOW, RETURN, SUBMISSION_APPROVED, SUBMISSION_PENDING, SUBMISSION_REJECTED,
    WITHDRAWAL, PaymentSubmission,
)
from notifications.commands import notify
from purchases import state_machine as sm
from purchases.models import PurchaseRequest, PurchaseRequestItem
from utils.errors import (
    AlreadyFunded, Conflict, ExceedsRemaining, InsufficientBalance, NotFound, ValidationError,
)
from utils.money import ZERO, as_float, money

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    transactions: list = field(default_factory=list)
    request: object = None
    transition: str | None = None
    notifications: list = field(default_factory=list)
    allocation: list = field(default_factory=list)
    fees: FeeBreakdown | None = None
    submission: object = None


@dataclass(frozen=True)
class DisputeWindow:
    default_hours: int = 48
    min_hours: int = 24
    max_hours: int = 72

    def clamp(self, hours):
        return sm.clamp_dispute_window(hours, self.default_hours, self.min_hours, self.max_hours)


def funding_summary(request, snapshot, terms, now):
    """Derived money figures for a purchase request, JSON ready."""
    estimated = sm.estimated_total(request)
    fees = fees_for_terms(snapshot.funded_amount, terms, snapshot.first_deployment_at, now)
    outstanding = max(fees.total_due - snapshot.returned_amount, ZERO) if snapshot.funded_amount > 0 else ZERO
    return {
        "estimated_total": float(estimated),
        "funded_amount": float(snapshot.funded_amount),
        "returned_amount": float(snapshot.returned_amount),
        "remaining_amount": float(max(estimated - snapshot.funded_amount, ZERO)),
        "platform_fee": float(fees.platform_fee),
        "participation_fee": float(fees.participation_fee),
        "investor_due": float(fees.investor_due),
        "total_due": float(fees.total_due),
        "outstanding_amount": float(outstanding),
        "days_outstanding": fees.days_outstanding,
        "first_deployment_at": (
            snapshot.first_deployment_at.strftime("%Y-%m-%d %H:%M:%S")
            if snapshot.first_deployment_at else None
        ),
    }


class FundingOrchestrator:

    def __init__(self, repository, directory, clock=None, tolerance=Decimal("0.01"),
                 dispute_window=None):
        self.repository = repository
        self.directory = directory
        self.clock = clock or datetime.utcnow
        self.tolerance = money(tolerance)
        self.dispute_window = dispute_window or DisputeWindow()

    # --------------------
    # Ledger instructions
    # --------------------
    def record_transaction(self, cmd, admin_user_id=None) -> OperationResult:
        handlers = {
            INFLOW: self._record_inflow,
            WITHDRAWAL: self._record_withdrawal,
            DEPLOYMENT: self._record_deployment,
            RETURN: self._record_return,
        }
        handler = handlers.get(cmd.transaction_type)
        if handler is None:
            raise ValidationError(f"Unsupported transaction_type '{cmd.transaction_type}'")
        if cmd.transaction_type != RETURN:
            self._require_investor(cmd.investor_id)
        return handler(cmd, admin_user_id)

    @contextmanager
    def _notices(self, record):
        """Building notifications for an already committed change never fails the operation."""
        try:
            yield
        except Exception:
            logger.exception("Could not build notifications for %s %s",
                             type(record).__name__, getattr(record, "id", None))

    def _require_investor(self, investor_id):
        if investor_id is None:
            raise ValidationError("investor_id is required", field="investor_id")
        if self.directory.get_investor(investor_id) is None:
            raise NotFound(f"Investor {investor_id} not found", investor_id=investor_id)

    def _entry(self, cmd, admin_user_id, **overrides):
        fields = dict(
            investor_id=cmd.investor_id,
            transaction_type=cmd.transaction_type,
            amount=cmd.amount,
            project_id=cmd.project_id,
            contractor_id=cmd.contractor_id,
            purchase_request_id=cmd.purchase_request_id,
            reference_number=cmd.reference_number,
            description=cmd.description,
            admin_user_id=admin_user_id,
        )
        fields.update(overrides)
        return NewTransaction(**fields)

    def _check_balance(self, investor_id, amount):
        available = self.repository.get_available_balance(investor_id)
        if available < amount:
            logger.warning("Insufficient balance for investor %s: available %s, required %s",
                           investor_id, available, amount)
            raise InsufficientBalance(available=available, required=amount)

    def _record_inflow(self, cmd, admin_user_id):
        with self.repository.unit_of_work():
            self.repository.ensure_account(cmd.investor_id)
            txn = self.repository.record_credit(self._entry(cmd, admin_user_id))
        logger.info("Inflow of %s recorded for investor %s", cmd.amount, cmd.investor_id)
        return OperationResult(transactions=[txn])

    def _record_withdrawal(self, cmd, admin_user_id):
        with self.repository.unit_of_work():
            self.repository.ensure_account(cmd.investor_id)
            self._check_balance(cmd.investor_id, cmd.amount)
            txn = self.repository.record_debit(self._entry(cmd, admin_user_id))
        logger.info("Withdrawal of %s recorded for investor %s", cmd.amount, cmd.investor_id)
        return OperationResult(transactions=[txn])

    def _record_deployment(self, cmd, admin_user_id):
        result = OperationResult()
        now = self.clock()
        with self.repository.unit_of_work():
            self.repository.ensure_account(cmd.investor_id)
            self._check_balance(cmd.investor_id, cmd.amount)

            request = None
            project_id, contractor_id = cmd.project_id, cmd.contractor_id
            if cmd.purchase_request_id is not None:
                request = self._load_request(cmd.purchase_request_id, for_update=True)
                self._check_fundable(request, cmd.amount)
                project_id = project_id or request.project_id
                contractor_id = contractor_id or request.contractor_id

            txn = self.repository.record_debit(
                self._entry(cmd, admin_user_id, project_id=project_id, contractor_id=contractor_id)
            )
            result.transactions.append(txn)

            if request is not None:
                snapshot = self.repository.ledger_snapshot(request.id)
                target = sm.evaluate_implicit_transition(request, snapshot, tolerance=self.tolerance)
                if target == sm.FUNDED:
                    sm.mark_funded(request, now)
                    result.transition = sm.FUNDED
                result.request = request

            if project_id is not None:
                self.repository.record_project_deployment(
                    txn, project_id, admin_user_id=admin_user_id, notes=cmd.description,
                )

        logger.info("Deployment of %s from investor %s recorded (purchase request %s)",
                    cmd.amount, cmd.investor_id, cmd.purchase_request_id)
        if result.transition:
            logger.info("Purchase request %s moved to %s", request.id, result.transition)
            with self._notices(request):
                notify(
                    result.notifications,
                    self.directory.contractor_email(request.contractor_id),
                    f"Purchase request #{request.id} fully funded",
                    f"Purchase request #{request.id} has been fully funded "
                    f"({snapshot.funded_amount}). Materials can now be ordered.",
                    "funding",
                )
        return result

    def _check_fundable(self, request, amount):
        if request.status in sm.LOCKED_STATUSES:
            raise AlreadyFunded(
                f"Purchase request is already {request.status}", status=request.status,
            )
        if request.status not in sm.REVIEWABLE_STATUSES:
            raise Conflict(
                f"Cannot fund a purchase request in '{request.status}' status",
                status=request.status,
            )

        snapshot = self.repository.ledger_snapshot(request.id)
        remaining = sm.remaining_amount(request, snapshot)
        if remaining <= 0:
            raise AlreadyFunded(remaining_amount=remaining)
        if amount - remaining > self.tolerance:
            raise ExceedsRemaining(remaining=remaining, requested=amount)

    def _record_return(self, cmd, admin_user_id):
        if cmd.purchase_request_id is None:
            raise ValidationError("purchase_request_id is required for returns",
                                  field="purchase_request_id")
        result = OperationResult()
        now = self.clock()
        with self.repository.unit_of_work():
            request = self._load_request(cmd.purchase_request_id, for_update=True)
            snapshot = self.repository.ledger_snapshot(request.id)
            shares = allocate_return(cmd.amount, snapshot.deployments)

            for share in shares:
                self.repository.ensure_account(share.investor_id)
            entries = [
                self._entry(
                    cmd, admin_user_id,
                    investor_id=share.investor_id,
                    amount=share.amount,
                    project_id=share.project_id or cmd.project_id or request.project_id,
                    contractor_id=share.contractor_id or cmd.contractor_id or request.contractor_id,
                )
                for share in shares
            ]
            result.transactions = self.repository.record_returns(entries)
            result.allocation = shares

            snapshot = self.repository.ledger_snapshot(request.id)
            terms = self.directory.get_contractor_terms(request.contractor_id)
            fees = fees_for_terms(snapshot.funded_amount, terms, snapshot.first_deployment_at, now)
            result.fees = fees
            target = sm.evaluate_implicit_transition(
                request, snapshot, investor_due=fees.investor_due, tolerance=self.tolerance,
            )
            if target == sm.COMPLETED:
                sm.mark_completed(request, now)
                result.transition = sm.COMPLETED
            result.request = request

        with self._notices(request):
            for share in shares:
                notify(
                    result.notifications,
                    self.directory.investor_email(share.investor_id),
                    f"Return received for purchase request #{request.id}",
                    f"A return of {share.amount} on your deployment of {share.deployed} "
                    f"has been credited to your account.",
                    "repayment",
                )
            notify(
                result.notifications,
                self.directory.contractor_email(request.contractor_id),
                f"Repayment recorded for purchase request #{request.id}",
                f"We recorded a repayment of {cmd.amount}. Total returned so far: "
                f"{snapshot.returned_amount} of {fees.investor_due} due to investors.",
                "repayment",
            )
        logger.info("Return of %s split across %s investors for purchase request %s",
                    cmd.amount, len(shares), request.id)
        return result

    # --------------------
    # Investor payment submissions
    # --------------------
    def submit_payment(self, draft) -> OperationResult:
        self._require_investor(draft.investor_id)
        now = self.clock()
        submission = PaymentSubmission(
            investor_id=draft.investor_id,
            amount=draft.amount,
            payment_date=draft.payment_date,
            payment_method=draft.payment_method,
            payment_reference=draft.payment_reference,
            notes=draft.notes,
            status=SUBMISSION_PENDING,
            created_at=now,
            updated_at=now,
        )
        with self.repository.unit_of_work():
            self.repository.add_payment_submission(submission)
        logger.info("Payment submission %s of %s received from investor %s",
                    submission.id, draft.amount, draft.investor_id)
        return OperationResult(submission=submission, transition=SUBMISSION_PENDING)

    def review_payment_submission(self, review, admin_user_id=None) -> OperationResult:
        """
        Approve or reject a pending submission. Approval credits the investor with
        an inflow in the same unit of work that marks the submission approved.
        """
        result = OperationResult()
        now = self.clock()
        with self.repository.unit_of_work():
            submission = self.repository.get_payment_submission(review.submission_id, for_update=True)
            if submission is None:
                raise NotFound(f"Payment submission {review.submission_id} not found",
                               submission_id=review.submission_id)
            if submission.status != SUBMISSION_PENDING:
                raise Conflict("This payment submission has already been reviewed",
                               status=submission.status)

            if review.action == "approve":
                method = submission.payment_method or "bank_transfer"
                self.repository.ensure_account(submission.investor_id)
                txn = self.repository.record_credit(NewTransaction(
                    investor_id=submission.investor_id,
                    transaction_type=INFLOW,
                    amount=money(submission.amount),
                    reference_number=review.reference_number or submission.payment_reference,
                    description=review.description or f"Investor payment confirmation ({method})",
                    admin_user_id=admin_user_id,
                ))
                result.transactions.append(txn)
                submission.capital_transaction_id = txn.id
                submission.status = SUBMISSION_APPROVED
            else:
                submission.status = SUBMISSION_REJECTED

            submission.review_notes = review.review_notes
            submission.reviewed_at = now
            submission.reviewed_by = admin_user_id
            submission.updated_at = now
            self.repository.flush()
            result.submission = submission
            result.transition = submission.status

        logger.info("Payment submission %s %s by %s", submission.id, submission.status, admin_user_id)
        with self._notices(submission):
            if submission.status == SUBMISSION_APPROVED:
                subject = f"Payment of {money(submission.amount)} confirmed"
                body = (f"Your payment of {money(submission.amount)} has been confirmed and "
                        f"credited to your capital account.")
            else:
                subject = "Payment submission not approved"
                body = "We could not confirm your payment submission."
            if review.review_notes:
                body += f"\nNotes: {review.review_notes}"
            notify(
                result.notifications,
                self.directory.investor_email(submission.investor_id),
                subject,
                body,
                "capital",
            )
        return result

    # --------------------
    # Purchase requests
    # --------------------
    def _load_request(self, purchase_request_id, for_update=False):
        request = self.repository.get_purchase_request(purchase_request_id, for_update=for_update)
        if request is None:
            raise NotFound(f"Purchase request {purchase_request_id} not found",
                           purchase_request_id=purchase_request_id)
        return request

    def create_purchase_request(self, draft) -> OperationResult:
        if self.directory.get_contractor(draft.contractor_id) is None:
            raise NotFound(f"Contractor {draft.contractor_id} not found")
        if draft.vendor_id is not None and self.directory.get_vendor(draft.vendor_id) is None:
            raise NotFound(f"Vendor {draft.vendor_id} not found")
        if draft.project_id is not None and self.directory.get_project(draft.project_id) is None:
            raise NotFound(f"Project {draft.project_id} not found")

        now = self.clock()
        request = PurchaseRequest(
            project_id=draft.project_id,
            contractor_id=draft.contractor_id,
            vendor_id=draft.vendor_id,
            remarks=draft.remarks,
            status=sm.DRAFT,
            delivery_status=sm.NOT_DISPATCHED,
            deemed_delivery=False,
            created_at=now,
            updated_at=now,
        )
        for item in draft.items:
            request.items.append(PurchaseRequestItem(
                item_description=item.item_description,
                requested_qty=item.requested_qty,
                unit_rate=item.unit_rate,
                tax_percent=item.tax_percent,
                status=sm.ITEM_PENDING,
            ))
        if draft.status == sm.SUBMITTED:
            sm.submit(request, now)

        with self.repository.unit_of_work():
            self.repository.add_purchase_request(request)
        logger.info("Purchase request %s created by contractor %s (%s)",
                    request.id, request.contractor_id, request.status)
        return OperationResult(request=request, transition=request.status)

    def submit(self, purchase_request_id) -> OperationResult:
        with self.repository.unit_of_work():
            request = self._load_request(purchase_request_id, for_update=True)
            sm.submit(request, self.clock())
        return OperationResult(request=request, transition=sm.SUBMITTED)

    def transition_purchase_request(self, action, admin_user_id=None) -> OperationResult:
        result = OperationResult()
        now = self.clock()
        with self.repository.unit_of_work():
            request = self._load_request(action.purchase_request_id, for_update=True)
            previous = request.status

            if action.action == "assign_vendor":
                if self.directory.get_vendor(action.vendor_id) is None:
                    raise NotFound(f"Vendor {action.vendor_id} not found", vendor_id=action.vendor_id)
                sm.assign_vendor(request, action.vendor_id, now)
            elif action.action == "approve_for_purchase":
                sm.approve_for_purchase(request, now, action.admin_notes)
            elif action.action == "approve_for_funding":
                sm.approve_for_funding(request, now, action.admin_notes)
            elif action.action == "reject":
                sm.reject(request, now, action.admin_notes)
            else:
                raise ValidationError(f"Unknown action '{action.action}'", field="action")

            # status and item fan-out land in the same transaction
            self.repository.flush()
            result.request = request

        if request.status != previous:
            result.transition = request.status
            subjects = {
                sm.APPROVED: "approved for purchase",
                sm.FUNDED: "approved for funding",
                sm.REJECTED: "rejected",
            }
            with self._notices(request):
                notify(
                    result.notifications,
                    self.directory.contractor_email(request.contractor_id),
                    f"Purchase request #{request.id} {subjects.get(request.status, request.status)}",
                    f"Purchase request #{request.id} moved from {previous} to {request.status}."
                    + (f"\nNotes: {action.admin_notes}" if action.admin_notes else ""),
                    "funding",
                )
        logger.info("Purchase request %s: %s by %s (%s -> %s)",
                    request.id, action.action, admin_user_id, previous, request.status)
        return result

    def generate_purchase_order(self, purchase_request_id) -> OperationResult:
        result = OperationResult()
        with self.repository.unit_of_work():
            request = self._load_request(purchase_request_id, for_update=True)
            sm.generate_purchase_order(request, self.clock())
            result.request = request
            result.transition = sm.PO_GENERATED
        with self._notices(request):
            vendor = self.directory.get_vendor(request.vendor_id)
            notify(
                result.notifications,
                vendor.email if vendor else None,
                f"Purchase order for request #{request.id}",
                f"A purchase order has been issued for request #{request.id} "
                f"totalling {sm.estimated_total(request)}.",
                "funding",
            )
        return result

    # --------------------
    # Delivery
    # --------------------
    def mark_dispatched(self, dispatch) -> OperationResult:
        result = OperationResult()
        hours = self.dispute_window.clamp(dispatch.dispute_window_hours)
        with self.repository.unit_of_work():
            request = self._load_request(dispatch.purchase_request_id, for_update=True)
            sm.mark_dispatched(request, self.clock(), hours)
            result.request = request
            result.transition = sm.DISPATCHED
        with self._notices(request):
            notify(
                result.notifications,
                self.directory.contractor_email(request.contractor_id),
                f"Materials dispatched for purchase request #{request.id}",
                f"Materials were dispatched. You have {hours} hours to raise a dispute "
                f"(until {request.dispute_deadline:%Y-%m-%d %H:%M} UTC).",
                "delivery",
            )
        return result

    def raise_dispute(self, purchase_request_id, reason) -> OperationResult:
        reason = str(reason).strip() if reason is not None else ""
        if not reason:
            raise ValidationError("reason is required", field="reason")
        result = OperationResult()
        with self.repository.unit_of_work():
            request = self._load_request(purchase_request_id, for_update=True)
            sm.raise_dispute(request, reason[:500], self.clock())
            result.request = request
        with self._notices(request):
            vendor = self.directory.get_vendor(request.vendor_id)
            notify(
                result.notifications,
                vendor.email if vendor else None,
                f"Delivery disputed for purchase request #{request.id}",
                f"The contractor disputed delivery: {reason}",
                "dispute",
            )
        logger.info("Dispute raised on purchase request %s", request.id)
        return result

    def confirm_delivery(self, purchase_request_id) -> OperationResult:
        with self.repository.unit_of_work():
            request = self._load_request(purchase_request_id, for_update=True)
            sm.confirm_delivery(request, self.clock())
        return OperationResult(request=request, transition=sm.DELIVERED)

    def run_deemed_delivery(self) -> list:
        """Mark undisputed dispatches whose dispute window has closed as delivered."""
        now = self.clock()
        delivered = []
        with self.repository.unit_of_work():
            for request in self.repository.list_overdue_dispatches(now):
                if sm.is_deemed_delivered(request, now):
                    sm.confirm_delivery(request, now, deemed=True)
                    delivered.append(request.id)
        if delivered:
            logger.info("Deemed delivery applied to purchase requests %s", delivered)
        return delivered

    # --------------------
    # Read models
    # --------------------
    def summarize(self, request, snapshot=None):
        snapshot = snapshot or self.repository.ledger_snapshot(request.id)
        terms = self.directory.get_contractor_terms(request.contractor_id)
        return funding_summary(request, snapshot, terms, self.clock())


def allocation_to_dict(shares):
    return [
        {"investor_id": s.investor_id, "amount": as_float(s.amount), "deployed": as_float(s.deployed)}
        for s in shares
    ]
