# capital/routes.py
from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required
from sqlalchemy import or_

from capital.models import CapitalTransaction, InvestorAccount, PaymentSubmission, RETURN
from capital.orchestrator import allocation_to_dict
from capital.schemas import (
    CapitalTransactionRequest, ListPaymentSubmissionsQuery, ListTransactionsQuery, PaymentReview,
    PaymentSubmissionDraft, parse_id,
)
from capital.service import build_orchestrator, build_repository
from notifications.utils import enqueue_notifications
from utils.audit_logger import log_audit_action
from utils.money import money

capital_bp = Blueprint("capital", __name__)


def current_admin():
    identity = get_jwt_identity()
    return str(identity) if identity is not None else None


# -------- List ledger entries --------
@capital_bp.route("/transactions", methods=["GET"])
def list_transactions():
    params = ListTransactionsQuery.from_args(request.args)

    query = CapitalTransaction.query
    if params.investor_id:
        query = query.filter(CapitalTransaction.investor_id == params.investor_id)
    if params.transaction_type:
        query = query.filter(CapitalTransaction.transaction_type == params.transaction_type)
    if params.search:
        like = f"%{params.search}%"
        query = query.filter(or_(
            CapitalTransaction.description.ilike(like),
            CapitalTransaction.reference_number.ilike(like),
        ))

    total = query.count()
    rows = (
        query.order_by(CapitalTransaction.created_at.desc(), CapitalTransaction.id.desc())
        .offset((params.page - 1) * params.limit)
        .limit(params.limit)
        .all()
    )
    return jsonify({
        "transactions": [t.to_dict(with_summaries=True) for t in rows],
        "pagination": {
            "page": params.page,
            "limit": params.limit,
            "total": total,
            "totalPages": (total + params.limit - 1) // params.limit,
        },
    }), 200


# -------- Record a capital movement --------
@capital_bp.route("/transactions", methods=["POST"])
@jwt_required(optional=True)
def create_transaction():
    cmd = CapitalTransactionRequest.from_json(request.get_json(silent=True))
    admin_id = current_admin()

    result = build_orchestrator().record_transaction(cmd, admin_user_id=admin_id)

    for txn in result.transactions:
        log_audit_action(admin_id, cmd.transaction_type, "capital_transactions", txn.id,
                         new=txn.to_dict())
    if result.transition:
        log_audit_action(admin_id, f"implicit_{result.transition}", "purchase_requests",
                         result.request.id, new={"status": result.transition})
    enqueue_notifications(result.notifications)

    current_app.logger.info("Capital %s recorded: %s entr%s", cmd.transaction_type,
                            len(result.transactions), "y" if len(result.transactions) == 1 else "ies")

    if cmd.transaction_type == RETURN:
        body = {
            "message": f"Return of {cmd.amount} allocated across {len(result.transactions)} investor(s)",
            "transactions": [t.to_dict() for t in result.transactions],
            "allocation": allocation_to_dict(result.allocation),
        }
        if result.fees is not None:
            body["investor_due"] = float(result.fees.investor_due)
            body["days_outstanding"] = result.fees.days_outstanding
    else:
        body = {
            "message": f"{cmd.transaction_type.capitalize()} recorded successfully",
            "transaction": result.transactions[0].to_dict(),
        }
    if result.request is not None:
        body["purchase_request"] = {"id": result.request.id, "status": result.request.status}
    return jsonify(body), 201


# -------- Investor accounts with ledger reconciliation --------
@capital_bp.route("/accounts", methods=["GET"])
def list_accounts():
    investor_id = parse_id(request.args.get("investor_id"), "investor_id")
    query = InvestorAccount.query
    if investor_id:
        query = query.filter_by(investor_id=investor_id)

    repo = build_repository()
    accounts = []
    for account in query.order_by(InvestorAccount.investor_id).all():
        data = account.to_dict()
        replayed = repo.replay_balance(account.investor_id)
        data["ledger_balance"] = float(replayed)
        data["drift"] = float(money(account.available_balance) - replayed)
        if data["drift"] != 0:
            current_app.logger.warning("Balance drift for investor %s: stored %s, ledger %s",
                                       account.investor_id, account.available_balance, replayed)
        accounts.append(data)
    return jsonify({"accounts": accounts}), 200


# -------- Investor payment submissions --------
@capital_bp.route("/payment-submissions", methods=["GET"])
def list_payment_submissions():
    params = ListPaymentSubmissionsQuery.from_args(request.args)
    query = PaymentSubmission.query
    if params.status:
        query = query.filter_by(status=params.status)
    if params.investor_id:
        query = query.filter_by(investor_id=params.investor_id)
    rows = query.order_by(PaymentSubmission.created_at.desc(), PaymentSubmission.id.desc()).limit(200).all()
    return jsonify({"submissions": [s.to_dict() for s in rows]}), 200


@capital_bp.route("/payment-submissions", methods=["POST"])
@jwt_required(optional=True)
def submit_payment():
    draft = PaymentSubmissionDraft.from_json(request.get_json(silent=True))
    result = build_orchestrator().submit_payment(draft)
    submission = result.submission
    log_audit_action(current_admin(), "submit_payment", "investor_payment_submissions", submission.id,
                     new=submission.to_dict())
    return jsonify({
        "message": "Payment submission received",
        "submission": submission.to_dict(),
    }), 201


@capital_bp.route("/payment-submissions", methods=["PUT"])
@jwt_required(optional=True)
def review_payment_submission():
    review = PaymentReview.from_json(request.get_json(silent=True))
    admin_id = current_admin()

    result = build_orchestrator().review_payment_submission(review, admin_user_id=admin_id)
    submission = result.submission

    log_audit_action(admin_id, review.action, "investor_payment_submissions", submission.id,
                     old={"status": "pending"}, new={"status": submission.status,
                                                     "notes": review.review_notes})
    for txn in result.transactions:
        log_audit_action(admin_id, "inflow", "capital_transactions", txn.id, new=txn.to_dict())
    enqueue_notifications(result.notifications)
    current_app.logger.info("Payment submission %s %s", submission.id, submission.status)

    body = {
        "message": f"Payment submission {submission.status}",
        "submission": submission.to_dict(),
    }
    if result.transactions:
        body["transaction"] = result.transactions[0].to_dict()
    return jsonify(body), 200
