# purchases/routes.py
from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required
from sqlalchemy import func

from extensions import db
from capital.routes import current_admin
from capital.schemas import parse_id
from capital.service import build_orchestrator
from notifications.utils import enqueue_notifications
from purchases import state_machine as sm
from purchases.models import PurchaseRequest
from purchases.schemas import (
    DispatchRequest, ListPurchaseRequestsQuery, PurchaseRequestAction, PurchaseRequestDraft,
)
from utils.audit_logger import log_audit_action
from utils.errors import NotFound, ValidationError

purchase_requests_bp = Blueprint("purchase_requests", __name__)
delivery_bp = Blueprint("delivery", __name__)


def _enrich(orchestrator, pr, snapshot=None, with_items=True):
    data = pr.to_dict(with_items=with_items)
    data.update(orchestrator.summarize(pr, snapshot))
    data["vendor"] = pr.vendor.summary() if pr.vendor else None
    return data


def _enrich_written(orchestrator, pr):
    """Enriched view of a request whose change is already committed."""
    try:
        return _enrich(orchestrator, pr)
    except Exception:
        current_app.logger.exception("Could not enrich purchase request %s", pr.id)
        return pr.to_dict()


def _get_or_404(purchase_request_id):
    pr = db.session.get(PurchaseRequest, purchase_request_id)
    if pr is None:
        raise NotFound(f"Purchase request {purchase_request_id} not found")
    return pr


# -------- List purchase requests with funding figures --------
@purchase_requests_bp.route("", methods=["GET"])
def list_purchase_requests():
    params = ListPurchaseRequestsQuery.from_args(request.args)
    query = PurchaseRequest.query
    if params.status:
        query = query.filter_by(status=params.status)
    rows = (
        query.order_by(PurchaseRequest.created_at.desc(), PurchaseRequest.id.desc())
        .offset(params.offset)
        .limit(params.limit)
        .all()
    )

    orchestrator = build_orchestrator()
    snapshots = orchestrator.repository.ledger_snapshots([pr.id for pr in rows])
    counts = dict(
        db.session.query(PurchaseRequest.status, func.count(PurchaseRequest.id))
        .group_by(PurchaseRequest.status)
        .all()
    )
    summary = {status: counts.get(status, 0) for status in sm.STATUSES}
    summary["total"] = sum(counts.values())

    return jsonify({
        "purchase_requests": [_enrich(orchestrator, pr, snapshots.get(pr.id)) for pr in rows],
        "summary": summary,
    }), 200


@purchase_requests_bp.route("/<int:purchase_request_id>", methods=["GET"])
def get_purchase_request(purchase_request_id):
    pr = _get_or_404(purchase_request_id)
    return jsonify(_enrich(build_orchestrator(), pr)), 200


# -------- Contractor creates a request --------
@purchase_requests_bp.route("", methods=["POST"])
@jwt_required(optional=True)
def create_purchase_request():
    draft = PurchaseRequestDraft.from_json(request.get_json(silent=True))
    orchestrator = build_orchestrator()
    result = orchestrator.create_purchase_request(draft)
    pr = result.request

    log_audit_action(current_admin(), "create", "purchase_requests", pr.id,
                     new={"status": pr.status, "items": len(pr.items)})
    return jsonify({
        "message": "Purchase request created",
        "purchase_request": _enrich_written(orchestrator, pr),
    }), 201


# -------- Admin status actions --------
@purchase_requests_bp.route("", methods=["PUT"])
@jwt_required(optional=True)
def update_purchase_request():
    action = PurchaseRequestAction.from_json(request.get_json(silent=True))
    admin_id = current_admin()
    orchestrator = build_orchestrator()

    result = orchestrator.transition_purchase_request(action, admin_user_id=admin_id)
    pr = result.request

    log_audit_action(admin_id, action.action, "purchase_requests", pr.id,
                     new={"status": pr.status, "vendor_id": pr.vendor_id, "notes": action.admin_notes})
    enqueue_notifications(result.notifications)
    current_app.logger.info("Purchase request %s: %s", pr.id, action.action)

    return jsonify({
        "message": f"Purchase request {action.action.replace('_', ' ')} successful",
        "purchase_request": _enrich_written(orchestrator, pr),
    }), 200


@purchase_requests_bp.route("/<int:purchase_request_id>/submit", methods=["POST"])
@jwt_required(optional=True)
def submit_purchase_request(purchase_request_id):
    orchestrator = build_orchestrator()
    result = orchestrator.submit(purchase_request_id)
    log_audit_action(current_admin(), "submit", "purchase_requests", purchase_request_id,
                     new={"status": result.request.status})
    return jsonify({
        "message": "Purchase request submitted",
        "purchase_request": _enrich_written(orchestrator, result.request),
    }), 200


@purchase_requests_bp.route("/<int:purchase_request_id>/purchase-order", methods=["POST"])
@jwt_required(optional=True)
def generate_purchase_order(purchase_request_id):
    orchestrator = build_orchestrator()
    result = orchestrator.generate_purchase_order(purchase_request_id)
    log_audit_action(current_admin(), "generate_po", "purchase_requests", purchase_request_id,
                     new={"status": result.request.status})
    enqueue_notifications(result.notifications)
    return jsonify({
        "message": "Purchase order generated",
        "purchase_request": _enrich_written(orchestrator, result.request),
    }), 200


# -------- Delivery tracking --------
@delivery_bp.route("", methods=["POST"])
@jwt_required(optional=True)
def dispatch_materials():
    dispatch = DispatchRequest.from_json(request.get_json(silent=True))
    result = build_orchestrator().mark_dispatched(dispatch)
    pr = result.request

    log_audit_action(current_admin(), "dispatch", "purchase_requests", pr.id,
                     new={"delivery_status": pr.delivery_status, "dispute_deadline": pr.dispute_deadline})
    enqueue_notifications(result.notifications)
    return jsonify({
        "message": "Materials marked as dispatched",
        "purchase_request": pr.to_dict(with_items=False),
    }), 200


@delivery_bp.route("", methods=["GET"])
def list_deliveries():
    query = PurchaseRequest.query
    status = (request.args.get("status") or "").strip().lower()
    if status:
        if status not in (sm.NOT_DISPATCHED, sm.DISPATCHED, sm.DELIVERED):
            raise ValidationError(f"Unknown delivery status '{status}'", field="status")
        query = query.filter_by(delivery_status=status)
    else:
        # nothing to track before funding
        query = query.filter(PurchaseRequest.status.in_(sorted(sm.LOCKED_STATUSES)))
    contractor_id = parse_id(request.args.get("contractor_id"), "contractor_id")
    if contractor_id:
        query = query.filter_by(contractor_id=contractor_id)

    rows = query.order_by(PurchaseRequest.updated_at.desc(), PurchaseRequest.id.desc()).all()
    return jsonify({"deliveries": [pr.to_dict(with_items=False) for pr in rows]}), 200


@delivery_bp.route("/<int:purchase_request_id>/dispute", methods=["POST"])
@jwt_required(optional=True)
def dispute_delivery(purchase_request_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    result = build_orchestrator().raise_dispute(purchase_request_id, data.get("reason"))
    pr = result.request

    log_audit_action(current_admin(), "dispute", "purchase_requests", pr.id,
                     new={"reason": pr.dispute_reason})
    enqueue_notifications(result.notifications)
    return jsonify({
        "message": "Dispute raised",
        "purchase_request": pr.to_dict(with_items=False),
    }), 200


@delivery_bp.route("/<int:purchase_request_id>/confirm", methods=["POST"])
@jwt_required(optional=True)
def confirm_delivery(purchase_request_id):
    result = build_orchestrator().confirm_delivery(purchase_request_id)
    pr = result.request
    log_audit_action(current_admin(), "confirm_delivery", "purchase_requests", pr.id,
                     new={"delivery_status": pr.delivery_status})
    return jsonify({
        "message": "Delivery confirmed",
        "purchase_request": pr.to_dict(with_items=False),
    }), 200
