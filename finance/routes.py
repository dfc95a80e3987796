# finance/routes.py
from datetime import datetime
from flask import Blueprint, current_app, jsonify

from capital.models import CapitalTransaction
from capital.service import build_directory
from directory.models import Investor, Project
from finance.overview import investor_summaries, project_totals
from purchases.models import PurchaseRequest
from utils.money import to_decimal

finance_bp = Blueprint('finance', __name__)


def _investor_fee_rates(config):
    return {
        "management": to_decimal(config["INVESTOR_MANAGEMENT_FEE_RATE"]),
        "hurdle": to_decimal(config["INVESTOR_HURDLE_RATE"]),
        "performance": to_decimal(config["INVESTOR_PERFORMANCE_FEE_RATE"]),
    }


# ✅ Portfolio overview (projects + investors)
@finance_bp.route('/overview', methods=['GET'])
def finance_overview():
    requests_ = PurchaseRequest.query.order_by(PurchaseRequest.id).all()
    transactions = CapitalTransaction.query.order_by(
        CapitalTransaction.created_at, CapitalTransaction.id
    ).all()

    investor_ids = {t.investor_id for t in transactions}
    investors = (
        Investor.query.filter(Investor.id.in_(investor_ids)).order_by(Investor.id).all()
        if investor_ids else []
    )
    project_ids = {r.project_id for r in requests_ if r.project_id is not None}
    projects = (
        {p.id: p for p in Project.query.filter(Project.id.in_(project_ids)).all()}
        if project_ids else {}
    )

    summary, projects_out = project_totals(
        requests_, transactions, projects, build_directory(), datetime.utcnow()
    )
    investors_out = investor_summaries(
        investors, transactions, _investor_fee_rates(current_app.config)
    )
    return jsonify({
        "summary": summary,
        "projects": projects_out,
        "investors": investors_out,
    }), 200
