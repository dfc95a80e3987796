# finance/overview.py
"""
Portfolio overview: per-project funding totals and per-investor cash-flow
returns (XIRR). Pure functions over loaded rows.
"""
from collections import OrderedDict
from datetime import datetime

from capital.fees import fees_for_terms
from capital.ledger import build_snapshots
from capital.models import DEPLOYMENT, INFLOW, RETURN, STATUS_COMPLETED
from purchases.state_machine import estimated_total
from utils.money import ZERO, money

DAYS_PER_YEAR = 365.0


def compute_xirr(cashflows, guess=0.1, max_iterations=100):
    """
    Annualised internal rate of return, in percent, for dated cash flows
    [(datetime, amount), ...]. Contributions are negative, distributions
    positive. Returns 0.0 when the rate is undefined.
    """
    if not cashflows or len(cashflows) < 2:
        return 0.0
    flows = sorted(cashflows, key=lambda cf: cf[0])
    if not any(a > 0 for _, a in flows) or not any(a < 0 for _, a in flows):
        return 0.0

    t0 = flows[0][0]
    points = [((d - t0).total_seconds() / 86400.0 / DAYS_PER_YEAR, float(a)) for d, a in flows]
    rate = guess
    for _ in range(max_iterations):
        npv = 0.0
        d_npv = 0.0
        for years, amount in points:
            denom = (1 + rate) ** years
            npv += amount / denom
            d_npv += -years * amount / (denom * (1 + rate))
        if abs(npv) < 1e-6 or abs(d_npv) < 1e-10:
            break
        rate -= npv / d_npv
        if rate <= -0.9999:
            rate = -0.9999
    if rate != rate or rate in (float("inf"), float("-inf")):
        return 0.0
    return round(rate * 100, 4)


def investor_fees(inflow_total, return_total, fee_rates):
    """Management fee on committed capital plus performance fee above the hurdle."""
    management_fee = inflow_total * fee_rates["management"]
    gross_profit = return_total - inflow_total
    performance_base = max(gross_profit - inflow_total * fee_rates["hurdle"], ZERO)
    return money(management_fee + performance_base * fee_rates["performance"])


def investor_summaries(investors, transactions, fee_rates):
    by_investor = {}
    for row in transactions:
        if (row.status or STATUS_COMPLETED) != STATUS_COMPLETED:
            continue
        entry = by_investor.setdefault(row.investor_id, {"inflows": [], "returns": [], "deployed": ZERO})
        amount = money(row.amount)
        when = row.created_at or datetime.utcnow()
        if row.transaction_type == INFLOW:
            entry["inflows"].append((when, -amount))
        elif row.transaction_type == RETURN:
            entry["returns"].append((when, amount))
        elif row.transaction_type == DEPLOYMENT:
            entry["deployed"] += amount

    summaries = []
    for investor in investors:
        entry = by_investor.get(investor.id)
        if entry is None:
            continue
        inflow_total = sum((-a for _, a in entry["inflows"]), ZERO)
        return_total = sum((a for _, a in entry["returns"]), ZERO)
        gross = entry["inflows"] + entry["returns"]
        fees = investor_fees(inflow_total, return_total, fee_rates)

        net = list(gross)
        if fees > 0 and gross:
            net.append((max(d for d, _ in gross), -fees))

        summaries.append({
            "investor_id": investor.id,
            "investor_name": investor.name,
            "investor_email": investor.email,
            "investor_type": investor.investor_type,
            "total_inflow": float(inflow_total),
            "total_deployed": float(entry["deployed"]),
            "total_returns": float(return_total),
            "investor_fees": float(fees),
            "xirr": compute_xirr(gross),
            "net_xirr": compute_xirr(net),
        })
    return summaries


def project_totals(requests, transactions, projects, directory, now):
    """
    Roll purchase requests up by project. Requests without a project are
    counted in the portfolio summary only.
    """
    snapshots = build_snapshots([r.id for r in requests], transactions)
    totals = OrderedDict()
    summary = {
        "total_requests": len(requests),
        "total_requested_value": ZERO,
        "total_funded": ZERO,
        "total_returns": ZERO,
        "total_platform_fee": ZERO,
        "total_participation_fee": ZERO,
        "total_outstanding": ZERO,
    }
    contractors = set()

    for request in requests:
        snapshot = snapshots[request.id]
        terms = directory.get_contractor_terms(request.contractor_id)
        fees = fees_for_terms(snapshot.funded_amount, terms, snapshot.first_deployment_at, now)
        requested = estimated_total(request)
        outstanding = max(fees.total_due - snapshot.returned_amount, ZERO)

        summary["total_requested_value"] += requested
        summary["total_funded"] += snapshot.funded_amount
        summary["total_returns"] += snapshot.returned_amount
        summary["total_platform_fee"] += fees.platform_fee
        summary["total_participation_fee"] += fees.participation_fee
        contractors.add(request.contractor_id)

        if request.project_id is None:
            continue
        project = projects.get(request.project_id)
        base = totals.get(request.project_id)
        if base is None:
            contractor = directory.get_contractor(request.contractor_id)
            base = totals[request.project_id] = {
                "project_id": request.project_id,
                "project_name": project.project_name if project else None,
                "contractor_name": contractor.company_name if contractor else None,
                "total_requested": ZERO,
                "total_funded": ZERO,
                "total_returns": ZERO,
                "total_platform_fee": ZERO,
                "total_participation_fee": ZERO,
                "total_outstanding": ZERO,
                "request_count": 0,
            }
        base["total_requested"] += requested
        base["total_funded"] += snapshot.funded_amount
        base["total_returns"] += snapshot.returned_amount
        base["total_platform_fee"] += fees.platform_fee
        base["total_participation_fee"] += fees.participation_fee
        base["total_outstanding"] += outstanding
        base["request_count"] += 1

    summary["total_outstanding"] = max(
        summary["total_funded"] + summary["total_platform_fee"]
        + summary["total_participation_fee"] - summary["total_returns"],
        ZERO,
    )
    summary["total_projects"] = len(totals)
    summary["total_contractors"] = len(contractors)

    rows = sorted(totals.values(), key=lambda p: p["total_funded"], reverse=True)
    return _floats(summary), [_floats(p) for p in rows]


def _floats(data):
    return {k: float(v) if hasattr(v, "quantize") else v for k, v in data.items()}
