# capital/ledger.py
"""
Pure aggregations over capital-ledger rows.

Nothing here touches the database; repositories load rows and hand them in.
Only rows with status "completed" count toward balances and funding totals.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from capital.models import (
    CREDIT_TYPES, DEBIT_TYPES, DEPLOYMENT, RETURN, STATUS_COMPLETED,
)
from utils.money import ZERO, money


@dataclass(frozen=True)
class NewTransaction:
    """A ledger entry staged for writing."""
    investor_id: int
    transaction_type: str
    amount: Decimal
    project_id: int | None = None
    contractor_id: int | None = None
    purchase_request_id: int | None = None
    reference_number: str | None = None
    description: str | None = None
    admin_user_id: str | None = None


@dataclass(frozen=True)
class LedgerSnapshot:
    purchase_request_id: int
    funded_amount: Decimal = ZERO
    returned_amount: Decimal = ZERO
    first_deployment_at: datetime | None = None
    deployments: tuple = field(default_factory=tuple)


def _completed(rows):
    return [row for row in rows if (row.status or STATUS_COMPLETED) == STATUS_COMPLETED]


def build_snapshot(purchase_request_id, rows) -> LedgerSnapshot:
    funded = ZERO
    returned = ZERO
    first_at = None
    deployments = []
    for row in sorted(_completed(rows), key=lambda r: (r.created_at or datetime.min, r.id or 0)):
        if row.purchase_request_id != purchase_request_id:
            continue
        if row.transaction_type == DEPLOYMENT:
            funded += money(row.amount)
            deployments.append(row)
            if row.created_at and (first_at is None or row.created_at < first_at):
                first_at = row.created_at
        elif row.transaction_type == RETURN:
            returned += money(row.amount)
    return LedgerSnapshot(
        purchase_request_id=purchase_request_id,
        funded_amount=funded,
        returned_amount=returned,
        first_deployment_at=first_at,
        deployments=tuple(deployments),
    )


def build_snapshots(purchase_request_ids, rows) -> dict:
    grouped = {pr_id: [] for pr_id in purchase_request_ids}
    for row in rows:
        if row.purchase_request_id in grouped:
            grouped[row.purchase_request_id].append(row)
    return {pr_id: build_snapshot(pr_id, grouped[pr_id]) for pr_id in purchase_request_ids}


def replay_balance(rows) -> Decimal:
    """Balance an investor account should hold given its ledger history."""
    balance = ZERO
    for row in _completed(rows):
        if row.transaction_type in CREDIT_TYPES:
            balance += money(row.amount)
        elif row.transaction_type in DEBIT_TYPES:
            balance -= money(row.amount)
    return balance
