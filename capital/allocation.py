# capital/allocation.py
"""
Pro-rata return allocator.

A single repayment for a purchase request is split across the investors who
funded it, in proportion to what each deployed. Shares are rounded to cents and
the last investor (first-seen order) absorbs the rounding residue so the written
amounts always sum to exactly the repayment.
"""
from dataclasses import dataclass
from decimal import Decimal

from utils.errors import AllocationError
from utils.money import CENT, ZERO, money


@dataclass
class InvestorPosition:
    investor_id: int
    deployed: Decimal
    project_id: int | None = None
    contractor_id: int | None = None


@dataclass(frozen=True)
class AllocatedShare:
    investor_id: int
    amount: Decimal
    deployed: Decimal
    project_id: int | None = None
    contractor_id: int | None = None


def aggregate_deployments(deployments) -> list[InvestorPosition]:
    positions: dict[int, InvestorPosition] = {}
    for row in deployments:
        pos = positions.get(row.investor_id)
        if pos is None:
            pos = positions[row.investor_id] = InvestorPosition(investor_id=row.investor_id, deployed=ZERO)
        pos.deployed += money(row.amount)
        if pos.project_id is None and row.project_id is not None:
            pos.project_id = row.project_id
        if pos.contractor_id is None and row.contractor_id is not None:
            pos.contractor_id = row.contractor_id
    return list(positions.values())


def _absorb_deficit(amounts: list[Decimal]) -> list[Decimal]:
    # Half-up rounding can overshoot so far that the residual for the last
    # investor goes negative; take it back a cent at a time from earlier shares.
    deficit = -amounts[-1]
    amounts[-1] = ZERO
    idx = len(amounts) - 2
    while deficit > 0 and idx >= 0:
        take = min(deficit, amounts[idx])
        amounts[idx] -= take
        deficit -= take
        idx -= 1
    return amounts


def allocate_return(amount, deployments) -> list[AllocatedShare]:
    total_return = money(amount)
    positions = aggregate_deployments(deployments)
    if not positions:
        raise AllocationError(AllocationError.NO_DEPLOYMENTS,
                              "No completed deployments found for this purchase request")

    total_deployed = sum((p.deployed for p in positions), ZERO)
    if total_deployed <= 0:
        raise AllocationError(AllocationError.ZERO_PRINCIPAL,
                              "Deployed principal for this purchase request is zero")

    amounts = []
    allocated = ZERO
    for pos in positions[:-1]:
        share = money(total_return * pos.deployed / total_deployed)
        amounts.append(share)
        allocated += share
    amounts.append(total_return - allocated)

    if amounts[-1] < 0:
        amounts = _absorb_deficit(amounts)

    shares = [
        AllocatedShare(
            investor_id=pos.investor_id,
            amount=share.quantize(CENT),
            deployed=pos.deployed,
            project_id=pos.project_id,
            contractor_id=pos.contractor_id,
        )
        for pos, share in zip(positions, amounts)
        if share > 0
    ]
    if not shares:
        raise AllocationError(AllocationError.NOTHING_TO_ALLOCATE,
                              "Return amount is too small to allocate to any investor")
    return shares
