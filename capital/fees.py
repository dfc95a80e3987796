# capital/fees.py
"""
Fee calculator.

Platform fee is a capped percentage of deployed principal kept by the operator.
Participation fee accrues daily on the same principal from the first deployment
until repayment and is owed to investors.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from utils.money import ZERO, money, to_decimal


@dataclass(frozen=True)
class ContractorTerms:
    platform_fee_rate: Decimal
    platform_fee_cap: Decimal
    participation_fee_rate_daily: Decimal

    @classmethod
    def from_config(cls, config) -> "ContractorTerms":
        return cls(
            platform_fee_rate=to_decimal(config["DEFAULT_PLATFORM_FEE_RATE"]),
            platform_fee_cap=to_decimal(config["DEFAULT_PLATFORM_FEE_CAP"]),
            participation_fee_rate_daily=to_decimal(config["DEFAULT_PARTICIPATION_FEE_RATE_DAILY"]),
        )


@dataclass(frozen=True)
class FeeBreakdown:
    principal: Decimal
    platform_fee: Decimal
    participation_fee: Decimal
    days_outstanding: int

    @property
    def investor_due(self) -> Decimal:
        return self.principal + self.participation_fee

    @property
    def total_due(self) -> Decimal:
        return self.investor_due + self.platform_fee


def days_outstanding(first_deployment_at: datetime | None, now: datetime) -> int:
    if first_deployment_at is None:
        return 0
    # whole days only, a deployment in the future counts as zero
    return max(0, (now - first_deployment_at).days)


def compute_fees(principal, platform_fee_rate, platform_fee_cap,
                 participation_fee_rate_daily, days: int) -> FeeBreakdown:
    principal = money(principal)
    days = max(0, int(days))
    if principal <= 0:
        return FeeBreakdown(principal=principal, platform_fee=ZERO,
                            participation_fee=ZERO, days_outstanding=days)

    platform_fee = min(principal * to_decimal(platform_fee_rate), to_decimal(platform_fee_cap))
    participation_fee = principal * to_decimal(participation_fee_rate_daily) * days
    return FeeBreakdown(
        principal=principal,
        platform_fee=money(platform_fee),
        participation_fee=money(participation_fee),
        days_outstanding=days,
    )


def fees_for_terms(principal, terms: ContractorTerms, first_deployment_at, now) -> FeeBreakdown:
    return compute_fees(
        principal,
        terms.platform_fee_rate,
        terms.platform_fee_cap,
        terms.participation_fee_rate_daily,
        days_outstanding(first_deployment_at, now),
    )
