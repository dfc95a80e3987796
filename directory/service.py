# directory/service.py
import logging

from extensions import db
from capital.fees import ContractorTerms
from directory.models import Contractor, Investor, Project, Vendor

logger = logging.getLogger(__name__)


class SqlDirectory:
    """
    Read-only lookups against the mirrored contractor/investor roster.
    Missing fee values fall back to `defaults`.
    """

    def __init__(self, defaults: ContractorTerms, session=None):
        self.defaults = defaults
        self.session = session or db.session

    def get_investor(self, investor_id):
        return self.session.get(Investor, investor_id)

    def get_contractor(self, contractor_id):
        if contractor_id is None:
            return None
        return self.session.get(Contractor, contractor_id)

    def get_project(self, project_id):
        if project_id is None:
            return None
        return self.session.get(Project, project_id)

    def get_vendor(self, vendor_id):
        if vendor_id is None:
            return None
        return self.session.get(Vendor, vendor_id)

    def get_contractor_terms(self, contractor_id) -> ContractorTerms:
        contractor = self.get_contractor(contractor_id)
        if contractor is None:
            logger.warning("No contractor %s in directory, using default fee terms", contractor_id)
            return self.defaults
        return ContractorTerms(
            platform_fee_rate=_or_default(contractor.platform_fee_rate, self.defaults.platform_fee_rate),
            platform_fee_cap=_or_default(contractor.platform_fee_cap, self.defaults.platform_fee_cap),
            participation_fee_rate_daily=_or_default(
                contractor.participation_fee_rate_daily, self.defaults.participation_fee_rate_daily
            ),
        )

    def contractor_email(self, contractor_id):
        contractor = self.get_contractor(contractor_id)
        return contractor.email if contractor else None

    def investor_email(self, investor_id):
        investor = self.get_investor(investor_id)
        return investor.email if investor else None


def _or_default(value, default):
    return value if value is not None else default
