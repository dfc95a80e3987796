# capital/service.py
from flask import current_app

from capital.fees import ContractorTerms
from capital.orchestrator import DisputeWindow, FundingOrchestrator
from capital.repository import SqlAlchemyFundingRepository
from directory.service import SqlDirectory
from utils.money import to_decimal


def build_repository():
    return SqlAlchemyFundingRepository(cas_retries=current_app.config["BALANCE_CAS_RETRIES"])


def build_directory():
    return SqlDirectory(ContractorTerms.from_config(current_app.config))


def build_orchestrator():
    """Orchestrator wired to the request-scoped session and app config."""
    cfg = current_app.config
    return FundingOrchestrator(
        repository=build_repository(),
        directory=build_directory(),
        tolerance=to_decimal(cfg["FUNDING_TOLERANCE"]),
        dispute_window=DisputeWindow(
            default_hours=cfg["DISPUTE_WINDOW_DEFAULT_HOURS"],
            min_hours=cfg["DISPUTE_WINDOW_MIN_HOURS"],
            max_hours=cfg["DISPUTE_WINDOW_MAX_HOURS"],
        ),
    )
