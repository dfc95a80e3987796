"""
conftest.py - Shared pytest fixtures

Provides:
- Flask app on in-memory SQLite with a seeded directory (investors,
  contractors, vendors, projects)
- Flask test client
- In-memory repository/directory/orchestrator for use-case tests
"""
from decimal import Decimal

import pytest

from app import create_app
from config import TestConfig
from extensions import db
from capital.orchestrator import FundingOrchestrator
from directory.models import Contractor, Investor, Project, Vendor
from tests.fakes import Clock, FakeDirectory, FakeRepository


def seed_directory():
    db.session.add_all([
        Investor(id=1, name="Asha Rao", email="asha@investors.test", investor_type="individual"),
        Investor(id=2, name="Bilal Khan", email="bilal@investors.test", investor_type="family_office"),
        Investor(id=3, name="Chen Wei", email=None, investor_type="institutional"),
        Contractor(id=1, company_name="Northwind Builders", email="ops@northwind.test"),
        Contractor(id=2, company_name="Coastal Civil", email="fin@coastal.test",
                   platform_fee_rate=Decimal("0.005"), platform_fee_cap=Decimal("10000"),
                   participation_fee_rate_daily=Decimal("0.0005")),
        Vendor(id=1, company_name="Steel & Co", email="orders@steel.test"),
        Project(id=1, project_name="Riverside Tower", contractor_id=1),
    ])
    db.session.commit()


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        seed_directory()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def repo(clock):
    return FakeRepository(clock=clock)


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def orchestrator(repo, directory, clock):
    return FundingOrchestrator(repo, directory, clock=clock)


