"""
Shared fixtures.

Provides:
- an in-memory repository populated with one company and its staff
- an ApprovalEngine over that repository with a deterministic clock and an
  identity currency converter
- a Flask app on TestingConfig (in-memory SQLite) plus a test client
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from expenseflow import create_app, db
from expenseflow.repositories.memory import InMemoryRepository
from expenseflow.services.approval_engine import ApprovalEngine
from expenseflow.workflow.types import CompanyRecord, UserRecord, UserRole


class TickingClock:
    """Returns a strictly increasing UTC timestamp on every call."""

    def __init__(self, start=datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        self.now = self.now + timedelta(minutes=1)
        return self.now


def identity_converter(amount, source_currency, target_currency):
    return Decimal(amount)


@pytest.fixture
def staff():
    """Users of company 1. The employee reports to the manager; the orphan has no manager."""
    return SimpleNamespace(
        admin=UserRecord(id=1, name="John Admin", role=UserRole.ADMIN, company_id=1),
        manager=UserRecord(id=2, name="Sarah Manager", role=UserRole.MANAGER, company_id=1),
        employee=UserRecord(id=3, name="Mike Employee", role=UserRole.EMPLOYEE, company_id=1, manager_id=2),
        orphan=UserRecord(id=4, name="Olive Orphan", role=UserRole.EMPLOYEE, company_id=1),
        a=UserRecord(id=10, name="Ann Approver", role=UserRole.MANAGER, company_id=1),
        b=UserRecord(id=11, name="Ben Approver", role=UserRole.MANAGER, company_id=1),
        c=UserRecord(id=12, name="Cat Approver", role=UserRole.MANAGER, company_id=1),
        outsider=UserRecord(id=20, name="Other Admin", role=UserRole.ADMIN, company_id=2),
    )


@pytest.fixture
def repository(staff):
    repo = InMemoryRepository()
    repo.add_company(CompanyRecord(id=1, name="Acme Corporation", currency_code="USD", country="United States"))
    repo.add_company(CompanyRecord(id=2, name="Globex", currency_code="EUR", country="Germany"))
    for user in vars(staff).values():
        repo.add_user(user)
    return repo


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def engine(repository, clock):
    return ApprovalEngine(repository, converter=identity_converter, clock=clock)


@pytest.fixture
def app():
    # No app context stays pushed during the test: each request gets its own,
    # so Flask-Login's per-context user cache cannot leak between clients.
    app = create_app("testing")
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()
