"""Flask CLI commands: ``flask init-db`` and ``flask seed-demo``."""
from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import click
from flask import current_app

from expenseflow.models import ApprovalRule, Company, User, UserRole, db

DEMO_RATES = {("EUR", "USD"): Decimal("1.0882")}


def demo_converter(amount: Decimal, source: str, target: str) -> Decimal:
    """Fixed rates so seeding never depends on the exchange-rate service."""
    if source == target:
        return amount
    rate = DEMO_RATES.get((source, target))
    if rate is None:
        return amount
    return (amount * rate).quantize(Decimal("0.01"))


def seed_demo_data() -> Company:
    """Create the Acme demo company, its users, default rule and sample expenses."""
    from expenseflow.repositories.orm import SqlAlchemyRepository
    from expenseflow.services.approval_engine import ApprovalEngine

    company = Company(name="Acme Corporation", country="United States", currency_code="USD")
    db.session.add(company)
    db.session.flush()

    def add_user(name: str, email: str, password: str, role: UserRole, manager: User | None = None) -> User:
        user = User(name=name, email=email, role=role, company_id=company.id, manager=manager)
        user.set_password(password)
        db.session.add(user)
        return user

    admin = add_user("John Admin", "admin@acme.com", "admin123", UserRole.ADMIN)
    manager = add_user("Sarah Manager", "manager@acme.com", "manager123", UserRole.MANAGER)
    mike = add_user("Mike Employee", "employee@acme.com", "employee123", UserRole.EMPLOYEE, manager)
    lisa = add_user("Lisa Worker", "employee2@acme.com", "employee123", UserRole.EMPLOYEE, manager)
    db.session.flush()

    db.session.add(
        ApprovalRule(
            company_id=company.id,
            name="Default Approval Flow",
            position=0,
            is_manager_approver=True,
            conditions=[],
            approvers=[
                {"user_id": manager.id, "user_name": manager.name},
                {"user_id": admin.id, "user_name": admin.name},
            ],
            levels=[],
        )
    )
    db.session.commit()

    engine = ApprovalEngine(
        SqlAlchemyRepository(),
        converter=demo_converter,
        locks=current_app.extensions["expense_locks"],
    )
    today = date.today()

    engine.submit_expense(
        mike.id, "150.50", "USD", "Food",
        description="Client dinner at Italian restaurant", date_spent=today - timedelta(days=2),
    )
    taxi = engine.submit_expense(
        mike.id, "85.00", "EUR", "Transportation",
        description="Taxi to airport", date_spent=today - timedelta(days=5),
    )
    engine.approve(taxi.id, manager.id, "Approved for business travel")
    engine.submit_expense(
        lisa.id, "1200.00", "USD", "Travel",
        description="Flight tickets for conference", date_spent=today - timedelta(days=1),
    )
    supplies = engine.submit_expense(
        lisa.id, "45.00", "USD", "Office Supplies",
        description="Notebooks and pens", date_spent=today - timedelta(days=7),
    )
    engine.reject(supplies.id, manager.id, "Please use company supplies")
    return company


def register_commands(app) -> None:
    @app.cli.command("init-db")
    def init_db() -> None:
        """Create all tables."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("seed-demo")
    def seed_demo() -> None:
        """Load the Acme Corporation demo data."""
        db.create_all()
        if Company.query.filter_by(name="Acme Corporation").first():
            click.echo("Demo data already present.")
            return
        company = seed_demo_data()
        click.echo(f"Seeded demo company {company.name} (id={company.id}).")
