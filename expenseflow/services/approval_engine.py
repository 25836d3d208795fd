"""Approval engine: expense submission, approval decisions and admin overrides.

The engine ties the workflow pieces to a repository and a currency converter,
both injected, so the same code runs against the database inside a request and
against ``InMemoryRepository`` in tests.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Optional, Union

from expenseflow.workflow import state_machine
from expenseflow.workflow.exceptions import NotAuthorizedError, UserNotFoundError, WorkflowError
from expenseflow.workflow.ledger import ExpenseLedger, RecordLocks
from expenseflow.workflow.routing import plan_initial_route
from expenseflow.workflow.rules import match_rule
from expenseflow.workflow.types import (
    ApprovalRuleRecord,
    ExpenseCategory,
    ExpenseRecord,
    HistoryAction,
    Route,
    UserRecord,
)

from .currency_service import convert_currency

logger = logging.getLogger(__name__)

Converter = Callable[[Decimal, str, str], Decimal]
Clock = Callable[[], datetime]
CENTS = Decimal("0.01")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_cents(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_amount(value: Any) -> Decimal:
    """Positive amount rounded to cents, the precision expenses are stored with."""
    try:
        amount = to_cents(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        raise WorkflowError("Invalid amount.") from None
    if not amount.is_finite() or amount <= 0:
        raise WorkflowError("Amount must be a positive number.")
    return amount


def parse_category(value: Union[str, ExpenseCategory]) -> ExpenseCategory:
    if isinstance(value, ExpenseCategory):
        return value
    try:
        return ExpenseCategory(value)
    except ValueError:
        raise WorkflowError(f"Unknown expense category '{value}'.") from None


def parse_decision(value: Union[str, HistoryAction]) -> HistoryAction:
    if isinstance(value, HistoryAction):
        return value
    try:
        return HistoryAction(str(value).lower())
    except ValueError:
        raise WorkflowError(f"Unknown decision '{value}'.") from None


class ApprovalEngine:
    def __init__(
        self,
        repository,
        converter: Converter = convert_currency,
        clock: Clock = utc_now,
        locks: Optional[RecordLocks] = None,
    ) -> None:
        self.repository = repository
        self.converter = converter
        self.clock = clock
        self.ledger = ExpenseLedger(repository, locks)

    def _require_user(self, user_id: Optional[int]) -> UserRecord:
        user = self.repository.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def match_for(self, company_id: int, amount: Decimal, category: ExpenseCategory) -> Optional[ApprovalRuleRecord]:
        """Re-run rule matching against the company's current rule set."""
        return match_rule(self.repository.get_rules_by_company(company_id), amount, category)

    def preview_route(self, employee_id: int, amount: Any, category: Union[str, ExpenseCategory]) -> Route:
        """Resolve the route a submission would take without storing anything."""
        employee = self._require_user(employee_id)
        category = parse_category(category)
        amount = parse_amount(amount)
        rule = self.match_for(employee.company_id, amount, category)
        return plan_initial_route(rule, employee, self.repository.get_user)

    def submit_expense(
        self,
        employee_id: int,
        amount: Any,
        currency: str,
        category: Union[str, ExpenseCategory],
        *,
        description: str = "",
        date_spent: Optional[date] = None,
        receipt_url: Optional[str] = None,
    ) -> ExpenseRecord:
        employee = self._require_user(employee_id)
        company = self.repository.get_company(employee.company_id)
        if company is None:
            raise WorkflowError(f"Employee {employee_id} has no company.")

        # Rules must see the stored (cent) value both now and at decision time.
        amount = parse_amount(amount)
        category = parse_category(category)
        if currency in (None, ""):
            currency = company.currency_code
        if not isinstance(currency, str):
            raise WorkflowError("Currency must be a currency code such as 'USD'.")
        currency = currency.strip().upper()

        converted = to_cents(self.converter(amount, currency, company.currency_code))
        rule = self.match_for(company.id, converted, category)
        route = plan_initial_route(rule, employee, self.repository.get_user)

        draft = ExpenseRecord(
            id=None,
            employee_id=employee.id,
            employee_name=employee.name,
            company_id=company.id,
            amount=amount,
            currency=currency,
            category=category,
            amount_in_company_currency=converted,
            description=description or "",
            date_spent=date_spent,
            receipt_url=receipt_url,
        )
        expense = self.ledger.create(state_machine.open_expense(draft, route, self.clock()))

        if route.is_routed:
            logger.info(
                "Expense %s submitted by user %s routed to %s (rule %s)",
                expense.id,
                employee.id,
                route.approver_id,
                rule.id if rule else None,
            )
        else:
            logger.warning(
                "Expense %s submitted by user %s has no approver; awaiting assignment", expense.id, employee.id
            )
        return expense

    def decide(
        self,
        expense_id: int,
        actor_id: int,
        action: Union[str, HistoryAction],
        comment: Optional[str] = None,
    ) -> ExpenseRecord:
        """Record the current approver's decision as one read-modify-write."""
        action = parse_decision(action)
        actor = self._require_user(actor_id)
        with self.ledger.locked(expense_id):
            expense = self.ledger.get(expense_id)
            rule = self.match_for(expense.company_id, expense.routing_amount, expense.category)
            updated = state_machine.decide(
                expense,
                actor,
                rule,
                action,
                user_lookup=self.repository.get_user,
                now=self.clock(),
                comment=comment,
            )
            stored = self.ledger.replace_expense(updated)

        logger.info(
            "Expense %s %s by user %s; status=%s next approver=%s",
            expense_id,
            action.value,
            actor.id,
            stored.status.value,
            stored.current_approver_id,
        )
        if stored.is_unrouted:
            logger.warning("Expense %s advanced to a level without approvers", expense_id)
        return stored

    def approve(self, expense_id: int, actor_id: int, comment: Optional[str] = None) -> ExpenseRecord:
        return self.decide(expense_id, actor_id, HistoryAction.APPROVED, comment)

    def reject(self, expense_id: int, actor_id: int, comment: Optional[str] = None) -> ExpenseRecord:
        return self.decide(expense_id, actor_id, HistoryAction.REJECTED, comment)

    def override(
        self,
        expense_id: int,
        admin_id: int,
        action: Union[str, HistoryAction],
        comment: Optional[str] = None,
    ) -> ExpenseRecord:
        action = parse_decision(action)
        admin = self._require_user(admin_id)
        with self.ledger.locked(expense_id):
            expense = self.ledger.get(expense_id)
            updated = state_machine.override(expense, admin, action, now=self.clock(), comment=comment)
            stored = self.ledger.replace_expense(updated)
            self.repository.log_action(
                "expense",
                expense_id,
                admin.id,
                f"override_{action.value}",
                {"previous_status": expense.status.value, "comment": comment},
            )

        logger.info("Expense %s overridden to %s by admin %s", expense_id, action.value, admin.id)
        return stored

    def delete_expense(self, expense_id: int, admin_id: int) -> ExpenseRecord:
        admin = self._require_user(admin_id)
        if not admin.is_admin:
            raise NotAuthorizedError(f"User {admin.id} cannot delete expenses.", expense_id=expense_id)
        with self.ledger.locked(expense_id):
            expense = self.ledger.get(expense_id)
            if expense.company_id != admin.company_id:
                raise NotAuthorizedError(
                    f"Expense {expense_id} belongs to another company.", expense_id=expense_id
                )
            deleted = self.ledger.delete(expense_id)
            self.repository.log_action(
                "expense",
                expense_id,
                admin.id,
                "delete",
                {"status": deleted.status.value, "employee_id": deleted.employee_id},
            )
        return deleted

    def update_details(self, expense_id: int, actor_id: int, **fields: Any) -> ExpenseRecord:
        """Let the submitting employee correct descriptive fields."""
        actor = self._require_user(actor_id)
        expense = self.ledger.get(expense_id)
        if expense.employee_id != actor.id:
            raise NotAuthorizedError(f"User {actor.id} did not submit expense {expense_id}.", expense_id=expense_id)
        return self.ledger.patch_expense_fields(expense_id, **fields)
