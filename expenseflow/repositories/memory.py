"""In-process repository used by tests and the demo shell."""
from __future__ import annotations

import itertools
import threading
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from expenseflow.workflow.exceptions import ConcurrentUpdateError, ExpenseNotFoundError
from expenseflow.workflow.rules import ordered
from expenseflow.workflow.types import (
    ApprovalRuleRecord,
    CompanyRecord,
    ExpenseRecord,
    ExpenseStatus,
    UserRecord,
)


class InMemoryRepository:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self.companies: Dict[int, CompanyRecord] = {}
        self.users: Dict[int, UserRecord] = {}
        self.rules: Dict[int, ApprovalRuleRecord] = {}
        self.expenses: Dict[int, ExpenseRecord] = {}
        self.audit_log: List[Dict[str, Any]] = []

    def _next_id(self) -> int:
        return next(self._ids)

    # Companies and users ---------------------------------------------------

    def add_company(self, company: CompanyRecord) -> CompanyRecord:
        self.companies[company.id] = company
        return company

    def add_user(self, user: UserRecord) -> UserRecord:
        self.users[user.id] = user
        return user

    def get_company(self, company_id: int) -> Optional[CompanyRecord]:
        return self.companies.get(company_id)

    def get_user(self, user_id: Optional[int]) -> Optional[UserRecord]:
        if user_id is None:
            return None
        return self.users.get(user_id)

    def users_by_company(self, company_id: int) -> List[UserRecord]:
        return [user for user in self.users.values() if user.company_id == company_id]

    def users_by_manager(self, manager_id: int) -> List[UserRecord]:
        return [user for user in self.users.values() if user.manager_id == manager_id]

    # Rules -----------------------------------------------------------------

    def get_rules_by_company(self, company_id: int) -> List[ApprovalRuleRecord]:
        return ordered([rule for rule in self.rules.values() if rule.company_id == company_id])

    def get_rule(self, rule_id: int) -> Optional[ApprovalRuleRecord]:
        return self.rules.get(rule_id)

    def save_rule(self, rule: ApprovalRuleRecord) -> ApprovalRuleRecord:
        with self._lock:
            if rule.id is None:
                rule = replace(rule, id=self._next_id())
            self.rules[rule.id] = rule
        return rule

    def delete_rule(self, rule_id: int) -> None:
        self.rules.pop(rule_id, None)

    # Expenses --------------------------------------------------------------

    def get_expense(self, expense_id: int) -> Optional[ExpenseRecord]:
        return self.expenses.get(expense_id)

    def add_expense(self, expense: ExpenseRecord) -> ExpenseRecord:
        with self._lock:
            stored = replace(expense, id=self._next_id(), version=1)
            self.expenses[stored.id] = stored
        return stored

    def put_expense(self, expense: ExpenseRecord, expected_version: int) -> ExpenseRecord:
        with self._lock:
            current = self.expenses.get(expense.id)
            if current is None:
                raise ExpenseNotFoundError(expense.id)
            if current.version != expected_version:
                raise ConcurrentUpdateError(
                    f"Expense {expense.id} is at version {current.version}, expected {expected_version}.",
                    expense_id=expense.id,
                )
            stored = replace(expense, version=expected_version + 1)
            self.expenses[stored.id] = stored
        return stored

    def delete_expense(self, expense_id: int) -> None:
        self.expenses.pop(expense_id, None)

    def expenses_for_employees(self, employee_ids: Iterable[int]) -> List[ExpenseRecord]:
        wanted = set(employee_ids)
        return [expense for expense in self.expenses.values() if expense.employee_id in wanted]

    def pending_expenses_for_approver(self, approver_id: int) -> List[ExpenseRecord]:
        return [
            expense
            for expense in self.expenses.values()
            if expense.status is ExpenseStatus.PENDING and expense.current_approver_id == approver_id
        ]

    def log_action(
        self,
        entity_type: str,
        entity_id: int,
        user_id: Optional[int],
        action: str,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.audit_log.append(
            {
                "entity_type": entity_type,
                "entity_id": entity_id,
                "user_id": user_id,
                "action": action,
                "extra_data": extra_data,
            }
        )
