"""Storage interface consumed by the approval engine."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Protocol

from expenseflow.workflow.types import ApprovalRuleRecord, CompanyRecord, ExpenseRecord, UserRecord


class WorkflowRepository(Protocol):
    """Record store for companies, users, approval rules and expenses.

    ``get_rules_by_company`` must return rules in their stored order; rule
    matching is first-match-wins. ``put_expense`` is a full-record replace that
    fails with ``ConcurrentUpdateError`` when the stored version differs from
    ``expected_version`` and returns the record with its new version.
    """

    def get_company(self, company_id: int) -> Optional[CompanyRecord]:
        ...

    def get_user(self, user_id: Optional[int]) -> Optional[UserRecord]:
        ...

    def users_by_company(self, company_id: int) -> List[UserRecord]:
        ...

    def users_by_manager(self, manager_id: int) -> List[UserRecord]:
        ...

    def get_rules_by_company(self, company_id: int) -> List[ApprovalRuleRecord]:
        ...

    def get_rule(self, rule_id: int) -> Optional[ApprovalRuleRecord]:
        ...

    def save_rule(self, rule: ApprovalRuleRecord) -> ApprovalRuleRecord:
        ...

    def delete_rule(self, rule_id: int) -> None:
        ...

    def get_expense(self, expense_id: int) -> Optional[ExpenseRecord]:
        ...

    def add_expense(self, expense: ExpenseRecord) -> ExpenseRecord:
        ...

    def put_expense(self, expense: ExpenseRecord, expected_version: int) -> ExpenseRecord:
        ...

    def delete_expense(self, expense_id: int) -> None:
        ...

    def expenses_for_employees(self, employee_ids: Iterable[int]) -> List[ExpenseRecord]:
        ...

    def pending_expenses_for_approver(self, approver_id: int) -> List[ExpenseRecord]:
        ...

    def log_action(
        self,
        entity_type: str,
        entity_id: int,
        user_id: Optional[int],
        action: str,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...
