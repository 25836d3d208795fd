"""Exceptions raised by the approval-routing engine."""
from __future__ import annotations

from typing import Optional


class WorkflowError(Exception):
    """Base class for approval workflow failures."""

    status_code = 400

    def __init__(self, message: str, *, expense_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.expense_id = expense_id

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": type(self).__name__}
        if self.expense_id is not None:
            payload["expense_id"] = self.expense_id
        return payload


class ExpenseNotFoundError(WorkflowError):
    status_code = 404

    def __init__(self, expense_id: int) -> None:
        super().__init__(f"Expense {expense_id} not found.", expense_id=expense_id)


class UserNotFoundError(WorkflowError):
    status_code = 404

    def __init__(self, user_id: Optional[int]) -> None:
        super().__init__(f"User {user_id} not found.")
        self.user_id = user_id


class StaleDecisionError(WorkflowError):
    """A decision arrived for an expense that is no longer awaiting it."""

    status_code = 409


class NotCurrentApproverError(StaleDecisionError):
    status_code = 403

    def __init__(self, expense_id: Optional[int], user_id: int, current_approver_id: Optional[int]) -> None:
        super().__init__(
            f"User {user_id} is not the current approver of expense {expense_id}.",
            expense_id=expense_id,
        )
        self.user_id = user_id
        self.current_approver_id = current_approver_id


class NotAuthorizedError(WorkflowError):
    status_code = 403


class ConcurrentUpdateError(WorkflowError):
    """The stored expense changed between read and write."""

    status_code = 409


class LedgerInvariantError(WorkflowError):
    status_code = 409


class RuleValidationError(WorkflowError):
    status_code = 400
