"""Approver routes: pending queue, decisions and team overview."""
from __future__ import annotations

from typing import Any

from flask_login import current_user, login_required

from expenseflow.models import UserRole
from expenseflow.services.reporting import summarize_expenses
from expenseflow.utils.helpers import get_approval_engine, get_payload, json_response, role_required
from expenseflow.workflow.types import HistoryAction

from . import manager_bp


@manager_bp.route("/pending", methods=["GET"])
@login_required
@role_required()
def pending_approvals() -> Any:
    """Return expenses waiting for the current user's decision."""
    expenses = get_approval_engine().ledger.pending_for_approver(current_user.id)
    return json_response({"expenses": [expense.to_dict() for expense in expenses]})


def _decide(expense_id: int, action: HistoryAction) -> Any:
    comment = get_payload().get("comment")
    expense = get_approval_engine().decide(expense_id, current_user.id, action, comment)
    return json_response(
        {
            "message": f"Expense {action.value}.",
            "expense": expense.to_dict(),
        }
    )


@manager_bp.route("/approve/<int:expense_id>", methods=["POST"])
@login_required
@role_required()
def approve_expense(expense_id: int) -> Any:
    """Approve a pending expense."""
    return _decide(expense_id, HistoryAction.APPROVED)


@manager_bp.route("/reject/<int:expense_id>", methods=["POST"])
@login_required
@role_required()
def reject_expense(expense_id: int) -> Any:
    """Reject a pending expense."""
    return _decide(expense_id, HistoryAction.REJECTED)


@manager_bp.route("/team/expenses", methods=["GET"])
@login_required
@role_required(UserRole.MANAGER, UserRole.ADMIN)
def team_expenses() -> Any:
    """Expenses submitted by the manager's direct reports."""
    expenses = get_approval_engine().ledger.for_team(current_user.id)
    return json_response({"expenses": [expense.to_dict() for expense in expenses]})


@manager_bp.route("/stats", methods=["GET"])
@login_required
@role_required(UserRole.MANAGER, UserRole.ADMIN)
def stats() -> Any:
    ledger = get_approval_engine().ledger
    summary = summarize_expenses(ledger.for_team(current_user.id))
    summary["awaiting_my_decision"] = len(ledger.pending_for_approver(current_user.id))
    return json_response(summary)
