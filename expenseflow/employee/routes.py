"""Employee-facing routes."""
from __future__ import annotations

from typing import Any

from flask import current_app
from flask_login import current_user, login_required

from expenseflow.models import UserRole
from expenseflow.services.reporting import summarize_expenses
from expenseflow.utils.helpers import (
    get_approval_engine,
    get_payload,
    json_response,
    missing_fields,
    parse_date,
    role_required,
)

from . import employee_bp

SUBMITTERS = (UserRole.EMPLOYEE, UserRole.MANAGER)


@employee_bp.route("/expenses", methods=["GET"])
@login_required
@role_required(*SUBMITTERS)
def list_expenses() -> Any:
    """List expenses submitted by the current user."""
    expenses = get_approval_engine().ledger.for_employee(current_user.id)
    return json_response({"expenses": [expense.to_dict() for expense in expenses]})


@employee_bp.route("/expenses", methods=["POST"])
@login_required
@role_required(*SUBMITTERS)
def submit_expense() -> Any:
    """Submit a new expense and route it to its first approver."""
    payload = get_payload()
    error = missing_fields(payload, ("amount", "currency", "category", "date_spent"))
    if error:
        return json_response({"error": error}, status=400)

    expense = get_approval_engine().submit_expense(
        current_user.id,
        payload["amount"],
        payload["currency"],
        payload["category"],
        description=payload.get("description") or "",
        date_spent=parse_date(payload["date_spent"]),
        receipt_url=payload.get("receipt_url"),
    )

    message = "Expense submitted."
    if expense.is_unrouted:
        message = "Expense submitted; awaiting approver assignment."
        current_app.logger.warning("Expense %s could not be routed", expense.id)

    return json_response({"message": message, "expense": expense.to_dict()}, status=201)


@employee_bp.route("/expenses/<int:expense_id>", methods=["GET"])
@login_required
@role_required(*SUBMITTERS)
def expense_detail(expense_id: int) -> Any:
    """View an expense together with its approval history."""
    expense = get_approval_engine().ledger.get(expense_id)
    if expense.employee_id != current_user.id:
        return json_response({"error": "Expense not found."}, status=404)
    return json_response({"expense": expense.to_dict()})


@employee_bp.route("/expenses/<int:expense_id>", methods=["PATCH"])
@login_required
@role_required(*SUBMITTERS)
def update_expense(expense_id: int) -> Any:
    """Correct the description, date or receipt of a pending expense."""
    payload = get_payload()
    fields = {}
    if "description" in payload:
        fields["description"] = payload["description"] or ""
    if "date_spent" in payload:
        fields["date_spent"] = parse_date(payload["date_spent"])
    if "receipt_url" in payload:
        fields["receipt_url"] = payload["receipt_url"] or None
    if not fields:
        return json_response({"error": "Nothing to update."}, status=400)

    expense = get_approval_engine().update_details(expense_id, current_user.id, **fields)
    return json_response({"message": "Expense updated.", "expense": expense.to_dict()})


@employee_bp.route("/stats", methods=["GET"])
@login_required
@role_required(*SUBMITTERS)
def stats() -> Any:
    """Expense overview for the current user's own submissions."""
    expenses = get_approval_engine().ledger.for_employee(current_user.id)
    return json_response(summarize_expenses(expenses))
