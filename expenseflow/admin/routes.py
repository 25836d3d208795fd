"""Administrative routes."""
from __future__ import annotations

from dataclasses import replace
from typing import Any, Optional

from flask import current_app, request
from flask_login import current_user, login_required

from expenseflow.models import AuditLog, Company, User, UserRole, db
from expenseflow.repositories.orm import SqlAlchemyRepository
from expenseflow.services.currency_service import get_default_currency_for_country
from expenseflow.services.reporting import summarize_expenses
from expenseflow.utils.helpers import get_approval_engine, get_payload, json_response, missing_fields, role_required
from expenseflow.workflow.exceptions import RuleValidationError
from expenseflow.workflow.rules import rule_from_payload
from expenseflow.workflow.types import ApprovalLevel, ApprovalRuleRecord, ApproverRef, ExpenseStatus

from . import admin_bp


def _resolve_manager(manager_id: Any, user_id: Optional[int] = None):
    """Return (manager_id, error message)."""
    if manager_id in (None, ""):
        return None, None
    try:
        manager_id = int(manager_id)
    except (TypeError, ValueError):
        return None, "Invalid manager selected."
    manager = db.session.get(User, manager_id)
    if manager is None or manager.company_id != current_user.company_id or manager.id == user_id:
        return None, "Invalid manager selected."
    return manager.id, None


# Users -----------------------------------------------------------------------


@admin_bp.route("/users", methods=["GET"])
@login_required
@role_required(UserRole.ADMIN)
def users() -> Any:
    """All users in the admin's company."""
    users = User.query.filter_by(company_id=current_user.company_id).order_by(User.id).all()
    return json_response({"users": [user.to_dict() for user in users]})


@admin_bp.route("/users", methods=["POST"])
@login_required
@role_required(UserRole.ADMIN)
def create_user() -> Any:
    """Create a new employee, manager or admin."""
    payload = get_payload()
    error = missing_fields(payload, ("name", "email", "password", "role"))
    if error:
        return json_response({"error": error}, status=400)

    email = payload["email"].lower()
    if User.query.filter_by(email=email).first():
        return json_response({"error": "Email already exists."}, status=409)

    try:
        role = UserRole(str(payload["role"]).lower())
    except ValueError:
        return json_response({"error": "Unsupported role."}, status=400)

    manager_id, error = _resolve_manager(payload.get("manager_id"))
    if error:
        return json_response({"error": error}, status=400)

    new_user = User(
        name=payload["name"],
        email=email,
        role=role,
        company_id=current_user.company_id,
        manager_id=manager_id,
        is_active=bool(payload.get("is_active", True)),
    )
    new_user.set_password(payload["password"])
    db.session.add(new_user)
    db.session.commit()

    current_app.logger.info("User %s created by admin %s", new_user.id, current_user.id)
    return json_response({"message": "User created.", "user": new_user.to_dict()}, status=201)


@admin_bp.route("/users/<int:user_id>", methods=["PATCH"])
@login_required
@role_required(UserRole.ADMIN)
def update_user(user_id: int) -> Any:
    """Change a user's name, role, manager or active flag."""
    user = db.session.get(User, user_id)
    if user is None or user.company_id != current_user.company_id:
        return json_response({"error": "User not found."}, status=404)

    payload = get_payload()
    if "name" in payload and payload["name"]:
        user.name = payload["name"]
    if "role" in payload:
        try:
            user.role = UserRole(str(payload["role"]).lower())
        except ValueError:
            return json_response({"error": "Unsupported role."}, status=400)
    if "manager_id" in payload:
        manager_id, error = _resolve_manager(payload["manager_id"], user_id=user.id)
        if error:
            return json_response({"error": error}, status=400)
        user.manager_id = manager_id
    if "is_active" in payload:
        user.is_active = bool(payload["is_active"])

    db.session.commit()
    return json_response({"message": "User updated.", "user": user.to_dict()})


# Company ---------------------------------------------------------------------


@admin_bp.route("/company", methods=["GET", "PATCH"])
@login_required
@role_required(UserRole.ADMIN)
def company_settings() -> Any:
    company = db.session.get(Company, current_user.company_id)
    if request.method == "PATCH":
        payload = get_payload()
        if payload.get("name"):
            company.name = payload["name"]
        if payload.get("country"):
            company.country = payload["country"]
        if payload.get("currency_code"):
            company.currency_code = str(payload["currency_code"]).upper()
        elif payload.get("country"):
            currency = get_default_currency_for_country(
                payload["country"], timeout=current_app.config["CURRENCY_API_TIMEOUT"]
            )
            if currency["currency_code"]:
                company.currency_code = currency["currency_code"]
            else:
                current_app.logger.warning("No default currency found for %s", payload["country"])
        db.session.commit()
    return json_response({"company": company.to_dict()})


# Approval rules --------------------------------------------------------------


def _attach_approver_names(rule: ApprovalRuleRecord) -> ApprovalRuleRecord:
    """Check approvers belong to the company and fill in missing names."""
    company_users = {user.id: user for user in User.query.filter_by(company_id=rule.company_id).all()}

    def resolve(ref: ApproverRef) -> ApproverRef:
        user = company_users.get(ref.user_id)
        if user is None:
            raise RuleValidationError(f"Approver {ref.user_id} is not a member of this company.")
        return ApproverRef(user_id=user.id, user_name=ref.user_name or user.name)

    return replace(
        rule,
        approvers=tuple(resolve(ref) for ref in rule.approvers),
        levels=tuple(
            ApprovalLevel(level=level.level, approvers=tuple(resolve(ref) for ref in level.approvers))
            for level in rule.levels
        ),
    )


@admin_bp.route("/approval-rules", methods=["GET"])
@login_required
@role_required(UserRole.ADMIN)
def approval_rules() -> Any:
    """Rules in the order they are evaluated."""
    rules = SqlAlchemyRepository().get_rules_by_company(current_user.company_id)
    return json_response({"rules": [rule.to_dict() for rule in rules]})


@admin_bp.route("/approval-rules", methods=["POST"])
@login_required
@role_required(UserRole.ADMIN)
def create_rule() -> Any:
    payload = get_payload()
    repository = SqlAlchemyRepository()
    rule = _attach_approver_names(rule_from_payload(payload, current_user.company_id))
    if "position" not in payload:
        existing = repository.get_rules_by_company(current_user.company_id)
        rule = replace(rule, position=max((r.position for r in existing), default=-1) + 1)

    rule = repository.save_rule(rule)
    current_app.logger.info("Approval rule %s created by admin %s", rule.id, current_user.id)
    return json_response({"message": "Approval rule created.", "rule": rule.to_dict()}, status=201)


@admin_bp.route("/approval-rules/<int:rule_id>", methods=["PUT"])
@login_required
@role_required(UserRole.ADMIN)
def update_rule(rule_id: int) -> Any:
    repository = SqlAlchemyRepository()
    existing = repository.get_rule(rule_id)
    if existing is None or existing.company_id != current_user.company_id:
        return json_response({"error": "Approval rule not found."}, status=404)

    payload = get_payload()
    rule = _attach_approver_names(rule_from_payload(payload, current_user.company_id, rule_id=rule_id))
    if "position" not in payload:
        rule = replace(rule, position=existing.position)

    rule = repository.save_rule(rule)
    return json_response({"message": "Approval rule updated.", "rule": rule.to_dict()})


@admin_bp.route("/approval-rules/<int:rule_id>", methods=["DELETE"])
@login_required
@role_required(UserRole.ADMIN)
def delete_rule(rule_id: int) -> Any:
    repository = SqlAlchemyRepository()
    existing = repository.get_rule(rule_id)
    if existing is None or existing.company_id != current_user.company_id:
        return json_response({"error": "Approval rule not found."}, status=404)
    repository.delete_rule(rule_id)
    return json_response({"message": "Approval rule deleted."})


@admin_bp.route("/approval-rules/order", methods=["POST"])
@login_required
@role_required(UserRole.ADMIN)
def reorder_rules() -> Any:
    """Set evaluation order from a complete list of rule ids."""
    repository = SqlAlchemyRepository()
    rule_ids = get_payload().get("rule_ids")
    rules = {rule.id: rule for rule in repository.get_rules_by_company(current_user.company_id)}
    if (
        not isinstance(rule_ids, list)
        or not all(isinstance(rule_id, int) for rule_id in rule_ids)
        or sorted(rule_ids) != sorted(rules)
    ):
        return json_response({"error": "'rule_ids' must list every rule of the company exactly once."}, status=400)

    for position, rule_id in enumerate(rule_ids):
        repository.save_rule(replace(rules[rule_id], position=position))

    ordered = repository.get_rules_by_company(current_user.company_id)
    return json_response({"rules": [rule.to_dict() for rule in ordered]})


@admin_bp.route("/approval-rules/preview", methods=["POST"])
@login_required
@role_required(UserRole.ADMIN)
def preview_route() -> Any:
    """Show which rule and first approver a hypothetical expense would get."""
    payload = get_payload()
    error = missing_fields(payload, ("employee_id", "amount", "category"))
    if error:
        return json_response({"error": error}, status=400)

    try:
        employee = db.session.get(User, int(payload["employee_id"]))
    except (TypeError, ValueError):
        employee = None
    if employee is None or employee.company_id != current_user.company_id:
        return json_response({"error": "User not found."}, status=404)

    route = get_approval_engine().preview_route(employee.id, payload["amount"], payload["category"])
    return json_response({"route": route.to_dict()})


# Expenses --------------------------------------------------------------------


@admin_bp.route("/expenses", methods=["GET"])
@login_required
@role_required(UserRole.ADMIN)
def all_expenses() -> Any:
    """Every expense in the company, optionally filtered by status or routing state."""
    expenses = get_approval_engine().ledger.for_company(current_user.company_id)

    status = request.args.get("status")
    if status:
        try:
            wanted = ExpenseStatus(status.lower())
        except ValueError:
            return json_response({"error": f"Unknown status '{status}'."}, status=400)
        expenses = [expense for expense in expenses if expense.status is wanted]

    routing_state = request.args.get("routing_state")
    if routing_state:
        expenses = [expense for expense in expenses if expense.routing_state == routing_state]

    return json_response({"expenses": [expense.to_dict() for expense in expenses]})


@admin_bp.route("/expenses/<int:expense_id>/override", methods=["POST"])
@login_required
@role_required(UserRole.ADMIN)
def override_expense(expense_id: int) -> Any:
    """Force-approve or force-reject an expense regardless of its route."""
    payload = get_payload()
    error = missing_fields(payload, ("action",))
    if error:
        return json_response({"error": error}, status=400)

    expense = get_approval_engine().override(expense_id, current_user.id, payload["action"], payload.get("comment"))
    return json_response({"message": f"Expense {expense.status.value} by override.", "expense": expense.to_dict()})


@admin_bp.route("/expenses/<int:expense_id>", methods=["DELETE"])
@login_required
@role_required(UserRole.ADMIN)
def delete_expense(expense_id: int) -> Any:
    get_approval_engine().delete_expense(expense_id, current_user.id)
    return json_response({"message": "Expense deleted."})


@admin_bp.route("/expenses/<int:expense_id>/audit", methods=["GET"])
@login_required
@role_required(UserRole.ADMIN)
def expense_audit(expense_id: int) -> Any:
    """Overrides and deletions recorded for an expense, oldest first."""
    entries = [
        entry
        for entry in AuditLog.for_entity("expense", expense_id)
        if entry.actor is None or entry.actor.company_id == current_user.company_id
    ]
    return json_response({"audit": [entry.to_dict() for entry in entries]})


@admin_bp.route("/stats", methods=["GET"])
@login_required
@role_required(UserRole.ADMIN)
def stats() -> Any:
    """Company-wide overview."""
    summary = summarize_expenses(get_approval_engine().ledger.for_company(current_user.company_id))
    summary["user_count"] = User.query.filter_by(company_id=current_user.company_id).count()
    summary["rule_count"] = len(SqlAlchemyRepository().get_rules_by_company(current_user.company_id))
    return json_response(summary)
