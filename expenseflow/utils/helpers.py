"""General helper utilities."""
from __future__ import annotations

from datetime import date
from functools import partial, wraps
from typing import Any, Callable, Dict, Iterable, Optional

from flask import current_app, jsonify, request
from flask_login import current_user

from expenseflow.workflow.exceptions import WorkflowError
from expenseflow.workflow.types import UserRole

JsonView = Callable[..., Any]


def json_response(payload: Any, status: int = 200):
    """Return a JSON response with status code."""
    return jsonify(payload), status


def role_required(*roles: UserRole):
    """Restrict a route to one or more roles."""
    def decorator(view_func: JsonView) -> JsonView:
        @wraps(view_func)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                return json_response({"error": "Authentication required."}, status=401)
            if roles and current_user.role not in roles:
                return json_response({"error": "Insufficient permissions."}, status=403)
            return view_func(*args, **kwargs)

        return wrapped

    return decorator


def get_payload() -> Dict[str, Any]:
    """JSON body, or form fields for non-JSON posts."""
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def missing_fields(payload: Dict[str, Any], required: Iterable[str]) -> Optional[str]:
    missing = sorted(name for name in required if payload.get(name) in (None, ""))
    if missing:
        return f"Missing fields: {', '.join(missing)}"
    return None


def parse_date(value: Any) -> Optional[date]:
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise WorkflowError("Invalid date format. Use YYYY-MM-DD.") from None


def get_approval_engine():
    """Approval engine bound to the database and this app's configuration."""
    from expenseflow.repositories.orm import SqlAlchemyRepository
    from expenseflow.services.approval_engine import ApprovalEngine
    from expenseflow.services.currency_service import convert_currency

    converter = partial(
        convert_currency,
        api_url=current_app.config["EXCHANGE_API_URL"],
        timeout=current_app.config["CURRENCY_API_TIMEOUT"],
    )
    return ApprovalEngine(
        SqlAlchemyRepository(),
        converter=converter,
        locks=current_app.extensions["expense_locks"],
    )


def register_error_handlers(app) -> None:
    @app.errorhandler(WorkflowError)
    def handle_workflow_error(exc: WorkflowError):
        app.logger.info("Workflow request refused: %s", exc.message)
        return json_response(exc.to_dict(), status=exc.status_code)

    @app.errorhandler(404)
    def handle_not_found(exc):
        return json_response({"error": "Not found."}, status=404)
