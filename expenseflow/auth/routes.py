"""Authentication routes."""
from __future__ import annotations

from typing import Any

from flask import current_app, session
from flask_login import current_user, login_required, login_user, logout_user

from expenseflow.models import User
from expenseflow.utils.helpers import get_payload, json_response

from . import auth_bp


@auth_bp.route("/login", methods=["POST"])
def login() -> Any:
    """Authenticate a user using email/password."""
    payload = get_payload()
    email = (payload.get("email") or "").lower()
    password = payload.get("password")

    if not email or not password:
        return json_response({"error": "Email and password are required."}, status=400)

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(password):
        current_app.logger.info("Failed login for %s", email)
        return json_response({"error": "Invalid email or password."}, status=401)

    if not user.is_active:
        return json_response({"error": "Account is deactivated."}, status=403)

    login_user(user, remember=bool(payload.get("remember")))
    return json_response({"message": "Login successful.", "user": user.to_dict()})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout() -> Any:
    """Terminate the user session."""
    logout_user()
    session.clear()
    return json_response({"message": "Logged out."})


@auth_bp.route("/me", methods=["GET"])
@login_required
def me() -> Any:
    payload = current_user.to_dict()
    payload["company"] = current_user.company.to_dict() if current_user.company else None
    return json_response({"user": payload})
