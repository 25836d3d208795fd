"""Approval state machine.

States::

    pending(approver) --approve, more levels--> pending(next approver)
    pending(approver) --approve-------------> approved   (terminal)
    pending(approver) --reject--------------> rejected   (terminal)
    any               --admin override------> approved | rejected

Every transition returns a new ``ExpenseRecord`` whose ``approval_history``
extends the previous one. Guards run before anything is built, so a refused
decision leaves the caller's record untouched.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Optional, Tuple

from .exceptions import NotAuthorizedError, NotCurrentApproverError, StaleDecisionError, WorkflowError
from .routing import UserLookup
from .types import (
    ApprovalRuleRecord,
    ExpenseRecord,
    ExpenseStatus,
    HistoryAction,
    HistoryEntry,
    Route,
    UserRecord,
)

DECISIONS = (HistoryAction.APPROVED, HistoryAction.REJECTED)


def _check_decision(action: HistoryAction) -> None:
    if action not in DECISIONS:
        raise WorkflowError(f"Unsupported decision '{action.value}'.")


def open_expense(expense: ExpenseRecord, route: Route, now: datetime) -> ExpenseRecord:
    """Put a freshly submitted expense into its initial pending state."""
    history: Tuple[HistoryEntry, ...] = ()
    if route.is_routed:
        history = (
            HistoryEntry(
                approver_id=route.approver_id,
                approver_name=route.approver_name,
                action=HistoryAction.PENDING,
                timestamp=now,
            ),
        )
    return replace(
        expense,
        status=ExpenseStatus.PENDING,
        current_approver_id=route.approver_id,
        approval_history=history,
        created_at=expense.created_at or now,
    )


def ensure_decidable(expense: ExpenseRecord, deciding_user: UserRecord) -> None:
    """Refuse decisions on closed expenses or from anyone but the current approver."""
    if expense.status is not ExpenseStatus.PENDING:
        raise StaleDecisionError(
            f"Expense {expense.id} is {expense.status.value}; only pending expenses can be decided.",
            expense_id=expense.id,
        )
    if expense.current_approver_id is None or expense.current_approver_id != deciding_user.id:
        raise NotCurrentApproverError(expense.id, deciding_user.id, expense.current_approver_id)


def next_level_approver(rule: Optional[ApprovalRuleRecord], user_id: int):
    """Return ``(has_next_level, approver)`` for an approval by ``user_id``."""
    if rule is None or len(rule.levels) <= 1:
        return False, None
    for index, level in enumerate(rule.levels):
        if level.includes(user_id):
            if index == len(rule.levels) - 1:
                return False, None
            return True, rule.levels[index + 1].first_approver
    return False, None


def decide(
    expense: ExpenseRecord,
    deciding_user: UserRecord,
    rule: Optional[ApprovalRuleRecord],
    action: HistoryAction,
    *,
    user_lookup: UserLookup,
    now: datetime,
    comment: Optional[str] = None,
) -> ExpenseRecord:
    """Apply an approver's decision and return the updated expense."""
    _check_decision(action)
    ensure_decidable(expense, deciding_user)

    decision = HistoryEntry(
        approver_id=deciding_user.id,
        approver_name=deciding_user.name,
        action=action,
        timestamp=now,
        comment=comment or None,
    )

    if action is HistoryAction.REJECTED:
        return replace(
            expense,
            status=ExpenseStatus.REJECTED,
            current_approver_id=None,
            approval_history=expense.approval_history + (decision,),
        )

    has_next, next_approver = next_level_approver(rule, deciding_user.id)
    if not has_next:
        return replace(
            expense,
            status=ExpenseStatus.APPROVED,
            current_approver_id=None,
            approval_history=expense.approval_history + (decision,),
        )

    if next_approver is None:
        # Next level has nobody configured; stays pending until an admin steps in.
        return replace(
            expense,
            current_approver_id=None,
            approval_history=expense.approval_history + (decision,),
        )

    resolved = user_lookup(next_approver.user_id)
    handoff = HistoryEntry(
        approver_id=next_approver.user_id,
        approver_name=resolved.name if resolved is not None else "",
        action=HistoryAction.PENDING,
        timestamp=now,
    )
    return replace(
        expense,
        status=ExpenseStatus.PENDING,
        current_approver_id=next_approver.user_id,
        approval_history=expense.approval_history + (decision, handoff),
    )


def override(
    expense: ExpenseRecord,
    admin: UserRecord,
    action: HistoryAction,
    *,
    now: datetime,
    comment: Optional[str] = None,
) -> ExpenseRecord:
    """Force an expense to a terminal status, bypassing level progression."""
    _check_decision(action)
    if not admin.is_admin:
        raise NotAuthorizedError(
            f"User {admin.id} cannot override expense {expense.id}.", expense_id=expense.id
        )
    if admin.company_id != expense.company_id:
        raise NotAuthorizedError(
            f"Expense {expense.id} belongs to another company.", expense_id=expense.id
        )

    entry = HistoryEntry(
        approver_id=admin.id,
        approver_name=admin.name,
        action=action,
        timestamp=now,
        comment=comment or f"Admin override: {action.value}",
        is_override=True,
    )
    status = ExpenseStatus.APPROVED if action is HistoryAction.APPROVED else ExpenseStatus.REJECTED
    return replace(
        expense,
        status=status,
        current_approver_id=None,
        approval_history=expense.approval_history + (entry,),
    )
