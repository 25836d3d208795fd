"""Initial route planning for newly submitted expenses."""
from __future__ import annotations

from typing import Callable, Optional

from .types import ApprovalRuleRecord, ApproverRef, Route, UserRecord

UserLookup = Callable[[Optional[int]], Optional[UserRecord]]


def manager_route(employee: UserRecord, user_lookup: UserLookup, rule: Optional[ApprovalRuleRecord] = None) -> Route:
    """Route to the employee's direct manager, if one exists."""
    manager = user_lookup(employee.manager_id) if employee.manager_id is not None else None
    if manager is None:
        return Route(rule=rule)
    return Route(approver_id=manager.id, approver_name=manager.name, rule=rule)


def _approver_route(approver: Optional[ApproverRef], rule: ApprovalRuleRecord) -> Route:
    if approver is None:
        return Route(rule=rule)
    return Route(approver_id=approver.user_id, approver_name=approver.user_name, rule=rule)


def plan_initial_route(
    rule: Optional[ApprovalRuleRecord],
    employee: UserRecord,
    user_lookup: UserLookup,
) -> Route:
    """Resolve the first approver of an expense.

    Precedence: no rule falls back to the direct manager; multi-level rules use
    the first approver of the first level; manager-approval rules use the
    direct manager; otherwise the first custom approver. A route without an
    approver is returned (not raised) when nobody can be determined.
    """
    if rule is None:
        return manager_route(employee, user_lookup)

    if rule.levels:
        return _approver_route(rule.levels[0].first_approver, rule)

    if rule.is_manager_approver:
        return manager_route(employee, user_lookup, rule)

    return _approver_route(rule.approvers[0] if rule.approvers else None, rule)
