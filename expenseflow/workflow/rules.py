"""Approval rule selection.

Rules are evaluated in stored order and the first rule whose conditions all
hold wins. A rule without conditions matches every expense, so a catch-all rule
placed last acts as the company default.
"""
from __future__ import annotations

import operator
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .exceptions import RuleValidationError
from .types import (
    ApprovalLevel,
    ApprovalRuleRecord,
    ApproverRef,
    ConditionField,
    ConditionOperator,
    ExpenseCategory,
    RuleCondition,
)

_COMPARATORS: Dict[ConditionOperator, Callable[[Decimal, Decimal], bool]] = {
    ConditionOperator.GT: operator.gt,
    ConditionOperator.LT: operator.lt,
    ConditionOperator.GTE: operator.ge,
    ConditionOperator.LTE: operator.le,
    ConditionOperator.EQ: operator.eq,
}


def _as_decimal(value: Any) -> Optional[Decimal]:
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return parsed if parsed.is_finite() else None


def condition_holds(condition: RuleCondition, amount: Decimal, category: ExpenseCategory) -> bool:
    """Evaluate a single condition against an expense's amount and category."""
    if condition.field is ConditionField.AMOUNT:
        threshold = _as_decimal(condition.value)
        if threshold is None:
            return False
        return _COMPARATORS[condition.operator](Decimal(amount), threshold)

    if condition.field is ConditionField.CATEGORY:
        return category.value == condition.value

    return False


def rule_matches(rule: ApprovalRuleRecord, amount: Decimal, category: ExpenseCategory) -> bool:
    return all(condition_holds(condition, amount, category) for condition in rule.conditions)


def match_rule(
    rules: Iterable[ApprovalRuleRecord],
    amount: Decimal,
    category: ExpenseCategory,
) -> Optional[ApprovalRuleRecord]:
    """Return the first rule, in the order given, whose conditions all hold."""
    for rule in rules:
        if rule_matches(rule, amount, category):
            return rule
    return None


def validate_rule(rule: ApprovalRuleRecord) -> ApprovalRuleRecord:
    """Check structural invariants before a rule is stored."""
    if not rule.name or not rule.name.strip():
        raise RuleValidationError("Approval rule requires a name.")

    for condition in rule.conditions:
        if condition.field is ConditionField.AMOUNT and _as_decimal(condition.value) is None:
            raise RuleValidationError(f"Amount condition value '{condition.value}' is not a number.")
        if condition.field is ConditionField.CATEGORY:
            try:
                ExpenseCategory(condition.value)
            except ValueError:
                raise RuleValidationError(f"Unknown category '{condition.value}'.") from None

    for level in rule.levels:
        if level.level < 1:
            raise RuleValidationError("Approval level numbers start at 1.")
        seen = set()
        for approver in level.approvers:
            if approver.user_id in seen:
                raise RuleValidationError(
                    f"User {approver.user_id} is listed twice in level {level.level}."
                )
            seen.add(approver.user_id)

    return rule


def rule_from_payload(payload: Dict[str, Any], company_id: int, rule_id: Optional[int] = None) -> ApprovalRuleRecord:
    """Build a validated rule record from a JSON payload."""
    try:
        conditions = tuple(RuleCondition.from_dict(c) for c in payload.get("conditions") or ())
        approvers = tuple(ApproverRef.from_dict(a) for a in payload.get("approvers") or ())
        levels = tuple(ApprovalLevel.from_dict(level) for level in payload.get("levels") or ())
        position = int(payload.get("position") or 0)
    except (KeyError, TypeError, ValueError) as exc:
        raise RuleValidationError(f"Malformed approval rule: {exc}") from exc

    rule = ApprovalRuleRecord(
        id=rule_id,
        company_id=company_id,
        name=str(payload.get("name") or "").strip(),
        conditions=conditions,
        is_manager_approver=bool(payload.get("is_manager_approver", True)),
        approvers=approvers,
        levels=levels,
        position=position,
    )
    return validate_rule(rule)


def ordered(rules: Sequence[ApprovalRuleRecord]) -> List[ApprovalRuleRecord]:
    """Stored order: position first, then insertion (id)."""
    return sorted(rules, key=lambda r: (r.position, r.id if r.id is not None else 0))
