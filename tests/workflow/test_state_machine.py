"""
Tests for the approval state machine.

- open_expense: initial pending entry, unrouted submissions
- decide: single approver, level hand-off, rejection, guards
- override: admin-only, clears the approver, marks the entry
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from expenseflow.workflow.exceptions import (
    NotAuthorizedError,
    NotCurrentApproverError,
    StaleDecisionError,
    WorkflowError,
)
from expenseflow.workflow.state_machine import decide, next_level_approver, open_expense, override
from expenseflow.workflow.types import (
    ApprovalLevel,
    ApprovalRuleRecord,
    ApproverRef,
    ExpenseCategory,
    ExpenseRecord,
    ExpenseStatus,
    HistoryAction,
    Route,
)

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def lookup_from(staff):
    users = {user.id: user for user in vars(staff).values()}
    return lambda user_id: users.get(user_id)


def draft(staff, **kwargs) -> ExpenseRecord:
    values = dict(
        id=1,
        employee_id=staff.employee.id,
        employee_name=staff.employee.name,
        company_id=1,
        amount=Decimal("1200"),
        currency="USD",
        category=ExpenseCategory.TRAVEL,
        amount_in_company_currency=Decimal("1200"),
    )
    values.update(kwargs)
    return ExpenseRecord(**values)


def pending_for(staff, approver) -> ExpenseRecord:
    return open_expense(draft(staff), Route(approver_id=approver.id, approver_name=approver.name), NOW)


def three_levels(staff) -> ApprovalRuleRecord:
    return ApprovalRuleRecord(
        id=3,
        company_id=1,
        name="three levels",
        is_manager_approver=False,
        levels=(
            ApprovalLevel(1, (ApproverRef(staff.a.id, staff.a.name),)),
            ApprovalLevel(2, (ApproverRef(staff.b.id, staff.b.name),)),
            ApprovalLevel(3, (ApproverRef(staff.c.id, staff.c.name),)),
        ),
    )


class TestOpenExpense:
    def test_routed_expense_gets_one_pending_entry(self, staff):
        expense = pending_for(staff, staff.manager)

        assert expense.status is ExpenseStatus.PENDING
        assert expense.current_approver_id == staff.manager.id
        assert len(expense.approval_history) == 1
        entry = expense.approval_history[0]
        assert entry.action is HistoryAction.PENDING
        assert entry.approver_id == staff.manager.id
        assert entry.timestamp == NOW

    def test_unrouted_expense_has_empty_history(self, staff):
        expense = open_expense(draft(staff), Route(), NOW)

        assert expense.status is ExpenseStatus.PENDING
        assert expense.current_approver_id is None
        assert expense.approval_history == ()
        assert expense.routing_state == "awaiting_assignment"


class TestDecide:
    def test_single_approver_approval_is_terminal(self, staff):
        expense = pending_for(staff, staff.manager)

        result = decide(
            expense, staff.manager, None, HistoryAction.APPROVED,
            user_lookup=lookup_from(staff), now=NOW, comment="fine",
        )

        assert result.status is ExpenseStatus.APPROVED
        assert result.current_approver_id is None
        assert result.approval_history[:1] == expense.approval_history
        assert result.approval_history[-1].action is HistoryAction.APPROVED
        assert result.approval_history[-1].comment == "fine"

    def test_approval_hands_off_to_next_level(self, staff):
        rule = three_levels(staff)
        expense = pending_for(staff, staff.a)

        result = decide(expense, staff.a, rule, HistoryAction.APPROVED, user_lookup=lookup_from(staff), now=NOW)

        assert result.status is ExpenseStatus.PENDING
        assert result.current_approver_id == staff.b.id
        assert [entry.action for entry in result.approval_history] == [
            HistoryAction.PENDING,
            HistoryAction.APPROVED,
            HistoryAction.PENDING,
        ]
        assert result.approval_history[-1].approver_name == "Ben Approver"

    def test_last_level_approval_is_terminal(self, staff):
        rule = three_levels(staff)
        expense = pending_for(staff, staff.c)

        result = decide(expense, staff.c, rule, HistoryAction.APPROVED, user_lookup=lookup_from(staff), now=NOW)

        assert result.status is ExpenseStatus.APPROVED
        assert result.current_approver_id is None

    def test_rejection_skips_remaining_levels(self, staff):
        rule = three_levels(staff)
        expense = pending_for(staff, staff.a)

        result = decide(expense, staff.a, rule, HistoryAction.REJECTED, user_lookup=lookup_from(staff), now=NOW)

        assert result.status is ExpenseStatus.REJECTED
        assert result.current_approver_id is None
        assert len(result.approval_history) == 2

    def test_empty_next_level_leaves_expense_unrouted(self, staff):
        rule = ApprovalRuleRecord(
            id=4,
            company_id=1,
            name="gap",
            levels=(ApprovalLevel(1, (ApproverRef(staff.a.id),)), ApprovalLevel(2, ())),
        )
        expense = pending_for(staff, staff.a)

        result = decide(expense, staff.a, rule, HistoryAction.APPROVED, user_lookup=lookup_from(staff), now=NOW)

        assert result.status is ExpenseStatus.PENDING
        assert result.current_approver_id is None
        assert result.approval_history[-1].action is HistoryAction.APPROVED

    def test_unknown_next_approver_gets_blank_name(self, staff):
        rule = ApprovalRuleRecord(
            id=5,
            company_id=1,
            name="ghost",
            levels=(ApprovalLevel(1, (ApproverRef(staff.a.id),)), ApprovalLevel(2, (ApproverRef(999),))),
        )
        expense = pending_for(staff, staff.a)

        result = decide(expense, staff.a, rule, HistoryAction.APPROVED, user_lookup=lookup_from(staff), now=NOW)

        assert result.current_approver_id == 999
        assert result.approval_history[-1].approver_name == ""

    def test_only_current_approver_may_decide(self, staff):
        expense = pending_for(staff, staff.manager)

        with pytest.raises(NotCurrentApproverError):
            decide(expense, staff.a, None, HistoryAction.APPROVED, user_lookup=lookup_from(staff), now=NOW)

    def test_unrouted_expense_cannot_be_decided(self, staff):
        expense = open_expense(draft(staff), Route(), NOW)

        with pytest.raises(NotCurrentApproverError):
            decide(expense, staff.manager, None, HistoryAction.APPROVED, user_lookup=lookup_from(staff), now=NOW)

    def test_closed_expense_cannot_be_decided_again(self, staff):
        expense = pending_for(staff, staff.manager)
        approved = decide(expense, staff.manager, None, HistoryAction.APPROVED, user_lookup=lookup_from(staff), now=NOW)

        with pytest.raises(StaleDecisionError):
            decide(approved, staff.manager, None, HistoryAction.REJECTED, user_lookup=lookup_from(staff), now=NOW)

    def test_pending_is_not_a_decision(self, staff):
        expense = pending_for(staff, staff.manager)

        with pytest.raises(WorkflowError):
            decide(expense, staff.manager, None, HistoryAction.PENDING, user_lookup=lookup_from(staff), now=NOW)


class TestNextLevelApprover:
    def test_approver_outside_any_level_has_no_next(self, staff):
        assert next_level_approver(three_levels(staff), staff.manager.id) == (False, None)

    def test_approver_on_several_levels_advances_from_first_match(self, staff):
        rule = ApprovalRuleRecord(
            id=6,
            company_id=1,
            name="repeat",
            levels=(
                ApprovalLevel(1, (ApproverRef(staff.a.id),)),
                ApprovalLevel(2, (ApproverRef(staff.b.id),)),
                ApprovalLevel(3, (ApproverRef(staff.a.id),)),
            ),
        )

        has_next, approver = next_level_approver(rule, staff.a.id)

        assert has_next is True
        assert approver.user_id == staff.b.id


class TestOverride:
    def test_admin_override_closes_expense(self, staff):
        expense = pending_for(staff, staff.a)

        result = override(expense, staff.admin, HistoryAction.APPROVED, now=NOW)

        assert result.status is ExpenseStatus.APPROVED
        assert result.current_approver_id is None
        entry = result.approval_history[-1]
        assert entry.is_override is True
        assert entry.comment == "Admin override: approved"

    def test_override_may_reverse_a_closed_expense(self, staff):
        expense = pending_for(staff, staff.manager)
        rejected = decide(expense, staff.manager, None, HistoryAction.REJECTED, user_lookup=lookup_from(staff), now=NOW)

        result = override(rejected, staff.admin, HistoryAction.APPROVED, now=NOW, comment="Escalated")

        assert result.status is ExpenseStatus.APPROVED
        assert result.approval_history[-1].comment == "Escalated"
        assert len(result.approval_history) == 3

    def test_non_admin_cannot_override(self, staff):
        expense = pending_for(staff, staff.manager)

        with pytest.raises(NotAuthorizedError):
            override(expense, staff.manager, HistoryAction.APPROVED, now=NOW)

    def test_admin_of_other_company_cannot_override(self, staff):
        expense = pending_for(staff, staff.manager)

        with pytest.raises(NotAuthorizedError):
            override(expense, staff.outsider, HistoryAction.REJECTED, now=NOW)
