"""Tests for ExpenseLedger write guards and lookup views."""

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from expenseflow.workflow.exceptions import ConcurrentUpdateError, ExpenseNotFoundError, LedgerInvariantError
from expenseflow.workflow.ledger import ExpenseLedger, RecordLocks
from expenseflow.workflow.state_machine import open_expense
from expenseflow.workflow.types import (
    ExpenseCategory,
    ExpenseRecord,
    ExpenseStatus,
    HistoryAction,
    HistoryEntry,
    Route,
)

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def ledger(repository):
    return ExpenseLedger(repository)


def submit(ledger, employee, approver=None, amount="100") -> ExpenseRecord:
    route = Route(approver_id=approver.id, approver_name=approver.name) if approver else Route()
    draft = ExpenseRecord(
        id=None,
        employee_id=employee.id,
        employee_name=employee.name,
        company_id=employee.company_id,
        amount=Decimal(amount),
        currency="USD",
        category=ExpenseCategory.FOOD,
    )
    return ledger.create(open_expense(draft, route, NOW))


def approved_entry(user) -> HistoryEntry:
    return HistoryEntry(approver_id=user.id, approver_name=user.name, action=HistoryAction.APPROVED, timestamp=NOW)


class TestReplaceExpense:
    def test_appending_history_is_stored_with_new_version(self, ledger, staff):
        expense = submit(ledger, staff.employee, staff.manager)
        updated = replace(
            expense,
            status=ExpenseStatus.APPROVED,
            current_approver_id=None,
            approval_history=expense.approval_history + (approved_entry(staff.manager),),
        )

        stored = ledger.replace_expense(updated)

        assert stored.version == expense.version + 1
        assert ledger.get(expense.id).status is ExpenseStatus.APPROVED

    def test_rewriting_history_is_refused(self, ledger, staff):
        expense = submit(ledger, staff.employee, staff.manager)

        with pytest.raises(LedgerInvariantError, match="appended"):
            ledger.replace_expense(replace(expense, approval_history=(approved_entry(staff.manager),)))

    def test_truncating_history_is_refused(self, ledger, staff):
        expense = submit(ledger, staff.employee, staff.manager)

        with pytest.raises(LedgerInvariantError):
            ledger.replace_expense(replace(expense, approval_history=()))

    def test_terminal_status_with_approver_is_refused(self, ledger, staff):
        expense = submit(ledger, staff.employee, staff.manager)

        with pytest.raises(LedgerInvariantError):
            ledger.replace_expense(replace(expense, status=ExpenseStatus.REJECTED))

    def test_owner_cannot_change(self, ledger, staff):
        expense = submit(ledger, staff.employee, staff.manager)

        with pytest.raises(LedgerInvariantError, match="employee_id"):
            ledger.replace_expense(replace(expense, employee_id=staff.orphan.id))

    def test_stale_version_is_refused(self, ledger, staff):
        expense = submit(ledger, staff.employee, staff.manager)
        ledger.patch_expense_fields(expense.id, description="first writer")

        with pytest.raises(ConcurrentUpdateError):
            ledger.replace_expense(replace(expense, description="second writer"))

    def test_unknown_expense(self, ledger):
        with pytest.raises(ExpenseNotFoundError):
            ledger.get(404)


class TestPatchExpenseFields:
    def test_descriptive_fields_can_change_while_pending(self, ledger, staff):
        expense = submit(ledger, staff.employee, staff.manager)

        patched = ledger.patch_expense_fields(expense.id, description="Team lunch", receipt_url="/r/1.png")

        assert patched.description == "Team lunch"
        assert patched.receipt_url == "/r/1.png"
        assert patched.approval_history == expense.approval_history

    def test_status_is_not_patchable(self, ledger, staff):
        expense = submit(ledger, staff.employee, staff.manager)

        with pytest.raises(LedgerInvariantError, match="status"):
            ledger.patch_expense_fields(expense.id, status=ExpenseStatus.APPROVED)

    def test_closed_expense_is_frozen(self, ledger, staff):
        expense = submit(ledger, staff.employee, staff.manager)
        ledger.replace_expense(
            replace(
                expense,
                status=ExpenseStatus.APPROVED,
                current_approver_id=None,
                approval_history=expense.approval_history + (approved_entry(staff.manager),),
            )
        )

        with pytest.raises(LedgerInvariantError, match="no longer"):
            ledger.patch_expense_fields(expense.id, description="too late")


class TestCreate:
    def test_new_expense_must_be_pending(self, ledger, staff):
        draft = ExpenseRecord(
            id=None,
            employee_id=staff.employee.id,
            employee_name=staff.employee.name,
            company_id=1,
            amount=Decimal("10"),
            currency="USD",
            category=ExpenseCategory.OTHER,
            status=ExpenseStatus.APPROVED,
        )

        with pytest.raises(LedgerInvariantError):
            ledger.create(draft)


class TestViews:
    def test_pending_for_approver_lists_only_their_queue(self, ledger, staff):
        mine = submit(ledger, staff.employee, staff.manager)
        submit(ledger, staff.employee, staff.a)
        submit(ledger, staff.orphan)

        assert [expense.id for expense in ledger.pending_for_approver(staff.manager.id)] == [mine.id]

    def test_team_view_uses_reporting_line(self, ledger, staff):
        team_expense = submit(ledger, staff.employee, staff.manager)
        submit(ledger, staff.orphan)

        assert [expense.id for expense in ledger.for_team(staff.manager.id)] == [team_expense.id]

    def test_company_view_includes_unrouted_expenses(self, ledger, staff):
        submit(ledger, staff.employee, staff.manager)
        unrouted = submit(ledger, staff.orphan)

        expenses = ledger.for_company(1)

        assert len(expenses) == 2
        assert unrouted.id in {expense.id for expense in expenses}
        assert ledger.get(unrouted.id).routing_state == "awaiting_assignment"

    def test_delete_removes_expense(self, ledger, staff):
        expense = submit(ledger, staff.employee, staff.manager)

        ledger.delete(expense.id)

        assert ledger.for_employee(staff.employee.id) == []


class TestRecordLocks:
    def test_same_key_shares_one_lock(self):
        locks = RecordLocks()

        assert locks.lock_for(1) is locks.lock_for(1)
        assert locks.lock_for(1) is not locks.lock_for(2)

    def test_shared_registry_is_used_even_when_empty(self, repository):
        locks = RecordLocks()

        assert ExpenseLedger(repository, locks).locks is locks

    def test_delete_forgets_the_lock(self, ledger, staff):
        expense = submit(ledger, staff.employee, staff.manager)
        ledger.replace_expense(replace(expense, description="Lunch"))
        assert len(ledger.locks) == 1

        ledger.delete(expense.id)

        assert len(ledger.locks) == 0

    def test_unknown_expense_leaves_no_lock_behind(self, ledger):
        with pytest.raises(ExpenseNotFoundError):
            with ledger.locked(404):
                ledger.get(404)

        assert len(ledger.locks) == 0
