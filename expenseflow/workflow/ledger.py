"""Expense ledger: lifecycle rules and lookup views over stored expenses."""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Dict, Iterator, List, Optional

from .exceptions import ConcurrentUpdateError, ExpenseNotFoundError, LedgerInvariantError
from .types import ExpenseRecord, ExpenseStatus

logger = logging.getLogger(__name__)

PATCHABLE_FIELDS = frozenset({"description", "date_spent", "receipt_url"})
IMMUTABLE_FIELDS = ("employee_id", "company_id")


class RecordLocks:
    """Lazily created re-entrant lock per expense id."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Any, threading.RLock] = {}

    def lock_for(self, key: Any) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    def discard(self, key: Any) -> None:
        """Forget the lock of a record that no longer exists."""
        with self._guard:
            self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


def check_consistency(expense: ExpenseRecord) -> None:
    if expense.is_terminal and expense.current_approver_id is not None:
        raise LedgerInvariantError(
            f"Expense {expense.id} is {expense.status.value} but still has approver "
            f"{expense.current_approver_id}.",
            expense_id=expense.id,
        )


def check_append_only(current: ExpenseRecord, updated: ExpenseRecord) -> None:
    size = len(current.approval_history)
    if len(updated.approval_history) < size or updated.approval_history[:size] != current.approval_history:
        raise LedgerInvariantError(
            f"Approval history of expense {current.id} can only be appended to.",
            expense_id=current.id,
        )


class ExpenseLedger:
    """Guards every write to an expense and serializes writes per record.

    Read-modify-write sequences should run inside :meth:`locked`; the version
    carried by the record is checked again by the repository so writers in
    other processes are detected as well.
    """

    def __init__(self, repository, locks: Optional[RecordLocks] = None) -> None:
        self.repository = repository
        self.locks = locks if locks is not None else RecordLocks()

    @contextmanager
    def locked(self, expense_id: int) -> Iterator[None]:
        with self.locks.lock_for(expense_id):
            try:
                yield
            except ExpenseNotFoundError:
                self.locks.discard(expense_id)
                raise

    def get(self, expense_id: int) -> ExpenseRecord:
        expense = self.repository.get_expense(expense_id)
        if expense is None:
            raise ExpenseNotFoundError(expense_id)
        return expense

    def create(self, expense: ExpenseRecord) -> ExpenseRecord:
        if expense.status is not ExpenseStatus.PENDING:
            raise LedgerInvariantError("New expenses start out pending.")
        check_consistency(expense)
        return self.repository.add_expense(expense)

    def replace_expense(self, updated: ExpenseRecord) -> ExpenseRecord:
        """Store a full replacement produced by a workflow transition."""
        with self.locked(updated.id):
            current = self.get(updated.id)
            if updated.version != current.version:
                raise ConcurrentUpdateError(
                    f"Expense {updated.id} changed since it was read "
                    f"(version {updated.version}, stored {current.version}).",
                    expense_id=updated.id,
                )
            for name in IMMUTABLE_FIELDS:
                if getattr(updated, name) != getattr(current, name):
                    raise LedgerInvariantError(
                        f"Field '{name}' of expense {updated.id} cannot change.", expense_id=updated.id
                    )
            check_append_only(current, updated)
            check_consistency(updated)
            return self.repository.put_expense(updated, expected_version=current.version)

    def patch_expense_fields(self, expense_id: int, **fields: Any) -> ExpenseRecord:
        """Update descriptive fields of an expense still awaiting a decision."""
        unknown = set(fields) - PATCHABLE_FIELDS
        if unknown:
            raise LedgerInvariantError(
                f"Fields {', '.join(sorted(unknown))} cannot be patched.", expense_id=expense_id
            )
        with self.locked(expense_id):
            current = self.get(expense_id)
            if current.is_terminal:
                raise LedgerInvariantError(
                    f"Expense {expense_id} is {current.status.value} and can no longer be edited.",
                    expense_id=expense_id,
                )
            return self.repository.put_expense(replace(current, **fields), expected_version=current.version)

    def delete(self, expense_id: int) -> ExpenseRecord:
        with self.locked(expense_id):
            expense = self.get(expense_id)
            self.repository.delete_expense(expense_id)
            self.locks.discard(expense_id)
            logger.info("Expense %s deleted", expense_id)
            return expense

    # Views -----------------------------------------------------------------

    def for_employee(self, employee_id: int) -> List[ExpenseRecord]:
        return self.repository.expenses_for_employees([employee_id])

    def pending_for_approver(self, approver_id: int) -> List[ExpenseRecord]:
        return [
            expense
            for expense in self.repository.pending_expenses_for_approver(approver_id)
            if expense.status is ExpenseStatus.PENDING and expense.current_approver_id == approver_id
        ]

    def for_company(self, company_id: int) -> List[ExpenseRecord]:
        user_ids = [user.id for user in self.repository.users_by_company(company_id)]
        return self.repository.expenses_for_employees(user_ids)

    def for_team(self, manager_id: int) -> List[ExpenseRecord]:
        member_ids = [user.id for user in self.repository.users_by_manager(manager_id)]
        return self.repository.expenses_for_employees(member_ids)
