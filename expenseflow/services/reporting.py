"""Dashboard figures for a set of expenses."""
from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable

from expenseflow.workflow.types import ExpenseRecord, ExpenseStatus


def summarize_expenses(expenses: Iterable[ExpenseRecord]) -> Dict[str, object]:
    counts = {status.value: 0 for status in ExpenseStatus if status is not ExpenseStatus.IN_PROGRESS}
    total = Decimal("0")
    approved_total = Decimal("0")
    pending_total = Decimal("0")
    awaiting_assignment = 0
    count = 0

    for expense in expenses:
        count += 1
        counts[expense.status.value] = counts.get(expense.status.value, 0) + 1
        total += expense.routing_amount
        if expense.status is ExpenseStatus.APPROVED:
            approved_total += expense.routing_amount
        elif expense.status is ExpenseStatus.PENDING:
            pending_total += expense.routing_amount
        if expense.is_unrouted:
            awaiting_assignment += 1

    return {
        "total_expenses": count,
        "by_status": counts,
        "awaiting_assignment": awaiting_assignment,
        "total_amount": float(total),
        "approved_amount": float(approved_total),
        "pending_amount": float(pending_total),
    }
