"""Application data models exposed for easy imports."""
from expenseflow import db  # noqa: F401
from expenseflow.workflow.types import ExpenseCategory, ExpenseStatus, HistoryAction, UserRole  # noqa: F401
from .company import Company  # noqa: F401
from .user import User  # noqa: F401
from .approval import ApprovalHistoryEntry, ApprovalRule  # noqa: F401
from .expense import Expense  # noqa: F401
from .audit import AuditLog  # noqa: F401

__all__ = [
    "db",
    "Company",
    "User",
    "UserRole",
    "Expense",
    "ExpenseCategory",
    "ExpenseStatus",
    "ApprovalHistoryEntry",
    "ApprovalRule",
    "HistoryAction",
    "AuditLog",
]
