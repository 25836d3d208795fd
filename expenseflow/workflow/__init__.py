"""Approval-routing engine: rule matching, routing, decisions and the ledger."""
from .exceptions import (  # noqa: F401
    ConcurrentUpdateError,
    ExpenseNotFoundError,
    LedgerInvariantError,
    NotAuthorizedError,
    NotCurrentApproverError,
    RuleValidationError,
    StaleDecisionError,
    UserNotFoundError,
    WorkflowError,
)
from .ledger import ExpenseLedger, RecordLocks  # noqa: F401
from .routing import plan_initial_route  # noqa: F401
from .rules import match_rule, rule_from_payload, validate_rule  # noqa: F401
from .state_machine import decide, open_expense, override  # noqa: F401
from .types import (  # noqa: F401
    ApprovalLevel,
    ApprovalRuleRecord,
    ApproverRef,
    CompanyRecord,
    ConditionField,
    ConditionOperator,
    ExpenseCategory,
    ExpenseRecord,
    ExpenseStatus,
    HistoryAction,
    HistoryEntry,
    Route,
    RuleCondition,
    UserRecord,
    UserRole,
)

__all__ = [
    "ApprovalLevel",
    "ApprovalRuleRecord",
    "ApproverRef",
    "CompanyRecord",
    "ConcurrentUpdateError",
    "ConditionField",
    "ConditionOperator",
    "ExpenseCategory",
    "ExpenseLedger",
    "ExpenseNotFoundError",
    "ExpenseRecord",
    "ExpenseStatus",
    "HistoryAction",
    "HistoryEntry",
    "LedgerInvariantError",
    "NotAuthorizedError",
    "NotCurrentApproverError",
    "RecordLocks",
    "Route",
    "RuleCondition",
    "RuleValidationError",
    "StaleDecisionError",
    "UserNotFoundError",
    "UserRecord",
    "UserRole",
    "WorkflowError",
    "decide",
    "match_rule",
    "open_expense",
    "override",
    "plan_initial_route",
    "rule_from_payload",
    "validate_rule",
]
