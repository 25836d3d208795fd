"""Value types shared by the approval-routing engine.

Records are frozen dataclasses. Workflow code never mutates a record in place;
every transition builds a new one with ``dataclasses.replace`` so the ledger can
compare the stored record with its replacement.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple


class UserRole(enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class ExpenseStatus(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    # Accepted when loading stored records; routing never produces it.
    IN_PROGRESS = "in_progress"


TERMINAL_STATUSES = frozenset({ExpenseStatus.APPROVED, ExpenseStatus.REJECTED})


class HistoryAction(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ExpenseCategory(enum.Enum):
    TRAVEL = "Travel"
    FOOD = "Food"
    ACCOMMODATION = "Accommodation"
    TRANSPORTATION = "Transportation"
    OFFICE_SUPPLIES = "Office Supplies"
    ENTERTAINMENT = "Entertainment"
    OTHER = "Other"


class ConditionField(enum.Enum):
    AMOUNT = "amount"
    CATEGORY = "category"


class ConditionOperator(enum.Enum):
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    EQ = "="


@dataclass(frozen=True)
class CompanyRecord:
    id: int
    name: str
    currency_code: str
    country: str = ""


@dataclass(frozen=True)
class UserRecord:
    id: int
    name: str
    role: UserRole
    company_id: int
    manager_id: Optional[int] = None
    email: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN


@dataclass(frozen=True)
class ApproverRef:
    user_id: int
    user_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"user_id": self.user_id, "user_name": self.user_name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApproverRef":
        return cls(user_id=int(data["user_id"]), user_name=data.get("user_name") or "")


@dataclass(frozen=True)
class RuleCondition:
    field: ConditionField
    operator: ConditionOperator
    value: str

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field.value, "operator": self.operator.value, "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuleCondition":
        return cls(
            field=ConditionField(data["field"]),
            operator=ConditionOperator(data.get("operator", "=")),
            value=str(data["value"]),
        )


@dataclass(frozen=True)
class ApprovalLevel:
    level: int
    approvers: Tuple[ApproverRef, ...] = ()

    @property
    def first_approver(self) -> Optional[ApproverRef]:
        return self.approvers[0] if self.approvers else None

    def includes(self, user_id: int) -> bool:
        return any(approver.user_id == user_id for approver in self.approvers)

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level, "approvers": [a.to_dict() for a in self.approvers]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalLevel":
        return cls(
            level=int(data["level"]),
            approvers=tuple(ApproverRef.from_dict(a) for a in data.get("approvers") or ()),
        )


@dataclass(frozen=True)
class ApprovalRuleRecord:
    id: Optional[int]
    company_id: int
    name: str
    conditions: Tuple[RuleCondition, ...] = ()
    is_manager_approver: bool = True
    approvers: Tuple[ApproverRef, ...] = ()
    levels: Tuple[ApprovalLevel, ...] = ()
    position: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "position": self.position,
            "conditions": [c.to_dict() for c in self.conditions],
            "is_manager_approver": self.is_manager_approver,
            "approvers": [a.to_dict() for a in self.approvers],
            "levels": [level.to_dict() for level in self.levels],
        }


@dataclass(frozen=True)
class HistoryEntry:
    approver_id: int
    approver_name: str
    action: HistoryAction
    timestamp: datetime
    comment: Optional[str] = None
    is_override: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "approver_id": self.approver_id,
            "approver_name": self.approver_name,
            "action": self.action.value,
            "comment": self.comment,
            "is_override": self.is_override,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class ExpenseRecord:
    id: Optional[int]
    employee_id: int
    employee_name: str
    company_id: int
    amount: Decimal
    currency: str
    category: ExpenseCategory
    amount_in_company_currency: Optional[Decimal] = None
    description: str = ""
    date_spent: Optional[date] = None
    receipt_url: Optional[str] = None
    status: ExpenseStatus = ExpenseStatus.PENDING
    current_approver_id: Optional[int] = None
    approval_history: Tuple[HistoryEntry, ...] = ()
    created_at: Optional[datetime] = None
    version: int = 0

    @property
    def routing_amount(self) -> Decimal:
        """Amount used for rule matching: company currency when known."""
        if self.amount_in_company_currency is not None:
            return self.amount_in_company_currency
        return self.amount

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_unrouted(self) -> bool:
        return not self.is_terminal and self.current_approver_id is None

    @property
    def routing_state(self) -> str:
        if self.is_terminal:
            return "closed"
        if self.current_approver_id is None:
            return "awaiting_assignment"
        return "awaiting_approval"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "employee_name": self.employee_name,
            "company_id": self.company_id,
            "amount": float(self.amount),
            "currency": self.currency,
            "amount_in_company_currency": float(self.amount_in_company_currency)
            if self.amount_in_company_currency is not None
            else None,
            "category": self.category.value,
            "description": self.description,
            "date_spent": self.date_spent.isoformat() if self.date_spent else None,
            "receipt_url": self.receipt_url,
            "status": self.status.value,
            "current_approver_id": self.current_approver_id,
            "routing_state": self.routing_state,
            "approval_history": [entry.to_dict() for entry in self.approval_history],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "version": self.version,
        }


@dataclass(frozen=True)
class Route:
    """The first approver resolved for a new expense."""

    approver_id: Optional[int] = None
    approver_name: str = ""
    rule: Optional[ApprovalRuleRecord] = None

    @property
    def is_routed(self) -> bool:
        return self.approver_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "approver_id": self.approver_id,
            "approver_name": self.approver_name,
            "rule_id": self.rule.id if self.rule else None,
            "rule_name": self.rule.name if self.rule else None,
        }
