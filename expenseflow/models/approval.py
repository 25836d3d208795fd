"""Approval rule and approval history models."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from expenseflow import db
from expenseflow.workflow.types import (
    ApprovalLevel,
    ApprovalRuleRecord,
    ApproverRef,
    HistoryAction,
    HistoryEntry,
    RuleCondition,
)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything is stored as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class ApprovalRule(db.Model):
    __tablename__ = "approval_rules"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    is_manager_approver = db.Column(db.Boolean, nullable=False, default=True)
    conditions = db.Column(db.JSON, nullable=False, default=list)
    approvers = db.Column(db.JSON, nullable=False, default=list)
    levels = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, server_default=db.func.now(), nullable=False)

    company = db.relationship("Company", back_populates="approval_rules", lazy="joined")

    def apply_record(self, record: ApprovalRuleRecord) -> "ApprovalRule":
        self.company_id = record.company_id
        self.name = record.name
        self.position = record.position
        self.is_manager_approver = record.is_manager_approver
        self.conditions = [condition.to_dict() for condition in record.conditions]
        self.approvers = [approver.to_dict() for approver in record.approvers]
        self.levels = [level.to_dict() for level in record.levels]
        return self

    def to_record(self) -> ApprovalRuleRecord:
        return ApprovalRuleRecord(
            id=self.id,
            company_id=self.company_id,
            name=self.name,
            position=self.position or 0,
            is_manager_approver=bool(self.is_manager_approver),
            conditions=tuple(RuleCondition.from_dict(c) for c in self.conditions or ()),
            approvers=tuple(ApproverRef.from_dict(a) for a in self.approvers or ()),
            levels=tuple(ApprovalLevel.from_dict(level) for level in self.levels or ()),
        )

    def to_dict(self) -> dict:
        payload = self.to_record().to_dict()
        payload["created_at"] = self.created_at.isoformat() if self.created_at else None
        return payload

    def __repr__(self) -> str:
        return f"<ApprovalRule id={self.id} name={self.name!r} position={self.position}>"


class ApprovalHistoryEntry(db.Model):
    """One line of an expense's append-only approval history."""

    __tablename__ = "approval_history"
    __table_args__ = (db.UniqueConstraint("expense_id", "sequence", name="uq_approval_history_sequence"),)

    id = db.Column(db.Integer, primary_key=True)
    expense_id = db.Column(db.Integer, db.ForeignKey("expenses.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)
    approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    approver_name = db.Column(db.String(200), nullable=False, default="")
    action = db.Column(db.Enum(HistoryAction, name="history_action"), nullable=False)
    comment = db.Column(db.Text, nullable=True)
    is_override = db.Column(db.Boolean, nullable=False, default=False)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False)

    expense = db.relationship("Expense", back_populates="history")

    @classmethod
    def from_record(cls, entry: HistoryEntry, sequence: int) -> "ApprovalHistoryEntry":
        return cls(
            sequence=sequence,
            approver_id=entry.approver_id,
            approver_name=entry.approver_name,
            action=entry.action,
            comment=entry.comment,
            is_override=entry.is_override,
            timestamp=entry.timestamp,
        )

    def to_record(self) -> HistoryEntry:
        return HistoryEntry(
            approver_id=self.approver_id,
            approver_name=self.approver_name or "",
            action=self.action,
            timestamp=as_utc(self.timestamp),
            comment=self.comment,
            is_override=bool(self.is_override),
        )

    def to_dict(self) -> dict:
        return self.to_record().to_dict()

    def __repr__(self) -> str:
        return (
            f"<ApprovalHistoryEntry expense_id={self.expense_id} #{self.sequence} "
            f"action={self.action.value if self.action else None}>"
        )
