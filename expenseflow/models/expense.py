"""Expense model definitions."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from expenseflow import db
from expenseflow.workflow.types import ExpenseCategory, ExpenseRecord, ExpenseStatus

from .approval import ApprovalHistoryEntry, as_utc


class Expense(db.Model):
    __tablename__ = "expenses"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    employee_name = db.Column(db.String(200), nullable=False, default="")
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(10), nullable=False)
    amount_in_company_currency = db.Column(db.Numeric(12, 2), nullable=True)
    category = db.Column(db.Enum(ExpenseCategory, name="expense_category"), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    date_spent = db.Column(db.Date, nullable=True)
    receipt_url = db.Column(db.String(255), nullable=True)
    status = db.Column(
        db.Enum(ExpenseStatus, name="expense_status"),
        nullable=False,
        default=ExpenseStatus.PENDING,
        index=True,
    )
    current_approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    company = db.relationship("Company", lazy="joined")
    employee = db.relationship("User", foreign_keys=[employee_id], lazy="joined")
    current_approver = db.relationship("User", foreign_keys=[current_approver_id], lazy="joined")
    history = db.relationship(
        "ApprovalHistoryEntry",
        back_populates="expense",
        order_by="ApprovalHistoryEntry.sequence",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    @classmethod
    def from_record(cls, record: ExpenseRecord) -> "Expense":
        expense = cls(
            company_id=record.company_id,
            employee_id=record.employee_id,
            created_at=record.created_at or datetime.now(timezone.utc),
        )
        expense.apply_record(record)
        return expense

    def apply_record(self, record: ExpenseRecord) -> None:
        """Copy workflow fields and append any history entries not yet stored."""
        self.employee_name = record.employee_name
        self.amount = Decimal(record.amount)
        self.currency = record.currency
        self.amount_in_company_currency = record.amount_in_company_currency
        self.category = record.category
        self.description = record.description or ""
        self.date_spent = record.date_spent
        self.receipt_url = record.receipt_url
        self.status = record.status
        self.current_approver_id = record.current_approver_id
        self.updated_at = datetime.now(timezone.utc)

        stored = len(self.history)
        for sequence, entry in enumerate(record.approval_history[stored:], start=stored):
            self.history.append(ApprovalHistoryEntry.from_record(entry, sequence))

    def to_record(self) -> ExpenseRecord:
        return ExpenseRecord(
            id=self.id,
            employee_id=self.employee_id,
            employee_name=self.employee_name or "",
            company_id=self.company_id,
            amount=Decimal(self.amount),
            currency=self.currency,
            category=self.category,
            amount_in_company_currency=Decimal(self.amount_in_company_currency)
            if self.amount_in_company_currency is not None
            else None,
            description=self.description or "",
            date_spent=self.date_spent,
            receipt_url=self.receipt_url,
            status=self.status,
            current_approver_id=self.current_approver_id,
            approval_history=tuple(entry.to_record() for entry in self.history),
            created_at=as_utc(self.created_at),
            version=self.version_id,
        )

    def to_dict(self) -> dict:
        return self.to_record().to_dict()

    def __repr__(self) -> str:
        return f"<Expense id={self.id} status={self.status.value if self.status else None}>"
