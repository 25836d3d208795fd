"""Flask-SQLAlchemy implementation of the workflow repository."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm.exc import StaleDataError

from expenseflow.models import ApprovalRule, AuditLog, Company, Expense, ExpenseStatus, User, db
from expenseflow.workflow.exceptions import ConcurrentUpdateError, ExpenseNotFoundError
from expenseflow.workflow.types import ApprovalRuleRecord, CompanyRecord, ExpenseRecord, UserRecord

logger = logging.getLogger(__name__)


class SqlAlchemyRepository:
    """Each write commits its own unit of work."""

    def __init__(self, session=None) -> None:
        self.session = session or db.session

    def _commit(self, expense_id: Optional[int] = None) -> None:
        try:
            self.session.commit()
        except StaleDataError as exc:
            self.session.rollback()
            raise ConcurrentUpdateError(
                f"Expense {expense_id} was modified concurrently.", expense_id=expense_id
            ) from exc

    # Companies and users ---------------------------------------------------

    def get_company(self, company_id: int) -> Optional[CompanyRecord]:
        company = self.session.get(Company, company_id)
        return company.to_record() if company else None

    def get_user(self, user_id: Optional[int]) -> Optional[UserRecord]:
        if user_id is None:
            return None
        user = self.session.get(User, user_id)
        return user.to_record() if user else None

    def users_by_company(self, company_id: int) -> List[UserRecord]:
        users = User.query.filter_by(company_id=company_id).order_by(User.id).all()
        return [user.to_record() for user in users]

    def users_by_manager(self, manager_id: int) -> List[UserRecord]:
        users = User.query.filter_by(manager_id=manager_id).order_by(User.id).all()
        return [user.to_record() for user in users]

    # Rules -----------------------------------------------------------------

    def get_rules_by_company(self, company_id: int) -> List[ApprovalRuleRecord]:
        rules = (
            ApprovalRule.query.filter_by(company_id=company_id)
            .order_by(ApprovalRule.position.asc(), ApprovalRule.id.asc())
            .all()
        )
        return [rule.to_record() for rule in rules]

    def get_rule(self, rule_id: int) -> Optional[ApprovalRuleRecord]:
        rule = self.session.get(ApprovalRule, rule_id)
        return rule.to_record() if rule else None

    def save_rule(self, rule: ApprovalRuleRecord) -> ApprovalRuleRecord:
        model = self.session.get(ApprovalRule, rule.id) if rule.id is not None else None
        if model is None:
            model = ApprovalRule()
            self.session.add(model)
        model.apply_record(rule)
        self._commit()
        return model.to_record()

    def delete_rule(self, rule_id: int) -> None:
        model = self.session.get(ApprovalRule, rule_id)
        if model is not None:
            self.session.delete(model)
            self._commit()

    # Expenses --------------------------------------------------------------

    def get_expense(self, expense_id: int) -> Optional[ExpenseRecord]:
        expense = self.session.get(Expense, expense_id, populate_existing=True)
        return expense.to_record() if expense else None

    def add_expense(self, expense: ExpenseRecord) -> ExpenseRecord:
        model = Expense.from_record(expense)
        self.session.add(model)
        self._commit()
        return model.to_record()

    def put_expense(self, expense: ExpenseRecord, expected_version: int) -> ExpenseRecord:
        model = self.session.get(Expense, expense.id, populate_existing=True)
        if model is None:
            raise ExpenseNotFoundError(expense.id)
        if model.version_id != expected_version:
            raise ConcurrentUpdateError(
                f"Expense {expense.id} is at version {model.version_id}, expected {expected_version}.",
                expense_id=expense.id,
            )
        model.apply_record(expense)
        self._commit(expense.id)
        return model.to_record()

    def delete_expense(self, expense_id: int) -> None:
        model = self.session.get(Expense, expense_id)
        if model is not None:
            self.session.delete(model)
            self._commit(expense_id)

    def expenses_for_employees(self, employee_ids: Iterable[int]) -> List[ExpenseRecord]:
        ids = list(employee_ids)
        if not ids:
            return []
        expenses = (
            Expense.query.filter(Expense.employee_id.in_(ids))
            .order_by(Expense.created_at.desc(), Expense.id.desc())
            .all()
        )
        return [expense.to_record() for expense in expenses]

    def pending_expenses_for_approver(self, approver_id: int) -> List[ExpenseRecord]:
        expenses = (
            Expense.query.filter_by(current_approver_id=approver_id, status=ExpenseStatus.PENDING)
            .order_by(Expense.created_at.desc(), Expense.id.desc())
            .all()
        )
        return [expense.to_record() for expense in expenses]

    def log_action(
        self,
        entity_type: str,
        entity_id: int,
        user_id: Optional[int],
        action: str,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.session.add(
            AuditLog(
                entity_type=entity_type,
                entity_id=entity_id,
                user_id=user_id,
                action=action,
                extra_data=extra_data,
            )
        )
        self._commit()
        logger.debug("Audit %s#%s %s by user %s", entity_type, entity_id, action, user_id)
