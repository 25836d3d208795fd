"""Audit trail of privileged actions (overrides, deletions)."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List

from expenseflow import db

from .approval import as_utc


class AuditLog(db.Model):
    __tablename__ = "audit_logs"
    __table_args__ = (db.Index("ix_audit_logs_entity", "entity_type", "entity_id"),)

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(50), nullable=False)
    # Not a foreign key: deleted expenses keep their trail.
    entity_id = db.Column(db.Integer, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    action = db.Column(db.String(50), nullable=False)
    extra_data = db.Column(db.JSON, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    actor = db.relationship("User", lazy="joined")

    @classmethod
    def for_entity(cls, entity_type: str, entity_id: int) -> List["AuditLog"]:
        return (
            cls.query.filter_by(entity_type=entity_type, entity_id=entity_id)
            .order_by(cls.created_at.asc(), cls.id.asc())
            .all()
        )

    def to_dict(self) -> dict:
        created_at = as_utc(self.created_at)
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "user_id": self.user_id,
            "user_name": self.actor.name if self.actor else None,
            "details": self.extra_data or {},
            "created_at": created_at.isoformat() if created_at else None,
        }

    def __repr__(self) -> str:
        return f"<AuditLog {self.entity_type}:{self.entity_id} {self.action}>"
