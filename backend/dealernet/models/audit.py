from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

AUDIT_ACTION_ROLE_UPDATE = "role_update"
AUDIT_ACTION_STATUS_UPDATE = "status_update"
AUDIT_ACTION_REMOVAL = "removal"


class UserAuditLog(db.Model):
    """
    One row per governance mutation of a user (role/status change, removal).

    IMMUTABLE: append-only; written in the same transaction as the user update.
    changes holds {"previous": {...}, "new": {...}}.
    """
    __tablename__ = "user_audit_logs"
    __table_args__ = (
        db.Index("ix_user_audit_logs_target_created", "target_user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    target_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    performed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    action = db.Column(db.String(50), nullable=False)
    changes = db.Column(db.JSON, nullable=False)
    reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    target_user = db.relationship("User", foreign_keys=[target_user_id])
    performed_by = db.relationship("User", foreign_keys=[performed_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "target_user": {
                "id": self.target_user_id,
                "email": self.target_user.email if self.target_user else None,
            },
            "performed_by": {
                "id": self.performed_by_id,
                "email": self.performed_by.email if self.performed_by else None,
            },
            "action": self.action,
            "changes": self.changes,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }
