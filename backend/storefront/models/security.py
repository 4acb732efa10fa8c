from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class SecurityEvent(db.Model):
    """
    Append-only audit log of access denials and role changes.

    user_id is kept as a plain column (no FK) so the trail survives user deletion.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_user_type", "user_id", "event_type"),
        db.Index("ix_security_events_occurred", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)  # Nullable for anonymous

    event_type = db.Column(db.String(64), nullable=False, index=True)  # ACCESS_DENIED, ROLE_ASSIGNED, USER_DELETED, ...
    resource = db.Column(db.String(128), nullable=True)
    action = db.Column(db.String(64), nullable=True)

    success = db.Column(db.Boolean, nullable=False)
    reason = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }
