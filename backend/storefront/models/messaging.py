from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Message(db.Model):
    """
    A message from a signed-in user to a recipient target.

    recipient_type / recipient_id:
    - admin + NULL          every admin
    - admin + user id       one specific admin
    - all_employees + NULL  every employee
    - employee + user id    one specific employee
    - user + user id        one specific user

    A message takes at most one reply. is_read tracks whether the sender has
    seen the reply; seen_by_recipient tracks whether the recipient side has
    opened the message. Deletion is a hard delete of the row.
    """
    __tablename__ = "messages"
    __table_args__ = (
        db.Index("ix_messages_recipient", "recipient_type", "recipient_id"),
        db.Index("ix_messages_sender_created", "sender_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sender_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    subject = db.Column(db.String(255), nullable=False)
    body = db.Column(db.Text, nullable=False)

    recipient_type = db.Column(db.String(16), nullable=False, default="admin")  # admin, all_employees, employee, user
    recipient_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    reply = db.Column(db.Text, nullable=True)
    replied_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    replied_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=True)
    seen_by_recipient = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sender = db.relationship("User", foreign_keys=[sender_id])
    recipient = db.relationship("User", foreign_keys=[recipient_id])
    replied_by = db.relationship("User", foreign_keys=[replied_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "subject": self.subject,
            "body": self.body,
            "recipient_type": self.recipient_type,
            "recipient_id": self.recipient_id,
            "reply": self.reply,
            "replied_by_id": self.replied_by_id,
            "replied_at": to_utc_z(self.replied_at),
            "is_read": self.is_read,
            "seen_by_recipient": self.seen_by_recipient,
            "created_at": to_utc_z(self.created_at),
        }
