# Overview: Service-layer operations for messages; recipient routing, inbox/sent views, single reply, delete.

"""
Message Store

A message goes from a signed-in user to one recipient target. The target is
one of five variants; each knows how it is stored (recipient_type,
recipient_id) and which users it reaches:

    AllAdmins()            -> ("admin", None)          every admin
    SpecificAdmin(id)      -> ("admin", id)            one admin
    AllEmployees()         -> ("all_employees", None)  every employee
    SpecificEmployee(id)   -> ("employee", id)         one employee
    SpecificUser(id)       -> ("user", id)             one user

A message takes exactly one reply. The reply is written with a conditional
UPDATE ... WHERE reply IS NULL so that two staff answering the same
broadcast cannot overwrite each other: the loser gets ConflictError.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import and_, or_

from ..errors import ConflictError, NotFound, ValidationError
from ..extensions import change_feed, db
from ..models import Message, User
from ..roles import ROLE_ADMIN, ROLE_EMPLOYEE
from ..time_utils import utcnow
from ..validation import clean_text, coerce_int
from . import notification_service, role_service
from .realtime import EVENT_DELETE, EVENT_INSERT, EVENT_UPDATE


TYPE_ADMIN = "admin"
TYPE_ALL_EMPLOYEES = "all_employees"
TYPE_EMPLOYEE = "employee"
TYPE_USER = "user"
# Accepted on input only; stored as admin + recipient_id
TYPE_SPECIFIC_ADMIN = "specific_admin"

VALID_RECIPIENT_TYPES = {TYPE_ADMIN, TYPE_ALL_EMPLOYEES, TYPE_EMPLOYEE, TYPE_USER, TYPE_SPECIFIC_ADMIN}

MAX_SUBJECT_LENGTH = 255

QUEUE_PENDING = "pending"
QUEUE_REPLIED = "replied"


# =============================================================================
# RECIPIENTS
# =============================================================================

@dataclass(frozen=True)
class AllAdmins:
    recipient_type = TYPE_ADMIN
    recipient_id = None
    label = "All admins"

    def reaches(self, ctx) -> bool:
        return ctx.is_admin


@dataclass(frozen=True)
class AllEmployees:
    recipient_type = TYPE_ALL_EMPLOYEES
    recipient_id = None
    label = "All employees"

    def reaches(self, ctx) -> bool:
        if ctx.is_employee:
            return True
        return ctx.is_admin and current_app.config.get("ADMINS_SEE_EMPLOYEE_BROADCASTS", True)


@dataclass(frozen=True)
class SpecificAdmin:
    user_id: int
    recipient_type = TYPE_ADMIN
    required_role = ROLE_ADMIN

    @property
    def recipient_id(self) -> int:
        return self.user_id

    def reaches(self, ctx) -> bool:
        return ctx.user_id == self.user_id


@dataclass(frozen=True)
class SpecificEmployee:
    user_id: int
    recipient_type = TYPE_EMPLOYEE
    required_role = ROLE_EMPLOYEE

    @property
    def recipient_id(self) -> int:
        return self.user_id

    def reaches(self, ctx) -> bool:
        return ctx.user_id == self.user_id


@dataclass(frozen=True)
class SpecificUser:
    user_id: int
    recipient_type = TYPE_USER
    required_role = None

    @property
    def recipient_id(self) -> int:
        return self.user_id

    def reaches(self, ctx) -> bool:
        return ctx.user_id == self.user_id


SINGLE_TARGETS = (SpecificAdmin, SpecificEmployee, SpecificUser)


def parse_recipient(recipient_type: str | None, recipient_id=None):
    """
    Build a recipient variant from the stored/wire form.

    recipient_id is required for employee, user and specific_admin, and
    ignored for the broadcast types (admin, all_employees).
    """
    rtype = clean_text(recipient_type, "recipient_type", required=False, lower=True) or TYPE_ADMIN
    if rtype not in VALID_RECIPIENT_TYPES:
        raise ValidationError(
            "recipient_type must be admin, specific_admin, all_employees, employee, or user"
        )

    if rtype == TYPE_ALL_EMPLOYEES:
        return AllEmployees()
    if rtype == TYPE_ADMIN and recipient_id in (None, ""):
        return AllAdmins()

    if recipient_id in (None, ""):
        raise ValidationError(f"recipient_id is required for recipient_type {rtype}")
    target_id = coerce_int(recipient_id, "recipient_id")

    if rtype == TYPE_EMPLOYEE:
        return SpecificEmployee(target_id)
    if rtype == TYPE_USER:
        return SpecificUser(target_id)
    # admin with an id, or specific_admin
    return SpecificAdmin(target_id)


def recipient_of(message: Message):
    """Rebuild the variant for a stored message."""
    if message.recipient_type == TYPE_ADMIN and message.recipient_id is None:
        return AllAdmins()
    return parse_recipient(message.recipient_type, message.recipient_id)


def _check_target(recipient) -> User | None:
    if not isinstance(recipient, SINGLE_TARGETS):
        return None
    target = db.session.get(User, recipient.user_id)
    if not target:
        raise NotFound("Recipient not found")
    if recipient.required_role and not role_service.has_role(target.id, recipient.required_role):
        raise ValidationError(f"Recipient is not an {recipient.required_role}")
    return target


def _inbox_filter(ctx):
    """SQL condition matching every message visible in ctx's inbox."""
    conditions = [
        and_(Message.recipient_type.in_((TYPE_ADMIN, TYPE_EMPLOYEE, TYPE_USER)), Message.recipient_id == ctx.user_id),
    ]
    if AllAdmins().reaches(ctx):
        conditions.append(and_(Message.recipient_type == TYPE_ADMIN, Message.recipient_id.is_(None)))
    if AllEmployees().reaches(ctx):
        conditions.append(Message.recipient_type == TYPE_ALL_EMPLOYEES)
    return or_(*conditions)


def _answerable_filter(ctx):
    """Inbox plus, for employees, questions addressed to all admins."""
    condition = _inbox_filter(ctx)
    if ctx.is_employee and not ctx.is_admin:
        condition = or_(condition, and_(Message.recipient_type == TYPE_ADMIN, Message.recipient_id.is_(None)))
    return condition


def _can_view_as_recipient(ctx, message: Message) -> bool:
    return recipient_of(message).reaches(ctx)


def _can_answer(ctx, message: Message) -> bool:
    recipient = recipient_of(message)
    # Questions to all admins are also answerable by employees
    if isinstance(recipient, AllAdmins) and ctx.is_employee:
        return True
    return recipient.reaches(ctx)


def _get_message(message_id: int) -> Message:
    message = db.session.get(Message, message_id)
    if not message:
        raise NotFound("Message not found")
    return message


def _names_for(user_ids) -> dict[int, User]:
    ids = {uid for uid in user_ids if uid is not None}
    if not ids:
        return {}
    return {u.id: u for u in db.session.query(User).filter(User.id.in_(ids)).all()}


def _with_sender_names(messages) -> list[dict]:
    users = _names_for([m.sender_id for m in messages] + [m.replied_by_id for m in messages])

    result = []
    for m in messages:
        item = m.to_dict()
        sender = users.get(m.sender_id)
        item["sender_name"] = sender.display_name if sender else None
        replier = users.get(m.replied_by_id)
        item["replied_by_name"] = replier.display_name if replier else None
        result.append(item)
    return result


# =============================================================================
# OPERATIONS
# =============================================================================

def send(ctx, subject: str, body: str, recipient) -> dict:
    """
    Send a message. Returns the stored record.

    No notification is emitted; recipients pull it through their inbox and
    the change feed.
    """
    role_service.require_unrestricted(ctx, action="send_message")

    subject = clean_text(subject, "subject")
    body = clean_text(body, "body")
    if len(subject) > MAX_SUBJECT_LENGTH:
        raise ValidationError(f"subject must be at most {MAX_SUBJECT_LENGTH} characters")

    _check_target(recipient)

    message = Message(
        sender_id=ctx.user_id,
        subject=subject,
        body=body,
        recipient_type=recipient.recipient_type,
        recipient_id=recipient.recipient_id,
        is_read=True,
        seen_by_recipient=False,
    )
    db.session.add(message)
    db.session.commit()

    change_feed.publish(Message.__tablename__, EVENT_INSERT, message.to_dict())
    return message.to_dict()


def list_inbox(ctx) -> list[dict]:
    """Messages addressed to ctx directly or to a broadcast class ctx belongs to, newest first."""
    messages = (
        db.session.query(Message)
        .filter(_inbox_filter(ctx))
        .order_by(Message.created_at.desc(), Message.id.desc())
        .all()
    )
    return _with_sender_names(messages)


def list_sent(ctx) -> list[dict]:
    """Messages authored by ctx, newest first, with the recipient resolved for display."""
    messages = (
        db.session.query(Message)
        .filter_by(sender_id=ctx.user_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .all()
    )
    users = _names_for([m.recipient_id for m in messages] + [m.replied_by_id for m in messages])

    result = []
    for m in messages:
        item = m.to_dict()
        recipient = recipient_of(m)
        if isinstance(recipient, SINGLE_TARGETS):
            target = users.get(recipient.user_id)
            item["recipient_name"] = target.display_name if target else None
        else:
            item["recipient_name"] = recipient.label
        item["recipient_role"] = {
            TYPE_ADMIN: ROLE_ADMIN,
            TYPE_ALL_EMPLOYEES: ROLE_EMPLOYEE,
            TYPE_EMPLOYEE: ROLE_EMPLOYEE,
            TYPE_USER: "user",
        }[m.recipient_type]
        replier = users.get(m.replied_by_id)
        item["replied_by_name"] = replier.display_name if replier else None
        result.append(item)
    return result


def list_support_queue(ctx, state: str | None = None) -> list[dict]:
    """
    Staff support board: every message the caller could answer, newest first.

    For employees this includes questions addressed to all admins, which
    their inbox does not show. state narrows to "pending" (no reply yet) or
    "replied".
    """
    role_service.require_role(ctx, ROLE_ADMIN, ROLE_EMPLOYEE, action="list_support_queue")

    state = clean_text(state, "state", required=False, lower=True)
    if state not in (None, QUEUE_PENDING, QUEUE_REPLIED):
        raise ValidationError("state must be pending or replied")

    q = db.session.query(Message).filter(_answerable_filter(ctx))
    if state == QUEUE_PENDING:
        q = q.filter(Message.reply.is_(None))
    elif state == QUEUE_REPLIED:
        q = q.filter(Message.reply.isnot(None))

    messages = q.order_by(Message.created_at.desc(), Message.id.desc()).all()
    return _with_sender_names(messages)


def reply(ctx, message_id: int, reply_body: str) -> dict:
    """
    Answer a message once.

    The caller must be able to see the message in their inbox (employees may
    also answer messages addressed to all admins). The write is
    conditional on the message still having no reply; if another reply got
    there first, ConflictError is raised and the stored reply is untouched.
    """
    message = _get_message(message_id)
    if not _can_answer(ctx, message):
        raise role_service.deny(ctx, "reply_message", "Not a recipient of this message", resource=f"message:{message_id}")

    reply_body = clean_text(reply_body, "reply")
    if message.reply is not None:
        raise ConflictError("Message has already been answered")

    now = utcnow()
    updated = (
        db.session.query(Message)
        .filter(Message.id == message_id, Message.reply.is_(None))
        .update(
            {
                "reply": reply_body,
                "replied_by_id": ctx.user_id,
                "replied_at": now,
                "is_read": False,
                "seen_by_recipient": True,
            },
            synchronize_session=False,
        )
    )
    if updated != 1:
        db.session.rollback()
        # Either someone else replied, or the message was deleted in between
        if db.session.get(Message, message_id) is None:
            raise NotFound("Message not found")
        raise ConflictError("Message has already been answered")
    db.session.commit()

    db.session.refresh(message)
    record = message.to_dict()
    change_feed.publish(Message.__tablename__, EVENT_UPDATE, record)

    notification_service.notify(
        notification_service.EVENT_MESSAGE_REPLIED,
        {"message_id": message.id, "sender_id": message.sender_id, "subject": message.subject},
    )
    return record


def delete(ctx, message_id: int) -> None:
    """
    Hard-delete a message (and with it the reply and read state).

    Allowed for the sender and for anyone who sees it in their inbox.
    """
    message = _get_message(message_id)
    if message.sender_id != ctx.user_id and not _can_view_as_recipient(ctx, message):
        raise role_service.deny(ctx, "delete_message", "Not allowed to delete this message", resource=f"message:{message_id}")

    record = message.to_dict()
    db.session.delete(message)
    db.session.commit()

    current_app.logger.info("Message %s deleted by user %s", message_id, ctx.user_id)
    change_feed.publish(Message.__tablename__, EVENT_DELETE, record)


def mark_reply_read(ctx, message_id: int) -> dict:
    """Sender acknowledges the reply."""
    message = _get_message(message_id)
    if message.sender_id != ctx.user_id:
        raise NotFound("Message not found")

    if not message.is_read:
        message.is_read = True
        db.session.commit()
        change_feed.publish(Message.__tablename__, EVENT_UPDATE, message.to_dict())
    return message.to_dict()


def mark_seen(ctx, message_id: int) -> dict:
    """Recipient side opened the message."""
    message = _get_message(message_id)
    if not _can_view_as_recipient(ctx, message):
        raise NotFound("Message not found")

    if not message.seen_by_recipient:
        message.seen_by_recipient = True
        db.session.commit()
        change_feed.publish(Message.__tablename__, EVENT_UPDATE, message.to_dict())
    return message.to_dict()


def list_recipients(ctx, kind: str) -> list[dict]:
    """Picker entries for 'specific employee' / 'specific admin' targets."""
    kind = clean_text(kind, "kind", required=False, lower=True)
    if kind not in {ROLE_EMPLOYEE, ROLE_ADMIN}:
        raise ValidationError("kind must be employee or admin")

    return [
        {"id": u.id, "name": u.display_name, "role": kind}
        for u in role_service.users_with_role(kind)
        if u.id != ctx.user_id
    ]
