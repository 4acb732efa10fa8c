from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Order(db.Model):
    """
    Customer order placed at checkout.

    Two independent axes:
    - status: pending -> confirmed -> preparing -> out_for_delivery -> delivered (or cancelled)
    - payment_status: pending | awaiting_verification | verified | rejected

    Lines snapshot product name and unit price so later menu edits never
    rewrite history.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        db.Index("ix_orders_status", "status"),
        db.Index("ix_orders_payment_status", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    total_cents = db.Column(db.Integer, nullable=False)
    delivery_address = db.Column(db.Text, nullable=False)
    phone = db.Column(db.String(32), nullable=False)

    payment_method = db.Column(db.String(32), nullable=False)  # cod, manual_transfer
    transaction_id = db.Column(db.String(128), nullable=True)
    payment_status = db.Column(db.String(32), nullable=False, default="pending")

    status = db.Column(db.String(32), nullable=False, default="pending")
    delivery_person_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id])
    delivery_person = db.relationship("User", foreign_keys=[delivery_person_id])
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "items": [item.to_dict() for item in self.items],
            "total_cents": self.total_cents,
            "delivery_address": self.delivery_address,
            "phone": self.phone,
            "payment_method": self.payment_method,
            "transaction_id": self.transaction_id,
            "payment_status": self.payment_status,
            "status": self.status,
            "delivery_person_id": self.delivery_person_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "delivered_at": to_utc_z(self.delivered_at),
        }


class OrderItem(db.Model):
    """Order line with name and unit price captured at checkout."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    # Plain column: deleting a product must not break past orders
    product_id = db.Column(db.Integer, nullable=True)

    name = db.Column(db.String(255), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
        }
