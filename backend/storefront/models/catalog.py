from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Menu item. Only admins create, edit or delete products.

    is_available hides the item from the public catalog and blocks new orders
    for it; existing orders keep their own name/price snapshot.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_available", "category", "is_available"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(64), nullable=False, default="other")
    image_url = db.Column(db.String(512), nullable=True)
    is_available = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "category": self.category,
            "image_url": self.image_url,
            "is_available": self.is_available,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
