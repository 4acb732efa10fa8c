# Overview: Service-layer operations for products; public catalog and admin menu management.

from __future__ import annotations

from flask import current_app

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Product
from ..validation import clean_text
from . import role_service


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

WRITABLE_FIELDS = {"name", "description", "price_cents", "category", "image_url", "is_available"}
REQUIRED_ON_CREATE = {"name", "price_cents"}

DEFAULT_CATEGORY = "other"


def _validate_patch(data: dict, *, partial: bool) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("Request body must be an object")

    unknown = set(data) - WRITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

    if not partial:
        missing = REQUIRED_ON_CREATE - set(data)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(sorted(missing))}")

    patch: dict = {}
    if "name" in data:
        patch["name"] = clean_text(data["name"], "name")

    if "price_cents" in data:
        price = data["price_cents"]
        # Reject floats and bools; prices are whole cents
        if isinstance(price, bool) or not isinstance(price, int):
            raise ValidationError("price_cents must be an integer")
        if price < 0:
            raise ValidationError("price_cents cannot be negative")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS}")
        patch["price_cents"] = price

    if "category" in data:
        patch["category"] = clean_text(data["category"], "category", required=False, lower=True) or DEFAULT_CATEGORY

    for key in ("description", "image_url"):
        if key in data:
            patch[key] = clean_text(data[key], key, required=False)

    if "is_available" in data:
        if not isinstance(data["is_available"], bool):
            raise ValidationError("is_available must be true or false")
        patch["is_available"] = data["is_available"]

    return patch


def _get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFound("Product not found")
    return product


def list_catalog(category: str | None = None) -> list[dict]:
    """Customer-facing menu: available products only."""
    q = db.session.query(Product).filter_by(is_available=True)
    if category:
        q = q.filter_by(category=clean_text(category, "category", lower=True))
    return [p.to_dict() for p in q.order_by(Product.category, Product.name).all()]


def list_products(ctx) -> list[dict]:
    role_service.require_admin(ctx, action="list_products")
    return [p.to_dict() for p in db.session.query(Product).order_by(Product.created_at.desc(), Product.id.desc()).all()]


def create_product(ctx, data: dict) -> dict:
    role_service.require_admin(ctx, action="create_product")
    patch = _validate_patch(data, partial=False)
    patch.setdefault("category", DEFAULT_CATEGORY)

    product = Product(**patch)
    db.session.add(product)
    db.session.commit()
    current_app.logger.info("Product %s created by admin %s", product.id, ctx.user_id)
    return product.to_dict()


def update_product(ctx, product_id: int, data: dict) -> dict:
    role_service.require_admin(ctx, action="update_product")
    product = _get_product(product_id)
    patch = _validate_patch(data, partial=True)

    for key, value in patch.items():
        setattr(product, key, value)
    db.session.commit()
    return product.to_dict()


def toggle_availability(ctx, product_id: int) -> dict:
    role_service.require_admin(ctx, action="toggle_product")
    product = _get_product(product_id)
    product.is_available = not product.is_available
    db.session.commit()
    return product.to_dict()


def delete_product(ctx, product_id: int) -> None:
    role_service.require_admin(ctx, action="delete_product")
    product = _get_product(product_id)
    db.session.delete(product)
    db.session.commit()
    current_app.logger.info("Product %s deleted by admin %s", product_id, ctx.user_id)
