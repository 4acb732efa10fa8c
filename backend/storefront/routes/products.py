# Overview: Flask API routes for products; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify, request

from ..decorators import json_body, require_auth, require_role
from ..roles import ROLE_ADMIN
from ..services import product_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/catalog")
def catalog_route():
    """Public menu. Query params: category (optional)"""
    products = product_service.list_catalog(category=request.args.get("category"))
    return jsonify({"products": products, "count": len(products)})


@products_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_products_route():
    products = product_service.list_products(g.session_context)
    return jsonify({"products": products, "count": len(products)})


@products_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_product_route():
    """
    Request body:
    - name: str (required)
    - price_cents: int (required)
    - description, category, image_url: str (optional)
    - is_available: bool (optional, default true)
    """
    data = json_body()
    product = product_service.create_product(g.session_context, data)
    return jsonify({"product": product}), 201


@products_bp.patch("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_product_route(product_id: int):
    data = json_body()
    product = product_service.update_product(g.session_context, product_id, data)
    return jsonify({"product": product})


@products_bp.post("/<int:product_id>/toggle")
@require_auth
@require_role(ROLE_ADMIN)
def toggle_product_route(product_id: int):
    product = product_service.toggle_availability(g.session_context, product_id)
    return jsonify({"product": product})


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_product_route(product_id: int):
    product_service.delete_product(g.session_context, product_id)
    return jsonify({"deleted": product_id})
