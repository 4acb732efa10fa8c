# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""
Order API routes

Checkout for customers, the order board for admins and employees, the
delivery queue, and payment review for admins. Role checks live in
order_service so that the HTTP and CLI paths share them.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import json_body, require_auth
from ..errors import ValidationError
from ..services import order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
def place_order_route():
    """
    Request body:
    - items: [{product_id: int, quantity: int}] (required)
    - delivery_address: str (required)
    - phone: str (required)
    - payment_method: cod | manual_transfer (required)
    - transaction_id: str (required for manual_transfer)
    """
    data = json_body()
    order = order_service.place_order(
        g.session_context,
        data.get("items"),
        delivery_address=data.get("delivery_address"),
        phone=data.get("phone"),
        payment_method=data.get("payment_method"),
        transaction_id=data.get("transaction_id"),
    )
    return jsonify({"order": order}), 201


@orders_bp.get("/mine")
@require_auth
def my_orders_route():
    orders = order_service.list_my_orders(g.session_context)
    return jsonify({"orders": orders, "count": len(orders)})


@orders_bp.get("")
@require_auth
def list_orders_route():
    """Query params: status (optional)"""
    orders = order_service.list_orders(g.session_context, status=request.args.get("status"))
    return jsonify({"orders": orders, "count": len(orders)})


@orders_bp.get("/assigned")
@require_auth
def assigned_orders_route():
    orders = order_service.list_assigned(g.session_context)
    return jsonify({"orders": orders, "count": len(orders)})


@orders_bp.get("/pending-payments")
@require_auth
def pending_payments_route():
    orders = order_service.list_pending_payments(g.session_context)
    return jsonify({"orders": orders, "count": len(orders)})


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    return jsonify({"order": order_service.get_order(g.session_context, order_id)})


@orders_bp.patch("/<int:order_id>/status")
@require_auth
def update_status_route(order_id: int):
    data = json_body()
    order = order_service.update_status(g.session_context, order_id, data.get("status"))
    return jsonify({"order": order})


@orders_bp.post("/<int:order_id>/assign")
@require_auth
def assign_delivery_route(order_id: int):
    data = json_body()
    order = order_service.assign_delivery(g.session_context, order_id, data.get("delivery_user_id"))
    return jsonify({"order": order})


@orders_bp.post("/<int:order_id>/payment")
@require_auth
def review_payment_route(order_id: int):
    """Request body: approved: bool"""
    data = json_body()
    approved = data.get("approved")
    if not isinstance(approved, bool):
        raise ValidationError("approved must be true or false")
    order = order_service.verify_payment(g.session_context, order_id, approved)
    return jsonify({"order": order})
