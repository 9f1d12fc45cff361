"""
Push subscription and customer-visit notification routes.
"""

from flask import Blueprint, g, jsonify, request

from ..extensions import limiter
from ..notifications import on_customer_visit, save_subscription
from ..utils.validators import parse_coordinates

push_bp = Blueprint("push", __name__, url_prefix="/api")


@push_bp.route("/subscribe", methods=["POST"])
def subscribe():
    save_subscription(g.user.id, request.get_json(silent=True) or {})
    return jsonify({"success": True, "message": "Subscribed to notifications"}), 200


@push_bp.route("/notify-trucks", methods=["POST"])
@limiter.limit("10 per minute")
def notify_trucks():
    """A customer opened the app with GPS: alert nearby offline trucks."""
    data = request.get_json(silent=True) or {}
    lat, lng = parse_coordinates(data.get("lat"), data.get("lng"))
    result = on_customer_visit(lat, lng)
    return jsonify({"success": True, **result}), 200
