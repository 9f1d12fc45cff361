"""
Truck API routes: availability listing, truck self-registration and the
truck owner's own profile, job list, location and push subscription.
"""

from flask import Blueprint, g, jsonify, request

from ..availability import list_available
from ..errors import NotFoundError
from ..notifications import save_subscription
from ..trucks import (
    create_truck, get_truck_jobs, get_truck_with_queue, heartbeat,
    update_location, update_truck,
)
from ..utils.validators import parse_coordinates
from .guards import require_own_truck

trucks_bp = Blueprint("trucks", __name__, url_prefix="/api/trucks")


@trucks_bp.route("/available", methods=["GET"])
def available():
    """Trucks a customer can request right now, shortest queue first."""
    lat, lng = parse_coordinates(request.args.get("lat"), request.args.get("lng"))
    trucks = list_available(lat, lng)
    return jsonify({"success": True, "trucks": trucks}), 200


@trucks_bp.route("", methods=["POST"])
def register_truck():
    data = request.get_json(silent=True) or {}
    truck = create_truck(g.user, data=data)
    return jsonify({"success": True, "truck": get_truck_with_queue(truck.id)}), 201


@trucks_bp.route("/<int:truck_id>", methods=["GET"])
def get_truck(truck_id):
    truck = get_truck_with_queue(truck_id)
    if not truck:
        raise NotFoundError("Truck not found", truck_id=truck_id)
    return jsonify({"success": True, "truck": truck}), 200


@trucks_bp.route("/<int:truck_id>", methods=["PUT"])
@require_own_truck
def update_truck_profile(truck):
    data = request.get_json(silent=True) or {}
    result = update_truck(truck.id, data)
    return jsonify({"success": True, "truck": result}), 200


@trucks_bp.route("/<int:truck_id>/jobs", methods=["GET"])
@require_own_truck
def truck_jobs(truck):
    """Polled by the truck app; doubles as the truck's heartbeat."""
    heartbeat(truck.id)
    jobs = get_truck_jobs(truck.id)
    return jsonify({"success": True, **jobs}), 200


@trucks_bp.route("/<int:truck_id>/location", methods=["POST"])
@require_own_truck
def post_location(truck):
    data = request.get_json(silent=True) or {}
    update_location(truck.id, data.get("lat"), data.get("lng"))
    return jsonify({"success": True, "message": "Location updated"}), 200


@trucks_bp.route("/<int:truck_id>/subscribe", methods=["POST"])
@require_own_truck
def subscribe_truck(truck):
    # Truck alerts are keyed by the owning user
    save_subscription(g.user.id, request.get_json(silent=True) or {})
    return jsonify({"success": True, "message": "Subscribed to notifications"}), 200
