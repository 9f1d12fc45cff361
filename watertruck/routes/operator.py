"""
Operator API routes.
Fleet owners who watch their trucks' queues and, in dispatcher mode,
assign jobs to trucks by hand.
"""

from flask import Blueprint, g, jsonify, request

from ..dispatch import assign_job
from ..errors import NotFoundError, ValidationError
from ..operators import (
    create_operator, get_dashboard, get_fleet, get_operator_details,
    get_operator_for_user, set_mode, update_service_area,
)
from .guards import require_operator

operator_bp = Blueprint("operator", __name__, url_prefix="/api/operator")


@operator_bp.route("", methods=["POST"])
def register_operator():
    data = request.get_json(silent=True) or {}
    operator = create_operator(g.user, data.get("service_area"))
    return jsonify({"success": True, "operator": operator}), 201


@operator_bp.route("", methods=["GET"])
def get_operator():
    operator = get_operator_for_user(g.user.id)
    if not operator:
        raise NotFoundError("Not an operator")
    return jsonify({"success": True, "operator": get_operator_details(operator.id)}), 200


@operator_bp.route("/mode", methods=["POST"])
@require_operator
def change_mode(operator):
    data = request.get_json(silent=True) or {}
    result = set_mode(operator.id, data.get("mode"))
    return jsonify({"success": True, "operator": result}), 200


@operator_bp.route("/service-area", methods=["POST"])
@require_operator
def change_service_area(operator):
    data = request.get_json(silent=True) or {}
    result = update_service_area(operator.id, data.get("service_area"))
    return jsonify({"success": True, "operator": result}), 200


# ---------------------------------------------------------------------------
# Fleet & dispatch
# ---------------------------------------------------------------------------

@operator_bp.route("/trucks", methods=["GET"])
@require_operator
def fleet(operator):
    return jsonify({"success": True, "trucks": get_fleet(operator.id)}), 200


@operator_bp.route("/jobs", methods=["GET"])
@require_operator
def dashboard(operator):
    return jsonify({"success": True, "dashboard": get_dashboard(operator.id)}), 200


@operator_bp.route("/jobs/<int:job_id>/assign", methods=["POST"])
@require_operator
def assign(job_id, operator):
    data = request.get_json(silent=True) or {}
    try:
        truck_id = int(data.get("truck_id"))
    except (TypeError, ValueError):
        raise ValidationError("truck_id is required", job_id=job_id)
    job = assign_job(job_id, truck_id, operator.id)
    return jsonify({"success": True, "job": job}), 200
