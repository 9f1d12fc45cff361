"""
Job API routes for customers (create, list, view, cancel) and trucks
(accept, reject, status updates).
"""

from flask import Blueprint, g, jsonify, request

from ..dispatch import (
    accept_job, cancel_by_customer, create_job, get_customer_jobs,
    get_job_details, reject_job, update_status,
)
from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Job, JobRequest, Operator, Truck
from ..utils.validators import parse_coordinates
from .guards import require_truck

jobs_bp = Blueprint("jobs", __name__, url_prefix="/api/jobs")


def _can_view(job, user):
    """Customer, any offered truck, or the operator of an offered truck."""
    if job.customer_user_id == user.id:
        return True
    truck_ids = {req.truck_id for req in job.requests}
    if job.truck_id:
        truck_ids.add(job.truck_id)
    if not truck_ids:
        return False
    trucks = Truck.query.filter(Truck.id.in_(truck_ids)).all()
    if any(truck.user_id == user.id for truck in trucks):
        return True
    operator = Operator.query.filter_by(user_id=user.id).first()
    return bool(operator) and any(truck.operator_id == operator.id for truck in trucks)


@jobs_bp.route("", methods=["POST"])
def create():
    data = request.get_json(silent=True) or {}
    truck_ids = data.get("truck_ids")
    if truck_ids is None and data.get("truck_id") is not None:
        truck_ids = [data["truck_id"]]
    if truck_ids is not None and not isinstance(truck_ids, list):
        raise ValidationError("truck_ids must be a list")

    lat, lng = parse_coordinates(data.get("lat"), data.get("lng"))
    job = create_job(
        g.user.id,
        data.get("location"),
        truck_ids or [],
        customer_name=data.get("customer_name"),
        customer_phone=data.get("customer_phone"),
        lat=lat,
        lng=lng,
    )
    return jsonify({"success": True, "job": job}), 201


@jobs_bp.route("", methods=["GET"])
def list_mine():
    return jsonify({"success": True, "jobs": get_customer_jobs(g.user.id)}), 200


@jobs_bp.route("/<int:job_id>", methods=["GET"])
def get_job(job_id):
    job = db.session.get(Job, job_id)
    if not job:
        raise NotFoundError("Job not found", job_id=job_id)
    if not _can_view(job, g.user):
        raise AuthorizationError("Not authorized to view this job", job_id=job_id)
    return jsonify({"success": True, "job": get_job_details(job_id)}), 200


@jobs_bp.route("/<int:job_id>/accept", methods=["POST"])
@require_truck
def accept(job_id, truck):
    job = accept_job(job_id, truck.id)
    return jsonify({"success": True, "job": job}), 200


@jobs_bp.route("/<int:job_id>/reject", methods=["POST"])
@require_truck
def reject(job_id, truck):
    job = reject_job(job_id, truck.id)
    return jsonify({"success": True, "job": job}), 200


@jobs_bp.route("/<int:job_id>/status", methods=["POST"])
@require_truck
def set_status(job_id, truck):
    data = request.get_json(silent=True) or {}
    new_status = data.get("status")
    if not new_status:
        raise ValidationError("status is required", job_id=job_id)
    job = update_status(job_id, new_status, truck.id)
    return jsonify({"success": True, "job": job}), 200


@jobs_bp.route("/<int:job_id>/cancel", methods=["POST"])
def cancel(job_id):
    job = cancel_by_customer(job_id, g.user.id)
    return jsonify({"success": True, "job": job}), 200
