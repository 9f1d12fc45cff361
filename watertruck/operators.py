"""
Operator management and the operator dispatch view.

The fleet and dashboard are read-only projections; manual assignment goes
through dispatch.assign_job.
"""

import logging

from sqlalchemy import func

from .availability import annotate_truck, queue_length_subquery
from .errors import ConflictError, NotFoundError, ValidationError
from .extensions import db
from .models import (
    Job, JobRequest, Operator, Truck,
    OPERATOR_MODES, MODE_DELEGATED, QUEUED_JOB_STATUSES, JOB_PENDING, REQUEST_PENDING,
)
from .utils.helpers import clean_text

logger = logging.getLogger(__name__)


def _get_operator(operator_id):
    operator = db.session.get(Operator, operator_id)
    if not operator:
        raise NotFoundError("Operator not found", operator_id=operator_id)
    return operator


def get_operator_for_user(user_id):
    return Operator.query.filter_by(user_id=user_id).first()


def create_operator(user, service_area=None):
    if get_operator_for_user(user.id):
        raise ConflictError("User is already an operator", user_id=user.id)

    try:
        user.role = "operator"
        operator = Operator(user_id=user.id, mode=MODE_DELEGATED, service_area=clean_text(service_area))
        db.session.add(operator)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Operator %s created for user %s", operator.id, user.id)
    return get_operator_details(operator.id)


def get_operator_details(operator_id):
    operator = db.session.get(Operator, operator_id)
    if not operator:
        return None
    result = operator.to_dict()
    result["name"] = operator.user.name if operator.user else None
    result["truck_count"] = db.session.query(func.count(Truck.id)).filter(
        Truck.operator_id == operator_id
    ).scalar() or 0
    return result


def set_mode(operator_id, mode):
    if mode not in OPERATOR_MODES:
        raise ValidationError('Invalid mode. Use "delegated" or "dispatcher"', mode=mode)
    operator = _get_operator(operator_id)
    try:
        operator.mode = mode
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Operator %s switched to %s mode", operator_id, mode)
    return get_operator_details(operator_id)


def update_service_area(operator_id, service_area):
    operator = _get_operator(operator_id)
    try:
        operator.service_area = clean_text(service_area)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return get_operator_details(operator_id)


def get_fleet(operator_id):
    """Every truck owned by the operator with its live queue and ETA."""
    qlen = queue_length_subquery().label("queue_length")
    rows = (
        db.session.query(Truck, qlen)
        .filter(Truck.operator_id == operator_id)
        .order_by(Truck.name.asc(), Truck.id.asc())
        .all()
    )
    return [annotate_truck(truck, queue_len or 0) for truck, queue_len in rows]


def get_dashboard(operator_id):
    """Pending offers and active jobs across the operator's fleet."""
    operator = _get_operator(operator_id)
    fleet_ids = [truck_id for (truck_id,) in db.session.query(Truck.id).filter(Truck.operator_id == operator_id)]

    pending = []
    active = []
    if fleet_ids:
        pending_rows = (
            db.session.query(Job, JobRequest, Truck)
            .join(JobRequest, JobRequest.job_id == Job.id)
            .join(Truck, Truck.id == JobRequest.truck_id)
            .filter(
                Job.status == JOB_PENDING,
                JobRequest.status == REQUEST_PENDING,
                JobRequest.truck_id.in_(fleet_ids),
            )
            .order_by(Job.created_at.asc(), Job.id.asc(), Truck.id.asc())
            .all()
        )
        by_job = {}
        for job, req, truck in pending_rows:
            if job.id not in by_job:
                item = job.to_dict()
                item["customer_display_name"] = job.customer_name or (job.customer.name if job.customer else None)
                item["requested_trucks"] = []
                by_job[job.id] = item
                pending.append(item)
            by_job[job.id]["requested_trucks"].append({"truck_id": truck.id, "truck_name": truck.name})

        active_jobs = (
            Job.query.filter(Job.truck_id.in_(fleet_ids), Job.status.in_(QUEUED_JOB_STATUSES))
            .order_by(Job.accepted_at.desc(), Job.id.desc())
            .all()
        )
        for job in active_jobs:
            item = job.to_dict()
            item["truck_name"] = job.truck.name if job.truck else None
            item["customer_display_name"] = job.customer_name or (job.customer.name if job.customer else None)
            active.append(item)

    return {"pending": pending, "active": active, "mode": operator.mode}
