"""
Truck profile management: registration, profile edits, activation,
heartbeats and GPS position updates.
"""

import logging

from flask import current_app

from .availability import annotate_truck, queue_length
from .errors import ConflictError, NotFoundError, ValidationError
from .extensions import db
from .models import Job, JobRequest, Truck, utcnow, JOB_PENDING, REQUEST_PENDING
from .utils.helpers import clean_text
from .utils.validators import parse_coordinates

logger = logging.getLogger(__name__)


def _as_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


def _get_truck(truck_id):
    truck = db.session.get(Truck, truck_id)
    if not truck:
        raise NotFoundError("Truck not found", truck_id=truck_id)
    return truck


def get_truck_for_user(user_id):
    return Truck.query.filter_by(user_id=user_id).first()


def create_truck(user, operator_id=None, data=None):
    """Register ``user`` as a truck owner. The new truck starts inactive.

    An optional ``data`` profile is validated and applied in the same unit of
    work, so an invalid profile leaves no truck behind.
    """
    if get_truck_for_user(user.id):
        raise ConflictError("User already has a truck", user_id=user.id)

    try:
        user.role = "truck"
        truck = Truck(
            user_id=user.id,
            operator_id=operator_id,
            is_active=False,
            avg_job_minutes=current_app.config.get("TRUCK_DEFAULT_AVG_JOB_MINUTES", 30),
        )
        db.session.add(truck)
        db.session.flush()
        if data:
            _apply_profile(truck, data)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Truck %s created for user %s (operator=%s)", truck.id, user.id, operator_id)
    return truck


def _apply_profile(truck, data):
    """Validate ``data`` and set it on ``truck`` without committing.

    Activation is checked against the merged (stored + incoming) name, phone
    and capacity. Any invalid field rejects the whole update before anything
    is set. Returns the names of the changed fields.
    """
    truck_id = truck.id
    updates = {}

    merged_name = truck.name
    merged_phone = truck.phone
    merged_capacity = truck.capacity_gallons

    if data.get("name") is not None:
        updates["name"] = clean_text(data["name"])
        merged_name = updates["name"]

    if data.get("phone") is not None:
        updates["phone"] = clean_text(data["phone"])
        merged_phone = updates["phone"]

    if data.get("capacity_gallons") is not None:
        try:
            capacity = int(data["capacity_gallons"])
        except (TypeError, ValueError):
            raise ValidationError("Capacity must be a whole number", truck_id=truck_id)
        if capacity <= 0:
            raise ValidationError("Capacity must be positive", truck_id=truck_id)
        updates["capacity_gallons"] = capacity
        merged_capacity = capacity

    price = data.get("price_fixed", data.get("price"))
    if price is not None:
        try:
            price = float(price)
        except (TypeError, ValueError):
            raise ValidationError("Price must be a number", truck_id=truck_id)
        if price < 0:
            raise ValidationError("Price cannot be negative", truck_id=truck_id)
        updates["price_fixed"] = price

    if data.get("avg_job_minutes") is not None:
        try:
            minutes = int(data["avg_job_minutes"])
        except (TypeError, ValueError):
            raise ValidationError("Average job time must be a whole number", truck_id=truck_id)
        if minutes <= 0:
            raise ValidationError("Average job time must be positive", truck_id=truck_id)
        updates["avg_job_minutes"] = minutes

    if data.get("is_active") is not None:
        activate = _as_bool(data["is_active"])
        if activate and not (merged_name and merged_phone and merged_capacity):
            raise ValidationError(
                "Truck must have name, phone, and capacity before activating",
                truck_id=truck_id,
            )
        updates["is_active"] = activate
        if activate:
            # Activating marks the truck as seen now
            updates["last_seen_at"] = utcnow()

    for field, value in updates.items():
        setattr(truck, field, value)
    return sorted(updates)


def update_truck(truck_id, data):
    """Apply a partial profile update; see ``_apply_profile``."""
    truck = _get_truck(truck_id)
    try:
        changed = _apply_profile(truck, data or {})
        if changed:
            db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if changed:
        logger.info("Truck %s updated: %s", truck_id, changed)
    return get_truck_with_queue(truck_id)


def heartbeat(truck_id):
    try:
        updated = db.session.query(Truck).filter(Truck.id == truck_id).update(
            {Truck.last_seen_at: utcnow()}, synchronize_session=False
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    if not updated:
        raise NotFoundError("Truck not found", truck_id=truck_id)


def update_location(truck_id, lat, lng):
    lat, lng = parse_coordinates(lat, lng)
    if lat is None:
        raise ValidationError("Valid lat and lng are required", truck_id=truck_id)

    truck = _get_truck(truck_id)
    now = utcnow()
    try:
        truck.current_lat = lat
        truck.current_lng = lng
        truck.location_updated_at = now
        truck.last_seen_at = now
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.debug("Truck %s location updated to %.5f,%.5f", truck_id, lat, lng)
    return truck


def get_truck_with_queue(truck_id):
    truck = db.session.get(Truck, truck_id)
    if not truck:
        return None
    return annotate_truck(truck, queue_length(truck_id))


def get_truck_jobs(truck_id):
    """Open offers (whose job is still pending) and every job assigned to the truck."""
    pending = (
        db.session.query(JobRequest, Job)
        .join(Job, Job.id == JobRequest.job_id)
        .filter(
            JobRequest.truck_id == truck_id,
            JobRequest.status == REQUEST_PENDING,
            Job.status == JOB_PENDING,
        )
        .order_by(Job.created_at.asc(), Job.id.asc())
        .all()
    )
    pending_requests = []
    for req, job in pending:
        item = req.to_dict()
        item.update({
            "location": job.location,
            "customer_name": job.customer_name or (job.customer.name if job.customer else None),
            "customer_phone": job.customer_phone or (job.customer.phone if job.customer else None),
            "lat": job.lat,
            "lng": job.lng,
            "job_created_at": job.created_at.isoformat() if job.created_at else None,
        })
        pending_requests.append(item)

    jobs = Job.query.filter_by(truck_id=truck_id).order_by(Job.created_at.desc(), Job.id.desc()).all()
    return {
        "pending_requests": pending_requests,
        "jobs": [job.to_dict() for job in jobs],
    }
