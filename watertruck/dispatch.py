"""
Job dispatch engine.

Fans a job out to candidate trucks, resolves accept/reject races, drives
the delivery lifecycle and handles cancellation. Every operation touching
more than one row commits once and rolls back on any failure.

"First acceptance wins" is enforced with a conditional UPDATE guarded by
``status = 'pending'``; a caller whose update matches no row lost the race.
"""

import logging

from .errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from .extensions import db
from .geo import eta_minutes, haversine_km, has_location
from .models import (
    Job, JobRequest, Operator, Truck, utcnow,
    JOB_PENDING, JOB_ACCEPTED, JOB_EN_ROUTE, JOB_DELIVERED, JOB_CANCELLED, JOB_EXPIRED,
    REQUEST_PENDING, REQUEST_ACCEPTED, REQUEST_REJECTED, REQUEST_EXPIRED,
    MODE_DISPATCHER,
)
from . import notifications

logger = logging.getLogger(__name__)

# Complete job lifecycle
JOB_TRANSITIONS = {
    JOB_PENDING: (JOB_ACCEPTED, JOB_EXPIRED, JOB_CANCELLED),
    JOB_ACCEPTED: (JOB_EN_ROUTE, JOB_CANCELLED),
    JOB_EN_ROUTE: (JOB_DELIVERED, JOB_CANCELLED),
    JOB_DELIVERED: (),
    JOB_CANCELLED: (),
    JOB_EXPIRED: (),
}

# Statuses from which the assigned truck moves the job through update_status()
TRUCK_MANAGED_STATUSES = (JOB_ACCEPTED, JOB_EN_ROUTE)

CUSTOMER_CANCELLABLE = (JOB_PENDING, JOB_ACCEPTED)


def can_transition(current_status, new_status):
    return new_status in JOB_TRANSITIONS.get(current_status, ())


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _get_job(job_id):
    job = db.session.get(Job, job_id)
    if not job:
        raise NotFoundError("Job not found", job_id=job_id)
    return job


def _get_request(job_id, truck_id):
    req = JobRequest.query.filter_by(job_id=job_id, truck_id=truck_id).first()
    if not req:
        raise NotFoundError("No request for this truck on this job", job_id=job_id, truck_id=truck_id)
    return req


def _expire_pending_requests(job_id, exclude_request_id=None):
    query = db.session.query(JobRequest).filter(
        JobRequest.job_id == job_id,
        JobRequest.status == REQUEST_PENDING,
    )
    if exclude_request_id is not None:
        query = query.filter(JobRequest.id != exclude_request_id)
    return query.update(
        {JobRequest.status: REQUEST_EXPIRED, JobRequest.updated_at: utcnow()},
        synchronize_session=False,
    )


def _accept(job_id, truck_id):
    """Apply an acceptance inside the caller's unit of work (no commit)."""
    job = _get_job(job_id)
    req = _get_request(job_id, truck_id)

    if job.status != JOB_PENDING:
        raise ConflictError(
            "Job is no longer available",
            job_id=job_id, truck_id=truck_id, current_status=job.status,
        )
    if req.status != REQUEST_PENDING:
        raise ConflictError(
            "Request is no longer pending",
            job_id=job_id, truck_id=truck_id, request_status=req.status,
        )

    truck = db.session.get(Truck, truck_id)
    if not truck:
        raise NotFoundError("Truck not found", truck_id=truck_id)
    if truck.price_fixed is None:
        raise ConflictError("Truck has no fixed price configured", job_id=job_id, truck_id=truck_id)

    now = utcnow()
    # Compare-and-swap on the job row: only one caller can see it pending.
    won = db.session.query(Job).filter(
        Job.id == job_id,
        Job.status == JOB_PENDING,
    ).update({
        Job.status: JOB_ACCEPTED,
        Job.truck_id: truck_id,
        Job.price: truck.price_fixed,
        Job.accepted_at: now,
        Job.updated_at: now,
    }, synchronize_session=False)
    if won != 1:
        raise ConflictError(
            "Job was accepted by another truck",
            job_id=job_id, truck_id=truck_id, attempted_status=JOB_ACCEPTED,
        )

    db.session.query(JobRequest).filter(
        JobRequest.id == req.id,
        JobRequest.status == REQUEST_PENDING,
    ).update({JobRequest.status: REQUEST_ACCEPTED, JobRequest.updated_at: now}, synchronize_session=False)

    expired = _expire_pending_requests(job_id, exclude_request_id=req.id)
    return expired


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def create_job(customer_user_id, location, truck_ids, customer_name=None,
               customer_phone=None, lat=None, lng=None):
    """Create a pending job and offer it to every candidate truck."""
    location = (location or '').strip()
    if not location:
        raise ValidationError("Location is required")

    unique_ids = []
    for truck_id in truck_ids or []:
        try:
            truck_id = int(truck_id)
        except (TypeError, ValueError):
            raise ValidationError("Invalid truck id", truck_id=truck_id)
        if truck_id not in unique_ids:
            unique_ids.append(truck_id)
    if not unique_ids:
        raise ValidationError("At least one truck must be selected")

    for truck_id in unique_ids:
        truck = db.session.get(Truck, truck_id)
        if not truck:
            raise ValidationError(f"Truck {truck_id} not found", truck_id=truck_id)
        if not truck.is_active:
            raise ValidationError(f"Truck {truck_id} is not available", truck_id=truck_id)

    if not has_location(lat, lng):
        lat, lng = None, None

    try:
        job = Job(
            customer_user_id=customer_user_id,
            location=location,
            customer_name=(customer_name or '').strip() or None,
            customer_phone=(customer_phone or '').strip() or None,
            lat=lat,
            lng=lng,
            status=JOB_PENDING,
        )
        db.session.add(job)
        db.session.flush()
        for truck_id in unique_ids:
            db.session.add(JobRequest(job_id=job.id, truck_id=truck_id, status=REQUEST_PENDING))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Job %s created by user %s, offered to trucks %s", job.id, customer_user_id, unique_ids)
    return get_job_details(job.id)


def accept_job(job_id, truck_id):
    """First acceptance wins; all other pending offers expire."""
    try:
        expired = _accept(job_id, truck_id)
        db.session.commit()
    except ConflictError as e:
        db.session.rollback()
        logger.info("Accept refused: job=%s truck=%s (%s)", job_id, truck_id, e.message)
        raise
    except Exception:
        db.session.rollback()
        raise

    logger.info("Job %s accepted by truck %s; %d sibling request(s) expired", job_id, truck_id, expired)
    return get_job_details(job_id)


def reject_job(job_id, truck_id):
    """Decline an offer; the job expires when no pending offers remain."""
    try:
        job = _get_job(job_id)
        req = _get_request(job_id, truck_id)
        if job.status != JOB_PENDING:
            raise ConflictError(
                "Job is no longer available",
                job_id=job_id, truck_id=truck_id, current_status=job.status,
            )
        if req.status != REQUEST_PENDING:
            raise ConflictError(
                "Request is no longer pending",
                job_id=job_id, truck_id=truck_id, request_status=req.status,
            )

        now = utcnow()
        # Lock the job row first so concurrent rejects count remaining offers one at a time.
        locked = db.session.query(Job).filter(
            Job.id == job_id,
            Job.status == JOB_PENDING,
        ).update({Job.updated_at: now}, synchronize_session=False)
        if locked != 1:
            raise ConflictError("Job is no longer available", job_id=job_id, truck_id=truck_id)

        rejected = db.session.query(JobRequest).filter(
            JobRequest.id == req.id,
            JobRequest.status == REQUEST_PENDING,
        ).update({JobRequest.status: REQUEST_REJECTED, JobRequest.updated_at: now}, synchronize_session=False)
        if rejected != 1:
            raise ConflictError("Request is no longer pending", job_id=job_id, truck_id=truck_id)

        remaining = db.session.query(JobRequest).filter(
            JobRequest.job_id == job_id,
            JobRequest.status == REQUEST_PENDING,
        ).count()

        job_expired = False
        if remaining == 0:
            job_expired = db.session.query(Job).filter(
                Job.id == job_id,
                Job.status == JOB_PENDING,
            ).update({Job.status: JOB_EXPIRED, Job.updated_at: now}, synchronize_session=False) == 1

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Job %s rejected by truck %s", job_id, truck_id)
    if job_expired:
        logger.info("Job %s expired: every offer was rejected", job_id)
    return get_job_details(job_id)


def update_status(job_id, new_status, by_truck_id):
    """Move an assigned job along its delivery lifecycle."""
    try:
        job = _get_job(job_id)
        if job.truck_id is None or job.truck_id != by_truck_id:
            raise AuthorizationError(
                "Not authorized to update this job",
                job_id=job_id, truck_id=by_truck_id,
            )

        current_status = job.status
        if current_status not in TRUCK_MANAGED_STATUSES or not can_transition(current_status, new_status):
            raise ValidationError(
                f"Cannot transition from {current_status} to {new_status}",
                job_id=job_id, current_status=current_status, attempted_status=new_status,
            )

        now = utcnow()
        values = {Job.status: new_status, Job.updated_at: now}
        if new_status == JOB_DELIVERED:
            values[Job.completed_at] = now

        updated = db.session.query(Job).filter(
            Job.id == job_id,
            Job.status == current_status,
        ).update(values, synchronize_session=False)
        if updated != 1:
            raise ConflictError(
                "Job status changed, refresh and retry",
                job_id=job_id, current_status=current_status, attempted_status=new_status,
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Job %s status %s -> %s by truck %s", job_id, current_status, new_status, by_truck_id)

    if new_status == JOB_EN_ROUTE:
        try:
            notifications.notify_delivery_started(job_id)
        except Exception:
            logger.exception("Delivery-started notification failed for job %s", job_id)

    return get_job_details(job_id)


def cancel_by_customer(job_id, customer_user_id):
    """Customer cancellation, allowed only before the truck is en route."""
    try:
        job = _get_job(job_id)
        if job.customer_user_id != customer_user_id:
            raise AuthorizationError("Not authorized to cancel this job", job_id=job_id)

        current_status = job.status
        if current_status not in CUSTOMER_CANCELLABLE or not can_transition(current_status, JOB_CANCELLED):
            raise ConflictError(
                "Job cannot be cancelled at this stage",
                job_id=job_id, current_status=current_status, attempted_status=JOB_CANCELLED,
            )

        updated = db.session.query(Job).filter(
            Job.id == job_id,
            Job.status.in_(CUSTOMER_CANCELLABLE),
        ).update({Job.status: JOB_CANCELLED, Job.updated_at: utcnow()}, synchronize_session=False)
        if updated != 1:
            raise ConflictError(
                "Job status changed, refresh and retry",
                job_id=job_id, current_status=current_status, attempted_status=JOB_CANCELLED,
            )
        expired = _expire_pending_requests(job_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Job %s cancelled by customer %s; %d pending request(s) expired", job_id, customer_user_id, expired)
    return get_job_details(job_id)


def assign_job(job_id, truck_id, operator_id):
    """Dispatcher-mode assignment: force an acceptance on the operator's behalf."""
    try:
        job = _get_job(job_id)
        if job.status != JOB_PENDING:
            raise ConflictError(
                "Job is no longer pending",
                job_id=job_id, current_status=job.status, attempted_status=JOB_ACCEPTED,
            )

        operator = db.session.get(Operator, operator_id)
        if not operator:
            raise NotFoundError("Operator not found", operator_id=operator_id)

        truck = db.session.get(Truck, truck_id)
        if not truck or truck.operator_id != operator_id:
            raise AuthorizationError(
                "Truck does not belong to this operator",
                truck_id=truck_id, operator_id=operator_id,
            )
        if operator.mode != MODE_DISPATCHER:
            raise AuthorizationError(
                "Operator must be in dispatcher mode",
                operator_id=operator_id, mode=operator.mode,
            )

        if not JobRequest.query.filter_by(job_id=job_id, truck_id=truck_id).first():
            db.session.add(JobRequest(job_id=job_id, truck_id=truck_id, status=REQUEST_PENDING))
            db.session.flush()

        _accept(job_id, truck_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Job %s assigned to truck %s by operator %s", job_id, truck_id, operator_id)
    return get_job_details(job_id)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_job_details(job_id):
    """Job dict with truck/customer display fields, its requests and live ETA.

    Returns None when the job does not exist.
    """
    job = db.session.get(Job, job_id)
    if not job:
        return None

    result = job.to_dict()
    truck = job.truck
    result["truck_name"] = truck.name if truck else None
    result["truck_phone"] = truck.phone if truck else None
    result["capacity_gallons"] = truck.capacity_gallons if truck else None
    result["customer_display_name"] = job.customer_name or (job.customer.name if job.customer else None)

    requests = []
    for req in job.requests:
        item = req.to_dict()
        item["truck_name"] = req.truck.name if req.truck else None
        item["capacity_gallons"] = req.truck.capacity_gallons if req.truck else None
        item["price_fixed"] = req.truck.price_fixed if req.truck else None
        requests.append(item)
    result["requests"] = requests

    if job.status == JOB_EN_ROUTE and truck:
        if truck.has_location:
            location = {
                "lat": truck.current_lat,
                "lng": truck.current_lng,
                "updated_at": truck.location_updated_at.isoformat() if truck.location_updated_at else None,
            }
            if has_location(job.lat, job.lng):
                distance = haversine_km(truck.current_lat, truck.current_lng, job.lat, job.lng)
                location["distance_km"] = round(distance, 2)
                location["eta_minutes"] = eta_minutes(distance)
            result["truck_location"] = location
        else:
            result["truck_location"] = None

    return result


def get_customer_jobs(customer_user_id):
    jobs = Job.query.filter_by(customer_user_id=customer_user_id).order_by(
        Job.created_at.desc(), Job.id.desc()
    ).all()
    results = []
    for job in jobs:
        item = job.to_dict()
        item["truck_name"] = job.truck.name if job.truck else None
        item["truck_phone"] = job.truck.phone if job.truck else None
        results.append(item)
    return results
