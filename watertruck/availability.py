"""
Truck availability.

Lists the trucks a customer can currently send a request to. Staleness is
swept lazily on each listing instead of by a background scheduler.
"""

import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import func, select

from .extensions import db
from .geo import haversine_km, has_location
from .models import Job, Truck, QUEUED_JOB_STATUSES, utcnow
from .utils.helpers import format_eta_text

logger = logging.getLogger(__name__)


def _offline_cutoff():
    minutes = current_app.config.get('TRUCK_OFFLINE_TIMEOUT_MINUTES', 30)
    return utcnow() - timedelta(minutes=minutes)


def queue_length_subquery():
    """Correlated count of a truck's accepted / en-route jobs."""
    return (
        select(func.count(Job.id))
        .where(Job.truck_id == Truck.id, Job.status.in_(QUEUED_JOB_STATUSES))
        .correlate(Truck)
        .scalar_subquery()
    )


def queue_length(truck_id):
    return db.session.query(func.count(Job.id)).filter(
        Job.truck_id == truck_id,
        Job.status.in_(QUEUED_JOB_STATUSES),
    ).scalar() or 0


def deactivate_stale_trucks():
    """Flip ``is_active`` off for trucks silent past the offline timeout.

    Idempotent; trucks that have never been seen are left untouched.
    Returns the number of trucks deactivated.
    """
    cutoff = _offline_cutoff()
    try:
        count = db.session.query(Truck).filter(
            Truck.is_active.is_(True),
            Truck.last_seen_at.isnot(None),
            Truck.last_seen_at < cutoff,
        ).update({Truck.is_active: False}, synchronize_session=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    if count:
        logger.info("Deactivated %d stale truck(s) (last seen before %s)", count, cutoff.isoformat())
    return count


def annotate_truck(truck, queue_len):
    """Truck dict plus queue length and ETA estimate."""
    avg = truck.avg_job_minutes or current_app.config.get('TRUCK_DEFAULT_AVG_JOB_MINUTES', 30)
    result = truck.to_dict()
    result['queue_length'] = queue_len
    result['estimated_delay_minutes'] = queue_len * avg
    result['eta_text'] = format_eta_text(queue_len, avg)
    result['operator_mode'] = truck.operator.mode if truck.operator else None
    return result


def list_available(lat=None, lng=None):
    """Return available trucks, shortest queue first.

    When both ``lat`` and ``lng`` are supplied, trucks with a known position
    further than TRUCK_MAX_DISTANCE_KM are dropped and the rest carry
    ``distance_km``. Trucks without a position are always kept.
    """
    deactivate_stale_trucks()

    cutoff = _offline_cutoff()
    qlen = queue_length_subquery().label('queue_length')
    rows = (
        db.session.query(Truck, qlen)
        .filter(
            Truck.is_active.is_(True),
            Truck.name.isnot(None), Truck.name != '',
            Truck.phone.isnot(None), Truck.phone != '',
            Truck.capacity_gallons.isnot(None), Truck.capacity_gallons > 0,
            Truck.last_seen_at.isnot(None),
            Truck.last_seen_at >= cutoff,
        )
        .order_by(qlen.asc(), Truck.name.asc())
        .all()
    )

    filter_by_distance = has_location(lat, lng)
    max_km = current_app.config.get('TRUCK_MAX_DISTANCE_KM', 50.0)

    trucks = []
    for truck, queue_len in rows:
        entry = annotate_truck(truck, queue_len or 0)
        if filter_by_distance and truck.has_location:
            distance = haversine_km(lat, lng, truck.current_lat, truck.current_lng)
            if distance > max_km:
                continue
            entry['distance_km'] = round(distance, 2)
        trucks.append(entry)
    return trucks
