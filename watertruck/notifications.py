"""
Notification fan-out.

"Customers nearby" alerts are accumulated per recipient user and flushed at
most once per throttle window; delivery alerts go straight to the customer.
Notifier failures are logged and dropped here so they never reach callers.
"""

import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from .errors import ValidationError
from .extensions import db
from .geo import has_location, within_km
from .models import Job, NotificationQueueEntry, PushSubscription, Truck, utcnow
from .push_notifications import PushReport, get_notifier

logger = logging.getLogger(__name__)

CUSTOMERS_NEARBY_TITLE = "Customers Looking for Water!"
WATER_COLLECTED_TITLE = "Water Collected!"


def _enabled():
    return bool(current_app.config.get("NOTIFICATIONS_ENABLED"))


def customers_nearby_body(count):
    if count == 1:
        return "1 customer is looking for water in your area"
    return f"{count} customers are looking for water in your area"


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

def save_subscription(user_id, payload):
    """Store (or replace) a user's browser PushSubscription."""
    payload = payload or {}
    keys = payload.get("keys") or {}
    endpoint = (payload.get("endpoint") or "").strip()
    p256dh = (keys.get("p256dh") or "").strip()
    auth = (keys.get("auth") or "").strip()
    if not (endpoint and p256dh and auth):
        raise ValidationError("Invalid subscription data", user_id=user_id)

    try:
        sub = PushSubscription.query.filter_by(user_id=user_id).first()
        if sub:
            sub.endpoint = endpoint
            sub.p256dh = p256dh
            sub.auth = auth
        else:
            sub = PushSubscription(user_id=user_id, endpoint=endpoint, p256dh=p256dh, auth=auth)
            db.session.add(sub)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Push subscription saved for user %s", user_id)
    return sub


def _prune_subscription(subscription_id):
    if not current_app.config.get("NOTIFICATIONS_PRUNE_EXPIRED", True):
        return False
    deleted = db.session.query(PushSubscription).filter(
        PushSubscription.id == subscription_id
    ).delete(synchronize_session=False)
    if deleted:
        logger.info("Removed expired push subscription id=%s", subscription_id)
    return bool(deleted)


def _safe_send(subscription_info, title, body, data):
    try:
        report = get_notifier().send(subscription_info, title, body, data)
    except Exception as e:
        logger.exception("Notifier raised while sending %r", title)
        return PushReport(False, reason=str(e))
    if not report.success:
        logger.warning(
            "Push %r not delivered (status=%s expired=%s reason=%s)",
            title, report.status_code, report.expired, report.reason,
        )
    return report


# ---------------------------------------------------------------------------
# Customers nearby
# ---------------------------------------------------------------------------

def _offline_trucks_with_location():
    cutoff = utcnow() - timedelta(minutes=current_app.config.get("TRUCK_OFFLINE_TIMEOUT_MINUTES", 30))
    return (
        db.session.query(Truck)
        .join(PushSubscription, PushSubscription.user_id == Truck.user_id)
        .filter(
            Truck.name.isnot(None), Truck.name != "",
            Truck.phone.isnot(None), Truck.phone != "",
            Truck.capacity_gallons.isnot(None), Truck.capacity_gallons > 0,
            Truck.current_lat.isnot(None),
            Truck.current_lng.isnot(None),
            or_(
                Truck.is_active.is_(False),
                Truck.last_seen_at.is_(None),
                Truck.last_seen_at < cutoff,
            ),
        )
        .all()
    )


def _increment_queue(user_id, now):
    """Upsert: insert with count 1 or add 1 to the existing counter."""
    values = {
        NotificationQueueEntry.customer_count: NotificationQueueEntry.customer_count + 1,
        NotificationQueueEntry.last_customer_at: now,
    }
    updated = db.session.query(NotificationQueueEntry).filter(
        NotificationQueueEntry.user_id == user_id
    ).update(values, synchronize_session=False)
    if updated:
        return

    try:
        with db.session.begin_nested():
            db.session.add(NotificationQueueEntry(user_id=user_id, customer_count=1, last_customer_at=now))
    except IntegrityError:
        # Inserted concurrently by another visit
        db.session.query(NotificationQueueEntry).filter(
            NotificationQueueEntry.user_id == user_id
        ).update(values, synchronize_session=False)


def on_customer_visit(lat=None, lng=None):
    """Record a customer looking for water and alert nearby offline trucks.

    Returns ``{"queued": <recipients counted>, "notified": <pushes sent>}``.
    """
    result = {"queued": 0, "notified": 0}
    if not _enabled() or not has_location(lat, lng):
        return result

    max_km = current_app.config.get("TRUCK_MAX_DISTANCE_KM", 50.0)
    now = utcnow()
    recipients = set()
    try:
        for truck in _offline_trucks_with_location():
            if not within_km(lat, lng, truck.current_lat, truck.current_lng, max_km):
                continue
            if truck.user_id in recipients:
                continue
            _increment_queue(truck.user_id, now)
            recipients.add(truck.user_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if recipients:
        logger.info("Customer visit queued for %d nearby truck owner(s)", len(recipients))
    result["queued"] = len(recipients)
    result["notified"] = flush_due()
    return result


def flush_due():
    """Send one batched alert to every recipient outside its throttle window.

    Counters are claimed (decremented by the amount sent, last_notified_at
    stamped) before delivery, whether or not delivery then succeeds.
    Returns the number of pushes delivered.
    """
    if not _enabled():
        return 0

    throttle = current_app.config.get("NOTIFICATIONS_THROTTLE_MINUTES", 15)
    now = utcnow()
    cutoff = now - timedelta(minutes=throttle)
    due_filter = or_(
        NotificationQueueEntry.last_notified_at.is_(None),
        NotificationQueueEntry.last_notified_at <= cutoff,
    )

    claimed = []
    try:
        rows = (
            db.session.query(NotificationQueueEntry, PushSubscription)
            .join(PushSubscription, PushSubscription.user_id == NotificationQueueEntry.user_id)
            .filter(NotificationQueueEntry.customer_count > 0, due_filter)
            .all()
        )
        for entry, sub in rows:
            count = entry.customer_count
            won = db.session.query(NotificationQueueEntry).filter(
                NotificationQueueEntry.id == entry.id,
                due_filter,
            ).update({
                NotificationQueueEntry.customer_count: NotificationQueueEntry.customer_count - count,
                NotificationQueueEntry.last_notified_at: now,
            }, synchronize_session=False)
            if won == 1:
                claimed.append((entry.user_id, count, sub.id, sub.subscription_info()))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    sent = 0
    expired = []
    for user_id, count, subscription_id, info in claimed:
        report = _safe_send(
            info,
            CUSTOMERS_NEARBY_TITLE,
            customers_nearby_body(count),
            {"type": "customers_nearby", "customer_count": count, "url": "/truck"},
        )
        if report.success:
            sent += 1
        elif report.expired:
            expired.append(subscription_id)

    if expired:
        try:
            for subscription_id in expired:
                _prune_subscription(subscription_id)
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception("Failed to prune expired push subscriptions %s", expired)

    if claimed:
        logger.info("Customers-nearby flush: %d/%d delivered", sent, len(claimed))
    return sent


# ---------------------------------------------------------------------------
# Delivery alerts
# ---------------------------------------------------------------------------

def notify_delivery_started(job_id):
    """Tell the customer their truck has collected water and is on the way.

    Returns True when a push was delivered. Never raises.
    """
    try:
        if not _enabled():
            return False

        job = db.session.get(Job, job_id)
        if not job:
            return False

        sub = PushSubscription.query.filter_by(user_id=job.customer_user_id).first()
        if not sub:
            logger.info("No push subscription for customer %s (job %s)", job.customer_user_id, job_id)
            return False

        truck_name = job.truck.name if job.truck and job.truck.name else "Your truck"
        report = _safe_send(
            sub.subscription_info(),
            WATER_COLLECTED_TITLE,
            f"{truck_name} has collected your water and is on the way!",
            {"type": "water_collected", "job_id": job.id, "url": f"/job/{job.id}"},
        )
        if report.expired and _prune_subscription(sub.id):
            db.session.commit()
        return report.success

    except Exception:
        db.session.rollback()
        logger.exception("notify_delivery_started failed for job_id=%s", job_id)
        return False
