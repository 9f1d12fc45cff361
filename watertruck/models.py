"""
Water Truck SQLAlchemy Models
All database entities for the on-demand water delivery dispatch service.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Float, Boolean, Integer, Text, DateTime, ForeignKey,
    CheckConstraint, Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .extensions import db


def utcnow():
    """Naive UTC timestamp; every DateTime column stores UTC without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


# Wire-level status strings
JOB_PENDING = "pending"
JOB_ACCEPTED = "accepted"
JOB_EN_ROUTE = "en_route"
JOB_DELIVERED = "delivered"
JOB_CANCELLED = "cancelled"
JOB_EXPIRED = "expired"
JOB_STATUSES = (JOB_PENDING, JOB_ACCEPTED, JOB_EN_ROUTE, JOB_DELIVERED, JOB_CANCELLED, JOB_EXPIRED)

# Jobs that count against a truck's queue
QUEUED_JOB_STATUSES = (JOB_ACCEPTED, JOB_EN_ROUTE)

REQUEST_PENDING = "pending"
REQUEST_ACCEPTED = "accepted"
REQUEST_REJECTED = "rejected"
REQUEST_EXPIRED = "expired"
REQUEST_STATUSES = (REQUEST_PENDING, REQUEST_ACCEPTED, REQUEST_REJECTED, REQUEST_EXPIRED)

MODE_DELEGATED = "delegated"
MODE_DISPATCHER = "dispatcher"
OPERATOR_MODES = (MODE_DELEGATED, MODE_DISPATCHER)

# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------
class User(db.Model):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    device_token = Column(String(36), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)
    email = Column(String(255), unique=True, nullable=True)
    # Advisory only; truck/operator capability comes from the linked records.
    role = Column(String(20), nullable=False, default="customer")

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    truck = relationship("Truck", back_populates="user", uselist=False)
    operator = relationship("Operator", back_populates="user", uselist=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "role": self.role,
            "created_at": _iso(self.created_at),
        }


# ---------------------------------------------------------------------------
# Operator
# ---------------------------------------------------------------------------
class Operator(db.Model):
    __tablename__ = "operators"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    mode = Column(String(20), nullable=False, default=MODE_DELEGATED)
    service_area = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="operator")
    trucks = relationship("Truck", back_populates="operator", lazy="dynamic")

    __table_args__ = (
        CheckConstraint("mode IN ('delegated', 'dispatcher')", name="ck_operator_mode"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "mode": self.mode,
            "service_area": self.service_area,
            "created_at": _iso(self.created_at),
        }


# ---------------------------------------------------------------------------
# Truck
# ---------------------------------------------------------------------------
class Truck(db.Model):
    __tablename__ = "trucks"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    operator_id = Column(Integer, ForeignKey("operators.id", ondelete="SET NULL"), nullable=True, index=True)

    name = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)
    capacity_gallons = Column(Integer, nullable=True)
    price_fixed = Column(Float, nullable=True)
    avg_job_minutes = Column(Integer, nullable=False, default=30)

    is_active = Column(Boolean, nullable=False, default=False)
    last_seen_at = Column(DateTime, nullable=True)

    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)
    location_updated_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="truck")
    operator = relationship("Operator", back_populates="trucks")

    __table_args__ = (
        Index("ix_trucks_active_seen", "is_active", "last_seen_at"),
    )

    @property
    def has_location(self):
        return self.current_lat is not None and self.current_lng is not None

    @property
    def profile_complete(self):
        return bool(self.name) and bool(self.phone) and bool(self.capacity_gallons)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "operator_id": self.operator_id,
            "name": self.name,
            "phone": self.phone,
            "capacity_gallons": self.capacity_gallons,
            "price_fixed": self.price_fixed,
            "avg_job_minutes": self.avg_job_minutes,
            "is_active": bool(self.is_active),
            "profile_complete": self.profile_complete,
            "last_seen_at": _iso(self.last_seen_at),
            "current_lat": self.current_lat,
            "current_lng": self.current_lng,
            "location_updated_at": _iso(self.location_updated_at),
            "created_at": _iso(self.created_at),
        }


# ---------------------------------------------------------------------------
# Job
# ---------------------------------------------------------------------------
class Job(db.Model):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True)
    customer_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    truck_id = Column(Integer, ForeignKey("trucks.id", ondelete="SET NULL"), nullable=True, index=True)

    status = Column(String(20), nullable=False, default=JOB_PENDING)

    location = Column(Text, nullable=False)
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(32), nullable=True)
    lat = Column(Float, nullable=True)
    lng = Column(Float, nullable=True)

    # Locked in by the winning acceptance together with truck_id
    price = Column(Float, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    accepted_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    customer = relationship("User", foreign_keys=[customer_user_id])
    truck = relationship("Truck", foreign_keys=[truck_id])
    requests = relationship(
        "JobRequest", back_populates="job", lazy="dynamic",
        order_by="JobRequest.id", cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_jobs_status", "status"),
        Index("ix_jobs_truck_status", "truck_id", "status"),
        CheckConstraint(
            "status IN ('pending', 'accepted', 'en_route', 'delivered', 'cancelled', 'expired')",
            name="ck_job_status",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "customer_user_id": self.customer_user_id,
            "truck_id": self.truck_id,
            "status": self.status,
            "price": self.price,
            "location": self.location,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "lat": self.lat,
            "lng": self.lng,
            "created_at": _iso(self.created_at),
            "accepted_at": _iso(self.accepted_at),
            "completed_at": _iso(self.completed_at),
        }


# ---------------------------------------------------------------------------
# JobRequest (one offer of a job to one candidate truck)
# ---------------------------------------------------------------------------
class JobRequest(db.Model):
    __tablename__ = "job_requests"

    id = Column(Integer, primary_key=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    truck_id = Column(Integer, ForeignKey("trucks.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=REQUEST_PENDING)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    job = relationship("Job", back_populates="requests")
    truck = relationship("Truck")

    __table_args__ = (
        UniqueConstraint("job_id", "truck_id", name="uq_job_request_job_truck"),
        Index("ix_job_requests_truck_status", "truck_id", "status"),
        CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'expired')",
            name="ck_job_request_status",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "job_id": self.job_id,
            "truck_id": self.truck_id,
            "status": self.status,
            "created_at": _iso(self.created_at),
        }


# ---------------------------------------------------------------------------
# PushSubscription (one Web Push credential triple per user)
# ---------------------------------------------------------------------------
class PushSubscription(db.Model):
    __tablename__ = "push_subscriptions"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    endpoint = Column(Text, nullable=False)
    p256dh = Column(String(255), nullable=False)
    auth = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User")

    def subscription_info(self):
        """Shape expected by the browser Push API / pywebpush."""
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.p256dh, "auth": self.auth},
        }

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "endpoint": self.endpoint,
            "created_at": _iso(self.created_at),
        }


# ---------------------------------------------------------------------------
# NotificationQueueEntry (per-recipient "customers nearby" accumulator)
# ---------------------------------------------------------------------------
class NotificationQueueEntry(db.Model):
    __tablename__ = "notification_queue"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    customer_count = Column(Integer, nullable=False, default=0)
    last_customer_at = Column(DateTime, nullable=True)
    last_notified_at = Column(DateTime, nullable=True)

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "customer_count": self.customer_count,
            "last_customer_at": _iso(self.last_customer_at),
            "last_notified_at": _iso(self.last_notified_at),
        }


# ---------------------------------------------------------------------------
# Invite (single-use token binding a truck owner to an operator's fleet)
# ---------------------------------------------------------------------------
class Invite(db.Model):
    __tablename__ = "invites"

    id = Column(Integer, primary_key=True)
    operator_id = Column(Integer, ForeignKey("operators.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(36), unique=True, nullable=False, index=True)
    used = Column(Boolean, nullable=False, default=False)
    truck_id = Column(Integer, ForeignKey("trucks.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=utcnow)
    used_at = Column(DateTime, nullable=True)

    operator = relationship("Operator")
    truck = relationship("Truck")

    def to_dict(self):
        return {
            "id": self.id,
            "operator_id": self.operator_id,
            "token": self.token,
            "used": bool(self.used),
            "truck_id": self.truck_id,
            "truck_name": self.truck.name if self.truck else None,
            "created_at": _iso(self.created_at),
            "used_at": _iso(self.used_at),
        }
