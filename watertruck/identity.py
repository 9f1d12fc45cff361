"""
Device identity.

Every browser/app instance carries a long-lived UUIDv4 device token, sent as
the ``X-Device-Token`` header or the ``device_token`` cookie. The token maps
to one User row, created on first contact. There is no other authentication.
"""

import logging

from flask import current_app, g, request
from sqlalchemy.exc import IntegrityError

from .errors import ValidationError
from .extensions import db
from .models import Operator, Truck, User
from .utils.helpers import clean_text, generate_unique_id
from .utils.validators import is_valid_uuid4, validate_email

logger = logging.getLogger(__name__)

DEVICE_TOKEN_HEADER = "X-Device-Token"
DEVICE_TOKEN_COOKIE = "device_token"
DEVICE_TOKEN_MAX_AGE = 365 * 24 * 60 * 60

# Endpoints served without resolving a user
PUBLIC_PATHS = ("/api/config",)


def get_or_create_user(device_token):
    user = User.query.filter_by(device_token=device_token).first()
    if user:
        return user

    try:
        user = User(device_token=device_token, role="customer")
        db.session.add(user)
        db.session.commit()
    except IntegrityError:
        # Same device's parallel first requests
        db.session.rollback()
        user = User.query.filter_by(device_token=device_token).first()
        if not user:
            raise
        return user
    except Exception:
        db.session.rollback()
        raise

    logger.info("New user %s for device token %s...", user.id, device_token[:8])
    return user


def enrich_user(user):
    """User dict plus the linked truck and operator records, when present."""
    result = user.to_dict()

    truck = Truck.query.filter_by(user_id=user.id).first()
    if truck:
        truck_data = truck.to_dict()
        if truck.operator:
            owner = truck.operator.user
            truck_data["operator_name"] = (
                (owner.name if owner else None) or truck.operator.service_area or "Fleet"
            )
        result["truck"] = truck_data

    operator = Operator.query.filter_by(user_id=user.id).first()
    if operator:
        result["operator"] = operator.to_dict()

    return result


def update_profile(user, data):
    data = data or {}
    updates = {}

    if data.get("name") is not None:
        updates["name"] = clean_text(data["name"])
    if data.get("phone") is not None:
        updates["phone"] = clean_text(data["phone"])
    if data.get("email") is not None:
        email = clean_text(data["email"])
        if not validate_email(email):
            raise ValidationError("Invalid email format")
        taken = User.query.filter(User.email == email, User.id != user.id).first()
        if taken:
            raise ValidationError("Email already in use")
        updates["email"] = email

    if updates:
        try:
            for field, value in updates.items():
                setattr(user, field, value)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        logger.info("User %s profile updated: %s", user.id, sorted(updates))

    return enrich_user(user)


def _request_device_token():
    token = request.headers.get(DEVICE_TOKEN_HEADER)
    if is_valid_uuid4(token):
        return token
    token = request.cookies.get(DEVICE_TOKEN_COOKIE)
    if is_valid_uuid4(token):
        return token
    return None


def init_identity(app):
    """Register the hooks that resolve ``g.user`` for every API request."""

    @app.before_request
    def resolve_device_identity():
        if not request.path.startswith("/api/") or request.path in PUBLIC_PATHS:
            return None
        if request.method == "OPTIONS":
            return None
        token = _request_device_token() or generate_unique_id()
        g.device_token = token
        g.user = get_or_create_user(token)
        return None

    @app.after_request
    def set_device_token_cookie(response):
        token = g.get("device_token")
        if token:
            response.set_cookie(
                DEVICE_TOKEN_COOKIE,
                token,
                max_age=DEVICE_TOKEN_MAX_AGE,
                path="/",
                domain=current_app.config.get("DEVICE_TOKEN_COOKIE_DOMAIN"),
                secure=current_app.config.get("DEVICE_TOKEN_COOKIE_SECURE", True),
                httponly=True,
                samesite=current_app.config.get("DEVICE_TOKEN_COOKIE_SAMESITE", "Lax"),
            )
        return response
