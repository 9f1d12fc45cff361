"""
Operator fleet invites: single-use tokens that bind a truck owner to an
operator.
"""

import logging

from flask import current_app

from .errors import ConflictError, NotFoundError
from .extensions import db
from .models import Invite, Operator, Truck, utcnow
from .utils.helpers import generate_unique_id

logger = logging.getLogger(__name__)


def _invite_url(token):
    return f"{current_app.config.get('APP_URL', '').rstrip('/')}/invite/{token}"


def create_invite(operator_id):
    if not db.session.get(Operator, operator_id):
        raise NotFoundError("Operator not found", operator_id=operator_id)

    try:
        invite = Invite(operator_id=operator_id, token=generate_unique_id(), used=False)
        db.session.add(invite)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Invite %s created by operator %s", invite.id, operator_id)
    result = invite.to_dict()
    result["url"] = _invite_url(invite.token)
    return result


def get_invite(token):
    invite = Invite.query.filter_by(token=token).first()
    if not invite:
        raise NotFoundError("Invalid invite token")
    result = invite.to_dict()
    operator = invite.operator
    result["operator_name"] = (operator.user.name if operator and operator.user else None) or "Unknown Operator"
    return result


def redeem_invite(token, user):
    """Bind ``user``'s truck (created if needed) to the inviting operator."""
    invite = Invite.query.filter_by(token=token).first()
    if not invite:
        raise NotFoundError("Invalid invite token")
    if invite.used:
        raise ConflictError("Invite has already been used", invite_id=invite.id)

    operator_id = invite.operator_id
    try:
        truck = Truck.query.filter_by(user_id=user.id).first()
        if truck:
            truck.operator_id = operator_id
        else:
            user.role = "truck"
            truck = Truck(
                user_id=user.id,
                operator_id=operator_id,
                is_active=False,
                avg_job_minutes=current_app.config.get("TRUCK_DEFAULT_AVG_JOB_MINUTES", 30),
            )
            db.session.add(truck)
        db.session.flush()

        claimed = db.session.query(Invite).filter(
            Invite.id == invite.id,
            Invite.used.is_(False),
        ).update({
            Invite.used: True,
            Invite.truck_id: truck.id,
            Invite.used_at: utcnow(),
        }, synchronize_session=False)
        if claimed != 1:
            raise ConflictError("Invite has already been used", invite_id=invite.id)

        truck_id = truck.id
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Invite %s redeemed by user %s: truck %s joined operator %s", invite.id, user.id, truck_id, operator_id)
    return {"truck_id": truck_id, "operator_id": operator_id}


def list_invites(operator_id):
    invites = Invite.query.filter_by(operator_id=operator_id).order_by(
        Invite.created_at.desc(), Invite.id.desc()
    ).all()
    results = []
    for invite in invites:
        item = invite.to_dict()
        item["url"] = _invite_url(invite.token)
        results.append(item)
    return results
