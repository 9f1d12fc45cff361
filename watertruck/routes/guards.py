"""
Route decorators that resolve the acting truck / operator for the current
device identity.
"""

from functools import wraps

from flask import g

from ..errors import AuthorizationError, NotFoundError
from ..extensions import db
from ..models import Truck
from ..operators import get_operator_for_user
from ..trucks import get_truck_for_user


def require_own_truck(f):
    """Route takes ``<int:truck_id>``; the current user must own that truck."""
    @wraps(f)
    def wrapper(truck_id, *args, **kwargs):
        truck = db.session.get(Truck, truck_id)
        if not truck:
            raise NotFoundError("Truck not found", truck_id=truck_id)
        if truck.user_id != g.user.id:
            raise AuthorizationError("Not authorized for this truck", truck_id=truck_id)
        return f(truck=truck, *args, **kwargs)
    return wrapper


def require_truck(f):
    """Pass the current user's truck as ``truck``."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        truck = get_truck_for_user(g.user.id)
        if not truck:
            raise AuthorizationError("Truck profile required")
        return f(truck=truck, *args, **kwargs)
    return wrapper


def require_operator(f):
    """Pass the current user's operator record as ``operator``."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        operator = get_operator_for_user(g.user.id)
        if not operator:
            raise AuthorizationError("Operator access required")
        return f(operator=operator, *args, **kwargs)
    return wrapper
