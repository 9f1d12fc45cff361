"""
Water Truck API Route Blueprints
"""
from .meta import meta_bp
from .me import me_bp
from .trucks import trucks_bp
from .push import push_bp
from .jobs import jobs_bp
from .operator import operator_bp
from .invites import invites_bp

__all__ = [
    "meta_bp",
    "me_bp",
    "trucks_bp",
    "push_bp",
    "jobs_bp",
    "operator_bp",
    "invites_bp",
]
