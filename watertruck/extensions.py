"""
Shared Flask extension instances.

Created as a separate module to avoid circular imports when route
blueprints and services need the extensions that create_app() initialises.
"""

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Limiter is created without an app; storage and default limits are read
# from RATELIMIT_* config keys when init_app() runs.
limiter = Limiter(key_func=get_remote_address)
