"""
Great-circle distance and drive-time helpers.

Shared by truck availability filtering, live ETA on en-route jobs and
proximity targeting of "customers nearby" notifications.
"""

from math import radians, cos, sin, asin, sqrt, ceil

EARTH_RADIUS_KM = 6371.0

# Average urban driving speed used for live ETAs.
URBAN_SPEED_KMH = 30.0


def haversine_km(lat1, lng1, lat2, lng2):
    """Return the great-circle distance in km between two points."""
    lat1, lng1, lat2, lng2 = map(radians, map(float, [lat1, lng1, lat2, lng2]))
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * asin(sqrt(a))


def eta_minutes(distance_km, speed_kmh=URBAN_SPEED_KMH):
    """Drive time in whole minutes, rounded up and never below one minute."""
    return max(1, int(ceil(distance_km * 60 / speed_kmh)))


def has_location(lat, lng):
    return lat is not None and lng is not None


def within_km(lat1, lng1, lat2, lng2, max_km):
    """True when both points are known and no further apart than ``max_km``."""
    if not (has_location(lat1, lng1) and has_location(lat2, lng2)):
        return False
    return haversine_km(lat1, lng1, lat2, lng2) <= max_km
