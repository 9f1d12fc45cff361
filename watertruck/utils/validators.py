"""
Validation utilities
"""
import re
import uuid


def validate_email(email):
    """
    Validate email format

    Args:
        email (str): Email address to validate

    Returns:
        bool: True if valid, False otherwise
    """
    if not email:
        return False

    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email))


def is_valid_uuid4(value):
    """
    Check that a device token / invite token is a canonical UUIDv4 string

    Args:
        value (str): Candidate token

    Returns:
        bool: True for a lowercase or uppercase hyphenated version-4 UUID
    """
    if not value or not isinstance(value, str) or len(value) != 36:
        return False
    try:
        parsed = uuid.UUID(value)
    except ValueError:
        return False
    return parsed.version == 4 and str(parsed) == value.lower()


def parse_coordinate(value, lower, upper):
    """Parse a latitude/longitude value, returning None when missing or out of range."""
    if value is None or value == '':
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number < lower or number > upper:
        return None
    return number


def parse_coordinates(lat, lng):
    """Return ``(lat, lng)`` only when both parse; otherwise ``(None, None)``."""
    lat = parse_coordinate(lat, -90.0, 90.0)
    lng = parse_coordinate(lng, -180.0, 180.0)
    if lat is None or lng is None:
        return None, None
    return lat, lng
