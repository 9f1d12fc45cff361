"""
Helper utilities
"""
import math
import uuid


def generate_unique_id():
    """
    Generate a unique UUID

    Returns:
        str: UUID string
    """
    return str(uuid.uuid4())


def clean_text(value):
    """Strip surrounding whitespace; empty strings become None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def format_eta_text(queue_length, avg_job_minutes):
    """
    Render a human ETA band for a truck with ``queue_length`` jobs ahead

    Args:
        queue_length (int): Accepted / en-route jobs already on the truck
        avg_job_minutes (int): Average minutes per job

    Returns:
        str: "Available now", "40-60 minutes", "~2 hours" or "1-2 hours"
    """
    if not queue_length:
        return 'Available now'

    min_minutes = queue_length * avg_job_minutes
    max_minutes = (queue_length + 1) * avg_job_minutes

    if min_minutes < 60:
        return f'{min_minutes}-{max_minutes} minutes'

    min_hours = math.floor(min_minutes / 60)
    max_hours = math.ceil(max_minutes / 60)
    if min_hours == max_hours:
        return f'~{min_hours} hour' if min_hours == 1 else f'~{min_hours} hours'
    return f'{min_hours}-{max_hours} hours'
