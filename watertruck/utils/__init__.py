"""Utilities package"""
from .validators import (
    validate_email,
    is_valid_uuid4,
    parse_coordinate,
    parse_coordinates,
)
from .helpers import generate_unique_id, format_eta_text, clean_text

__all__ = [
    'validate_email',
    'is_valid_uuid4',
    'parse_coordinate',
    'parse_coordinates',
    'generate_unique_id',
    'format_eta_text',
    'clean_text',
]
