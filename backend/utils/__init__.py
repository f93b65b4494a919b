"""
Utility functions
"""
from .datetime_utils import to_naive_utc, hours_between, utcnow
from .id_generator import generate_id, generate_event_id, validate_id

__all__ = [
    'to_naive_utc',
    'hours_between',
    'utcnow',
    'generate_id',
    'generate_event_id',
    'validate_id',
]
