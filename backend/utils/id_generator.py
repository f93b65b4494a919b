"""
Short prefixed ID generator for city pipeline records.

Format: {prefix}_{base36_random}
- ev_xxxxxxxx  - canonical event (synthesized from a cluster)
- rw_xxxxxxxx  - raw event that arrived without an upstream id
- bt_xxxxxxxx  - ingestion batch

8 chars base36 = 36^8 = 2.8 trillion unique IDs per type
"""
import secrets
import re
from typing import Optional

# Base36 alphabet (lowercase letters + digits)
ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
BASE = len(ALPHABET)  # 36

PREFIXES = {
    'event': 'ev',
    'raw_event': 'rw',
    'batch': 'bt',
}

PREFIX_TO_TYPE = {v: k for k, v in PREFIXES.items()}

ID_PATTERN = re.compile(r'^(ev|rw|bt)_[0-9a-z]{8}$')


def _random_base36(length: int = 8) -> str:
    """Generate random base36 string"""
    return ''.join(ALPHABET[secrets.randbelow(BASE)] for _ in range(length))


def generate_id(entity_type: str) -> str:
    """
    Generate a new short ID for the given record type.

    Raises:
        ValueError: If entity_type is invalid
    """
    if entity_type not in PREFIXES:
        raise ValueError(f"Invalid entity type: {entity_type}. "
                        f"Must be one of: {list(PREFIXES.keys())}")

    return f"{PREFIXES[entity_type]}_{_random_base36(8)}"


def validate_id(id_str: str) -> bool:
    """Check if a string is a valid short ID."""
    if not id_str or not isinstance(id_str, str):
        return False
    return bool(ID_PATTERN.match(id_str))


def get_id_type(id_str: str) -> Optional[str]:
    """Record type ('event', 'raw_event', 'batch') or None if invalid"""
    if not validate_id(id_str):
        return None
    return PREFIX_TO_TYPE.get(id_str[:2])


def generate_event_id() -> str:
    """Generate a new canonical event ID"""
    return generate_id('event')


def generate_batch_id() -> str:
    """Generate a new batch ID"""
    return generate_id('batch')
