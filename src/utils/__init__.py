"""Utilities package - Flat structure (no nested directories)"""

# Clock
from .clock import hour_window, next_hour_window, parse_timestamp, to_naive_utc, utcnow

# Hash utilities
from .hash_utils import hash_string, payload_fingerprint, generate_resolved_cache_key

# Price units
from .prices import PriceFormatError, market_price, parse_major_units, parse_minor_units

__all__ = [
    # clock
    "utcnow",
    "to_naive_utc",
    "hour_window",
    "next_hour_window",
    "parse_timestamp",
    # hash
    "hash_string",
    "payload_fingerprint",
    "generate_resolved_cache_key",
    # prices
    "PriceFormatError",
    "market_price",
    "parse_major_units",
    "parse_minor_units",
]
