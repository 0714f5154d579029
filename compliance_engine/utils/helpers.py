"""Shared utility functions.

round_half_up:  deterministic integer rounding for scores (0.5 always rounds up)
parse_datetime: ISO-8601 query/body values → aware datetime, None on bad input
"""
import logging
import math
from datetime import datetime, timezone
from fractions import Fraction

logger = logging.getLogger(__name__)


def round_half_up(value) -> int:
    """Round to the nearest integer; halves round up (round() rounds them to even).

    Exact for int and Fraction input.
    """
    return int(math.floor(value + Fraction(1, 2)))


def parse_datetime(value):
    """Parse an ISO-8601 string to an aware datetime; None on bad input."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.debug("parse_datetime: rejected %r", value)
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
