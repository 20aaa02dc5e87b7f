"""
Helper utilities for payment operations
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

TWO_PLACES = Decimal('0.01')


def generate_id(prefix=''):
    """Generate a unique ID with optional prefix"""
    return f"{prefix}{uuid.uuid4().hex}"


def utc_now():
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def to_decimal(value):
    """
    Parse a price into a Decimal

    Returns None for anything that is not a finite number; booleans are
    rejected even though they are ints.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def round_amount(amount):
    """Round to whole cents, half up"""
    return Decimal(amount).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def format_amount(amount):
    """Two-decimal fixed string as PayPal expects it"""
    return str(round_amount(amount))


def parse_paypal_datetime(value):
    """Parse an RFC 3339 timestamp from PayPal (e.g. 2024-05-01T10:00:00Z)"""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_db_datetime(value):
    """Aware datetime -> naive UTC for DATETIME columns"""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_datetime(value):
    """Naive UTC from DATETIME columns -> aware datetime"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
