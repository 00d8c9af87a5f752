"""
Payload validators shared by the workflow services.
Each raises ValidationError naming the offending field.
"""
from datetime import date, datetime
from solarstock.exceptions import ValidationError


def positive_int(value, field='quantity'):
    """Integer > 0"""
    number = _as_int(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be greater than 0", payload={'field': field})
    return number


def non_negative_int(value, field='quantity'):
    """Integer >= 0; None reads as 0"""
    number = _as_int(0 if value is None else value, field)
    if number < 0:
        raise ValidationError(f"{field} cannot be negative", payload={'field': field})
    return number


def required_id(value, field):
    if value in (None, ''):
        raise ValidationError(f"{field} is required", payload={'field': field})
    return _as_int(value, field)


def parse_date(value, field='date'):
    """Accept a date, a datetime or an ISO 'YYYY-MM-DD' string"""
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)", payload={'field': field})


def _as_int(value, field):
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", payload={'field': field})
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", payload={'field': field})
    if isinstance(value, float) and value != number:
        raise ValidationError(f"{field} must be an integer", payload={'field': field})
    return number
