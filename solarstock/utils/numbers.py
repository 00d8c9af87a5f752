"""
Money helpers.
Amounts are Decimal, rounded half-up to two places.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from solarstock.exceptions import ValidationError

TWO_PLACES = Decimal('0.01')
HUNDRED = Decimal('100')


def to_decimal(value, field='value'):
    """Parse a rate / percentage; None and '' read as zero"""
    if value is None or value == '':
        return Decimal('0')
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", payload={'field': field})


def money(value):
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def line_amounts(rate, quantity, gst_percent):
    """(taxable, gst, total) for rate x quantity with GST on top"""
    taxable = money(to_decimal(rate, 'rate') * int(quantity))
    gst = money(taxable * to_decimal(gst_percent, 'gst_percent') / HUNDRED)
    return taxable, gst, taxable + gst


def amount_with_gst(rate, quantity, gst_percent):
    return line_amounts(rate, quantity, gst_percent)[2]
