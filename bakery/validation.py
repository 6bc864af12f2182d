# bakery/validation.py
from decimal import Decimal, InvalidOperation

from .errors import ValidationError

# ids map to INTEGER columns; anything wider cannot name a row
MAX_ID = 2 ** 31 - 1
MAX_QUANTITY = 999


def parse_decimal(raw, field, maximum=None):
    if isinstance(raw, bool):
        raise ValidationError(f'Invalid {field}')
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f'Invalid {field}')
    if not value.is_finite():
        raise ValidationError(f'Invalid {field}')
    if maximum is not None and value > maximum:
        raise ValidationError(f'{field} must be at most {maximum}')
    return value


def parse_id(raw, field, required=True):
    if raw is None or raw == '':
        if required:
            raise ValidationError(f'{field} is required')
        return None
    # bool is an int subclass; true/false are not ids
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
        raise ValidationError(f'Invalid {field}')
    try:
        value = int(raw)
    except (OverflowError, ValueError):
        raise ValidationError(f'Invalid {field}')
    if value <= 0 or value > MAX_ID or (isinstance(raw, float) and raw != value):
        raise ValidationError(f'Invalid {field}')
    return value


def parse_quantity(raw):
    if isinstance(raw, bool) or not isinstance(raw, (int, str)):
        raise ValidationError('quantity must be a positive integer')
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError('quantity must be a positive integer')
    if value < 1:
        raise ValidationError('quantity must be a positive integer')
    if value > MAX_QUANTITY:
        raise ValidationError(f'quantity must be at most {MAX_QUANTITY}')
    return value


def text_or_empty(value, field):
    """Return ``value`` as a string, '' when missing; non-strings are rejected."""
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be text')
    return value


def optional_text(data, field):
    return text_or_empty(data.get(field), field).strip() or None


def require_text(data, field, label=None):
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f'{label or field} is required')
    return value.strip()
