"""
Input parsing helpers shared by routes and services.
All of them raise ValidationError naming the offending field.
"""
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation

from clinicdesk.errors import ValidationError


def parse_date(value, field='date'):
    """Parse YYYY-MM-DD (or pass a date through)"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), '%Y-%m-%d').date()
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {field}. Use YYYY-MM-DD', field=field)


def parse_time(value, field='time'):
    """Parse HH:MM or HH:MM:SS (or pass a time through), minute precision"""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    for fmt in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.strptime(str(value), fmt).time().replace(second=0)
        except (TypeError, ValueError):
            continue
    raise ValidationError(f'Invalid {field}. Use HH:MM (e.g., 10:30)', field=field)


def clinic_now():
    """Current wall-clock time of the clinic, the clock schedules are written in"""
    return datetime.now()


def _naive(value, local):
    if value.tzinfo is None:
        return value
    if local:
        return value.astimezone().replace(tzinfo=None)
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_datetime(value, field='datetime', local=True):
    """
    Parse ISO 8601 'YYYY-MM-DDTHH:MM[:SS][+HH:MM]' into a naive datetime.

    Values with an offset are converted, not truncated: to clinic wall-clock
    time by default, or to UTC with local=False for instants stored in UTC.
    """
    if not isinstance(value, datetime):
        try:
            value = datetime.fromisoformat(str(value))
        except (TypeError, ValueError):
            raise ValidationError(f'Invalid {field}. Use YYYY-MM-DDTHH:MM', field=field)
    return _naive(value, local)


def parse_decimal(value, field='amount'):
    try:
        return Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f'Invalid {field}. Must be a number', field=field)


def parse_bool(value, field='flag'):
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ('true', '1', 'yes'):
        return True
    if isinstance(value, str) and value.lower() in ('false', '0', 'no'):
        return False
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ValidationError(f'Invalid {field}. Must be true or false', field=field)


def require_text(value, field):
    text = (value or '').strip() if isinstance(value, str) or value is None else None
    if not text:
        raise ValidationError(f'Field "{field}" is required', field=field)
    return text


def parse_int(value, field='id'):
    if isinstance(value, bool):
        raise ValidationError(f'Invalid {field}. Must be a whole number', field=field)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {field}. Must be a whole number', field=field)
