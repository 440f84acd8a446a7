"""
Validation helpers for form fields and appointment data.

All predicates return booleans and never raise. Form code collects
messages through ``validate_field`` and raises ``ValidationError`` when a
step or submission must be blocked; nothing that fails here is ever sent
to the backend.
"""
import re
from decimal import Decimal, InvalidOperation

from .date_time import parse_date, parse_time_to_minutes
from .tz_utils import today_local

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
LOCAL_PHONE_RE = re.compile(r'^09\d{9}$')
PATIENT_ID_RE = re.compile(r'^P\d{3,}$')

LOCAL_PHONE_MESSAGE = 'Phone must be exactly 11 digits starting with 09'

# Allowed appointment status changes; completed is terminal
STATUS_TRANSITIONS = {
    'scheduled': ['completed', 'cancelled', 'no-show'],
    'completed': [],
    'cancelled': ['scheduled'],
    'no-show': ['scheduled'],
}


class ValidationError(Exception):
    """Client-side validation failure, keyed by field name."""

    def __init__(self, errors):
        self.errors = dict(errors)
        message = '; '.join(self.errors.values()) or 'Validation failed'
        super().__init__(message)


def is_valid_email(email):
    if not isinstance(email, str):
        return False
    return bool(EMAIL_RE.match(email.strip()))


def is_valid_phone(phone):
    """Loose check used by list filters: 10 or 11 digits after stripping."""
    if not isinstance(phone, str):
        return False
    digits = re.sub(r'\D', '', phone)
    return len(digits) in (10, 11)


def is_valid_local_phone(phone):
    """Strict mobile format used by registration forms: ``09XXXXXXXXX``."""
    return isinstance(phone, str) and bool(LOCAL_PHONE_RE.match(phone))


def is_valid_date_of_birth(value, today=None):
    """Past date, less than 150 years ago."""
    dob = parse_date(value)
    if dob is None:
        return False
    today = today or today_local()
    try:
        oldest = today.replace(year=today.year - 150)
    except ValueError:
        # Feb 29 on a non-leap target year
        oldest = today.replace(year=today.year - 150, day=28)
    return oldest < dob < today


def is_valid_birth_date(value, today=None):
    """
    Birth date check used by the patient edit form.

    Year must be within 1900-2100, the date must exist on the calendar, must
    not be in the future, and the resulting age must be 120 years or less.
    """
    if not isinstance(value, str) or not re.match(r'^\d{4}-\d{2}-\d{2}$', value):
        return False
    year = int(value[:4])
    if year < 1900 or year > 2100:
        return False
    dob = parse_date(value)
    if dob is None:
        return False
    today = today or today_local()
    if dob > today:
        return False
    age = today.year - dob.year - ((today.month, today.day) < (dob.month, dob.day))
    return age <= 120


def is_valid_appointment_time(time_str, business_start='08:00', business_end='18:00'):
    """True when ``time_str`` falls inside business hours, both ends inclusive."""
    if not isinstance(time_str, str) or ':' not in time_str:
        return False
    minutes = parse_time_to_minutes(time_str)
    return parse_time_to_minutes(business_start) <= minutes <= parse_time_to_minutes(business_end)


def is_valid_patient_id(patient_id):
    return isinstance(patient_id, str) and bool(PATIENT_ID_RE.match(patient_id))


def is_valid_cost(cost):
    """Non-negative, finite, at most two decimal places."""
    try:
        value = Decimal(str(cost).strip())
    except (InvalidOperation, ValueError):
        return False
    if not value.is_finite() or value < 0:
        return False
    return value.normalize().as_tuple().exponent >= -2


def is_valid_duration(duration):
    """15 to 480 minutes in 15-minute steps."""
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        return False
    return 15 <= duration <= 480 and duration % 15 == 0


def is_valid_medical_notes(notes):
    trimmed = (notes or '').strip()
    return len(trimmed) <= 5000 and not re.search(r'[<>]', trimmed)


def sanitize_input(value):
    """Strip markup-ish content from free text before it is stored."""
    cleaned = re.sub(r'[<>]', '', value or '')
    cleaned = re.sub(r'javascript:', '', cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r'on\w+=', '', cleaned, flags=re.IGNORECASE)
    return cleaned.strip()


def is_valid_emergency_contact(name=None, phone=None):
    """Both empty is fine; otherwise both are required and must be sane."""
    if not name and not phone:
        return True
    if name and phone:
        return 2 <= len(name.strip()) <= 100 and is_valid_phone(phone)
    return False


def is_valid_status_transition(current_status, new_status):
    return new_status in STATUS_TRANSITIONS.get(current_status, [])


def validate_field(field_name, value, required=False, min_length=None,
                   max_length=None, pattern=None, custom=None):
    """
    Run a set of rules against one form value

    Args:
        field_name: Label used in messages
        value: Raw form value
        required: Empty values fail with "<field> is required"
        min_length / max_length: Length bounds for strings
        pattern: Regex (string or compiled) the value must match
        custom: Callable returning False or an error string on failure

    Returns:
        List of error messages; empty when the value is acceptable
    """
    errors = []
    empty = value is None or value == '' or (isinstance(value, str) and not value.strip())

    if required and empty:
        errors.append(f"{field_name} is required")
        return errors
    if empty:
        return errors

    if min_length and len(value) < min_length:
        errors.append(f"{field_name} must be at least {min_length} characters")
    if max_length and len(value) > max_length:
        errors.append(f"{field_name} must be no more than {max_length} characters")

    if pattern is not None:
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        if not regex.search(str(value)):
            errors.append(f"{field_name} format is invalid")

    if custom is not None:
        result = custom(value)
        if result is False:
            errors.append(f"{field_name} is invalid")
        elif isinstance(result, str):
            errors.append(result)

    return errors
