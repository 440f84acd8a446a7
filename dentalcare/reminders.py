"""
Appointment reminder configuration

Templates are stored with ``{{placeholder}}`` tokens. Substitution happens in
the external email sender; this module only checks that a template uses
tokens the sender understands.
"""
import re

from .validation import ValidationError, is_valid_email, validate_field

REMINDER_TYPES = ('24_hour', 'day_of', 'custom')

REMINDER_TYPE_LABELS = {
    '24_hour': '24 Hours Before',
    'day_of': 'Day Of Appointment',
    'custom': 'Custom',
}

PLACEHOLDERS = (
    'patient_name',
    'appointment_date',
    'appointment_time',
    'duration',
    'reason',
    'patient_id',
)

HOURS_BEFORE_MIN = 1
HOURS_BEFORE_MAX = 168

PLACEHOLDER_RE = re.compile(r'\{\{\s*(\w+)\s*\}\}')


def find_placeholders(template):
    """Placeholder names in order of first appearance."""
    seen = []
    for name in PLACEHOLDER_RE.findall(template or ''):
        if name not in seen:
            seen.append(name)
    return seen


def unknown_placeholders(template):
    return [name for name in find_placeholders(template) if name not in PLACEHOLDERS]


def validate_reminder_config(config):
    """
    Check a reminder configuration before it is sent to the backend

    Args:
        config: dict with reminder_type, hours_before, is_enabled,
            email_template_subject and email_template_body

    Returns:
        The cleaned payload

    Raises:
        ValidationError: keyed by field name
    """
    errors = {}

    if config.get('reminder_type') not in REMINDER_TYPES:
        errors['reminder_type'] = f"Reminder type must be one of: {', '.join(REMINDER_TYPES)}"

    hours = config.get('hours_before')
    if isinstance(hours, bool) or not isinstance(hours, int) or not HOURS_BEFORE_MIN <= hours <= HOURS_BEFORE_MAX:
        errors['hours_before'] = f"Hours before must be between {HOURS_BEFORE_MIN} and {HOURS_BEFORE_MAX}"

    subject_errors = validate_field('Subject', config.get('email_template_subject'),
                                    required=True, max_length=200)
    body_errors = validate_field('Body', config.get('email_template_body'),
                                 required=True, min_length=10, max_length=5000)

    for field, field_errors in (('email_template_subject', subject_errors),
                                ('email_template_body', body_errors)):
        if field_errors:
            errors[field] = field_errors[0]
            continue
        unknown = unknown_placeholders(config.get(field))
        if unknown:
            errors[field] = f"Unknown placeholders: {', '.join('{{' + n + '}}' for n in unknown)}"

    if errors:
        raise ValidationError(errors)

    return {
        'reminder_type': config['reminder_type'],
        'hours_before': hours,
        'is_enabled': bool(config.get('is_enabled', True)),
        'email_template_subject': config['email_template_subject'],
        'email_template_body': config['email_template_body'],
    }


def build_test_send_request(appointment_id, reminder_type, test_email=None):
    """Body for the test-send action on ``POST /api/reminders/config``."""
    errors = {}
    if not appointment_id:
        errors['appointment_id'] = 'Please select an appointment'
    if reminder_type not in REMINDER_TYPES:
        errors['reminder_type'] = 'Please select a reminder type'
    if test_email and not is_valid_email(test_email):
        errors['test_email'] = 'Please enter a valid email address'
    if errors:
        raise ValidationError(errors)

    body = {
        'action': 'test_reminder',
        'appointment_id': appointment_id,
        'reminder_type': reminder_type,
    }
    if test_email:
        body['test_email'] = test_email.strip()
    return body
