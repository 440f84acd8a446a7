"""
QR registration token lifecycle

Three variants share one record shape:

* generic: permanent clinic code, never expires, unlimited registrations
* reusable: expires, unlimited registrations until then, counts usages
* single-use: expires, flips ``used`` false -> true exactly once

The backend is the authority on consumption; these helpers mirror its rules
so the admin screens can show status and the right delete warning.
"""
import logging

from .tz_utils import now_utc, parse_timestamp

logger = logging.getLogger(__name__)

QR_TYPE_INFO = {
    'generic': {
        'label': 'Generic QR Code',
        'badge': 'Permanent',
        'description': 'Permanent clinic QR code that never expires. Best for reception areas and printed materials.',
    },
    'reusable': {
        'label': 'Reusable QR Token',
        'badge': 'Multi-use',
        'description': 'Multi-use QR with expiration. Multiple patients can register with the same code.',
    },
    'single-use': {
        'label': 'Single-use QR Token',
        'badge': 'Single-use',
        'description': 'One-time use QR with expiration. Perfect for individual patient invitations.',
    },
}

EXPIRATION_OPTIONS = [1, 6, 24, 72, 168]
MIN_EXPIRATION_HOURS = 1
MAX_EXPIRATION_HOURS = 168


class QRTokenError(Exception):
    """A token cannot be generated or consumed"""


def _plural(count, word):
    return f"{count} {word}{'' if count == 1 else 's'}"


def format_expiration(hours):
    """``5 hours``, ``1 day``, ``2 days 3h`` or ``1 week``."""
    if hours < 24:
        return _plural(hours, 'hour')
    if hours < 168:
        days, remaining = divmod(hours, 24)
        return _plural(days, 'day') if remaining == 0 else f"{_plural(days, 'day')} {remaining}h"
    return _plural(hours // 168, 'week')


def generation_request(qr_type, expiration_hours=24, note=None):
    """
    Query parameters for ``GET /api/qr-registration``

    Generic tokens are requested with ``expiration_hours=0`` and
    ``reusable=true``; the others need 1-168 hours.
    """
    if qr_type not in QR_TYPE_INFO:
        raise QRTokenError(f"Unknown QR type: {qr_type}")

    params = {'qr_type': qr_type}
    if qr_type == 'generic':
        params['expiration_hours'] = 0
        params['reusable'] = 'true'
    else:
        try:
            hours = int(expiration_hours)
        except (TypeError, ValueError):
            raise QRTokenError('Expiration must be a whole number of hours')
        if not MIN_EXPIRATION_HOURS <= hours <= MAX_EXPIRATION_HOURS:
            raise QRTokenError(f"Expiration must be between {MIN_EXPIRATION_HOURS} and {MAX_EXPIRATION_HOURS} hours")
        params['expiration_hours'] = hours
        params['reusable'] = 'true' if qr_type == 'reusable' else 'false'

    if note and note.strip():
        params['note'] = note.strip()
    return params


def registration_url(base_url, token):
    base = base_url.rstrip('/')
    if token.get('qr_type') == 'generic':
        return f"{base}/patient-registration"
    return f"{base}/patient-registration/{token['token']}"


def is_expired(token, now=None):
    if token.get('qr_type') == 'generic':
        return False
    expires_at = parse_timestamp(token.get('expires_at'))
    if expires_at is None:
        return False
    return (now or now_utc()) > expires_at


def token_status(token, now=None):
    """``used``, ``expired`` or ``active``."""
    if token.get('used') and not token.get('reusable'):
        return 'used'
    if is_expired(token, now):
        return 'expired'
    return 'active'


def consume(token, now=None):
    """
    Record one registration against a token

    Returns:
        A new token dict; the input is not modified

    Raises:
        QRTokenError: token expired, or single-use token already used
    """
    qr_type = token.get('qr_type')
    if qr_type != 'generic' and is_expired(token, now):
        raise QRTokenError('This QR code has expired')

    updated = dict(token)
    if qr_type == 'single-use':
        if token.get('used'):
            logger.warning(f"⚠️ Rejected second use of single-use token {token.get('id')}")
            raise QRTokenError('This QR code has already been used')
        updated['used'] = True
        updated['usage_count'] = 1
    else:
        updated['usage_count'] = (token.get('usage_count') or 0) + 1
    return updated


def delete_warning(token):
    """
    Confirmation required before deleting a token

    Returns:
        dict with severity (high, medium or low), title, message,
        consequences, confirm_text and requires_confirmation
    """
    qr_type = token.get('qr_type')
    usage_count = token.get('usage_count') or 0

    if qr_type == 'generic':
        warning = {
            'severity': 'high',
            'title': 'Delete Permanent QR Code?',
            'message': 'This is a permanent clinic QR code that never expires. Deleting it will remove access for all patients using this QR code.',
            'consequences': [
                'Patients will no longer be able to register using this QR code',
                'Any printed materials with this QR code will become invalid',
                'This action cannot be undone',
            ],
            'confirm_text': 'I understand this will disable all existing printed QR codes',
        }
    elif qr_type == 'reusable' and usage_count > 0:
        warning = {
            'severity': 'medium',
            'title': 'Delete Reusable QR Token?',
            'message': f"This reusable QR token has been used {_plural(usage_count, 'time')}. Deleting it will prevent future registrations.",
            'consequences': [
                'No more patients can register using this QR code',
                f"Registration history for {_plural(usage_count, 'patient')} will be preserved",
                'Any active campaign materials will become invalid',
            ],
            'confirm_text': 'I understand this will disable an active QR token',
        }
    elif qr_type == 'reusable':
        warning = {
            'severity': 'low',
            'title': 'Delete Reusable QR Token?',
            'message': "This reusable QR token hasn't been used yet. Are you sure you want to delete it?",
            'consequences': [
                'This unused QR token will be permanently removed',
                'Any distributed materials with this QR code will become invalid',
            ],
            'confirm_text': 'I want to delete this unused QR token',
        }
    elif qr_type == 'single-use' and token.get('used'):
        warning = {
            'severity': 'low',
            'title': 'Delete Single-use QR Token?',
            'message': 'This single-use QR token has already been used and can be safely deleted.',
            'consequences': [
                'This will clean up your QR token list',
                'Patient registration data will be preserved',
            ],
            'confirm_text': 'Delete this used QR token',
        }
    elif qr_type == 'single-use':
        warning = {
            'severity': 'low',
            'title': 'Delete Single-use QR Token?',
            'message': "This single-use QR token hasn't been used yet. Deleting it will prevent the intended patient from registering.",
            'consequences': [
                'The intended recipient will not be able to register',
                'You may need to create a new QR code for them',
            ],
            'confirm_text': 'I understand the recipient cannot register with this QR code',
        }
    else:
        warning = {
            'severity': 'medium',
            'title': 'Delete QR Token?',
            'message': 'Are you sure you want to delete this QR token?',
            'consequences': ['This action cannot be undone'],
            'confirm_text': 'I want to delete this QR token',
        }

    warning['requires_confirmation'] = (
        warning['severity'] == 'high'
        or (warning['severity'] == 'medium' and usage_count > 0)
    )
    return warning


def token_stats(tokens, now=None):
    now = now or now_utc()
    stats = {'total': len(tokens), 'active': 0, 'expired': 0, 'used': 0}
    for token in tokens:
        stats[token_status(token, now)] += 1
    return stats
