"""
Patient list CSV export

Every field is quoted so names, addresses and notes containing commas,
quotes or line breaks survive a round trip through a spreadsheet.
"""
import csv
import io
import logging
import re

from .date_time import format_date_for_input
from .tz_utils import today_local

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    ('patient_id', 'Patient ID'),
    ('first_name', 'First Name'),
    ('middle_name', 'Middle Name'),
    ('last_name', 'Last Name'),
    ('email', 'Email'),
    ('phone', 'Phone'),
    ('date_of_birth', 'Date of Birth'),
    ('gender', 'Gender'),
    ('address', 'Address'),
    ('emergency_contact_name', 'Emergency Contact'),
    ('emergency_contact_phone', 'Emergency Phone'),
    ('notes', 'Notes'),
    ('created_at', 'Created'),
]


def _cell(value):
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'Yes' if value else 'No'
    return str(value)


def patients_to_csv(patients):
    """Render ``patients`` (dicts) as CSV text with a header row."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator='\r\n')
    writer.writerow([label for _, label in EXPORT_COLUMNS])
    for patient in patients:
        writer.writerow([_cell(patient.get(field)) for field, _ in EXPORT_COLUMNS])
    return buffer.getvalue()


def read_csv(text):
    """Parse exported CSV text back into a list of dicts keyed by header."""
    return list(csv.DictReader(io.StringIO(text, newline='')))


def _slug(value):
    return re.sub(r'[^a-z0-9]+', '-', str(value).lower()).strip('-')


def export_filename(today=None, filters=None):
    """
    ``patients-<YYYY-MM-DD>[-<filter>...].csv``

    Args:
        today: export date, defaults to today in the clinic timezone
        filters: active filter values in display order; empty ones are skipped
    """
    parts = ['patients', format_date_for_input(today or today_local())]
    for value in (filters or []):
        slug = _slug(value) if value not in (None, '') else ''
        if slug:
            parts.append(slug)
    return '-'.join(parts) + '.csv'
