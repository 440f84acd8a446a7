"""
Helpers over lists of appointment dicts as returned by the backend
"""
import logging
from datetime import datetime, timedelta

from .date_time import parse_date, parse_time

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    'scheduled': 'Scheduled',
    'completed': 'Completed',
    'cancelled': 'Cancelled',
    'no-show': 'No Show',
}

STATUS_COLORS = {
    'scheduled': 'blue',
    'completed': 'green',
    'cancelled': 'red',
    'no-show': 'gray',
}

DURATION_OPTIONS = [
    {'value': 15, 'label': '15 minutes'},
    {'value': 30, 'label': '30 minutes'},
    {'value': 45, 'label': '45 minutes'},
    {'value': 60, 'label': '1 hour'},
    {'value': 90, 'label': '1.5 hours'},
    {'value': 120, 'label': '2 hours'},
    {'value': 180, 'label': '3 hours'},
    {'value': 240, 'label': '4 hours'},
]


def status_label(status):
    return STATUS_LABELS.get(status, status)


def status_color(status):
    return STATUS_COLORS.get(status, 'gray')


def _start(date_str, time_str):
    day = parse_date(date_str)
    at = parse_time(time_str)
    if day is None or at is None:
        return None
    return datetime.combine(day, at)


def appointments_conflict(first, second):
    """
    True when two appointments overlap on the same day.

    Each argument is a dict with ``date``, ``time`` and ``duration`` keys.
    Back-to-back appointments do not conflict.
    """
    if first['date'] != second['date']:
        return False
    start1 = _start(first['date'], first['time'])
    start2 = _start(second['date'], second['time'])
    if start1 is None or start2 is None:
        return False
    end1 = start1 + timedelta(minutes=first['duration'])
    end2 = start2 + timedelta(minutes=second['duration'])
    return start1 < end2 and start2 < end1


def generate_time_slots(date_str, existing, business_hours, slot_duration=30, buffer_minutes=15):
    """
    Bookable slots for one day.

    A slot is unavailable when it overlaps an existing appointment widened by
    ``buffer_minutes`` on both sides.
    """
    start = _start(date_str, business_hours['start'])
    end = _start(date_str, business_hours['end'])
    if start is None or end is None:
        logger.error(f"Cannot generate slots for {date_str} with hours {business_hours}")
        return []

    blocked = []
    for apt in existing:
        apt_start = _start(apt['date'], apt['time'])
        if apt_start is None:
            continue
        blocked.append((
            apt_start - timedelta(minutes=buffer_minutes),
            apt_start + timedelta(minutes=apt['duration'] + buffer_minutes),
        ))

    slots = []
    current = start
    step = timedelta(minutes=slot_duration)
    while current + step <= end:
        slot_end = current + step
        conflict = any(current < b_end and b_start < slot_end for b_start, b_end in blocked)
        slots.append({
            'start': current,
            'end': slot_end,
            'time': current.strftime('%H:%M:%S'),
            'available': not conflict,
        })
        current = slot_end
    return slots


def calculate_appointment_stats(appointments):
    total = len(appointments)
    counts = {status: 0 for status in STATUS_LABELS}
    for apt in appointments:
        if apt.get('status') in counts:
            counts[apt['status']] += 1

    return {
        'total': total,
        'scheduled': counts['scheduled'],
        'completed': counts['completed'],
        'cancelled': counts['cancelled'],
        'no_show': counts['no-show'],
        'completion_rate': round(counts['completed'] / total * 100) if total else 0,
        'no_show_rate': round(counts['no-show'] / total * 100) if total else 0,
    }


def status_counts(appointments):
    """Count appointments per status, only including statuses that occur."""
    counts = {}
    for apt in appointments:
        status = apt.get('status')
        counts[status] = counts.get(status, 0) + 1
    return counts


def sort_appointments(appointments):
    return sorted(appointments, key=lambda a: (a.get('appointment_date', ''), a.get('appointment_time', '')))


def filter_by_date_range(appointments, start_date, end_date):
    return [a for a in appointments if start_date <= a.get('appointment_date', '') <= end_date]


def group_by_date(appointments):
    """Group by ``appointment_date`` keeping fetch order inside each group."""
    groups = {}
    for apt in appointments:
        groups.setdefault(apt.get('appointment_date'), []).append(apt)
    return groups


def patient_name(appointment):
    """Display name from the embedded ``patients`` record, if the backend joined it."""
    patient = appointment.get('patients') or {}
    name = f"{patient.get('first_name', '')} {patient.get('last_name', '')}".strip()
    return name or 'Unknown Patient'
