"""
Appointment calendar

``CalendarCoordinator`` owns the pivot date and view mode, works out which
window of appointments each view needs, fetches it through an
``AppointmentWindow`` and renders the active view as a JSON-ready dict.

All the grouping here is a pure reduction over the rows already fetched;
nothing re-queries the backend per cell or slot.
"""
import logging
from datetime import timedelta

from .appointment_utils import patient_name, status_counts
from .date_time import (
    add_months,
    each_day,
    end_of_month,
    end_of_week,
    format_time,
    parse_date,
    parse_time_to_minutes,
    start_of_month,
    start_of_week,
)
from .resources.appointments import AppointmentWindow
from .tz_utils import today_local

logger = logging.getLogger(__name__)

VIEWS = ('month', 'week', 'day', 'agenda')

MONTH_INLINE_LIMIT = 2

WEEK_SLOT_MINUTES = 60
WEEK_SLOT_COUNT = 11    # 08:00 .. 18:00
DAY_SLOT_MINUTES = 30
DAY_SLOT_COUNT = 20     # 08:00 .. 17:30
FIRST_SLOT_MINUTE = 8 * 60


def fetch_window(view, pivot, today=None):
    """
    Date range the ``view`` needs around ``pivot``

    Returns:
        (start_date, end_date) as ``datetime.date``
    """
    if view == 'month':
        return start_of_month(pivot) - timedelta(days=7), end_of_month(pivot) + timedelta(days=7)
    if view == 'week':
        return pivot - timedelta(days=14), pivot + timedelta(days=14)
    if view == 'day':
        return pivot - timedelta(days=7), pivot + timedelta(days=7)
    if view == 'agenda':
        today = today or today_local()
        return today - timedelta(days=30), today + timedelta(days=90)
    raise ValueError(f"Unknown calendar view: {view}")


def appointments_on(appointments, day):
    iso = day.isoformat()
    return [a for a in appointments if a.get('appointment_date') == iso]


def _slot_label(minute):
    return f"{minute // 60:02d}:{minute % 60:02d}"


def bucket_by_slot(appointments, slot_minutes, slot_count, first_minute=FIRST_SLOT_MINUTE):
    """
    Place appointments into fixed slots by start time

    An appointment belongs to slot ``s`` when its minute of day is in
    ``[s, s + slot_minutes)``. Anything starting outside the slot window is
    returned in ``overflow`` rather than dropped.

    Returns:
        (slots, overflow) where slots is a list of {time, appointments}
    """
    slots = [
        {'time': _slot_label(first_minute + i * slot_minutes), 'appointments': []}
        for i in range(slot_count)
    ]
    overflow = []
    for apt in appointments:
        offset = parse_time_to_minutes(apt.get('appointment_time')) - first_minute
        index = offset // slot_minutes
        if offset < 0 or index >= slot_count:
            overflow.append(apt)
        else:
            slots[index]['appointments'].append(apt)
    return slots, overflow


def _summary(apt):
    return {
        'id': apt.get('id'),
        'time': format_time(apt.get('appointment_time')),
        'patient_name': patient_name(apt),
        'status': apt.get('status'),
    }


def month_view(appointments, pivot, today=None):
    today = today or today_local()
    first = start_of_week(start_of_month(pivot))
    last = end_of_week(end_of_month(pivot))

    weeks = []
    week = []
    for day in each_day(first, last):
        day_appointments = appointments_on(appointments, day)
        hidden = day_appointments[MONTH_INLINE_LIMIT:]
        week.append({
            'date': day.isoformat(),
            'day': day.day,
            'in_month': day.month == pivot.month,
            'is_today': day == today,
            'appointments': day_appointments[:MONTH_INLINE_LIMIT],
            'more_count': len(hidden),
            'more_label': f"+{len(hidden)} more" if hidden else None,
            'more': [_summary(a) for a in hidden],
            'count': len(day_appointments),
        })
        if len(week) == 7:
            weeks.append(week)
            week = []

    in_month = [a for a in appointments
                if (a.get('appointment_date') or '')[:7] == pivot.isoformat()[:7]]
    return {
        'view': 'month',
        'start_date': first.isoformat(),
        'end_date': last.isoformat(),
        'weeks': weeks,
        'total': len(in_month),
        'status_counts': status_counts(in_month),
    }


def week_view(appointments, pivot, today=None):
    today = today or today_local()
    days = []
    week_rows = []
    for day in each_day(start_of_week(pivot), end_of_week(pivot)):
        day_appointments = appointments_on(appointments, day)
        slots, overflow = bucket_by_slot(day_appointments, WEEK_SLOT_MINUTES, WEEK_SLOT_COUNT)
        days.append({
            'date': day.isoformat(),
            'is_today': day == today,
            'slots': slots,
            'overflow': overflow,
            'status_counts': status_counts(day_appointments),
        })
        week_rows.extend(day_appointments)
    return {
        'view': 'week',
        'start_date': days[0]['date'],
        'end_date': days[-1]['date'],
        'days': days,
        'total': len(week_rows),
        'status_counts': status_counts(week_rows),
    }


def day_view(appointments, pivot, today=None):
    today = today or today_local()
    day_appointments = appointments_on(appointments, pivot)
    slots, overflow = bucket_by_slot(day_appointments, DAY_SLOT_MINUTES, DAY_SLOT_COUNT)
    for slot in slots:
        slot['status_counts'] = status_counts(slot['appointments'])
    booked = sum(a.get('duration_minutes') or 0 for a in day_appointments)
    return {
        'view': 'day',
        'date': pivot.isoformat(),
        'is_today': pivot == today,
        'slots': slots,
        'overflow': overflow,
        'total': len(day_appointments),
        'booked_hours': round(booked / 60, 1),
        'status_counts': status_counts(day_appointments),
    }


def agenda_view(appointments, pivot):
    """Appointments in the pivot month grouped by date, both ascending."""
    month = pivot.isoformat()[:7]
    groups = {}
    for apt in appointments:
        apt_date = apt.get('appointment_date') or ''
        if apt_date[:7] == month:
            groups.setdefault(apt_date, []).append(apt)

    days = [
        {
            'date': apt_date,
            'appointments': sorted(groups[apt_date], key=lambda a: a.get('appointment_time') or ''),
        }
        for apt_date in sorted(groups)
    ]
    rows = [a for d in days for a in d['appointments']]
    return {
        'view': 'agenda',
        'month': month,
        'days': days,
        'total': len(rows),
        'status_counts': status_counts(rows),
    }


class CalendarCoordinator:
    """
    Pivot date + view mode for the appointment calendar

    Args:
        client: ApiClient used for the appointment window
        view: initial view mode
        selected_date: externally controlled pivot, defaults to today
        on_date_select: called with the new pivot whenever it changes
        on_new_appointment: called with (date, time) to start a booking
        today: fixed "today" (tests); otherwise the clinic's current date
    """

    def __init__(self, client, view='month', selected_date=None, on_date_select=None,
                 on_new_appointment=None, today=None, window=None):
        if view not in VIEWS:
            raise ValueError(f"Unknown calendar view: {view}")
        self._today = today
        self.view = view
        self.current_date = parse_date(selected_date) or self.today
        self.on_date_select = on_date_select
        self.on_new_appointment = on_new_appointment
        self.window = window or AppointmentWindow(client)

    @property
    def today(self):
        return self._today or today_local()

    @property
    def appointments(self):
        return self.window.data

    @property
    def loading(self):
        return self.window.loading

    @property
    def error(self):
        return self.window.error

    def fetch_range(self):
        return fetch_window(self.view, self.current_date, self.today)

    def refetch(self):
        start, end = self.fetch_range()
        self.window.set_window(start.isoformat(), end.isoformat())
        logger.info(f"🔄 Fetching {self.view} appointments {start} .. {end}")
        return self.window.fetch()

    def set_view(self, view):
        if view not in VIEWS:
            raise ValueError(f"Unknown calendar view: {view}")
        self.view = view
        return self.refetch()

    def set_date(self, value):
        parsed = parse_date(value)
        if parsed is None:
            raise ValueError(f"Invalid date: {value}")
        self.current_date = parsed
        if self.on_date_select:
            self.on_date_select(parsed)
        return self.refetch()

    def go_today(self):
        return self.set_date(self.today)

    def _step(self, direction):
        if self.view == 'week':
            return self.current_date + timedelta(days=7 * direction)
        if self.view == 'day':
            return self.current_date + timedelta(days=direction)
        return add_months(self.current_date, direction)

    def previous(self):
        return self.set_date(self._step(-1))

    def next(self):
        return self.set_date(self._step(1))

    def click_date(self, value):
        """Month cell click: open that day in the day view."""
        parsed = parse_date(value)
        if parsed is None:
            raise ValueError(f"Invalid date: {value}")
        self.view = 'day'
        return self.set_date(parsed)

    def new_appointment(self, value, time=None):
        parsed = parse_date(value)
        if parsed is None:
            raise ValueError(f"Invalid date: {value}")
        if self.on_new_appointment:
            self.on_new_appointment(parsed, time)

    def click_time_slot(self, value, time):
        self.new_appointment(value, time)

    def date_range_label(self):
        d = self.current_date
        if self.view == 'week':
            return d.strftime('%b %d, %Y')
        if self.view == 'day':
            return d.strftime('%A, %B %d, %Y')
        return d.strftime('%B %Y')

    def render(self):
        """
        View model for the active view

        While an error is stored no grid is produced; the caller shows the
        error with a retry button wired to ``refetch()``.
        """
        state = {
            'view': self.view,
            'current_date': self.current_date.isoformat(),
            'label': self.date_range_label(),
            'loading': self.loading,
            'error': self.error,
            'grid': None,
        }
        if self.error:
            return state

        appointments = self.appointments
        if self.view == 'month':
            state['grid'] = month_view(appointments, self.current_date, self.today)
        elif self.view == 'week':
            state['grid'] = week_view(appointments, self.current_date, self.today)
        elif self.view == 'day':
            state['grid'] = day_view(appointments, self.current_date, self.today)
        else:
            state['grid'] = agenda_view(appointments, self.current_date)
        return state
