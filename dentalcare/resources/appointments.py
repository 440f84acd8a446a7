import logging

from ..appointment_utils import status_label
from ..config import Config
from ..date_time import is_valid_date_string, is_valid_time_string
from ..schemas import APPOINTMENT_STATUSES, Appointment
from ..validation import (
    ValidationError,
    is_valid_appointment_time,
    is_valid_duration,
    is_valid_status_transition,
    sanitize_input,
)
from .base import CollectionResource

logger = logging.getLogger(__name__)


def search_appointments(appointments, term):
    """Match on patient name, patient id, reason or notes."""
    if not term or not term.strip():
        return list(appointments)

    needle = term.lower()
    results = []
    for apt in appointments:
        patient = apt.get('patients') or {}
        haystacks = (
            f"{patient.get('first_name', '')} {patient.get('last_name', '')}".lower(),
            (patient.get('patient_id') or '').lower(),
            (apt.get('reason') or '').lower(),
            (apt.get('notes') or '').lower(),
        )
        if any(needle in h for h in haystacks):
            results.append(apt)
    return results


class AppointmentsResource(CollectionResource):
    path = '/api/appointments'
    plural = 'appointments'
    singular = 'appointment'
    model = Appointment
    default_params = {'limit': 20}

    def search(self, term):
        return search_appointments(self.data, term)

    def create_from_form(self, form):
        return self.mutate(lambda: self._create(appointment_payload(form)))

    def update_from_form(self, row_id, form):
        return self.mutate(lambda: self._update(row_id, appointment_payload(form)))

    def _change_status(self, appointment, new_status):
        current = appointment.get('status')
        if not is_valid_status_transition(current, new_status):
            raise ValidationError({
                'status': f"Cannot change status from {status_label(current)} to {status_label(new_status)}"
            })
        return self._update(appointment['id'], {'status': new_status})

    def change_status(self, appointment, new_status):
        """Move an appointment to ``new_status`` if the transition is allowed."""
        result = self.mutate(self._change_status, appointment, new_status)
        if result.success:
            logger.info(f"✅ Appointment {appointment['id']} -> {new_status}")
        return result


class AppointmentWindow(AppointmentsResource):
    """Appointments in a ``[start_date, end_date]`` window, used by the calendar."""

    def __init__(self, client, start_date=None, end_date=None, limit=None):
        super().__init__(client, {
            'start_date': start_date,
            'end_date': end_date,
            'limit': limit or Config.APPOINTMENT_FETCH_LIMIT,
        })

    def set_window(self, start_date, end_date):
        self.filters['start_date'] = start_date
        self.filters['end_date'] = end_date


class PatientAppointments(AppointmentsResource):
    def __init__(self, client, patient_id):
        super().__init__(client, {'patient_id': patient_id, 'limit': 20})


def appointment_payload(form, business_start=None, business_end=None):
    """
    Validate the appointment form and build the request body

    Raises:
        ValidationError: keyed by field name
    """
    business_start = business_start or Config.BUSINESS_HOURS_START
    business_end = business_end or Config.BUSINESS_HOURS_END
    errors = {}
    if not form.get('patient_id'):
        errors['patient_id'] = 'Please select a patient'
    if not is_valid_date_string(form.get('appointment_date') or ''):
        errors['appointment_date'] = 'Please select a valid date'
    appointment_time = form.get('appointment_time') or ''
    if not is_valid_time_string(appointment_time):
        errors['appointment_time'] = 'Please select a valid time'
    elif not is_valid_appointment_time(appointment_time, business_start, business_end):
        errors['appointment_time'] = f"Appointments must be between {business_start} and {business_end}"
    duration = form.get('duration_minutes', 30)
    if not is_valid_duration(duration):
        errors['duration_minutes'] = 'Duration must be 15 to 480 minutes in 15-minute steps'
    status = form.get('status') or 'scheduled'
    if status not in APPOINTMENT_STATUSES:
        errors['status'] = f"Status must be one of: {', '.join(APPOINTMENT_STATUSES)}"
    for field, limit in (('reason', 500), ('notes', 1000)):
        if len(form.get(field) or '') > limit:
            errors[field] = f"{field.capitalize()} must be no more than {limit} characters"
    if errors:
        raise ValidationError(errors)

    return {
        'patient_id': form['patient_id'],
        'appointment_date': form['appointment_date'],
        'appointment_time': appointment_time,
        'duration_minutes': duration,
        'status': status,
        'reason': sanitize_input(form.get('reason')),
        'notes': sanitize_input(form.get('notes')),
    }
