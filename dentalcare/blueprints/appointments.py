from flask import Blueprint, jsonify, request, current_app
import logging

from ..api_client import ApiError
from ..appointment_utils import (
    DURATION_OPTIONS,
    STATUS_LABELS,
    calculate_appointment_stats,
    generate_time_slots,
)
from ..date_time import is_valid_date_string
from ..extensions import error_response, get_api_client, mutation_response, request_json
from ..resources.appointments import AppointmentsResource, AppointmentWindow
from ..validation import STATUS_TRANSITIONS

appointments_bp = Blueprint('appointments', __name__)
logger = logging.getLogger(__name__)

LIST_FILTERS = ('status', 'patient_id', 'start_date', 'end_date', 'limit', 'offset')


@appointments_bp.route('/appointments', methods=['GET'])
def list_appointments():
    filters = {k: request.args.get(k) for k in LIST_FILTERS if request.args.get(k)}
    appointments = AppointmentsResource(get_api_client(), filters)
    appointments.fetch()
    if appointments.error:
        return error_response(appointments)

    rows = appointments.search(request.args.get('search', ''))
    return jsonify({
        'success': True,
        'data': {
            'appointments': rows,
            'pagination': {'total': appointments.total_count, 'hasMore': appointments.has_more},
            'stats': calculate_appointment_stats(rows),
        },
    })


@appointments_bp.route('/appointments/options', methods=['GET'])
def appointment_options():
    """Choices for the appointment form"""
    return jsonify({
        'success': True,
        'data': {
            'durations': DURATION_OPTIONS,
            'statuses': [{'value': k, 'label': v} for k, v in STATUS_LABELS.items()],
            'transitions': STATUS_TRANSITIONS,
        },
    })


@appointments_bp.route('/appointments/slots', methods=['GET'])
def available_slots():
    """Bookable slots for one day, given what is already booked"""
    day = request.args.get('date', '')
    if not is_valid_date_string(day):
        return jsonify({'success': False, 'error': 'Please provide a valid date'}), 400

    booked = AppointmentWindow(get_api_client(), day, day)
    booked.fetch()
    if booked.error:
        return error_response(booked)

    existing = [
        {'date': a['appointment_date'], 'time': a['appointment_time'], 'duration': a.get('duration_minutes') or 30}
        for a in booked.data
        if a.get('status') not in ('cancelled', 'no-show')
    ]
    slots = generate_time_slots(
        day,
        existing,
        {'start': current_app.config['BUSINESS_HOURS_START'], 'end': current_app.config['BUSINESS_HOURS_END']},
        slot_duration=request.args.get('slot_duration', 30, type=int),
    )
    return jsonify({
        'success': True,
        'data': {
            'date': day,
            'slots': [{'time': s['time'], 'available': s['available']} for s in slots],
        },
    })


@appointments_bp.route('/appointments/<appointment_id>', methods=['GET'])
def get_appointment(appointment_id):
    try:
        appointment = AppointmentsResource(get_api_client()).get(appointment_id)
    except ApiError as e:
        return jsonify({'success': False, 'error': str(e)}), e.status_code or 500
    return jsonify({'success': True, 'data': {'appointment': appointment}})


@appointments_bp.route('/appointments', methods=['POST'])
def create_appointment():
    result = AppointmentsResource(get_api_client()).create_from_form(request_json())
    return mutation_response(result, 'appointment', status=201)


@appointments_bp.route('/appointments/<appointment_id>', methods=['PUT'])
def update_appointment(appointment_id):
    result = AppointmentsResource(get_api_client()).update_from_form(appointment_id, request_json())
    return mutation_response(result, 'appointment')


@appointments_bp.route('/appointments/<appointment_id>/status', methods=['POST'])
def change_appointment_status(appointment_id):
    """Move an appointment along the status workflow"""
    appointments = AppointmentsResource(get_api_client())
    try:
        appointment = appointments.get(appointment_id)
    except ApiError as e:
        return jsonify({'success': False, 'error': str(e)}), e.status_code or 500

    result = appointments.change_status(appointment, request_json().get('status'))
    return mutation_response(result, 'appointment')


@appointments_bp.route('/appointments/<appointment_id>', methods=['DELETE'])
def delete_appointment(appointment_id):
    return mutation_response(AppointmentsResource(get_api_client()).delete(appointment_id))
