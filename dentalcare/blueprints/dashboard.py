from flask import Blueprint, jsonify
import logging

from ..appointment_utils import calculate_appointment_stats, sort_appointments
from ..extensions import error_response, get_api_client, get_storage, request_json
from ..resources.appointments import AppointmentWindow
from ..resources.dashboard import DashboardStatsResource
from ..storage import Preferences
from ..tz_utils import today_local

dashboard_bp = Blueprint('dashboard', __name__)
logger = logging.getLogger(__name__)


@dashboard_bp.route('/dashboard', methods=['GET'])
def dashboard():
    """Headline stats plus today's schedule"""
    client = get_api_client()
    stats = DashboardStatsResource(client)
    stats.fetch()
    if stats.error:
        return error_response(stats)

    today = today_local().isoformat()
    todays = AppointmentWindow(client, today, today)
    todays.fetch()

    return jsonify({
        'success': True,
        'data': {
            'stats': stats.data,
            'today': {
                'date': today,
                'appointments': sort_appointments(todays.data),
                'summary': calculate_appointment_stats(todays.data),
                'error': todays.error,
            },
        },
    })


@dashboard_bp.route('/preferences', methods=['GET'])
def get_preferences():
    return jsonify({'success': True, 'data': {'preferences': Preferences(get_storage()).all()}})


@dashboard_bp.route('/preferences', methods=['PUT'])
def update_preferences():
    preferences = Preferences(get_storage())
    values = {k: v for k, v in request_json().items() if k in preferences.defaults}
    return jsonify({'success': True, 'data': {'preferences': preferences.update(**values)}})


@dashboard_bp.route('/preferences', methods=['DELETE'])
def reset_preferences():
    return jsonify({'success': True, 'data': {'preferences': Preferences(get_storage()).reset()}})
