from flask import Blueprint, jsonify
import logging

from ..extensions import error_response, get_api_client, mutation_response, request_json
from ..reminders import PLACEHOLDERS, REMINDER_TYPE_LABELS, find_placeholders
from ..resources.reminders import ReminderSettingsResource

reminders_bp = Blueprint('reminders', __name__)
logger = logging.getLogger(__name__)


@reminders_bp.route('/reminders', methods=['GET'])
def reminder_settings():
    """Reminder configurations, send statistics and the placeholder list"""
    settings = ReminderSettingsResource(get_api_client())
    settings.fetch()
    if settings.error:
        return error_response(settings)

    configs = [
        dict(c,
             type_label=REMINDER_TYPE_LABELS.get(c['reminder_type'], c['reminder_type']),
             placeholders_used=find_placeholders(f"{c['email_template_subject']} {c['email_template_body']}"))
        for c in settings.data
    ]
    return jsonify({
        'success': True,
        'data': {
            'configs': configs,
            'statistics': settings.statistics,
            'email_configured': settings.email_configured,
            'placeholders': [f"{{{{{name}}}}}" for name in PLACEHOLDERS],
        },
    })


@reminders_bp.route('/reminders', methods=['POST'])
def create_reminder_config():
    result = ReminderSettingsResource(get_api_client()).create_config(request_json())
    return mutation_response(result, 'config', status=201)


@reminders_bp.route('/reminders/<config_id>', methods=['PUT'])
def update_reminder_config(config_id):
    result = ReminderSettingsResource(get_api_client()).update_config(config_id, request_json())
    return mutation_response(result, 'config')


@reminders_bp.route('/reminders/test', methods=['POST'])
def send_test_reminder():
    """Send one reminder now for an appointment"""
    body = request_json()
    if not body.get('appointment_id'):
        return jsonify({'success': False, 'error': 'Please select an appointment'}), 400
    result = ReminderSettingsResource(get_api_client()).send_test(
        body['appointment_id'], body.get('reminder_type', '24_hour'), body.get('test_email'),
    )
    return mutation_response(result, 'result')
