import logging

from ..api_client import expect
from ..reminders import build_test_send_request, validate_reminder_config
from ..schemas import ReminderConfig
from .base import Resource, parse_rows

logger = logging.getLogger(__name__)

CONFIG_PATH = '/api/reminders/config'


class ReminderSettingsResource(Resource):
    """
    Reminder configurations plus 30-day send statistics

    The reminders endpoint still answers in the bare
    ``{configs, statistics, emailConfigured}`` shape.
    """

    name = 'reminder configs'

    def __init__(self, client):
        self.statistics = {}
        self.email_configured = False
        super().__init__(client)

    def load(self):
        payload = self.client.get(CONFIG_PATH, legacy=True)
        configs = parse_rows(ReminderConfig, expect(payload, 'configs'), 'reminder configs')
        self.statistics = payload.get('statistics') or {}
        self.email_configured = bool(payload.get('emailConfigured'))
        return configs

    def update_config(self, config_id, values):
        """Validate and save one configuration with ``PUT ?id=``."""
        return self.mutate(
            lambda: self.client.put(CONFIG_PATH, params={'id': config_id},
                                    json=validate_reminder_config(values), legacy=True).get('config'),
        )

    def create_config(self, values):
        return self.mutate(
            lambda: self.client.post(CONFIG_PATH, json=validate_reminder_config(values), legacy=True).get('config'),
        )

    def send_test(self, appointment_id, reminder_type, test_email=None):
        """Ask the backend to send one reminder now, prefixed ``[TEST]``."""
        result = self.mutate(
            lambda: self.client.post(CONFIG_PATH, json=build_test_send_request(appointment_id, reminder_type, test_email),
                                     legacy=True),
            refetch=False,
        )
        if result.success:
            logger.info(f"✅ Test reminder ({reminder_type}) sent for appointment {appointment_id}")
        return result
